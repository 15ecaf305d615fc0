"""
The age eligibility circuit.

Statement: given public ``minimum_age`` and ``current_date`` (both in days),
the prover knows a private ``birth_date`` such that

    current_date - birth_date >= minimum_age

Encoded as ``assert_geq(current_date - birth_date, minimum_age, range_bits)``.
The surplus ``current_date - birth_date - minimum_age`` must fit in
``range_bits`` bits; with the default 16 that is up to ~179 years of
surplus. A negative surplus wraps to a value near the field modulus and
cannot be recomposed from ``range_bits`` booleans.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Optional

from agegate.zk.constraints import ONE, ConstraintSystem
from agegate.zk.gadgets import assert_geq

DEFAULT_RANGE_BITS = 16

MINIMUM_AGE = "minimum_age"
CURRENT_DATE = "current_date"
BIRTH_DATE = "birth_date"


def _require_int(name: str, value: Any) -> int:
    # bool is a subclass of int
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer day count, got {type(value).__name__}")
    return value


@dataclass(frozen=True)
class PublicInputs:
    """Public statement inputs, both as day counts since the Unix epoch."""
    minimum_age: int
    current_date: int

    def __post_init__(self):
        _require_int(MINIMUM_AGE, self.minimum_age)
        _require_int(CURRENT_DATE, self.current_date)
        if self.minimum_age < 0:
            raise ValueError("minimum_age cannot be negative")
        if self.current_date < 0:
            raise ValueError("current_date cannot be negative")

    def values(self) -> tuple:
        """Values in public-variable order."""
        return (self.minimum_age, self.current_date)

    def to_dict(self) -> Dict[str, int]:
        return {MINIMUM_AGE: self.minimum_age, CURRENT_DATE: self.current_date}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PublicInputs":
        return cls(minimum_age=data[MINIMUM_AGE], current_date=data[CURRENT_DATE])


@dataclass(frozen=True)
class AgeCircuit:
    """Age-threshold circuit parameterised by the surplus bit width."""
    range_bits: int = DEFAULT_RANGE_BITS

    def synthesize(
        self,
        cs: ConstraintSystem,
        public: Optional[PublicInputs] = None,
        birth_date: Optional[int] = None,
    ) -> Dict[str, int]:
        """Emit the circuit into ``cs``. Returns the named wire indices."""
        minimum_age = cs.alloc_public(MINIMUM_AGE, public.minimum_age if public else None)
        current_date = cs.alloc_public(CURRENT_DATE, public.current_date if public else None)
        birth = cs.alloc_private(BIRTH_DATE, birth_date)

        diff = assert_geq(
            cs,
            lhs={current_date: 1, birth: -1},
            rhs={minimum_age: 1},
            bits=self.range_bits,
            label="age",
        )
        return {
            "one": ONE,
            MINIMUM_AGE: minimum_age,
            CURRENT_DATE: current_date,
            BIRTH_DATE: birth,
            "surplus": diff,
        }

    def shape(self) -> ConstraintSystem:
        """Witness-free constraint system, used by setup."""
        cs = ConstraintSystem(with_witness=False)
        self.synthesize(cs)
        return cs

    def assign(self, public: PublicInputs, birth_date: int) -> ConstraintSystem:
        """Witness-carrying constraint system, used by the prover."""
        _require_int(BIRTH_DATE, birth_date)
        cs = ConstraintSystem(with_witness=True)
        self.synthesize(cs, public, birth_date)
        return cs

    def digest(self) -> str:
        return _shape_digest(self)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": "age-threshold", "range_bits": self.range_bits, "digest": self.digest()}


@lru_cache(maxsize=8)
def _shape_digest(circuit: AgeCircuit) -> str:
    return circuit.shape().digest()
