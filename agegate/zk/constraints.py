"""
Constraint system for the age circuit.

A :class:`ConstraintSystem` is the shared capability every gadget writes
into. It owns the variable table and the constraint list, and optionally
carries a witness (one field value per variable). The same synthesis code
runs in two modes:

    * shape mode (no witness): used by setup to fix the circuit layout
    * witness mode: used by the prover, then checked with :func:`simulate`

Variable 0 is the constant ONE. Public variables follow, then private ones.

Constraint kinds:
    LINEAR   sum(k_i * w_i) = 0                     degree 1
    PRODUCT  a * b = c                              degree 2
    ROOTS    prod(w - r_j) = 0                      degree len(roots)

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from agegate.core import canonical_digest
from agegate.zk.field import FIELD_MODULUS, reduce

ONE = 0

# Sparse linear combination: variable index -> coefficient
LinearCombination = Dict[int, int]


class Visibility(Enum):
    CONSTANT = "constant"
    PUBLIC = "public"
    PRIVATE = "private"


class ConstraintKind(Enum):
    LINEAR = "linear"
    PRODUCT = "product"
    ROOTS = "roots"


@dataclass(frozen=True)
class Variable:
    index: int
    name: str
    visibility: Visibility

    def to_dict(self) -> Dict[str, Any]:
        return {"index": self.index, "name": self.name, "visibility": self.visibility.value}


@dataclass(frozen=True)
class Constraint:
    """A single constraint. Only the fields relevant to ``kind`` are set."""
    kind: ConstraintKind
    label: str
    terms: Tuple[Tuple[int, int], ...] = ()
    a: int = ONE
    b: int = ONE
    c: int = ONE
    roots: Tuple[int, ...] = ()

    @property
    def degree(self) -> int:
        if self.kind == ConstraintKind.LINEAR:
            return 1
        if self.kind == ConstraintKind.PRODUCT:
            return 2
        return len(self.roots)

    def variables(self) -> Tuple[int, ...]:
        if self.kind == ConstraintKind.LINEAR:
            return tuple(v for v, _ in self.terms)
        if self.kind == ConstraintKind.PRODUCT:
            return (self.a, self.b, self.c)
        return (self.a,)

    def is_satisfied(self, values: List[int]) -> bool:
        if self.kind == ConstraintKind.LINEAR:
            return sum(k * values[v] for v, k in self.terms) % FIELD_MODULUS == 0
        if self.kind == ConstraintKind.PRODUCT:
            return (values[self.a] * values[self.b] - values[self.c]) % FIELD_MODULUS == 0
        product = 1
        for r in self.roots:
            product = product * (values[self.a] - r) % FIELD_MODULUS
        return product == 0

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"kind": self.kind.value, "label": self.label}
        if self.kind == ConstraintKind.LINEAR:
            d["terms"] = [[v, format(k, "x")] for v, k in self.terms]
        elif self.kind == ConstraintKind.PRODUCT:
            d["a"], d["b"], d["c"] = self.a, self.b, self.c
        else:
            d["var"] = self.a
            d["roots"] = [format(r, "x") for r in self.roots]
        return d


class ConstraintSystem:
    """Variables, constraints and (optionally) a witness assignment."""

    def __init__(self, with_witness: bool = False):
        self.with_witness = with_witness
        self.variables: List[Variable] = [Variable(ONE, "one", Visibility.CONSTANT)]
        self.constraints: List[Constraint] = []
        self._values: List[int] = [1] if with_witness else []
        self._labels: Dict[str, int] = {}

    # -- variables ----------------------------------------------------------

    def _alloc(self, name: str, visibility: Visibility, value: Optional[int]) -> int:
        if visibility == Visibility.PUBLIC and any(
            v.visibility == Visibility.PRIVATE for v in self.variables
        ):
            raise ValueError("public variables must be allocated before private ones")
        index = len(self.variables)
        self.variables.append(Variable(index, name, visibility))
        if self.with_witness:
            if value is None:
                raise ValueError(f"missing witness value for {name}")
            self._values.append(reduce(value))
        return index

    def alloc_public(self, name: str, value: Optional[int] = None) -> int:
        return self._alloc(name, Visibility.PUBLIC, value)

    def alloc_private(self, name: str, value: Optional[int] = None) -> int:
        return self._alloc(name, Visibility.PRIVATE, value)

    def value(self, var: int) -> Optional[int]:
        """Witness value of ``var``, or None in shape mode."""
        if not self.with_witness:
            return None
        return self._values[var]

    def evaluate(self, combination: LinearCombination) -> Optional[int]:
        if not self.with_witness:
            return None
        return sum(k * self._values[v] for v, k in combination.items()) % FIELD_MODULUS

    @property
    def values(self) -> List[int]:
        if not self.with_witness:
            raise ValueError("constraint system carries no witness")
        return list(self._values)

    def public_variables(self) -> List[int]:
        return [v.index for v in self.variables if v.visibility == Visibility.PUBLIC]

    def private_variables(self) -> List[int]:
        return [v.index for v in self.variables if v.visibility == Visibility.PRIVATE]

    def variable(self, name: str) -> int:
        for v in self.variables:
            if v.name == name:
                return v.index
        raise KeyError(name)

    # -- constraints --------------------------------------------------------

    def _unique_label(self, label: str) -> str:
        count = self._labels.get(label, 0)
        self._labels[label] = count + 1
        return label if count == 0 else f"{label}#{count}"

    def _check_vars(self, *vars_: int) -> None:
        for v in vars_:
            if not 0 <= v < len(self.variables):
                raise ValueError(f"unknown variable index {v}")

    def add_linear(self, combination: LinearCombination, label: str) -> Constraint:
        terms = tuple(sorted((v, reduce(k)) for v, k in combination.items() if reduce(k)))
        if not terms:
            raise ValueError(f"linear constraint {label} has no terms")
        self._check_vars(*(v for v, _ in terms))
        return self._append(Constraint(ConstraintKind.LINEAR, self._unique_label(label), terms=terms))

    def add_product(self, a: int, b: int, c: int, label: str) -> Constraint:
        self._check_vars(a, b, c)
        return self._append(Constraint(ConstraintKind.PRODUCT, self._unique_label(label), a=a, b=b, c=c))

    def add_roots(self, var: int, roots: List[int], label: str) -> Constraint:
        self._check_vars(var)
        reduced = tuple(sorted({reduce(r) for r in roots}))
        if not reduced:
            raise ValueError(f"roots constraint {label} has no roots")
        return self._append(Constraint(ConstraintKind.ROOTS, self._unique_label(label), a=var, roots=reduced))

    def _append(self, constraint: Constraint) -> Constraint:
        self.constraints.append(constraint)
        return constraint

    # -- layout -------------------------------------------------------------

    @property
    def max_degree(self) -> int:
        return max((c.degree for c in self.constraints), default=0)

    def layout(self) -> Dict[str, Any]:
        """Witness-free description of the circuit shape."""
        return {
            "variables": [v.to_dict() for v in self.variables],
            "constraints": [c.to_dict() for c in self.constraints],
        }

    def digest(self) -> str:
        return canonical_digest(self.layout())


def simulate(cs: ConstraintSystem) -> List[str]:
    """Evaluate every constraint against the witness.

    Returns the labels of unsatisfied constraints (empty when satisfied).
    """
    values = cs.values
    return [c.label for c in cs.constraints if not c.is_satisfied(values)]
