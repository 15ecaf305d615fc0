"""
Setup: deterministic key derivation from parameters and circuit.

``setup(params, circuit)`` compiles the circuit's constraints into the
relations the proof system proves, one of:

    LinearRelation    sum(k_i * w_i) = 0          (Schnorr proof on H)
    ProductRelation   (a + oa)(b + ob) = (c + oc)  (product Sigma proof)

LINEAR constraints map to linear relations, PRODUCT constraints to product
relations, and a ROOTS constraint of degree 1 or 2 to a linear or product
relation over offset operands. Anything above degree 2, or above the
parameters' ``max_degree``, is rejected with DegreeBoundExceeded.

The verifying key records everything the verifier needs: parameter and
circuit digests, variable layout, relations, the exact proof length and the
verification gas cost.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from typing import Any, Dict, List, Tuple

from agegate.core import canonical_digest
from agegate.errors import DegreeBoundExceeded, SetupError
from agegate.observability import Layer, get_logger, get_tracer
from agegate.zk.circuit import BIRTH_DATE, AgeCircuit
from agegate.zk.constraints import ONE, Constraint, ConstraintKind, ConstraintSystem
from agegate.zk.field import reduce
from agegate.zk.metering import DEFAULT_SCHEDULE, GasSchedule, MeteredOp, cost_of
from agegate.zk.params import SetupParameters
from agegate.zk.proof import proof_length
from agegate.zk.transcript import estimated_blocks

# Highest constraint degree the Sigma protocols can prove.
SUPPORTED_DEGREE = 2

logger = get_logger("setup", Layer.SETUP)


@dataclass(frozen=True)
class Operand:
    """A wire plus a public constant offset: value = w[var] + offset."""
    var: int
    offset: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"var": self.var, "offset": format(self.offset, "x")}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Operand":
        return cls(var=int(data["var"]), offset=int(data["offset"], 16))


@dataclass(frozen=True)
class LinearRelation:
    label: str
    terms: Tuple[Tuple[int, int], ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "terms": [[v, format(k, "x")] for v, k in self.terms]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LinearRelation":
        return cls(label=data["label"], terms=tuple((int(v), int(k, 16)) for v, k in data["terms"]))


@dataclass(frozen=True)
class ProductRelation:
    label: str
    a: Operand
    b: Operand
    c: Operand

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "a": self.a.to_dict(), "b": self.b.to_dict(), "c": self.c.to_dict()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductRelation":
        return cls(
            label=data["label"],
            a=Operand.from_dict(data["a"]),
            b=Operand.from_dict(data["b"]),
            c=Operand.from_dict(data["c"]),
        )


@dataclass(frozen=True)
class VerifyingKey:
    """Public verification data for one (parameters, circuit) pair."""
    params_digest: str
    circuit_digest: str
    range_bits: int
    public_vars: Tuple[int, ...]
    private_vars: Tuple[int, ...]
    birth_var: int
    linear: Tuple[LinearRelation, ...]
    products: Tuple[ProductRelation, ...]
    proof_length: int
    verification_cost: int

    def is_private(self, var: int) -> bool:
        return var in self._private_positions

    def commitment_index(self, var: int) -> int:
        return self._private_positions[var]

    @cached_property
    def _private_positions(self) -> Dict[int, int]:
        return {v: i for i, v in enumerate(self.private_vars)}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "params_digest": self.params_digest,
            "circuit_digest": self.circuit_digest,
            "range_bits": self.range_bits,
            "public_vars": list(self.public_vars),
            "private_vars": list(self.private_vars),
            "birth_var": self.birth_var,
            "linear": [r.to_dict() for r in self.linear],
            "products": [r.to_dict() for r in self.products],
            "proof_length": self.proof_length,
            "verification_cost": self.verification_cost,
        }

    @cached_property
    def digest(self) -> str:
        return canonical_digest(self.to_dict())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VerifyingKey":
        return cls(
            params_digest=data["params_digest"],
            circuit_digest=data["circuit_digest"],
            range_bits=int(data["range_bits"]),
            public_vars=tuple(int(v) for v in data["public_vars"]),
            private_vars=tuple(int(v) for v in data["private_vars"]),
            birth_var=int(data["birth_var"]),
            linear=tuple(LinearRelation.from_dict(r) for r in data["linear"]),
            products=tuple(ProductRelation.from_dict(r) for r in data["products"]),
            proof_length=int(data["proof_length"]),
            verification_cost=int(data["verification_cost"]),
        )


@dataclass(frozen=True)
class ProvingKey:
    """Everything the prover needs: the circuit, the parameters and the VK."""
    circuit: AgeCircuit
    params: SetupParameters
    vk: VerifyingKey

    @property
    def params_digest(self) -> str:
        return self.params.digest

    def to_dict(self) -> Dict[str, Any]:
        return {
            "circuit": self.circuit.to_dict(),
            "params_digest": self.params.digest,
            "vk_digest": self.vk.digest,
        }


def _compile(constraint: Constraint) -> Tuple[str, Any]:
    if constraint.kind == ConstraintKind.LINEAR:
        return "linear", LinearRelation(constraint.label, constraint.terms)
    if constraint.kind == ConstraintKind.PRODUCT:
        return "product", ProductRelation(
            constraint.label, Operand(constraint.a), Operand(constraint.b), Operand(constraint.c)
        )
    roots = constraint.roots
    if len(roots) == 1:
        terms = tuple(sorted({constraint.a: 1, ONE: reduce(-roots[0])}.items()))
        return "linear", LinearRelation(constraint.label, terms)
    # (w - r0)(w - r1) = 1 - 1
    return "product", ProductRelation(
        constraint.label,
        Operand(constraint.a, reduce(-roots[0])),
        Operand(constraint.a, reduce(-roots[1])),
        Operand(ONE, reduce(-1)),
    )


def verification_operations(
    private_vars: Tuple[int, ...],
    linear: Tuple[LinearRelation, ...],
    products: Tuple[ProductRelation, ...],
    num_public: int,
) -> Dict[MeteredOp, int]:
    """Exact operation counts for verifying a well-formed proof."""
    private = set(private_vars)
    pairs = 0
    for rel in linear:
        # G, H, T and one term per committed wire
        pairs += 3 + sum(1 for v, _ in rel.terms if v in private)
    for rel in products:
        pairs += 3 + (1 if rel.a.var in private else 0)
        pairs += 3 + (1 if rel.b.var in private else 0) + (1 if rel.c.var in private else 0)

    return {
        MeteredOp.POINT_DECODE: len(private_vars) + len(linear) + 2 * len(products),
        MeteredOp.SCALAR_DECODE: len(linear) + 3 * len(products),
        MeteredOp.SCALAR_MUL: pairs,
        MeteredOp.POINT_ADD: pairs,
        MeteredOp.HASH_BLOCK: estimated_blocks(num_public, len(private_vars), len(linear), len(products)),
    }


def check_degree(cs: ConstraintSystem, params: SetupParameters) -> None:
    bound = min(params.max_degree, SUPPORTED_DEGREE)
    for constraint in cs.constraints:
        if constraint.degree > bound:
            raise DegreeBoundExceeded(
                f"constraint {constraint.label} has degree {constraint.degree}, bound is {bound}",
                label=constraint.label,
                degree=constraint.degree,
                max_degree=params.max_degree,
            )


def derive_keys(
    params: SetupParameters,
    cs: ConstraintSystem,
    circuit: AgeCircuit,
    schedule: GasSchedule = DEFAULT_SCHEDULE,
) -> Tuple[ProvingKey, VerifyingKey]:
    """Compile a shape-mode constraint system into a key pair."""
    if len(cs.constraints) > params.max_constraints:
        raise SetupError(
            f"circuit has {len(cs.constraints)} constraints, parameters allow {params.max_constraints}",
            constraints=len(cs.constraints),
            max_constraints=params.max_constraints,
        )
    check_degree(cs, params)

    linear: List[LinearRelation] = []
    products: List[ProductRelation] = []
    for constraint in cs.constraints:
        kind, relation = _compile(constraint)
        (linear if kind == "linear" else products).append(relation)

    public_vars = tuple(cs.public_variables())
    private_vars = tuple(cs.private_variables())
    ops = verification_operations(private_vars, tuple(linear), tuple(products), len(public_vars))

    vk = VerifyingKey(
        params_digest=params.digest,
        circuit_digest=cs.digest(),
        range_bits=circuit.range_bits,
        public_vars=public_vars,
        private_vars=private_vars,
        birth_var=cs.variable(BIRTH_DATE),
        linear=tuple(linear),
        products=tuple(products),
        proof_length=proof_length(len(private_vars), len(linear), len(products)),
        verification_cost=cost_of(ops, schedule),
    )
    return ProvingKey(circuit=circuit, params=params, vk=vk), vk


def setup(params: SetupParameters, circuit: AgeCircuit) -> Tuple[ProvingKey, VerifyingKey]:
    """Derive (ProvingKey, VerifyingKey) for ``circuit`` under ``params``.

    Deterministic: the same inputs always yield byte-identical keys.
    """
    with get_tracer().span("setup", Layer.SETUP, range_bits=circuit.range_bits) as span:
        pk, vk = derive_keys(params, circuit.shape(), circuit)
        span.set_attribute("vk_digest", vk.digest)

    logger.info(
        "Derived proving and verifying keys",
        operation="setup",
        params_digest=vk.params_digest,
        circuit_digest=vk.circuit_digest,
        vk_digest=vk.digest,
        constraints=len(vk.linear) + len(vk.products),
        verification_cost=vk.verification_cost,
    )
    return pk, vk
