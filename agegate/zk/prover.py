"""
Age proof generation.

The prover commits to every private wire with a Pedersen commitment
``C = w*G + r*H`` and proves, under a single Fiat-Shamir challenge ``e``:

    linear relation  sum(k_i * w_i) = 0
        C_L = sum(k_i * C_i) + (public part) * G = rho * H
        Schnorr proof of knowledge of rho:  z*H == T + e*C_L

    product relation  a * b = c
        z*G   + z1*H == T1 + e*C_a
        z*C_b + z2*H == T2 + e*C_c

An unsatisfied witness never produces proof bytes: the constraint system is
simulated first and the failing constraint labels are returned instead.

Proving is pure. Each call draws fresh blindings and nonces, so two proofs
of the same statement are never byte-identical.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from agegate.errors import SetupError, WitnessInvalid
from agegate.observability import Layer, get_logger, get_tracer
from agegate.zk.circuit import PublicInputs
from agegate.zk.constraints import simulate
from agegate.zk.field import FIELD_MODULUS, random_scalar
from agegate.zk.group import Point, multi_mul
from agegate.zk.keys import Operand, ProvingKey, VerifyingKey
from agegate.zk.params import SetupParameters
from agegate.zk.proof import AgeProof, LinearResponse, ProductResponse
from agegate.zk.transcript import statement_challenge, statement_messages

logger = get_logger("prover", Layer.PROVER)


@dataclass
class ProverResult:
    """Outcome of a proving attempt.

    On success ``proof`` holds the proof bytes and ``birth_commitment`` /
    ``birth_blinding`` the opening of the committed birth date. On failure
    ``error`` is a WitnessInvalid and ``unsatisfied`` lists the failing
    constraint labels.
    """
    ok: bool
    public_inputs: Optional[PublicInputs] = None
    binding: str = ""
    proof: Optional[bytes] = None
    birth_commitment: Optional[str] = None
    birth_blinding: Optional[int] = None
    error: Optional[WitnessInvalid] = None
    unsatisfied: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"ok": self.ok, "binding": self.binding}
        if self.public_inputs is not None:
            d["public_inputs"] = self.public_inputs.to_dict()
        if self.ok:
            d["proof"] = self.proof.hex()
            d["birth_commitment"] = self.birth_commitment
            d["birth_blinding"] = format(self.birth_blinding, "064x")
        else:
            d["error"] = self.error.to_dict() if self.error else None
            d["unsatisfied"] = list(self.unsatisfied)
        return d


class AgeProver:
    """Produces age proofs for one proving key."""

    def __init__(self, proving_key: ProvingKey):
        self.pk = proving_key

    def prove(self, birth_date: int, public_inputs: PublicInputs, binding: str = "") -> ProverResult:
        with get_tracer().span("prove", Layer.PROVER, binding=binding) as span:
            start = time.monotonic()
            try:
                cs = self.pk.circuit.assign(public_inputs, birth_date)
            except (TypeError, ValueError) as e:
                span.set_status("error", str(e))
                return ProverResult(
                    ok=False,
                    public_inputs=public_inputs,
                    binding=binding,
                    error=WitnessInvalid(str(e)),
                )

            unsatisfied = simulate(cs)
            if unsatisfied:
                span.set_attribute("unsatisfied", len(unsatisfied))
                logger.info(
                    "Witness does not satisfy the circuit",
                    operation="prove",
                    unsatisfied=unsatisfied[:8],
                )
                return ProverResult(
                    ok=False,
                    public_inputs=public_inputs,
                    binding=binding,
                    error=WitnessInvalid(
                        f"{len(unsatisfied)} constraint(s) unsatisfied",
                        unsatisfied=",".join(unsatisfied),
                    ),
                    unsatisfied=unsatisfied,
                )

            if cs.digest() != self.pk.vk.circuit_digest:
                raise SetupError("proving key does not match the circuit layout")

            values = cs.values
            blindings = {var: random_scalar() for var in self.pk.vk.private_vars}
            proof = _assemble(self.pk.vk, self.pk.params, values, blindings, binding)

            birth_var = self.pk.vk.birth_var
            commitment = commit(self.pk.params, values[birth_var], blindings[birth_var])
            span.set_attribute("proof_bytes", len(proof))

        logger.operation(
            "prove",
            (time.monotonic() - start) * 1000,
            proof_bytes=len(proof),
            vk_digest=self.pk.vk.digest,
        )
        return ProverResult(
            ok=True,
            public_inputs=public_inputs,
            binding=binding,
            proof=proof,
            birth_commitment=commitment.hex(),
            birth_blinding=blindings[birth_var],
        )


def prove(
    proving_key: ProvingKey,
    birth_date: int,
    public_inputs: PublicInputs,
    binding: str = "",
) -> ProverResult:
    """Convenience wrapper around :class:`AgeProver`."""
    return AgeProver(proving_key).prove(birth_date, public_inputs, binding)


def commit(params: SetupParameters, value: int, blinding: int) -> Point:
    """Pedersen commitment value*G + blinding*H."""
    return multi_mul([(value, params.G), (blinding, params.H)])


def open_commitment(params: SetupParameters, commitment: str, value: int, blinding: int) -> bool:
    """Check that a hex-encoded commitment opens to (value, blinding)."""
    return commit(params, value, blinding).hex() == commitment


def _assemble(
    vk: VerifyingKey,
    params: SetupParameters,
    values: Sequence[int],
    blindings: Mapping[int, int],
    binding: str,
    linear_openings: Optional[Mapping[int, int]] = None,
) -> bytes:
    """Build proof bytes for a full wire assignment.

    ``linear_openings`` overrides the Schnorr witness rho of selected linear
    relations (by index); honest proving never passes it.
    """
    G, H = params.G, params.H
    n = FIELD_MODULUS

    commitments = {var: commit(params, values[var], blindings[var]) for var in vk.private_vars}

    def blinding_of(op: Operand) -> int:
        return blindings[op.var] if vk.is_private(op.var) else 0

    def value_of(op: Operand) -> int:
        return (values[op.var] + op.offset) % n

    linear_nonces = []
    linear_t = []
    for _ in vk.linear:
        s = random_scalar()
        linear_nonces.append(s)
        linear_t.append(multi_mul([(s, H)]))

    product_nonces = []
    product_t = []
    for rel in vk.products:
        x, s1, s2 = random_scalar(), random_scalar(), random_scalar()
        product_nonces.append((x, s1, s2))
        t1 = multi_mul([(x, G), (s1, H)])
        if vk.is_private(rel.b.var):
            t2 = multi_mul([(x, commitments[rel.b.var]), (x * rel.b.offset, G), (s2, H)])
        else:
            t2 = multi_mul([(x * value_of(rel.b), G), (s2, H)])
        product_t.append((t1, t2))

    ordered_commitments = tuple(commitments[var] for var in vk.private_vars)
    messages = statement_messages(
        params.digest,
        vk.digest,
        [values[v] for v in vk.public_vars],
        binding,
        b"".join(c.encode() for c in ordered_commitments),
        b"".join(t.encode() for t in linear_t),
        b"".join(t1.encode() + t2.encode() for t1, t2 in product_t),
    )
    e, _ = statement_challenge(messages)

    linear = []
    for i, rel in enumerate(vk.linear):
        rho = sum(k * blindings[v] for v, k in rel.terms if vk.is_private(v)) % n
        if linear_openings and i in linear_openings:
            rho = linear_openings[i] % n
        linear.append(LinearResponse(t=linear_t[i], z=(linear_nonces[i] + e * rho) % n))

    products = []
    for (x, s1, s2), (t1, t2), rel in zip(product_nonces, product_t, vk.products):
        a = value_of(rel.a)
        products.append(ProductResponse(
            t1=t1,
            t2=t2,
            z=(x + e * a) % n,
            z1=(s1 + e * blinding_of(rel.a)) % n,
            z2=(s2 + e * (blinding_of(rel.c) - a * blinding_of(rel.b))) % n,
        ))

    return AgeProof(ordered_commitments, tuple(linear), tuple(products)).encode()
