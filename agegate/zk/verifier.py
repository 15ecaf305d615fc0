"""
Age proof verification.

Verification is classified, not just accepted or refused:

    ACCEPTED          every relation holds for this statement and binding
    MALFORMED         the bytes are not a valid encoding for this key
    REJECTED          well-formed, but an equation fails, or the proof was
                      made for other public inputs, binding or parameters
    OUT_OF_RESOURCES  the gas budget does not cover the verification

The gas cost of a well-formed proof is a function of the verifying key, so
it is compared with the limit before any curve work. A meter charges each
operation as it runs as well.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from agegate.errors import OutOfResources, ProofMalformed
from agegate.observability import Layer, get_logger, get_tracer
from agegate.zk.circuit import PublicInputs
from agegate.zk.constraints import ONE
from agegate.zk.field import FIELD_MODULUS
from agegate.zk.group import Point, multi_mul
from agegate.zk.keys import Operand, VerifyingKey
from agegate.zk.metering import DEFAULT_SCHEDULE, GasMeter, GasSchedule, MeteredOp
from agegate.zk.params import SetupParameters
from agegate.zk.proof import AgeProof
from agegate.zk.transcript import hash_blocks, statement_challenge, statement_messages

logger = get_logger("verifier", Layer.VERIFIER)

DEFAULT_GAS_LIMIT = 2_000_000


class Outcome(Enum):
    ACCEPTED = "accepted"
    MALFORMED = "malformed"
    REJECTED = "rejected"
    OUT_OF_RESOURCES = "out_of_resources"


@dataclass
class VerificationResult:
    outcome: Outcome
    reason: str = ""
    gas_used: int = 0
    gas_limit: int = 0
    birth_commitment: Optional[str] = None
    failed_relations: List[str] = field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return self.outcome == Outcome.ACCEPTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "reason": self.reason,
            "gas_used": self.gas_used,
            "gas_limit": self.gas_limit,
            "birth_commitment": self.birth_commitment,
            "failed_relations": list(self.failed_relations),
        }


def binding_cost(binding: str, schedule: GasSchedule = DEFAULT_SCHEDULE) -> int:
    """Gas for hashing the binding context into the transcript."""
    return schedule.hash_block * _binding_blocks(binding)


def _binding_blocks(binding: str) -> int:
    return hash_blocks(len(b"agegate/binding/v1:") + len(binding.encode("utf-8")))


class _Equation:
    """sum(k_i * P_i) accumulated as G / H coefficients plus explicit terms."""

    def __init__(self, G: Point, H: Point):
        self.G = G
        self.H = H
        self.g = 0
        self.h = 0
        self.terms: List[Tuple[int, Point]] = []

    def pairs(self) -> List[Tuple[int, Point]]:
        return [(self.g, self.G), (self.h, self.H)] + self.terms


class AgeVerifier:
    """Verifies age proofs for one verifying key under fixed parameters."""

    def __init__(
        self,
        vk: VerifyingKey,
        params: SetupParameters,
        gas_limit: int = DEFAULT_GAS_LIMIT,
        schedule: GasSchedule = DEFAULT_SCHEDULE,
        max_proof_bytes: Optional[int] = None,
    ):
        self.vk = vk
        self.params = params
        self.gas_limit = gas_limit
        self.schedule = schedule
        self.max_proof_bytes = max_proof_bytes

    def verify(self, proof: bytes, public_inputs: PublicInputs, binding: str = "") -> bool:
        return self.check(proof, public_inputs, binding).accepted

    def check(self, proof: bytes, public_inputs: PublicInputs, binding: str = "") -> VerificationResult:
        with get_tracer().span("verify", Layer.VERIFIER, binding=binding) as span:
            start = time.monotonic()
            result = self._check(proof, public_inputs, binding)
            span.set_attribute("outcome", result.outcome.value)
            span.set_attribute("gas_used", result.gas_used)

        logger.operation(
            "verify",
            (time.monotonic() - start) * 1000,
            success=result.accepted,
            outcome=result.outcome.value,
            reason=result.reason,
            gas_used=result.gas_used,
        )
        return result

    def _result(self, outcome: Outcome, reason: str, meter: Optional[GasMeter] = None, **kwargs: Any) -> VerificationResult:
        return VerificationResult(
            outcome=outcome,
            reason=reason,
            gas_used=meter.used if meter else 0,
            gas_limit=self.gas_limit,
            **kwargs,
        )

    def _check(self, proof: bytes, public_inputs: PublicInputs, binding: str) -> VerificationResult:
        vk = self.vk

        if vk.params_digest != self.params.digest:
            return self._result(Outcome.REJECTED, "verifying key was derived from other parameters")
        if not isinstance(proof, (bytes, bytearray)):
            return self._result(Outcome.MALFORMED, "proof must be bytes")
        if self.max_proof_bytes is not None and len(proof) > self.max_proof_bytes:
            return self._result(Outcome.MALFORMED, f"proof exceeds {self.max_proof_bytes} bytes")
        if len(proof) != vk.proof_length:
            return self._result(Outcome.MALFORMED, f"proof length {len(proof)} != expected {vk.proof_length}")

        estimated = vk.verification_cost + binding_cost(binding, self.schedule)
        if estimated > self.gas_limit:
            return self._result(
                Outcome.OUT_OF_RESOURCES,
                f"verification needs {estimated} gas, limit is {self.gas_limit}",
            )

        meter = GasMeter(self.gas_limit, self.schedule)
        try:
            decoded = AgeProof.decode(
                proof,
                len(vk.private_vars),
                len(vk.linear),
                len(vk.products),
                on_point=lambda: meter.charge(MeteredOp.POINT_DECODE),
                on_scalar=lambda: meter.charge(MeteredOp.SCALAR_DECODE),
            )
            failed = self._verify_relations(decoded, public_inputs, binding, meter)
        except ProofMalformed as e:
            return self._result(Outcome.MALFORMED, e.message, meter)
        except OutOfResources as e:
            return self._result(Outcome.OUT_OF_RESOURCES, e.message, meter)

        birth_commitment = decoded.commitments[vk.commitment_index(vk.birth_var)].hex()
        if failed:
            return self._result(
                Outcome.REJECTED,
                f"{len(failed)} relation(s) failed",
                meter,
                birth_commitment=birth_commitment,
                failed_relations=failed,
            )
        return self._result(Outcome.ACCEPTED, "", meter, birth_commitment=birth_commitment)

    def _verify_relations(
        self,
        proof: AgeProof,
        public_inputs: PublicInputs,
        binding: str,
        meter: GasMeter,
    ) -> List[str]:
        vk = self.vk
        n = FIELD_MODULUS
        G, H = self.params.G, self.params.H

        public = dict(zip(vk.public_vars, public_inputs.values()))
        public[ONE] = 1
        commitments = {var: proof.commitments[i] for i, var in enumerate(vk.private_vars)}

        meter.charge(MeteredOp.HASH_BLOCK, _binding_blocks(binding))
        messages = statement_messages(
            self.params.digest,
            vk.digest,
            [public[v] for v in vk.public_vars],
            binding,
            proof.commitment_bytes(),
            proof.linear_message_bytes(),
            proof.product_message_bytes(),
        )
        e, blocks = statement_challenge(messages)
        meter.charge(MeteredOp.HASH_BLOCK, blocks)

        def add_operand(eq: _Equation, op: Operand, scale: int) -> None:
            # scale * (C_var + offset*G), or scale * (x + offset) * G for public wires
            if op.var in commitments:
                eq.terms.append((scale % n, commitments[op.var]))
                eq.g += scale * op.offset
            else:
                eq.g += scale * (public[op.var] + op.offset)

        def holds(eq: _Equation) -> bool:
            pairs = eq.pairs()
            meter.charge(MeteredOp.SCALAR_MUL, len(pairs))
            meter.charge(MeteredOp.POINT_ADD, len(pairs))
            return multi_mul(pairs).is_infinity

        failed: List[str] = []
        for rel, resp in zip(vk.linear, proof.linear):
            # z*H - T - e*C_L == O
            eq = _Equation(G, H)
            eq.h = resp.z
            eq.terms.append((n - 1, resp.t))
            for var, k in rel.terms:
                add_operand(eq, Operand(var), -e * k)
            if not holds(eq):
                failed.append(rel.label)

        for rel, resp in zip(vk.products, proof.products):
            # z*G + z1*H - T1 - e*C_a == O
            eq1 = _Equation(G, H)
            eq1.g = resp.z
            eq1.h = resp.z1
            eq1.terms.append((n - 1, resp.t1))
            add_operand(eq1, rel.a, -e)

            # z*C_b + z2*H - T2 - e*C_c == O
            eq2 = _Equation(G, H)
            eq2.h = resp.z2
            eq2.terms.append((n - 1, resp.t2))
            add_operand(eq2, rel.b, resp.z)
            add_operand(eq2, rel.c, -e)

            if not (holds(eq1) and holds(eq2)):
                failed.append(rel.label)

        return failed


def verify(
    vk: VerifyingKey,
    params: SetupParameters,
    proof: bytes,
    public_inputs: PublicInputs,
    binding: str = "",
    gas_limit: int = DEFAULT_GAS_LIMIT,
) -> bool:
    """Convenience wrapper around :class:`AgeVerifier`."""
    return AgeVerifier(vk, params, gas_limit=gas_limit).verify(proof, public_inputs, binding)
