"""
agegate zero-knowledge age proofs.

Prove ``current_date - birth_date >= minimum_age`` without revealing the
birth date. Commit-and-prove Sigma protocols over secp256k1 with Pedersen
commitments, made non-interactive with a Fiat-Shamir transcript.

Usage:
    from agegate.zk import AgeCircuit, PublicInputs, generate_parameters, setup
    from agegate.zk import AgeProver, AgeVerifier

    params = generate_parameters()
    pk, vk = setup(params, AgeCircuit())
    result = AgeProver(pk).prove(birth_date, PublicInputs(6570, today), binding="alice")
    AgeVerifier(vk, params).verify(result.proof, result.public_inputs, "alice")

Copyright (c) 2026 Momentum. All rights reserved.
"""

from agegate.zk.circuit import AgeCircuit, PublicInputs
from agegate.zk.constraints import ConstraintKind, ConstraintSystem, simulate
from agegate.zk.keys import ProvingKey, VerifyingKey, setup
from agegate.zk.params import (
    SetupParameters,
    generate_parameters,
    load_parameters,
    save_parameters,
)
from agegate.zk.prover import AgeProver, ProverResult, prove
from agegate.zk.verifier import AgeVerifier, Outcome, VerificationResult, verify

__all__ = [
    "AgeCircuit",
    "PublicInputs",
    "ConstraintKind",
    "ConstraintSystem",
    "simulate",
    "ProvingKey",
    "VerifyingKey",
    "setup",
    "SetupParameters",
    "generate_parameters",
    "load_parameters",
    "save_parameters",
    "AgeProver",
    "ProverResult",
    "prove",
    "AgeVerifier",
    "Outcome",
    "VerificationResult",
    "verify",
]
