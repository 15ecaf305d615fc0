"""
Setup parameters for the age proof system.

The parameters fix the commitment group and its two generators. ``G`` and
``H`` are derived by hash-to-curve from a public seed, so the discrete log
of ``H`` with respect to ``G`` is unknown to everyone. That single fact is
what makes the Pedersen commitments binding; anybody who knows
``log_G(H)`` can open a commitment to any value and forge proofs.

Parameters are therefore hash-pinned. :func:`load_parameters`:

    1. validates the document against ``schemas/setup-parameters.schema.json``
    2. compares its canonical digest with the pinned digest (constant time)
    3. re-derives both generators from the seed
    4. optionally verifies an Ed25519 ceremony signature

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from agegate.core import canonical_digest, load_json, write_canonical_json
from agegate.errors import ParameterIntegrityError
from agegate.hardening import CryptoUtils, Validators
from agegate.observability import Layer, get_logger, timed_operation
from agegate.schema import PARAMETERS_SCHEMA, validate_against_schema
from agegate.signing import SIGNATURE_FIELD, verify_document
from agegate.zk.group import CURVE_ID, Point, hash_to_curve

PARAMETERS_TYPE = "AgegateSetupParameters"
PARAMETERS_VERSION = 1

DEFAULT_SEED = hashlib.sha256(b"agegate setup parameters v1: age-gated subscriptions").hexdigest()
DEFAULT_MAX_DEGREE = 2
DEFAULT_MAX_CONSTRAINTS = 4096

logger = get_logger("params", Layer.SETUP)


def derive_generators(seed: bytes) -> Tuple[Point, Point]:
    """Nothing-up-my-sleeve generators G and H for ``seed``."""
    return hash_to_curve(seed, b"G"), hash_to_curve(seed, b"H")


@dataclass(frozen=True)
class SetupParameters:
    """Public parameters shared by setup, prover and verifier."""
    seed: str
    g: str
    h: str
    max_degree: int = DEFAULT_MAX_DEGREE
    max_constraints: int = DEFAULT_MAX_CONSTRAINTS
    curve: str = CURVE_ID
    version: int = PARAMETERS_VERSION
    signature: Optional[Dict[str, str]] = field(default=None, compare=False)

    @cached_property
    def G(self) -> Point:
        return Point.from_hex(self.g)

    @cached_property
    def H(self) -> Point:
        return Point.from_hex(self.h)

    def to_dict(self, include_signature: bool = True) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "type": PARAMETERS_TYPE,
            "version": self.version,
            "curve": self.curve,
            "seed": self.seed,
            "generators": {"g": self.g, "h": self.h},
            "max_degree": self.max_degree,
            "max_constraints": self.max_constraints,
        }
        if include_signature and self.signature is not None:
            d[SIGNATURE_FIELD] = dict(self.signature)
        return d

    @property
    def digest(self) -> str:
        """Canonical digest; the signature is not part of the pinned content."""
        return canonical_digest(self.to_dict(include_signature=False))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SetupParameters":
        try:
            generators = data["generators"]
            return cls(
                seed=data["seed"],
                g=generators["g"],
                h=generators["h"],
                max_degree=int(data["max_degree"]),
                max_constraints=int(data["max_constraints"]),
                curve=data.get("curve", CURVE_ID),
                version=int(data.get("version", PARAMETERS_VERSION)),
                signature=data.get(SIGNATURE_FIELD),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ParameterIntegrityError(f"parameters document is incomplete or malformed: {e!r}") from e

    def generators_valid(self) -> bool:
        """True when G and H are exactly the hash-to-curve outputs of the seed."""
        try:
            seed = bytes.fromhex(self.seed)
        except ValueError:
            return False
        g, h = derive_generators(seed)
        return CryptoUtils.secure_compare_str(g.hex(), self.g) and CryptoUtils.secure_compare_str(h.hex(), self.h)


def generate_parameters(
    seed: Optional[Union[str, bytes]] = None,
    max_degree: int = DEFAULT_MAX_DEGREE,
    max_constraints: int = DEFAULT_MAX_CONSTRAINTS,
) -> SetupParameters:
    """Derive parameters from a public seed (hex string or raw bytes)."""
    if seed is None:
        seed_bytes = bytes.fromhex(DEFAULT_SEED)
    elif isinstance(seed, bytes):
        seed_bytes = seed
    else:
        seed_bytes = bytes.fromhex(seed)

    g, h = derive_generators(seed_bytes)
    return SetupParameters(
        seed=seed_bytes.hex(),
        g=g.hex(),
        h=h.hex(),
        max_degree=max_degree,
        max_constraints=max_constraints,
    )


def check_parameters(params: SetupParameters, trusted_signer: str = "") -> None:
    """Raise ParameterIntegrityError unless ``params`` are internally sound."""
    if params.curve != CURVE_ID:
        raise ParameterIntegrityError(f"unsupported curve {params.curve}", curve=params.curve)
    if not params.generators_valid():
        raise ParameterIntegrityError(
            "generators do not match hash-to-curve derivation from the seed",
            digest=params.digest,
        )
    if trusted_signer and not verify_document(params.to_dict(), trusted_signer):
        raise ParameterIntegrityError("ceremony signature missing or invalid", signer=trusted_signer)


def load_parameters(
    path: Union[str, Path],
    expected_digest: str,
    trusted_signer: str = "",
) -> SetupParameters:
    """Load hash-pinned parameters, rejecting anything that does not check out."""
    pinned = Validators.validate_digest(expected_digest or "", "expected_digest")
    if not pinned.is_valid:
        raise ParameterIntegrityError("pinned digest must be 64 hex characters", expected=expected_digest)
    path = Path(path)

    try:
        data = load_json(path)
    except (OSError, ValueError) as e:
        raise ParameterIntegrityError(f"cannot read parameters: {e}", path=path) from e
    if not isinstance(data, dict):
        raise ParameterIntegrityError("parameters document must be a JSON object", path=path)

    errors = validate_against_schema(data, PARAMETERS_SCHEMA)
    if errors:
        raise ParameterIntegrityError(f"parameters failed schema validation: {errors[0]}", path=path)

    params = SetupParameters.from_dict(data)
    actual = params.digest
    if not CryptoUtils.secure_compare_str(actual, pinned.sanitized_value):
        logger.error(
            "Setup parameter digest mismatch",
            error_code=ParameterIntegrityError.code.value,
            expected=expected_digest,
            actual=actual,
        )
        raise ParameterIntegrityError(
            "parameters digest does not match the pinned digest",
            expected=expected_digest,
            actual=actual,
        )

    check_parameters(params, trusted_signer)
    logger.info("Loaded setup parameters", operation="load_parameters", digest=actual, path=str(path))
    return params


@timed_operation(logger, "save_parameters")
def save_parameters(params: SetupParameters, path: Union[str, Path]) -> str:
    """Write parameters as canonical JSON. Returns the pinned digest."""
    write_canonical_json(Path(path), params.to_dict())
    return params.digest
