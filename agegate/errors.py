"""
agegate Error Taxonomy

Every failure a caller can observe is a typed exception carrying a stable
machine-readable code. Ledger entry points raise these after rolling back
their transaction, so an error always means "nothing changed".

    Proof errors          ProofMalformed, ProofRejected, StaleTimestamp,
                          OutOfResources, WitnessInvalid (prover-local)
    Subscription errors   AlreadySubscribed, NotSubscribed, AlreadyCancelled,
                          NotAuthorized, InsufficientBalance
    Plan errors           PlanNotFound, InvalidPlan
    Input errors          InvalidInput (malformed account, amount or handle,
                          or a no-op ownership transfer)
    Setup errors          SetupError, DegreeBoundExceeded,
                          ParameterIntegrityError

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict


class ErrorCode(Enum):
    """Stable error codes surfaced to callers."""
    PROOF_MALFORMED = "proof_malformed"
    PROOF_REJECTED = "proof_rejected"
    STALE_TIMESTAMP = "stale_timestamp"
    ALREADY_SUBSCRIBED = "already_subscribed"
    NOT_SUBSCRIBED = "not_subscribed"
    NOT_AUTHORIZED = "not_authorized"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    ALREADY_CANCELLED = "already_cancelled"
    OUT_OF_RESOURCES = "out_of_resources"
    WITNESS_INVALID = "witness_invalid"
    PLAN_NOT_FOUND = "plan_not_found"
    INVALID_PLAN = "invalid_plan"
    SETUP_FAILED = "setup_failed"
    DEGREE_BOUND_EXCEEDED = "degree_bound_exceeded"
    PARAMETER_INTEGRITY = "parameter_integrity"
    INVALID_INPUT = "invalid_input"


class AgegateError(Exception):
    """Base class for all agegate errors."""

    code: ErrorCode = ErrorCode.SETUP_FAILED

    def __init__(self, message: str = "", **details: Any):
        self.message = message or self.__class__.__doc__ or self.code.value
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code.value,
            "message": self.message,
            "details": {k: str(v) for k, v in self.details.items()},
        }


class ProofMalformed(AgegateError):
    """Proof bytes are not a well-formed encoding."""
    code = ErrorCode.PROOF_MALFORMED


class ProofRejected(AgegateError):
    """Proof is well-formed but does not verify."""
    code = ErrorCode.PROOF_REJECTED


class StaleTimestamp(AgegateError):
    """Proof date is outside the freshness window around block time."""
    code = ErrorCode.STALE_TIMESTAMP


class AlreadySubscribed(AgegateError):
    """An active subscription already exists for this subscriber and plan."""
    code = ErrorCode.ALREADY_SUBSCRIBED


class NotSubscribed(AgegateError):
    """No active subscription exists for this subscriber and plan."""
    code = ErrorCode.NOT_SUBSCRIBED


class AlreadyCancelled(NotSubscribed):
    """The subscription has already been cancelled."""
    code = ErrorCode.ALREADY_CANCELLED


class NotAuthorized(AgegateError):
    """Caller is not allowed to perform this action."""
    code = ErrorCode.NOT_AUTHORIZED


class InsufficientBalance(AgegateError):
    """Escrow balance cannot cover the requested amount."""
    code = ErrorCode.INSUFFICIENT_BALANCE


class OutOfResources(AgegateError):
    """Verification exceeded its computational budget."""
    code = ErrorCode.OUT_OF_RESOURCES


class WitnessInvalid(AgegateError):
    """Private witness does not satisfy the circuit."""
    code = ErrorCode.WITNESS_INVALID


class PlanNotFound(AgegateError):
    """No plan with this identifier exists."""
    code = ErrorCode.PLAN_NOT_FOUND


class InvalidPlan(AgegateError):
    """Plan definition is invalid or already exists."""
    code = ErrorCode.INVALID_PLAN


class SetupError(AgegateError):
    """Key derivation from setup parameters failed."""
    code = ErrorCode.SETUP_FAILED


class DegreeBoundExceeded(SetupError):
    """Circuit constraint degree exceeds what the parameters support."""
    code = ErrorCode.DEGREE_BOUND_EXCEEDED


class ParameterIntegrityError(SetupError):
    """Setup parameters failed digest, derivation or signature checks."""
    code = ErrorCode.PARAMETER_INTEGRITY


class InvalidInput(AgegateError):
    """A call argument failed validation."""
    code = ErrorCode.INVALID_INPUT
