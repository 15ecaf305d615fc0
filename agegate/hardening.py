"""
agegate Validation and Hardening Module

Input validation, constant-time comparison and state machine invariant
enforcement shared by the proof system and the subscription ledger.

Security Model:
    - All inputs are untrusted until validated
    - Digest pins are compared in constant time
    - All state mutations are checked against ledger invariants before commit

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import hmac
import re
import secrets
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set


# =============================================================================
# VALIDATION ERROR TYPES
# =============================================================================

class ValidationError(Exception):
    """Base exception for validation failures."""

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"{field}: {message}")


class ValidationErrors(Exception):
    """Collection of validation errors."""

    def __init__(self, errors: List[ValidationError]):
        self.errors = errors
        messages = "; ".join(f"{e.field}: {e.message}" for e in errors)
        super().__init__(f"Validation failed: {messages}")


class InvariantViolation(Exception):
    """Ledger invariant violated."""
    pass


# =============================================================================
# VALIDATION RESULT
# =============================================================================

@dataclass
class ValidationResult:
    """Result of a validation operation."""
    is_valid: bool
    errors: List[ValidationError] = field(default_factory=list)
    sanitized_value: Any = None

    def raise_if_invalid(self) -> None:
        """Raise ValidationErrors if validation failed."""
        if not self.is_valid:
            raise ValidationErrors(self.errors)

    @classmethod
    def success(cls, sanitized_value: Any = None) -> 'ValidationResult':
        return cls(is_valid=True, sanitized_value=sanitized_value)

    @classmethod
    def failure(cls, errors: List[ValidationError]) -> 'ValidationResult':
        return cls(is_valid=False, errors=errors)


# =============================================================================
# INPUT VALIDATORS
# =============================================================================

class Validators:
    """Collection of input validators."""

    ACCOUNT_ID_PATTERN = re.compile(r'^[a-zA-Z0-9:._-]{1,128}$')
    HEX64_PATTERN = re.compile(r'^[a-f0-9]{64}$')
    HANDLE_PATTERN = re.compile(r'^[!-~]{1,256}$')

    MAX_STRING_LENGTH = 4096
    MAX_AMOUNT = 2 ** 128 - 1

    @classmethod
    def validate_string(
        cls,
        value: Any,
        field_name: str,
        min_length: int = 1,
        max_length: Optional[int] = None,
        pattern: Optional[re.Pattern] = None,
    ) -> ValidationResult:
        """Validate a string value."""
        max_length = max_length or cls.MAX_STRING_LENGTH
        errors = []

        if not isinstance(value, str):
            errors.append(ValidationError(field_name, f"Expected string, got {type(value).__name__}", value))
            return ValidationResult.failure(errors)

        sanitized = value.strip().replace('\x00', '')

        if len(sanitized) < min_length:
            errors.append(ValidationError(field_name, f"Too short (min {min_length} chars)", value))

        if len(sanitized) > max_length:
            errors.append(ValidationError(field_name, f"Too long (max {max_length} chars)", value))

        if pattern and not pattern.match(sanitized):
            errors.append(ValidationError(field_name, "Does not match required pattern", value))

        if errors:
            return ValidationResult.failure(errors)
        return ValidationResult.success(sanitized)

    @classmethod
    def validate_account_id(cls, value: Any, field_name: str = "account_id") -> ValidationResult:
        """Validate a subscriber, delegate or beneficiary account identifier."""
        return cls.validate_string(
            value, field_name,
            min_length=1, max_length=128,
            pattern=cls.ACCOUNT_ID_PATTERN,
        )

    @classmethod
    def validate_handle(cls, value: Any, field_name: str = "notification_handle") -> ValidationResult:
        """Validate an opaque off-ledger notification handle (printable ASCII, no spaces)."""
        return cls.validate_string(
            value, field_name,
            min_length=1, max_length=256,
            pattern=cls.HANDLE_PATTERN,
        )

    @classmethod
    def validate_digest(cls, value: Any, field_name: str = "digest") -> ValidationResult:
        """Validate a SHA256 digest (64 hex chars)."""
        result = cls.validate_string(value, field_name, min_length=64, max_length=64)
        if not result.is_valid:
            return result

        if not cls.HEX64_PATTERN.match(result.sanitized_value.lower()):
            return ValidationResult.failure([
                ValidationError(field_name, "Must be 64 lowercase hex characters", value)
            ])

        return ValidationResult.success(result.sanitized_value.lower())

    @classmethod
    def validate_amount(
        cls,
        value: Any,
        field_name: str = "amount",
        min_value: int = 0,
        max_value: Optional[int] = None,
    ) -> ValidationResult:
        """Validate an integer amount in smallest currency units."""
        max_value = cls.MAX_AMOUNT if max_value is None else max_value

        # bool is a subclass of int
        if isinstance(value, bool) or not isinstance(value, int):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected integer, got {type(value).__name__}", value)
            ])

        errors = []
        if value < min_value:
            errors.append(ValidationError(field_name, f"Below minimum ({min_value})", value))
        if value > max_value:
            errors.append(ValidationError(field_name, f"Exceeds maximum ({max_value})", value))

        if errors:
            return ValidationResult.failure(errors)
        return ValidationResult.success(value)


# =============================================================================
# CRYPTOGRAPHIC UTILITIES
# =============================================================================

class CryptoUtils:
    """Cryptographic utility functions with security hardening."""

    @staticmethod
    def secure_compare_str(a: str, b: str) -> bool:
        """Constant-time string comparison."""
        return hmac.compare_digest(a.encode(), b.encode())

    @staticmethod
    def secure_random_below(bound: int) -> int:
        """Uniform random integer in [1, bound)."""
        return 1 + secrets.randbelow(bound - 1)


# =============================================================================
# STATE MACHINE INVARIANTS
# =============================================================================

class InvariantChecker:
    """Enforces state machine invariants."""

    @staticmethod
    def check_state_transition(
        current_state: Optional[Enum],
        target_state: Enum,
        valid_transitions: Dict[Optional[Enum], Set[Enum]],
    ) -> None:
        """Verify state transition is valid."""
        valid_targets = valid_transitions.get(current_state, set())
        if target_state not in valid_targets:
            current = current_state.value if current_state is not None else "none"
            raise InvariantViolation(
                f"Invalid state transition: {current} -> {target_state.value}. "
                f"Valid targets: {sorted(s.value for s in valid_targets)}"
            )

    @staticmethod
    def check_monotonic_increase(
        field_name: str,
        old_value: int,
        new_value: int,
    ) -> None:
        """Ensure value never decreases."""
        if new_value < old_value:
            raise InvariantViolation(
                f"{field_name} must be monotonically non-decreasing: "
                f"cannot go from {old_value} to {new_value}"
            )

    @staticmethod
    def check_non_negative(field_name: str, value: int) -> None:
        """Ensure value is non-negative."""
        if value < 0:
            raise InvariantViolation(f"{field_name} cannot be negative: {value}")

    @staticmethod
    def check_interval_aligned(
        field_name: str,
        start: int,
        value: int,
        interval: int,
    ) -> None:
        """Ensure ``value`` sits a whole number of intervals after ``start``."""
        if interval <= 0 or (value - start) % interval != 0:
            raise InvariantViolation(
                f"{field_name} must be start + k*{interval}: start={start} value={value}"
            )
