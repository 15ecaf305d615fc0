"""
Scalar field arithmetic for the age proof system.

Circuit wires, commitment blindings, challenges and responses all live in
the scalar field of the commitment group: integers modulo the secp256k1
group order ``N``. Values are plain Python ints kept in ``[0, N)``;
serialization is fixed-width 32-byte big-endian.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from typing import Iterable

from agegate.hardening import CryptoUtils

# secp256k1 group order
FIELD_MODULUS = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

SCALAR_BYTES = 32


def reduce(value: int) -> int:
    """Map any integer (including negatives) into the field."""
    return value % FIELD_MODULUS


def add(a: int, b: int) -> int:
    return (a + b) % FIELD_MODULUS


def sub(a: int, b: int) -> int:
    return (a - b) % FIELD_MODULUS


def mul(a: int, b: int) -> int:
    return (a * b) % FIELD_MODULUS


def neg(a: int) -> int:
    return (-a) % FIELD_MODULUS


def inverse(a: int) -> int:
    """Modular multiplicative inverse using Fermat's little theorem."""
    a %= FIELD_MODULUS
    if a == 0:
        raise ZeroDivisionError("Cannot invert zero field element")
    return pow(a, FIELD_MODULUS - 2, FIELD_MODULUS)


def inner_product(coefficients: Iterable[int], values: Iterable[int]) -> int:
    total = 0
    for k, v in zip(coefficients, values):
        total += k * v
    return total % FIELD_MODULUS


def random_scalar() -> int:
    """Uniform non-zero scalar from the OS CSPRNG."""
    return CryptoUtils.secure_random_below(FIELD_MODULUS)


def encode_scalar(value: int) -> bytes:
    """Fixed-width big-endian encoding of a reduced scalar."""
    return reduce(value).to_bytes(SCALAR_BYTES, "big")


def decode_scalar(data: bytes) -> int:
    """Decode a 32-byte scalar, rejecting non-canonical values (>= N)."""
    if len(data) != SCALAR_BYTES:
        raise ValueError(f"scalar must be {SCALAR_BYTES} bytes, got {len(data)}")
    value = int.from_bytes(data, "big")
    if value >= FIELD_MODULUS:
        raise ValueError("scalar is not reduced modulo the group order")
    return value


def to_signed(value: int) -> int:
    """Interpret a field element as a signed integer in (-N/2, N/2]."""
    value %= FIELD_MODULUS
    return value - FIELD_MODULUS if value > FIELD_MODULUS // 2 else value
