"""
Commitment group: the secp256k1 elliptic curve.

Points are exposed as immutable affine :class:`Point` values; scalar
multiplication runs in Jacobian coordinates and converts back to affine
with a single inversion. Serialization is 33-byte SEC1 compressed form.

Generators are never hard-coded. :func:`hash_to_curve` derives them from a
public seed by try-and-increment, so nobody knows the discrete log of one
generator with respect to another.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from agegate.zk.field import FIELD_MODULUS

CURVE_ID = "secp256k1"

# Base field prime and curve y^2 = x^3 + 7
FIELD_PRIME = 2 ** 256 - 2 ** 32 - 977
CURVE_B = 7
ORDER = FIELD_MODULUS

POINT_BYTES = 33

_Jacobian = Tuple[int, int, int]
_J_INFINITY: _Jacobian = (1, 1, 0)


def _sqrt(a: int) -> Optional[int]:
    # FIELD_PRIME = 3 (mod 4)
    root = pow(a, (FIELD_PRIME + 1) // 4, FIELD_PRIME)
    if root * root % FIELD_PRIME != a % FIELD_PRIME:
        return None
    return root


def _curve_rhs(x: int) -> int:
    return (x * x * x + CURVE_B) % FIELD_PRIME


def _jacobian_double(p: _Jacobian) -> _Jacobian:
    X1, Y1, Z1 = p
    if Z1 == 0 or Y1 == 0:
        return _J_INFINITY
    A = X1 * X1 % FIELD_PRIME
    B = Y1 * Y1 % FIELD_PRIME
    C = B * B % FIELD_PRIME
    D = 2 * ((X1 + B) * (X1 + B) - A - C) % FIELD_PRIME
    E = 3 * A % FIELD_PRIME
    F = E * E % FIELD_PRIME
    X3 = (F - 2 * D) % FIELD_PRIME
    Y3 = (E * (D - X3) - 8 * C) % FIELD_PRIME
    Z3 = 2 * Y1 * Z1 % FIELD_PRIME
    return (X3, Y3, Z3)


def _jacobian_add(p: _Jacobian, q: _Jacobian) -> _Jacobian:
    X1, Y1, Z1 = p
    X2, Y2, Z2 = q
    if Z1 == 0:
        return q
    if Z2 == 0:
        return p
    Z1Z1 = Z1 * Z1 % FIELD_PRIME
    Z2Z2 = Z2 * Z2 % FIELD_PRIME
    U1 = X1 * Z2Z2 % FIELD_PRIME
    U2 = X2 * Z1Z1 % FIELD_PRIME
    S1 = Y1 * Z2 * Z2Z2 % FIELD_PRIME
    S2 = Y2 * Z1 * Z1Z1 % FIELD_PRIME
    H = (U2 - U1) % FIELD_PRIME
    R = (S2 - S1) % FIELD_PRIME
    if H == 0:
        if R == 0:
            return _jacobian_double(p)
        return _J_INFINITY
    H2 = H * H % FIELD_PRIME
    H3 = H * H2 % FIELD_PRIME
    U1H2 = U1 * H2 % FIELD_PRIME
    X3 = (R * R - H3 - 2 * U1H2) % FIELD_PRIME
    Y3 = (R * (U1H2 - X3) - S1 * H3) % FIELD_PRIME
    Z3 = H * Z1 * Z2 % FIELD_PRIME
    return (X3, Y3, Z3)


@dataclass(frozen=True)
class Point:
    """Affine point on secp256k1. ``x is None`` denotes the point at infinity."""
    x: Optional[int]
    y: Optional[int]

    @classmethod
    def infinity(cls) -> "Point":
        return cls(None, None)

    @property
    def is_infinity(self) -> bool:
        return self.x is None

    def is_on_curve(self) -> bool:
        if self.is_infinity:
            return True
        if not (0 <= self.x < FIELD_PRIME and 0 <= self.y < FIELD_PRIME):
            return False
        return self.y * self.y % FIELD_PRIME == _curve_rhs(self.x)

    def _jacobian(self) -> _Jacobian:
        if self.is_infinity:
            return _J_INFINITY
        return (self.x, self.y, 1)

    @classmethod
    def _from_jacobian(cls, p: _Jacobian) -> "Point":
        X, Y, Z = p
        if Z == 0:
            return cls.infinity()
        z_inv = pow(Z, FIELD_PRIME - 2, FIELD_PRIME)
        z_inv2 = z_inv * z_inv % FIELD_PRIME
        return cls(X * z_inv2 % FIELD_PRIME, Y * z_inv2 * z_inv % FIELD_PRIME)

    def __add__(self, other: "Point") -> "Point":
        return Point._from_jacobian(_jacobian_add(self._jacobian(), other._jacobian()))

    def __neg__(self) -> "Point":
        if self.is_infinity:
            return self
        return Point(self.x, (-self.y) % FIELD_PRIME)

    def __sub__(self, other: "Point") -> "Point":
        return self + (-other)

    def __mul__(self, scalar: int) -> "Point":
        return multi_mul([(scalar, self)])

    __rmul__ = __mul__

    def encode(self) -> bytes:
        """SEC1 compressed encoding. The point at infinity has no encoding."""
        if self.is_infinity:
            raise ValueError("cannot encode the point at infinity")
        prefix = b"\x03" if self.y & 1 else b"\x02"
        return prefix + self.x.to_bytes(32, "big")

    def hex(self) -> str:
        return self.encode().hex()

    @classmethod
    def decode(cls, data: bytes) -> "Point":
        """Decode a compressed point, rejecting anything not on the curve."""
        if len(data) != POINT_BYTES:
            raise ValueError(f"point must be {POINT_BYTES} bytes, got {len(data)}")
        prefix = data[0]
        if prefix not in (2, 3):
            raise ValueError(f"invalid point prefix 0x{prefix:02x}")
        x = int.from_bytes(data[1:], "big")
        if x >= FIELD_PRIME:
            raise ValueError("point x-coordinate out of range")
        y = _sqrt(_curve_rhs(x))
        if y is None:
            raise ValueError("point is not on the curve")
        if (y & 1) != (prefix & 1):
            y = FIELD_PRIME - y
        return cls(x, y)

    @classmethod
    def from_hex(cls, value: str) -> "Point":
        return cls.decode(bytes.fromhex(value))


def multi_mul(pairs: Sequence[Tuple[int, Point]]) -> Point:
    """Compute sum(k_i * P_i) with interleaved double-and-add (Straus)."""
    terms = []
    for scalar, point in pairs:
        k = scalar % ORDER
        if k and not point.is_infinity:
            terms.append((k, point._jacobian()))
    if not terms:
        return Point.infinity()

    acc = _J_INFINITY
    for bit in range(max(k.bit_length() for k, _ in terms) - 1, -1, -1):
        acc = _jacobian_double(acc)
        for k, p in terms:
            if (k >> bit) & 1:
                acc = _jacobian_add(acc, p)
    return Point._from_jacobian(acc)


def hash_to_curve(seed: bytes, label: bytes) -> Point:
    """Derive a point with unknown discrete log from ``seed`` and ``label``.

    Try-and-increment: hash to an x-coordinate until x^3 + 7 is a square,
    then take the even root.
    """
    counter = 0
    while True:
        digest = hashlib.sha256(
            b"agegate/hash-to-curve/v1" + seed + b"/" + label + counter.to_bytes(4, "big")
        ).digest()
        x = int.from_bytes(digest, "big")
        if x < FIELD_PRIME:
            y = _sqrt(_curve_rhs(x))
            if y is not None:
                if y & 1:
                    y = FIELD_PRIME - y
                return Point(x, y)
        counter += 1
