"""
Proof wire format.

    header        8 bytes   b"AGZK" | version (1) | 3 zero bytes
    commitments   33 bytes  per private wire, in variable order
    linear        65 bytes  per linear relation:  T (33) | z (32)
    product      162 bytes  per product relation: T1 | T2 | z | z1 | z2

The layout is fixed by the verifying key, so the exact length is known
before decoding. Points are SEC1-compressed; the point at infinity has no
encoding and is therefore always malformed. Scalars must be < N.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from agegate.errors import ProofMalformed
from agegate.zk.field import SCALAR_BYTES, decode_scalar, encode_scalar
from agegate.zk.group import POINT_BYTES, Point

MAGIC = b"AGZK"
VERSION = 1
HEADER = MAGIC + bytes([VERSION, 0, 0, 0])

LINEAR_BYTES = POINT_BYTES + SCALAR_BYTES
PRODUCT_BYTES = 2 * POINT_BYTES + 3 * SCALAR_BYTES


def proof_length(num_commitments: int, num_linear: int, num_products: int) -> int:
    return len(HEADER) + POINT_BYTES * num_commitments + LINEAR_BYTES * num_linear + PRODUCT_BYTES * num_products


@dataclass(frozen=True)
class LinearResponse:
    t: Point
    z: int


@dataclass(frozen=True)
class ProductResponse:
    t1: Point
    t2: Point
    z: int
    z1: int
    z2: int


@dataclass(frozen=True)
class AgeProof:
    commitments: Tuple[Point, ...]
    linear: Tuple[LinearResponse, ...]
    products: Tuple[ProductResponse, ...]

    def commitment_bytes(self) -> bytes:
        return b"".join(c.encode() for c in self.commitments)

    def linear_message_bytes(self) -> bytes:
        return b"".join(r.t.encode() for r in self.linear)

    def product_message_bytes(self) -> bytes:
        return b"".join(r.t1.encode() + r.t2.encode() for r in self.products)

    def encode(self) -> bytes:
        parts = [HEADER, self.commitment_bytes()]
        for r in self.linear:
            parts.append(r.t.encode() + encode_scalar(r.z))
        for r in self.products:
            parts.append(r.t1.encode() + r.t2.encode() + encode_scalar(r.z) + encode_scalar(r.z1) + encode_scalar(r.z2))
        return b"".join(parts)

    @classmethod
    def decode(
        cls,
        data: bytes,
        num_commitments: int,
        num_linear: int,
        num_products: int,
        on_point: Optional[Callable[[], None]] = None,
        on_scalar: Optional[Callable[[], None]] = None,
    ) -> "AgeProof":
        """Strictly decode ``data`` for the given layout.

        ``on_point`` / ``on_scalar`` are invoked before each element is
        decoded so callers can meter the work. Raises ProofMalformed.
        """
        if not isinstance(data, (bytes, bytearray)):
            raise ProofMalformed("proof must be bytes", type=type(data).__name__)
        expected = proof_length(num_commitments, num_linear, num_products)
        if len(data) != expected:
            raise ProofMalformed(f"proof length {len(data)} != expected {expected}", length=len(data))
        if data[:4] != MAGIC:
            raise ProofMalformed("bad proof header")
        if data[4:8] != HEADER[4:8]:
            raise ProofMalformed(f"unsupported proof version {data[4]}", version=data[4])

        reader = _Reader(bytes(data), len(HEADER), on_point, on_scalar)
        commitments = [reader.point() for _ in range(num_commitments)]
        linear: List[LinearResponse] = []
        for _ in range(num_linear):
            t = reader.point()
            linear.append(LinearResponse(t=t, z=reader.scalar()))
        products: List[ProductResponse] = []
        for _ in range(num_products):
            t1 = reader.point()
            t2 = reader.point()
            products.append(ProductResponse(t1=t1, t2=t2, z=reader.scalar(), z1=reader.scalar(), z2=reader.scalar()))
        return cls(tuple(commitments), tuple(linear), tuple(products))


class _Reader:
    def __init__(self, data: bytes, offset: int, on_point, on_scalar):
        self.data = data
        self.offset = offset
        self.on_point = on_point
        self.on_scalar = on_scalar

    def _take(self, n: int) -> bytes:
        chunk = self.data[self.offset:self.offset + n]
        self.offset += n
        return chunk

    def point(self) -> Point:
        if self.on_point:
            self.on_point()
        at = self.offset
        try:
            return Point.decode(self._take(POINT_BYTES))
        except ValueError as e:
            raise ProofMalformed(f"invalid point at offset {at}: {e}", offset=at) from e

    def scalar(self) -> int:
        if self.on_scalar:
            self.on_scalar()
        at = self.offset
        try:
            return decode_scalar(self._take(SCALAR_BYTES))
        except ValueError as e:
            raise ProofMalformed(f"invalid scalar at offset {at}: {e}", offset=at) from e
