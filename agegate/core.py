"""Core primitives for agegate.

This module provides the foundational utilities used throughout the package:
- Cryptographic hashing (SHA-256)
- Canonical JSON serialization (JCS/RFC8785 subset)
- YAML/JSON loading with consistent encoding
- Day/second conversions for block timestamps and proof dates

Design principles:
- Pure functions where possible
- No global mutable state
- Explicit error handling
"""

from __future__ import annotations

import hashlib
import json
import pathlib
import re
from datetime import date, datetime, timezone
from typing import Any, Union

import yaml

SECONDS_PER_DAY = 86400


def sha256_bytes(data: bytes) -> str:
    """Compute SHA-256 hash of bytes, returning lowercase hex string."""
    return hashlib.sha256(data).hexdigest()


def load_yaml(path: pathlib.Path) -> Any:
    """Load YAML file with UTF-8 encoding."""
    return yaml.safe_load(pathlib.Path(path).read_text(encoding="utf-8"))


def load_json(path: pathlib.Path) -> Any:
    """Load JSON file with UTF-8 encoding."""
    return json.loads(pathlib.Path(path).read_text(encoding="utf-8"))


def canonical_json_bytes(obj: Any) -> bytes:
    """Serialize object to canonical JSON bytes (JCS/RFC8785 subset).

    Properties:
    - Keys sorted lexicographically
    - No whitespace
    - UTF-8 encoded
    - Floats rejected (use strings/ints for amounts)

    This ensures byte-for-byte reproducibility for digests of parameters,
    keys, receipts and ledger state.
    """
    def _reject_floats(o: Any, path: str = "") -> None:
        if isinstance(o, float):
            raise ValueError(f"Float not allowed in canonical JSON at {path}")
        if isinstance(o, dict):
            for k, v in o.items():
                _reject_floats(v, f"{path}.{k}")
        if isinstance(o, (list, tuple)):
            for i, v in enumerate(o):
                _reject_floats(v, f"{path}[{i}]")

    _reject_floats(obj)
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def canonical_digest(obj: Any) -> str:
    """SHA-256 of the canonical JSON encoding of ``obj``."""
    return sha256_bytes(canonical_json_bytes(obj))


def write_canonical_json(path: pathlib.Path, obj: Any) -> str:
    """Write canonical JSON to file, returning the digest.

    Appends a trailing newline for POSIX compatibility.
    Returns the SHA-256 digest of the canonical bytes (without newline).
    """
    canonical = canonical_json_bytes(obj)
    pathlib.Path(path).write_bytes(canonical + b"\n")
    return sha256_bytes(canonical)


def is_valid_sha256(digest: str) -> bool:
    """Check if string is a valid SHA-256 hex digest."""
    return bool(re.fullmatch(r"[a-f0-9]{64}", digest or ""))


def day_of_timestamp(timestamp: int) -> int:
    """Day count since the Unix epoch for a block timestamp in seconds."""
    return int(timestamp) // SECONDS_PER_DAY


def day_number(value: Union[date, datetime, str, int]) -> int:
    """Convert a calendar date (or ISO string) to a day count since the Unix epoch.

    Integers are returned unchanged. Dates before 1970 yield negative counts.
    """
    if isinstance(value, bool):
        raise TypeError("bool is not a date")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        value = date.fromisoformat(value.strip()[:10])
    if isinstance(value, datetime):
        value = value.astimezone(timezone.utc).date() if value.tzinfo else value.date()
    return (value - date(1970, 1, 1)).days
