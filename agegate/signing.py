"""Ed25519 ceremony signatures for setup parameter documents.

A parameter document may carry a detached signature by the party that ran
the parameter ceremony:

    {
      ...parameters...,
      "signature": {"signer": "<hex public key>", "jws": "<b64url signature>"}
    }

The signing input is the canonical JSON of the document without its
``signature`` member, so signing never changes the parameter digest.

Keys are stored as OKP JWKs ({"kty":"OKP","crv":"Ed25519","x":...,"d":...}).
"""

from __future__ import annotations

import base64
import json
import pathlib
from typing import Any, Dict, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from agegate.core import canonical_json_bytes

SIGNATURE_FIELD = "signature"


def b64url_encode(b: bytes) -> str:
    return base64.urlsafe_b64encode(b).rstrip(b"=").decode("ascii")


def b64url_decode(s: str) -> bytes:
    pad = "=" * ((4 - len(s) % 4) % 4)
    return base64.urlsafe_b64decode((s + pad).encode("ascii"))


def signing_input(document: Dict[str, Any]) -> bytes:
    """Canonical signing input: the document minus its signature."""
    unsigned = {k: v for k, v in document.items() if k != SIGNATURE_FIELD}
    return canonical_json_bytes(unsigned)


def public_key_hex(private_key: Ed25519PrivateKey) -> str:
    raw = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return raw.hex()


def sign_document(document: Dict[str, Any], private_key: Ed25519PrivateKey) -> Dict[str, Any]:
    """Return a copy of ``document`` carrying an Ed25519 signature."""
    sig = private_key.sign(signing_input(document))
    signed = dict(document)
    signed[SIGNATURE_FIELD] = {
        "signer": public_key_hex(private_key),
        "jws": b64url_encode(sig),
    }
    return signed


def verify_document(document: Dict[str, Any], trusted_signer: str) -> bool:
    """Check the document's signature against ``trusted_signer`` (hex public key).

    Returns False when the signature is missing, made by another key, or
    does not verify.
    """
    sig_obj = document.get(SIGNATURE_FIELD)
    if not isinstance(sig_obj, dict):
        return False

    signer = str(sig_obj.get("signer") or "").lower()
    if signer != trusted_signer.lower():
        return False

    try:
        public_key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(signer))
        sig = b64url_decode(str(sig_obj.get("jws") or ""))
    except ValueError:
        return False
    if len(sig) != 64:
        return False

    try:
        public_key.verify(sig, signing_input(document))
    except InvalidSignature:
        return False
    return True


def generate_ed25519_jwk(kid: str = "ceremony-1") -> Dict[str, Any]:
    """Generate a new Ed25519 OKP JWK keypair."""
    priv = Ed25519PrivateKey.generate()

    priv_bytes = priv.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    pub_bytes = priv.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )

    return {
        "kty": "OKP",
        "crv": "Ed25519",
        "x": b64url_encode(pub_bytes),
        "d": b64url_encode(priv_bytes),
        "kid": kid,
    }


def load_private_key_from_jwk(jwk: Dict[str, Any]) -> Ed25519PrivateKey:
    """Load an Ed25519 private key from an OKP JWK."""
    if jwk.get("kty") != "OKP" or jwk.get("crv") != "Ed25519":
        raise ValueError("Only OKP/Ed25519 JWK is supported")

    d = jwk.get("d")
    if not d:
        raise ValueError("JWK must include 'd' (private)")
    return Ed25519PrivateKey.from_private_bytes(b64url_decode(d))


def load_signing_key(path: Union[str, pathlib.Path]) -> Ed25519PrivateKey:
    """Load an Ed25519 private key from a JWK file."""
    key_obj = json.loads(pathlib.Path(path).read_text(encoding="utf-8"))
    if not isinstance(key_obj, dict):
        raise ValueError("key file must be a JSON object")
    return load_private_key_from_jwk(key_obj)
