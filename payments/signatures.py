"""
HMAC-SHA256 helpers for webhook verification and outbound request signing.
"""

import base64
import hashlib
import hmac
import json
from typing import Any


def canonical_body(payload: bytes | str | dict[str, Any] | list | None) -> bytes:
    """Bytes that were (or will be) signed for ``payload``.

    Raw bodies are used as-is. Parsed bodies are re-serialised as compact JSON
    in key insertion order, which is how the platforms serialise them.
    """
    if payload is None:
        return b""
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode(
        "utf-8"
    )


def compute_signature(secret: str, body: bytes, encoding: str = "hex") -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    if encoding == "base64":
        return base64.b64encode(digest).decode("ascii")
    return digest.hex()


def verify_signature(
    secret: str | None,
    signature: str | None,
    payload: bytes | str | dict[str, Any] | list | None,
    *,
    encoding: str = "hex",
    prefix: str | None = None,
) -> bool:
    """Constant-time check of ``signature`` against the payload's HMAC.

    Never raises: a missing secret or signature is simply invalid.
    """
    if not secret or not signature:
        return False

    candidate = signature.strip()
    if prefix and candidate.startswith(prefix):
        candidate = candidate[len(prefix) :]
    if encoding == "hex":
        candidate = candidate.lower()

    expected = compute_signature(secret, canonical_body(payload), encoding)
    return hmac.compare_digest(expected.encode("ascii"), candidate.encode("utf-8"))


def sign_request(secret: str, timestamp: str, body: str) -> str:
    """Signature for outbound calls: hex HMAC of timestamp followed by body."""
    return compute_signature(secret, f"{timestamp}{body}".encode("utf-8"))
