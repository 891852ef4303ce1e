"""Tests for webhook HMAC verification and outbound request signing."""

import base64
import hashlib
import hmac

from payments.signatures import (
    canonical_body,
    compute_signature,
    sign_request,
    verify_signature,
)

SECRET = "whsec_test"
BODY = b'{"event":"order.paid","data":{"id":"kw_1"}}'


def _hex(body: bytes, secret: str = SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def test_compute_signature_hex_matches_hmac():
    assert compute_signature(SECRET, BODY) == _hex(BODY)


def test_compute_signature_base64():
    digest = hmac.new(SECRET.encode(), BODY, hashlib.sha256).digest()
    assert compute_signature(SECRET, BODY, "base64") == base64.b64encode(digest).decode()


def test_verify_signature_accepts_valid_hex():
    assert verify_signature(SECRET, _hex(BODY), BODY) is True


def test_verify_signature_is_case_insensitive_for_hex():
    assert verify_signature(SECRET, _hex(BODY).upper(), BODY) is True


def test_verify_signature_rejects_tampered_body():
    signature = _hex(BODY)
    assert verify_signature(SECRET, signature, BODY.replace(b"kw_1", b"kw_2")) is False


def test_verify_signature_rejects_wrong_secret():
    assert verify_signature("other-secret", _hex(BODY), BODY) is False


def test_verify_signature_missing_secret_or_signature():
    """Missing inputs are simply invalid, never an exception."""
    assert verify_signature(None, _hex(BODY), BODY) is False
    assert verify_signature("", _hex(BODY), BODY) is False
    assert verify_signature(SECRET, None, BODY) is False
    assert verify_signature(SECRET, "", BODY) is False


def test_verify_signature_garbage_signature():
    assert verify_signature(SECRET, "not-a-signature ✓", BODY) is False


def test_verify_signature_strips_prefix():
    signature = "sha256=" + _hex(BODY)
    assert verify_signature(SECRET, signature, BODY, prefix="sha256=") is True
    assert verify_signature(SECRET, signature, BODY) is False


def test_verify_signature_base64_encoding():
    signature = compute_signature(SECRET, BODY, "base64")
    assert verify_signature(SECRET, signature, BODY, encoding="base64") is True
    assert verify_signature(SECRET, signature, BODY, encoding="hex") is False


def test_dict_payload_uses_compact_json():
    payload = {"event": "order.paid", "data": {"id": "kw_1"}}
    assert canonical_body(payload) == BODY
    assert verify_signature(SECRET, _hex(BODY), payload) is True


def test_canonical_body_passthrough():
    assert canonical_body(None) == b""
    assert canonical_body(BODY) is BODY
    assert canonical_body("olá") == "olá".encode("utf-8")


def test_sign_request_covers_timestamp_and_body():
    body = '{"amount":97.0}'
    signature = sign_request(SECRET, "1700000000", body)
    assert signature == _hex(b'1700000000{"amount":97.0}')
    assert signature != sign_request(SECRET, "1700000001", body)
