"""Tests for webhook signature verification."""

from __future__ import annotations

import hashlib
import hmac as hmac_mod

import pytest

from knobase_relay.webhook.auth import compute_signature, verify_signature

_SECRET = "whsec_knobase_test"
_BODY = b'{"event":"mention","data":{"user":"alice","message":"hi"}}'


def _reference(body: bytes, secret: str) -> str:
    return hmac_mod.new(secret.encode(), body, hashlib.sha256).hexdigest()


class TestComputeSignature:
    def test_matches_reference_hmac(self) -> None:
        assert compute_signature(_BODY, _SECRET) == _reference(_BODY, _SECRET)

    def test_lowercase_hex(self) -> None:
        sig = compute_signature(_BODY, _SECRET)
        assert len(sig) == 64
        assert sig == sig.lower()


class TestVerifySignature:
    def test_valid_signature(self) -> None:
        assert verify_signature(_BODY, _reference(_BODY, _SECRET), _SECRET) is True

    def test_wrong_secret(self) -> None:
        assert verify_signature(_BODY, _reference(_BODY, "other"), _SECRET) is False

    @pytest.mark.parametrize("index", [0, 10, len(_BODY) - 1])
    def test_tampered_byte_invalidates(self, index: int) -> None:
        signature = _reference(_BODY, _SECRET)
        tampered = bytearray(_BODY)
        tampered[index] ^= 0x01
        assert verify_signature(bytes(tampered), signature, _SECRET) is False

    def test_signature_covers_raw_bytes_not_reencoding(self) -> None:
        # Same JSON document, different whitespace and key order.
        sender_body = b'{ "data": {"message": "hi", "user": "alice"},  "event": "mention" }'
        signature = _reference(sender_body, _SECRET)
        assert verify_signature(sender_body, signature, _SECRET) is True
        assert verify_signature(_BODY, signature, _SECRET) is False

    def test_uppercase_hex_rejected(self) -> None:
        assert verify_signature(_BODY, _reference(_BODY, _SECRET).upper(), _SECRET) is False

    def test_length_mismatch(self) -> None:
        assert verify_signature(_BODY, "abc123", _SECRET) is False

    def test_prefixed_signature_rejected(self) -> None:
        sig = f"sha256={_reference(_BODY, _SECRET)}"
        assert verify_signature(_BODY, sig, _SECRET) is False

    def test_surrounding_whitespace_rejected(self) -> None:
        sig = f" {_reference(_BODY, _SECRET)}\t"
        assert verify_signature(_BODY, sig, _SECRET) is False

    def test_non_ascii_header_does_not_raise(self) -> None:
        assert verify_signature(_BODY, "é" * 64, _SECRET) is False


class TestPermissiveDefault:
    """Missing secret or header skips verification entirely."""

    def test_no_secret(self) -> None:
        assert verify_signature(_BODY, "deadbeef", None) is True

    def test_empty_secret(self) -> None:
        assert verify_signature(_BODY, "deadbeef", "") is True

    def test_no_header(self) -> None:
        assert verify_signature(_BODY, None, _SECRET) is True

    def test_empty_header(self) -> None:
        assert verify_signature(_BODY, "", _SECRET) is True

    def test_neither(self) -> None:
        assert verify_signature(b"", None, None) is True
