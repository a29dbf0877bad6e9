"""Tests for the envelope codec.

Covers key derivation, the permissive padding rule, payload decoding and
the discovery document variant.
"""

import base64

import pytest

from comicgate.core.exceptions import DecodeError
from comicgate.services.envelope import (
    Envelope,
    RequestToken,
    build_headers,
    decode_discovery_payload,
    decode_payload,
    derive_key,
    md5_hex,
    unpad_trailing,
)
from tests.mocks.comic_api import APP_DATA_SECRET, encrypt, encrypt_discovery, encrypt_payload, pad

# =============================================================================
# Key Derivation
# =============================================================================


class TestDeriveKey:
    """Tests for derive_key and RequestToken."""

    def test_key_is_ascii_hex_digest(self) -> None:
        """Key bytes are the 32 hex characters, not the 16 raw digest bytes."""
        key = derive_key(1700000000, "secret")
        assert len(key) == 32
        assert key == md5_hex("1700000000secret").encode("ascii")

    def test_request_token_fields(self) -> None:
        token = RequestToken.issue("18comicAPP", "1.7.5", ts=1700000000)
        assert token.ts == 1700000000
        assert token.token == md5_hex("170000000018comicAPP")
        assert token.tokenparam == "1700000000,1.7.5"

    def test_headers_without_version_or_cookies(self) -> None:
        token = RequestToken.issue("s", "1.7.5", ts=1)
        headers = build_headers(token, user_agent="ua", app_version=None, cookies={})
        assert "version" not in headers
        assert "cookie" not in headers
        assert headers["accept-encoding"] == "identity"

    def test_headers_with_cookies(self) -> None:
        token = RequestToken.issue("s", "1.7.5", ts=1)
        headers = build_headers(
            token, user_agent="ua", app_version="2.0.6", cookies={"AVS": "abc", "ipm5": "x"}
        )
        assert headers["version"] == "2.0.6"
        assert headers["cookie"] == "AVS=abc; ipm5=x"


# =============================================================================
# Padding
# =============================================================================


class TestUnpadTrailing:
    """Tests for the unchecked trailing-byte padding rule."""

    def test_strips_counter_bytes(self) -> None:
        assert unpad_trailing(b"hello\x03\x03\x03") == b"hello"

    def test_counter_not_validated(self) -> None:
        """Only the last byte is read; the preceding bytes are not checked."""
        assert unpad_trailing(b"abcd\x07\x02") == b"abcd"

    def test_counter_larger_than_buffer_empties_it(self) -> None:
        assert unpad_trailing(b"ab\xff") == b""

    def test_empty_buffer(self) -> None:
        assert unpad_trailing(b"") == b""


# =============================================================================
# Payload Decoding
# =============================================================================


class TestDecodePayload:
    """Tests for decode_payload."""

    def test_round_trip_json_object(self) -> None:
        data = encrypt_payload({"list": [1, 2, 3]}, 1700000000)
        text = decode_payload(data, 1700000000, APP_DATA_SECRET)
        assert text == '{"list": [1, 2, 3]}'

    def test_wrong_timestamp_fails(self) -> None:
        data = encrypt_payload({"a": 1}, 1700000000)
        with pytest.raises(DecodeError):
            decode_payload(data, 1700000001, APP_DATA_SECRET)

    def test_non_utf8_plaintext(self) -> None:
        key = derive_key(9, APP_DATA_SECRET)
        data = base64.b64encode(encrypt(pad(b"\xff\xfe{}"), key)).decode()
        with pytest.raises(DecodeError, match="utf8"):
            decode_payload(data, 9, APP_DATA_SECRET)

    def test_invalid_base64(self) -> None:
        with pytest.raises(DecodeError, match="base64"):
            decode_payload("not base64!!", 1, APP_DATA_SECRET)

    def test_bad_block_length(self) -> None:
        data = base64.b64encode(b"0123456789").decode()
        with pytest.raises(DecodeError, match="decrypt"):
            decode_payload(data, 1, APP_DATA_SECRET)

    def test_non_json_plaintext(self) -> None:
        data = encrypt_payload("hello world", 5)
        with pytest.raises(DecodeError, match="json-like"):
            decode_payload(data, 5, APP_DATA_SECRET)

    def test_leading_whitespace_and_nul_accepted(self) -> None:
        data = encrypt_payload("\0\n  [1]", 5)
        assert decode_payload(data, 5, APP_DATA_SECRET).endswith("[1]")

    def test_permissive_padding_fixture(self) -> None:
        """A block whose last byte is not valid PKCS#7 still decodes."""
        plaintext = b'{"k":"v"}' + b"\x01\x02\x03\x04\x05\x06\x07"
        key = derive_key(7, APP_DATA_SECRET)
        data = base64.b64encode(encrypt(plaintext, key)).decode()
        assert decode_payload(data, 7, APP_DATA_SECRET) == '{"k":"v"}'


class TestDecodeDiscoveryPayload:
    """Tests for the discovery document decoder."""

    def test_standard_alphabet(self) -> None:
        payload = encrypt_discovery('{"Server": ["a.example"]}')
        assert decode_discovery_payload(payload, "diosfjckwpqpdfjkvnqQjsik") == (
            '{"Server": ["a.example"]}'
        )

    def test_missing_padding_and_urlsafe(self) -> None:
        raw = encrypt(pad(b"host-a.example,host-b.example"), md5_hex("sec").encode("ascii"))
        payload = base64.urlsafe_b64encode(raw).decode().rstrip("=")
        assert decode_discovery_payload(payload, "sec") == "host-a.example,host-b.example"

    def test_garbage_raises(self) -> None:
        with pytest.raises(DecodeError):
            decode_discovery_payload("abcd", "sec")


class TestEnvelope:
    """Tests for the envelope model."""

    def test_ok_and_alias(self) -> None:
        env = Envelope.model_validate({"code": 200, "errorMsg": "", "data": "x"})
        assert env.ok
        assert env.data == "x"

    def test_failure_message_prefers_error_msg(self) -> None:
        env = Envelope.model_validate({"code": 500, "errorMsg": "boom", "message": "m"})
        assert env.failure_message(200) == "boom"

    def test_failure_message_synthesized(self) -> None:
        env = Envelope.model_validate({"code": 401})
        assert env.failure_message(401) == "request failed, code=401, http_status=401"
