"""Envelope codec for the encrypted API protocol.

Every API response is a JSON envelope whose ``data`` field carries a base64
AES-256-ECB ciphertext. The key is the ASCII MD5 hex digest of the request
timestamp followed by a shared secret, so it changes every second and is
never stored. The same primitive, keyed by a timestamp-free secret, decrypts
the mirror discovery document.

MD5 and ECB are dictated by the remote service; nothing here relies on them
for security.
"""

import base64
import binascii
import hashlib
import time
from dataclasses import dataclass
from typing import Any

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from pydantic import BaseModel, ConfigDict, Field

from comicgate.core.exceptions import DecodeError

_JSON_LEADING_TRIM = "\0 \n\r\t"


def md5_hex(text: str) -> str:
    """Lowercase hex MD5 of a UTF-8 string."""
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def derive_key(ts: int | str, secret: str) -> bytes:
    """32-byte AES key: the hex digest characters themselves, not raw bytes."""
    return md5_hex(f"{ts}{secret}").encode("ascii")


def unpad_trailing(data: bytes) -> bytes:
    """Drop as many trailing bytes as the last byte's value says.

    The counter is not checked against PKCS#7 rules. A value larger than
    the buffer empties it.
    """
    if not data:
        return data
    cut = data[-1]
    return data[: max(len(data) - cut, 0)]


def looks_like_json(text: str) -> bool:
    return text.lstrip(_JSON_LEADING_TRIM).startswith(("{", "["))


def _aes_ecb_decrypt(ciphertext: bytes, key: bytes) -> bytes:
    decryptor = Cipher(algorithms.AES(key), modes.ECB()).decryptor()
    try:
        return decryptor.update(ciphertext) + decryptor.finalize()
    except ValueError as e:
        raise DecodeError(f"decrypt failed: {e}") from e


def decrypt_text(ciphertext: bytes, key: bytes) -> str:
    """Decrypt, strip padding and decode as strict UTF-8."""
    plain = unpad_trailing(_aes_ecb_decrypt(ciphertext, key))
    try:
        return plain.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"utf8 decode failed: {e}") from e


def decode_payload(payload_b64: str, ts: int | str, secret: str) -> str:
    """Decode one API ``data`` field to its JSON plaintext.

    Args:
        payload_b64: Standard base64 ciphertext
        ts: Timestamp (seconds) the request token was issued with
        secret: Response data secret

    Returns:
        The plaintext, guaranteed to start with ``{`` or ``[`` after
        leading whitespace/NUL trimming

    Raises:
        DecodeError: On bad base64, bad block length, non-UTF-8 or
            non-JSON-shaped plaintext
    """
    try:
        ciphertext = base64.b64decode(payload_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"base64 decode failed: {e}") from e

    text = decrypt_text(ciphertext, derive_key(ts, secret))
    if not looks_like_json(text):
        raise DecodeError("decoded text is not json-like")
    return text


def decode_discovery_payload(payload_b64: str, secret: str) -> str:
    """Decode the mirror discovery document.

    The key has no timestamp component, padding may be missing, and the
    alphabet may be either standard or URL-safe. The plaintext is not
    required to be JSON.
    """
    trimmed = payload_b64.strip()
    if len(trimmed) % 4:
        trimmed += "=" * (4 - len(trimmed) % 4)

    try:
        ciphertext = base64.b64decode(trimmed, validate=True)
    except (binascii.Error, ValueError):
        try:
            ciphertext = base64.urlsafe_b64decode(trimmed)
        except (binascii.Error, ValueError) as e:
            raise DecodeError(f"base64 decode failed: {e}") from e

    return decrypt_text(ciphertext, md5_hex(secret).encode("ascii"))


# -----------------------------------------------------------------------------
# Wire models
# -----------------------------------------------------------------------------


class Envelope(BaseModel):
    """Outer JSON wrapper of every API response."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    code: int = 0
    error_msg: str = Field(default="", alias="errorMsg")
    message: str = ""
    data: Any = None

    @property
    def ok(self) -> bool:
        return self.code == 200

    def failure_message(self, http_status: int) -> str:
        """Server-supplied message, or a synthesized one when both are blank."""
        if self.error_msg:
            return self.error_msg
        if self.message:
            return self.message
        return f"request failed, code={self.code}, http_status={http_status}"


@dataclass(frozen=True)
class RequestToken:
    """Per-request credentials derived from the current second."""

    ts: int
    token: str
    tokenparam: str

    @classmethod
    def issue(cls, secret: str, header_version: str, ts: int | None = None) -> "RequestToken":
        if ts is None:
            ts = int(time.time())
        return cls(
            ts=ts,
            token=md5_hex(f"{ts}{secret}"),
            tokenparam=f"{ts},{header_version}",
        )


def cookie_header(cookies: dict[str, str] | None) -> str:
    if not cookies:
        return ""
    return "; ".join(f"{k}={v}" for k, v in cookies.items())


def build_headers(
    token: RequestToken,
    *,
    user_agent: str,
    app_version: str | None,
    cookies: dict[str, str] | None = None,
) -> dict[str, str]:
    """Headers sent with every API request.

    ``app_version`` is None for the chapter template endpoint, which is
    called without the version header.
    """
    headers = {
        "tokenparam": token.tokenparam,
        "token": token.token,
        "user-agent": user_agent,
        "accept-encoding": "identity",
    }
    if app_version:
        headers["version"] = app_version
    cookie = cookie_header(cookies)
    if cookie:
        headers["cookie"] = cookie
    return headers
