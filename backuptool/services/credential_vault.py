"""
Credential vault for settings that carry secrets.

Reversible obfuscation (not cryptography): the text is percent-encoded,
base64-encoded, XOR-ed with a fixed key and base64-encoded again. Values
written by earlier releases use exactly this scheme, so reads stay
compatible with existing settings files.

Only ``decrypt`` may raise. Every other entry point degrades to returning
its input so a damaged value never costs the user their data.
"""
from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from typing import Union
from urllib.parse import quote, unquote

from backuptool.core.errors import DecryptionFailure

DEFAULT_KEY = "MySql_B@ckup_T00l_S3cr3t_K3y"
ENCRYPT_FAILED_TAG = "[ENCRYPT_FAILED]"
LEGACY_SCHEME_VERSION = 1
MIN_CIPHERTEXT_LENGTH = 16
SENSITIVE_KEY_MARKERS = ("password", "secret", "token", "apiKey", "accessKey")

# Characters encodeURIComponent leaves untouched besides alphanumerics
_URI_COMPONENT_SAFE = "-_.!~*'()"
_BASE64_ALPHABET = re.compile(r"^[A-Za-z0-9+/=]+$")
_BROKEN_PERCENT = re.compile(r"%(?![0-9A-Fa-f]{2})")

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlainValue:
    text: str


@dataclass(frozen=True)
class EncryptedValue:
    payload: str
    scheme_version: int = LEGACY_SCHEME_VERSION


StoredValue = Union[PlainValue, EncryptedValue]


class CredentialVault:
    def __init__(self, key: str = DEFAULT_KEY) -> None:
        if not key:
            raise ValueError("Vault key must not be empty")
        self._key = key.encode("latin-1")

    # Public API -------------------------------------------------------
    def encrypt(self, plaintext: str) -> str:
        if not plaintext:
            return plaintext
        try:
            encoded = quote(plaintext, safe=_URI_COMPONENT_SAFE).encode("ascii")
            inner = base64.b64encode(encoded)
            return base64.b64encode(self._xor(inner)).decode("ascii")
        except Exception:
            _logger.warning("Encryption failed, storing tagged plaintext", exc_info=True)
            return f"{ENCRYPT_FAILED_TAG}{plaintext}"

    def decrypt(self, ciphertext: str) -> str:
        if not ciphertext:
            return ciphertext
        if ciphertext.startswith(ENCRYPT_FAILED_TAG):
            return ciphertext[len(ENCRYPT_FAILED_TAG):]
        try:
            return self._decode_chain(ciphertext)
        except (binascii.Error, ValueError) as exc:
            raise DecryptionFailure(f"Value is not a vault ciphertext: {exc}") from exc

    def is_encrypted(self, text: str) -> bool:
        """Heuristic only: base64 alphabet and longer than 16 characters."""
        if not text or not isinstance(text, str) or text.startswith(ENCRYPT_FAILED_TAG):
            return False
        return len(text) > MIN_CIPHERTEXT_LENGTH and bool(_BASE64_ALPHABET.match(text))

    def try_decrypt(self, text: str) -> str:
        if not text:
            return text
        if text.startswith(ENCRYPT_FAILED_TAG):
            return text[len(ENCRYPT_FAILED_TAG):]
        if not _is_canonical_base64(text):
            return text
        try:
            return self._decode_chain(text)
        except Exception:
            _logger.debug("Best-effort decryption gave up, keeping stored text")
            return text

    @staticmethod
    def is_sensitive_key(key: str) -> bool:
        lowered = key.lower()
        return any(marker.lower() in lowered for marker in SENSITIVE_KEY_MARKERS)

    def classify(self, raw: str) -> StoredValue:
        """Tag a persisted string so callers never have to guess again."""
        if raw.startswith(ENCRYPT_FAILED_TAG):
            return PlainValue(raw[len(ENCRYPT_FAILED_TAG):])
        if self.is_encrypted(raw):
            return EncryptedValue(raw)
        return PlainValue(raw)

    # Internals --------------------------------------------------------
    def _xor(self, data: bytes) -> bytes:
        key = self._key
        return bytes(byte ^ key[i % len(key)] for i, byte in enumerate(data))

    def _decode_chain(self, ciphertext: str) -> str:
        outer = base64.b64decode(ciphertext, validate=True)
        inner = self._xor(outer)
        decoded = base64.b64decode(inner, validate=True).decode("latin-1")
        if _BROKEN_PERCENT.search(decoded):
            raise ValueError("Malformed percent-encoding")
        return unquote(decoded, errors="strict")


def _is_canonical_base64(text: str) -> bool:
    try:
        return base64.b64encode(base64.b64decode(text, validate=True)).decode("ascii") == text
    except (binascii.Error, ValueError):
        return False


__all__ = [
    "CredentialVault",
    "PlainValue",
    "EncryptedValue",
    "StoredValue",
    "DEFAULT_KEY",
    "ENCRYPT_FAILED_TAG",
    "SENSITIVE_KEY_MARKERS",
]
