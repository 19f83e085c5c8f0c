"""
auth/codec.py -- Authenticated encryption of small cookie payloads.

Security design decisions:
  Cipher: JWE compact serialization via python-jose, "dir" key management with
       A256GCM content encryption. AES-GCM is an AEAD: the ciphertext, the IV
       and the protected header are all covered by the 128-bit tag, so any
       modification fails decryption as a whole. There is no code path that
       returns a payload before the tag has been verified.

  Key material: the 256-bit content key is HMAC-SHA256(secret_key, block_key).
       block_key is the configured COOKIE_BLOCK_KEY, or, when that is empty,
       derived from secret_key itself. Either way the key is a pure function
       of configuration, so cookies stay valid across process restarts. Rotating
       either secret invalidates every outstanding cookie.

  Binding: the cookie name is written into the protected header as "kid" and
       checked after decryption, so a token minted for one cookie cannot be
       replayed under another name. Each token also carries its issue time;
       tokens older than max_age are refused.

  Canonical encoding: base64url leaves a few spare bits in the last character
       of a segment. Tokens are re-encoded after parsing and must match the
       input exactly, so flipping any character of a token is a decode failure
       rather than a silent alias of the same bytes.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from collections.abc import Callable

from jose import jwe
from jose.constants import ALGORITHMS
from jose.exceptions import JOSEError
from jose.utils import base64url_decode, base64url_encode

from auth.errors import CookieDecodeError

# 30 days, the conventional upper bound for a secure-cookie timestamp.
DEFAULT_MAX_AGE_SECONDS = 86400 * 30

_BLOCK_KEY_LABEL = b"sessionkeeper/cookie-block-key"


def derive_block_key(secret_key: str) -> bytes:
    """Derive the secondary key block from the long-term secret."""
    return hmac.new(secret_key.encode("utf-8"), _BLOCK_KEY_LABEL, hashlib.sha256).digest()


def _is_canonical(token: str) -> bool:
    parts = token.split(".")
    if len(parts) != 5:
        return False
    for part in parts:
        try:
            raw = base64url_decode(part.encode("ascii"))
        except ValueError:
            return False
        if base64url_encode(raw).decode("ascii") != part:
            return False
    return True


class CookieCodec:
    """Encode/decode a str->str mapping into an opaque, tamper-proof token.

    Args:
        name:        Cookie name; bound into every token.
        secret_key:  Long-term secret from configuration.
        block_key:   Optional 32-byte secondary key block. None derives one
                     from secret_key.
        max_age:     Maximum token age in seconds; 0 disables the check.
        clock:       Zero-arg callable returning epoch seconds.
    """

    def __init__(
        self,
        name: str,
        secret_key: str,
        block_key: bytes | None = None,
        max_age: int = DEFAULT_MAX_AGE_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if block_key is None:
            block_key = derive_block_key(secret_key)
        if len(block_key) != 32:
            raise ValueError("block_key must be exactly 32 bytes.")
        self.name = name
        self.max_age = max_age
        self._clock = clock
        self._key = hmac.new(secret_key.encode("utf-8"), block_key, hashlib.sha256).digest()

    def encode(self, payload: dict[str, str]) -> str:
        """Encrypt and authenticate payload. Returns a URL/cookie-safe token."""
        if not all(isinstance(k, str) and isinstance(v, str) for k, v in payload.items()):
            raise TypeError("cookie payload must map str to str")
        plaintext = json.dumps({"p": payload, "t": int(self._clock())}, separators=(",", ":"))
        token = jwe.encrypt(
            plaintext.encode("utf-8"),
            self._key,
            encryption=ALGORITHMS.A256GCM,
            algorithm=ALGORITHMS.DIR,
            kid=self.name,
        )
        return token.decode("ascii")

    def decode(self, token: str) -> dict[str, str]:
        """Verify and decrypt a token produced by encode().

        Raises CookieDecodeError for anything that is not a valid, unexpired
        token minted under this codec's name and key material.
        """
        if not token or not _is_canonical(token):
            raise CookieDecodeError("malformed cookie token")
        try:
            plaintext = jwe.decrypt(token, self._key)
            header = jwe.get_unverified_header(token)
        except (JOSEError, ValueError, KeyError, TypeError) as exc:
            # jose raises JOSEError subclasses for tag/parse failures; a header that
            # decodes to the wrong JSON shape can surface as a plain lookup error.
            raise CookieDecodeError(f"cookie authentication failed: {exc}") from exc
        if plaintext is None or header.get("kid") != self.name:
            raise CookieDecodeError("cookie bound to a different name")
        try:
            envelope = json.loads(plaintext)
            payload = envelope["p"]
            issued_at = int(envelope["t"])
        except (ValueError, KeyError, TypeError) as exc:
            raise CookieDecodeError("cookie payload is not a valid envelope") from exc
        if self.max_age and self._clock() - issued_at > self.max_age:
            raise CookieDecodeError("cookie has expired")
        if not isinstance(payload, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in payload.items()
        ):
            raise CookieDecodeError("cookie payload must map str to str")
        return payload
