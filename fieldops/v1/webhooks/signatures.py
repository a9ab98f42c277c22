"""
HMAC-SHA256 signature verification for signed webhook sources.

Signatures are always computed over the raw request body, before any JSON
parsing, and compared in constant time.
"""

import base64
import binascii
import hashlib
import hmac
import re
from dataclasses import dataclass
from typing import Literal

from fieldops.v1.core.exceptions import InvalidSignatureError

DIGEST_SIZE = hashlib.sha256().digest_size
_HEX_DIGEST = re.compile(r"^[a-fA-F0-9]{%d}$" % (DIGEST_SIZE * 2))


@dataclass(frozen=True)
class SignatureScheme:
    """How a provider carries its signature."""

    header: str
    encoding: Literal["hex", "base64"]
    prefix: str | None = None  # e.g. "sha256=" on the header value


def compute_signature(secret: str, raw_body: bytes, encoding: str = "hex") -> str:
    digest = hmac.new(secret.encode(), raw_body, hashlib.sha256).digest()
    if encoding == "base64":
        return base64.b64encode(digest).decode()
    return digest.hex()


def decode_signature(value: str, scheme: SignatureScheme) -> bytes:
    """Decode a header value into digest bytes, rejecting malformed input."""
    value = value.strip()
    if scheme.prefix and value.lower().startswith(scheme.prefix):
        value = value[len(scheme.prefix):]

    if scheme.encoding == "hex":
        if not _HEX_DIGEST.match(value):
            raise InvalidSignatureError()
        return bytes.fromhex(value)

    try:
        digest = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidSignatureError() from None
    if len(digest) != DIGEST_SIZE:
        raise InvalidSignatureError()
    return digest


def verify_signature(
    raw_body: bytes,
    header_value: str | None,
    secret: str,
    scheme: SignatureScheme,
) -> None:
    """Raise InvalidSignatureError unless ``header_value`` signs ``raw_body``."""
    if not header_value:
        raise InvalidSignatureError()

    provided = decode_signature(header_value, scheme)
    expected = hmac.new(secret.encode(), raw_body, hashlib.sha256).digest()

    if not hmac.compare_digest(provided, expected):
        raise InvalidSignatureError()
