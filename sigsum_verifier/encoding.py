"""Hex, base64 and decimal helpers.

``bytes.fromhex`` tolerates embedded whitespace; proof and policy text must
not, so hex decoding here is strict.
"""

from __future__ import annotations

import base64
import re

from .errors import SIGSUM_E_BAD_HEX, sigsum_error

_HEX_RE = re.compile(r"[0-9a-fA-F]*")


def hex_to_bytes(value: str) -> bytes:
    if not isinstance(value, str) or not _HEX_RE.fullmatch(value):
        raise sigsum_error(SIGSUM_E_BAD_HEX, "Hex string contains invalid characters", value=str(value)[:80])
    if len(value) % 2 != 0:
        raise sigsum_error(SIGSUM_E_BAD_HEX, "Hex string must have an even length", length=len(value))
    return bytes.fromhex(value)


def bytes_to_hex(data: bytes) -> str:
    return bytes(data).hex()


def bytes_to_base64(data: bytes) -> str:
    return base64.b64encode(bytes(data)).decode("ascii")


def bytes_to_base64url(data: bytes) -> str:
    """URL-safe base64 without padding (enrollment artifacts)."""
    return base64.urlsafe_b64encode(bytes(data)).decode("ascii").rstrip("=")


def hex_to_base64(value: str) -> str:
    return bytes_to_base64(hex_to_bytes(value))


def is_plain_decimal(value: str) -> bool:
    """True for a non-empty run of ASCII digits (no sign, underscores or other scripts)."""
    return isinstance(value, str) and value.isascii() and value.isdecimal()
