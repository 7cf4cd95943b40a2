"""Attachment content policy and base64 helpers.

Providers encode payloads as URL-safe base64 (``-`` and ``_`` instead of
``+`` and ``/``), usually without padding.  Callers always receive
standard, padded base64.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass

DEFAULT_CEILING_BYTES = 1_048_576


def should_inline_content(size_bytes: int, ceiling_bytes: int) -> bool:
    """Return True when an attachment of *size_bytes* may carry its content."""
    return size_bytes <= ceiling_bytes


@dataclass(frozen=True)
class AttachmentPolicy:
    """Size ceiling for one retrieval session."""

    ceiling_bytes: int = DEFAULT_CEILING_BYTES

    def __post_init__(self) -> None:
        if self.ceiling_bytes < 0:
            raise ValueError(f"ceiling_bytes must be >= 0, got {self.ceiling_bytes}")

    def should_inline_content(self, size_bytes: int) -> bool:
        return should_inline_content(size_bytes, self.ceiling_bytes)


def decode_base64url(data: str) -> bytes:
    """Decode provider base64 (URL-safe alphabet, padding optional).

    Raises :class:`binascii.Error` (a ``ValueError``) on malformed input.
    """
    normalized = data.strip().replace("-", "+").replace("_", "/")
    normalized += "=" * (-len(normalized) % 4)
    return base64.b64decode(normalized, validate=True)


def to_standard_base64(data: str) -> str:
    """Re-encode a provider payload as standard padded base64."""
    return base64.b64encode(decode_base64url(data)).decode("ascii")


def decode_text(data: str) -> str:
    """Decode a base64url body fragment to text (invalid UTF-8 is replaced)."""
    return decode_base64url(data).decode("utf-8", errors="replace")


def derive_extension(filename: str | None) -> str:
    """Bare lowercase extension of *filename*, or ``"unknown"``."""
    if not filename or not filename.strip():
        return "unknown"
    _, dot, ext = filename.rpartition(".")
    if not dot or not ext:
        return "unknown"
    return ext.lower()
