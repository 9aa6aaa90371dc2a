"""Scrubbing helpers for free text and identifiers that reach storage or logs."""

from __future__ import annotations

import hashlib
import html
from typing import Optional

import bleach

MAX_MARKUP_PASSES = 3


def sanitize_text(value: str) -> str:
    """Return a sanitized version of *value* with HTML stripped.

    Doctor-entered rejection reasons end up in the audit log and in review
    screens, so markup is removed before either sees them.
    """
    return bleach.clean(value, tags=[], attributes={}, strip=True)


def strip_markup(value: str) -> str:
    """Return *value* as plain text: tags removed, entities decoded.

    ``bleach`` escapes ``&``, ``<`` and ``>`` in the text it keeps, which would
    change what the doctor wrote ("INR < 2" becoming "INR &lt; 2"). Decoding
    can surface markup that was entity-encoded in the input, so the pass is
    repeated until the text stops changing. Input that is still changing after
    the last pass is returned escaped.
    """

    text = value
    for _ in range(MAX_MARKUP_PASSES):
        stripped = html.unescape(sanitize_text(text))
        if stripped == text:
            return text
        text = stripped
    return sanitize_text(text)


def hash_identifier(value: Optional[str]) -> Optional[str]:
    """Return a stable SHA256 hash prefix for identifiers written to logs."""

    if not value:
        return None
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()
    return digest[:16]


__all__ = ["hash_identifier", "sanitize_text", "strip_markup"]
