"""Redaction + input validation helpers.

Actions name responsible people and their e-mail addresses; those must not
leak into logs or history notes.  Free-text that crosses into logs or the
history table passes through :func:`redact_pii` first, and every label that
reaches SQLite is whitelisted here.
"""

from __future__ import annotations

import re

# ── PII regex patterns ──────────────────────────────────────
_PII_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("EMAIL", re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z]{2,}\b", re.IGNORECASE)),
    # (555) 123-4567, 555-123-4567, +1 555 123 4567, +90 532 123 4567
    ("PHONE", re.compile(
        r"(?:\+\d{1,3}[-.\s]?)?"
        r"\(?\d{3}\)?[-.\s]\d{3}[-.\s]?\d{2,4}\b"
    )),
]

# Human references such as FND-001 or ACT-12.
_SAFE_REF_RE = re.compile(r"^[A-Za-z0-9_\-.#]{1,64}$")

_MAX_TEXT = 4096
_MAX_NAME = 256


def redact_pii(text: str) -> str:
    """Replace detected e-mail addresses and phone numbers with ``[REDACTED-<TYPE>]``."""
    result = text
    for label, pattern in _PII_PATTERNS:
        result = pattern.sub(f"[REDACTED-{label}]", result)
    return result


def contains_pii(text: str) -> bool:
    return any(pattern.search(text) for _, pattern in _PII_PATTERNS)


def validate_ref(ref: str | None, *, field: str = "ref") -> str | None:
    """Validate a human reference (``FND-001``).  Blank → ``None``.

    Raises
    ------
    ValueError
        If the reference contains disallowed characters or is too long.
    """
    if ref is None:
        return None
    ref = ref.strip()
    if not ref:
        return None
    if not _SAFE_REF_RE.match(ref):
        raise ValueError(f"{field} contains invalid characters or is too long (max 64): {ref!r}")
    return ref


def validate_name(name: str, *, field: str = "name") -> str:
    """Require a non-blank single-line name of bounded length."""
    name = name.strip()
    if not name:
        raise ValueError(f"{field} must not be empty")
    if len(name) > _MAX_NAME or "\n" in name or "\x00" in name:
        raise ValueError(f"{field} must be a single line under {_MAX_NAME} chars")
    return name


def clean_text(text: str | None) -> str | None:
    """Trim free text, cap its length and drop NULs.  Blank → ``None``."""
    if text is None:
        return None
    text = text.replace("\x00", "").strip()[:_MAX_TEXT]
    return text or None


def sanitise_notes(notes: str) -> str:
    """History notes: length-capped and PII-redacted."""
    return redact_pii(notes[:_MAX_TEXT])
