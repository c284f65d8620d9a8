"""Masking of card numbers and patient identifiers in free-text ledger fields.

Payment notes, claim notes, adjustment reasons and audit details all pass
through :func:`redact_text` before they are stored or logged.
"""
from __future__ import annotations

import re
from typing import Iterable, List, Pattern

REDACTED = "[REDACTED]"

_CARD_NUMBER = re.compile(r"\b(?:\d[ -]?){12,18}\d\b")
_SSN = re.compile(r"\b\d{3}-\d{2}-\d{4}\b")
_MRN = re.compile(r"\bMRN\s*[:#]?\s*\w+", re.IGNORECASE)

_DEFAULT_PATTERNS: List[Pattern[str]] = [_CARD_NUMBER, _SSN, _MRN]


def contains_card_number(text: str) -> bool:
    return bool(_CARD_NUMBER.search(text or ""))


def redact_text(text: str, extra_patterns: Iterable[str] | None = None) -> str:
    """Replace card numbers, SSNs and MRNs in ``text`` with ``[REDACTED]``."""
    patterns = list(_DEFAULT_PATTERNS)
    if extra_patterns:
        patterns.extend(re.compile(p) for p in extra_patterns)
    for pattern in patterns:
        text = pattern.sub(REDACTED, text)
    return text


__all__ = ["REDACTED", "contains_card_number", "redact_text"]
