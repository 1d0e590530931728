"""Keyword matching for recognized speech.

A keyword matches when it appears in the transcript, case-insensitively.
Speech recognizers regularly mangle short words, so a fuzzy partial ratio
above ``threshold`` also counts as a match.

Tests: tests/test_keywords.py
"""
from __future__ import annotations

from typing import Iterable, Optional

from fuzzywuzzy import fuzz

DEFAULT_THRESHOLD = 90


def match_keyword(
    transcript: Optional[str],
    keywords: Iterable[str],
    threshold: int = DEFAULT_THRESHOLD,
) -> Optional[str]:
    """Return the first keyword found in ``transcript`` or ``None``."""
    if not transcript:
        return None
    text = transcript.lower()
    candidates = [k for k in keywords if k and k.strip()]
    for keyword in candidates:
        if keyword.lower() in text:
            return keyword
    if threshold > 100:
        return None
    best: Optional[str] = None
    best_score = 0
    for keyword in candidates:
        score = fuzz.partial_ratio(keyword.lower(), text)
        if score >= threshold and score > best_score:
            best, best_score = keyword, score
    return best
