"""Tokenisation helpers shared by the heuristic classifier and clustering."""

from __future__ import annotations

import re
from typing import List

# Function words that never make useful cluster keys or minus-words.
_STOPWORDS = frozenset(
    {
        # Russian prepositions, conjunctions and particles
        "без",
        "для",
        "или",
        "как",
        "над",
        "под",
        "при",
        "про",
        "что",
        "это",
        "где",
        "кто",
        "чем",
        "его",
        "она",
        "они",
        "так",
        "все",
        "уже",
        "еще",
        "ещё",
        "через",
        "после",
        "перед",
        "около",
        "между",
        # English
        "and",
        "for",
        "the",
        "with",
        "from",
        "how",
        "what",
        "www",
        "com",
        "http",
        "https",
    }
)

_WORD_RE = re.compile(r"[0-9A-Za-zЀ-ӿ]+(?:[-'][0-9A-Za-zЀ-ӿ]+)*")
_MIN_TOKEN_LENGTH = 3


def tokenize(text: str, *, min_length: int = _MIN_TOKEN_LENGTH, keep_stopwords: bool = False) -> List[str]:
    """Split a search query into lower-cased word tokens.

    Tokens shorter than ``min_length`` and function words are dropped. Order is
    preserved and repeats are kept so callers can build adjacent bigrams.
    """

    tokens: list[str] = []
    for match in _WORD_RE.finditer(str(text).lower()):
        token = match.group(0)
        if len(token) < min_length:
            continue
        if not keep_stopwords and token in _STOPWORDS:
            continue
        tokens.append(token)
    return tokens


__all__ = ["tokenize"]
