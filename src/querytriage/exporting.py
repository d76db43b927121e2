"""Plain-text minus-word lists in the ad platform's upload format."""

from __future__ import annotations

from typing import Iterable, List, Union

from .models import MinusWordSuggestion, WordMinusCandidate

MinusWordEntry = Union[str, MinusWordSuggestion, WordMinusCandidate]


def _entry_text(entry: MinusWordEntry) -> str:
    if isinstance(entry, (MinusWordSuggestion, WordMinusCandidate)):
        return entry.word
    if isinstance(entry, dict):
        return str(entry.get("word") or "")
    return str(entry)


def export_minus_words(words: Iterable[MinusWordEntry]) -> str:
    """Render one ``-word`` per line.

    Entries are trimmed, blanks skipped and duplicates removed with the first
    occurrence kept. Case and any ``!`` or quote operators are preserved.
    """

    lines: list[str] = []
    seen: set[str] = set()
    for entry in words:
        text = _entry_text(entry).strip()
        if not text:
            continue
        line = text if text.startswith("-") else f"-{text}"
        if line in seen:
            continue
        seen.add(line)
        lines.append(line)
    return "\n".join(lines)


def parse_minus_words(text: str) -> List[str]:
    words: list[str] = []
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if line.startswith("-"):
            line = line[1:].strip()
        if line:
            words.append(line)
    return words


__all__ = ["MinusWordEntry", "export_minus_words", "parse_minus_words"]
