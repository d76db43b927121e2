from __future__ import annotations

from querytriage.exporting import export_minus_words, parse_minus_words
from querytriage.models import Confidence, MinusWordSuggestion, WordMinusCandidate


def test_export_prefixes_trims_and_dedupes() -> None:
    text = export_minus_words(["  бесплатно ", "-скачать", "", "бесплатно", "Торрент", "!права"])

    assert text.splitlines() == ["-бесплатно", "-скачать", "-Торрент", "-!права"]


def test_export_accepts_suggestion_objects() -> None:
    words = [
        MinusWordSuggestion("реферат", "", "informational", 1, 10.0),
        WordMinusCandidate('"вакансии"', "", Confidence.HIGH),
        {"word": "скачать"},
    ]

    assert export_minus_words(words) == '-реферат\n-"вакансии"\n-скачать'


def test_parse_reverses_export() -> None:
    words = ["бесплатно", "Торрент", "!права", '"что это"']

    assert parse_minus_words(export_minus_words(words)) == words
    assert parse_minus_words("-a\n\n   \n- b \nc") == ["a", "b", "c"]
