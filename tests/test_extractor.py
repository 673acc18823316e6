"""Tests for :mod:`marginalia.annotations.extractor`."""

from __future__ import annotations

from marginalia.annotations.extractor import (
    MESSAGE_LIMIT,
    classify_type,
    extract_message,
    extract_quotes,
    extract_suggestion,
)
from marginalia.annotations.models import AnnotationType


def test_finds_quotes_in_every_quote_style() -> None:
    response = (
        'First "a straight double quote" then “a curly double quote” '
        "and ‘a curly single quote’ plus 'a straight single one'."
    )
    quotes = [quote.quoted_text for quote in extract_quotes(response)]
    assert quotes == [
        "a straight double quote",
        "a curly double quote",
        "a curly single quote",
        "a straight single one",
    ]


def test_short_quotes_are_ignored() -> None:
    assert extract_quotes('The word "gloomy" appears twice.') == []


def test_match_index_and_context() -> None:
    response = 'Intro text. "The rain fell all night." Then more.'
    (quote,) = extract_quotes(response)
    assert quote.match_index == response.index('"')
    assert quote.context_before == "Intro text. "
    assert quote.context_after == " Then more."


def test_classification_rules_in_order() -> None:
    assert classify_type("PASSIVE: this one") is AnnotationType.PASSIVE_VOICE
    assert classify_type("Passive voice and a timeline slip") is AnnotationType.PASSIVE_VOICE
    assert classify_type("ISSUE: Character name inconsistency") is AnnotationType.CONSISTENCY
    assert classify_type("This word is repeated") is AnnotationType.CONSISTENCY
    assert classify_type("Pacing drags here") is AnnotationType.STYLE


def test_suggestion_requires_label_and_quote() -> None:
    assert extract_suggestion(' SUGGESTION: "He saw her walking."') == "He saw her walking."
    assert extract_suggestion("\nsuggestion: “Cut the adverb.”") == "Cut the adverb."
    assert extract_suggestion("\nSUGGESTION: tighten this paragraph") is None
    assert extract_suggestion("nothing to see") is None


def test_first_suggestion_wins() -> None:
    context = ' SUGGESTION: "First rewrite here." ... SUGGESTION: "Second rewrite."'
    assert extract_suggestion(context) == "First rewrite here."


def test_message_prefers_last_label_line() -> None:
    response = (
        "ISSUE: Pacing\n"
        "PASSAGE: placeholder\n"
        "PROBLEM: The scene stalls on weather.\n"
        'Look at "The rain fell and fell and fell."'
    )
    index = response.index('"')
    assert extract_message(response, index) == "The scene stalls on weather."


def test_message_falls_back_to_last_sentence() -> None:
    response = 'The opening is strong. This line tells instead of shows: "She felt very sad that day."'
    index = response.index('"')
    assert extract_message(response, index) == "This line tells instead of shows:"


def test_long_messages_are_truncated() -> None:
    response = "WHY: " + "x" * 300 + '\n"A quoted passage of text."'
    message = extract_message(response, response.index('"'))
    assert len(message) == MESSAGE_LIMIT + 1
    assert message.endswith("…")


def test_quote_carries_message_and_suggestion() -> None:
    response = (
        'PASSIVE: "She was seen by him walking down the path."\n'
        "WHY: The agent is buried.\n"
        'SUGGESTION: "He saw her walking down the path."'
    )
    first = extract_quotes(response)[0]
    assert first.annotation_type is AnnotationType.PASSIVE_VOICE
    assert first.suggestion == "He saw her walking down the path."
