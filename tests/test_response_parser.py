"""Tests for model output parsing."""

from __future__ import annotations

import pytest

from persona_digest.intelligence.parser import NO_SUMMARY_CONTENT, ResponseParser


@pytest.fixture()
def parser() -> ResponseParser:
    return ResponseParser()


def test_json_content_and_priority(parser: ResponseParser) -> None:
    result = parser.parse('{"content":"X","priority":"high"}')

    assert result.content == "X"
    assert result.priority == "high"
    assert not result.degraded


def test_unknown_priority_normalises_to_medium(parser: ResponseParser) -> None:
    result = parser.parse('{"priority":"urgent"}')

    assert result.priority == "medium"
    assert result.content == NO_SUMMARY_CONTENT


def test_fenced_json_inside_prose(parser: ResponseParser) -> None:
    raw = (
        "Here is the summary you asked for:\n"
        "```json\n"
        '{"content": "Budget approved", "actionItems": ["Sign the form"], '
        '"sentiment": "Positive", "category": "Work"}\n'
        "```\n"
        "Let me know if you need more."
    )

    result = parser.parse(raw)

    assert result.content == "Budget approved"
    assert [item.text for item in result.action_items] == ["Sign the form"]
    assert result.sentiment == "positive"
    assert result.category == "work"


def test_daily_payload_reads_highlights_and_counts(parser: ResponseParser) -> None:
    raw = (
        '{"content": "Digest", "highlights": ["Launch moved", ""], '
        '"categories": {"Work": 3, "social": -1, "promotions": true}, '
        '"actionItems": [{"text": "Book room", "priority": "high", '
        '"dueDate": "Friday", "source": "Offsite"}]}'
    )

    result = parser.parse(raw, "daily")

    assert result.highlights == ("Launch moved",)
    assert result.categories == {"work": 3}
    item = result.action_items[0]
    assert (item.text, item.priority, item.due_date, item.source) == (
        "Book room",
        "high",
        "Friday",
        "Offsite",
    )


def test_plain_prose_uses_heuristics(parser: ResponseParser) -> None:
    raw = (
        "The vendor reported a problem with the shipment.\n"
        "It is urgent and needs attention today.\n"
        "Details are in the attached report.\n"
        "- Reply to the vendor with a new date\n"
        "Other context that is not content."
    )

    result = parser.parse(raw)

    assert result.degraded
    assert result.content.startswith("The vendor reported a problem")
    assert "Other context" not in result.content
    assert [item.text for item in result.action_items] == [
        "Reply to the vendor with a new date"
    ]
    assert result.priority == "high"
    assert result.sentiment == "negative"


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "   ",
        None,
        "{",
        '{"content": ',
        "}{",
        "[1, 2, 3]",
        '{"content": 42, "actionItems": "nope", "categories": [1]}',
        "[" * 5000,
        '{"categories": {"work": 1e999}}',
    ],
)
def test_parse_never_raises(parser: ResponseParser, raw: str | None) -> None:
    result = parser.parse(raw)
    assert isinstance(result.content, str)
    assert result.content


def test_empty_input_returns_sentinel(parser: ResponseParser) -> None:
    result = parser.parse("")
    assert result.content == NO_SUMMARY_CONTENT
    assert result.degraded
