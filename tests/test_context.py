"""Tests for source summary construction and message augmentation."""

import pytest

from insureyou.schemas.chat import ChatMessage, RetrievalMatch, TextPart, WebSearchResult
from insureyou.services.context import (
    VECTOR_SUMMARY_HEADER,
    WEB_SUMMARY_HEADER,
    augment_messages,
    build_summary,
    build_web_summary,
    latest_user_text,
    source_url,
)


def _match(**metadata: object) -> RetrievalMatch:
    return RetrievalMatch.model_validate({"id": "m", "metadata": metadata})


def test_empty_matches_give_empty_summary() -> None:
    assert build_summary([]) == ""


@pytest.mark.parametrize("count", [1, 3, 5, 8])
def test_summary_line_count(count: int) -> None:
    """Header plus one bullet per match, capped at five."""
    matches = [_match(source_name=f"Doc {i}", text="x") for i in range(count)]
    lines = build_summary(matches).splitlines()
    assert lines[0] == VECTOR_SUMMARY_HEADER
    assert len(lines) == 1 + min(5, count)
    assert all(line.startswith("- ") for line in lines[1:])


def test_line_format_with_url_and_excerpt() -> None:
    match = _match(source_name="Policy A", source_url="https://x.test/a.pdf", text="Covers death.")
    line = build_summary([match]).splitlines()[1]
    assert line == '- Policy A — https://x.test/a.pdf — excerpt: "Covers death."'


def test_line_without_url_or_excerpt() -> None:
    assert build_summary([_match(source_name="Bare")]).splitlines()[1] == "- Bare"


class TestNameResolution:
    def test_prefers_metadata_source_name(self) -> None:
        match = _match(source_name="Named", title="Titled")
        assert build_summary([match]).splitlines()[1].startswith("- Named")

    def test_falls_back_to_metadata_title(self) -> None:
        assert build_summary([_match(title="Titled")]).splitlines()[1].startswith("- Titled")

    def test_falls_back_to_top_level_source_name(self) -> None:
        match = RetrievalMatch.model_validate({"id": "m", "source_name": "Top", "metadata": {}})
        assert build_summary([match]).splitlines()[1].startswith("- Top")

    def test_empty_source_name_is_not_replaced(self) -> None:
        match = _match(source_name="", title="Titled")
        assert build_summary([match]).splitlines()[1] == "- "

    def test_empty_url_is_not_replaced(self) -> None:
        match = RetrievalMatch.model_validate(
            {"id": "m", "source_url": "https://top.test", "metadata": {"source_url": ""}}
        )
        assert source_url(match) == ""

    def test_falls_back_to_ordinal(self) -> None:
        matches = [_match(), _match()]
        lines = build_summary(matches).splitlines()
        assert lines[1] == "- Source 1"
        assert lines[2] == "- Source 2"


class TestExcerpt:
    def test_truncated_to_300_chars(self) -> None:
        line = build_summary([_match(source_name="Long", text="a" * 1000)]).splitlines()[1]
        assert line == f'- Long — excerpt: "{"a" * 300}"'

    def test_newlines_flattened(self) -> None:
        summary = build_summary([_match(source_name="N", text="line one\nline two\r\nthree")])
        assert summary.splitlines()[1] == '- N — excerpt: "line one line two three"'

    def test_uses_match_text_when_metadata_text_missing(self) -> None:
        match = RetrievalMatch.model_validate({"id": "m", "text": "direct", "metadata": {}})
        assert 'excerpt: "direct"' in build_summary([match])


def test_web_summary() -> None:
    results = [WebSearchResult(title="Regulator FAQ", url="https://reg.test", content="Rules")]
    lines = build_web_summary(results).splitlines()
    assert lines == [WEB_SUMMARY_HEADER, '- Regulator FAQ — https://reg.test — excerpt: "Rules"']
    assert build_web_summary([]) == ""


class TestMessages:
    def test_latest_user_text_skips_assistant_turns(self) -> None:
        messages = [
            ChatMessage(role="user", parts=[TextPart(text="first")]),
            ChatMessage(role="assistant", parts=[TextPart(text="reply")]),
            ChatMessage(role="user", parts=[TextPart(text="second"), TextPart(text="part")]),
            ChatMessage(role="assistant", parts=[TextPart(text="later")]),
        ]
        assert latest_user_text(messages) == "second part"

    def test_latest_user_text_without_user(self) -> None:
        assert latest_user_text([ChatMessage(role="assistant", parts=[])]) == ""

    def test_augment_appends_system_message(self) -> None:
        messages = [ChatMessage(role="user", parts=[TextPart(text="q")])]
        augmented = augment_messages(messages, "Sources: ...")
        assert len(augmented) == 2
        assert augmented[-1].role == "system"
        assert augmented[-1].text == "Sources: ..."
        assert len(messages) == 1

    def test_augment_with_empty_summary_adds_nothing(self) -> None:
        messages = [ChatMessage(role="user", parts=[TextPart(text="q")])]
        assert augment_messages(messages, "") == messages
