from __future__ import annotations

import pytest

from linguascope.app.models.analysis_contracts import AnalysisOutput
from linguascope.app.services.errors import IncompleteResponseError, MalformedResponseError
from linguascope.app.services.llm_client import (
    GenerationRequest,
    _build_generate_config,
    parse_structured_response,
    resolve_model_profile,
    strip_markdown_fence,
)


@pytest.mark.parametrize(
    "text",
    [
        '{"title": "x"}',
        "<p>line one</p>\n<p>line two</p>",
        "plain words with `inline code` inside",
    ],
)
def test_strip_markdown_fence_recovers_fenced_text(text: str) -> None:
    assert strip_markdown_fence(f"```\n{text}\n```") == text
    assert strip_markdown_fence(f"```json\n{text}\n```") == text
    assert strip_markdown_fence(f"  ```html\n{text}\n```  \n") == text


def test_strip_markdown_fence_leaves_unfenced_text_trimmed() -> None:
    assert strip_markdown_fence("  <p>hi</p>\n") == "<p>hi</p>"
    assert strip_markdown_fence("```json\nunterminated") == "```json\nunterminated"


def test_parse_structured_response_accepts_fenced_json() -> None:
    reply = """```json
{"title": "T", "oneLineSummary": "S", "keyPoints": ["a", "b", "c"],
 "keyEntities": ["E"], "keywords": ["k"], "extra": true}
```"""

    analysis = parse_structured_response(reply, AnalysisOutput)

    assert analysis.title == "T"
    assert analysis.one_line_summary == "S"
    assert analysis.key_points == ["a", "b", "c"]


def test_parse_structured_response_rejects_invalid_json() -> None:
    with pytest.raises(MalformedResponseError) as exc_info:
        parse_structured_response("Sure! Here is the JSON: {", AnalysisOutput, user_message="boom")

    assert exc_info.value.user_message == "boom"


def test_parse_structured_response_rejects_non_object_json() -> None:
    with pytest.raises(MalformedResponseError):
        parse_structured_response('["title"]', AnalysisOutput)


def test_parse_structured_response_reports_missing_fields() -> None:
    with pytest.raises(IncompleteResponseError) as exc_info:
        parse_structured_response('{"title": "T", "keyPoints": []}', AnalysisOutput)

    message = str(exc_info.value)
    assert "oneLineSummary" in message
    assert "keywords" in message
    assert "AI 분석 결과를 처리하지 못했습니다" in exc_info.value.user_message


def test_resolve_model_profile_disables_thinking_for_fast_tier() -> None:
    fast = resolve_model_profile("fast", model_name="gemini-2.5-flash")
    quality = resolve_model_profile("quality", model_name="gemini-2.5-flash")

    assert fast.model_name == quality.model_name == "gemini-2.5-flash"
    assert fast.disable_thinking is True
    assert quality.disable_thinking is False


def test_build_generate_config_maps_request_options() -> None:
    structured = _build_generate_config(
        GenerationRequest(response_schema={"type": "OBJECT"}, disable_thinking=True)
    )
    instructed = _build_generate_config(GenerationRequest(system_instruction="Translate."))

    assert structured.response_mime_type == "application/json"
    assert structured.thinking_config is not None
    assert structured.thinking_config.thinking_budget == 0
    assert instructed.response_mime_type is None
    assert instructed.system_instruction is not None
    assert instructed.thinking_config is None
