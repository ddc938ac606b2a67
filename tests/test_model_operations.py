from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from typing import Any

import pytest

from linguascope.app.models.analysis_contracts import AnalysisOutput
from linguascope.app.services.analysis_client import analyze
from linguascope.app.services.errors import (
    ANALYSIS_FAILED_MESSAGE,
    CONTENT_TRANSLATION_FAILED_MESSAGE,
    DETECTION_FAILED_MESSAGE,
    ENHANCE_FAILED_MESSAGE,
    IncompleteResponseError,
    InvalidOutputError,
    MalformedResponseError,
    ModelCallError,
)
from linguascope.app.services.language_detector import (
    coerce_language_code,
    detect_language,
    extract_text_sample,
)
from linguascope.app.services.llm_client import ModelProfile
from linguascope.app.services.readability_enhancer import enhance_readability
from linguascope.app.services.translation_client import (
    markup_shape,
    translate_analysis,
    translate_content,
)
from linguascope.app.telemetry import TelemetryClient

FAST = ModelProfile(model_name="gemini-2.5-flash", disable_thinking=True)
QUALITY = ModelProfile(model_name="gemini-2.5-flash", disable_thinking=False)


class _CaptureSink:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        self.events.append((event_name, dict(attributes)))


def _english_analysis() -> AnalysisOutput:
    return AnalysisOutput(
        title="Rust in the Kernel",
        one_line_summary="Linux accepts more Rust drivers.",
        key_points=["one", "two", "three"],
        key_entities=["Linux"],
        keywords=["rust"],
    )


@pytest.mark.parametrize(
    ("reply", "expected"),
    [
        ("ko", "ko"),
        (" EN \n", "en"),
        ("ja", "ja"),
        ("eng", "en"),
        ("The language is Korean.", "en"),
        ("k1", "en"),
        ("", "en"),
        ("'fr'", "en"),
    ],
)
def test_coerce_language_code_falls_back_instead_of_failing(reply: str, expected: str) -> None:
    assert coerce_language_code(reply, fallback="en") == expected


def test_extract_text_sample_strips_tags_and_truncates() -> None:
    sample = extract_text_sample("<p>" + "a" * 50 + "</p><p>" + "b" * 50 + "</p>", max_length=60)

    assert sample == "a" * 50 + "b" * 10


def test_detect_language_sends_sample_with_thinking_disabled(fake_backend) -> None:
    fake_backend.replies["detect"] = "Korean"

    code = asyncio.run(
        detect_language("<p>안녕하세요 여러분</p>", backend=fake_backend, model="gemini-2.5-flash")
    )

    assert code == "en"
    kind, model, request = fake_backend.calls[0]
    assert kind == "detect"
    assert model == "gemini-2.5-flash"
    assert request.disable_thinking is True
    assert request.response_schema is None


def test_detect_language_skips_model_for_empty_text(fake_backend) -> None:
    code = asyncio.run(
        detect_language("<p> </p><br>", backend=fake_backend, model="m", target_language="ko")
    )

    assert code == "ko"
    assert fake_backend.calls == []


def test_detect_language_wraps_model_failures(fake_backend) -> None:
    fake_backend.failures["detect"] = ModelCallError("quota exceeded")

    with pytest.raises(ModelCallError) as exc_info:
        asyncio.run(detect_language("<p>hello</p>", backend=fake_backend, model="m"))

    assert exc_info.value.user_message == DETECTION_FAILED_MESSAGE


def test_analyze_uses_schema_and_tier(fake_backend) -> None:
    analysis = asyncio.run(analyze("<p>Rust news</p>", backend=fake_backend, profile=QUALITY))

    assert analysis.title == "Rust in the Kernel"
    assert len(analysis.key_points) == 3
    _, _, request = fake_backend.calls[0]
    assert request.response_schema is not None
    assert request.response_schema["required"] == [
        "title",
        "oneLineSummary",
        "keyPoints",
        "keyEntities",
        "keywords",
    ]
    assert request.disable_thinking is False


def test_analyze_surfaces_one_message_for_bad_output(fake_backend) -> None:
    fake_backend.replies["analyze"] = "I could not analyze this."
    with pytest.raises(MalformedResponseError) as malformed:
        asyncio.run(analyze("<p>x</p>", backend=fake_backend, profile=FAST))

    fake_backend.replies["analyze"] = '```json\n{"title": "only a title"}\n```'
    with pytest.raises(IncompleteResponseError) as incomplete:
        asyncio.run(analyze("<p>x</p>", backend=fake_backend, profile=FAST))

    assert malformed.value.user_message == ANALYSIS_FAILED_MESSAGE
    assert incomplete.value.user_message == ANALYSIS_FAILED_MESSAGE


def test_translate_analysis_replaces_fields_but_keeps_title(fake_backend) -> None:
    original = _english_analysis()

    translated = asyncio.run(translate_analysis(original, backend=fake_backend, profile=FAST))

    assert translated.title == "Rust in the Kernel"
    assert translated.one_line_summary.startswith("리눅스")
    assert translated.keywords == ["러스트", "커널", "드라이버"]
    assert original.one_line_summary == "Linux accepts more Rust drivers."

    _, _, request = fake_backend.calls[0]
    assert request.response_schema is not None
    assert "title" not in request.response_schema["properties"]
    assert "title" not in request.response_schema["required"]


def test_translate_analysis_prompt_carries_only_translatable_fields(fake_backend) -> None:
    prompts: list[str] = []

    def reply(contents: str) -> str:
        prompts.append(contents)
        return json.dumps(
            {
                "oneLineSummary": "요약",
                "keyPoints": ["하나"],
                "keyEntities": [],
                "keywords": [],
            }
        )

    fake_backend.replies["translate_analysis"] = reply

    asyncio.run(translate_analysis(_english_analysis(), backend=fake_backend, profile=FAST))

    assert '"oneLineSummary": "Linux accepts more Rust drivers."' in prompts[0]
    assert "Rust in the Kernel" not in prompts[0]


def test_translate_content_strips_fence_and_keeps_markup(fake_backend) -> None:
    sink = _CaptureSink()
    fake_backend.replies["translate_content"] = (
        '```html\n<p>안녕 <a href="https://x.test/">링크</a></p>\n```'
    )

    html = asyncio.run(
        translate_content(
            '<p>Hello <a href="https://x.test/">link</a></p>',
            backend=fake_backend,
            profile=FAST,
            telemetry=TelemetryClient(enabled=True, sink=sink),
        )
    )

    assert html == '<p>안녕 <a href="https://x.test/">링크</a></p>'
    assert sink.events == []
    _, _, request = fake_backend.calls[0]
    assert request.system_instruction is not None
    assert request.response_schema is None


def test_translate_content_reports_markup_drift_but_keeps_output(fake_backend) -> None:
    sink = _CaptureSink()
    fake_backend.replies["translate_content"] = "<div>안녕</div><p>세계</p>"

    html = asyncio.run(
        translate_content(
            "<p>Hello</p><p>World</p>",
            backend=fake_backend,
            profile=FAST,
            telemetry=TelemetryClient(enabled=True, sink=sink),
        )
    )

    assert html == "<div>안녕</div><p>세계</p>"
    assert sink.events == [("translation.markup_drift", {"source_tags": 2, "translated_tags": 2})]


def test_translate_content_wraps_model_failures(fake_backend) -> None:
    fake_backend.failures["translate_content"] = ModelCallError("timeout")

    with pytest.raises(ModelCallError) as exc_info:
        asyncio.run(translate_content("<p>x</p>", backend=fake_backend, profile=FAST))

    assert exc_info.value.user_message == CONTENT_TRANSLATION_FAILED_MESSAGE


def test_markup_shape_lists_tags_and_attributes_in_order() -> None:
    shape = markup_shape('<p class="a b">x<a href="/y" rel="nofollow">y</a></p><br>')

    assert shape == [
        ("p", (("class", "a b"),)),
        ("a", (("href", "/y"), ("rel", "nofollow"))),
        ("br", ()),
    ]


def test_enhance_readability_returns_fence_stripped_html(fake_backend) -> None:
    fake_backend.replies["enhance"] = "```html\n<h2>제목</h2><ul><li>항목</li></ul>\n```"

    html = asyncio.run(enhance_readability("<p>항목</p>", backend=fake_backend, model="m"))

    assert html == "<h2>제목</h2><ul><li>항목</li></ul>"


@pytest.mark.parametrize("reply", ["", "```\n```", "Here is your improved text."])
def test_enhance_readability_rejects_non_html(fake_backend, reply: str) -> None:
    fake_backend.replies["enhance"] = reply

    with pytest.raises(InvalidOutputError):
        asyncio.run(enhance_readability("<p>항목</p>", backend=fake_backend, model="m"))


def test_enhance_readability_wraps_model_failures(fake_backend) -> None:
    fake_backend.failures["enhance"] = ModelCallError("overloaded")

    with pytest.raises(ModelCallError) as exc_info:
        asyncio.run(enhance_readability("<p>x</p>", backend=fake_backend, model="m"))

    assert exc_info.value.user_message == ENHANCE_FAILED_MESSAGE
