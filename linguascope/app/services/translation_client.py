from __future__ import annotations

import json
import logging
from typing import Any

from bs4 import BeautifulSoup

from linguascope.app.models.analysis_contracts import AnalysisOutput, TranslatedAnalysis
from linguascope.app.services.analysis_client import ANALYSIS_SCHEMA
from linguascope.app.services.errors import (
    ANALYSIS_TRANSLATION_FAILED_MESSAGE,
    CONTENT_TRANSLATION_FAILED_MESSAGE,
    ModelCallError,
)
from linguascope.app.services.llm_client import (
    GenerationRequest,
    LlmBackend,
    ModelProfile,
    parse_structured_response,
    strip_markdown_fence,
)
from linguascope.app.telemetry import TelemetryClient

LOGGER = logging.getLogger("linguascope.translation")

TRANSLATED_ANALYSIS_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        name: spec for name, spec in ANALYSIS_SCHEMA["properties"].items() if name != "title"
    },
    "required": [name for name in ANALYSIS_SCHEMA["required"] if name != "title"],
}

ANALYSIS_TRANSLATION_PROMPT_TEMPLATE = """Translate the values in the following JSON object \
into Korean. Maintain the exact same JSON structure and keys.

JSON TO TRANSLATE:
---
{payload}
---"""

CONTENT_TRANSLATION_INSTRUCTION = (
    "You are an expert translator. Translate the user-provided HTML content into Korean. "
    "Preserve the entire HTML structure and attributes exactly. "
    "Your response MUST BE ONLY the raw, translated HTML string."
)


async def translate_analysis(
    analysis: AnalysisOutput,
    *,
    backend: LlmBackend,
    profile: ModelProfile,
) -> AnalysisOutput:
    payload = json.dumps(
        analysis.translatable_fields().model_dump(by_alias=True),
        ensure_ascii=False,
        indent=2,
    )
    try:
        reply = await backend.generate(
            model=profile.model_name,
            contents=ANALYSIS_TRANSLATION_PROMPT_TEMPLATE.format(payload=payload),
            request=GenerationRequest(
                response_schema=TRANSLATED_ANALYSIS_SCHEMA,
                disable_thinking=profile.disable_thinking,
            ),
        )
    except ModelCallError as exc:
        raise ModelCallError(str(exc), user_message=ANALYSIS_TRANSLATION_FAILED_MESSAGE) from exc

    translated = parse_structured_response(
        reply,
        TranslatedAnalysis,
        user_message=ANALYSIS_TRANSLATION_FAILED_MESSAGE,
    )
    return analysis.with_translation(translated)


async def translate_content(
    content_html: str,
    *,
    backend: LlmBackend,
    profile: ModelProfile,
    telemetry: TelemetryClient | None = None,
) -> str:
    try:
        reply = await backend.generate(
            model=profile.model_name,
            contents=content_html,
            request=GenerationRequest(
                system_instruction=CONTENT_TRANSLATION_INSTRUCTION,
                disable_thinking=profile.disable_thinking,
            ),
        )
    except ModelCallError as exc:
        raise ModelCallError(str(exc), user_message=CONTENT_TRANSLATION_FAILED_MESSAGE) from exc

    translated_html = strip_markdown_fence(reply)
    source_shape = markup_shape(content_html)
    translated_shape = markup_shape(translated_html)
    if source_shape != translated_shape:
        # Kept as-is: the model output is still the best translation available.
        LOGGER.warning(
            "translated markup differs from source source_tags=%s translated_tags=%s",
            len(source_shape),
            len(translated_shape),
        )
        (telemetry or TelemetryClient.disabled()).emit(
            "translation.markup_drift",
            source_tags=len(source_shape),
            translated_tags=len(translated_shape),
        )
    return translated_html


def markup_shape(html: str) -> list[tuple[str, tuple[tuple[str, str], ...]]]:
    """Tag names with their attributes, in document order."""
    soup = BeautifulSoup(html, "html.parser")
    shape: list[tuple[str, tuple[tuple[str, str], ...]]] = []
    for element in soup.find_all(True):
        attributes = tuple(
            sorted(
                (name, " ".join(value) if isinstance(value, list) else str(value))
                for name, value in element.attrs.items()
            )
        )
        shape.append((element.name, attributes))
    return shape
