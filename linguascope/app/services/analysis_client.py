from __future__ import annotations

from typing import Any

from linguascope.app.models.analysis_contracts import AnalysisOutput
from linguascope.app.services.errors import ANALYSIS_FAILED_MESSAGE, ModelCallError
from linguascope.app.services.llm_client import (
    GenerationRequest,
    LlmBackend,
    ModelProfile,
    parse_structured_response,
)

ANALYSIS_FIELDS: tuple[str, ...] = (
    "title",
    "oneLineSummary",
    "keyPoints",
    "keyEntities",
    "keywords",
)

ANALYSIS_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "title": {
            "type": "STRING",
            "description": (
                "A concise and suitable title for the provided text, "
                "in the original language of the text."
            ),
        },
        "oneLineSummary": {
            "type": "STRING",
            "description": (
                "A single, comprehensive sentence summarizing the entire text, "
                "in the original language of the text."
            ),
        },
        "keyPoints": {
            "type": "ARRAY",
            "description": (
                "A concise array of the 3 to 5 most critical key points from the text. "
                "Each point should be a complete but brief sentence, "
                "in the original language of the text."
            ),
            "items": {"type": "STRING"},
        },
        "keyEntities": {
            "type": "ARRAY",
            "description": (
                "The key people, organizations, or entities mentioned in the text, "
                "in the original language."
            ),
            "items": {"type": "STRING"},
        },
        "keywords": {
            "type": "ARRAY",
            "description": "The main keywords or topics of the text, in the original language.",
            "items": {"type": "STRING"},
        },
    },
    "required": list(ANALYSIS_FIELDS),
}

ANALYSIS_PROMPT_TEMPLATE = """Analyze the following HTML content. Provide the title, \
oneLineSummary, keyPoints (3 to 5 items), keyEntities, and keywords in the original language \
of the text. Return a single, valid JSON object that matches the provided schema.

HTML CONTENT:
---
{content_html}
---"""


async def analyze(
    content_html: str,
    *,
    backend: LlmBackend,
    profile: ModelProfile,
) -> AnalysisOutput:
    try:
        reply = await backend.generate(
            model=profile.model_name,
            contents=ANALYSIS_PROMPT_TEMPLATE.format(content_html=content_html),
            request=GenerationRequest(
                response_schema=ANALYSIS_SCHEMA,
                disable_thinking=profile.disable_thinking,
            ),
        )
    except ModelCallError as exc:
        raise ModelCallError(str(exc), user_message=ANALYSIS_FAILED_MESSAGE) from exc
    return parse_structured_response(reply, AnalysisOutput, user_message=ANALYSIS_FAILED_MESSAGE)
