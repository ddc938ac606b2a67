from __future__ import annotations

from linguascope.app.services.errors import (
    ENHANCE_FAILED_MESSAGE,
    InvalidOutputError,
    ModelCallError,
)
from linguascope.app.services.llm_client import GenerationRequest, LlmBackend, strip_markdown_fence

ENHANCE_PROMPT_TEMPLATE = """You are an expert editor. Reformat the following Korean HTML \
content for better readability (add headings, lists, bold text, break paragraphs). \
Do not change the core meaning or language. Your response must be a single block of valid HTML.

HTML TO ENHANCE:
---
{content_html}
---"""


async def enhance_readability(content_html: str, *, backend: LlmBackend, model: str) -> str:
    try:
        reply = await backend.generate(
            model=model,
            contents=ENHANCE_PROMPT_TEMPLATE.format(content_html=content_html),
            request=GenerationRequest(),
        )
    except ModelCallError as exc:
        raise ModelCallError(str(exc), user_message=ENHANCE_FAILED_MESSAGE) from exc

    enhanced_html = strip_markdown_fence(reply)
    if not enhanced_html or not enhanced_html.startswith("<"):
        raise InvalidOutputError(
            f"enhancer returned non-HTML output chars={len(enhanced_html)}"
        )
    return enhanced_html
