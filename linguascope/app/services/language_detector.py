from __future__ import annotations

import logging
import re

from linguascope.app.services.content_normalizer import extract_text
from linguascope.app.services.errors import DETECTION_FAILED_MESSAGE, ModelCallError
from linguascope.app.services.llm_client import GenerationRequest, LlmBackend

LOGGER = logging.getLogger("linguascope.language")

_LANGUAGE_CODE_PATTERN = re.compile(r"^[a-z]{2}$")

DETECTION_PROMPT_TEMPLATE = """Detect the predominant language of the following text. \
Respond with ONLY the two-letter ISO 639-1 language code (e.g., 'en' for English, 'ko' for Korean).

Text:
---
{sample}
---"""


def extract_text_sample(content_html: str, max_length: int = 1000) -> str:
    return extract_text(content_html).strip()[:max_length]


def coerce_language_code(raw_reply: str, *, fallback: str) -> str:
    code = raw_reply.strip().lower()
    if _LANGUAGE_CODE_PATTERN.match(code):
        return code
    return fallback


async def detect_language(
    content_html: str,
    *,
    backend: LlmBackend,
    model: str,
    target_language: str = "ko",
    fallback_language: str = "en",
    sample_chars: int = 1000,
) -> str:
    sample = extract_text_sample(content_html, max_length=sample_chars)
    if not sample:
        # Nothing to translate; report the target language so translation is skipped.
        return target_language

    try:
        reply = await backend.generate(
            model=model,
            contents=DETECTION_PROMPT_TEMPLATE.format(sample=sample),
            request=GenerationRequest(disable_thinking=True),
        )
    except ModelCallError as exc:
        raise ModelCallError(str(exc), user_message=DETECTION_FAILED_MESSAGE) from exc

    code = coerce_language_code(reply, fallback=fallback_language)
    if code != reply.strip().lower():
        LOGGER.info(
            "language detector reply coerced reply=%r fallback=%s",
            reply[:40],
            fallback_language,
        )
    return code
