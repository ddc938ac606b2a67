from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types
from pydantic import BaseModel, ValidationError

from linguascope.app.models.analysis_contracts import ModelTier
from linguascope.app.services.errors import (
    IncompleteResponseError,
    MalformedResponseError,
    ModelCallError,
)

LOGGER = logging.getLogger("linguascope.llm")

_CODE_FENCE_PATTERN = re.compile(r"^```(?:\w+)?\s*([\s\S]*?)\s*```$")

_ParsedModel = TypeVar("_ParsedModel", bound=BaseModel)


@dataclass(frozen=True)
class GenerationRequest:
    """Provider-neutral description of one model call."""

    response_schema: dict[str, Any] | None = None
    system_instruction: str | None = None
    disable_thinking: bool = False


@dataclass(frozen=True)
class ModelProfile:
    model_name: str
    disable_thinking: bool


class LlmBackend(Protocol):
    async def generate(self, *, model: str, contents: str, request: GenerationRequest) -> str: ...


def resolve_model_profile(tier: ModelTier, *, model_name: str) -> ModelProfile:
    # Both tiers use the same model; the fast tier skips the reasoning budget.
    if tier == "fast":
        return ModelProfile(model_name=model_name, disable_thinking=True)
    return ModelProfile(model_name=model_name, disable_thinking=False)


class GeminiBackend:
    def __init__(self, *, api_key: str) -> None:
        self._client = genai.Client(api_key=api_key)

    async def generate(self, *, model: str, contents: str, request: GenerationRequest) -> str:
        config = _build_generate_config(request)
        LOGGER.debug(
            "gemini call model=%s chars=%s structured=%s thinking_disabled=%s",
            model,
            len(contents),
            request.response_schema is not None,
            request.disable_thinking,
        )
        try:
            response = await self._client.aio.models.generate_content(
                model=model,
                contents=contents,
                config=config,
            )
        except (genai_errors.APIError, httpx.HTTPError) as exc:
            raise ModelCallError(
                f"gemini call failed model={model} error_type={type(exc).__name__} error={exc}"
            ) from exc
        return response.text or ""


def _build_generate_config(request: GenerationRequest) -> genai_types.GenerateContentConfig:
    options: dict[str, Any] = {}
    if request.response_schema is not None:
        options["response_mime_type"] = "application/json"
        options["response_schema"] = request.response_schema
    if request.system_instruction is not None:
        options["system_instruction"] = request.system_instruction
    if request.disable_thinking:
        options["thinking_config"] = genai_types.ThinkingConfig(thinking_budget=0)
    return genai_types.GenerateContentConfig(**options)


def strip_markdown_fence(text: str) -> str:
    text_to_clean = text.strip()
    match = _CODE_FENCE_PATTERN.match(text_to_clean)
    if match is not None and match.group(1):
        return match.group(1).strip()
    return text_to_clean


def parse_structured_response(
    text: str,
    model_cls: type[_ParsedModel],
    *,
    user_message: str | None = None,
) -> _ParsedModel:
    cleaned = strip_markdown_fence(text)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise MalformedResponseError(
            f"model response is not valid JSON: {exc.msg}",
            user_message=user_message,
        ) from exc
    if not isinstance(parsed, dict):
        raise MalformedResponseError(
            f"model response is not a JSON object type={type(parsed).__name__}",
            user_message=user_message,
        )
    try:
        return model_cls.model_validate(parsed)
    except ValidationError as exc:
        missing = sorted(
            ".".join(str(part) for part in error["loc"]) for error in exc.errors()
        )
        raise IncompleteResponseError(
            f"model response is missing or has invalid fields: {', '.join(missing)}",
            user_message=user_message,
        ) from exc
