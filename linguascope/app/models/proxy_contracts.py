from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from linguascope.app.models.analysis_contracts import AnalysisOutput, ModelTier

ProxyAction = Literal[
    "detectLanguage",
    "performAnalysis",
    "translateAnalysis",
    "performTranslation",
    "enhanceReadability",
]
PROXY_ACTIONS: tuple[ProxyAction, ...] = (
    "detectLanguage",
    "performAnalysis",
    "translateAnalysis",
    "performTranslation",
    "enhanceReadability",
)

_PAYLOAD_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ProxyRequest(BaseModel):
    # `action` stays a plain string so unknown actions reach the handler and get a 400.
    model_config = ConfigDict(extra="ignore")

    action: str
    payload: dict[str, Any] = Field(default_factory=dict)


class ProxyResultResponse(BaseModel):
    result: Any


class ProxyErrorResponse(BaseModel):
    error: str


class DetectLanguagePayload(BaseModel):
    model_config = _PAYLOAD_CONFIG

    content_html: str


class PerformAnalysisPayload(BaseModel):
    model_config = _PAYLOAD_CONFIG

    content_html: str
    model: ModelTier = "fast"


class TranslateAnalysisPayload(BaseModel):
    model_config = _PAYLOAD_CONFIG

    analysis: AnalysisOutput
    model: ModelTier = "fast"


class PerformTranslationPayload(BaseModel):
    model_config = _PAYLOAD_CONFIG

    content_html: str
    model: ModelTier = "fast"


class EnhanceReadabilityPayload(BaseModel):
    model_config = _PAYLOAD_CONFIG

    content_html: str
