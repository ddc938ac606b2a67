"""The five model operations behind one interface.

`LocalAnalysisGateway` runs the shared operation modules in-process with a
provider backend. `ProxyAnalysisGateway` sends the same operations as
`{action, payload}` requests to a remote `/api/proxy`, whose handler
(`execute_proxy_action`) calls a `LocalAnalysisGateway`. Both transports
therefore run one implementation of each operation.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from linguascope.app.config import AppSettings
from linguascope.app.models.analysis_contracts import AnalysisOutput, ModelTier
from linguascope.app.models.proxy_contracts import (
    PROXY_ACTIONS,
    DetectLanguagePayload,
    EnhanceReadabilityPayload,
    PerformAnalysisPayload,
    PerformTranslationPayload,
    TranslateAnalysisPayload,
)
from linguascope.app.services import (
    analysis_client,
    language_detector,
    readability_enhancer,
    translation_client,
)
from linguascope.app.services.errors import (
    ANALYSIS_FAILED_MESSAGE,
    ANALYSIS_TRANSLATION_FAILED_MESSAGE,
    IncompleteResponseError,
    NetworkError,
    RemoteOperationError,
)
from linguascope.app.services.llm_client import LlmBackend, resolve_model_profile
from linguascope.app.telemetry import TelemetryClient

LOGGER = logging.getLogger("linguascope.gateway")

_PayloadT = TypeVar("_PayloadT", bound=BaseModel)


class AnalysisGateway(Protocol):
    async def detect_language(self, content_html: str) -> str: ...

    async def analyze(self, content_html: str, tier: ModelTier) -> AnalysisOutput: ...

    async def translate_analysis(self, analysis: AnalysisOutput, tier: ModelTier) -> AnalysisOutput: ...

    async def translate_content(self, content_html: str, tier: ModelTier) -> str: ...

    async def enhance_readability(self, content_html: str) -> str: ...


class UnknownProxyActionError(ValueError):
    pass


class InvalidProxyPayloadError(ValueError):
    pass


class LocalAnalysisGateway:
    def __init__(
        self,
        *,
        backend: LlmBackend,
        analysis_model: str = "gemini-2.5-flash",
        detection_model: str = "gemini-2.5-flash",
        enhance_model: str = "gemini-2.5-flash",
        target_language: str = "ko",
        fallback_language: str = "en",
        detection_sample_chars: int = 1000,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._backend = backend
        self._analysis_model = analysis_model
        self._detection_model = detection_model
        self._enhance_model = enhance_model
        self._target_language = target_language
        self._fallback_language = fallback_language
        self._detection_sample_chars = detection_sample_chars
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        *,
        backend: LlmBackend,
        telemetry: TelemetryClient | None = None,
    ) -> LocalAnalysisGateway:
        return cls(
            backend=backend,
            analysis_model=settings.analysis_model,
            detection_model=settings.detection_model,
            enhance_model=settings.enhance_model,
            target_language=settings.target_language,
            fallback_language=settings.detection_fallback_language,
            detection_sample_chars=settings.detection_sample_chars,
            telemetry=telemetry,
        )

    async def detect_language(self, content_html: str) -> str:
        return await language_detector.detect_language(
            content_html,
            backend=self._backend,
            model=self._detection_model,
            target_language=self._target_language,
            fallback_language=self._fallback_language,
            sample_chars=self._detection_sample_chars,
        )

    async def analyze(self, content_html: str, tier: ModelTier) -> AnalysisOutput:
        return await analysis_client.analyze(
            content_html,
            backend=self._backend,
            profile=resolve_model_profile(tier, model_name=self._analysis_model),
        )

    async def translate_analysis(self, analysis: AnalysisOutput, tier: ModelTier) -> AnalysisOutput:
        return await translation_client.translate_analysis(
            analysis,
            backend=self._backend,
            profile=resolve_model_profile(tier, model_name=self._analysis_model),
        )

    async def translate_content(self, content_html: str, tier: ModelTier) -> str:
        return await translation_client.translate_content(
            content_html,
            backend=self._backend,
            profile=resolve_model_profile(tier, model_name=self._analysis_model),
            telemetry=self._telemetry,
        )

    async def enhance_readability(self, content_html: str) -> str:
        return await readability_enhancer.enhance_readability(
            content_html,
            backend=self._backend,
            model=self._enhance_model,
        )


class ProxyAnalysisGateway:
    def __init__(
        self,
        *,
        proxy_url: str,
        timeout_seconds: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._proxy_url = proxy_url
        self._timeout_seconds = max(1.0, timeout_seconds)
        self._transport = transport

    async def detect_language(self, content_html: str) -> str:
        result = await self._call("detectLanguage", {"contentHtml": content_html})
        return _expect_text("detectLanguage", result)

    async def analyze(self, content_html: str, tier: ModelTier) -> AnalysisOutput:
        result = await self._call("performAnalysis", {"contentHtml": content_html, "model": tier})
        return _expect_analysis("performAnalysis", result, user_message=ANALYSIS_FAILED_MESSAGE)

    async def translate_analysis(self, analysis: AnalysisOutput, tier: ModelTier) -> AnalysisOutput:
        result = await self._call(
            "translateAnalysis",
            {"analysis": analysis.model_dump(by_alias=True), "model": tier},
        )
        return _expect_analysis(
            "translateAnalysis", result, user_message=ANALYSIS_TRANSLATION_FAILED_MESSAGE
        )

    async def translate_content(self, content_html: str, tier: ModelTier) -> str:
        result = await self._call(
            "performTranslation",
            {"contentHtml": content_html, "model": tier},
        )
        return _expect_text("performTranslation", result)

    async def enhance_readability(self, content_html: str) -> str:
        result = await self._call("enhanceReadability", {"contentHtml": content_html})
        return _expect_text("enhanceReadability", result)

    async def _call(self, action: str, payload: dict[str, Any]) -> Any:
        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=self._timeout_seconds,
            ) as client:
                response = await client.post(
                    self._proxy_url,
                    json={"action": action, "payload": payload},
                )
        except httpx.HTTPError as exc:
            LOGGER.warning(
                "proxy call failed action=%s error_type=%s",
                action,
                type(exc).__name__,
            )
            raise NetworkError(f"proxy_network_error:{type(exc).__name__}") from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.is_success:
            error = body.get("error") if isinstance(body, dict) else None
            if not isinstance(error, str) or not error.strip():
                error = f"서버 에러: {response.status_code}"
            raise RemoteOperationError(action, error)
        if not isinstance(body, dict) or "result" not in body:
            raise RemoteOperationError(action, "프록시 응답 형식이 올바르지 않습니다.")
        return body["result"]


def _expect_text(action: str, result: Any) -> str:
    if not isinstance(result, str):
        raise RemoteOperationError(action, "프록시 응답 형식이 올바르지 않습니다.")
    return result


def _expect_analysis(action: str, result: Any, *, user_message: str) -> AnalysisOutput:
    try:
        return AnalysisOutput.model_validate(result)
    except ValidationError as exc:
        raise IncompleteResponseError(
            f"proxy returned an incomplete analysis action={action}",
            user_message=user_message,
        ) from exc


def _parse_payload(model_cls: type[_PayloadT], payload: dict[str, Any]) -> _PayloadT:
    try:
        return model_cls.model_validate(payload)
    except ValidationError as exc:
        raise InvalidProxyPayloadError(f"invalid payload: {exc.error_count()} error(s)") from exc


async def execute_proxy_action(
    gateway: AnalysisGateway,
    action: str,
    payload: dict[str, Any],
) -> Any:
    """Run one proxy action and return its JSON-serializable result."""
    if action not in PROXY_ACTIONS:
        raise UnknownProxyActionError(action)

    if action == "detectLanguage":
        detect = _parse_payload(DetectLanguagePayload, payload)
        return await gateway.detect_language(detect.content_html)
    if action == "performAnalysis":
        perform = _parse_payload(PerformAnalysisPayload, payload)
        analysis = await gateway.analyze(perform.content_html, perform.model)
        return analysis.model_dump(by_alias=True)
    if action == "translateAnalysis":
        translate = _parse_payload(TranslateAnalysisPayload, payload)
        translated = await gateway.translate_analysis(translate.analysis, translate.model)
        return translated.model_dump(by_alias=True)
    if action == "performTranslation":
        translation = _parse_payload(PerformTranslationPayload, payload)
        return await gateway.translate_content(translation.content_html, translation.model)

    enhance = _parse_payload(EnhanceReadabilityPayload, payload)
    return await gateway.enhance_readability(enhance.content_html)
