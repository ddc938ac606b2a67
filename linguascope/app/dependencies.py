from __future__ import annotations

from functools import lru_cache

import httpx

from linguascope.app.config import AppSettings, load_settings
from linguascope.app.services.analysis_gateway import (
    AnalysisGateway,
    LocalAnalysisGateway,
    ProxyAnalysisGateway,
)
from linguascope.app.services.content_normalizer import ContentNormalizer
from linguascope.app.services.errors import ModelCallError
from linguascope.app.services.job_session_service import JobSessionService
from linguascope.app.services.llm_client import GeminiBackend, LlmBackend
from linguascope.app.telemetry import TelemetryClient, build_telemetry_client

MISSING_API_KEY_MESSAGE = "API 키가 설정되지 않았습니다. 서버 설정을 확인해주세요."


def build_llm_backend(settings: AppSettings) -> LlmBackend:
    if not settings.gemini_api_key:
        raise ModelCallError(
            "gemini api key is not configured",
            user_message=MISSING_API_KEY_MESSAGE,
        )
    return GeminiBackend(api_key=settings.gemini_api_key)


def build_http_transport(settings: AppSettings) -> httpx.AsyncBaseTransport | None:
    _ = settings
    return None


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return load_settings()


@lru_cache(maxsize=1)
def get_telemetry() -> TelemetryClient:
    settings = get_settings()
    return build_telemetry_client(
        enabled=settings.telemetry_enabled,
        sink=settings.telemetry_sink,
    )


@lru_cache(maxsize=1)
def get_llm_backend() -> LlmBackend:
    return build_llm_backend(get_settings())


@lru_cache(maxsize=1)
def get_content_normalizer() -> ContentNormalizer:
    settings = get_settings()
    return ContentNormalizer(
        relay_prefix=settings.cors_relay_prefix,
        fetch_timeout_seconds=settings.fetch_timeout_seconds,
        user_agent=settings.fetch_user_agent,
        readability_min_chars=settings.readability_min_chars,
        transport=build_http_transport(settings),
        telemetry=get_telemetry(),
    )


@lru_cache(maxsize=1)
def get_local_gateway() -> LocalAnalysisGateway:
    return LocalAnalysisGateway.from_settings(
        get_settings(),
        backend=get_llm_backend(),
        telemetry=get_telemetry(),
    )


@lru_cache(maxsize=1)
def get_pipeline_gateway() -> AnalysisGateway:
    settings = get_settings()
    if settings.llm_transport == "proxy" and settings.proxy_url:
        return ProxyAnalysisGateway(
            proxy_url=settings.proxy_url,
            timeout_seconds=settings.proxy_timeout_seconds,
            transport=build_http_transport(settings),
        )
    return get_local_gateway()


@lru_cache(maxsize=1)
def get_job_session() -> JobSessionService:
    settings = get_settings()
    return JobSessionService(
        normalizer=get_content_normalizer(),
        gateway=get_pipeline_gateway(),
        target_language=settings.target_language,
        default_model_tier=settings.default_model_tier,
        telemetry=get_telemetry(),
    )


def reset_cached_dependencies() -> None:
    get_job_session.cache_clear()
    get_pipeline_gateway.cache_clear()
    get_local_gateway.cache_clear()
    get_content_normalizer.cache_clear()
    get_llm_backend.cache_clear()
    get_telemetry.cache_clear()
    get_settings.cache_clear()
