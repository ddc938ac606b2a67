from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from time import perf_counter
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from structlog.contextvars import bind_contextvars, reset_contextvars

from linguascope.app.api.routes import router
from linguascope.app.dependencies import get_settings, get_telemetry
from linguascope.app.logging_config import configure_application_logging

LOGGER = logging.getLogger("linguascope.app")

REQUEST_ID_HEADER = "X-Request-ID"


def health_check() -> dict[str, str]:
    return {"status": "ok"}


@asynccontextmanager
async def app_lifespan(_: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    targets = configure_application_logging(settings)
    LOGGER.info(
        "linguascope started transport=%s default_tier=%s target_language=%s log_file=%s",
        settings.llm_transport,
        settings.default_model_tier,
        settings.target_language,
        targets.log_file,
    )
    yield


def _request_id(request: Request) -> str:
    supplied = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
    return supplied or uuid4().hex


def _elapsed_ms(started_at: float) -> int:
    return int((perf_counter() - started_at) * 1000)


async def observe_request(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """Tags logs with a request id and reports the request with whatever job or
    proxy action the route recorded in `request.state.telemetry_tags`."""
    request_id = _request_id(request)
    telemetry = get_telemetry().bind(
        request_id=request_id,
        method=request.method,
        path=request.url.path,
    )
    tags: dict[str, Any] = {}
    request.state.telemetry_tags = tags
    context_tokens = bind_contextvars(http_request_id=request_id)
    started_at = perf_counter()
    telemetry.emit("http.request.start")
    try:
        response = await call_next(request)
    except Exception as exc:
        telemetry.emit(
            "http.request.error",
            duration_ms=_elapsed_ms(started_at),
            error_type=type(exc).__name__,
            **tags,
        )
        raise
    finally:
        reset_contextvars(**context_tokens)

    response.headers[REQUEST_ID_HEADER] = request_id
    telemetry.emit(
        "http.request.finish",
        duration_ms=_elapsed_ms(started_at),
        status_code=response.status_code,
        **tags,
    )
    return response


def create_app() -> FastAPI:
    app = FastAPI(title="LinguaScope API", version="0.1.0", lifespan=app_lifespan)
    app.middleware("http")(observe_request)
    app.include_router(router)
    app.add_api_route(
        "/health",
        health_check,
        methods=["GET"],
        tags=["system"],
        operation_id="health_check",
    )
    return app


app = create_app()
