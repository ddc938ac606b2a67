from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from structlog.contextvars import bind_contextvars, reset_contextvars

from linguascope.app import dependencies
from linguascope.app.dependencies import get_job_session
from linguascope.app.models.job_contracts import (
    EditableContent,
    EnhanceResponse,
    ExportResponse,
    ExportSource,
    JobSubmitRequest,
    JobView,
)
from linguascope.app.models.proxy_contracts import PROXY_ACTIONS, ProxyRequest
from linguascope.app.services.analysis_gateway import (
    InvalidProxyPayloadError,
    UnknownProxyActionError,
    execute_proxy_action,
)
from linguascope.app.services.errors import UNEXPECTED_FAILURE_MESSAGE, LinguaScopeError
from linguascope.app.services.export_service import ExportFormat
from linguascope.app.services.job_orchestrator import AnalysisJob
from linguascope.app.services.job_session_service import (
    ExportSourceUnavailableError,
    JobInProgressError,
    JobNotCompletedError,
    JobSessionService,
    NoCurrentJobError,
)

LOGGER = logging.getLogger("linguascope.api")

router = APIRouter()

JobSession = Annotated[JobSessionService, Depends(get_job_session)]


def _job_view(job: AnalysisJob) -> JobView:
    return JobView(
        job_id=job.job_id,
        status=job.status,
        status_message=job.status_message,
        status_history=list(job.status_history),
        detected_language=job.detected_language,
        result=job.result,
        error=job.error_message,
    )


def _tag_request(request: Request, **tags: str) -> None:
    """Adds fields to the `http.request.*` events the middleware emits for this request."""
    request_tags = getattr(request.state, "telemetry_tags", None)
    if request_tags is not None:
        request_tags.update(tags)


def _current_job(session: JobSessionService) -> AnalysisJob:
    try:
        return session.current()
    except NoCurrentJobError as exc:
        raise HTTPException(status_code=404, detail="No job has been submitted.") from exc


@router.post("/jobs", response_model=JobView, tags=["jobs"], operation_id="submit_job")
async def submit_job(submission: JobSubmitRequest, request: Request, session: JobSession) -> JobView:
    context_tokens = bind_contextvars(job_mode=submission.mode)
    try:
        job = await session.submit(
            value=submission.value,
            mode=submission.mode,
            model_tier=submission.model,
        )
    except JobInProgressError as exc:
        raise HTTPException(status_code=409, detail="A job is already in progress.") from exc
    finally:
        reset_contextvars(**context_tokens)
    _tag_request(request, job_id=job.job_id, job_status=job.status)
    return _job_view(job)


@router.get("/jobs/current", response_model=JobView, tags=["jobs"], operation_id="get_current_job")
def get_current_job(session: JobSession) -> JobView:
    return _job_view(_current_job(session))


@router.delete("/jobs/current", status_code=204, tags=["jobs"], operation_id="reset_current_job")
def reset_current_job(session: JobSession) -> None:
    try:
        session.reset()
    except JobInProgressError as exc:
        raise HTTPException(status_code=409, detail="A job is still in progress.") from exc


@router.get(
    "/jobs/current/editable",
    response_model=EditableContent,
    tags=["jobs"],
    operation_id="get_editable_content",
)
def get_editable_content(session: JobSession) -> EditableContent:
    _current_job(session)
    try:
        return EditableContent(html=session.editable_html())
    except JobNotCompletedError as exc:
        raise HTTPException(status_code=409, detail="The current job has not completed.") from exc


@router.put(
    "/jobs/current/editable",
    response_model=EditableContent,
    tags=["jobs"],
    operation_id="replace_editable_content",
)
def replace_editable_content(content: EditableContent, session: JobSession) -> EditableContent:
    _current_job(session)
    try:
        return EditableContent(html=session.replace_editable_html(content.html))
    except JobNotCompletedError as exc:
        raise HTTPException(status_code=409, detail="The current job has not completed.") from exc


@router.post(
    "/jobs/current/enhance",
    response_model=EnhanceResponse,
    tags=["jobs"],
    operation_id="enhance_current_job",
)
async def enhance_current_job(session: JobSession) -> EnhanceResponse:
    _current_job(session)
    try:
        enhanced_html = await session.enhance()
    except JobNotCompletedError as exc:
        raise HTTPException(status_code=409, detail="The current job has not completed.") from exc
    except LinguaScopeError as exc:
        raise HTTPException(status_code=502, detail=exc.user_message) from exc
    return EnhanceResponse(html=enhanced_html)


@router.get(
    "/jobs/current/export",
    response_model=ExportResponse,
    tags=["jobs"],
    operation_id="export_current_job",
)
def export_current_job(
    session: JobSession,
    source: Annotated[ExportSource, Query()] = "translation",
    export_format: Annotated[ExportFormat, Query(alias="format")] = "markdown",
) -> ExportResponse:
    _current_job(session)
    try:
        document = session.export(source=source, export_format=export_format)
    except JobNotCompletedError as exc:
        raise HTTPException(status_code=409, detail="The current job has not completed.") from exc
    except ExportSourceUnavailableError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return ExportResponse(
        filename=document.filename,
        media_type=document.media_type,
        content=document.content,
    )


@router.post("/api/proxy", tags=["proxy"], operation_id="proxy_action")
async def proxy_action(request: Request) -> JSONResponse:
    try:
        body: Any = await request.json()
    except ValueError:
        return JSONResponse(status_code=400, content={"error": "Invalid JSON body"})
    try:
        proxy_request = ProxyRequest.model_validate(body)
    except ValidationError:
        return JSONResponse(status_code=400, content={"error": "Invalid request body"})

    if proxy_request.action not in PROXY_ACTIONS:
        return JSONResponse(status_code=400, content={"error": "Invalid action"})

    _tag_request(request, proxy_action=proxy_request.action)
    context_tokens = bind_contextvars(proxy_action=proxy_request.action)
    try:
        # A missing credential is reported as a 500 error body.
        gateway = dependencies.get_local_gateway()
        result = await execute_proxy_action(gateway, proxy_request.action, proxy_request.payload)
    except UnknownProxyActionError:
        return JSONResponse(status_code=400, content={"error": "Invalid action"})
    except InvalidProxyPayloadError as exc:
        return JSONResponse(status_code=400, content={"error": str(exc)})
    except LinguaScopeError as exc:
        return JSONResponse(status_code=500, content={"error": exc.user_message})
    except Exception:
        LOGGER.exception("proxy action crashed action=%s", proxy_request.action)
        return JSONResponse(status_code=500, content={"error": UNEXPECTED_FAILURE_MESSAGE})
    finally:
        reset_contextvars(**context_tokens)
    return JSONResponse(status_code=200, content={"result": result})


@router.api_route(
    "/api/proxy",
    methods=["GET", "PUT", "PATCH", "DELETE"],
    include_in_schema=False,
)
def proxy_method_not_allowed() -> JSONResponse:
    return JSONResponse(status_code=405, content={"error": "Method Not Allowed"})
