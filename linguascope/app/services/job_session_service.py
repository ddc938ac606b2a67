from __future__ import annotations

import logging

from linguascope.app.models.analysis_contracts import InputMode, JobResult, ModelTier
from linguascope.app.models.job_contracts import ExportSource
from linguascope.app.services.analysis_gateway import AnalysisGateway
from linguascope.app.services.content_normalizer import ContentNormalizer
from linguascope.app.services.errors import LinguaScopeError
from linguascope.app.services.export_service import (
    ExportDocument,
    ExportFormat,
    build_editable_html,
    render_export,
)
from linguascope.app.services.job_orchestrator import (
    JOB_STATUS_COMPLETED,
    AnalysisJob,
    JobFailedError,
)
from linguascope.app.telemetry import TelemetryClient

LOGGER = logging.getLogger("linguascope.session")


class JobInProgressError(RuntimeError):
    pass


class NoCurrentJobError(LookupError):
    pass


class JobNotCompletedError(RuntimeError):
    pass


class ExportSourceUnavailableError(LookupError):
    pass


class JobSessionService:
    """Holds the one active job plus the editable and enhanced copies of its translation.

    A new submission is refused while the current job is still running; once the
    current job is terminal, submitting replaces it and clears both copies.
    """

    def __init__(
        self,
        *,
        normalizer: ContentNormalizer,
        gateway: AnalysisGateway,
        target_language: str = "ko",
        default_model_tier: ModelTier = "fast",
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._normalizer = normalizer
        self._gateway = gateway
        self._target_language = target_language
        self._default_model_tier = default_model_tier
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()
        self._current: AnalysisJob | None = None
        self._editable_html: str | None = None
        self._enhanced_html: str | None = None

    async def submit(self, *, value: str, mode: InputMode, model_tier: ModelTier | None = None) -> AnalysisJob:
        if self._current is not None and not self._current.is_terminal:
            raise JobInProgressError(f"job {self._current.job_id} is still {self._current.status}")

        job = AnalysisJob(
            value=value,
            mode=mode,
            model_tier=model_tier or self._default_model_tier,
            normalizer=self._normalizer,
            gateway=self._gateway,
            target_language=self._target_language,
            telemetry=self._telemetry,
        )
        self._current = job
        self._editable_html = None
        self._enhanced_html = None

        try:
            result = await job.run()
        except JobFailedError:
            LOGGER.info("job ended in failure job_id=%s", job.job_id)
            return job

        self._editable_html = build_editable_html(result.outputs.full_translation)
        return job

    def current(self) -> AnalysisJob:
        if self._current is None:
            raise NoCurrentJobError("no job has been submitted")
        return self._current

    def reset(self) -> None:
        if self._current is not None and not self._current.is_terminal:
            raise JobInProgressError(f"job {self._current.job_id} is still {self._current.status}")
        if self._current is not None:
            LOGGER.info("session reset job_id=%s", self._current.job_id)
        self._current = None
        self._editable_html = None
        self._enhanced_html = None

    def editable_html(self) -> str:
        self._completed_result()
        return self._editable_html or ""

    def replace_editable_html(self, html: str) -> str:
        self._completed_result()
        self._editable_html = html
        return html

    async def enhance(self) -> str:
        self._completed_result()
        job_id = self.current().job_id
        try:
            enhanced = await self._gateway.enhance_readability(self._editable_html or "")
        except LinguaScopeError as exc:
            LOGGER.warning(
                "enhance failed job_id=%s error_type=%s error=%s",
                job_id,
                type(exc).__name__,
                exc,
            )
            self._telemetry.emit("enhance.failed", job_id=job_id, error_type=type(exc).__name__)
            raise
        self._enhanced_html = enhanced
        self._telemetry.emit("enhance.completed", job_id=job_id, enhanced_html=enhanced)
        return enhanced

    def export(self, *, source: ExportSource, export_format: ExportFormat) -> ExportDocument:
        result = self._completed_result()
        if source == "original":
            html = result.original_content
        elif source == "translation":
            html = result.outputs.full_translation
        elif source == "editable":
            html = self._editable_html or ""
        else:
            if self._enhanced_html is None:
                raise ExportSourceUnavailableError("no enhanced content; run enhance first")
            html = self._enhanced_html
        return render_export(html, title=result.title, export_format=export_format)

    def _completed_result(self) -> JobResult:
        job = self.current()
        if job.status != JOB_STATUS_COMPLETED or job.result is None:
            raise JobNotCompletedError(f"job {job.job_id} is {job.status}")
        return job.result
