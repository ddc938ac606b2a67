"""Single-job state machine driving extraction, detection, analysis and translation.

Statuses only move forward along `JOB_STATUS_ORDER`; `failed` can be entered
from any non-terminal status and is absorbing. An `AnalysisJob` owns all of its
mutable state, and `run()` may be called only once per job.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from typing import Final, Literal

from linguascope.app.models.analysis_contracts import (
    AnalysisOutput,
    InputMode,
    JobOutputs,
    JobResult,
    ModelTier,
    ProcessingTime,
)
from linguascope.app.services.analysis_gateway import AnalysisGateway
from linguascope.app.services.content_normalizer import ContentNormalizer
from linguascope.app.services.errors import UNEXPECTED_FAILURE_MESSAGE, LinguaScopeError
from linguascope.app.telemetry import TelemetryClient

LOGGER = logging.getLogger("linguascope.job")

JobStatus = Literal[
    "queued",
    "extracting",
    "detecting-language",
    "analyzing",
    "translating",
    "completed",
    "failed",
]

JOB_STATUS_QUEUED: Final = "queued"
JOB_STATUS_EXTRACTING: Final = "extracting"
JOB_STATUS_DETECTING_LANGUAGE: Final = "detecting-language"
JOB_STATUS_ANALYZING: Final = "analyzing"
JOB_STATUS_TRANSLATING: Final = "translating"
JOB_STATUS_COMPLETED: Final = "completed"
JOB_STATUS_FAILED: Final = "failed"

JOB_STATUS_ORDER: tuple[JobStatus, ...] = (
    JOB_STATUS_QUEUED,
    JOB_STATUS_EXTRACTING,
    JOB_STATUS_DETECTING_LANGUAGE,
    JOB_STATUS_ANALYZING,
    JOB_STATUS_TRANSLATING,
    JOB_STATUS_COMPLETED,
)
TERMINAL_STATUSES: frozenset[str] = frozenset({JOB_STATUS_COMPLETED, JOB_STATUS_FAILED})

STATUS_MESSAGES: dict[str, str] = {
    JOB_STATUS_QUEUED: "작업 대기 중...",
    JOB_STATUS_EXTRACTING: "본문 추출 중...",
    JOB_STATUS_DETECTING_LANGUAGE: "언어 감지 중...",
    JOB_STATUS_ANALYZING: "요약/키워드 추출 중...",
    JOB_STATUS_TRANSLATING: "전체 번역 중...",
    JOB_STATUS_COMPLETED: "분석 완료!",
    JOB_STATUS_FAILED: "작업 실패",
}

CANCELLED_MESSAGE = "작업이 취소되었습니다."

StatusListener = Callable[["AnalysisJob", str], None]


class JobFailedError(RuntimeError):
    def __init__(self, job_id: str, user_message: str) -> None:
        super().__init__(f"job {job_id} failed: {user_message}")
        self.job_id = job_id
        self.user_message = user_message


class InvalidTransitionError(RuntimeError):
    pass


class AnalysisJob:
    def __init__(
        self,
        *,
        value: str,
        mode: InputMode,
        model_tier: ModelTier,
        normalizer: ContentNormalizer,
        gateway: AnalysisGateway,
        target_language: str = "ko",
        telemetry: TelemetryClient | None = None,
        on_status: StatusListener | None = None,
    ) -> None:
        self.job_id = uuid.uuid4().hex
        self.value = value
        self.mode = mode
        self.model_tier = model_tier
        self.target_language = target_language
        self.status: str = JOB_STATUS_QUEUED
        self.status_history: list[str] = [JOB_STATUS_QUEUED]
        self.started_at: float | None = None
        self.detected_language: str | None = None
        self.content_html: str | None = None
        self.analysis: AnalysisOutput | None = None
        self.translation: str | None = None
        self.result: JobResult | None = None
        self.error_message: str | None = None
        self._normalizer = normalizer
        self._gateway = gateway
        base_telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()
        self._telemetry = base_telemetry.bind(job_id=self.job_id, mode=mode)
        self._on_status = on_status
        self._ran = False

    @property
    def status_message(self) -> str:
        if self.status == JOB_STATUS_FAILED and self.error_message:
            return self.error_message
        return STATUS_MESSAGES[self.status]

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    async def run(self) -> JobResult:
        if self._ran:
            raise RuntimeError(f"job {self.job_id} has already been run")
        self._ran = True

        try:
            return await self._run_steps()
        except LinguaScopeError as exc:
            LOGGER.warning(
                "job failed job_id=%s status=%s error_type=%s error=%s",
                self.job_id,
                self.status,
                type(exc).__name__,
                exc,
            )
            self._fail(exc.user_message, error_type=type(exc).__name__)
            raise JobFailedError(self.job_id, exc.user_message) from exc
        except asyncio.CancelledError:
            LOGGER.warning("job cancelled job_id=%s status=%s", self.job_id, self.status)
            self._fail(CANCELLED_MESSAGE, error_type="CancelledError")
            raise
        except Exception as exc:
            LOGGER.exception("job crashed job_id=%s status=%s", self.job_id, self.status)
            self._fail(UNEXPECTED_FAILURE_MESSAGE, error_type=type(exc).__name__)
            raise JobFailedError(self.job_id, UNEXPECTED_FAILURE_MESSAGE) from exc

    async def _run_steps(self) -> JobResult:
        self._transition(JOB_STATUS_EXTRACTING)
        self.started_at = time.perf_counter()
        if self.mode == "url":
            self.content_html = await self._normalizer.extract_from_url(self.value)
        else:
            self.content_html = self._normalizer.text_to_html(self.value)

        self._transition(JOB_STATUS_DETECTING_LANGUAGE)
        self.detected_language = await self._gateway.detect_language(self.content_html)
        needs_translation = self.detected_language != self.target_language

        self._transition(JOB_STATUS_ANALYZING)
        self.analysis = await self._gateway.analyze(self.content_html, self.model_tier)

        analysis = self.analysis
        full_translation = self.content_html
        if needs_translation:
            self._transition(JOB_STATUS_TRANSLATING)
            analysis, full_translation = await self._translate_pair(
                self.analysis, self.content_html
            )
            self.translation = full_translation

        elapsed = time.perf_counter() - self.started_at
        self.result = JobResult(
            title=analysis.title,
            original_url=self.value if self.mode == "url" else "",
            original_content=self.content_html,
            processing_time=ProcessingTime(total=round(elapsed, 3)),
            outputs=JobOutputs(
                one_line_summary=analysis.one_line_summary,
                key_points=analysis.key_points,
                key_entities=analysis.key_entities,
                keywords=analysis.keywords,
                full_translation=full_translation,
            ),
        )
        self._transition(JOB_STATUS_COMPLETED)
        self._telemetry.emit(
            "job.completed",
            model_tier=self.model_tier,
            detected_language=self.detected_language,
            translated=needs_translation,
            duration_seconds=self.result.processing_time.total,
        )
        return self.result

    async def _translate_pair(
        self, analysis: AnalysisOutput, content_html: str
    ) -> tuple[AnalysisOutput, str]:
        """Translate the analysis and the article together; one failure cancels the other call."""
        try:
            async with asyncio.TaskGroup() as group:
                analysis_task = group.create_task(
                    self._gateway.translate_analysis(analysis, self.model_tier)
                )
                content_task = group.create_task(
                    self._gateway.translate_content(content_html, self.model_tier)
                )
        except ExceptionGroup as failures:
            raise failures.exceptions[0]
        return analysis_task.result(), content_task.result()

    def _transition(self, next_status: str) -> None:
        if self.is_terminal:
            raise InvalidTransitionError(
                f"job {self.job_id} is {self.status}; cannot move to {next_status}"
            )
        if next_status != JOB_STATUS_FAILED and (
            JOB_STATUS_ORDER.index(next_status) <= JOB_STATUS_ORDER.index(self.status)
        ):
            raise InvalidTransitionError(
                f"job {self.job_id} cannot move from {self.status} back to {next_status}"
            )

        previous_status = self.status
        self.status = next_status
        self.status_history.append(next_status)
        LOGGER.info(
            "job status job_id=%s from=%s to=%s",
            self.job_id,
            previous_status,
            next_status,
        )
        self._telemetry.emit(
            "job.status",
            from_status=previous_status,
            to_status=next_status,
        )
        if self._on_status is not None:
            self._on_status(self, next_status)

    def _fail(self, user_message: str, *, error_type: str) -> None:
        if self.is_terminal:
            return
        self.error_message = user_message
        self.result = None
        self._transition(JOB_STATUS_FAILED)
        self._telemetry.emit(
            "job.failed",
            error_type=error_type,
            failed_during=self.status_history[-2],
        )
