"""Structured telemetry for jobs, proxy actions and HTTP requests.

Article text and model output never leave the process through telemetry: an
attribute named like content (`content_html`, `translated_text`, ...) is
reported only as a character count under `<name>_chars`. Credentials are
replaced with a marker. Callers attach shared identifiers once with `bind()`
and every later event carries them.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Literal, Protocol

import structlog

TelemetrySinkName = Literal["none", "log"]
TelemetryValue = bool | int | float | str | None

_CREDENTIAL_TOKENS: tuple[str, ...] = ("api_key", "authorization", "secret", "token")
_CONTENT_TOKENS: tuple[str, ...] = (
    "body",
    "content",
    "html",
    "payload",
    "prompt",
    "summary",
    "text",
    "value",
)
_REDACTED = "[redacted]"
_MAX_STRING_LENGTH = 160


class TelemetrySink(Protocol):
    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None: ...


class DiscardingTelemetrySink:
    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        del event_name, attributes


class TelemetryLogSink:
    """Writes each event as one record on the isolated `linguascope.telemetry` logger."""

    def __init__(self) -> None:
        self._logger = structlog.get_logger("linguascope.telemetry")

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        self._logger.info("telemetry", telemetry_event=event_name, **attributes)


@dataclass(frozen=True)
class TelemetryClient:
    enabled: bool
    sink: TelemetrySink
    context: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def disabled(cls) -> TelemetryClient:
        return cls(enabled=False, sink=DiscardingTelemetrySink())

    def bind(self, **attributes: Any) -> TelemetryClient:
        return replace(self, context={**self.context, **attributes})

    def emit(self, event_name: str, **attributes: Any) -> None:
        if not self.enabled:
            return
        self.sink.emit(
            event_name=event_name,
            attributes=scrub_attributes({**self.context, **attributes}),
        )


def build_telemetry_client(*, enabled: bool, sink: TelemetrySinkName) -> TelemetryClient:
    if enabled and sink == "log":
        return TelemetryClient(enabled=True, sink=TelemetryLogSink())
    if enabled and sink != "none":
        logging.getLogger("linguascope.telemetry").warning(
            "telemetry disabled; unknown sink=%s",
            sink,
        )
    return TelemetryClient.disabled()


def scrub_attributes(attributes: Mapping[str, Any]) -> dict[str, TelemetryValue]:
    scrubbed: dict[str, TelemetryValue] = {}
    for raw_key, raw_value in attributes.items():
        key = str(raw_key).strip().lower()
        if not key:
            continue
        if any(token in key for token in _CREDENTIAL_TOKENS):
            scrubbed[key] = _REDACTED
        elif any(token in key for token in _CONTENT_TOKENS):
            if isinstance(raw_value, str):
                scrubbed[f"{key}_chars"] = len(raw_value)
            else:
                scrubbed[key] = _REDACTED
        else:
            scrubbed[key] = _compact(raw_value)
    return scrubbed


def _compact(value: Any) -> TelemetryValue:
    if value is None or isinstance(value, bool | int | float):
        return value
    if isinstance(value, str):
        collapsed = " ".join(value.split())
        if len(collapsed) > _MAX_STRING_LENGTH:
            return collapsed[:_MAX_STRING_LENGTH] + "..."
        return collapsed
    if isinstance(value, list | tuple | set | frozenset):
        return len(value)
    return type(value).__name__
