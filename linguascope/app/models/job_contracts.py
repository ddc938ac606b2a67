from __future__ import annotations

from typing import Literal
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, model_validator

from linguascope.app.models.analysis_contracts import InputMode, JobResult, ModelTier

ExportSource = Literal["original", "translation", "editable", "enhanced"]


class JobSubmitRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    value: str = Field(min_length=1, max_length=200_000)
    mode: InputMode = "url"
    model: ModelTier | None = None

    @model_validator(mode="after")
    def _validate_value_for_mode(self) -> JobSubmitRequest:
        if not self.value.strip():
            raise ValueError("value must not be blank")
        if self.mode != "url":
            return self

        normalized = self.value.strip()
        if any(ord(character) < 32 for character in normalized):
            raise ValueError("url contains control characters")
        parsed = urlparse(normalized)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError("url must be an absolute http/https URL")
        self.value = normalized
        return self


class JobView(BaseModel):
    job_id: str
    status: str
    status_message: str
    status_history: list[str]
    detected_language: str | None = None
    result: JobResult | None = None
    error: str | None = None


class EditableContent(BaseModel):
    model_config = ConfigDict(extra="forbid")

    html: str = Field(max_length=2_000_000)


class EnhanceResponse(BaseModel):
    html: str


class ExportResponse(BaseModel):
    filename: str
    media_type: str
    content: str
