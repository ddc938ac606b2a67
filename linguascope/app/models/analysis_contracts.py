from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ModelTier = Literal["fast", "quality"]
InputMode = Literal["url", "text"]

_WIRE_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    frozen=True,
    extra="ignore",
)


class TranslatedAnalysis(BaseModel):
    """Translatable part of an analysis; what the translation call returns."""

    model_config = _WIRE_CONFIG

    one_line_summary: str
    key_points: list[str]
    key_entities: list[str]
    keywords: list[str]


class AnalysisOutput(TranslatedAnalysis):
    title: str

    def translatable_fields(self) -> TranslatedAnalysis:
        return TranslatedAnalysis(
            one_line_summary=self.one_line_summary,
            key_points=self.key_points,
            key_entities=self.key_entities,
            keywords=self.keywords,
        )

    def with_translation(self, translated: TranslatedAnalysis) -> AnalysisOutput:
        # Translation replaces every field except the title.
        return AnalysisOutput(title=self.title, **translated.model_dump())


class ProcessingTime(BaseModel):
    model_config = _WIRE_CONFIG

    total: float = Field(ge=0, description="Seconds from submission to completion.")


class JobOutputs(BaseModel):
    model_config = _WIRE_CONFIG

    one_line_summary: str
    key_points: list[str]
    key_entities: list[str]
    keywords: list[str]
    full_translation: str


class JobResult(BaseModel):
    model_config = _WIRE_CONFIG

    title: str
    original_url: str
    original_content: str
    processing_time: ProcessingTime
    outputs: JobOutputs
