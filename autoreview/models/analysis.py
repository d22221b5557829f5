"""Schema for the structured record embedded in an analysis response."""

from __future__ import annotations

from typing import Any, List

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


class AnalysisFindingPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    kind: Any = Field(default=None, validation_alias=AliasChoices("kind", "type", "severity"))
    line: Any = None
    message: str
    suggestion: Any = None

    @field_validator("message")
    @classmethod
    def _message_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("message must not be blank")
        return value


class AnalysisReportPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    score: Any = Field(default=None, validation_alias=AliasChoices("score", "overall_score"))
    summary: Any = None
    findings: List[Any] = Field(
        default_factory=list, validation_alias=AliasChoices("findings", "issues")
    )

    @field_validator("findings", mode="before")
    @classmethod
    def _null_findings_are_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @model_validator(mode="after")
    def _require_report_content(self) -> "AnalysisReportPayload":
        # Error objects such as {"error": "..."} carry neither field
        if not {"findings", "summary"} & self.model_fields_set:
            raise ValueError("record has neither findings nor summary")
        return self
