"""Render pipeline report models."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class SubstitutionLogEntry(BaseModel):
    """Single substitution applied (or skipped) during render."""

    model_config = ConfigDict(extra="forbid")

    status: Literal["asset_replaced", "asset_fallback", "text_replaced", "inert"]
    kind: Literal["asset", "text"]
    original_text: str
    new_text: str | None = None
    occurrences: int = 0


class SubstitutionSummary(BaseModel):
    """Aggregate substitution summary for observability."""

    model_config = ConfigDict(extra="forbid")

    total_placeholders: int
    replaced_count: int
    fallback_count: int
    text_replaced_count: int
    inert_count: int
    structural_pass: bool


class SubstitutionReport(BaseModel):
    model_config = ConfigDict(extra="forbid")

    entries: list[SubstitutionLogEntry] = Field(default_factory=list)
    summary: SubstitutionSummary


class RenderOutput(BaseModel):
    """Final document plus the report describing how it was produced."""

    model_config = ConfigDict(extra="forbid")

    document: str
    placeholders: list[str] = Field(default_factory=list)
    report: SubstitutionReport
