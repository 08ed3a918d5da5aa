"""Request/response bodies for the HTTP API."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from core.artifacts.models import Artifact, ArtifactPart


class RenderRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    markup: str
    asset_overrides: dict[str, str] = Field(default_factory=dict)
    text_overrides: dict[str, str] = Field(default_factory=dict)


class PreviewRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    artifact: Artifact
    asset_overrides: dict[str, str] = Field(default_factory=dict)
    text_overrides: dict[str, str] = Field(default_factory=dict)
    typography: str = "Inter"
    part_edits: dict[ArtifactPart, str] = Field(default_factory=dict)


class ExportRequest(PreviewRequest):
    part: ArtifactPart


class ExportResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    part: ArtifactPart
    code: str


class OptimizeResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    media_type: str
    width: int
    height: int
    native_width: int
    native_height: int
    quality: int
    size_bytes: int
    attempts: int
    used_geometric_fallback: bool
    payload_base64: str
