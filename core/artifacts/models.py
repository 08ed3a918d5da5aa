"""Artifact and history entry models."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ArtifactPart = Literal["markup", "style", "script"]


class Artifact(BaseModel):
    """Generated markup/style/script bundle for one design.

    The remote generator speaks ``html``/``css``/``javascript``; those keys are
    accepted as aliases and used again by :meth:`to_wire`.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    markup: str = Field(default="", alias="html")
    style: str = Field(default="", alias="css")
    script: str = Field(default="", alias="javascript")

    def to_wire(self) -> dict[str, str]:
        return self.model_dump(by_alias=True)

    def replace_part(self, part: ArtifactPart, value: str) -> Artifact:
        return self.model_copy(update={part: value})


class HistoryDraft(BaseModel):
    """Caller-supplied content for one history save."""

    model_config = ConfigDict(extra="forbid")

    display_name: str
    artifact: Artifact
    thumbnail_reference: str = ""
    typography_choice: str = "Inter"


class HistoryEntry(BaseModel):
    """One named, timestamped, identity-stable version of an artifact."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    display_name: str
    created_at_millis: int
    artifact: Artifact
    thumbnail_reference: str = ""
    typography_choice: str = "Inter"

    def to_persisted(self) -> dict[str, object]:
        payload = self.model_dump(mode="json", exclude={"artifact"})
        payload["artifact"] = self.artifact.to_wire()
        return payload
