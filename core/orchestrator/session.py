"""Caller-owned studio session: optimize -> generate -> save -> customize."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from core.artifacts.models import Artifact, ArtifactPart, HistoryDraft, HistoryEntry
from core.config.models import StudioSettings
from core.generation.client import GenerationClient, GenerationRequest
from core.history.store import HistoryStore
from core.images.optimizer import OptimizedImage, optimize_image
from core.render.html_renderer import render_document
from core.render.models import RenderOutput
from core.render.preview import build_preview_document, export_part

DEFAULT_TYPOGRAPHY = "Inter"


@dataclass
class StudioSession:
    """Mutable per-user working state. Nothing here is global."""

    image: OptimizedImage | None = None
    thumbnail_reference: str = ""
    artifact: Artifact | None = None
    editing_id: str | None = None
    section_name: str = ""
    guidance: str = ""
    typography: str = DEFAULT_TYPOGRAPHY
    asset_overrides: dict[str, str] = field(default_factory=dict)
    text_overrides: dict[str, str] = field(default_factory=dict)


def attach_image(session: StudioSession, data: bytes, settings: StudioSettings) -> OptimizedImage:
    """Optimize raw image bytes and make them the session's source design."""

    optimized = optimize_image(data, settings.optimizer)
    session.image = optimized
    session.thumbnail_reference = optimized.to_data_url()
    return optimized


async def generate(
    session: StudioSession,
    client: GenerationClient,
    store: HistoryStore,
    *,
    refine: bool = False,
) -> HistoryEntry:
    """Run one generation and save the result to history.

    Generation failures propagate unchanged and leave the store untouched.
    """

    image_payload = session.image.to_data_url() if session.image else session.thumbnail_reference
    if not image_payload:
        raise ValueError("An image must be attached before generating")

    previous = session.artifact if refine else None
    artifact = await client.generate(
        GenerationRequest(
            image_payload=image_payload,
            guidance_text=session.guidance,
            previous_artifact=previous,
        )
    )

    session.artifact = artifact
    display_name = session.section_name.strip() or f"Section {len(store) + 1}"
    store.upsert(
        HistoryDraft(
            display_name=display_name,
            artifact=artifact,
            thumbnail_reference=session.thumbnail_reference,
            typography_choice=session.typography,
        ),
        editing_id=session.editing_id,
    )
    entry = store.all()[0]
    session.editing_id = entry.id
    return entry


def load_from_history(session: StudioSession, entry: HistoryEntry) -> None:
    """Restore an entry for editing; overrides and guidance do not carry across entries."""

    reset(session)
    session.artifact = entry.artifact
    session.section_name = entry.display_name
    session.editing_id = entry.id
    session.typography = entry.typography_choice or DEFAULT_TYPOGRAPHY
    session.thumbnail_reference = entry.thumbnail_reference


def reset(session: StudioSession) -> None:
    session.image = None
    session.thumbnail_reference = ""
    session.artifact = None
    session.editing_id = None
    session.section_name = ""
    session.guidance = ""
    session.asset_overrides.clear()
    session.text_overrides.clear()


def set_asset_override(session: StudioSession, token: str, url: str) -> None:
    """Point ``token`` at ``url``.

    An empty URL clears the override, so the token falls back to the
    placeholder image again.
    """

    if url:
        session.asset_overrides[token] = url
    else:
        session.asset_overrides.pop(token, None)


def set_text_override(session: StudioSession, original: str, updated: str) -> None:
    session.text_overrides[original] = updated


def apply_overrides(
    session: StudioSession,
    asset_overrides: Mapping[str, str] | None = None,
    text_overrides: Mapping[str, str] | None = None,
) -> None:
    for token, url in (asset_overrides or {}).items():
        set_asset_override(session, token, url)
    for original, updated in (text_overrides or {}).items():
        set_text_override(session, original, updated)


def edit_artifact_part(session: StudioSession, part: ArtifactPart, value: str) -> Artifact:
    """Replace one part of the working artifact by hand."""

    if session.artifact is None:
        raise ValueError("No artifact to edit")
    session.artifact = session.artifact.replace_part(part, value)
    return session.artifact


def render_session(session: StudioSession, settings: StudioSettings) -> RenderOutput:
    if session.artifact is None:
        raise ValueError("No artifact to render")
    return render_document(
        session.artifact.markup,
        session.asset_overrides,
        session.text_overrides,
        settings.fallback_image,
    )


def preview_session(session: StudioSession, settings: StudioSettings) -> str:
    output = render_session(session, settings)
    artifact = session.artifact or Artifact()
    return build_preview_document(artifact, output.document, session.typography)


def export_session(session: StudioSession, settings: StudioSettings, part: ArtifactPart) -> str:
    """Return copy-ready code for one part, with overrides applied to the markup."""

    output = render_session(session, settings)
    artifact = session.artifact or Artifact()
    return export_part(artifact, part, output.document, session.typography)
