from __future__ import annotations

import io

import pytest
from PIL import Image

from core.artifacts.models import Artifact
from core.config.models import StudioSettings
from core.generation.client import GenerationRequest
from core.history.store import HistoryStore
from core.orchestrator.session import (
    StudioSession,
    apply_overrides,
    attach_image,
    edit_artifact_part,
    export_session,
    generate,
    load_from_history,
    preview_session,
    render_session,
    reset,
    set_asset_override,
    set_text_override,
)
from core.utils.errors import GenerationFailure

GENERATED = Artifact(
    markup='<section class="s"><img src="{{ASSET_ID_HERO}}"><h2>Title</h2></section>',
    style="<style>.s h2 { font-size: 24px; }</style>",
    script="<script></script>",
)


class _FakeClient:
    def __init__(self, result: Artifact | Exception = GENERATED) -> None:
        self.result = result
        self.requests: list[GenerationRequest] = []

    async def generate(self, request: GenerationRequest) -> Artifact:
        self.requests.append(request)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def _png() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (32, 24), (99, 102, 241)).save(buffer, format="PNG")
    return buffer.getvalue()


def _attached_session() -> StudioSession:
    session = StudioSession()
    attach_image(session, _png(), StudioSettings())
    return session


def test_attach_image_sets_payload_and_thumbnail() -> None:
    session = StudioSession()

    optimized = attach_image(session, _png(), StudioSettings())

    assert session.image is optimized
    assert session.thumbnail_reference == optimized.to_data_url()


@pytest.mark.anyio
async def test_generate_saves_entry_with_default_section_name() -> None:
    session = _attached_session()
    store = HistoryStore()
    client = _FakeClient()

    entry = await generate(session, client, store)

    assert entry.display_name == "Section 1"
    assert entry.artifact == GENERATED
    assert entry.thumbnail_reference == session.thumbnail_reference
    assert session.editing_id == entry.id
    assert session.artifact == GENERATED
    assert client.requests[0].previous_artifact is None


@pytest.mark.anyio
async def test_second_generation_of_same_session_edits_in_place() -> None:
    session = _attached_session()
    store = HistoryStore()

    first = await generate(session, _FakeClient(), store)
    second = await generate(session, _FakeClient(), store)

    assert len(store) == 1
    assert second.id == first.id


@pytest.mark.anyio
async def test_refine_sends_previous_artifact() -> None:
    session = _attached_session()
    store = HistoryStore()
    await generate(session, _FakeClient(), store)
    session.guidance = "Bigger heading"
    client = _FakeClient(GENERATED.replace_part("style", "<style>.s h2{font-size:40px}</style>"))

    entry = await generate(session, client, store, refine=True)

    assert client.requests[0].previous_artifact == GENERATED
    assert client.requests[0].guidance_text == "Bigger heading"
    assert "40px" in entry.artifact.style


@pytest.mark.anyio
async def test_generation_failure_leaves_store_untouched() -> None:
    session = _attached_session()
    store = HistoryStore()

    with pytest.raises(GenerationFailure):
        await generate(session, _FakeClient(GenerationFailure("boom")), store)

    assert len(store) == 0
    assert session.editing_id is None
    assert session.artifact is None


@pytest.mark.anyio
async def test_generate_without_image_is_rejected() -> None:
    with pytest.raises(ValueError):
        await generate(StudioSession(), _FakeClient(), HistoryStore())


@pytest.mark.anyio
async def test_load_from_history_restores_entry_and_clears_overrides() -> None:
    session = _attached_session()
    session.section_name = "Hero"
    session.typography = "Poppins"
    store = HistoryStore()
    entry = await generate(session, _FakeClient(), store)

    other = StudioSession()
    set_asset_override(other, "{{ASSET_ID_HERO}}", "https://cdn.example/a.png")
    set_text_override(other, "Title", "Other")
    other.guidance = "Old guidance"
    load_from_history(other, entry)

    assert other.artifact == GENERATED
    assert other.section_name == "Hero"
    assert other.editing_id == entry.id
    assert other.typography == "Poppins"
    assert other.thumbnail_reference == entry.thumbnail_reference
    assert other.asset_overrides == {}
    assert other.text_overrides == {}
    assert other.guidance == ""
    assert other.image is None

    refined = await generate(other, _FakeClient(), store, refine=True)
    assert refined.id == entry.id
    assert len(store) == 1


def test_overrides_flow_into_render_and_preview() -> None:
    session = StudioSession(artifact=GENERATED, typography="Lato")
    set_asset_override(session, "{{ASSET_ID_HERO}}", "https://cdn.example/hero.png")
    set_asset_override(session, "{{ASSET_ID_OTHER}}", "")
    set_text_override(session, "Title", "Welcome")

    output = render_session(session, StudioSettings())
    page = preview_session(session, StudioSettings())

    assert session.asset_overrides == {"{{ASSET_ID_HERO}}": "https://cdn.example/hero.png"}
    assert 'src="https://cdn.example/hero.png"' in output.document
    assert "<h2>Welcome</h2>" in output.document
    assert "<h2>Welcome</h2>" in page
    assert "family=Lato" in page


def test_empty_asset_url_clears_an_existing_override() -> None:
    session = StudioSession(artifact=GENERATED)
    set_asset_override(session, "{{ASSET_ID_HERO}}", "https://cdn.example/hero.png")

    set_asset_override(session, "{{ASSET_ID_HERO}}", "")

    assert session.asset_overrides == {}
    assert "placehold.co" in render_session(session, StudioSettings()).document


def test_export_session_applies_edits_and_overrides() -> None:
    session = StudioSession(artifact=GENERATED, typography="Roboto")
    edit_artifact_part(session, "style", "<style>.s { color: red; }</style>")
    apply_overrides(
        session,
        {"{{ASSET_ID_HERO}}": "https://cdn.example/hero.png"},
        {"Title": "Welcome"},
    )

    markup = export_session(session, StudioSettings(), "markup")
    style = export_session(session, StudioSettings(), "style")

    assert 'src="https://cdn.example/hero.png"' in markup
    assert "<h2>Welcome</h2>" in markup
    assert style.startswith("<style>.s { color: red; }")
    assert "font-family: 'Roboto'" in style


def test_edit_artifact_part_replaces_one_part() -> None:
    session = StudioSession(artifact=GENERATED)

    updated = edit_artifact_part(session, "script", "<script>init()</script>")

    assert updated.script == "<script>init()</script>"
    assert updated.markup == GENERATED.markup
    assert session.artifact == updated


def test_edit_and_render_without_artifact_are_rejected() -> None:
    session = StudioSession()

    with pytest.raises(ValueError):
        edit_artifact_part(session, "markup", "<p></p>")
    with pytest.raises(ValueError):
        render_session(session, StudioSettings())


def test_reset_clears_working_state() -> None:
    session = _attached_session()
    session.artifact = GENERATED
    session.editing_id = "abc"
    set_text_override(session, "Title", "X")

    reset(session)

    assert session.image is None
    assert session.thumbnail_reference == ""
    assert session.artifact is None
    assert session.editing_id is None
    assert session.text_overrides == {}
