"""Typer CLI entrypoint for decode-studio."""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Annotated, Any

import typer

from apps.cli.io import (
    read_json_object,
    read_overrides,
    write_bytes_atomic,
    write_json_atomic,
    write_text_atomic,
)
from core.artifacts.models import Artifact, ArtifactPart
from core.config.loader import load_settings
from core.config.models import StudioSettings
from core.generation.client import GenerationClient
from core.history.history_file import HistoryFile
from core.history.store import HistoryStore
from core.images.optimizer import optimize_image
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
)
from core.templates.placeholder_parser import list_placeholders
from core.templates.text_fragments import list_text_fragments
from core.utils.errors import GenerationFailure, ImageDecodeError

app = typer.Typer(help="Design-to-code studio CLI", rich_markup_mode=None)
history_app = typer.Typer(help="Inspect and prune saved artifact history.", rich_markup_mode=None)
app.add_typer(history_app, name="history")

EXIT_INTERNAL = 1
EXIT_IMAGE_DECODE = 2
EXIT_GENERATION = 3
EXIT_NOT_FOUND = 4

_DEFAULT_HISTORY_PATH = Path.home() / ".decode-studio" / "history.json"

SettingsOption = Annotated[
    Path | None,
    typer.Option("--settings", help="YAML settings file (defaults to bundled settings)."),
]
HistoryOption = Annotated[
    Path | None,
    typer.Option("--history", help="History JSON file (defaults to DECODE_HISTORY_PATH)."),
]
EditOption = Annotated[
    list[str] | None,
    typer.Option("--edit", help="Replace one part by hand, as PART=FILE. Repeatable."),
]

_ARTIFACT_PARTS: tuple[ArtifactPart, ...] = ("markup", "style", "script")


@app.callback()
def cli_callback() -> None:
    """CLI root callback to keep subcommands explicit."""


@app.command("optimize")
def optimize_command(
    image: Annotated[Path, typer.Argument(exists=True, dir_okay=False, file_okay=True)],
    out: Annotated[Path, typer.Option("--out", help="Where to write the JPEG payload.")],
    settings: SettingsOption = None,
) -> None:
    """Shrink a design image into a bounded JPEG payload."""

    studio_settings = _load_settings_or_exit(settings)
    try:
        optimized = optimize_image(image.read_bytes(), studio_settings.optimizer)
    except ImageDecodeError as exc:
        typer.echo(f"ERROR: image could not be processed: {exc}")
        raise typer.Exit(code=EXIT_IMAGE_DECODE) from exc

    write_bytes_atomic(out, optimized.payload)
    _echo_json(
        {
            "out": str(out),
            "width": optimized.width,
            "height": optimized.height,
            "native_width": optimized.native_width,
            "native_height": optimized.native_height,
            "quality": optimized.quality,
            "size_bytes": optimized.size_bytes,
            "attempts": optimized.attempts,
            "used_geometric_fallback": optimized.used_geometric_fallback,
        }
    )
    if optimized.size_bytes > studio_settings.optimizer.max_payload_bytes:
        typer.echo("WARNING: payload is still above the byte budget")


@app.command("inspect")
def inspect_command(
    markup: Annotated[Path, typer.Argument(exists=True, dir_okay=False, file_okay=True)],
) -> None:
    """List asset placeholders and editable text fragments in a markup file."""

    source = markup.read_text(encoding="utf-8")
    _echo_json(
        {
            "placeholders": list_placeholders(source),
            "text_fragments": list_text_fragments(source),
        }
    )


@app.command("render")
def render_command(
    markup: Annotated[Path, typer.Argument(exists=True, dir_okay=False, file_okay=True)],
    out: Annotated[Path, typer.Option("--out", help="Where to write rendered markup.")],
    overrides: Annotated[
        Path | None,
        typer.Option(
            "--overrides",
            exists=True,
            dir_okay=False,
            help='JSON file of the form {"assets": {...}, "text": {...}}.',
        ),
    ] = None,
    report: Annotated[
        Path | None, typer.Option("--report", help="Optional substitution report JSON path.")
    ] = None,
    settings: SettingsOption = None,
) -> None:
    """Substitute asset placeholders and text overrides in a markup file."""

    studio_settings = _load_settings_or_exit(settings)
    asset_overrides, text_overrides = _load_overrides_or_exit(overrides)

    session = StudioSession(artifact=Artifact(markup=markup.read_text(encoding="utf-8")))
    apply_overrides(session, asset_overrides, text_overrides)
    output = render_session(session, studio_settings)
    write_text_atomic(out, output.document)
    if report is not None:
        write_json_atomic(report, output.report.model_dump(mode="json"))

    summary = output.report.summary
    if not summary.structural_pass:
        typer.echo("WARNING: markup could not be parsed; text overrides were skipped")
    typer.echo(
        "INFO: "
        f"replaced={summary.replaced_count} fallback={summary.fallback_count} "
        f"text_replaced={summary.text_replaced_count} inert={summary.inert_count}"
    )


@app.command("preview")
def preview_command(
    artifact: Annotated[
        Path,
        typer.Argument(
            exists=True,
            dir_okay=False,
            file_okay=True,
            help="Artifact JSON with html/css/javascript keys.",
        ),
    ],
    out: Annotated[Path, typer.Option("--out", help="Where to write the preview page.")],
    overrides: Annotated[
        Path | None,
        typer.Option("--overrides", exists=True, dir_okay=False),
    ] = None,
    typography: Annotated[str, typer.Option("--typography")] = "Inter",
    edits: EditOption = None,
    settings: SettingsOption = None,
) -> None:
    """Build a standalone preview page for an artifact."""

    studio_settings = _load_settings_or_exit(settings)
    session = _customized_session_or_exit(artifact, overrides, typography, edits)
    write_text_atomic(out, preview_session(session, studio_settings))
    typer.echo(f"INFO: wrote preview to {out}")


@app.command("export")
def export_command(
    artifact: Annotated[
        Path,
        typer.Argument(
            exists=True,
            dir_okay=False,
            file_okay=True,
            help="Artifact JSON with html/css/javascript keys.",
        ),
    ],
    part: Annotated[
        str, typer.Option("--part", help="Part to export: markup, style or script.")
    ] = "markup",
    out: Annotated[
        Path | None, typer.Option("--out", help="Write the code here instead of stdout.")
    ] = None,
    overrides: Annotated[
        Path | None,
        typer.Option("--overrides", exists=True, dir_okay=False),
    ] = None,
    typography: Annotated[str, typer.Option("--typography")] = "Inter",
    edits: EditOption = None,
    settings: SettingsOption = None,
) -> None:
    """Print copy-ready code for one artifact part."""

    if part not in _ARTIFACT_PARTS:
        typer.echo(f"ERROR: --part must be one of {', '.join(_ARTIFACT_PARTS)}.")
        raise typer.Exit(code=EXIT_INTERNAL)

    studio_settings = _load_settings_or_exit(settings)
    session = _customized_session_or_exit(artifact, overrides, typography, edits)
    code = export_session(session, studio_settings, part)
    if out is None:
        typer.echo(code)
        return
    write_text_atomic(out, code)
    typer.echo(f"INFO: wrote {part} to {out}")


@app.command("generate")
def generate_command(
    image: Annotated[
        Path | None,
        typer.Argument(exists=True, dir_okay=False, file_okay=True),
    ] = None,
    guidance: Annotated[str, typer.Option("--guidance")] = "",
    section_name: Annotated[str, typer.Option("--section-name")] = "",
    editing_id: Annotated[
        str | None,
        typer.Option("--editing-id", help="History entry to replace in place."),
    ] = None,
    refine: Annotated[
        bool,
        typer.Option("--refine", help="Send the edited entry's code back with new guidance."),
    ] = False,
    typography: Annotated[str | None, typer.Option("--typography")] = None,
    out_dir: Annotated[Path | None, typer.Option("--out-dir")] = None,
    history: HistoryOption = None,
    settings: SettingsOption = None,
) -> None:
    """Generate an artifact from a design image and save it to history."""

    studio_settings = _load_settings_or_exit(settings)
    store = _open_store(history, studio_settings)
    session = StudioSession(typography=studio_settings.generation.default_typography)

    if editing_id is not None:
        entry = store.get(editing_id)
        if entry is None:
            typer.echo(f"ERROR: history entry not found: {editing_id}")
            raise typer.Exit(code=EXIT_NOT_FOUND)
        load_from_history(session, entry)
    elif refine:
        typer.echo("ERROR: --refine requires --editing-id.")
        raise typer.Exit(code=EXIT_INTERNAL)

    session.guidance = guidance
    if section_name:
        session.section_name = section_name
    if typography:
        session.typography = typography

    if image is not None:
        try:
            attach_image(session, image.read_bytes(), studio_settings)
        except ImageDecodeError as exc:
            typer.echo(f"ERROR: image could not be processed: {exc}")
            raise typer.Exit(code=EXIT_IMAGE_DECODE) from exc
    elif not session.thumbnail_reference:
        typer.echo("ERROR: an image is required.")
        raise typer.Exit(code=EXIT_INTERNAL)

    client = GenerationClient(studio_settings.generation)
    try:
        saved = asyncio.run(generate(session, client, store, refine=refine))
    except GenerationFailure as exc:
        typer.echo(f"ERROR: generation failed: {exc}")
        raise typer.Exit(code=EXIT_GENERATION) from exc

    if out_dir is not None:
        _write_artifact_files(out_dir, saved.artifact)
        typer.echo(f"INFO: wrote artifact files to {out_dir}")
    typer.echo(f"INFO: saved entry {saved.id} ({saved.display_name})")


@history_app.command("list")
def history_list_command(
    history: HistoryOption = None,
    settings: SettingsOption = None,
) -> None:
    """List saved entries, newest first."""

    store = _open_store(history, _load_settings_or_exit(settings))
    if not store.all():
        typer.echo("INFO: history is empty")
        return
    for entry in store.all():
        typer.echo(f"{entry.id}\t{entry.created_at_millis}\t{entry.display_name}")


@history_app.command("show")
def history_show_command(
    entry_id: Annotated[str, typer.Argument()],
    history: HistoryOption = None,
    settings: SettingsOption = None,
) -> None:
    """Print one saved entry as JSON."""

    store = _open_store(history, _load_settings_or_exit(settings))
    entry = store.get(entry_id)
    if entry is None:
        typer.echo(f"ERROR: history entry not found: {entry_id}")
        raise typer.Exit(code=EXIT_NOT_FOUND)
    _echo_json(entry.to_persisted())


@history_app.command("delete")
def history_delete_command(
    entry_id: Annotated[str, typer.Argument()],
    history: HistoryOption = None,
    settings: SettingsOption = None,
) -> None:
    """Delete one saved entry; unknown ids are reported but not an error."""

    store = _open_store(history, _load_settings_or_exit(settings))
    if store.get(entry_id) is None:
        typer.echo(f"INFO: no entry with id {entry_id}")
        return
    store.remove(entry_id)
    typer.echo(f"INFO: deleted {entry_id}")


def _load_settings_or_exit(path: Path | None) -> StudioSettings:
    try:
        return load_settings(path)
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=EXIT_INTERNAL) from exc


def _load_overrides_or_exit(path: Path | None) -> tuple[dict[str, str], dict[str, str]]:
    try:
        return read_overrides(path)
    except ValueError as exc:
        typer.echo(f"ERROR: invalid overrides: {exc}")
        raise typer.Exit(code=EXIT_INTERNAL) from exc


def _customized_session_or_exit(
    artifact: Path,
    overrides: Path | None,
    typography: str,
    edits: list[str] | None,
) -> StudioSession:
    asset_overrides, text_overrides = _load_overrides_or_exit(overrides)
    try:
        model = Artifact.model_validate(read_json_object(artifact))
    except ValueError as exc:
        typer.echo(f"ERROR: invalid artifact: {exc}")
        raise typer.Exit(code=EXIT_INTERNAL) from exc

    session = StudioSession(artifact=model, typography=typography)
    for raw in edits or []:
        part, separator, source = raw.partition("=")
        if not separator or part not in _ARTIFACT_PARTS:
            choices = ", ".join(_ARTIFACT_PARTS)
            typer.echo(f"ERROR: --edit expects PART=FILE with PART in {choices}.")
            raise typer.Exit(code=EXIT_INTERNAL)
        try:
            value = Path(source).read_text(encoding="utf-8")
        except OSError as exc:
            typer.echo(f"ERROR: cannot read --edit file: {exc}")
            raise typer.Exit(code=EXIT_INTERNAL) from exc
        edit_artifact_part(session, part, value)

    apply_overrides(session, asset_overrides, text_overrides)
    return session


def _open_store(history: Path | None, settings: StudioSettings) -> HistoryStore:
    path = history
    if path is None:
        raw = os.getenv("DECODE_HISTORY_PATH")
        path = Path(raw).expanduser() if raw else _DEFAULT_HISTORY_PATH
    return HistoryStore(capacity=settings.history.capacity, persistence=HistoryFile(path))


def _write_artifact_files(out_dir: Path, artifact: Artifact) -> None:
    write_json_atomic(out_dir / "artifact.json", artifact.to_wire())
    write_text_atomic(out_dir / "section.html", artifact.markup)


def _echo_json(payload: dict[str, Any]) -> None:
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))


def main() -> None:
    """Poetry script entrypoint."""

    app()


if __name__ == "__main__":
    main()
