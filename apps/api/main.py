"""FastAPI wrapper for the decode-studio design-to-code workflow."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import threading
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, JSONResponse

from apps.api.schemas import (
    ExportRequest,
    ExportResponse,
    OptimizeResponse,
    PreviewRequest,
    RenderRequest,
)
from core.artifacts.models import Artifact
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
from core.templates.placeholder_parser import PLACEHOLDER_RE
from core.templates.text_fragments import list_text_fragments
from core.utils.errors import GenerationFailure, ImageDecodeError

app = FastAPI(title="decode-studio API", version="0.1.0")
logger = logging.getLogger("decode.api")

_DEFAULT_MAX_UPLOAD_BYTES = 100 * 1024 * 1024
_DEFAULT_QUEUE_TIMEOUT_SECONDS = 0.0
_DEFAULT_HISTORY_PATH = Path.home() / ".decode-studio" / "history.json"
_ACCEPTED_IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg", ".webp", ".psd")
_REQUEST_ID_HEADER = "X-Decode-Request-Id"


@dataclass
class _ConcurrencyLimiter:
    queue_timeout_seconds: float
    semaphore: threading.BoundedSemaphore


class ApiRequestError(Exception):
    def __init__(
        self,
        *,
        status_code: int,
        error_code: str,
        message: str,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.detail = detail or {}


_cache_lock = threading.Lock()
_limiter_cache: _ConcurrencyLimiter | None = None
_settings_cache: tuple[str, StudioSettings] | None = None
_store_cache: tuple[str, HistoryStore] | None = None


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Ensure every response has a request id header."""

    request_id = uuid.uuid4().hex
    request.state.request_id = request_id
    try:
        response = await call_next(request)
    except Exception:  # noqa: BLE001
        _log_event(
            logging.ERROR,
            "error",
            request_id,
            error_code="INTERNAL_ERROR",
            status_code=500,
            failure_stage="middleware",
        )
        response = _error_response(
            status_code=500,
            error_code="INTERNAL_ERROR",
            message="internal server error",
            request_id=request_id,
            detail={"path": request.url.path},
        )
    response.headers.setdefault(_REQUEST_ID_HEADER, request_id)
    return response


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    """Liveness endpoint."""

    return {"status": "ok"}


@app.get("/v1/meta")
async def meta_v1(request: Request) -> JSONResponse:
    """Metadata endpoint for bootstrap clients."""

    request_id = _request_id_from_request(request)
    settings = _get_settings()
    payload = {
        "version": app.version,
        "placeholder_pattern": PLACEHOLDER_RE.pattern,
        "accepted_image_suffixes": list(_ACCEPTED_IMAGE_SUFFIXES),
        "optimizer": settings.optimizer.model_dump(),
        "history_capacity": settings.history.capacity,
        "default_typography": settings.generation.default_typography,
    }
    return JSONResponse(status_code=200, headers={_REQUEST_ID_HEADER: request_id}, content=payload)


@app.post("/v1/optimize", response_model=None)
async def optimize_v1(
    request: Request,
    image: Annotated[UploadFile, File(...)],
) -> JSONResponse:
    """Shrink an uploaded design image into a bounded generation payload."""

    request_started = time.perf_counter()
    request_id = _request_id_from_request(request)
    failure_stage = "upload"

    try:
        _validate_image_name(image.filename)
        data = _read_upload_with_limit(
            upload=image, max_bytes=_max_upload_bytes(), field_name="image"
        )

        failure_stage = "optimize"
        settings = _get_settings()
        optimized = await run_in_threadpool(optimize_image, data, settings.optimizer)
        body = OptimizeResponse(
            media_type=optimized.media_type,
            width=optimized.width,
            height=optimized.height,
            native_width=optimized.native_width,
            native_height=optimized.native_height,
            quality=optimized.quality,
            size_bytes=optimized.size_bytes,
            attempts=optimized.attempts,
            used_geometric_fallback=optimized.used_geometric_fallback,
            payload_base64=optimized.to_base64(),
        )
        _log_event(
            logging.INFO,
            "done",
            request_id,
            route="optimize",
            size_bytes=optimized.size_bytes,
            attempts=optimized.attempts,
            timing={"total_ms": _elapsed_ms(request_started)},
        )
        return JSONResponse(
            status_code=200,
            headers={_REQUEST_ID_HEADER: request_id},
            content=body.model_dump(mode="json"),
        )
    except ApiRequestError as exc:
        return _handle_request_error(exc, request_id, failure_stage)
    except ImageDecodeError as exc:
        return _handle_request_error(_image_decode_error(exc), request_id, failure_stage)


@app.post("/v1/render", response_model=None)
async def render_v1(request: Request, body: RenderRequest) -> JSONResponse:
    """Apply asset/text overrides to markup and report the substitutions."""

    request_id = _request_id_from_request(request)
    settings = _get_settings()
    session = StudioSession(artifact=Artifact(markup=body.markup))
    apply_overrides(session, body.asset_overrides, body.text_overrides)
    output = render_session(session, settings)
    payload = output.model_dump(mode="json")
    payload["text_fragments"] = list_text_fragments(body.markup)
    return JSONResponse(status_code=200, headers={_REQUEST_ID_HEADER: request_id}, content=payload)


@app.post("/v1/preview", response_model=None)
async def preview_v1(request: Request, body: PreviewRequest) -> HTMLResponse:
    """Return a full standalone HTML page for a customized artifact."""

    request_id = _request_id_from_request(request)
    settings = _get_settings()
    html = preview_session(_customized_session(body), settings)
    return HTMLResponse(content=html, headers={_REQUEST_ID_HEADER: request_id})


@app.post("/v1/export", response_model=None)
async def export_v1(request: Request, body: ExportRequest) -> JSONResponse:
    """Return copy-ready code for one part of a customized artifact."""

    request_id = _request_id_from_request(request)
    settings = _get_settings()
    code = export_session(_customized_session(body), settings, body.part)
    _log_event(logging.INFO, "done", request_id, route="export", part=body.part)
    return JSONResponse(
        status_code=200,
        headers={_REQUEST_ID_HEADER: request_id},
        content=ExportResponse(part=body.part, code=code).model_dump(mode="json"),
    )


@app.post("/v1/generate", response_model=None)
async def generate_v1(
    request: Request,
    image: Annotated[UploadFile | None, File()] = None,
    guidance: Annotated[str, Form()] = "",
    section_name: Annotated[str, Form()] = "",
    editing_id: Annotated[str | None, Form()] = None,
    refine: Annotated[bool, Form()] = False,
    typography: Annotated[str | None, Form()] = None,
) -> JSONResponse:
    """Generate an artifact from a design image and save it to history."""

    request_started = time.perf_counter()
    request_id = _request_id_from_request(request)
    failure_stage = "init"
    slot_acquired = False
    limiter: _ConcurrencyLimiter | None = None
    queue_wait_ms = 0

    try:
        failure_stage = "acquire_slot"
        limiter = _get_concurrency_limiter()
        slot_acquired, queue_wait_ms = await _try_acquire_generation_slot(limiter)
        if not slot_acquired:
            raise ApiRequestError(
                status_code=429,
                error_code="TOO_MANY_REQUESTS",
                message="a generation is already running",
                detail={"queue_timeout_seconds": limiter.queue_timeout_seconds},
            )

        failure_stage = "validate_inputs"
        settings = _get_settings()
        store = _get_history_store()
        session = StudioSession(guidance=guidance)

        if editing_id:
            entry = store.get(editing_id)
            if entry is not None:
                load_from_history(session, entry)
            elif refine:
                raise ApiRequestError(
                    status_code=404,
                    error_code="NOT_FOUND",
                    message="history entry not found",
                    detail={"editing_id": editing_id},
                )
            session.editing_id = editing_id
        elif refine:
            raise ApiRequestError(
                status_code=400,
                error_code="INVALID_ARGUMENT",
                message="refine requires editing_id",
                detail={"field": "editing_id"},
            )

        session.guidance = guidance
        if section_name:
            session.section_name = section_name
        session.typography = typography or (
            session.typography if editing_id else settings.generation.default_typography
        )

        if image is not None:
            failure_stage = "upload"
            _validate_image_name(image.filename)
            data = _read_upload_with_limit(
                upload=image, max_bytes=_max_upload_bytes(), field_name="image"
            )
            failure_stage = "optimize"
            await run_in_threadpool(attach_image, session, data, settings)
        elif not session.thumbnail_reference:
            raise ApiRequestError(
                status_code=400,
                error_code="INVALID_ARGUMENT",
                message="image is required",
                detail={"field": "image"},
            )

        _log_event(
            logging.INFO,
            "start",
            request_id,
            route="generate",
            refine=refine,
            editing_id=session.editing_id,
            queue_wait_ms=queue_wait_ms,
        )

        failure_stage = "generate"
        client = _build_generation_client(settings)
        saved = await generate(session, client, store, refine=refine)

        failure_stage = "render"
        rendered = render_session(session, settings)
        _log_event(
            logging.INFO,
            "done",
            request_id,
            route="generate",
            entry_id=saved.id,
            history_size=len(store),
            timing={"queue_wait_ms": queue_wait_ms, "total_ms": _elapsed_ms(request_started)},
        )
        return JSONResponse(
            status_code=200,
            headers={_REQUEST_ID_HEADER: request_id},
            content={
                "entry": saved.to_persisted(),
                "document": rendered.document,
                "placeholders": rendered.placeholders,
                "text_fragments": list_text_fragments(saved.artifact.markup),
            },
        )
    except ApiRequestError as exc:
        return _handle_request_error(exc, request_id, failure_stage)
    except ImageDecodeError as exc:
        return _handle_request_error(_image_decode_error(exc), request_id, failure_stage)
    except GenerationFailure as exc:
        detail = dict(exc.detail)
        if exc.status_code is not None:
            detail["upstream_status"] = exc.status_code
        return _handle_request_error(
            ApiRequestError(
                status_code=502,
                error_code="GENERATION_FAILED",
                message=f"generation failed: {exc}",
                detail=detail,
            ),
            request_id,
            failure_stage,
        )
    except Exception as exc:  # noqa: BLE001
        return _handle_request_error(
            ApiRequestError(
                status_code=500,
                error_code="INTERNAL_ERROR",
                message="internal server error",
                detail={"error": str(exc), "total_ms": _elapsed_ms(request_started)},
            ),
            request_id,
            failure_stage,
        )
    finally:
        if slot_acquired and limiter is not None:
            limiter.semaphore.release()


@app.get("/v1/history")
async def history_list_v1(request: Request) -> JSONResponse:
    request_id = _request_id_from_request(request)
    store = _get_history_store()
    return JSONResponse(
        status_code=200,
        headers={_REQUEST_ID_HEADER: request_id},
        content={"entries": store.serialize(), "capacity": store.capacity},
    )


@app.get("/v1/history/{entry_id}")
async def history_get_v1(request: Request, entry_id: str) -> JSONResponse:
    request_id = _request_id_from_request(request)
    entry = _get_history_store().get(entry_id)
    if entry is None:
        return _handle_request_error(_not_found(entry_id), request_id, "lookup")
    return JSONResponse(
        status_code=200,
        headers={_REQUEST_ID_HEADER: request_id},
        content=entry.to_persisted(),
    )


@app.delete("/v1/history/{entry_id}")
async def history_delete_v1(request: Request, entry_id: str) -> JSONResponse:
    """Delete one entry; deleting an unknown id is not an error."""

    request_id = _request_id_from_request(request)
    store = _get_history_store()
    existed = store.get(entry_id) is not None
    remaining = store.remove(entry_id)
    _log_event(logging.INFO, "done", request_id, route="history_delete", deleted=existed)
    return JSONResponse(
        status_code=200,
        headers={_REQUEST_ID_HEADER: request_id},
        content={"deleted": existed, "count": len(remaining)},
    )


def _request_id_from_request(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if isinstance(request_id, str) and request_id:
        return request_id
    return uuid.uuid4().hex


def _customized_session(body: PreviewRequest) -> StudioSession:
    session = StudioSession(artifact=body.artifact, typography=body.typography)
    for part, value in body.part_edits.items():
        edit_artifact_part(session, part, value)
    apply_overrides(session, body.asset_overrides, body.text_overrides)
    return session


def _validate_image_name(filename: str | None) -> None:
    if filename is None or not filename.lower().endswith(_ACCEPTED_IMAGE_SUFFIXES):
        raise ApiRequestError(
            status_code=400,
            error_code="INVALID_ARGUMENT",
            message="image must be a PNG, JPEG, WEBP or PSD file",
            detail={"field": "image", "filename": filename},
        )


def _read_upload_with_limit(*, upload: UploadFile, max_bytes: int, field_name: str) -> bytes:
    chunks: list[bytes] = []
    total_size = 0

    source = upload.file
    source.seek(0)
    while True:
        chunk = source.read(1024 * 1024)
        if not chunk:
            break
        total_size += len(chunk)
        if total_size > max_bytes:
            raise ApiRequestError(
                status_code=413,
                error_code="UPLOAD_TOO_LARGE",
                message=f"{field_name} exceeds upload size limit",
                detail={
                    "field": field_name,
                    "max_bytes": max_bytes,
                    "received_bytes": total_size,
                },
            )
        chunks.append(chunk)

    source.close()
    return b"".join(chunks)


def _image_decode_error(exc: ImageDecodeError) -> ApiRequestError:
    return ApiRequestError(
        status_code=422,
        error_code="IMAGE_DECODE_FAILED",
        message="image could not be processed",
        detail={"error": str(exc)},
    )


def _not_found(entry_id: str) -> ApiRequestError:
    return ApiRequestError(
        status_code=404,
        error_code="NOT_FOUND",
        message="history entry not found",
        detail={"id": entry_id},
    )


def _max_upload_bytes() -> int:
    raw = os.getenv("DECODE_MAX_UPLOAD_BYTES")
    if raw is None:
        return _DEFAULT_MAX_UPLOAD_BYTES
    try:
        parsed = int(raw)
    except ValueError:
        return _DEFAULT_MAX_UPLOAD_BYTES
    return parsed if parsed > 0 else _DEFAULT_MAX_UPLOAD_BYTES


def _queue_timeout_seconds() -> float:
    raw = os.getenv("DECODE_GENERATION_QUEUE_TIMEOUT_SECONDS")
    if raw is None:
        return _DEFAULT_QUEUE_TIMEOUT_SECONDS
    try:
        parsed = float(raw)
    except ValueError:
        return _DEFAULT_QUEUE_TIMEOUT_SECONDS
    return parsed if parsed >= 0 else _DEFAULT_QUEUE_TIMEOUT_SECONDS


def _settings_path() -> Path | None:
    raw = os.getenv("DECODE_SETTINGS_PATH")
    return Path(raw).expanduser() if raw else None


def _history_path() -> Path:
    raw = os.getenv("DECODE_HISTORY_PATH")
    return Path(raw).expanduser() if raw else _DEFAULT_HISTORY_PATH


def _get_settings() -> StudioSettings:
    global _settings_cache

    path = _settings_path()
    key = str(path) if path is not None else ""
    with _cache_lock:
        if _settings_cache is None or _settings_cache[0] != key:
            _settings_cache = (key, load_settings(path))
        return _settings_cache[1]


def _get_history_store() -> HistoryStore:
    global _store_cache

    path = _history_path()
    settings = _get_settings()
    key = str(path)
    with _cache_lock:
        if (
            _store_cache is None
            or _store_cache[0] != key
            or _store_cache[1].capacity != settings.history.capacity
        ):
            _store_cache = (
                key,
                HistoryStore(capacity=settings.history.capacity, persistence=HistoryFile(path)),
            )
        return _store_cache[1]


def _build_generation_client(settings: StudioSettings) -> GenerationClient:
    return GenerationClient(settings.generation)


def _get_concurrency_limiter() -> _ConcurrencyLimiter:
    global _limiter_cache

    queue_timeout = _queue_timeout_seconds()
    with _cache_lock:
        if _limiter_cache is None:
            _limiter_cache = _ConcurrencyLimiter(
                queue_timeout_seconds=queue_timeout,
                semaphore=threading.BoundedSemaphore(value=1),
            )
        elif _limiter_cache.queue_timeout_seconds != queue_timeout:
            _limiter_cache = _ConcurrencyLimiter(
                queue_timeout_seconds=queue_timeout,
                semaphore=_limiter_cache.semaphore,
            )
        return _limiter_cache


async def _try_acquire_generation_slot(limiter: _ConcurrencyLimiter) -> tuple[bool, int]:
    waited_started = time.perf_counter()
    timeout_seconds = limiter.queue_timeout_seconds

    if timeout_seconds == 0:
        acquired_now = limiter.semaphore.acquire(blocking=False)
        return acquired_now, _elapsed_ms(waited_started)

    deadline = time.monotonic() + timeout_seconds
    while time.monotonic() < deadline:
        if limiter.semaphore.acquire(blocking=False):
            return True, _elapsed_ms(waited_started)
        await asyncio.sleep(0.01)

    return False, _elapsed_ms(waited_started)


def _handle_request_error(
    exc: ApiRequestError, request_id: str, failure_stage: str
) -> JSONResponse:
    _log_event(
        logging.ERROR,
        "error",
        request_id,
        error_code=exc.error_code,
        status_code=exc.status_code,
        failure_stage=failure_stage,
    )
    return _error_response(
        status_code=exc.status_code,
        error_code=exc.error_code,
        message=exc.message,
        request_id=request_id,
        detail=exc.detail,
    )


def _error_response(
    *,
    status_code: int,
    error_code: str,
    message: str,
    request_id: str,
    detail: dict[str, Any] | None = None,
) -> JSONResponse:
    payload_detail = dict(detail or {})
    payload_detail["request_id"] = request_id

    return JSONResponse(
        status_code=status_code,
        headers={_REQUEST_ID_HEADER: request_id},
        content={
            "error_code": error_code,
            "message": message,
            "detail": payload_detail,
        },
    )


def _elapsed_ms(start: float) -> int:
    return max(0, int((time.perf_counter() - start) * 1000))


def _dump_json(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def _log_event(level: int, event: str, request_id: str, **fields: Any) -> None:
    payload = {
        "event": event,
        "request_id": request_id,
        **fields,
    }
    logger.log(level, _dump_json(payload))
