"""HTTP client for the remote design-to-code generator."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import ValidationError

from core.artifacts.models import Artifact
from core.config.models import GenerationSettings
from core.generation.prompts import SYSTEM_PROMPT, build_prompt_text
from core.utils.errors import GenerationFailure

logger = logging.getLogger("decode.generation")

_DEFAULT_REFERRER = "http://localhost:3000"
_DEFAULT_TITLE = "Design-To-Code"


@dataclass(frozen=True)
class GenerationRequest:
    """One generation call: image payload, guidance and optional prior artifact."""

    image_payload: str
    guidance_text: str = ""
    previous_artifact: Artifact | None = None


def api_key_from_env() -> str | None:
    return os.getenv("OPENROUTER_API_KEY") or os.getenv("API_KEY")


class GenerationClient:
    """Single-call client; callers issue at most one request at a time."""

    def __init__(
        self,
        settings: GenerationSettings | None = None,
        *,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or GenerationSettings()
        self._api_key = api_key if api_key is not None else api_key_from_env()
        self._transport = transport

    async def generate(self, request: GenerationRequest) -> Artifact:
        if not self._api_key:
            raise GenerationFailure("OPENROUTER_API_KEY is not configured")
        if not request.image_payload:
            raise GenerationFailure("image payload is required")

        body = self._build_body(request)
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "HTTP-Referer": os.getenv("OPENROUTER_REFERRER", _DEFAULT_REFERRER),
            "X-Title": os.getenv("OPENROUTER_TITLE", _DEFAULT_TITLE),
        }

        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self._settings.timeout_seconds
            ) as client:
                response = await client.post(self._settings.endpoint, json=body, headers=headers)
        except httpx.HTTPError as exc:
            raise GenerationFailure(
                f"generator request failed: {type(exc).__name__}",
                detail={"error": str(exc)},
            ) from exc

        if response.status_code >= 400:
            logger.error("generator returned HTTP %s", response.status_code)
            raise GenerationFailure(
                "generator returned an error",
                status_code=response.status_code,
                detail={"message": _error_message(response)},
            )

        return _artifact_from_response(response)

    def _build_body(self, request: GenerationRequest) -> dict[str, Any]:
        image_url = request.image_payload
        if not image_url.startswith("data:"):
            image_url = f"data:image/jpeg;base64,{image_url}"

        return {
            "model": self._settings.model,
            "temperature": self._settings.temperature,
            "max_tokens": self._settings.max_tokens,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "text",
                            "text": build_prompt_text(
                                request.guidance_text, request.previous_artifact
                            ),
                        },
                        {"type": "image_url", "image_url": {"url": image_url}},
                    ],
                },
            ],
        }


def _artifact_from_response(response: httpx.Response) -> Artifact:
    try:
        data = response.json()
    except ValueError as exc:
        raise GenerationFailure("generator response is not JSON") from exc

    text = _message_text(data)
    if not text:
        raise GenerationFailure("empty or unexpected generator response format")

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise GenerationFailure("unable to parse generator JSON content") from exc

    if not isinstance(parsed, dict):
        raise GenerationFailure("generator JSON content must be an object")

    try:
        return Artifact.model_validate(parsed)
    except ValidationError as exc:
        raise GenerationFailure("generator JSON content has an invalid shape") from exc


def _message_text(data: Any) -> str:
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return ""

    if isinstance(content, str):
        return content
    if isinstance(content, list):
        for part in content:
            if isinstance(part, dict) and part.get("type") == "text":
                return str(part.get("text") or "")
        return ""
    if isinstance(content, dict):
        return str(content.get("text") or "")
    return ""


def _error_message(response: httpx.Response) -> str:
    try:
        parsed = response.json()
    except ValueError:
        return response.text

    if isinstance(parsed, dict):
        error = parsed.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if parsed.get("message"):
            return str(parsed["message"])
        if error:
            return str(error)
    return response.text
