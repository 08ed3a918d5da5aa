"""Custom exceptions for core logic."""

from __future__ import annotations

from typing import Any


class ImageDecodeError(Exception):
    """Raised when an input image cannot be decoded into a raster."""

    def __init__(self, message: str, *, source_bytes: int | None = None) -> None:
        super().__init__(message)
        self.source_bytes = source_bytes


class GenerationFailure(Exception):
    """Raised when the remote generator does not return a usable artifact."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail or {}
