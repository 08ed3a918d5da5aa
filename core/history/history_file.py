"""Local JSON file persistence for artifact history."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

_STORE_VERSION = 1


class HistoryFile:
    """Persist the full history list in a versioned JSON file."""

    def __init__(self, store_path: Path) -> None:
        self._store_path = store_path

    @property
    def path(self) -> Path:
        return self._store_path

    def load(self) -> Any | None:
        if not self._store_path.exists():
            return None

        try:
            text = self._store_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ValueError(f"Unreadable history file: {self._store_path}: {exc}") from exc

        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid history JSON: {self._store_path}") from exc

        if not isinstance(raw, dict):
            raise ValueError(f"History file must contain an object: {self._store_path}")
        return raw.get("entries")

    def save(self, entries: list[dict[str, Any]]) -> None:
        self._store_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._store_path.with_suffix(f"{self._store_path.suffix}.tmp")

        payload = {"version": _STORE_VERSION, "entries": entries}
        temp_path.write_text(
            json.dumps(payload, separators=(",", ":"), ensure_ascii=False),
            encoding="utf-8",
        )
        temp_path.replace(self._store_path)
