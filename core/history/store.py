"""Bounded, newest-first history of artifact versions."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from typing import Any, Protocol

from pydantic import ValidationError

from core.artifacts.models import HistoryDraft, HistoryEntry

logger = logging.getLogger("decode.history")

DEFAULT_CAPACITY = 50


class HistoryPersistence(Protocol):
    """Storage collaborator receiving the full serialized list."""

    def load(self) -> Any | None:
        """Return previously persisted entries, or None when nothing is stored."""

    def save(self, entries: list[dict[str, Any]]) -> None:
        """Persist the full ordered list of entries."""


def _new_id() -> str:
    return uuid.uuid4().hex


def _now_millis() -> int:
    return time.time_ns() // 1_000_000


class HistoryStore:
    """Ordered, capped collection of history entries keyed by id.

    Single writer: callers must serialize ``upsert``/``remove`` if more than
    one writer ever shares a store.
    """

    def __init__(
        self,
        *,
        capacity: int = DEFAULT_CAPACITY,
        persistence: HistoryPersistence | None = None,
        id_factory: Callable[[], str] = _new_id,
        clock: Callable[[], int] = _now_millis,
    ) -> None:
        if capacity <= 0:
            raise ValueError("History capacity must be positive")
        self._capacity = capacity
        self._persistence = persistence
        self._id_factory = id_factory
        self._clock = clock
        self._entries: list[HistoryEntry] = self._load_initial()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._entries)

    def all(self) -> list[HistoryEntry]:
        return list(self._entries)

    def get(self, entry_id: str) -> HistoryEntry | None:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None

    def upsert(self, draft: HistoryDraft, editing_id: str | None = None) -> list[HistoryEntry]:
        """Insert ``draft`` at the front, replacing ``editing_id`` when it exists.

        Entries beyond capacity are dropped from the tail.
        """

        remaining = self._entries
        entry_id: str | None = None
        if editing_id is not None and self.get(editing_id) is not None:
            entry_id = editing_id
            remaining = [entry for entry in self._entries if entry.id != editing_id]
        if entry_id is None:
            entry_id = self._unique_id()

        entry = HistoryEntry(
            id=entry_id,
            display_name=draft.display_name,
            created_at_millis=self._clock(),
            artifact=draft.artifact,
            thumbnail_reference=draft.thumbnail_reference,
            typography_choice=draft.typography_choice,
        )
        self._entries = [entry, *remaining][: self._capacity]
        self._persist()
        return self.all()

    def remove(self, entry_id: str) -> list[HistoryEntry]:
        """Delete the entry with ``entry_id``; unknown ids are a no-op."""

        if self.get(entry_id) is None:
            return self.all()
        self._entries = [entry for entry in self._entries if entry.id != entry_id]
        self._persist()
        return self.all()

    def serialize(self) -> list[dict[str, Any]]:
        return [entry.to_persisted() for entry in self._entries]

    def _unique_id(self) -> str:
        existing = {entry.id for entry in self._entries}
        candidate = self._id_factory()
        while candidate in existing:
            candidate = self._id_factory()
        return candidate

    def _persist(self) -> None:
        if self._persistence is not None:
            self._persistence.save(self.serialize())

    def _load_initial(self) -> list[HistoryEntry]:
        if self._persistence is None:
            return []

        try:
            raw = self._persistence.load()
        except ValueError as exc:
            logger.warning("ignoring unreadable history: %s", exc)
            return []

        if raw is None:
            return []
        if not isinstance(raw, list):
            logger.warning(
                "ignoring malformed history: expected a list, got %s", type(raw).__name__
            )
            return []

        try:
            entries = [HistoryEntry.model_validate(item) for item in raw]
        except ValidationError as exc:
            logger.warning("ignoring malformed history: %s", exc.errors()[0]["msg"])
            return []

        seen: set[str] = set()
        unique: list[HistoryEntry] = []
        for entry in entries:
            if entry.id in seen:
                continue
            seen.add(entry.id)
            unique.append(entry)
        return unique[: self._capacity]
