from __future__ import annotations

import itertools
import json
import logging
from pathlib import Path
from typing import Any

import pytest

from core.artifacts.models import Artifact, HistoryDraft
from core.history.history_file import HistoryFile
from core.history.store import HistoryStore


class _MemoryPersistence:
    def __init__(self, initial: Any | None = None) -> None:
        self.initial = initial
        self.saved: list[list[dict[str, Any]]] = []

    def load(self) -> Any | None:
        return self.initial

    def save(self, entries: list[dict[str, Any]]) -> None:
        self.saved.append(entries)


def _draft(name: str, markup: str = "<section>x</section>") -> HistoryDraft:
    return HistoryDraft(display_name=name, artifact=Artifact(markup=markup))


def _store(capacity: int = 50, persistence: Any | None = None) -> HistoryStore:
    ids = (f"id-{index}" for index in itertools.count(1))
    ticks = itertools.count(1000)
    return HistoryStore(
        capacity=capacity,
        persistence=persistence,
        id_factory=lambda: next(ids),
        clock=lambda: next(ticks),
    )


def test_upsert_without_editing_id_inserts_newest_first() -> None:
    store = _store()

    store.upsert(_draft("First"))
    entries = store.upsert(_draft("Second"))

    assert [entry.display_name for entry in entries] == ["Second", "First"]
    assert [entry.id for entry in entries] == ["id-2", "id-1"]
    assert entries[0].created_at_millis > entries[1].created_at_millis


def test_upsert_drops_oldest_beyond_capacity() -> None:
    store = _store(capacity=3)

    for index in range(5):
        store.upsert(_draft(f"Section {index + 1}"))

    assert len(store) == 3
    assert [entry.display_name for entry in store.all()] == ["Section 5", "Section 4", "Section 3"]


def test_default_capacity_is_fifty() -> None:
    store = _store()

    for index in range(51):
        store.upsert(_draft(f"S{index}"))

    assert len(store) == 50
    assert store.all()[-1].display_name == "S1"


def test_upsert_with_editing_id_replaces_in_place_and_moves_to_front() -> None:
    store = _store()
    store.upsert(_draft("A"))
    store.upsert(_draft("B"))
    store.upsert(_draft("C"))

    entries = store.upsert(_draft("A v2", "<section>v2</section>"), editing_id="id-1")

    assert [entry.id for entry in entries] == ["id-1", "id-3", "id-2"]
    assert entries[0].display_name == "A v2"
    assert entries[0].artifact.markup == "<section>v2</section>"
    assert len({entry.id for entry in entries}) == len(entries)


def test_upsert_with_unknown_editing_id_inserts_fresh_entry() -> None:
    store = _store()
    store.upsert(_draft("A"))

    entries = store.upsert(_draft("B"), editing_id="gone")

    assert [entry.id for entry in entries] == ["id-2", "id-1"]


def test_id_factory_collisions_are_retried() -> None:
    ids = iter(["dup", "dup", "fresh"])
    store = HistoryStore(id_factory=lambda: next(ids))

    store.upsert(_draft("A"))
    store.upsert(_draft("B"))

    assert [entry.id for entry in store.all()] == ["fresh", "dup"]


def test_remove_deletes_entry_and_persists() -> None:
    persistence = _MemoryPersistence()
    store = _store(persistence=persistence)
    store.upsert(_draft("A"))
    store.upsert(_draft("B"))

    remaining = store.remove("id-1")

    assert [entry.id for entry in remaining] == ["id-2"]
    assert [item["id"] for item in persistence.saved[-1]] == ["id-2"]


def test_remove_unknown_id_is_a_noop_without_write() -> None:
    persistence = _MemoryPersistence()
    store = _store(persistence=persistence)
    store.upsert(_draft("A"))
    writes = len(persistence.saved)

    remaining = store.remove("missing")

    assert [entry.id for entry in remaining] == ["id-1"]
    assert len(persistence.saved) == writes


def test_every_mutation_persists_the_full_list_in_wire_form() -> None:
    persistence = _MemoryPersistence()
    store = _store(persistence=persistence)

    store.upsert(_draft("A"))
    store.upsert(_draft("B"))

    assert len(persistence.saved) == 2
    latest = persistence.saved[-1]
    assert [item["display_name"] for item in latest] == ["B", "A"]
    assert set(latest[0]) == {
        "id",
        "display_name",
        "created_at_millis",
        "artifact",
        "thumbnail_reference",
        "typography_choice",
    }
    assert set(latest[0]["artifact"]) == {"html", "css", "javascript"}


def test_store_restores_persisted_entries_and_truncates_to_capacity() -> None:
    source = _store()
    for index in range(4):
        source.upsert(_draft(f"S{index}"))

    restored = _store(capacity=2, persistence=_MemoryPersistence(source.serialize()))

    assert [entry.display_name for entry in restored.all()] == ["S3", "S2"]


@pytest.mark.parametrize(
    "initial",
    [
        {"entries": "nope"},
        [{"id": "x"}],
        ["not-an-object"],
    ],
)
def test_malformed_persisted_history_is_treated_as_empty(
    initial: Any, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.WARNING, logger="decode.history")

    store = _store(persistence=_MemoryPersistence(initial))

    assert len(store) == 0
    assert any(record.name == "decode.history" for record in caplog.records)


def test_history_store_rejects_non_positive_capacity() -> None:
    with pytest.raises(ValueError):
        HistoryStore(capacity=0)


def test_history_file_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "history.json"
    store = _store(persistence=HistoryFile(path))
    store.upsert(_draft("Hero"))

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["version"] == 1
    assert raw["entries"][0]["display_name"] == "Hero"
    assert not path.with_suffix(".json.tmp").exists()

    reopened = HistoryStore(persistence=HistoryFile(path))
    assert reopened.all() == store.all()


def test_history_file_missing_returns_none(tmp_path: Path) -> None:
    assert HistoryFile(tmp_path / "absent.json").load() is None


def test_history_file_with_invalid_json_loads_as_empty_store(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    path = tmp_path / "history.json"
    path.write_text("{broken", encoding="utf-8")
    caplog.set_level(logging.WARNING, logger="decode.history")

    with pytest.raises(ValueError):
        HistoryFile(path).load()

    store = HistoryStore(persistence=HistoryFile(path))
    assert len(store) == 0
    assert "ignoring unreadable history" in caplog.text


def test_history_path_that_cannot_be_read_loads_as_empty_store(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    path = tmp_path / "history.json"
    path.mkdir()
    caplog.set_level(logging.WARNING, logger="decode.history")

    with pytest.raises(ValueError):
        HistoryFile(path).load()

    store = HistoryStore(persistence=HistoryFile(path))
    assert len(store) == 0
    assert "ignoring unreadable history" in caplog.text
