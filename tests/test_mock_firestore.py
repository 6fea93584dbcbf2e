"""Unit tests for the mock document store."""

from __future__ import annotations

import json
import shutil
from datetime import datetime, timezone

import pytest

from app.schemas import BinAssignment, EmptyingEvent, TrashLevelSample, User
from datastore.mock_firestore import (
    MockCollection,
    MockDocumentStore,
    StoreUnavailableError,
    between,
)


def _sample(sample_id: str, level: int, hour: int, bin_id: str = "bin-a") -> TrashLevelSample:
    return TrashLevelSample(
        id=sample_id,
        bin=bin_id,
        trash_level=level,
        created_at=datetime(2024, 1, 1, hour, 0, tzinfo=timezone.utc),
    )


def test_add_and_get_return_deep_copies() -> None:
    collection = MockCollection("binAssignments", BinAssignment)
    original = BinAssignment(id="as-1", bin="bin-a", assignee=["u-1"])

    collection.add(original)
    fetched = collection.get_item("as-1")

    assert fetched == original
    assert fetched is not original

    fetched.assignee.append("u-2")
    assert collection.get_item("as-1").assignee == ["u-1"]
    assert collection.get_item("missing") is None


def test_add_never_overwrites_existing_document() -> None:
    collection = MockCollection("trashLevels", TrashLevelSample)
    collection.add(_sample("s-1", 10, 1))

    with pytest.raises(ValueError):
        collection.add(_sample("s-1", 90, 2))

    assert collection.get_item("s-1").trash_level == 10


def test_update_item_replaces_fields() -> None:
    collection = MockCollection("users", User)
    collection.put_item(User(id="u-1", first_name="Ana", last_name="Cruz", email="ana@example.com"))

    updated = collection.update_item("u-1", is_deleted=True)

    assert updated.is_deleted is True
    assert collection.get_item("u-1").is_deleted is True
    with pytest.raises(KeyError):
        collection.update_item("missing", is_deleted=True)


def test_query_supports_ranges_and_array_membership() -> None:
    samples = MockCollection("trashLevels", TrashLevelSample)
    for sample in [_sample("s-1", 10, 1), _sample("s-2", 20, 2), _sample("s-3", 30, 3, bin_id="bin-b")]:
        samples.add(sample)

    window = between(
        "created_at",
        datetime(2024, 1, 1, 2, 0, tzinfo=timezone.utc),
        datetime(2024, 1, 1, 3, 0, tzinfo=timezone.utc),
    )
    assert sorted(item.id for item in samples.query(window)) == ["s-2", "s-3"]
    assert [item.id for item in samples.query([*window, ("bin", "==", "bin-a")])] == ["s-2"]
    assert len(samples.query()) == 3

    assignments = MockCollection("binAssignments", BinAssignment)
    assignments.add(BinAssignment(id="as-1", bin="bin-a", assignee=["u-1", "u-2"]))
    assignments.add(BinAssignment(id="as-2", bin="bin-b", assignee=[]))
    assert [item.bin for item in assignments.query([("assignee", "array_contains", "u-2")])] == ["bin-a"]


def test_query_rejects_unknown_operator() -> None:
    with pytest.raises(ValueError):
        MockCollection("trashLevels", TrashLevelSample).query([("bin", "like", "bin-%")])


def test_between_omits_open_ends() -> None:
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)

    assert between("createdAt", None) == []
    assert between("createdAt", start) == [("createdAt", ">=", start)]


def test_documents_persist_with_wire_field_names(tmp_path) -> None:
    store = MockDocumentStore(root_path=tmp_path)
    event = EmptyingEvent(
        id="ev-1",
        bin="bin-a",
        volume=74.13,
        collector="Ana Cruz",
        user_id="u-1",
        emptied_at=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
    )

    store.emptying_events.add(event)

    payload = json.loads((tmp_path / "trashEmptying.json").read_text())
    assert payload["ev-1"]["userId"] == "u-1"
    assert payload["ev-1"]["emptiedAt"].startswith("2024-01-01T12:00:00")

    reloaded = MockDocumentStore(root_path=tmp_path)
    assert reloaded.emptying_events.get_item("ev-1") == event


def test_corrupt_file_loads_as_empty(tmp_path) -> None:
    (tmp_path / "users.json").write_text("{not json")

    store = MockDocumentStore(root_path=tmp_path)

    assert store.users.scan() == []


def test_failed_persist_raises_and_discards_document(tmp_path) -> None:
    root = tmp_path / "store"
    collection = MockCollection("trashLevels", TrashLevelSample, persistence_path=root / "trashLevels.json")
    shutil.rmtree(root)

    with pytest.raises(StoreUnavailableError):
        collection.add(_sample("s-1", 10, 1))

    assert collection.get_item("s-1") is None


def test_failed_persist_keeps_previous_versions(tmp_path) -> None:
    root = tmp_path / "store"
    collection = MockCollection("users", User, persistence_path=root / "users.json")
    collection.add(User(id="u-1", first_name="Ana", last_name="Cruz", email="ana@example.com"))
    shutil.rmtree(root)

    with pytest.raises(StoreUnavailableError):
        collection.update_item("u-1", is_deleted=True)
    with pytest.raises(StoreUnavailableError):
        collection.put_item(User(id="u-1", first_name="Ann", last_name="Cruz", email="ann@example.com"))
    with pytest.raises(StoreUnavailableError):
        collection.put_item(User(id="u-2", first_name="Ben", last_name="Diaz", email="ben@example.com"))

    stored = collection.get_item("u-1")
    assert stored.is_deleted is False
    assert stored.first_name == "Ana"
    assert collection.get_item("u-2") is None


def test_in_memory_store_writes_nothing(tmp_path) -> None:
    store = MockDocumentStore()
    store.trash_levels.add(_sample("s-1", 10, 1))

    assert list(tmp_path.iterdir()) == []
    assert store.trash_levels.persistence_path is None
