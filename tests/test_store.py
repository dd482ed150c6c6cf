"""
Tests for the SQLite taxonomy store.
"""
import sqlite3

import pytest

from pkg.taxonomy.schema import Idea, IdeaStatus, Material, Sprint, Update
from pkg.taxonomy.store import RecordNotFound, StoreError, TaxonomyStore


def test_fetch_orders_by_entity_defaults(seeded_store):
    ideas = seeded_store.fetch("ideas")
    assert [i.idea_number for i in ideas] == [1, 2, 3]

    sprints = seeded_store.fetch("sprints")
    assert [s.sprint_id for s in sprints] == ["2025-02", "2025-01"]

    updates = seeded_store.fetch("updates")
    assert [u.date for u in updates] == ["2025-01-25", "2025-01-15"]

    materials = seeded_store.fetch("materials")
    assert [m.slug for m in materials] == ["roadmap", "hello-world"]


def test_fetch_explicit_order(seeded_store):
    ideas = seeded_store.fetch("ideas", "idea_number", descending=True)
    assert [i.idea_number for i in ideas] == [3, 2, 1]


def test_fetch_rejects_unknown_table_and_column(store):
    with pytest.raises(StoreError):
        store.fetch("notes")
    with pytest.raises(StoreError):
        store.fetch("ideas", "idea_number; DROP TABLE ideas")


def test_fetch_empty(store):
    assert store.fetch("ideas") == []


def test_save_assigns_id_and_timestamps(store):
    saved = store.save(Idea(idea_number=1, title="First", tags=["a"]))
    assert saved.id is not None
    assert saved.created_at
    assert saved.updated_at
    assert saved.tags == ["a"]
    assert saved.status == IdeaStatus.PLANNED


def test_save_updates_existing(store):
    saved = store.save(Idea(idea_number=1, title="First"))
    saved.title = "Renamed"
    saved.status = IdeaStatus.COMPLETED
    updated = store.save(saved)
    assert updated.id == saved.id
    assert updated.title == "Renamed"
    assert updated.created_at == saved.created_at
    assert store.count("ideas") == 1


def test_save_missing_id_raises(store):
    with pytest.raises(RecordNotFound):
        store.save(Idea(idea_number=1, title="Ghost", id=999))


def test_duplicate_display_key_raises(store):
    store.save(Idea(idea_number=1, title="One"))
    with pytest.raises(StoreError):
        store.save(Idea(idea_number=1, title="Again"))


def test_get_and_get_by_key(seeded_store):
    idea = seeded_store.get_by_key("ideas", 1)
    assert idea.title == "Semantic Linking"
    assert idea.tags == ["graph", "search"]
    assert seeded_store.get("ideas", "id", idea.id).idea_number == 1
    assert seeded_store.get_by_key("ideas", 99) is None

    update = seeded_store.get_by_key("updates", "2025-01.i1.s1")
    assert isinstance(update, Update)
    assert seeded_store.get_by_key("materials", "hello-world").author == "Sam"


def test_upsert_matches_on_display_key(store):
    first = store.upsert(Sprint(sprint_id="2025-03", goals=["a"]))
    second = store.upsert(Sprint(sprint_id="2025-03", goals=["b", "c"], sprint_number=3))
    assert second.id == first.id
    assert second.goals == ["b", "c"]
    assert second.sprint_number == 3
    assert second.created_at == first.created_at
    assert store.count("sprints") == 1


def test_delete(seeded_store):
    material = seeded_store.get_by_key("materials", "roadmap")
    seeded_store.delete("materials", material.id)
    assert seeded_store.get_by_key("materials", "roadmap") is None
    assert seeded_store.count("materials") == 1


def test_delete_missing_raises(store):
    with pytest.raises(RecordNotFound):
        store.delete("ideas", 12345)


def test_next_number(seeded_store):
    assert seeded_store.next_number("ideas") == 4
    assert seeded_store.next_number("stories") == 3
    with pytest.raises(StoreError):
        seeded_store.next_number("materials")


def test_unknown_status_in_db_defaults(store):
    store.save(Idea(idea_number=1, title="x"))
    conn = sqlite3.connect(store.db_path)
    conn.execute("UPDATE ideas SET status = 'someday'")
    conn.commit()
    conn.close()
    assert store.get_by_key("ideas", 1).status == IdeaStatus.PLANNED


def test_migrates_old_schema(tmp_path):
    db_path = str(tmp_path / "old.db")
    conn = sqlite3.connect(db_path)
    conn.execute("""
        CREATE TABLE materials (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            slug TEXT NOT NULL UNIQUE,
            title TEXT NOT NULL,
            date TEXT NOT NULL DEFAULT '',
            author TEXT,
            tags TEXT,
            excerpt TEXT,
            body TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """)
    conn.commit()
    conn.close()

    store = TaxonomyStore(db_path)
    saved = store.save(Material(slug="s", title="t", canonical_source_url="https://example.com"))
    assert saved.canonical_source_url == "https://example.com"
