"""
Tests for the Markdown importer.
"""
import pytest

from pkg.taxonomy.importer import (
    FrontMatterError, build_row, import_tree, main, material_slug,
    split_front_matter,
)
from pkg.taxonomy.schema import IdeaStatus, StoryPriority, UpdateType
from pkg.taxonomy.store import TaxonomyStore


def _write(root, folder, name, text):
    path = root / folder
    path.mkdir(parents=True, exist_ok=True)
    (path / name).write_text(text, encoding="utf-8")


@pytest.fixture
def content(tmp_path):
    root = tmp_path / "site"
    _write(root, "_ideas", "i1.md", """---
idea_number: 1
title: Semantic Linking
description: Connect notes
status: active
created: 2025-01-10
tags: [graph, search]
---

# Semantic Linking

Body text.
""")
    _write(root, "_stories", "s1.md", """---
story_number: 1
title: Parse links
status: in-progress
priority: high
created: 2025-01-12
---
""")
    _write(root, "_sprints", "2025-01.md", """---
sprint_id: "2025-01"
year: 2025
sprint_number: 1
start_date: 2025-01-06
end_date: 2025-01-19
status: completed
goals:
  - Ship linking
---
Retro notes.
""")
    _write(root, "_updates", "2025-01.i1.s1.md", """---
notation: 2025-01.i1.s1
sprint_id: "2025-01"
idea_number: 1
story_number: 1
date: 2025-01-15
type: blocker
---
Waiting on parser.
""")
    _write(root, "_figures", "fig_1.md", """---
figure_number: 1
title: Architecture
image_path: /assets/arch.png
status: active
---
""")
    _write(root, "_materials", "2025-01-05-hello-world.md", """---
title: Hello World
date: 2025-01-05
author: Sam
---
First post.
""")
    return root


def test_split_front_matter():
    front, body = split_front_matter("---\ntitle: X\n---\n\nHello\n")
    assert front == {"title": "X"}
    assert body == "Hello"


def test_split_without_front_matter():
    assert split_front_matter("just text\n") == ({}, "just text")


@pytest.mark.parametrize("text", ["---\ntitle: [x\n---\n", "---\n- a\n---\n", "---\ntitle: x\n"])
def test_split_rejects_bad_front_matter(text):
    with pytest.raises(FrontMatterError):
        split_front_matter(text)


def test_material_slug_strips_date_prefix():
    assert material_slug("2025-01-15-my-post.md") == "my-post"
    assert material_slug("about.md") == "about"


def test_build_row_stringifies_dates(tmp_path):
    import datetime
    row = build_row("ideas", tmp_path / "i1.md", {"created": datetime.date(2025, 1, 10), "id": 3}, "")
    assert row["created"] == "2025-01-10"
    assert row["body"] is None
    assert "id" not in row


def test_import_tree(content, store):
    report = import_tree(store, content)
    assert report.failed == []
    assert report.total == 6

    idea = store.get_by_key("ideas", 1)
    assert idea.status == IdeaStatus.ACTIVE
    assert idea.tags == ["graph", "search"]
    assert idea.created == "2025-01-10"
    assert idea.body.startswith("# Semantic Linking")

    story = store.get_by_key("stories", 1)
    assert story.priority == StoryPriority.HIGH
    assert story.body is None

    sprint = store.get_by_key("sprints", "2025-01")
    assert sprint.goals == ["Ship linking"]
    assert sprint.start_date == "2025-01-06"

    update = store.get_by_key("updates", "2025-01.i1.s1")
    assert update.type == UpdateType.BLOCKER

    material = store.get_by_key("materials", "hello-world")
    assert material.author == "Sam"


def test_reimport_updates_in_place(content, store):
    import_tree(store, content)
    _write(content, "_ideas", "i1.md", "---\nidea_number: 1\ntitle: Renamed\n---\n")
    import_tree(store, content)
    assert store.count("ideas") == 1
    assert store.get_by_key("ideas", 1).title == "Renamed"


def test_bad_files_are_reported_and_skipped(content, store):
    _write(content, "_ideas", "broken.md", "---\ntitle: [oops\n---\n")
    _write(content, "_ideas", "nokey.md", "---\ntitle: No number\n---\n")
    report = import_tree(store, content)
    assert report.imported["ideas"] == 1
    assert len(report.failed) == 2
    assert store.count("ideas") == 1


def test_missing_folders_are_skipped(tmp_path, store):
    report = import_tree(store, tmp_path)
    assert report.total == 0
    assert report.failed == []


def test_main_imports_into_db(content, tmp_path, monkeypatch):
    monkeypatch.delenv("TAXONOMY_DATASTORE", raising=False)
    db_path = tmp_path / "cli.db"
    monkeypatch.setenv("TAXONOMY_DB", str(db_path))
    rc = main([str(content), "--db", str(db_path), "--config", str(tmp_path / "none.yaml")])
    assert rc == 0
    assert TaxonomyStore(str(db_path)).count("materials") == 1


def test_main_missing_root(tmp_path, monkeypatch):
    monkeypatch.delenv("TAXONOMY_DATASTORE", raising=False)
    monkeypatch.setenv("TAXONOMY_DB", str(tmp_path / "x.db"))
    rc = main([str(tmp_path / "nope"), "--db", str(tmp_path / "x.db"),
               "--config", str(tmp_path / "none.yaml")])
    assert rc == 1


def test_non_numeric_display_key_rejected(content, store):
    _write(content, "_ideas", "alpha.md", "---\nidea_number: i5\ntitle: Alpha\n---\n")
    _write(content, "_ideas", "beta.md", "---\nidea_number: seven\ntitle: Beta\n---\n")
    report = import_tree(store, content)
    assert report.imported["ideas"] == 1
    failed = sorted(reason for _, reason in report.failed)
    assert failed == ["invalid idea_number: 'i5'", "invalid idea_number: 'seven'"]
    assert [i.idea_number for i in store.fetch("ideas")] == [1]


def test_numeric_string_display_key_accepted(content, store):
    _write(content, "_stories", "s2.md", "---\nstory_number: \"2\"\ntitle: Quoted\n---\n")
    report = import_tree(store, content)
    assert report.failed == []
    assert store.get_by_key("stories", 2).title == "Quoted"
