"""Shared fixtures for taxonomy tests."""

import sys
from pathlib import Path

import pytest

# Ensure the repo root (pkg/ and taxonomy_server.py) is importable
sys.path.insert(0, str(Path(__file__).parent.parent))

from pkg.taxonomy.auth import hash_password
from pkg.taxonomy.config import Config
from pkg.taxonomy.schema import (
    Figure, FigureStatus, Idea, IdeaStatus, Material, Sprint, SprintStatus, Story,
    StoryPriority, StoryStatus, Update, UpdateType,
)
from pkg.taxonomy.store import TaxonomyStore

OPERATOR_EMAIL = "ops@example.com"
OPERATOR_PASSWORD = "correct horse"
API_SECRET = "test-api-key"


@pytest.fixture
def store(tmp_path):
    """Empty SQLite store in a temp directory."""
    return TaxonomyStore(str(tmp_path / "taxonomy.db"))


@pytest.fixture
def seeded_store(store):
    """Store with a few records of every entity kind."""
    store.save(Idea(idea_number=1, title="Semantic Linking", status=IdeaStatus.ACTIVE,
                    created="2025-01-10", tags=["graph", "search"], body="Link everything."))
    store.save(Idea(idea_number=2, title="Offline Mode", status=IdeaStatus.PLANNED, created="2025-02-01"))
    store.save(Idea(idea_number=3, title="Old Import", status=IdeaStatus.ARCHIVED, created="2024-11-20"))
    store.save(Story(story_number=1, title="Parse wiki links", status=StoryStatus.IN_PROGRESS,
                     priority=StoryPriority.HIGH, created="2025-01-12"))
    store.save(Story(story_number=2, title="Sync queue", status=StoryStatus.BACKLOG, created="2025-02-03"))
    store.save(Sprint(sprint_id="2025-01", year=2025, sprint_number=1,
                      start_date="2025-01-06", end_date="2025-01-19",
                      status=SprintStatus.COMPLETED, goals=["Ship linking", "Write docs"]))
    store.save(Sprint(sprint_id="2025-02", year=2025, sprint_number=2,
                      start_date="2025-01-20", end_date="2025-02-02", status=SprintStatus.ACTIVE))
    store.save(Update(notation="2025-01.i1.s1", sprint_id="2025-01", idea_number=1,
                      story_number=1, date="2025-01-15", type=UpdateType.PROGRESS, body="Half done."))
    store.save(Update(notation="2025-02.i1.s1", sprint_id="2025-02", idea_number=1,
                      story_number=1, date="2025-01-25", type=UpdateType.COMPLETION))
    store.save(Figure(figure_number=1, title="Architecture", image_path="/img/arch.png",
                      alt_text="Boxes and arrows", created="2025-01-11", status=FigureStatus.ACTIVE))
    store.save(Material(slug="hello-world", title="Hello World", date="2025-01-05",
                        author="Sam", excerpt="First post."))
    store.save(Material(slug="roadmap", title="Roadmap", date="2025-02-10"))
    return store


@pytest.fixture
def config(tmp_path):
    return Config(
        db_path=str(tmp_path / "taxonomy.db"),
        secret_key="test-secret",
        api_secret=API_SECRET,
        operators=[{"email": OPERATOR_EMAIL, "password_hash": hash_password(OPERATOR_PASSWORD)}],
    )


@pytest.fixture
def app(config, seeded_store):
    import taxonomy_server
    taxonomy_server.app.config["TESTING"] = True
    taxonomy_server.configure(config, seeded_store)
    yield taxonomy_server.app
    taxonomy_server.app.config.pop("TAXONOMY", None)
    taxonomy_server.app.extensions.pop("taxonomy_store", None)
    taxonomy_server.app.extensions.pop("taxonomy_auth", None)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def operator_client(client):
    """Test client with an operator signed in."""
    resp = client.post("/auth/login", data={"email": OPERATOR_EMAIL, "password": OPERATOR_PASSWORD})
    assert resp.status_code == 302
    return client
