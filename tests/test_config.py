"""
Tests for config loading: YAML file, defaults and environment overrides.
"""
import pytest

from pkg.taxonomy.config import Config, ConfigError, open_store
from pkg.taxonomy.rest_store import RestTaxonomyStore
from pkg.taxonomy.store import TaxonomyStore

ENV_VARS = (
    "TAXONOMY_CONFIG", "TAXONOMY_DB", "TAXONOMY_DATASTORE", "TAXONOMY_REST_URL",
    "TAXONOMY_REST_KEY", "TAXONOMY_SECRET_KEY", "TAXONOMY_API_SECRET",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults_when_file_missing(tmp_path):
    cfg = Config.load(str(tmp_path / "missing.yaml"))
    assert cfg.datastore == "sqlite"
    assert cfg.port == 3000
    assert cfg.operators == []
    assert not cfg.db_path.startswith("~")
    # An ephemeral session key is generated
    assert len(cfg.secret_key) == 64


def test_yaml_values_and_unknown_keys(tmp_path):
    path = tmp_path / "taxonomy.yaml"
    path.write_text(
        "db_path: /tmp/t.db\n"
        "port: 8080\n"
        "secret_key: s3cret\n"
        "legacy_option: true\n"
        "operators:\n"
        "  - email: a@example.com\n"
        "    password_hash: x\n"
    )
    cfg = Config.load(str(path))
    assert cfg.db_path == "/tmp/t.db"
    assert cfg.port == 8080
    assert cfg.secret_key == "s3cret"
    assert cfg.operators == [{"email": "a@example.com", "password_hash": "x"}]


def test_env_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / "taxonomy.yaml"
    path.write_text("db_path: /tmp/file.db\napi_secret: from-file\n")
    monkeypatch.setenv("TAXONOMY_CONFIG", str(path))
    monkeypatch.setenv("TAXONOMY_DB", str(tmp_path / "env.db"))
    monkeypatch.setenv("TAXONOMY_API_SECRET", "from-env")
    cfg = Config.load()
    assert cfg.db_path == str(tmp_path / "env.db")
    assert cfg.api_secret == "from-env"


def test_invalid_yaml_raises(tmp_path):
    path = tmp_path / "taxonomy.yaml"
    path.write_text("port: [unclosed\n")
    with pytest.raises(ConfigError):
        Config.load(str(path))


def test_non_mapping_raises(tmp_path):
    path = tmp_path / "taxonomy.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ConfigError):
        Config.load(str(path))


def test_unknown_datastore_raises(tmp_path):
    path = tmp_path / "taxonomy.yaml"
    path.write_text("datastore: mongo\n")
    with pytest.raises(ConfigError):
        Config.load(str(path))


def test_rest_requires_url(tmp_path, monkeypatch):
    monkeypatch.setenv("TAXONOMY_DATASTORE", "rest")
    with pytest.raises(ConfigError):
        Config.load(str(tmp_path / "missing.yaml"))


def test_open_store_selects_backend(tmp_path, monkeypatch):
    cfg = Config(db_path=str(tmp_path / "t.db"))
    assert isinstance(open_store(cfg), TaxonomyStore)

    monkeypatch.setenv("TAXONOMY_DATASTORE", "rest")
    monkeypatch.setenv("TAXONOMY_REST_URL", "https://db.example.com")
    monkeypatch.setenv("TAXONOMY_REST_KEY", "anon")
    cfg = Config.load(str(tmp_path / "missing.yaml"))
    store = open_store(cfg)
    assert isinstance(store, RestTaxonomyStore)
    assert store.api_key == "anon"


def test_empty_datastore_raises_config_error(tmp_path):
    path = tmp_path / "taxonomy.yaml"
    path.write_text("datastore:\n")
    with pytest.raises(ConfigError):
        Config.load(str(path))
