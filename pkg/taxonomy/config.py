# Ideas Taxonomy — configuration
# Override paths and credentials via taxonomy.yaml or environment variables.

import os
import logging
import secrets
import yaml
from pathlib import Path
from dataclasses import dataclass, field, fields
from typing import Dict, List, Optional

CONFIG_PATH = Path(__file__).parent / "taxonomy.yaml"

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when configuration is invalid or incomplete."""
    pass


@dataclass
class Config:
    """Runtime configuration for the taxonomy server and importer."""

    # Datastore
    datastore: str = "sqlite"        # "sqlite" or "rest"
    db_path: str = "~/.local/share/taxonomy/taxonomy.db"
    rest_url: str = ""               # PostgREST base URL when datastore=rest
    rest_key: str = ""

    # Web
    host: str = "127.0.0.1"
    port: int = 3000
    secret_key: str = ""             # Flask session signing key
    api_secret: str = ""             # X-API-Key for JSON mutations; empty disables them
    log_level: str = "INFO"

    # Admin operators: [{email, password_hash}]
    operators: List[Dict[str, str]] = field(default_factory=list)

    def apply_env(self):
        """Environment variables win over the YAML file."""
        env_map = {
            "TAXONOMY_DB": "db_path",
            "TAXONOMY_DATASTORE": "datastore",
            "TAXONOMY_REST_URL": "rest_url",
            "TAXONOMY_REST_KEY": "rest_key",
            "TAXONOMY_SECRET_KEY": "secret_key",
            "TAXONOMY_API_SECRET": "api_secret",
        }
        for env, attr in env_map.items():
            value = os.environ.get(env)
            if value:
                setattr(self, attr, value)

    def resolve(self):
        """Expand ~, validate the backend choice and fill a session key."""
        self.db_path = str(Path(self.db_path).expanduser())
        self.operators = list(self.operators or [])
        self.datastore = str(self.datastore or "").strip().lower()
        if self.datastore not in ("sqlite", "rest"):
            raise ConfigError(f"Unknown datastore {self.datastore!r} (expected sqlite or rest)")
        if self.datastore == "rest" and not self.rest_url:
            raise ConfigError("datastore=rest requires rest_url (or TAXONOMY_REST_URL)")
        if not self.secret_key:
            # Sessions will not survive a restart without a configured key
            logger.warning("No secret_key configured, generating an ephemeral one")
            self.secret_key = secrets.token_hex(32)

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Config":
        """Load config from YAML file, falling back to defaults."""
        cfg_path = Path(path or os.environ.get("TAXONOMY_CONFIG") or CONFIG_PATH)
        if cfg_path.exists():
            with open(cfg_path, "r") as f:
                try:
                    data = yaml.safe_load(f) or {}
                except yaml.YAMLError as e:
                    raise ConfigError(f"Cannot parse {cfg_path}: {e}") from e
            if not isinstance(data, dict):
                raise ConfigError(f"{cfg_path} must contain a mapping")
            known = {fld.name for fld in fields(cls)}
            cfg = cls(**{k: v for k, v in data.items() if k in known})
        else:
            cfg = cls()
        cfg.apply_env()
        cfg.resolve()
        return cfg


def open_store(cfg: Config):
    """Build the datastore client selected by ``cfg.datastore``."""
    if cfg.datastore == "rest":
        from .rest_store import RestTaxonomyStore
        return RestTaxonomyStore(cfg.rest_url, cfg.rest_key)
    from .store import TaxonomyStore
    return TaxonomyStore(cfg.db_path)
