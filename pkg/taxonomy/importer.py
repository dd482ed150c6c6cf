"""
Markdown importer.

Loads Jekyll-style content folders (``_ideas``, ``_stories``, ``_sprints``,
``_updates``, ``_figures``, ``_materials``) into the taxonomy store. Each
``*.md`` file is YAML front matter plus a Markdown body; records are upserted
on their display key so re-running the import is safe.

Usage:
    python -m pkg.taxonomy.importer /path/to/site
    python -m pkg.taxonomy.importer /path/to/site --db ./taxonomy.db
"""
import argparse
import logging
import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Tuple

import yaml

from .config import Config, ConfigError, open_store
from .schema import ENTITIES
from .store import StoreError

logger = logging.getLogger(__name__)

# Directory per table, in import order
CONTENT_DIRS = {
    "ideas": "_ideas",
    "stories": "_stories",
    "sprints": "_sprints",
    "updates": "_updates",
    "figures": "_figures",
    "materials": "_materials",
}

_DATE_PREFIX_RE = re.compile(r"^\d{4}-\d{2}-\d{2}-")


class FrontMatterError(ValueError):
    """Raised when a file's front matter block is malformed."""
    pass


@dataclass
class ImportReport:
    """Per-run tally of imported and failed files."""
    imported: Dict[str, int] = field(default_factory=dict)
    failed: List[Tuple[str, str]] = field(default_factory=list)  # (path, reason)

    @property
    def total(self) -> int:
        return sum(self.imported.values())


def split_front_matter(text: str) -> Tuple[Dict[str, Any], str]:
    """Split ``---``-delimited YAML front matter from the body."""
    lines = text.lstrip("\ufeff").splitlines()
    if not lines or lines[0].strip() != "---":
        return {}, text.strip()
    for i, line in enumerate(lines[1:], start=1):
        if line.strip() == "---":
            try:
                data = yaml.safe_load("\n".join(lines[1:i])) or {}
            except yaml.YAMLError as e:
                raise FrontMatterError(f"invalid YAML: {e}") from e
            if not isinstance(data, dict):
                raise FrontMatterError("front matter must be a mapping")
            return data, "\n".join(lines[i + 1:]).strip()
    raise FrontMatterError("unterminated front matter")


def material_slug(filename: str) -> str:
    """2025-01-15-my-post.md → my-post"""
    return _DATE_PREFIX_RE.sub("", Path(filename).stem)


def build_row(table: str, path: Path, front: Dict[str, Any], body: str) -> Dict[str, Any]:
    """Datastore row for one Markdown file."""
    row = dict(front)
    row.pop("id", None)
    row["body"] = body or None
    if table == "materials" and not row.get("slug"):
        row["slug"] = material_slug(path.name)
    # YAML turns bare dates into date objects
    for name, value in row.items():
        if hasattr(value, "isoformat"):
            row[name] = value.isoformat()
    return row


def import_file(store, table: str, path: Path):
    """Parse and upsert one file. Raises FrontMatterError, ValueError or StoreError."""
    entity = ENTITIES[table]
    front, body = split_front_matter(path.read_text(encoding="utf-8"))
    row = build_row(table, path, front, body)
    if row.get(entity.key_field) in (None, ""):
        raise ValueError(f"missing {entity.key_field}")
    if entity.key_is_int:
        raw = row[entity.key_field]
        try:
            if isinstance(raw, bool):
                raise TypeError(raw)
            row[entity.key_field] = int(raw)
        except (TypeError, ValueError):
            raise ValueError(f"invalid {entity.key_field}: {raw!r}")
    record = entity.record.from_row(row)
    return store.upsert(record)


def import_tree(store, content_root) -> ImportReport:
    """Import every content folder under ``content_root``."""
    root = Path(content_root)
    report = ImportReport()
    for table, dirname in CONTENT_DIRS.items():
        entity = ENTITIES[table]
        folder = root / dirname
        report.imported[table] = 0
        if not folder.is_dir():
            logger.info(f"Directory not found: {folder}")
            continue
        for path in sorted(folder.glob("*.md")):
            try:
                record = import_file(store, table, path)
            except (FrontMatterError, ValueError, StoreError, OSError) as e:
                reason = getattr(e, "message", None) or str(e)
                logger.error(f"Failed to import {entity.name} {path.name}: {reason}")
                report.failed.append((str(path), reason))
                continue
            report.imported[table] += 1
            logger.info(f"Imported {entity.name} {entity.label(record)}: {entity.heading(record)}")
    return report


def main(argv=None):
    parser = argparse.ArgumentParser(description="Import Markdown content into the taxonomy store")
    parser.add_argument("content_root", help="Directory containing _ideas/, _stories/, ...")
    parser.add_argument("--config", help="Path to taxonomy.yaml")
    parser.add_argument("--db", help="SQLite database path (overrides config)")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [taxonomy] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    if args.db:
        os.environ["TAXONOMY_DB"] = args.db
    try:
        cfg = Config.load(args.config)
    except ConfigError as e:
        logger.error(f"Config error: {e}")
        return 1

    if not Path(args.content_root).is_dir():
        logger.error(f"Content root not found: {args.content_root}")
        return 1

    report = import_tree(open_store(cfg), args.content_root)
    summary = ", ".join(f"{n} {table}" for table, n in report.imported.items())
    logger.info(f"Import complete: {summary}")
    if report.failed:
        logger.warning(f"{len(report.failed)} file(s) failed")
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
