"""
Taxonomy storage backend for a hosted PostgREST endpoint.

Same query surface as TaxonomyStore, spoken over HTTP:

    GET    /rest/v1/<table>?select=*&order=<col>.<asc|desc>
    GET    /rest/v1/<table>?select=*&<col>=eq.<value>&limit=1
    POST   /rest/v1/<table>                      (insert / upsert)
    PATCH  /rest/v1/<table>?id=eq.<id>
    DELETE /rest/v1/<table>?id=eq.<id>
"""
import logging
from typing import List, Optional, Dict, Any

import requests

from .schema import ENTITIES, EntityType, Record
from .store import StoreError, RecordNotFound, utc_now

logger = logging.getLogger(__name__)


class RestTaxonomyStore:
    """HTTP client for a PostgREST-compatible taxonomy database."""

    def __init__(self, base_url: str, api_key: str = "", timeout: float = 10):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.session = requests.Session()

    def _headers(self, prefer: str = "") -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _request(self, method: str, table: str, params: Dict[str, str] = None,
                 json: Any = None, prefer: str = "") -> List[Dict[str, Any]]:
        """Issue one request and return the decoded row list. Raises StoreError."""
        url = f"{self.base_url}/rest/v1/{table}"
        try:
            r = self.session.request(
                method, url,
                params=params,
                json=json,
                headers=self._headers(prefer),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"{method} {table} failed: {e}")
            raise StoreError(str(e)) from e

        if not r.ok:
            message = r.text or r.reason
            try:
                body = r.json()
                if isinstance(body, dict) and body.get("message"):
                    message = body["message"]
            except ValueError:
                pass
            logger.warning(f"{method} {table} returned {r.status_code}: {message}")
            raise StoreError(message)

        if not r.content:
            return []
        try:
            data = r.json()
        except ValueError as e:
            raise StoreError(f"Invalid JSON from datastore: {e}") from e
        if isinstance(data, dict):
            return [data]
        return data

    # ── Queries ──────────────────────────────────────────────────────────────

    def fetch(self, table: str, order_by: str = None, descending: bool = None) -> List[Record]:
        entity = self._entity(table)
        column = self._column(entity, order_by or entity.order_by)
        if descending is None:
            descending = entity.descending
        rows = self._request("GET", entity.table, params={
            "select": "*",
            "order": f"{column}.{'desc' if descending else 'asc'}",
        })
        return [entity.record.from_row(row) for row in rows]

    def get(self, table: str, column: str, value) -> Optional[Record]:
        entity = self._entity(table)
        column = self._column(entity, column)
        rows = self._request("GET", entity.table, params={
            "select": "*",
            column: f"eq.{value}",
            "limit": "1",
        })
        if not rows:
            return None
        return entity.record.from_row(rows[0])

    def get_by_key(self, table: str, key) -> Optional[Record]:
        entity = self._entity(table)
        return self.get(table, entity.key_field, key)

    def count(self, table: str) -> int:
        return len(self.fetch(table))

    # ── Mutations ────────────────────────────────────────────────────────────

    def save(self, record: Record) -> Record:
        entity = self._entity_for(record)
        row = self._payload(record)
        row["updated_at"] = utc_now()
        if record.id is None:
            row["created_at"] = row.get("created_at") or row["updated_at"]
            rows = self._request("POST", entity.table, json=row,
                                 prefer="return=representation")
        else:
            row.pop("created_at", None)
            rows = self._request("PATCH", entity.table,
                                 params={"id": f"eq.{record.id}"}, json=row,
                                 prefer="return=representation")
            if not rows:
                raise RecordNotFound(f"No {entity.name} with id {record.id}")
        return entity.record.from_row(rows[0])

    def upsert(self, record: Record) -> Record:
        entity = self._entity_for(record)
        row = self._payload(record)
        # An existing row keeps its created_at; the table default fills new ones
        if not row.get("created_at"):
            row.pop("created_at", None)
        row["updated_at"] = utc_now()
        rows = self._request(
            "POST", entity.table,
            params={"on_conflict": entity.key_field},
            json=row,
            prefer="resolution=merge-duplicates,return=representation",
        )
        if not rows:
            raise StoreError(f"Upsert of {entity.name} {record.display_key} returned nothing")
        return entity.record.from_row(rows[0])

    def delete(self, table: str, record_id: int) -> None:
        entity = self._entity(table)
        rows = self._request("DELETE", entity.table,
                             params={"id": f"eq.{record_id}"},
                             prefer="return=representation")
        if not rows:
            raise RecordNotFound(f"No {entity.name} with id {record_id}")
        logger.info(f"Deleted {entity.name} id={record_id}")

    def next_number(self, table: str) -> int:
        entity = self._entity(table)
        if not entity.key_is_int:
            raise StoreError(f"{table} has no numeric display key")
        rows = self._request("GET", entity.table, params={
            "select": entity.key_field,
            "order": f"{entity.key_field}.desc",
            "limit": "1",
        })
        if not rows:
            return 1
        return int(rows[0].get(entity.key_field) or 0) + 1

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _entity(self, table: str) -> EntityType:
        entity = ENTITIES.get(table)
        if entity is None:
            raise StoreError(f"Unknown table: {table}")
        return entity

    def _column(self, entity: EntityType, column: str) -> str:
        if column not in entity.record.columns():
            raise StoreError(f"Unknown column {column!r} for table {entity.table}")
        return column

    def _payload(self, record: Record) -> Dict[str, Any]:
        # PostgREST takes array columns as JSON arrays, not encoded text
        data = record.to_dict()
        data.pop("id", None)
        return data

    def _entity_for(self, record: Record) -> EntityType:
        for entity in ENTITIES.values():
            if isinstance(record, entity.record):
                return entity
        raise StoreError(f"Unsupported record type: {type(record).__name__}")
