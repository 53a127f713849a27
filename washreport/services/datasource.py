"""Persistence collaborator contract and an in-memory implementation.

The report engine never talks to a database directly. It consumes the generic
query/filter API described by :class:`DataSource`; :class:`InMemoryDataSource`
implements it over plain records (optionally loaded from a JSON fixture) and
is what the server and the tests run against.
"""

from __future__ import annotations

import copy
import json
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

logger = logging.getLogger(__name__)

ENTITIES = (
    "work_logs",
    "rate_configs",
    "clients",
    "locations",
    "work_types",
    "employees",
    "report_templates",
)

QUERY_OPERATORS = ("eq", "in", "gte", "lte", "gt", "lt", "ilike")


class FetchError(RuntimeError):
    """Raised when the backend cannot answer a query."""

    def __init__(self, message: str, entity: Optional[str] = None):
        super().__init__(message)
        self.entity = entity


@dataclass(frozen=True)
class QueryFilter:
    """Backend predicate: ``field <op> value``."""

    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in QUERY_OPERATORS:
            raise ValueError(f"unsupported query operator {self.op!r}")


# (field, ascending)
OrderBy = Sequence[Tuple[str, bool]]


class DataSource(Protocol):
    def query(
        self,
        entity: str,
        filters: Sequence[QueryFilter] = (),
        sort: OrderBy = (),
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Dict[str, Any]]: ...

    def count(self, entity: str, filters: Sequence[QueryFilter] = ()) -> int: ...

    def insert(self, entity: str, record: Dict[str, Any]) -> Dict[str, Any]: ...

    def update(self, entity: str, record: Dict[str, Any]) -> Dict[str, Any]: ...

    def delete(self, entity: str, record: Dict[str, Any]) -> Dict[str, Any]: ...


def _matches(record: Dict[str, Any], flt: QueryFilter) -> bool:
    value = record.get(flt.field)
    if flt.op == "eq":
        return value == flt.value
    if flt.op == "in":
        return value in flt.value
    if value is None:
        return False
    if flt.op == "ilike":
        return str(flt.value).lower() in str(value).lower()
    if flt.op == "gte":
        return value >= flt.value
    if flt.op == "lte":
        return value <= flt.value
    if flt.op == "gt":
        return value > flt.value
    return value < flt.value


class InMemoryDataSource:
    """Dictionary-backed implementation of the persistence contract."""

    def __init__(self, tables: Optional[Dict[str, Iterable[Dict[str, Any]]]] = None):
        self._tables: Dict[str, List[Dict[str, Any]]] = {name: [] for name in ENTITIES}
        for name, records in (tables or {}).items():
            self._table(name).extend(dict(r) for r in records)

    @classmethod
    def from_json(cls, path: Path) -> "InMemoryDataSource":
        """Load all entity tables from a JSON object of ``{entity: [records]}``."""
        with Path(path).open("r", encoding="utf-8") as fh:
            payload = json.load(fh)
        if not isinstance(payload, dict):
            raise ValueError(f"{path} must contain a JSON object keyed by entity name")
        logger.info("Loaded data fixture %s (%s)", path,
                    ", ".join(f"{k}={len(v)}" for k, v in payload.items()))
        return cls(payload)

    def _table(self, entity: str) -> List[Dict[str, Any]]:
        try:
            return self._tables[entity]
        except KeyError:
            raise FetchError(f"unknown entity {entity!r}", entity=entity) from None

    def _select(self, entity: str, filters: Sequence[QueryFilter]) -> List[Dict[str, Any]]:
        rows = self._table(entity)
        try:
            return [r for r in rows if all(_matches(r, f) for f in filters)]
        except TypeError as exc:
            raise FetchError(f"malformed query on {entity}: {exc}", entity=entity) from exc

    def query(self, entity, filters=(), sort=(), limit=None, offset=None):
        rows = self._select(entity, filters)
        # Stable multi-key sort: apply keys from last to first, nulls last
        try:
            for field_name, ascending in reversed(list(sort)):
                present = [r for r in rows if r.get(field_name) is not None]
                missing = [r for r in rows if r.get(field_name) is None]
                present.sort(key=lambda r: r[field_name], reverse=not ascending)
                rows = present + missing
        except TypeError as exc:
            raise FetchError(f"cannot order {entity}: {exc}", entity=entity) from exc
        start = offset or 0
        end = start + limit if limit is not None else None
        return [copy.deepcopy(r) for r in rows[start:end]]

    def count(self, entity, filters=()):
        return len(self._select(entity, filters))

    def insert(self, entity, record):
        table = self._table(entity)
        stored = copy.deepcopy(record)
        stored.setdefault("id", uuid.uuid4().hex)
        if any(r.get("id") == stored["id"] for r in table):
            raise FetchError(f"duplicate id {stored['id']!r} in {entity}", entity=entity)
        table.append(stored)
        return copy.deepcopy(stored)

    def update(self, entity, record):
        table = self._table(entity)
        for existing in table:
            if existing.get("id") == record.get("id"):
                existing.update(copy.deepcopy(record))
                return copy.deepcopy(existing)
        raise FetchError(f"{entity} record {record.get('id')!r} not found", entity=entity)

    def delete(self, entity, record):
        table = self._table(entity)
        for idx, existing in enumerate(table):
            if existing.get("id") == record.get("id"):
                return table.pop(idx)
        raise FetchError(f"{entity} record {record.get('id')!r} not found", entity=entity)
