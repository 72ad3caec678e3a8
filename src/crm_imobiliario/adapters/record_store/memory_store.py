from __future__ import annotations

import copy
import uuid
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import structlog

from crm_imobiliario.adapters.observability.metrics import STORE_REQUEST_LATENCY
from crm_imobiliario.adapters.record_store.feed_hub import FeedHub
from crm_imobiliario.core.domain.events.exceptions import RecordNotFound, TransportFailure
from crm_imobiliario.core.domain.repositories.record_store import (
    ALL_CHANGE_KINDS,
    ChangeEvent,
    ChangeKind,
    FeedChannel,
    OrderBy,
    Record,
    RecordStore,
)

logger = structlog.get_logger(__name__)

BACKEND = "memory"

# Tabelas com coluna `updated_at` mantida pelo store
TOUCHED_TABLES = frozenset({"support_tickets"})


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _sort_value(value: Any) -> tuple[int, Any]:
    # nulos por último, como o `nullslast` do Postgres em ordem ascendente
    if value is None:
        return (1, "")
    if isinstance(value, (bool, int, float, Decimal)):
        return (0, value)
    return (0, str(value))


class InMemoryRecordStore(RecordStore):
    """
    Record store em memória com feed de mudanças: usado em testes e execuções
    locais. Cada escrita publica o ChangeEvent correspondente no FeedHub.
    """

    def __init__(self, touched_tables: Iterable[str] = TOUCHED_TABLES) -> None:
        self._tables: dict[str, dict[str, Record]] = {}
        self._touched = frozenset(touched_tables)
        self._failures: dict[str, Exception] = {}
        self.hub = FeedHub(BACKEND)

    # ───────────────────────── utilitários de teste ──────────────────────────
    def seed(self, table: str, rows: Iterable[Mapping[str, Any]]) -> list[Record]:
        """Grava linhas sem publicar eventos no feed."""
        stored = []
        for row in rows:
            record = dict(row)
            record.setdefault("id", str(uuid.uuid4()))
            record["id"] = str(record["id"])
            record.setdefault("created_at", _utcnow_iso())
            self._table(table)[record["id"]] = record
            stored.append(copy.deepcopy(record))
        return stored

    def fail_next(self, operation: str, exc: Exception | None = None) -> None:
        """A próxima chamada de `operation` (fetch_all/insert/update/delete) falha."""
        self._failures[operation] = exc or TransportFailure(f"{operation} indisponível")

    def emit(self, event: ChangeEvent) -> int:
        """Publica um evento externo (ex.: webhook de entrada gravando direto no banco)."""
        return self.hub.publish(event)

    def hold_feed(self) -> None:
        self.hub.hold()

    def release_feed(self, reverse: bool = False) -> int:
        return self.hub.release(reverse=reverse)

    def rows(self, table: str) -> list[Record]:
        return [copy.deepcopy(r) for r in self._table(table).values()]

    # ───────────────────────── RecordStore ──────────────────────────
    async def fetch_all(self, table: str, order_by: Sequence[OrderBy] = ()) -> list[Record]:
        with STORE_REQUEST_LATENCY.labels(BACKEND, "fetch_all").time():
            self._maybe_fail("fetch_all")
            rows = [copy.deepcopy(r) for r in self._table(table).values()]
            for order in reversed(order_by):
                rows.sort(key=lambda r, c=order.column: _sort_value(r.get(c)), reverse=order.descending)
            return rows

    async def insert(self, table: str, fields: Mapping[str, Any]) -> Record:
        with STORE_REQUEST_LATENCY.labels(BACKEND, "insert").time():
            self._maybe_fail("insert")
            record = copy.deepcopy(dict(fields))
            record["id"] = str(record.get("id") or uuid.uuid4())
            record.setdefault("created_at", _utcnow_iso())
            if table in self._touched:
                record.setdefault("updated_at", record["created_at"])
            self._table(table)[record["id"]] = record
            logger.debug("store.inserted", backend=BACKEND, table=table, record_id=record["id"])
            self.hub.publish(ChangeEvent(table, ChangeKind.INSERT, new=copy.deepcopy(record)))
            return copy.deepcopy(record)

    async def update(self, table: str, record_id: str, fields: Mapping[str, Any]) -> Record:
        with STORE_REQUEST_LATENCY.labels(BACKEND, "update").time():
            self._maybe_fail("update")
            rows = self._table(table)
            if record_id not in rows:
                raise RecordNotFound(table, record_id)
            old = copy.deepcopy(rows[record_id])
            record = {**rows[record_id], **copy.deepcopy(dict(fields)), "id": record_id}
            if table in self._touched and "updated_at" not in fields:
                record["updated_at"] = _utcnow_iso()
            rows[record_id] = record
            self.hub.publish(ChangeEvent(table, ChangeKind.UPDATE, new=copy.deepcopy(record), old=old))
            return copy.deepcopy(record)

    async def delete(self, table: str, record_id: str) -> None:
        with STORE_REQUEST_LATENCY.labels(BACKEND, "delete").time():
            self._maybe_fail("delete")
            rows = self._table(table)
            if record_id not in rows:
                raise RecordNotFound(table, record_id)
            old = rows.pop(record_id)
            self.hub.publish(ChangeEvent(table, ChangeKind.DELETE, old={"id": record_id, **old}))

    def subscribe(self, table: str, kinds: Iterable[ChangeKind] = ALL_CHANGE_KINDS) -> FeedChannel:
        return self.hub.subscribe(table, kinds)

    # ───────────────────────── helpers ──────────────────────────
    def _table(self, table: str) -> dict[str, Record]:
        return self._tables.setdefault(table, {})

    def _maybe_fail(self, operation: str) -> None:
        exc = self._failures.pop(operation, None)
        if exc is not None:
            raise exc
