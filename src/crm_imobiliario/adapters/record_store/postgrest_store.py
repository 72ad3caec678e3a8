from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from http import HTTPStatus
from typing import Any

import backoff
import httpx
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

BACKEND = "postgrest"

# Só repete quando a requisição nem chegou ao servidor
RETRYABLE_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)


class PostgrestRecordStore(RecordStore):
    """
    Adapter HTTP para uma API REST no estilo PostgREST/Supabase.

    O socket de realtime do servidor não é consumido aqui: o feed local ecoa
    as escritas feitas por este processo, e mudanças externas entram por
    `emit()` (ex.: um receptor de webhooks do banco).
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = client or httpx.AsyncClient(base_url=base_url.rstrip("/"), headers=headers, timeout=timeout)
        self.hub = FeedHub(BACKEND)

    # ───────────────────────── transporte ──────────────────────────
    @backoff.on_exception(backoff.expo, RETRYABLE_ERRORS, max_tries=3, jitter=None)
    async def _send(self, method: str, path: str, **kw) -> httpx.Response:
        return await self._client.request(method, path, **kw)

    async def _request(self, operation: str, method: str, path: str, **kw) -> httpx.Response:
        with STORE_REQUEST_LATENCY.labels(BACKEND, operation).time():
            try:
                resp = await self._send(method, path, **kw)
            except httpx.HTTPError as exc:
                logger.error("store.transport_error", backend=BACKEND, operation=operation, path=path, error=str(exc))
                raise TransportFailure(f"{operation} {path}: {exc}") from exc
        if resp.status_code >= HTTPStatus.BAD_REQUEST:
            logger.error(
                "store.bad_status",
                backend=BACKEND,
                operation=operation,
                path=path,
                status_code=resp.status_code,
                body=resp.text[:500],
            )
            raise TransportFailure(f"{operation} {path}: HTTP {resp.status_code}")
        return resp

    @staticmethod
    def _rows(resp: httpx.Response, operation: str, path: str) -> list[Record]:
        try:
            body = resp.json()
        except ValueError as exc:
            logger.error("store.invalid_body", backend=BACKEND, operation=operation, path=path, body=resp.text[:500])
            raise TransportFailure(f"{operation} {path}: resposta não é JSON") from exc
        if not isinstance(body, list):
            raise TransportFailure(f"{operation} {path}: resposta inesperada")
        return body

    @staticmethod
    def _order_param(order_by: Sequence[OrderBy]) -> str:
        return ",".join(f"{o.column}.{'desc' if o.descending else 'asc'}" for o in order_by)

    # ───────────────────────── RecordStore ──────────────────────────
    async def fetch_all(self, table: str, order_by: Sequence[OrderBy] = ()) -> list[Record]:
        params = {"select": "*"}
        if order_by:
            params["order"] = self._order_param(order_by)
        resp = await self._request("fetch_all", "GET", f"/{table}", params=params)
        return self._rows(resp, "fetch_all", f"/{table}")

    async def insert(self, table: str, fields: Mapping[str, Any]) -> Record:
        resp = await self._request(
            "insert", "POST", f"/{table}", json=dict(fields), headers={"Prefer": "return=representation"}
        )
        rows = self._rows(resp, "insert", f"/{table}")
        if not rows:
            raise TransportFailure(f"insert {table}: resposta vazia")
        record = rows[0]
        self.hub.publish(ChangeEvent(table, ChangeKind.INSERT, new=record))
        return record

    async def update(self, table: str, record_id: str, fields: Mapping[str, Any]) -> Record:
        resp = await self._request(
            "update",
            "PATCH",
            f"/{table}",
            params={"id": f"eq.{record_id}"},
            json=dict(fields),
            headers={"Prefer": "return=representation"},
        )
        rows = self._rows(resp, "update", f"/{table}")
        if not rows:
            raise RecordNotFound(table, record_id)
        record = rows[0]
        self.hub.publish(ChangeEvent(table, ChangeKind.UPDATE, new=record))
        return record

    async def delete(self, table: str, record_id: str) -> None:
        resp = await self._request(
            "delete",
            "DELETE",
            f"/{table}",
            params={"id": f"eq.{record_id}"},
            headers={"Prefer": "return=representation"},
        )
        rows = self._rows(resp, "delete", f"/{table}")
        if not rows:
            raise RecordNotFound(table, record_id)
        self.hub.publish(ChangeEvent(table, ChangeKind.DELETE, old=rows[0]))

    def subscribe(self, table: str, kinds: Iterable[ChangeKind] = ALL_CHANGE_KINDS) -> FeedChannel:
        return self.hub.subscribe(table, kinds)

    def emit(self, event: ChangeEvent) -> int:
        return self.hub.publish(event)

    async def aclose(self) -> None:
        await self._client.aclose()
