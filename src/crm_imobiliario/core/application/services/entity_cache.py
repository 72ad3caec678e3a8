from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence
from typing import Any, Generic, TypeVar

import structlog

from crm_imobiliario.adapters.observability.metrics import FEED_EVENTS_APPLIED, FEED_EVENTS_IGNORED
from crm_imobiliario.core.application.dtos.operation_result import OperationResult
from crm_imobiliario.core.domain.events.events import EntityInsertedEvent, EntityStageChangedEvent
from crm_imobiliario.core.domain.events.exceptions import CrmError, MappingError
from crm_imobiliario.core.domain.repositories.record_store import (
    ALL_CHANGE_KINDS,
    ChangeEvent,
    ChangeKind,
    FeedChannel,
    OrderBy,
    RecordStore,
)
from crm_imobiliario.core.domain.services.event_dispatcher import EventDispatcher

E = TypeVar("E")

logger = structlog.get_logger(__name__)

Listener = Callable[["EntityCache[Any]"], None]


class EntityCache(Generic[E]):
    """
    Espelho em memória de uma tabela remota: lista ordenada, sem ids
    duplicados, carregada por `load()` e corrigida pelos eventos do feed.

    Nenhum método lança exceção: linhas inválidas e eventos inesperados são
    logados e ignorados. Eventos aplicados são atômicos (o loop é único).
    """

    def __init__(
        self,
        store: RecordStore,
        table: str,
        mapper: Callable[[Mapping[str, Any]], E],
        sort_key: Callable[[E], Any],
        descending: bool = False,
        order_by: Sequence[OrderBy] = (),
        dispatcher: EventDispatcher | None = None,
        stage_field: str | None = "status",
    ) -> None:
        self._store = store
        self._table = table
        self._mapper = mapper
        self._sort_key = sort_key
        self._descending = descending
        self._order_by = tuple(order_by)
        self._dispatcher = dispatcher
        self._stage_field = stage_field

        self._items: list[E] = []
        self._loading = False
        self._listeners: list[Listener] = []
        self._channel: FeedChannel | None = None
        self._feed_task: asyncio.Task | None = None
        self.last_error: str | None = None
        self.quarantined = 0

    # ───────────────────────── leitura ──────────────────────────
    @property
    def table(self) -> str:
        return self._table

    def snapshot(self) -> list[E]:
        return list(self._items)

    def is_loading(self) -> bool:
        return self._loading

    def get(self, entity_id: str) -> E | None:
        idx = self._index_of(entity_id)
        return self._items[idx] if idx is not None else None

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, entity_id: object) -> bool:
        return isinstance(entity_id, str) and self._index_of(entity_id) is not None

    # ───────────────────────── carga completa ──────────────────────────
    async def load(self) -> OperationResult:
        """
        Substitui o cache pelo snapshot do store. Em falha de transporte mantém
        a lista anterior e registra `last_error`; não há retry automático.
        """
        self._loading = True
        try:
            rows = await self._store.fetch_all(self._table, self._order_by)
        except CrmError as exc:
            self.last_error = str(exc)
            logger.warning("cache.load_failed", table=self._table, error=str(exc))
            return OperationResult.fail(f"Erro ao carregar {self._table}", exc)
        except Exception as exc:
            self.last_error = str(exc)
            logger.error("cache.load_unexpected_error", table=self._table, error=str(exc), exc_info=True)
            return OperationResult.fail(f"Erro ao carregar {self._table}", exc)
        finally:
            self._loading = False

        entities: list[E] = []
        seen: set[str] = set()
        for row in rows:
            entity = self._map(row)
            if entity is None or entity.id in seen:
                continue
            seen.add(entity.id)
            entities.append(entity)

        self._items = sorted(entities, key=self._sort_key, reverse=self._descending)
        self.last_error = None
        logger.info("cache.loaded", table=self._table, count=len(self._items))
        self._notify()
        return OperationResult.ok(data=len(self._items))

    # ───────────────────────── patches do feed ──────────────────────────
    def apply_insert(self, record: Mapping[str, Any]) -> bool:
        entity = self._map(record)
        if entity is None:
            return False
        if self._index_of(entity.id) is not None:
            logger.debug("feed.insert_duplicate", table=self._table, record_id=entity.id)
            return False
        self._insert_entity(entity)
        return True

    def apply_update(self, record: Mapping[str, Any]) -> bool:
        entity = self._map(record)
        if entity is None:
            return False
        idx = self._index_of(entity.id)
        if idx is None:
            logger.info("feed.update_unknown_id", table=self._table, record_id=entity.id)
            return False
        self._replace_entity(idx, entity)
        return True

    def apply_delete(self, entity_id: str) -> bool:
        idx = self._index_of(entity_id)
        if idx is None:
            logger.debug("feed.delete_unknown_id", table=self._table, record_id=entity_id)
            return False
        del self._items[idx]
        self._notify()
        return True

    def apply(self, event: ChangeEvent) -> bool:
        """Aplica um evento do feed; nunca propaga exceções."""
        applied = self._apply(event)
        kind = getattr(event.kind, "value", str(event.kind))
        counter = FEED_EVENTS_APPLIED if applied else FEED_EVENTS_IGNORED
        counter.labels(table=self._table, kind=kind).inc()
        return applied

    def _apply(self, event: ChangeEvent) -> bool:
        try:
            if event.table != self._table:
                logger.warning("feed.wrong_table", table=self._table, event_table=event.table)
                return False
            if event.kind is ChangeKind.INSERT and event.new is not None:
                return self.apply_insert(event.new)
            if event.kind is ChangeKind.UPDATE and event.new is not None:
                return self.apply_update(event.new)
            if event.kind is ChangeKind.DELETE and event.record_id is not None:
                return self.apply_delete(event.record_id)
            logger.warning("feed.malformed_event", table=self._table, kind=str(event.kind))
            return False
        except Exception as exc:
            logger.error("feed.event_error", table=self._table, error=str(exc), exc_info=True)
            return False

    # ───────────────────────── dica otimista ──────────────────────────
    def map_record(self, record: Mapping[str, Any]) -> E | None:
        return self._map(record)

    def apply_local(self, entity: E) -> None:
        """Upsert local logo após uma escrita bem-sucedida; o feed confirma depois."""
        idx = self._index_of(entity.id)
        if idx is None:
            self._insert_entity(entity)
        else:
            self._replace_entity(idx, entity)

    def discard_local(self, entity_id: str) -> None:
        self.apply_delete(entity_id)

    # ───────────────────────── feed ──────────────────────────
    def subscribe_to_feed(self) -> FeedChannel:
        if self._channel is None or self._channel.closed:
            self._channel = self._store.subscribe(self._table, ALL_CHANGE_KINDS)
            logger.debug("feed.subscribed", table=self._table)
        return self._channel

    def drain_pending(self) -> int:
        """Aplica todos os eventos já enfileirados no canal."""
        if self._channel is None:
            return 0
        applied = 0
        while (event := self._channel.get_nowait()) is not None:
            applied += int(self.apply(event))
        return applied

    async def run_feed(self, channel: FeedChannel) -> None:
        async for event in channel:
            self.apply(event)

    def start_feed(self) -> asyncio.Task:
        """Assina o feed e drena continuamente numa task do loop corrente."""
        channel = self.subscribe_to_feed()
        if self._feed_task is None or self._feed_task.done():
            self._feed_task = asyncio.get_running_loop().create_task(
                self.run_feed(channel), name=f"feed:{self._table}"
            )
        return self._feed_task

    async def unsubscribe(self) -> None:
        if self._channel is not None:
            self._channel.close()
            self._channel = None
        if self._feed_task is not None:
            task, self._feed_task = self._feed_task, None
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.debug("feed.unsubscribed", table=self._table)

    # ───────────────────────── observers ──────────────────────────
    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as exc:
                logger.error("cache.listener_error", table=self._table, error=str(exc), exc_info=True)

    def _emit(self, event) -> None:
        if self._dispatcher is not None:
            self._dispatcher.dispatch(event)

    def _insert_entity(self, entity: E) -> None:
        self._items.insert(self._insert_position(entity), entity)
        self._notify()
        self._emit(EntityInsertedEvent(table=self._table, entity_id=entity.id, entity=entity))

    def _replace_entity(self, idx: int, entity: E) -> None:
        previous = self._items[idx]
        self._items[idx] = entity
        self._notify()
        old_stage = self._stage_of(previous)
        new_stage = self._stage_of(entity)
        if old_stage != new_stage:
            self._emit(
                EntityStageChangedEvent(
                    table=self._table,
                    entity_id=entity.id,
                    old_stage=old_stage,
                    new_stage=new_stage,
                    entity=entity,
                )
            )

    # ───────────────────────── helpers ──────────────────────────
    def _map(self, record: Mapping[str, Any]) -> E | None:
        try:
            return self._mapper(record)
        except MappingError as exc:
            self.quarantined += 1
            logger.warning("feed.row_quarantined", table=self._table, error=str(exc))
            return None

    def _stage_of(self, entity: E) -> str | None:
        return getattr(entity, self._stage_field, None) if self._stage_field else None

    def _index_of(self, entity_id: str) -> int | None:
        for idx, item in enumerate(self._items):
            if item.id == entity_id:
                return idx
        return None

    def _insert_position(self, entity: E) -> int:
        key = self._sort_key(entity)
        for idx, item in enumerate(self._items):
            current = self._sort_key(item)
            if (key > current) if self._descending else (key < current):
                return idx
        return len(self._items)
