from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Generic, TypeVar

import structlog

from crm_imobiliario.core.application.commands.record_commands import (
    CreateRecordCommand,
    DeleteRecordCommand,
    UpdateRecordCommand,
)
from crm_imobiliario.core.application.cqrs import CommandBus
from crm_imobiliario.core.application.dtos.operation_result import OperationResult
from crm_imobiliario.core.application.services.aggregate_service import AggregateEngine
from crm_imobiliario.core.application.services.entity_cache import EntityCache
from crm_imobiliario.core.application.services.transition_service import TransitionService
from crm_imobiliario.core.domain.events.exceptions import CrmError, RecordNotFound, ValidationGap
from crm_imobiliario.core.domain.services.stage_model import StageModel

E = TypeVar("E")

logger = structlog.get_logger(__name__)


class RecordWorkspace(Generic[E]):
    """
    Fachada de leitura/escrita de um tipo de entidade sincronizado com o store.

    Escritas passam pelo CommandBus e devolvem OperationResult; falhas de
    transporte, ids inexistentes e campos faltantes viram resultado com
    `success=False`. Mudança de `status` sempre passa pela transição.
    """

    entity_label = "Registro"
    required_fields: tuple[str, ...] = ()
    # Agenda e colaboradores aplicam a escrita no cache antes do feed chegar
    optimistic = False

    def __init__(
        self,
        cache: EntityCache[E],
        command_bus: CommandBus,
        transitions: TransitionService,
        stage_model: StageModel,
        engine: AggregateEngine,
    ) -> None:
        self.cache = cache
        self.command_bus = command_bus
        self.transitions = transitions
        self.stage_model = stage_model
        self.engine = engine

    # ───────────────────────── leitura ──────────────────────────
    @property
    def table(self) -> str:
        return self.cache.table

    def snapshot(self) -> list[E]:
        return self.cache.snapshot()

    def is_loading(self) -> bool:
        return self.cache.is_loading()

    def get(self, entity_id: str) -> E | None:
        return self.cache.get(entity_id)

    def columns(self) -> dict[str, list[E]]:
        return self.stage_model.group_by_stage(self.snapshot())

    def unassigned(self) -> list[E]:
        return self.stage_model.unassigned(self.snapshot())

    def stats(self) -> Any:
        raise NotImplementedError

    # ───────────────────────── ciclo de vida ──────────────────────────
    async def start(self) -> OperationResult:
        """Assina o feed antes da carga para não perder eventos."""
        self.cache.start_feed()
        return await self.load()

    async def stop(self) -> None:
        await self.cache.unsubscribe()

    async def load(self) -> OperationResult:
        return await self.cache.load()

    # ───────────────────────── escrita ──────────────────────────
    def defaults(self) -> dict[str, Any]:
        return {}

    def prepare(self, payload: dict[str, Any]) -> dict[str, Any]:
        return payload

    async def add(self, fields: Mapping[str, Any]) -> OperationResult:
        payload = {**self.defaults(), **{k: v for k, v in fields.items() if v is not None}}
        try:
            self._check_required(payload)
            status = payload.get(self.stage_model.field)
            if status is not None and not self.stage_model.is_member(status):
                raise ValidationGap(f"Estágio desconhecido: {status!r}")
            result = await self.command_bus.dispatch(
                CreateRecordCommand(table=self.table, fields=self.prepare(payload))
            )
        except CrmError as exc:
            return self._failure("criar", exc)

        entity = self.cache.map_record(result.record) if result.record else None
        if self.optimistic and entity is not None:
            self.cache.apply_local(entity)
        return OperationResult.ok(f"{self.entity_label} criado com sucesso", data=entity or result.record)

    async def update(self, entity_id: str, partial: Mapping[str, Any]) -> OperationResult:
        partial = dict(partial)
        stage_field = self.stage_model.field
        if stage_field in partial:
            to_stage = partial.pop(stage_field)
            return await self.transition(entity_id, to_stage, extra_fields=partial)
        try:
            result = await self.command_bus.dispatch(
                UpdateRecordCommand(table=self.table, record_id=entity_id, fields=self.prepare_update(partial))
            )
        except CrmError as exc:
            return self._failure("atualizar", exc)

        entity = self.cache.map_record(result.record) if result.record else None
        if self.optimistic and entity is not None:
            self.cache.apply_local(entity)
        return OperationResult.ok(f"{self.entity_label} atualizado com sucesso", data=entity)

    def prepare_update(self, partial: dict[str, Any]) -> dict[str, Any]:
        return partial

    async def remove(self, entity_id: str) -> OperationResult:
        try:
            await self.command_bus.dispatch(DeleteRecordCommand(table=self.table, record_id=entity_id))
        except CrmError as exc:
            return self._failure("remover", exc)
        if self.optimistic:
            self.cache.discard_local(entity_id)
        return OperationResult.ok(f"{self.entity_label} removido")

    async def transition(
        self,
        entity_id: str,
        to_stage: str,
        extra_fields: Mapping[str, Any] | None = None,
    ) -> OperationResult:
        current = self.cache.get(entity_id)
        from_stage = self.stage_model.stage_of(current) if current is not None else None
        extra = {**self.transition_fields(to_stage), **(extra_fields or {})}
        outcome = await self.transitions.transition(
            self.table, entity_id, to_stage, from_stage=from_stage, extra_fields=extra
        )
        if outcome.success and self.optimistic and outcome.data:
            entity = self.cache.map_record(outcome.data)
            if entity is not None:
                self.cache.apply_local(entity)
        return outcome

    def transition_fields(self, to_stage: str) -> dict[str, Any]:
        """Campos gravados junto com a mudança de estágio."""
        return {}

    # ───────────────────────── helpers ──────────────────────────
    def _check_required(self, payload: Mapping[str, Any]) -> None:
        missing = [f for f in self.required_fields if payload.get(f) in (None, "")]
        if missing:
            raise ValidationGap(f"Campos obrigatórios ausentes: {', '.join(missing)}")

    def _failure(self, action: str, exc: CrmError) -> OperationResult:
        level = "warning" if isinstance(exc, (ValidationGap, RecordNotFound)) else "error"
        getattr(logger, level)(
            "workspace.write_failed",
            table=self.table,
            action=action,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        if isinstance(exc, (ValidationGap, RecordNotFound)):
            return OperationResult.fail(str(exc), exc)
        return OperationResult.fail(f"Erro ao {action} {self.entity_label.lower()}", exc)
