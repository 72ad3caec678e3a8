from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal, InvalidOperation

import structlog

from crm_imobiliario.core.application.commands.record_commands import (
    CreateRecordCommand,
    DeleteRecordCommand,
    TransitionStageCommand,
    UpdateRecordCommand,
)
from crm_imobiliario.core.application.cqrs import CommandHandler, CommandResult
from crm_imobiliario.core.domain.events.events import DomainEvent, LeadWonEvent, TicketResolvedEvent
from crm_imobiliario.core.domain.events.exceptions import ValidationGap
from crm_imobiliario.core.domain.mappers.record_mapper import RecordMapper
from crm_imobiliario.core.domain.repositories.record_store import RecordStore
from crm_imobiliario.core.domain.services.stage_model import StageModel

logger = structlog.get_logger(__name__)


class CreateRecordHandler(CommandHandler[CreateRecordCommand]):
    def __init__(self, store: RecordStore):
        self.store = store

    async def handle(self, cmd: CreateRecordCommand) -> CommandResult:
        record = await self.store.insert(cmd.table, RecordMapper.to_fields(cmd.fields))
        logger.info("record.created", table=cmd.table, record_id=record.get("id"))
        return CommandResult(record=record)


class UpdateRecordHandler(CommandHandler[UpdateRecordCommand]):
    def __init__(self, store: RecordStore):
        self.store = store

    async def handle(self, cmd: UpdateRecordCommand) -> CommandResult:
        if not cmd.fields:
            raise ValidationGap("Nenhum campo informado para atualização")
        record = await self.store.update(cmd.table, cmd.record_id, RecordMapper.to_fields(cmd.fields))
        logger.info("record.updated", table=cmd.table, record_id=cmd.record_id, fields=sorted(cmd.fields))
        return CommandResult(record=record)


class DeleteRecordHandler(CommandHandler[DeleteRecordCommand]):
    def __init__(self, store: RecordStore):
        self.store = store

    async def handle(self, cmd: DeleteRecordCommand) -> CommandResult:
        await self.store.delete(cmd.table, cmd.record_id)
        logger.info("record.deleted", table=cmd.table, record_id=cmd.record_id)
        return CommandResult(record=None)


class TransitionStageHandler(CommandHandler[TransitionStageCommand]):
    """
    Única transição de estado do sistema: grava `status` no store e não toca
    no cache local (o evento do feed é quem atualiza o EntityCache).
    """

    def __init__(self, store: RecordStore, stage_models: Mapping[str, StageModel]):
        self.store = store
        self.stage_models = stage_models

    async def handle(self, cmd: TransitionStageCommand) -> CommandResult:
        model = self.stage_models.get(cmd.table)
        if model is None:
            raise ValidationGap(f"Tabela sem modelo de estágios: {cmd.table}")
        if not model.is_member(cmd.to_stage):
            raise ValidationGap(f"Estágio desconhecido para {cmd.table}: {cmd.to_stage!r}")
        if not model.can_transition(cmd.from_stage, cmd.to_stage):
            raise ValidationGap(f"Transição não permitida: {cmd.from_stage} → {cmd.to_stage}")

        fields = {**cmd.extra_fields, model.field: cmd.to_stage}
        record = await self.store.update(cmd.table, cmd.record_id, RecordMapper.to_fields(fields))
        logger.info(
            "stage.transitioned",
            table=cmd.table,
            record_id=cmd.record_id,
            from_stage=cmd.from_stage,
            to_stage=cmd.to_stage,
        )

        events: list[DomainEvent] = []
        if cmd.to_stage == model.success_stage:
            evt = self._success_event(cmd, record)
            if evt is not None:
                events.append(evt)
        return CommandResult(record=record, events=tuple(events))

    @staticmethod
    def _success_event(cmd: TransitionStageCommand, record: Mapping) -> DomainEvent | None:
        if cmd.table == "leads":
            try:
                value = Decimal(str(record.get("value") or 0))
            except InvalidOperation:
                value = Decimal("0")
            return LeadWonEvent(
                lead_id=cmd.record_id,
                name=str(record.get("name") or ""),
                value=value,
                from_stage=cmd.from_stage,
            )
        if cmd.table == "support_tickets":
            return TicketResolvedEvent(
                ticket_id=cmd.record_id,
                client_name=str(record.get("client_name") or ""),
                subject=str(record.get("subject") or ""),
            )
        return None
