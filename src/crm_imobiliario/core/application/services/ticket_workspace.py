from __future__ import annotations

from collections import defaultdict
from typing import Any

import structlog

from crm_imobiliario.core.application.commands.record_commands import (
    CreateRecordCommand,
    UpdateRecordCommand,
)
from crm_imobiliario.core.application.cqrs import CommandBus
from crm_imobiliario.core.application.dtos.operation_result import OperationResult
from crm_imobiliario.core.application.dtos.stats_dto import TicketStatsDTO
from crm_imobiliario.core.application.services.aggregate_service import AggregateEngine
from crm_imobiliario.core.application.services.entity_cache import EntityCache
from crm_imobiliario.core.application.services.record_workspace import RecordWorkspace
from crm_imobiliario.core.application.services.transition_service import TransitionService
from crm_imobiliario.core.domain.entities.support_ticket_entity import (
    MESSAGE_SENDERS,
    TICKET_PRIORITIES,
    SupportTicketEntity,
    TicketMessageEntity,
)
from crm_imobiliario.core.domain.events.exceptions import CrmError, ValidationGap
from crm_imobiliario.core.domain.services.stage_model import StageModel

logger = structlog.get_logger(__name__)

MESSAGES_TABLE = "ticket_messages"


class TicketWorkspace(RecordWorkspace[SupportTicketEntity]):
    """
    Caixa de atendimentos. Tickets e mensagens são dois caches independentes;
    o snapshot junta as mensagens de cada ticket por id no momento da leitura.
    """

    entity_label = "Atendimento"
    required_fields = ("client_name", "subject")

    def __init__(
        self,
        cache: EntityCache[SupportTicketEntity],
        messages: EntityCache[TicketMessageEntity],
        command_bus: CommandBus,
        transitions: TransitionService,
        stage_model: StageModel,
        engine: AggregateEngine,
    ) -> None:
        super().__init__(cache, command_bus, transitions, stage_model, engine)
        self.messages = messages

    # ───────────────────────── leitura ──────────────────────────
    def snapshot(self) -> list[SupportTicketEntity]:
        by_ticket: dict[str, list[TicketMessageEntity]] = defaultdict(list)
        for message in self.messages.snapshot():
            by_ticket[message.ticket_id].append(message)
        return [
            t.with_changes(messages=tuple(by_ticket.get(t.id, ())))
            for t in self.cache.snapshot()
        ]

    def get(self, entity_id: str) -> SupportTicketEntity | None:
        ticket = self.cache.get(entity_id)
        if ticket is None:
            return None
        return ticket.with_changes(
            messages=tuple(m for m in self.messages.snapshot() if m.ticket_id == entity_id)
        )

    def is_loading(self) -> bool:
        return self.cache.is_loading() or self.messages.is_loading()

    def stats(self) -> TicketStatsDTO:
        return self.engine.ticket_stats(self.cache.snapshot())

    def by_client(self, client_id: str) -> list[SupportTicketEntity]:
        return [t for t in self.snapshot() if t.client_id == client_id]

    # ───────────────────────── ciclo de vida ──────────────────────────
    async def start(self) -> OperationResult:
        self.messages.start_feed()
        return await super().start()

    async def stop(self) -> None:
        await self.messages.unsubscribe()
        await super().stop()

    async def load(self) -> OperationResult:
        tickets = await self.cache.load()
        if not tickets.success:
            return tickets
        messages = await self.messages.load()
        if not messages.success:
            return messages
        return OperationResult.ok(data=len(self.cache))

    # ───────────────────────── escrita ──────────────────────────
    def defaults(self) -> dict[str, Any]:
        now = self.engine.now()
        return {
            "status": "open",
            "priority": "medium",
            "channel": "whatsapp",
            "created_at": now,
            "updated_at": now,
        }

    def prepare(self, payload: dict[str, Any]) -> dict[str, Any]:
        if payload.get("priority") not in TICKET_PRIORITIES:
            raise ValidationGap(f"Prioridade inválida: {payload.get('priority')!r}")
        return payload

    def prepare_update(self, partial: dict[str, Any]) -> dict[str, Any]:
        return {**partial, "updated_at": self.engine.now()}

    def transition_fields(self, to_stage: str) -> dict[str, Any]:
        now = self.engine.now()
        return {
            "updated_at": now,
            "resolved_at": now if to_stage == self.stage_model.success_stage else None,
        }

    async def add_message(self, ticket_id: str, text: str, sender: str = "agent") -> OperationResult:
        """Mensagens são só acrescentadas; nunca editadas ou removidas."""
        if sender not in MESSAGE_SENDERS:
            return OperationResult.fail(f"Remetente inválido: {sender!r}")
        if not text.strip():
            return OperationResult.fail("Mensagem vazia")
        try:
            result = await self.command_bus.dispatch(
                CreateRecordCommand(
                    table=MESSAGES_TABLE,
                    fields={"ticket_id": ticket_id, "text": text, "sender": sender, "created_at": self.engine.now()},
                )
            )
        except CrmError as exc:
            return self._failure("enviar mensagem do", exc)

        try:
            await self.command_bus.dispatch(
                UpdateRecordCommand(table=self.table, record_id=ticket_id, fields={"updated_at": self.engine.now()})
            )
        except CrmError as exc:
            logger.warning("ticket.touch_failed", ticket_id=ticket_id, error=str(exc))

        return OperationResult.ok("Mensagem enviada", data=self.messages.map_record(result.record))
