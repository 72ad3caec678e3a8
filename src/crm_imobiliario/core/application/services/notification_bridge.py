from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import structlog

from crm_imobiliario.core.application.services.formatter_service import FormatterService
from crm_imobiliario.core.application.services.notification_center import NotificationCenter
from crm_imobiliario.core.domain.entities.lead_entity import normalize_source
from crm_imobiliario.core.domain.events.events import (
    EntityStageChangedEvent,
    LeadWonEvent,
    TicketResolvedEvent,
    TransactionCreatedEvent,
)
from crm_imobiliario.core.domain.repositories.record_store import (
    ChangeEvent,
    ChangeKind,
    FeedChannel,
    RecordStore,
)
from crm_imobiliario.core.domain.services.event_dispatcher import EventDispatcher
from crm_imobiliario.core.domain.services.stage_model import StageModel

logger = structlog.get_logger(__name__)

# Tabelas cujos INSERTs viram alerta
WATCHED_TABLES = ("leads", "appointments", "support_tickets", "ticket_messages")
MESSAGE_PREVIEW_LENGTH = 50


class NotificationBridge:
    """
    Traduz o feed do store e os eventos de domínio em notificações legíveis.
    Lê o feed por canais próprios; não depende do estado dos caches.
    """

    def __init__(
        self,
        store: RecordStore,
        center: NotificationCenter,
        dispatcher: EventDispatcher,
        lead_stages: StageModel,
        formatter: FormatterService | None = None,
    ) -> None:
        self.store = store
        self.center = center
        self.dispatcher = dispatcher
        self.lead_stages = lead_stages
        self.formatter = formatter or FormatterService()
        self._channels: list[FeedChannel] = []
        self._tasks: list[asyncio.Task] = []
        self._subscribed = False

    # ───────────────────────── ciclo de vida ──────────────────────────
    def attach(self) -> None:
        """Abre os canais do feed e registra os handlers de domínio."""
        if not self._channels:
            self._channels = [self.store.subscribe(t, {ChangeKind.INSERT}) for t in WATCHED_TABLES]
        if not self._subscribed:
            self.dispatcher.subscribe(EntityStageChangedEvent, self.on_stage_changed)
            self.dispatcher.subscribe(LeadWonEvent, self.on_lead_won)
            self.dispatcher.subscribe(TicketResolvedEvent, self.on_ticket_resolved)
            self.dispatcher.subscribe(TransactionCreatedEvent, self.on_transaction_created)
            self._subscribed = True

    def start(self) -> None:
        """`attach()` + uma task por canal drenando o feed continuamente."""
        self.attach()
        loop = asyncio.get_running_loop()
        if not self._tasks:
            self._tasks = [loop.create_task(self._consume(ch)) for ch in self._channels]

    async def stop(self) -> None:
        for channel in self._channels:
            channel.close()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._channels, self._tasks = [], []
        if self._subscribed:
            self.dispatcher.unsubscribe(EntityStageChangedEvent, self.on_stage_changed)
            self.dispatcher.unsubscribe(LeadWonEvent, self.on_lead_won)
            self.dispatcher.unsubscribe(TicketResolvedEvent, self.on_ticket_resolved)
            self.dispatcher.unsubscribe(TransactionCreatedEvent, self.on_transaction_created)
            self._subscribed = False

    def drain_pending(self) -> int:
        handled = 0
        for channel in self._channels:
            while (event := channel.get_nowait()) is not None:
                self.handle_change(event)
                handled += 1
        return handled

    async def _consume(self, channel: FeedChannel) -> None:
        async for event in channel:
            self.handle_change(event)

    # ───────────────────────── feed ──────────────────────────
    def handle_change(self, event: ChangeEvent) -> None:
        if event.kind is not ChangeKind.INSERT or not event.new:
            return
        try:
            handler = getattr(self, f"_on_{event.table}_insert", None)
            if handler is not None:
                handler(event.new)
        except Exception as exc:
            logger.error("bridge.event_error", table=event.table, error=str(exc), exc_info=True)

    def _on_leads_insert(self, row: Mapping[str, Any]) -> None:
        name = row.get("name") or "Lead sem nome"
        self.center.add(
            "lead",
            "Novo Lead Detectado",
            f"{name} entrou via {normalize_source(row.get('source'))}",
            link="/leads",
            metadata={"lead_id": row.get("id")},
        )

    def _on_appointments_insert(self, row: Mapping[str, Any]) -> None:
        self.center.add(
            "appointment",
            "Novo Agendamento",
            f"{row.get('client_name') or 'Cliente'} agendou para {row.get('time') or '--:--'}",
            link="/agenda",
            metadata={"appointment_id": row.get("id")},
        )

    def _on_support_tickets_insert(self, row: Mapping[str, Any]) -> None:
        self.center.add(
            "client",
            "Novo Atendimento",
            f"{row.get('client_name') or 'Cliente'}: {row.get('subject') or ''}".rstrip(": "),
            link="/atendimentos",
            metadata={"ticket_id": row.get("id")},
        )

    def _on_ticket_messages_insert(self, row: Mapping[str, Any]) -> None:
        if row.get("sender") != "client":
            return
        text = str(row.get("text") or "")
        preview = text[:MESSAGE_PREVIEW_LENGTH] + "..." if len(text) > MESSAGE_PREVIEW_LENGTH else text
        self.center.add(
            "info",
            "Mensagem Recebida",
            preview,
            link="/atendimentos",
            metadata={"ticket_id": row.get("ticket_id")},
        )

    # ───────────────────────── eventos de domínio ──────────────────────────
    def on_stage_changed(self, event: EntityStageChangedEvent) -> None:
        if event.table != "leads":
            return
        self.center.add(
            "lead",
            "Lead atualizado",
            f"Lead movido para {self.lead_stages.label_for(event.new_stage)}",
            link="/leads",
            metadata={"lead_id": event.entity_id, "from": event.old_stage, "to": event.new_stage},
        )

    def on_lead_won(self, event: LeadWonEvent) -> None:
        self.center.add(
            "success",
            "Lead Convertido",
            f"{event.name or 'Lead'} fechou negócio ({self.formatter.format_currency(event.value)})",
            link="/clientes",
            metadata={"lead_id": event.lead_id},
        )

    def on_ticket_resolved(self, event: TicketResolvedEvent) -> None:
        self.center.add(
            "success",
            "Atendimento Resolvido",
            f"O atendimento de {event.client_name or 'cliente'} foi resolvido",
            link="/atendimentos",
            metadata={"ticket_id": event.ticket_id},
        )

    def on_transaction_created(self, event: TransactionCreatedEvent) -> None:
        label = "Receita" if event.kind == "income" else "Despesa"
        self.center.add(
            "financial",
            f"{label} registrada",
            f"{event.description}: {self.formatter.format_currency(event.amount)}",
            link="/financeiro",
            metadata={"transaction_id": event.transaction_id},
        )
