from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

import structlog

from crm_imobiliario.core.application.dtos.operation_result import OperationResult
from crm_imobiliario.core.application.dtos.stats_dto import WebhookStatsDTO
from crm_imobiliario.core.application.services.aggregate_service import AggregateEngine
from crm_imobiliario.core.domain.entities.webhook_entity import (
    WEBHOOK_EVENTS,
    WebhookDeliveryEntity,
    WebhookEntity,
)
from crm_imobiliario.core.domain.events.events import (
    EntityInsertedEvent,
    EntityStageChangedEvent,
    LeadWonEvent,
    TransactionCreatedEvent,
)
from crm_imobiliario.core.domain.events.exceptions import CrmError
from crm_imobiliario.core.domain.mappers.record_mapper import RecordMapper
from crm_imobiliario.core.domain.repositories.webhook_sender import WebhookSender
from crm_imobiliario.core.domain.services.event_dispatcher import EventDispatcher

logger = structlog.get_logger(__name__)

# Tabela → evento de automação disparado no INSERT
INSERT_EVENTS = {
    "leads": "lead_created",
    "appointments": "appointment_scheduled",
    "collaborators": "collaborator_added",
}

DELIVERY_LOG_CAPACITY = 500


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AutomationService:
    """
    Console de automações: webhooks cadastrados por evento, disparo, teste e
    log de entregas. Cadastro e log vivem em memória da sessão.
    """

    def __init__(
        self,
        sender: WebhookSender,
        engine: AggregateEngine,
        log_capacity: int = DELIVERY_LOG_CAPACITY,
    ) -> None:
        self.sender = sender
        self.engine = engine
        self.log_capacity = log_capacity
        self._webhooks: dict[str, WebhookEntity] = {}
        self._deliveries: list[WebhookDeliveryEntity] = []

    # ───────────────────────── cadastro ──────────────────────────
    def webhooks(self) -> list[WebhookEntity]:
        return list(self._webhooks.values())

    def get(self, webhook_id: str) -> WebhookEntity | None:
        return self._webhooks.get(webhook_id)

    def register(
        self,
        name: str,
        url: str,
        event: str,
        description: str = "",
        active: bool = True,
    ) -> OperationResult:
        error = self._validate(name, url, event)
        if error:
            return OperationResult.fail(error)
        webhook = WebhookEntity(
            id=str(uuid.uuid4()),
            name=name.strip(),
            url=url.strip(),
            event=event,
            description=description,
            active=active,
            created_at=_utcnow(),
        )
        self._webhooks[webhook.id] = webhook
        logger.info("webhook.registered", webhook_id=webhook.id, event_name=event)
        return OperationResult.ok("Webhook criado com sucesso", data=webhook)

    def update(self, webhook_id: str, partial: Mapping[str, Any]) -> OperationResult:
        current = self._webhooks.get(webhook_id)
        if current is None:
            return OperationResult.fail("Webhook não encontrado")
        changes = {k: v for k, v in partial.items() if k in ("name", "url", "event", "description", "active")}
        candidate = current.with_changes(**changes)
        error = self._validate(candidate.name, candidate.url, candidate.event)
        if error:
            return OperationResult.fail(error)
        self._webhooks[webhook_id] = candidate
        return OperationResult.ok("Webhook atualizado", data=candidate)

    def toggle(self, webhook_id: str) -> OperationResult:
        current = self._webhooks.get(webhook_id)
        if current is None:
            return OperationResult.fail("Webhook não encontrado")
        current.active = not current.active
        return OperationResult.ok("Webhook ativado" if current.active else "Webhook desativado", data=current)

    def delete(self, webhook_id: str) -> OperationResult:
        if self._webhooks.pop(webhook_id, None) is None:
            return OperationResult.fail("Webhook não encontrado")
        self._deliveries = [d for d in self._deliveries if d.webhook_id != webhook_id]
        logger.info("webhook.deleted", webhook_id=webhook_id)
        return OperationResult.ok("Webhook removido")

    @staticmethod
    def _validate(name: str, url: str, event: str) -> str | None:
        if not name or not name.strip():
            return "Nome do webhook é obrigatório"
        if not url.startswith(("http://", "https://")):
            return "URL do webhook deve começar com http:// ou https://"
        if event not in WEBHOOK_EVENTS:
            return f"Evento desconhecido: {event!r}"
        return None

    # ───────────────────────── log / stats ──────────────────────────
    def deliveries(self, webhook_id: str | None = None, limit: int | None = None) -> list[WebhookDeliveryEntity]:
        items = [d for d in self._deliveries if webhook_id is None or d.webhook_id == webhook_id]
        return items[:limit] if limit is not None else items

    def stats(self) -> WebhookStatsDTO:
        return self.engine.webhook_stats(self.webhooks(), self._deliveries)

    # ───────────────────────── disparo ──────────────────────────
    async def trigger(self, event: str, data: Mapping[str, Any]) -> list[WebhookDeliveryEntity]:
        targets = [w for w in self._webhooks.values() if w.active and w.event == event]
        if not targets:
            logger.debug("webhook.no_targets", event_name=event)
            return []
        payload = {"event": event, "occurred_at": _utcnow().isoformat(), "data": RecordMapper.to_fields(data)}
        return [await self._deliver(w, event, payload) for w in targets]

    async def test(self, webhook_id: str) -> OperationResult:
        webhook = self._webhooks.get(webhook_id)
        if webhook is None:
            return OperationResult.fail("Webhook não encontrado")
        payload = {"test": True, "timestamp": _utcnow().isoformat()}
        delivery = await self._deliver(webhook, webhook.event, payload)
        if delivery.succeeded:
            return OperationResult.ok("Teste enviado com sucesso!", data=delivery)
        return OperationResult.fail(delivery.error or "Falha no teste do webhook")

    async def _deliver(self, webhook: WebhookEntity, event: str, payload: dict[str, Any]) -> WebhookDeliveryEntity:
        status_code: int | None = None
        elapsed_ms: int | None = None
        error: str | None = None
        try:
            response = await self.sender.post(webhook.url, payload, event)
            status_code, elapsed_ms = response.status_code, response.elapsed_ms
            if not response.ok:
                error = f"Resposta HTTP {response.status_code}"
        except CrmError as exc:
            error = str(exc) or "Falha de transporte"

        delivery = WebhookDeliveryEntity(
            id=str(uuid.uuid4()),
            webhook_id=webhook.id,
            webhook_name=webhook.name,
            event=event,
            status="failure" if error else "success",
            occurred_at=_utcnow(),
            payload=payload,
            status_code=status_code,
            response_time_ms=elapsed_ms,
            error=error,
        )
        self._deliveries.insert(0, delivery)
        del self._deliveries[self.log_capacity:]

        webhook.total_events += 1
        if delivery.succeeded:
            webhook.successful_events += 1
        webhook.last_execution = delivery.occurred_at

        log = logger.info if delivery.succeeded else logger.warning
        log("webhook.delivered", webhook_id=webhook.id, event_name=event, status=delivery.status, status_code=status_code)
        return delivery

    # ───────────────────────── eventos de domínio ──────────────────────────
    def wire(self, dispatcher: EventDispatcher) -> None:
        dispatcher.subscribe(EntityInsertedEvent, self.on_entity_inserted)
        dispatcher.subscribe(EntityStageChangedEvent, self.on_stage_changed)
        dispatcher.subscribe(LeadWonEvent, self.on_lead_won)
        dispatcher.subscribe(TransactionCreatedEvent, self.on_transaction_created)

    async def on_entity_inserted(self, event: EntityInsertedEvent) -> None:
        name = INSERT_EVENTS.get(event.table)
        if name:
            await self.trigger(name, event.entity.to_dict())

    async def on_stage_changed(self, event: EntityStageChangedEvent) -> None:
        if event.table == "leads":
            await self.trigger(
                "lead_status_changed",
                {"lead_id": event.entity_id, "from": event.old_stage, "to": event.new_stage},
            )
        elif event.table == "appointments" and event.new_stage == "completed":
            await self.trigger("appointment_completed", event.entity.to_dict())

    async def on_lead_won(self, event: LeadWonEvent) -> None:
        data = {"lead_id": event.lead_id, "name": event.name, "value": event.value}
        await self.trigger("lead_converted", data)
        await self.trigger("client_registered", data)

    async def on_transaction_created(self, event: TransactionCreatedEvent) -> None:
        await self.trigger(
            "transaction_created",
            {
                "transaction_id": event.transaction_id,
                "kind": event.kind,
                "amount": event.amount,
                "description": event.description,
            },
        )
