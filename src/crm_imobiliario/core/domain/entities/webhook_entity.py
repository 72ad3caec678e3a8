from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from crm_imobiliario.core.domain.entities._base import EntityMixin

# Eventos que podem ser encaminhados para automações externas
WEBHOOK_EVENTS: dict[str, str] = {
    "lead_created": "Lead Criado",
    "lead_status_changed": "Status do Lead Alterado",
    "lead_converted": "Lead Convertido",
    "client_registered": "Cliente Cadastrado",
    "appointment_scheduled": "Atendimento Agendado",
    "appointment_completed": "Atendimento Concluído",
    "transaction_created": "Transação Criada",
    "collaborator_added": "Colaborador Adicionado",
}


@dataclass(slots=True)
class WebhookEntity(EntityMixin):
    id: str
    name: str
    url: str
    event: str
    description: str = ""
    active: bool = True
    created_at: datetime | None = None
    last_execution: datetime | None = None
    total_events: int = 0
    successful_events: int = 0

    def masked_url(self, visible: int = 30) -> str:
        return self.url if len(self.url) <= visible else self.url[:visible] + "..."


@dataclass(slots=True)
class WebhookDeliveryEntity(EntityMixin):
    id: str
    webhook_id: str
    webhook_name: str
    event: str
    status: str
    occurred_at: datetime
    payload: dict[str, Any] = field(default_factory=dict)
    status_code: int | None = None
    response_time_ms: int | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"
