from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from crm_imobiliario.core.domain.entities._base import EntityMixin

TICKET_PRIORITIES: tuple[str, ...] = ("high", "medium", "low")
TICKET_CHANNELS: tuple[str, ...] = ("whatsapp", "email", "phone", "in-person", "crm")
MESSAGE_SENDERS: tuple[str, ...] = ("client", "agent")


@dataclass(slots=True)
class TicketMessageEntity(EntityMixin):
    id: str
    ticket_id: str
    text: str
    sender: str
    created_at: datetime | None = None

    def preview(self, length: int = 50) -> str:
        return (self.text[:length] + '...') if len(self.text) > length else self.text


@dataclass(slots=True)
class SupportTicketEntity(EntityMixin):
    id: str
    client_name: str
    subject: str
    status: str = "open"
    priority: str = "medium"
    client_id: str | None = None
    email: str | None = None
    phone: str | None = None
    assigned_agent: str | None = None
    channel: str = "whatsapp"
    created_at: datetime | None = None
    updated_at: datetime | None = None
    resolved_at: datetime | None = None
    messages: tuple[TicketMessageEntity, ...] = ()

    def resolution_minutes(self) -> float | None:
        """
        Minutos entre a abertura e a resolução.
        Sem `resolved_at` usa `updated_at`, que é tocado na transição para resolvido.
        """
        finished = self.resolved_at or self.updated_at
        if self.created_at is None or finished is None:
            return None
        return (finished - self.created_at).total_seconds() / 60
