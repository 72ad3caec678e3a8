from __future__ import annotations

from datetime import datetime, timezone

from crm_imobiliario.core.domain.entities.appointment_entity import AppointmentEntity
from crm_imobiliario.core.domain.entities.collaborator_entity import CollaboratorEntity
from crm_imobiliario.core.domain.entities.lead_entity import LeadEntity
from crm_imobiliario.core.domain.entities.support_ticket_entity import (
    SupportTicketEntity,
    TicketMessageEntity,
)
from crm_imobiliario.core.domain.repositories.record_store import OrderBy

# ───────────────────────────────────────────────
# Chave de ordenação estável por tabela (store + cache)
# ───────────────────────────────────────────────
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

LEAD_ORDER = (OrderBy("created_at", descending=True),)
APPOINTMENT_ORDER = (OrderBy("date"), OrderBy("time"))
TICKET_ORDER = (OrderBy("created_at", descending=True),)
MESSAGE_ORDER = (OrderBy("created_at"),)
COLLABORATOR_ORDER = (OrderBy("name"),)


def lead_sort_key(lead: LeadEntity) -> datetime:
    return lead.created_at or _EPOCH


def appointment_sort_key(appointment: AppointmentEntity) -> tuple:
    return (appointment.date, appointment.start_time())


def ticket_sort_key(ticket: SupportTicketEntity) -> datetime:
    return ticket.created_at or _EPOCH


def message_sort_key(message: TicketMessageEntity) -> datetime:
    return message.created_at or _EPOCH


def collaborator_sort_key(collaborator: CollaboratorEntity) -> str:
    return collaborator.name.casefold()
