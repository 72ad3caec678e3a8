from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

import structlog
from pydantic import ValidationError

from crm_imobiliario.core.application.dtos.record_dtos import (
    AppointmentRowDTO,
    CollaboratorRowDTO,
    LeadRowDTO,
    SupportTicketRowDTO,
    TicketMessageRowDTO,
)
from crm_imobiliario.core.domain.entities.appointment_entity import (
    DEFAULT_DURATION_MINUTES,
    AppointmentEntity,
)
from crm_imobiliario.core.domain.entities.collaborator_entity import CollaboratorEntity
from crm_imobiliario.core.domain.entities.lead_entity import LeadEntity, normalize_source
from crm_imobiliario.core.domain.entities.support_ticket_entity import (
    SupportTicketEntity,
    TicketMessageEntity,
)
from crm_imobiliario.core.domain.events.exceptions import MappingError

logger = structlog.get_logger(__name__)


class RecordMapper:
    """Fronteira tipada entre linhas do record store e entidades do domínio."""

    # ───────────────────────── helpers ──────────────────────────
    @staticmethod
    def _aware(value: datetime | None) -> datetime | None:
        """Timestamps sem fuso são tratados como UTC."""
        if value is None or value.tzinfo is not None:
            return value
        return value.replace(tzinfo=timezone.utc)

    @staticmethod
    def _validate(dto_cls, row: Mapping[str, Any], table: str):
        try:
            return dto_cls.model_validate(dict(row))
        except ValidationError as exc:
            logger.warning(
                "mapper.row_rejected",
                table=table,
                record_id=row.get("id") if isinstance(row, Mapping) else None,
                errors=exc.errors(include_url=False),
            )
            raise MappingError(f"Registro inválido em {table}: {exc.error_count()} erro(s)") from exc

    # ───────────────────────── leads ─────────────────────────
    @classmethod
    def to_lead(cls, row: Mapping[str, Any]) -> LeadEntity:
        dto = cls._validate(LeadRowDTO, row, "leads")
        return LeadEntity(
            id=dto.id,
            name=dto.name,
            status=dto.status,
            phone=dto.phone or "",
            email=dto.email,
            value=dto.value,
            paid_value=dto.paid_value,
            is_paid=dto.is_paid,
            source=normalize_source(dto.source),
            date=dto.date,
            tags=frozenset(dto.tags or ()),
            description=dto.description,
            property_link=dto.property_link,
            last_message=dto.last_message,
            created_at=cls._aware(dto.created_at),
        )

    # ───────────────────────── agenda ─────────────────────────
    @classmethod
    def to_appointment(cls, row: Mapping[str, Any]) -> AppointmentEntity:
        dto = cls._validate(AppointmentRowDTO, row, "appointments")
        return AppointmentEntity(
            id=dto.id,
            client_name=dto.client_name,
            date=dto.date,
            time=dto.time,
            status=dto.status,
            client_phone=dto.client_phone or "",
            collaborator_id=dto.collaborator_id,
            lead_id=dto.lead_id,
            duration_minutes=dto.duration_minutes or DEFAULT_DURATION_MINUTES,
            service_description=dto.service_description or "",
            notes=dto.notes,
            created_at=cls._aware(dto.created_at),
        )

    # ───────────────────────── atendimentos ─────────────────────────
    @classmethod
    def to_ticket(cls, row: Mapping[str, Any]) -> SupportTicketEntity:
        dto = cls._validate(SupportTicketRowDTO, row, "support_tickets")
        return SupportTicketEntity(
            id=dto.id,
            client_name=dto.client_name,
            subject=dto.subject,
            status=dto.status,
            priority=dto.priority,
            client_id=dto.client_id,
            email=dto.email,
            phone=dto.phone,
            assigned_agent=dto.assigned_agent,
            channel=dto.channel or "whatsapp",
            created_at=cls._aware(dto.created_at),
            updated_at=cls._aware(dto.updated_at),
            resolved_at=cls._aware(dto.resolved_at),
        )

    @classmethod
    def to_ticket_message(cls, row: Mapping[str, Any]) -> TicketMessageEntity:
        dto = cls._validate(TicketMessageRowDTO, row, "ticket_messages")
        return TicketMessageEntity(
            id=dto.id,
            ticket_id=dto.ticket_id,
            text=dto.text,
            sender=dto.sender,
            created_at=cls._aware(dto.created_at),
        )

    # ───────────────────────── colaboradores ─────────────────────────
    @classmethod
    def to_collaborator(cls, row: Mapping[str, Any]) -> CollaboratorEntity:
        dto = cls._validate(CollaboratorRowDTO, row, "collaborators")
        return CollaboratorEntity(
            id=dto.id,
            name=dto.name,
            email=dto.email or "",
            phone=dto.phone or "",
            role=dto.role or "",
            status=dto.status,
            created_at=cls._aware(dto.created_at),
        )

    # ───────────────────────── escrita ─────────────────────────
    @staticmethod
    def to_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
        """Serializa campos de escrita para JSON (Decimal, datas, conjuntos)."""
        out: dict[str, Any] = {}
        for key, value in fields.items():
            if isinstance(value, Decimal):
                out[key] = str(value)
            elif isinstance(value, (datetime, date)):
                out[key] = value.isoformat()
            elif isinstance(value, (set, frozenset)):
                out[key] = sorted(value)
            else:
                out[key] = value
        return out
