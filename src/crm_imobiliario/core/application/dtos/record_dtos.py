from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# ───────────────────────────────────────────────
# DTOs das linhas vindas do record store
# ───────────────────────────────────────────────


def _as_str_id(v: Any) -> Any:
    return str(v) if v is not None and not isinstance(v, str) else v


class _RowDTO(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    id: str

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data):
        # null no store equivale a campo ausente: vale o default do DTO
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, v):
        return _as_str_id(v)


class LeadRowDTO(_RowDTO):
    name: str = Field(min_length=1)
    status: str = "new"
    phone: str | None = None
    email: str | None = None
    value: Decimal = Field(default=Decimal("0"), ge=0)
    paid_value: Decimal | None = Field(default=None, ge=0)
    is_paid: bool = False
    source: str | None = None
    date: dt.date | None = None
    tags: list[str] | None = None
    description: str | None = None
    property_link: str | None = None
    last_message: str | None = None
    created_at: dt.datetime | None = None

    @field_validator("value", mode="before")
    @classmethod
    def _value_default(cls, v):
        return Decimal("0") if v == "" else v

    @field_validator("date", mode="before")
    @classmethod
    def _date_from_timestamp(cls, v):
        # colunas `date` às vezes chegam como timestamp completo
        if isinstance(v, str) and "T" in v:
            return v.split("T", 1)[0]
        if isinstance(v, dt.datetime):
            return v.date()
        return v


class AppointmentRowDTO(_RowDTO):
    client_name: str = Field(min_length=1)
    date: dt.date
    time: str = Field(pattern=r"^\d{1,2}:\d{2}")
    status: str = "scheduled"
    client_phone: str | None = None
    collaborator_id: str | None = None
    lead_id: str | None = None
    duration_minutes: int | None = Field(default=None, ge=0)
    service_description: str | None = None
    notes: str | None = None
    created_at: dt.datetime | None = None

    @field_validator("collaborator_id", "lead_id", mode="before")
    @classmethod
    def _refs_as_str(cls, v):
        return _as_str_id(v)


class SupportTicketRowDTO(_RowDTO):
    client_name: str = Field(min_length=1)
    subject: str = ""
    status: str = "open"
    priority: str = "medium"
    client_id: str | None = None
    email: str | None = None
    phone: str | None = None
    assigned_agent: str | None = None
    channel: str | None = None
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None
    resolved_at: dt.datetime | None = None

    @field_validator("client_id", mode="before")
    @classmethod
    def _client_as_str(cls, v):
        return _as_str_id(v)


class TicketMessageRowDTO(_RowDTO):
    ticket_id: str
    text: str
    sender: str = Field(pattern=r"^(client|agent)$")
    created_at: dt.datetime | None = None

    @field_validator("ticket_id", mode="before")
    @classmethod
    def _ticket_as_str(cls, v):
        return _as_str_id(v)


class CollaboratorRowDTO(_RowDTO):
    name: str = Field(min_length=1)
    email: str | None = None
    phone: str | None = None
    role: str | None = None
    status: str = "active"
    created_at: dt.datetime | None = None
