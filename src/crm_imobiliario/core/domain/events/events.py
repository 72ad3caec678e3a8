from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ───────────────────────────────────────────────
# Event Base e Domain Events
# ───────────────────────────────────────────────
@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    event_id: uuid.UUID = field(default_factory=uuid.uuid4)
    occurred_at: datetime = field(default_factory=_utcnow)

# ╭──────────────────────────────────────────────╮
# │ 1. Cache / feed de mudanças                  │
# ╰──────────────────────────────────────────────╯
@dataclass(frozen=True, kw_only=True)
class EntityInsertedEvent(DomainEvent):
    table: str
    entity_id: str
    entity: Any

@dataclass(frozen=True, kw_only=True)
class EntityStageChangedEvent(DomainEvent):
    table: str
    entity_id: str
    old_stage: str
    new_stage: str
    entity: Any

# ╭──────────────────────────────────────────────╮
# │ 2. Transições para estágios de sucesso       │
# ╰──────────────────────────────────────────────╯
@dataclass(frozen=True, kw_only=True)
class LeadWonEvent(DomainEvent):
    lead_id: str
    name: str
    value: Decimal
    from_stage: str | None = None

@dataclass(frozen=True, kw_only=True)
class TicketResolvedEvent(DomainEvent):
    ticket_id: str
    client_name: str
    subject: str

# ╭──────────────────────────────────────────────╮
# │ 3. Financeiro (livro-caixa local)            │
# ╰──────────────────────────────────────────────╯
@dataclass(frozen=True, kw_only=True)
class TransactionCreatedEvent(DomainEvent):
    transaction_id: str
    kind: str
    amount: Decimal
    description: str
