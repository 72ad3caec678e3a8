from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from crm_imobiliario.core.domain.entities._base import EntityMixin

NOTIFICATION_TYPES: tuple[str, ...] = (
    "success",
    "warning",
    "info",
    "alert",
    "lead",
    "financial",
    "webhook",
    "client",
    "appointment",
)


@dataclass(slots=True)
class NotificationEntity(EntityMixin):
    id: str
    type: str
    title: str
    message: str
    timestamp: datetime
    read: bool = False
    link: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
