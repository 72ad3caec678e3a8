from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from crm_imobiliario.core.domain.entities._base import EntityMixin


@dataclass(slots=True)
class CollaboratorEntity(EntityMixin):
    id: str
    name: str
    email: str = ""
    phone: str = ""
    role: str = ""
    status: str = "active"
    created_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status == "active"
