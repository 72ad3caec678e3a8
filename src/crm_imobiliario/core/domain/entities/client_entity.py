from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from crm_imobiliario.core.domain.entities._base import EntityMixin

CLIENT_STATUS_LABELS: dict[str, str] = {"active": "Ativo", "inactive": "Inativo"}


@dataclass(slots=True)
class ClientEntity(EntityMixin):
    id: str
    name: str
    email: str = ""
    phone: str = ""
    status: str = "active"
    total_spent: Decimal = Decimal("0")
    since: date | None = None
    lead_id: str | None = None
    origin: str = "manual"  # manual | lead

    @property
    def status_label(self) -> str:
        return CLIENT_STATUS_LABELS.get(self.status, self.status)
