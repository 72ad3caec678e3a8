from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from crm_imobiliario.core.domain.entities._base import EntityMixin

DEFAULT_LEAD_SOURCE = "WhatsApp"

LEAD_SOURCES: tuple[str, ...] = (
    "Instagram",
    "WhatsApp",
    "Facebook",
    "Google Ads",
    "Indicação",
    "Site",
    "LinkedIn",
    "Outro",
)

# Valores gravados por versões antigas do formulário de captação
LEGACY_SOURCES = frozenset({"formulário", "formulario"})


def normalize_source(source: str | None) -> str:
    """Aplica o canal padrão quando a origem está ausente ou é legada."""
    if source is None:
        return DEFAULT_LEAD_SOURCE
    cleaned = source.strip()
    if not cleaned or cleaned.lower() in LEGACY_SOURCES:
        return DEFAULT_LEAD_SOURCE
    return cleaned


@dataclass(slots=True)
class LeadEntity(EntityMixin):
    id: str
    name: str
    status: str = "new"
    phone: str = ""
    email: str | None = None
    value: Decimal = Decimal("0")
    paid_value: Decimal | None = None
    is_paid: bool = False
    source: str = DEFAULT_LEAD_SOURCE
    date: date | None = None
    tags: frozenset[str] = field(default_factory=frozenset)
    description: str | None = None
    property_link: str | None = None
    last_message: str | None = None
    created_at: datetime | None = None

    @property
    def revenue(self) -> Decimal:
        """Valor efetivamente recebido (0 enquanto não pago)."""
        if not self.is_paid or self.paid_value is None:
            return Decimal("0")
        return self.paid_value

    def reference_date(self) -> date | None:
        if self.date is not None:
            return self.date
        return self.created_at.date() if self.created_at else None
