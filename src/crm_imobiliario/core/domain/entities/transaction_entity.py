from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from crm_imobiliario.core.domain.entities._base import EntityMixin

TRANSACTION_KINDS: tuple[str, ...] = ("income", "expense")
TRANSACTION_STATUSES: tuple[str, ...] = ("confirmed", "pending", "canceled")

# ───────────────────────────────────────────────
# Taxonomia fixa de categorias por tipo
# ───────────────────────────────────────────────
INCOME_CATEGORIES: tuple[str, ...] = (
    "Setup de Automação",
    "Desenvolvimento de Bot/IA",
    "Consultoria Estratégica",
    "Gestão de Tráfego",
    "Fee Mensal (Retainer)",
    "Outros / Diversos",
)

EXPENSE_CATEGORIES: tuple[str, ...] = (
    "Folha de Pagamento / Freelancers",
    "Serviços e VPS",
    "Anúncios (Meta / Google Ads)",
    "Api & Softwares (OpenAI/Painel de Ferramentas)",
    "Outros / Diversos",
)

CATEGORIES_BY_KIND: dict[str, tuple[str, ...]] = {
    "income": INCOME_CATEGORIES,
    "expense": EXPENSE_CATEGORIES,
}


@dataclass(slots=True)
class TransactionEntity(EntityMixin):
    id: str
    kind: str
    description: str
    amount: Decimal
    category: str
    date: date
    status: str = "confirmed"
    note: str | None = None

    @property
    def is_confirmed(self) -> bool:
        return self.status == "confirmed"
