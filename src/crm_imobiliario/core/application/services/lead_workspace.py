from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any

from crm_imobiliario.core.application.dtos.operation_result import OperationResult
from crm_imobiliario.core.application.dtos.stats_dto import DateWindow, FunnelReportDTO, LeadStatsDTO
from crm_imobiliario.core.application.services.aggregate_service import period_window
from crm_imobiliario.core.application.services.record_workspace import RecordWorkspace
from crm_imobiliario.core.domain.entities.lead_entity import LeadEntity, normalize_source

ALL_FILTER = "todos"


class LeadWorkspace(RecordWorkspace[LeadEntity]):
    """Pipeline de leads (kanban): colunas por estágio, filtros e funil."""

    entity_label = "Lead"
    required_fields = ("name",)

    def defaults(self) -> dict[str, Any]:
        return {
            "status": "new",
            "value": Decimal("0"),
            "is_paid": False,
            "date": self.engine.today(),
        }

    def prepare(self, payload: dict[str, Any]) -> dict[str, Any]:
        payload["source"] = normalize_source(payload.get("source"))
        return payload

    def stats(self) -> LeadStatsDTO:
        return self.engine.lead_stats(self.snapshot())

    # ───────────────────────── filtros ──────────────────────────
    def by_status(self, status: str) -> list[LeadEntity]:
        return [lead for lead in self.snapshot() if lead.status == status]

    def by_source(self, source: str) -> list[LeadEntity]:
        if source == ALL_FILTER:
            return self.snapshot()
        return [lead for lead in self.snapshot() if lead.source == source]

    def by_date_range(self, start: date, end: date) -> list[LeadEntity]:
        window = DateWindow(start=start, end=end)
        return [lead for lead in self.snapshot() if window.contains(lead.reference_date())]

    def unique_sources(self) -> list[str]:
        return sorted({lead.source for lead in self.snapshot()})

    def search(self, term: str) -> list[LeadEntity]:
        needle = term.strip().lower()
        if not needle:
            return self.snapshot()
        return [
            lead for lead in self.snapshot()
            if needle in lead.name.lower()
            or needle in (lead.email or "").lower()
            or needle in lead.phone
        ]

    def recent(self, limit: int = 4) -> list[LeadEntity]:
        return self.snapshot()[:limit]

    # ───────────────────────── relatório ──────────────────────────
    def funnel_report(
        self,
        period: str | None = None,
        window: DateWindow | None = None,
        source: str | None = None,
        status: str | None = None,
    ) -> FunnelReportDTO:
        if window is None and period is not None:
            window = period_window(period, self.engine.today())
        return self.engine.funnel_report(self.snapshot(), window=window, source=source, status=status)

    # ───────────────────────── operações ──────────────────────────
    async def register_payment(self, lead_id: str, amount: Decimal) -> OperationResult:
        if amount < 0:
            return OperationResult.fail("Valor pago não pode ser negativo")
        return await self.update(lead_id, {"is_paid": True, "paid_value": amount})
