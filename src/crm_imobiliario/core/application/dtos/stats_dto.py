from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal


@dataclass(frozen=True)
class DateWindow:
    """Janela de datas inclusiva nas duas pontas; None = sem limite."""
    start: date | None = None
    end: date | None = None

    def contains(self, d: date | None) -> bool:
        if d is None:
            return self.start is None and self.end is None
        if self.start is not None and d < self.start:
            return False
        if self.end is not None and d > self.end:
            return False
        return True


@dataclass(frozen=True)
class LeadStatsDTO:
    total: int
    paid_count: int
    total_paid_amount: Decimal
    total_estimated_amount: Decimal
    won_count: int
    lost_count: int
    conversion_rate: int
    by_stage: Mapping[str, int] = field(default_factory=dict)
    unassigned_count: int = 0


@dataclass(frozen=True)
class AppointmentStatsDTO:
    total: int
    scheduled: int
    confirmed: int
    completed: int
    canceled: int
    today_count: int
    this_week_count: int


@dataclass(frozen=True)
class TicketStatsDTO:
    total: int
    open: int
    in_progress: int
    resolved: int
    average_resolution_minutes: int | None
    average_resolution_time: str


@dataclass(frozen=True)
class CollaboratorStatsDTO:
    total: int
    active: int
    inactive: int


@dataclass(frozen=True)
class FinancialStatsDTO:
    """
    `balance` soma todas as transações confirmadas, fora da janela também.
    `acquisition_cost` = despesas / nº de receitas: aproximação conhecida,
    não é o CAC real por cliente adquirido.
    """
    income: Decimal
    expense: Decimal
    profit: Decimal
    balance: Decimal
    average_ticket: Decimal
    acquisition_cost: Decimal
    income_count: int
    expense_count: int


@dataclass(frozen=True)
class FunnelRatesDTO:
    response: int
    scheduling: int
    attendance: int
    payment: int
    conversion: int


@dataclass(frozen=True)
class FunnelReportDTO:
    total: int
    responded: int
    scheduled: int
    attended: int
    paid: int
    won: int
    lost: int
    revenue: Decimal
    average_ticket: Decimal
    rates: FunnelRatesDTO
    by_stage: Mapping[str, int]
    by_source: Mapping[str, int]


@dataclass(frozen=True)
class WebhookStatsDTO:
    total_webhooks: int
    active_webhooks: int
    events_today: int
    success_rate: int
    total_events: int
    by_webhook: Mapping[str, int] = field(default_factory=dict)
