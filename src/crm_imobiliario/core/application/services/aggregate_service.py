from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Iterable, Sequence
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from zoneinfo import ZoneInfo

from crm_imobiliario.core.application.dtos.stats_dto import (
    AppointmentStatsDTO,
    CollaboratorStatsDTO,
    DateWindow,
    FinancialStatsDTO,
    FunnelRatesDTO,
    FunnelReportDTO,
    LeadStatsDTO,
    TicketStatsDTO,
    WebhookStatsDTO,
)
from crm_imobiliario.core.application.services.formatter_service import (
    MINUTES_PER_DAY,
    FormatterService,
)
from crm_imobiliario.core.domain.entities.appointment_entity import AppointmentEntity
from crm_imobiliario.core.domain.entities.collaborator_entity import CollaboratorEntity
from crm_imobiliario.core.domain.entities.lead_entity import LeadEntity
from crm_imobiliario.core.domain.entities.support_ticket_entity import SupportTicketEntity
from crm_imobiliario.core.domain.entities.transaction_entity import TransactionEntity
from crm_imobiliario.core.domain.entities.webhook_entity import (
    WebhookDeliveryEntity,
    WebhookEntity,
)
from crm_imobiliario.core.domain.services.stage_model import StageModel, lead_stage_model

ZERO = Decimal("0")

# Estágios do funil de leads usados no relatório
SCHEDULED_LEAD_STAGES = frozenset({"proposal-sent", "negotiation", "won", "lost"})
ATTENDED_LEAD_STAGES = frozenset({"negotiation", "won", "lost"})

PERIOD_PRESETS = ("7d", "30d", "90d", "month")


def percentage(part: int | Decimal, whole: int | Decimal) -> int:
    """Percentual inteiro (meio para cima); 0 quando o denominador é 0."""
    if not whole:
        return 0
    pct = (Decimal(part) * 100 / Decimal(whole)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(pct)


def period_window(preset: str, today: date) -> DateWindow:
    """Atalhos de período do relatório: últimos 7/30/90 dias ou mês corrente."""
    if preset not in PERIOD_PRESETS:
        raise ValueError(f"Período desconhecido: {preset!r}")
    if preset == "month":
        return DateWindow(start=today.replace(day=1), end=today)
    return DateWindow(start=today - timedelta(days=int(preset[:-1])), end=today)


def month_window(today: date) -> DateWindow:
    first = today.replace(day=1)
    next_month = (first + timedelta(days=32)).replace(day=1)
    return DateWindow(start=first, end=next_month - timedelta(days=1))


class AggregateEngine:
    """
    Estatísticas derivadas, sempre recalculadas a partir de um snapshot.
    Funções puras: o "agora" vem do fuso de referência ou do chamador.
    """

    def __init__(
        self,
        timezone: str = "America/Sao_Paulo",
        lead_stages: StageModel | None = None,
        formatter: FormatterService | None = None,
        resolution_hours_threshold: int = MINUTES_PER_DAY,
    ) -> None:
        self.tz = ZoneInfo(timezone)
        self.lead_stages = lead_stages or lead_stage_model()
        self.formatter = formatter or FormatterService()
        self.resolution_hours_threshold = resolution_hours_threshold

    # ───────────────────────── relógio ──────────────────────────
    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today(self) -> date:
        return self.now().date()

    def local_date(self, moment: datetime) -> date:
        if moment.tzinfo is None:
            return moment.date()
        return moment.astimezone(self.tz).date()

    # ───────────────────────── leads ──────────────────────────
    def lead_stats(self, leads: Sequence[LeadEntity]) -> LeadStatsDTO:
        total = len(leads)
        paid = [lead for lead in leads if lead.is_paid]
        by_stage = Counter(lead.status for lead in leads)
        won = by_stage.get("won", 0)
        return LeadStatsDTO(
            total=total,
            paid_count=len(paid),
            total_paid_amount=sum((lead.revenue for lead in paid), ZERO),
            total_estimated_amount=sum((lead.value for lead in leads), ZERO),
            won_count=won,
            lost_count=by_stage.get("lost", 0),
            conversion_rate=percentage(won, total),
            by_stage={s.id: by_stage.get(s.id, 0) for s in self.lead_stages.all_stages()},
            unassigned_count=len(self.lead_stages.unassigned(leads)),
        )

    def funnel_report(
        self,
        leads: Iterable[LeadEntity],
        window: DateWindow | None = None,
        source: str | None = None,
        status: str | None = None,
    ) -> FunnelReportDTO:
        """Relatório de funil; `source`/`status` None ou "todos" não filtram."""
        window = window or DateWindow()
        selected = [
            lead for lead in leads
            if window.contains(lead.reference_date())
            and (source in (None, "todos") or lead.source == source)
            and (status in (None, "todos") or lead.status == status)
        ]

        total = len(selected)
        responded = sum(1 for lead in selected if lead.status != "new")
        scheduled = sum(1 for lead in selected if lead.status in SCHEDULED_LEAD_STAGES)
        attended = sum(1 for lead in selected if lead.status in ATTENDED_LEAD_STAGES)
        paid = [lead for lead in selected if lead.is_paid]
        paid_attended = sum(1 for lead in paid if lead.status in ATTENDED_LEAD_STAGES)
        won = sum(1 for lead in selected if lead.status == "won")
        lost = sum(1 for lead in selected if lead.status == "lost")
        revenue = sum((lead.revenue for lead in paid), ZERO)

        by_source: dict[str, int] = defaultdict(int)
        for lead in selected:
            by_source[lead.source] += 1
        stage_counts = Counter(lead.status for lead in selected)

        return FunnelReportDTO(
            total=total,
            responded=responded,
            scheduled=scheduled,
            attended=attended,
            paid=len(paid),
            won=won,
            lost=lost,
            revenue=revenue,
            average_ticket=(revenue / len(paid)) if paid else ZERO,
            rates=FunnelRatesDTO(
                response=percentage(responded, total),
                scheduling=percentage(scheduled, responded),
                attendance=percentage(attended, scheduled),
                payment=percentage(paid_attended, attended),
                conversion=percentage(won, total),
            ),
            by_stage={s.id: stage_counts.get(s.id, 0) for s in self.lead_stages.all_stages()},
            by_source=dict(sorted(by_source.items(), key=lambda kv: (-kv[1], kv[0]))),
        )

    # ───────────────────────── agenda ──────────────────────────
    def appointment_stats(
        self, appointments: Sequence[AppointmentEntity], today: date | None = None
    ) -> AppointmentStatsDTO:
        today = today or self.today()
        week_start = today - timedelta(days=today.weekday())  # semana ISO: segunda
        week_end = week_start + timedelta(days=6)
        by_status = Counter(a.status for a in appointments)
        return AppointmentStatsDTO(
            total=len(appointments),
            scheduled=by_status.get("scheduled", 0),
            confirmed=by_status.get("confirmed", 0),
            completed=by_status.get("completed", 0),
            canceled=by_status.get("canceled", 0),
            today_count=sum(1 for a in appointments if a.date == today),
            this_week_count=sum(1 for a in appointments if week_start <= a.date <= week_end),
        )

    # ───────────────────────── atendimentos ──────────────────────────
    def ticket_stats(self, tickets: Sequence[SupportTicketEntity]) -> TicketStatsDTO:
        by_status = Counter(t.status for t in tickets)
        durations = [
            minutes for t in tickets
            if t.status == "resolved" and (minutes := t.resolution_minutes()) is not None
        ]
        average: int | None = None
        label = "N/A"
        if durations:
            mean = Decimal(str(sum(durations))) / len(durations)
            average = int(mean.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
            label = self.formatter.format_duration(average, self.resolution_hours_threshold)
        return TicketStatsDTO(
            total=len(tickets),
            open=by_status.get("open", 0),
            in_progress=by_status.get("in-progress", 0),
            resolved=by_status.get("resolved", 0),
            average_resolution_minutes=average,
            average_resolution_time=label,
        )

    # ───────────────────────── colaboradores ──────────────────────────
    def collaborator_stats(self, collaborators: Sequence[CollaboratorEntity]) -> CollaboratorStatsDTO:
        active = sum(1 for c in collaborators if c.status == "active")
        return CollaboratorStatsDTO(
            total=len(collaborators),
            active=active,
            inactive=sum(1 for c in collaborators if c.status == "inactive"),
        )

    # ───────────────────────── financeiro ──────────────────────────
    def financial_stats(
        self,
        transactions: Sequence[TransactionEntity],
        window: DateWindow | None = None,
    ) -> FinancialStatsDTO:
        """Somatórios da janela (padrão: mês corrente) só com transações confirmadas."""
        window = window or month_window(self.today())
        confirmed = [t for t in transactions if t.is_confirmed]
        in_window = [t for t in confirmed if window.contains(t.date)]

        incomes = [t.amount for t in in_window if t.kind == "income"]
        expenses = [t.amount for t in in_window if t.kind == "expense"]
        income = sum(incomes, ZERO)
        expense = sum(expenses, ZERO)
        balance = sum((t.amount if t.kind == "income" else -t.amount for t in confirmed), ZERO)

        return FinancialStatsDTO(
            income=income,
            expense=expense,
            profit=income - expense,
            balance=balance,
            average_ticket=(income / len(incomes)) if incomes else ZERO,
            acquisition_cost=(expense / len(incomes)) if incomes else ZERO,
            income_count=len(incomes),
            expense_count=len(expenses),
        )

    # ───────────────────────── automações ──────────────────────────
    def webhook_stats(
        self,
        webhooks: Sequence[WebhookEntity],
        deliveries: Sequence[WebhookDeliveryEntity],
        today: date | None = None,
    ) -> WebhookStatsDTO:
        today = today or self.today()
        total_events = sum(w.total_events for w in webhooks)
        successful = sum(w.successful_events for w in webhooks)
        return WebhookStatsDTO(
            total_webhooks=len(webhooks),
            active_webhooks=sum(1 for w in webhooks if w.active),
            events_today=sum(1 for d in deliveries if self.local_date(d.occurred_at) == today),
            success_rate=percentage(successful, total_events),
            total_events=total_events,
            by_webhook={w.id: percentage(w.successful_events, w.total_events) for w in webhooks},
        )
