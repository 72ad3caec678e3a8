from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from crm_imobiliario.core.application.dtos.stats_dto import (
    AppointmentStatsDTO,
    FinancialStatsDTO,
    LeadStatsDTO,
)
from crm_imobiliario.core.application.services.appointment_workspace import AppointmentWorkspace
from crm_imobiliario.core.application.services.ledger_service import LedgerService
from crm_imobiliario.core.application.services.lead_workspace import LeadWorkspace


@dataclass(frozen=True)
class RecentLeadDTO:
    id: str
    name: str
    stage_label: str
    source: str


@dataclass(frozen=True)
class UpcomingAppointmentDTO:
    id: str
    client_name: str
    when: str
    service: str


@dataclass(frozen=True)
class DashboardSummaryDTO:
    leads: LeadStatsDTO
    appointments: AppointmentStatsDTO
    finance: FinancialStatsDTO
    recent_leads: list[RecentLeadDTO]
    upcoming_appointments: list[UpcomingAppointmentDTO]


class DashboardService:
    """Monta o resumo da tela inicial a partir dos workspaces."""

    def __init__(self, leads: LeadWorkspace, appointments: AppointmentWorkspace, ledger: LedgerService):
        self.leads = leads
        self.appointments = appointments
        self.ledger = ledger

    def summary(self, today: date | None = None, recent_limit: int = 4) -> DashboardSummaryDTO:
        stages = self.leads.stage_model
        recent = [
            RecentLeadDTO(
                id=lead.id,
                name=lead.name,
                stage_label=stages.label_for(lead.status),
                source=lead.source,
            )
            for lead in self.leads.recent(recent_limit)
        ]
        upcoming = [
            UpcomingAppointmentDTO(
                id=appt.id,
                client_name=appt.client_name,
                when=label,
                service=appt.service_description,
            )
            for appt, label in self.appointments.upcoming_labels(limit=recent_limit, today=today)
        ]
        return DashboardSummaryDTO(
            leads=self.leads.stats(),
            appointments=self.appointments.stats(today=today),
            finance=self.ledger.stats(),
            recent_leads=recent,
            upcoming_appointments=upcoming,
        )
