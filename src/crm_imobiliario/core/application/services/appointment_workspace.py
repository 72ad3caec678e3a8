from __future__ import annotations

from datetime import date, timedelta
from typing import Any

from crm_imobiliario.core.application.dtos.operation_result import OperationResult
from crm_imobiliario.core.application.dtos.stats_dto import AppointmentStatsDTO
from crm_imobiliario.core.application.services.record_workspace import RecordWorkspace
from crm_imobiliario.core.domain.entities.appointment_entity import (
    DEFAULT_DURATION_MINUTES,
    AppointmentEntity,
)

INACTIVE_APPOINTMENT_STAGES = frozenset({"canceled", "completed"})


class AppointmentWorkspace(RecordWorkspace[AppointmentEntity]):
    entity_label = "Agendamento"
    required_fields = ("client_name", "date", "time")
    optimistic = True

    def defaults(self) -> dict[str, Any]:
        return {"status": "scheduled", "duration_minutes": DEFAULT_DURATION_MINUTES}

    def stats(self, today: date | None = None) -> AppointmentStatsDTO:
        return self.engine.appointment_stats(self.snapshot(), today=today)

    def for_day(self, day: date) -> list[AppointmentEntity]:
        return [a for a in self.snapshot() if a.date == day]

    def today(self) -> list[AppointmentEntity]:
        return self.for_day(self.engine.today())

    def for_collaborator(self, collaborator_id: str) -> list[AppointmentEntity]:
        return [a for a in self.snapshot() if a.collaborator_id == collaborator_id]

    def upcoming(self, limit: int = 5, today: date | None = None) -> list[AppointmentEntity]:
        """Próximos (hoje em diante), sem cancelados/realizados, na ordem data+hora."""
        today = today or self.engine.today()
        return [
            a for a in self.snapshot()
            if a.date >= today and a.status not in INACTIVE_APPOINTMENT_STAGES
        ][:limit]

    def upcoming_labels(self, limit: int = 4, today: date | None = None) -> list[tuple[AppointmentEntity, str]]:
        """Rótulos do painel: "Hoje, 14:00" / "Amanhã, 14:00" / "dd/MM, 14:00"."""
        today = today or self.engine.today()
        labelled = []
        for a in self.upcoming(limit=limit, today=today):
            if a.date == today:
                prefix = "Hoje"
            elif a.date == today + timedelta(days=1):
                prefix = "Amanhã"
            else:
                prefix = a.date.strftime("%d/%m")
            labelled.append((a, f"{prefix}, {a.time}"))
        return labelled

    async def confirm(self, appointment_id: str) -> OperationResult:
        return await self.transition(appointment_id, "confirmed")

    async def complete(self, appointment_id: str) -> OperationResult:
        return await self.transition(appointment_id, "completed")

    async def cancel(self, appointment_id: str) -> OperationResult:
        return await self.transition(appointment_id, "canceled")
