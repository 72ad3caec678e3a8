from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time

from crm_imobiliario.core.domain.entities._base import EntityMixin

DEFAULT_DURATION_MINUTES = 60


@dataclass(slots=True)
class AppointmentEntity(EntityMixin):
    id: str
    client_name: str
    date: date
    time: str
    status: str = "scheduled"
    client_phone: str = ""
    collaborator_id: str | None = None
    lead_id: str | None = None
    duration_minutes: int = DEFAULT_DURATION_MINUTES
    service_description: str = ""
    notes: str | None = None
    created_at: datetime | None = None

    def start_time(self) -> time:
        """Horário "HH:MM" convertido; 00:00 quando mal formatado."""
        try:
            hours, minutes = self.time.split(":")[:2]
            return time(int(hours), int(minutes))
        except (ValueError, AttributeError):
            return time(0, 0)
