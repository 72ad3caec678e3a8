from __future__ import annotations

from typing import Any

from crm_imobiliario.core.application.dtos.operation_result import OperationResult
from crm_imobiliario.core.application.dtos.stats_dto import CollaboratorStatsDTO
from crm_imobiliario.core.application.services.record_workspace import RecordWorkspace
from crm_imobiliario.core.domain.entities.collaborator_entity import CollaboratorEntity


class CollaboratorWorkspace(RecordWorkspace[CollaboratorEntity]):
    entity_label = "Colaborador"
    required_fields = ("name",)
    optimistic = True

    def defaults(self) -> dict[str, Any]:
        return {"status": "active"}

    def stats(self) -> CollaboratorStatsDTO:
        return self.engine.collaborator_stats(self.snapshot())

    def active(self) -> list[CollaboratorEntity]:
        return [c for c in self.snapshot() if c.is_active]

    async def toggle_status(self, collaborator_id: str) -> OperationResult:
        current = self.get(collaborator_id)
        if current is None:
            return OperationResult.fail(f"Colaborador {collaborator_id!r} não encontrado")
        target = "inactive" if current.is_active else "active"
        return await self.transition(collaborator_id, target)
