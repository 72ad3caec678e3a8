from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog

from crm_imobiliario.adapters.observability.metrics import STAGE_TRANSITIONS
from crm_imobiliario.core.application.commands.record_commands import TransitionStageCommand
from crm_imobiliario.core.application.cqrs import CommandBus
from crm_imobiliario.core.application.dtos.operation_result import OperationResult
from crm_imobiliario.core.domain.events.exceptions import CrmError, RecordNotFound, ValidationGap
from crm_imobiliario.core.domain.services.stage_model import StageModel

logger = structlog.get_logger(__name__)


class TransitionService:
    """
    Fachada da transição de estágio. Qualquer estágio → qualquer estágio é
    aceito (salvo arestas configuradas no StageModel); o cache só muda quando
    o evento de UPDATE chega pelo feed.
    """

    def __init__(self, command_bus: CommandBus, stage_models: Mapping[str, StageModel]):
        self.command_bus = command_bus
        self.stage_models = stage_models

    async def transition(
        self,
        table: str,
        entity_id: str,
        to_stage: str,
        from_stage: str | None = None,
        extra_fields: Mapping[str, Any] | None = None,
    ) -> OperationResult:
        model = self.stage_models.get(table)
        label = model.label_for(to_stage) if model else to_stage
        try:
            result = await self.command_bus.dispatch(
                TransitionStageCommand(
                    table=table,
                    record_id=entity_id,
                    to_stage=to_stage,
                    from_stage=from_stage,
                    extra_fields=dict(extra_fields or {}),
                )
            )
        except ValidationGap as exc:
            logger.warning("transition.rejected", table=table, record_id=entity_id, to_stage=to_stage, error=str(exc))
            STAGE_TRANSITIONS.labels(table=table, stage=to_stage, outcome="rejected").inc()
            return OperationResult.fail(str(exc), exc)
        except RecordNotFound as exc:
            logger.warning("transition.not_found", table=table, record_id=entity_id)
            STAGE_TRANSITIONS.labels(table=table, stage=to_stage, outcome="not_found").inc()
            return OperationResult.fail(str(exc), exc)
        except CrmError as exc:
            logger.error("transition.failed", table=table, record_id=entity_id, to_stage=to_stage, error=str(exc))
            STAGE_TRANSITIONS.labels(table=table, stage=to_stage, outcome="failed").inc()
            return OperationResult.fail(f"Erro ao mover para {label}", exc)

        STAGE_TRANSITIONS.labels(table=table, stage=to_stage, outcome="ok").inc()
        return OperationResult.ok(f"Movido para {label}", data=result.record)
