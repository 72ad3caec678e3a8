from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from crm_imobiliario.core.application.cqrs import CommandDTO


@dataclass(frozen=True)
class CreateRecordCommand(CommandDTO):
    table: str
    fields: Mapping[str, Any]

@dataclass(frozen=True)
class UpdateRecordCommand(CommandDTO):
    table: str
    record_id: str
    fields: Mapping[str, Any]

@dataclass(frozen=True)
class DeleteRecordCommand(CommandDTO):
    table: str
    record_id: str

@dataclass(frozen=True)
class TransitionStageCommand(CommandDTO):
    """Move a entidade para `to_stage`; `extra_fields` vai junto no mesmo update."""
    table: str
    record_id: str
    to_stage: str
    from_stage: str | None = None
    extra_fields: Mapping[str, Any] = field(default_factory=dict)
