from __future__ import annotations

from collections.abc import Collection, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

E = TypeVar("E")

DEFAULT_STAGE_COLOR = "gray"


@dataclass(frozen=True, slots=True)
class Stage:
    id: str
    label: str
    color: str
    terminal: bool = False


class StageModel:
    """
    Conjunto fixo e ordenado de estágios de um tipo de entidade.

    Transições são livres entre quaisquer estágios (inclusive saindo de um
    terminal). Um mapa de arestas opcional restringe `can_transition`.
    """

    def __init__(
        self,
        kind: str,
        stages: Sequence[Stage],
        success_stage: str | None = None,
        field: str = "status",
        edges: Mapping[str, Collection[str]] | None = None,
    ) -> None:
        ids = [s.id for s in stages]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Estágios duplicados em {kind}: {ids}")
        if success_stage is not None and success_stage not in ids:
            raise ValueError(f"Estágio de sucesso desconhecido: {success_stage}")
        self.kind = kind
        self.field = field
        self.success_stage = success_stage
        self._stages = tuple(stages)
        self._by_id = {s.id: s for s in self._stages}
        self._edges = {k: frozenset(v) for k, v in edges.items()} if edges is not None else None

    # ───────────────────────── consultas ──────────────────────────
    def stage_of(self, entity: Any) -> str:
        return getattr(entity, self.field)

    def all_stages(self) -> tuple[Stage, ...]:
        return self._stages

    def ids(self) -> tuple[str, ...]:
        return tuple(self._by_id)

    def get(self, stage_id: str) -> Stage | None:
        return self._by_id.get(stage_id)

    def label_for(self, stage_id: str) -> str:
        stage = self._by_id.get(stage_id)
        return stage.label if stage else stage_id

    def color_for(self, stage_id: str) -> str:
        stage = self._by_id.get(stage_id)
        return stage.color if stage else DEFAULT_STAGE_COLOR

    def is_member(self, stage_id: str | None) -> bool:
        return stage_id in self._by_id

    def is_terminal(self, stage_id: str) -> bool:
        stage = self._by_id.get(stage_id)
        return bool(stage and stage.terminal)

    def index_of(self, stage_id: str) -> int:
        """Posição no pipeline; -1 para estágios desconhecidos."""
        try:
            return self.ids().index(stage_id)
        except ValueError:
            return -1

    def can_transition(self, from_stage: str | None, to_stage: str) -> bool:
        if not self.is_member(to_stage):
            return False
        if self._edges is None or from_stage is None or from_stage == to_stage:
            return True
        return to_stage in self._edges.get(from_stage, frozenset())

    # ───────────────────────── agrupamento ─────────────────────────
    def group_by_stage(self, entities: Iterable[E]) -> dict[str, list[E]]:
        """Colunas do kanban; entidades com estágio desconhecido não aparecem."""
        columns: dict[str, list[E]] = {s.id: [] for s in self._stages}
        for entity in entities:
            stage_id = self.stage_of(entity)
            if stage_id in columns:
                columns[stage_id].append(entity)
        return columns

    def unassigned(self, entities: Iterable[E]) -> list[E]:
        return [e for e in entities if not self.is_member(self.stage_of(e))]


# ╭──────────────────────────────────────────────╮
# │ Catálogo de estágios por entidade            │
# ╰──────────────────────────────────────────────╯
LEAD_STAGES: tuple[Stage, ...] = (
    Stage("new", "Novo Lead", "blue"),
    Stage("initial-contact", "Contato Inicial", "orange"),
    Stage("proposal-sent", "Proposta Enviada", "purple"),
    Stage("negotiation", "Negociação", "yellow"),
    Stage("won", "Fechado Ganho", "green", terminal=True),
    Stage("lost", "Fechado Perdido", "red", terminal=True),
)

APPOINTMENT_STAGES: tuple[Stage, ...] = (
    Stage("scheduled", "Agendado", "primary"),
    Stage("confirmed", "Confirmado", "blue"),
    Stage("completed", "Realizado", "green", terminal=True),
    Stage("canceled", "Cancelado", "red", terminal=True),
)

TICKET_STAGES: tuple[Stage, ...] = (
    Stage("open", "Aberto", "orange"),
    Stage("in-progress", "Em Andamento", "blue"),
    Stage("resolved", "Resolvido", "green", terminal=True),
)

COLLABORATOR_STAGES: tuple[Stage, ...] = (
    Stage("active", "Ativo", "green"),
    Stage("inactive", "Inativo", "gray"),
)


def lead_stage_model() -> StageModel:
    return StageModel("leads", LEAD_STAGES, success_stage="won")


def appointment_stage_model() -> StageModel:
    return StageModel("appointments", APPOINTMENT_STAGES, success_stage="completed")


def ticket_stage_model() -> StageModel:
    return StageModel("support_tickets", TICKET_STAGES, success_stage="resolved")


def collaborator_stage_model() -> StageModel:
    return StageModel("collaborators", COLLABORATOR_STAGES)
