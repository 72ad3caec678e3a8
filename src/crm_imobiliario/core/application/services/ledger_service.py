from __future__ import annotations

import uuid
from collections.abc import Mapping
from typing import Any

import structlog
from pydantic import ValidationError

from crm_imobiliario.core.application.dtos.operation_result import OperationResult
from crm_imobiliario.core.application.dtos.stats_dto import DateWindow, FinancialStatsDTO
from crm_imobiliario.core.application.dtos.transaction_dto import (
    TransactionInputDTO,
    first_error_message,
)
from crm_imobiliario.core.application.services.aggregate_service import AggregateEngine
from crm_imobiliario.core.domain.entities.transaction_entity import CATEGORIES_BY_KIND, TransactionEntity
from crm_imobiliario.core.domain.events.events import TransactionCreatedEvent
from crm_imobiliario.core.domain.events.exceptions import ValidationGap
from crm_imobiliario.core.domain.services.event_dispatcher import EventDispatcher

logger = structlog.get_logger(__name__)


class LedgerService:
    """
    Livro-caixa mantido só em memória do processo (não sincroniza com o store).
    Consistência mais fraca que os caches: some ao reiniciar a sessão.
    """

    def __init__(self, engine: AggregateEngine, dispatcher: EventDispatcher | None = None) -> None:
        self.engine = engine
        self.dispatcher = dispatcher
        self._transactions: list[TransactionEntity] = []

    # ───────────────────────── leitura ──────────────────────────
    def snapshot(self) -> list[TransactionEntity]:
        return list(self._transactions)

    def is_loading(self) -> bool:
        return False

    def get(self, transaction_id: str) -> TransactionEntity | None:
        return next((t for t in self._transactions if t.id == transaction_id), None)

    def recent(self, limit: int = 5) -> list[TransactionEntity]:
        return sorted(self._transactions, key=lambda t: t.date, reverse=True)[:limit]

    @staticmethod
    def categories_for(kind: str) -> tuple[str, ...]:
        return CATEGORIES_BY_KIND.get(kind, ())

    def stats(self, window: DateWindow | None = None) -> FinancialStatsDTO:
        return self.engine.financial_stats(self._transactions, window=window)

    # ───────────────────────── escrita ──────────────────────────
    def add(self, fields: Mapping[str, Any]) -> OperationResult:
        try:
            data = self._validated({"status": "confirmed", "date": self.engine.today(), **fields})
        except ValidationGap as exc:
            logger.warning("ledger.rejected", error=str(exc))
            return OperationResult.fail(str(exc), exc)

        tx = TransactionEntity(id=str(uuid.uuid4()), **data)
        self._transactions.insert(0, tx)
        logger.info("ledger.added", transaction_id=tx.id, kind=tx.kind, amount=str(tx.amount))
        if self.dispatcher is not None:
            self.dispatcher.dispatch(
                TransactionCreatedEvent(
                    transaction_id=tx.id, kind=tx.kind, amount=tx.amount, description=tx.description
                )
            )
        return OperationResult.ok("Transação adicionada", data=tx)

    def update(self, transaction_id: str, partial: Mapping[str, Any]) -> OperationResult:
        idx = next((i for i, t in enumerate(self._transactions) if t.id == transaction_id), None)
        if idx is None:
            return OperationResult.fail(f"Transação {transaction_id!r} não encontrada")
        current = self._transactions[idx]
        merged = {**current.to_dict(), **partial}
        merged.pop("id", None)
        try:
            data = self._validated(merged)
        except ValidationGap as exc:
            return OperationResult.fail(str(exc), exc)
        self._transactions[idx] = current.with_changes(**data)
        return OperationResult.ok("Transação atualizada", data=self._transactions[idx])

    def remove(self, transaction_id: str) -> OperationResult:
        before = len(self._transactions)
        self._transactions = [t for t in self._transactions if t.id != transaction_id]
        if len(self._transactions) == before:
            return OperationResult.fail(f"Transação {transaction_id!r} não encontrada")
        return OperationResult.ok("Transação removida")

    # ───────────────────────── validação ──────────────────────────
    @staticmethod
    def _validated(fields: Mapping[str, Any]) -> dict[str, Any]:
        try:
            dto = TransactionInputDTO.model_validate(dict(fields))
        except ValidationError as exc:
            raise ValidationGap(first_error_message(exc)) from exc
        return dto.model_dump()
