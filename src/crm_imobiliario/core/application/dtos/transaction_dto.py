from __future__ import annotations

import datetime as dt
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from crm_imobiliario.core.domain.entities.transaction_entity import (
    CATEGORIES_BY_KIND,
    TRANSACTION_KINDS,
    TRANSACTION_STATUSES,
)


class TransactionInputDTO(BaseModel):
    """Entrada do livro-caixa (add/update) já normalizada."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True, validate_default=True)

    kind: str | None = None
    description: str | None = None
    amount: Decimal | None = None
    category: str | None = None
    date: dt.date | None = None
    status: str = "confirmed"
    note: str | None = None

    @field_validator("kind")
    @classmethod
    def _known_kind(cls, v):
        if v not in TRANSACTION_KINDS:
            raise ValueError(f"Tipo de transação inválido: {v!r}")
        return v

    @field_validator("status")
    @classmethod
    def _known_status(cls, v):
        if v not in TRANSACTION_STATUSES:
            raise ValueError(f"Status de transação inválido: {v!r}")
        return v

    @field_validator("description")
    @classmethod
    def _description_required(cls, v):
        if not v:
            raise ValueError("Descrição obrigatória")
        return v

    @field_validator("amount", mode="before")
    @classmethod
    def _parse_amount(cls, v):
        try:
            amount = Decimal(str(v))
        except InvalidOperation as exc:
            raise ValueError(f"Valor inválido: {v!r}") from exc
        if not amount.is_finite() or amount <= 0:
            raise ValueError("O valor da transação deve ser positivo")
        return amount

    @field_validator("date", mode="before")
    @classmethod
    def _parse_date(cls, v):
        if v is None:
            raise ValueError("Data obrigatória")
        if isinstance(v, str):
            try:
                return dt.date.fromisoformat(v)
            except ValueError as exc:
                raise ValueError(f"Data inválida: {v!r}") from exc
        return v

    @model_validator(mode="after")
    def _category_matches_kind(self):
        if self.category not in CATEGORIES_BY_KIND[self.kind]:
            raise ValueError(f"Categoria inválida para {self.kind}: {self.category!r}")
        return self


def first_error_message(exc: ValidationError) -> str:
    """Mensagem do primeiro erro; usa o texto do ValueError quando houver."""
    error: dict[str, Any] = exc.errors(include_url=False)[0]
    original = (error.get("ctx") or {}).get("error")
    if original is not None:
        return str(original)
    field = ".".join(str(part) for part in error.get("loc", ()))
    return f"{field}: {error['msg']}" if field else error["msg"]
