from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any

from crm_imobiliario.core.application.dtos.operation_result import OperationResult
from crm_imobiliario.core.domain.entities.client_entity import CLIENT_STATUS_LABELS, ClientEntity
from crm_imobiliario.core.domain.entities.lead_entity import LeadEntity

ALL_FILTER = "todos"


def clients_from_leads(leads: Iterable[LeadEntity]) -> list[ClientEntity]:
    """Todo lead ganho vira cliente; gasto total = valor pago ou estimado."""
    return [
        ClientEntity(
            id=lead.id,
            name=lead.name,
            email=lead.email or "",
            phone=lead.phone,
            status="active",
            total_spent=lead.paid_value if lead.paid_value is not None else lead.value,
            since=lead.reference_date(),
            lead_id=lead.id,
            origin="lead",
        )
        for lead in leads
        if lead.status == "won"
    ]


def merge_clients(derived: Iterable[ClientEntity], manual: Iterable[ClientEntity]) -> list[ClientEntity]:
    """Junta por id; o cadastro manual prevalece sobre o derivado do lead."""
    merged: dict[str, ClientEntity] = {c.id: c for c in derived}
    for client in manual:
        merged[client.id] = client
    return list(merged.values())


def filter_clients(
    clients: Iterable[ClientEntity],
    search: str = "",
    status: str | None = None,
) -> list[ClientEntity]:
    needle = search.strip().lower()
    selected = []
    for client in clients:
        if status not in (None, ALL_FILTER) and status not in (client.status, client.status_label):
            continue
        if needle and not (
            needle in client.name.lower()
            or needle in client.email.lower()
            or needle in client.phone
        ):
            continue
        selected.append(client)
    return selected


class ClientRegistryService:
    """Cadastro de clientes: derivados de leads ganhos + cadastros manuais (memória)."""

    def __init__(self, leads) -> None:
        # `leads` expõe snapshot() (LeadWorkspace)
        self.leads = leads
        self._manual: dict[str, ClientEntity] = {}

    def all(self) -> list[ClientEntity]:
        return merge_clients(clients_from_leads(self.leads.snapshot()), self._manual.values())

    def search(self, term: str = "", status: str | None = None) -> list[ClientEntity]:
        return filter_clients(self.all(), term, status)

    def get(self, client_id: str) -> ClientEntity | None:
        return next((c for c in self.all() if c.id == client_id), None)

    def total_revenue(self) -> Decimal:
        return sum((c.total_spent for c in self.all()), Decimal("0"))

    def register(self, fields: Mapping[str, Any]) -> OperationResult:
        name = (fields.get("name") or "").strip()
        if not name:
            return OperationResult.fail("Nome do cliente é obrigatório")
        status = fields.get("status", "active")
        if status not in CLIENT_STATUS_LABELS:
            return OperationResult.fail(f"Status de cliente inválido: {status!r}")
        client = ClientEntity(
            id=str(fields.get("id") or uuid.uuid4()),
            name=name,
            email=fields.get("email") or "",
            phone=fields.get("phone") or "",
            status=status,
            total_spent=Decimal(str(fields.get("total_spent") or 0)),
            since=fields.get("since"),
            origin="manual",
        )
        self._manual[client.id] = client
        return OperationResult.ok("Cliente cadastrado", data=client)

    def remove(self, client_id: str) -> OperationResult:
        if self._manual.pop(client_id, None) is None:
            return OperationResult.fail("Apenas clientes cadastrados manualmente podem ser removidos")
        return OperationResult.ok("Cliente removido")
