"""
Central de notificações (alimentada pelo feed e por eventos de domínio),
cadastro de clientes derivado de leads e resumo do painel.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from crm_imobiliario.core.application.services.client_registry_service import (
    clients_from_leads,
    filter_clients,
    merge_clients,
)
from crm_imobiliario.core.application.services.notification_center import NotificationCenter
from crm_imobiliario.core.domain.entities.client_entity import ClientEntity
from crm_imobiliario.core.domain.mappers.record_mapper import RecordMapper
from tests.helpers.factories import appointment_row, lead_row, message_row, ticket_row
from tests.helpers.session import open_session, settle


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2024, 5, 20, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


class TestNotificationCenter:
    def test_newest_first_and_read_state(self):
        center = NotificationCenter()
        first = center.add("info", "Primeira", "a")
        second = center.add("lead", "Segunda", "b")

        assert [n.id for n in center.all()] == [second.id, first.id]
        assert center.unread_count() == 2

        assert center.mark_as_read(first.id)
        assert not center.mark_as_read("nada")
        assert [n.id for n in center.unread()] == [second.id]

        center.clear_read()
        assert [n.id for n in center.all()] == [second.id]

        center.mark_all_as_read()
        assert center.unread_count() == 0
        assert center.delete(second.id)
        assert center.all() == []

    def test_capacity_and_unknown_type(self):
        center = NotificationCenter(capacity=3)
        for i in range(5):
            center.add("tipo-x", f"n{i}", "")

        assert [n.title for n in center.all()] == ["n4", "n3", "n2"]
        assert {n.type for n in center.all()} == {"info"}

    def test_listeners_and_relative_time(self):
        clock = _Clock()
        center = NotificationCenter(clock=clock)
        seen = []
        center.on_add(seen.append)
        center.on_add(lambda n: 1 / 0)

        notification = center.add("success", "Ok", "feito")
        clock.now += timedelta(minutes=12)

        assert seen == [notification]
        assert center.relative_time(notification) == "Há 12 min"

        center.clear_all()
        assert center.all() == []


class TestNotificationBridge:
    async def test_inserts_become_alerts(self, container, store):
        await open_session(container)
        ticket = await store.insert("support_tickets", ticket_row(id=None, client_name="Igor", subject="Boleto"))
        await store.insert("leads", lead_row(id=None, name="Fernanda", source=""))
        await store.insert("appointments", appointment_row(id=None, client_name="Otávio", time="16:00"))
        await store.insert("ticket_messages", message_row(ticket["id"], id=None, text="x" * 60))
        await store.insert("ticket_messages", message_row(ticket["id"], id=None, sender="agent"))
        await settle(container)

        by_title = {n.title: n for n in container.notification_center().all()}

        assert by_title["Novo Lead Detectado"].message == "Fernanda entrou via WhatsApp"
        assert by_title["Novo Agendamento"].message == "Otávio agendou para 16:00"
        assert by_title["Novo Atendimento"].message == "Igor: Boleto"
        assert by_title["Mensagem Recebida"].message == "x" * 50 + "..."
        assert len(container.notification_center().all()) == 4

    async def test_updates_and_deletes_are_not_alerts(self, container, store):
        store.seed("leads", [lead_row(id="q")])
        await open_session(container)

        await store.update("leads", "q", {"name": "Outro nome"})
        await store.delete("leads", "q")
        await settle(container)

        assert container.notification_center().all() == []

    async def test_ledger_entries_notify(self, container):
        await open_session(container)

        container.ledger_service().add({
            "kind": "income",
            "description": "Setup do bot",
            "amount": "2500",
            "category": "Setup de Automação",
        })
        await settle(container)

        note = container.notification_center().all()[0]
        assert note.title == "Receita registrada"
        assert note.message == "Setup do bot: R$ 2.500,00"

    async def test_stopped_bridge_stops_listening(self, container, store):
        await open_session(container)
        bridge = container.notification_bridge()
        await bridge.stop()

        await store.insert("leads", lead_row(id=None))
        await settle(container)

        assert container.notification_center().all() == []


class TestClientRegistry:
    def test_clients_come_from_won_leads(self):
        leads = [
            RecordMapper.to_lead(lead_row(id="g1", name="Ganho", status="won", value=900)),
            RecordMapper.to_lead(lead_row(id="g2", name="Pago", status="won", value=900, paid_value=850,
                                          is_paid=True)),
            RecordMapper.to_lead(lead_row(id="n1", status="negotiation", value=400)),
        ]

        clients = {c.id: c for c in clients_from_leads(leads)}

        assert set(clients) == {"g1", "g2"}
        assert clients["g1"].total_spent == Decimal("900")
        assert clients["g2"].total_spent == Decimal("850")
        assert clients["g1"].origin == "lead"

    def test_manual_entry_overrides_derived(self):
        derived = [ClientEntity(id="c", name="Do lead", origin="lead")]
        manual = [ClientEntity(id="c", name="Manual"), ClientEntity(id="d", name="Outro", status="inactive")]

        merged = {c.id: c for c in merge_clients(derived, manual)}

        assert merged["c"].name == "Manual"
        assert merged["d"].status_label == "Inativo"

    def test_filter(self):
        clients = [
            ClientEntity(id="1", name="Marina Alves", email="marina@x.com", phone="1190000"),
            ClientEntity(id="2", name="Rafael", phone="2198888", status="inactive"),
        ]

        assert [c.id for c in filter_clients(clients, "marina")] == ["1"]
        assert [c.id for c in filter_clients(clients, "2198")] == ["2"]
        assert [c.id for c in filter_clients(clients, status="Inativo")] == ["2"]
        assert [c.id for c in filter_clients(clients, status="active")] == ["1"]
        assert len(filter_clients(clients, status="todos")) == 2

    async def test_registry_follows_lead_pipeline(self, container, store):
        store.seed("leads", [lead_row(id="vira-cliente", name="Sofia", status="negotiation", value=3000)])
        await open_session(container)
        registry = container.client_registry()

        assert registry.all() == []

        await container.lead_workspace().transition("vira-cliente", "won")
        await settle(container)

        assert [c.name for c in registry.search("sof")] == ["Sofia"]
        assert registry.total_revenue() == Decimal("3000")

        added = registry.register({"name": "Cliente Balcão", "total_spent": "120"})
        assert added.success
        assert registry.get(added.data.id).origin == "manual"
        assert not registry.register({"name": " "}).success
        assert not registry.remove("vira-cliente").success
        assert registry.remove(added.data.id).success


class TestDashboard:
    async def test_summary(self, container, store):
        today = date(2024, 5, 10)
        store.seed("leads", [
            lead_row(id="l-old", created_at="2024-05-01T10:00:00+00:00", status="won", value=100),
            lead_row(id="l-new", created_at="2024-05-09T10:00:00+00:00"),
        ])
        store.seed("appointments", [
            appointment_row(id="amanha", date="2024-05-11", time="08:00", service_description="Vistoria"),
            appointment_row(id="passado", date="2024-05-01"),
        ])
        await open_session(container)

        summary = container.dashboard_service().summary(today=today)

        assert [r.id for r in summary.recent_leads] == ["l-new", "l-old"]
        assert summary.recent_leads[1].stage_label == "Fechado Ganho"
        assert [(u.id, u.when, u.service) for u in summary.upcoming_appointments] == [
            ("amanha", "Amanhã, 08:00", "Vistoria")
        ]
        assert summary.leads.total == 2
        assert summary.appointments.total == 2
        assert summary.finance.income == Decimal("0")
