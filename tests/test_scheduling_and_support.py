"""
Agenda, atendimentos e colaboradores: estatísticas por status, dicas
otimistas, mensagens de tickets e tempo médio de resolução.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from crm_imobiliario.core.application.services.aggregate_service import AggregateEngine
from crm_imobiliario.core.domain.mappers.record_mapper import RecordMapper
from tests.helpers.factories import appointment_row, collaborator_row, message_row, ticket_row
from tests.helpers.session import open_session, settle

T0 = datetime(2024, 5, 6, 9, 0, tzinfo=timezone.utc)


def _resolved_ticket(minutes: int, **overrides):
    return ticket_row(
        status="resolved",
        created_at=T0.isoformat(),
        resolved_at=(T0 + timedelta(minutes=minutes)).isoformat(),
        **overrides,
    )


class TestAppointments:
    async def test_today_count_drops_after_feed_delete(self, container, store):
        """Agendamento de hoje às 14:00 some das estatísticas após o DELETE."""
        today = container.aggregate_engine().today()
        store.seed("appointments", [appointment_row(id="hoje", date=today.isoformat(), time="14:00")])
        await open_session(container)
        agenda = container.appointment_workspace()

        assert agenda.stats().today_count == 1

        await store.delete("appointments", "hoje")
        await settle(container)

        assert agenda.stats().today_count == 0
        assert agenda.get("hoje") is None
        assert agenda.stats().total == len(agenda.snapshot()) == 0

    async def test_week_uses_iso_week_starting_monday(self, engine):
        wednesday = date(2024, 5, 8)
        rows = [
            appointment_row(date="2024-05-06"),  # segunda
            appointment_row(date="2024-05-12"),  # domingo
            appointment_row(date="2024-05-05"),  # domingo anterior
            appointment_row(date="2024-05-13"),  # segunda seguinte
            appointment_row(date="2024-05-08", status="canceled"),
        ]
        appointments = [RecordMapper.to_appointment(r) for r in rows]

        stats = engine.appointment_stats(appointments, today=wednesday)

        assert stats.this_week_count == 3
        assert stats.today_count == 1
        assert (stats.scheduled, stats.canceled) == (4, 1)
        assert stats.total == 5

    async def test_add_is_applied_optimistically(self, container, store):
        await open_session(container)
        agenda = container.appointment_workspace()

        result = await agenda.add({"client_name": "Rita", "date": date(2024, 5, 10), "time": "10:30"})

        assert result.success
        assert [a.id for a in agenda.snapshot()] == [result.data.id]
        assert result.data.status == "scheduled"
        assert result.data.duration_minutes == 60

        await settle(container)
        assert len(agenda.snapshot()) == 1

    async def test_add_requires_date_and_time(self, container):
        await open_session(container)
        result = await container.appointment_workspace().add({"client_name": "Sem data"})

        assert not result.success
        assert "date" in result.message and "time" in result.message

    async def test_status_shortcuts_and_upcoming(self, container, store):
        today = date(2024, 5, 10)
        store.seed("appointments", [
            appointment_row(id="a1", date="2024-05-10", time="15:00"),
            appointment_row(id="a2", date="2024-05-11", time="09:00"),
            appointment_row(id="a3", date="2024-05-20", time="11:00"),
            appointment_row(id="a4", date="2024-05-09", time="11:00"),
        ])
        await open_session(container)
        agenda = container.appointment_workspace()

        assert (await agenda.confirm("a1")).success
        assert agenda.get("a1").status == "confirmed"
        assert (await agenda.cancel("a3")).message == "Movido para Cancelado"

        labels = [label for _, label in agenda.upcoming_labels(today=today)]
        assert labels == ["Hoje, 15:00", "Amanhã, 09:00"]

        await agenda.complete("a1")
        assert [a.id for a in agenda.upcoming(today=today)] == ["a2"]

    async def test_completed_appointment_triggers_automation(self, container, store, sender):
        store.seed("appointments", [appointment_row(id="done")])
        await open_session(container)
        container.automation_service().register("Pós-visita", "https://n8n.exemplo.com/pos", "appointment_completed")

        await container.appointment_workspace().complete("done")
        await settle(container)

        assert sender.events() == ["appointment_completed"]

    async def test_for_collaborator(self, container, store):
        store.seed("appointments", [
            appointment_row(id="x", collaborator_id="c1"),
            appointment_row(id="y", collaborator_id="c2"),
        ])
        await open_session(container)

        assert [a.id for a in container.appointment_workspace().for_collaborator("c1")] == ["x"]


class TestTickets:
    async def test_average_resolution_time(self, container, store):
        """90min com um ticket resolvido; 120min com o segundo (150min)."""
        store.seed("support_tickets", [_resolved_ticket(90), ticket_row(status="open")])
        await open_session(container)
        tickets = container.ticket_workspace()

        assert tickets.stats().average_resolution_time == "90min"

        await store.insert("support_tickets", _resolved_ticket(150, id=None))
        await settle(container)

        stats = tickets.stats()
        assert stats.average_resolution_time == "120min"
        assert stats.average_resolution_minutes == 120
        assert (stats.open, stats.resolved, stats.total) == (1, 2, 3)

    async def test_no_resolved_ticket_is_na(self, engine):
        stats = engine.ticket_stats([RecordMapper.to_ticket(ticket_row())])

        assert stats.average_resolution_time == "N/A"
        assert stats.average_resolution_minutes is None

    async def test_hours_threshold_is_configurable(self):
        tickets = [RecordMapper.to_ticket(_resolved_ticket(90))]

        assert AggregateEngine().ticket_stats(tickets).average_resolution_time == "90min"
        assert AggregateEngine(resolution_hours_threshold=60).ticket_stats(tickets).average_resolution_time == "2h"

    async def test_resolution_falls_back_to_updated_at(self, engine):
        row = ticket_row(
            status="resolved",
            created_at=T0.isoformat(),
            updated_at=(T0 + timedelta(minutes=45)).isoformat(),
        )

        assert engine.ticket_stats([RecordMapper.to_ticket(row)]).average_resolution_time == "45min"

    async def test_resolve_sets_resolved_at_and_notifies(self, container, store):
        store.seed("support_tickets", [ticket_row(id="tk", client_name="Beatriz")])
        await open_session(container)
        tickets = container.ticket_workspace()

        result = await tickets.transition("tk", "resolved")
        await settle(container)

        assert result.success
        ticket = tickets.get("tk")
        assert ticket.status == "resolved"
        assert ticket.resolved_at is not None
        notes = container.notification_center().all()
        assert notes[0].title == "Atendimento Resolvido"
        assert "Beatriz" in notes[0].message

    async def test_messages_are_joined_to_tickets(self, container, store):
        store.seed("support_tickets", [ticket_row(id="tm")])
        store.seed("ticket_messages", [message_row("tm", id="m1", text="Primeira")])
        await open_session(container)
        tickets = container.ticket_workspace()

        result = await tickets.add_message("tm", "Resposta do corretor", sender="agent")
        await settle(container)

        assert result.success
        assert [m.text for m in tickets.get("tm").messages] == ["Primeira", "Resposta do corretor"]
        assert [m.id for m in tickets.snapshot()[0].messages][0] == "m1"

    async def test_add_message_validation(self, container, store):
        store.seed("support_tickets", [ticket_row(id="tv")])
        await open_session(container)
        tickets = container.ticket_workspace()

        assert not (await tickets.add_message("tv", "oi", sender="bot")).success
        assert not (await tickets.add_message("tv", "   ")).success
        assert store.rows("ticket_messages") == []

    async def test_add_ticket_defaults_and_priority_check(self, container):
        await open_session(container)
        tickets = container.ticket_workspace()

        ok = await tickets.add({"client_name": "Lucas", "subject": "Chaves"})
        bad = await tickets.add({"client_name": "Lucas", "subject": "Chaves", "priority": "urgente"})
        await settle(container)

        assert ok.success
        assert (ok.data.status, ok.data.priority, ok.data.channel) == ("open", "medium", "whatsapp")
        assert not bad.success
        assert len(tickets.snapshot()) == 1


class TestCollaborators:
    async def test_toggle_status_is_optimistic(self, container, store):
        store.seed("collaborators", [collaborator_row(id="col")])
        await open_session(container)
        team = container.collaborator_workspace()

        result = await team.toggle_status("col")

        assert result.success
        assert team.get("col").status == "inactive"
        assert team.stats().inactive == 1
        assert team.active() == []

        await team.toggle_status("col")
        assert team.get("col").is_active

    async def test_toggle_unknown_collaborator(self, container):
        await open_session(container)
        result = await container.collaborator_workspace().toggle_status("nao-existe")

        assert not result.success

    async def test_remove_is_optimistic(self, container, store, sender):
        await open_session(container)
        container.automation_service().register("Equipe", "https://hooks.exemplo.com/equipe", "collaborator_added")
        team = container.collaborator_workspace()

        added = await team.add({"name": "Pedro", "role": "Corretor"})
        await settle(container)
        assert sender.events() == ["collaborator_added"]

        await team.remove(added.data.id)
        assert team.snapshot() == []
        assert team.stats().total == 0
