"""Estatísticas puras, livro-caixa, formatação e catálogo de estágios."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from crm_imobiliario.core.application.dtos.stats_dto import DateWindow
from crm_imobiliario.core.application.services.aggregate_service import (
    month_window,
    percentage,
    period_window,
)
from crm_imobiliario.core.application.services.formatter_service import FormatterService
from crm_imobiliario.core.application.services.ledger_service import LedgerService
from crm_imobiliario.core.domain.events.events import TransactionCreatedEvent
from crm_imobiliario.core.domain.mappers.record_mapper import RecordMapper
from crm_imobiliario.core.domain.services.event_dispatcher import EventDispatcher
from crm_imobiliario.core.domain.services.stage_model import (
    StageModel,
    lead_stage_model,
    ticket_stage_model,
)
from tests.helpers.factories import lead_row

MAY = DateWindow(date(2024, 5, 1), date(2024, 5, 31))


def _tx(kind: str, amount: str, day: date, status: str = "confirmed", category: str | None = None) -> dict:
    return {
        "kind": kind,
        "description": f"{kind} {amount}",
        "amount": amount,
        "category": category or ("Gestão de Tráfego" if kind == "income" else "Serviços e VPS"),
        "date": day,
        "status": status,
    }


class TestPercentage:
    @pytest.mark.parametrize(
        "part,whole,expected",
        [(0, 0, 0), (5, 0, 0), (1, 3, 33), (2, 3, 67), (1, 2, 50), (1, 8, 13), (3, 3, 100), (0, 7, 0)],
    )
    def test_rounding_and_zero_denominator(self, part, whole, expected):
        assert percentage(part, whole) == expected

    def test_always_integer_within_bounds(self):
        for whole in range(0, 25):
            for part in range(0, whole + 1):
                value = percentage(part, whole)
                assert isinstance(value, int)
                assert 0 <= value <= 100


class TestWindows:
    def test_period_presets(self):
        today = date(2024, 5, 20)
        assert period_window("7d", today) == DateWindow(date(2024, 5, 13), today)
        assert period_window("month", today) == DateWindow(date(2024, 5, 1), today)
        with pytest.raises(ValueError):
            period_window("1y", today)

    def test_month_window_handles_year_end(self):
        assert month_window(date(2024, 12, 15)) == DateWindow(date(2024, 12, 1), date(2024, 12, 31))
        assert month_window(date(2024, 2, 10)).end == date(2024, 2, 29)

    def test_open_window_contains_undated(self):
        assert DateWindow().contains(None)
        assert not MAY.contains(None)


class TestFunnelRates:
    def test_payment_rate_only_counts_attended_leads(self, engine):
        """Leads pagos ainda em "new" não entram no denominador de atendidos."""
        leads = [
            RecordMapper.to_lead(lead_row(status="negotiation")),
            RecordMapper.to_lead(lead_row(status="new", is_paid=True, paid_value=100)),
            RecordMapper.to_lead(lead_row(status="new", is_paid=True, paid_value=200)),
        ]

        report = engine.funnel_report(leads)

        assert report.paid == 2
        assert report.attended == 1
        assert report.rates.payment == 0

    @pytest.mark.parametrize("statuses", [
        ("new", "new", "won"),
        ("lost", "negotiation", "new"),
        ("won", "won", "proposal-sent", "new"),
    ])
    def test_rates_stay_within_bounds(self, engine, statuses):
        leads = [
            RecordMapper.to_lead(lead_row(status=s, is_paid=True, paid_value=10)) for s in statuses
        ]

        rates = engine.funnel_report(leads).rates

        for value in (rates.response, rates.scheduling, rates.attendance, rates.payment, rates.conversion):
            assert 0 <= value <= 100


class TestLedger:
    def test_window_sums_only_confirmed(self, engine):
        """Receita 1000 e despesa 400 na janela; uma receita fora dela."""
        ledger = LedgerService(engine)
        ledger.add(_tx("income", "1000", date(2024, 5, 10)))
        ledger.add(_tx("expense", "400", date(2024, 5, 12)))
        ledger.add(_tx("income", "700", date(2024, 4, 30)))
        ledger.add(_tx("income", "999", date(2024, 5, 15), status="pending"))

        stats = ledger.stats(MAY)

        assert stats.income == Decimal("1000")
        assert stats.expense == Decimal("400")
        assert stats.profit == Decimal("600")
        assert stats.average_ticket == Decimal("1000")
        assert stats.acquisition_cost == Decimal("400")
        assert (stats.income_count, stats.expense_count) == (1, 1)
        assert stats.balance == Decimal("1300")

    def test_no_income_means_zero_ratios(self, engine):
        ledger = LedgerService(engine)
        ledger.add(_tx("expense", "250.75", date(2024, 5, 3)))

        stats = ledger.stats(MAY)

        assert stats.average_ticket == Decimal("0")
        assert stats.acquisition_cost == Decimal("0")
        assert stats.profit == Decimal("-250.75")

    def test_decimal_precision_is_kept(self, engine):
        ledger = LedgerService(engine)
        for _ in range(3):
            ledger.add(_tx("income", "0.10", date(2024, 5, 3)))

        assert ledger.stats(MAY).income == Decimal("0.30")

    @pytest.mark.parametrize(
        "overrides,fragment",
        [
            ({"kind": "transfer"}, "Tipo"),
            ({"kind": None}, "Tipo"),
            ({"amount": None}, "Valor"),
            ({"date": None}, "Data"),
            ({"category": "Aluguel"}, "Categoria"),
            ({"amount": "-5"}, "positivo"),
            ({"amount": "abc"}, "Valor"),
            ({"description": "  "}, "Descrição"),
            ({"status": "estornada"}, "Status"),
            ({"date": "31/05/2024"}, "Data"),
        ],
    )
    def test_validation(self, engine, overrides, fragment):
        ledger = LedgerService(engine)

        result = ledger.add({**_tx("income", "10", date(2024, 5, 1)), **overrides})

        assert not result.success
        assert fragment in result.message
        assert ledger.snapshot() == []

    def test_update_remove_and_events(self, engine):
        dispatcher = EventDispatcher()
        created = []
        dispatcher.subscribe(TransactionCreatedEvent, created.append)
        ledger = LedgerService(engine, dispatcher)

        tx = ledger.add(_tx("income", "300", date(2024, 5, 2))).data
        assert created[0].transaction_id == tx.id

        updated = ledger.update(tx.id, {"amount": "350", "status": "canceled"})
        assert updated.success
        assert ledger.get(tx.id).amount == Decimal("350")
        assert ledger.stats(MAY).income == Decimal("0")

        assert not ledger.update(tx.id, {"category": "Inexistente"}).success
        assert ledger.remove(tx.id).success
        assert not ledger.remove(tx.id).success

    def test_recent_and_categories(self, engine):
        ledger = LedgerService(engine)
        for day in (3, 9, 1, 7, 5, 2):
            ledger.add(_tx("income", "1", date(2024, 5, day)))

        assert [t.date.day for t in ledger.recent()] == [9, 7, 5, 3, 2]
        assert "Serviços e VPS" in ledger.categories_for("expense")
        assert ledger.categories_for("outro") == ()


class TestFormatter:
    def test_currency(self):
        fmt = FormatterService()
        assert fmt.format_currency(Decimal("1234.56")) == "R$ 1.234,56"
        assert fmt.format_currency(0) == "R$ 0,00"
        assert fmt.format_currency(1000000) == "R$ 1.000.000,00"

    @pytest.mark.parametrize(
        "minutes,threshold,expected",
        [(45, 1440, "45min"), (90, 1440, "90min"), (1500, 1440, "25h"), (90, 60, "2h"), (59, 60, "59min")],
    )
    def test_duration(self, minutes, threshold, expected):
        assert FormatterService.format_duration(minutes, threshold) == expected

    @pytest.mark.parametrize(
        "delta,expected",
        [
            (timedelta(seconds=30), "Agora"),
            (timedelta(minutes=5), "Há 5 min"),
            (timedelta(hours=1), "Há 1 hora"),
            (timedelta(hours=3), "Há 3 horas"),
            (timedelta(days=1), "Há 1 dia"),
            (timedelta(days=6), "Há 6 dias"),
        ],
    )
    def test_relative_time(self, delta, expected):
        now = datetime(2024, 5, 20, 15, 0, tzinfo=timezone.utc)
        assert FormatterService().format_relative_time(now - delta, now) == expected

    def test_relative_time_falls_back_to_date(self):
        now = datetime(2024, 5, 20, 15, 0, tzinfo=timezone.utc)
        assert FormatterService().format_relative_time(now - timedelta(days=10), now) == "10/05/2024"


class TestStageModel:
    def test_lead_stages_are_ordered(self):
        model = lead_stage_model()

        assert model.ids() == ("new", "initial-contact", "proposal-sent", "negotiation", "won", "lost")
        assert model.index_of("won") == 4
        assert model.index_of("x") == -1
        assert model.is_terminal("lost")
        assert not model.is_terminal("new")

    def test_label_falls_back_to_identifier(self):
        model = ticket_stage_model()

        assert model.label_for("in-progress") == "Em Andamento"
        assert model.label_for("desconhecido") == "desconhecido"
        assert model.color_for("desconhecido") == "gray"

    def test_permissive_by_default_and_optional_edges(self):
        stages = lead_stage_model().all_stages()
        free = StageModel("leads", stages)
        strict = StageModel("leads", stages, edges={"new": {"initial-contact"}})

        assert free.can_transition("won", "new")
        assert not free.can_transition("new", "arquivado")
        assert strict.can_transition("new", "initial-contact")
        assert not strict.can_transition("new", "won")
        assert strict.can_transition(None, "won")

    def test_invalid_configuration(self):
        stages = lead_stage_model().all_stages()
        with pytest.raises(ValueError):
            StageModel("leads", stages + stages[:1])
        with pytest.raises(ValueError):
            StageModel("leads", stages, success_stage="fechado")
