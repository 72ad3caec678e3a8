"""
Adapters do RecordStore (memória e PostgREST) e do envio de webhooks.
O transporte HTTP é simulado com httpx.MockTransport e respx.
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest
import respx
from dependency_injector import providers

from crm_imobiliario.adapters.config.composition_root import Container
from crm_imobiliario.adapters.observability.metrics import render_latest
from crm_imobiliario.adapters.record_store.memory_store import InMemoryRecordStore
from crm_imobiliario.adapters.record_store.postgrest_store import PostgrestRecordStore
from crm_imobiliario.adapters.webhooks.webhook_sender import HttpxWebhookSender
from crm_imobiliario.core.domain.events.exceptions import RecordNotFound, TransportFailure
from crm_imobiliario.core.domain.repositories.record_store import ChangeKind, OrderBy
from tests.conftest import TEST_CONFIG
from tests.helpers.factories import lead_row

BASE_URL = "http://postgrest.test"


async def _no_sleep(_seconds):
    return None


class TestInMemoryStore:
    async def test_crud_publishes_change_events(self, store: InMemoryRecordStore):
        channel = store.subscribe("leads")

        created = await store.insert("leads", {"name": "Ana"})
        await store.update("leads", created["id"], {"status": "won"})
        await store.delete("leads", created["id"])

        kinds = []
        while (event := channel.get_nowait()) is not None:
            kinds.append(event.kind)
            assert event.record_id == created["id"]
        assert kinds == [ChangeKind.INSERT, ChangeKind.UPDATE, ChangeKind.DELETE]
        assert "created_at" in created

    async def test_subscription_filters_kinds_and_tables(self, store):
        inserts_only = store.subscribe("leads", {ChangeKind.INSERT})
        other_table = store.subscribe("appointments")

        row = await store.insert("leads", {"name": "B"})
        await store.update("leads", row["id"], {"name": "C"})

        assert inserts_only.pending() == 1
        assert other_table.pending() == 0

    async def test_missing_ids_raise_not_found(self, store):
        with pytest.raises(RecordNotFound):
            await store.update("leads", "x", {"name": "y"})
        with pytest.raises(RecordNotFound):
            await store.delete("leads", "x")

    async def test_fetch_all_orders_with_nulls_last(self, store):
        store.seed("appointments", [
            {"id": "1", "date": "2024-05-02", "time": "10:00"},
            {"id": "2", "date": None, "time": "09:00"},
            {"id": "3", "date": "2024-05-01", "time": "11:00"},
        ])

        rows = await store.fetch_all("appointments", (OrderBy("date"), OrderBy("time")))

        assert [r["id"] for r in rows] == ["3", "1", "2"]

    async def test_returned_rows_are_copies(self, store):
        row = await store.insert("leads", {"name": "Imutável", "tags": ["a"]})
        row["tags"].append("b")

        assert store.rows("leads")[0]["tags"] == ["a"]

    async def test_support_tickets_touch_updated_at(self, store):
        row = await store.insert("support_tickets", {"client_name": "X", "subject": "Y"})
        assert row["updated_at"] == row["created_at"]

        updated = await store.update("support_tickets", row["id"], {"status": "in-progress"})
        assert updated["updated_at"] >= row["updated_at"]

    async def test_closed_channel_stops_receiving(self, store):
        channel = store.subscribe("leads")
        channel.close()

        await store.insert("leads", {"name": "Z"})

        assert store.hub.channel_count("leads") == 0
        assert await channel.get() is None

    async def test_metrics_are_exposed(self, store):
        await store.insert("leads", {"name": "Métrica"})

        payload, content_type = render_latest()

        assert b"crm_feed_events_published_total" in payload
        assert b"crm_store_request_seconds" in payload
        assert content_type.startswith("text/plain")


def _postgrest(handler) -> PostgrestRecordStore:
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return PostgrestRecordStore(BASE_URL, client=client)


class TestPostgrestStore:
    async def test_fetch_all_sends_order_param(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json=[lead_row(id="1")])

        store = _postgrest(handler)
        rows = await store.fetch_all("leads", (OrderBy("created_at", descending=True), OrderBy("name")))

        assert seen["path"] == "/leads"
        assert seen["params"] == {"select": "*", "order": "created_at.desc,name.asc"}
        assert rows[0]["id"] == "1"
        await store.aclose()

    async def test_insert_returns_representation_and_echoes_feed(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "POST"
            assert request.headers["Prefer"] == "return=representation"
            body = json.loads(request.content)
            return httpx.Response(201, json=[{**body, "id": "srv-1"}])

        store = _postgrest(handler)
        channel = store.subscribe("leads")

        record = await store.insert("leads", {"name": "Nova"})

        assert record == {"name": "Nova", "id": "srv-1"}
        event = channel.get_nowait()
        assert (event.kind, event.record_id) == (ChangeKind.INSERT, "srv-1")
        await store.aclose()

    async def test_update_filters_by_id(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "PATCH"
            assert request.url.params["id"] == "eq.42"
            return httpx.Response(200, json=[{"id": "42", "status": "won"}])

        store = _postgrest(handler)

        assert (await store.update("leads", "42", {"status": "won"}))["status"] == "won"
        await store.aclose()

    @pytest.mark.parametrize("method", ["update", "delete"])
    async def test_empty_representation_means_not_found(self, method):
        store = _postgrest(lambda request: httpx.Response(200, json=[]))

        with pytest.raises(RecordNotFound):
            if method == "update":
                await store.update("leads", "nada", {"name": "x"})
            else:
                await store.delete("leads", "nada")
        await store.aclose()

    async def test_server_error_becomes_transport_failure(self):
        store = _postgrest(lambda request: httpx.Response(503, text="indisponível"))

        with pytest.raises(TransportFailure):
            await store.fetch_all("leads")
        await store.aclose()

    async def test_non_json_body_becomes_transport_failure(self):
        store = _postgrest(lambda request: httpx.Response(200, text="<html>gateway</html>"))

        with pytest.raises(TransportFailure):
            await store.fetch_all("leads")
        with pytest.raises(TransportFailure):
            await store.insert("leads", {"name": "x"})
        await store.aclose()

    async def test_workspace_write_reports_non_json_body(self, sender):
        store = _postgrest(lambda request: httpx.Response(201, text="ok"))
        container = Container()
        container.config.from_dict(TEST_CONFIG)
        container.record_store.override(providers.Object(store))
        container.webhook_sender.override(providers.Object(sender))
        Container.init(container)

        result = await container.lead_workspace().add({"name": "Sem JSON"})

        assert not result.success
        assert result.error == "TransportFailure"
        assert result.message == "Erro ao criar lead"
        await store.aclose()

    async def test_api_key_headers(self):
        store = PostgrestRecordStore(BASE_URL, api_key="segredo")

        assert store._client.headers["apikey"] == "segredo"
        assert store._client.headers["Authorization"] == "Bearer segredo"
        await store.aclose()


class TestWebhookSender:
    async def test_posts_json_and_reports_status(self):
        url = "https://hooks.exemplo.com/crm"
        with respx.mock:
            route = respx.post(url).mock(return_value=httpx.Response(202))
            sender = HttpxWebhookSender()

            response = await sender.post(url, {"event": "lead_created"}, "lead_created")

            assert response.ok
            assert response.status_code == 202
            assert json.loads(route.calls.last.request.content) == {"event": "lead_created"}
            await sender.aclose()

    async def test_read_timeout_is_not_resent(self):
        url = "https://hooks.exemplo.com/lento"
        with respx.mock:
            route = respx.post(url).mock(side_effect=httpx.ReadTimeout("sem resposta"))
            sender = HttpxWebhookSender()

            with pytest.raises(TransportFailure):
                await sender.post(url, {"event": "lead_created"}, "lead_created")

            assert route.call_count == 1
            await sender.aclose()

    async def test_connect_error_is_retried(self, monkeypatch):
        monkeypatch.setattr(asyncio, "sleep", _no_sleep)
        url = "https://hooks.exemplo.com/instavel"
        with respx.mock:
            route = respx.post(url).mock(
                side_effect=[httpx.ConnectError("recusado"), httpx.Response(200)]
            )
            sender = HttpxWebhookSender()

            response = await sender.post(url, {}, "lead_created")

            assert response.ok
            assert route.call_count == 2
            await sender.aclose()

    async def test_http_error_status_is_not_an_exception(self):
        url = "https://hooks.exemplo.com/quebrado"
        with respx.mock:
            respx.post(url).mock(return_value=httpx.Response(500))
            sender = HttpxWebhookSender()

            response = await sender.post(url, {}, "lead_created")

            assert not response.ok
            await sender.aclose()
