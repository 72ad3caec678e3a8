from __future__ import annotations

import pytest
from dependency_injector import providers

from crm_imobiliario.adapters.config.composition_root import Container
from crm_imobiliario.adapters.record_store.memory_store import InMemoryRecordStore
from crm_imobiliario.core.application.services.aggregate_service import AggregateEngine
from tests.helpers.factories import FakeWebhookSender
from tests.helpers.session import close_session

TEST_CONFIG = {
    "record_store_backend": "memory",
    "postgrest": {"url": "http://localhost:3000", "api_key": "", "timeout": 5.0},
    "reference_timezone": "America/Sao_Paulo",
    "currency_symbol": "R$",
    "webhook_timeout": 5.0,
}


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def sender() -> FakeWebhookSender:
    return FakeWebhookSender()


@pytest.fixture
def engine() -> AggregateEngine:
    return AggregateEngine(timezone="America/Sao_Paulo")


@pytest.fixture
async def container(store, sender):
    """Container completo com store em memória e webhooks falsos."""
    c = Container()
    c.config.from_dict(TEST_CONFIG)
    c.record_store.override(providers.Object(store))
    c.webhook_sender.override(providers.Object(sender))
    Container.init(c)
    yield c
    await close_session(c)
