"""Controle determinístico do feed: os testes drenam os canais na mão."""

from __future__ import annotations

from crm_imobiliario.adapters.config.composition_root import Container


def caches(container: Container) -> list:
    return [
        container.lead_cache(),
        container.appointment_cache(),
        container.ticket_cache(),
        container.message_cache(),
        container.collaborator_cache(),
    ]


async def open_session(container: Container) -> None:
    """Assina o feed de cada cache (sem tasks) e faz a carga inicial."""
    for cache in caches(container):
        cache.subscribe_to_feed()
        await cache.load()


async def settle(container: Container) -> None:
    """Aplica os eventos pendentes do feed e aguarda os handlers assíncronos."""
    for _ in range(3):
        for cache in caches(container):
            cache.drain_pending()
        container.notification_bridge().drain_pending()
        await container.event_dispatcher().flush()


async def close_session(container: Container) -> None:
    for cache in caches(container):
        await cache.unsubscribe()
    await container.notification_bridge().stop()
    await container.event_dispatcher().flush()
