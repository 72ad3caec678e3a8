from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable

import structlog

from crm_imobiliario.adapters.observability.metrics import FEED_EVENTS_PUBLISHED
from crm_imobiliario.core.domain.repositories.record_store import (
    ALL_CHANGE_KINDS,
    ChangeEvent,
    ChangeKind,
    FeedChannel,
)

logger = structlog.get_logger(__name__)


class FeedHub:
    """Fan-out dos eventos de mudança para os canais abertos por tabela."""

    def __init__(self, backend: str) -> None:
        self.backend = backend
        self._channels: dict[str, list[FeedChannel]] = defaultdict(list)
        self._held: list[ChangeEvent] | None = None

    def subscribe(self, table: str, kinds: Iterable[ChangeKind] = ALL_CHANGE_KINDS) -> FeedChannel:
        channel = FeedChannel(table, kinds, on_close=self._remove)
        self._channels[table].append(channel)
        logger.debug("feed.channel_opened", backend=self.backend, table=table, channels=len(self._channels[table]))
        return channel

    def _remove(self, channel: FeedChannel) -> None:
        channels = self._channels.get(channel.table, [])
        if channel in channels:
            channels.remove(channel)

    def channel_count(self, table: str | None = None) -> int:
        if table is not None:
            return len(self._channels.get(table, []))
        return sum(len(chs) for chs in self._channels.values())

    # ───────────────────────── publicação ──────────────────────────
    def publish(self, event: ChangeEvent) -> int:
        if self._held is not None:
            self._held.append(event)
            return 0
        FEED_EVENTS_PUBLISHED.labels(self.backend, event.table, event.kind.value).inc()
        return sum(int(ch.publish(event)) for ch in list(self._channels.get(event.table, [])))

    def hold(self) -> None:
        """Segura as publicações (simula atraso de rede) até `release()`."""
        if self._held is None:
            self._held = []

    def release(self, reverse: bool = False) -> int:
        held, self._held = self._held or [], None
        if reverse:
            held.reverse()
        return sum(self.publish(event) for event in held)
