from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import structlog

from crm_imobiliario.core.application.services.formatter_service import FormatterService
from crm_imobiliario.core.domain.entities.notification_entity import (
    NOTIFICATION_TYPES,
    NotificationEntity,
)

logger = structlog.get_logger(__name__)

DEFAULT_CAPACITY = 200


class NotificationCenter:
    """Caixa de notificações da sessão, mais recentes primeiro."""

    def __init__(
        self,
        formatter: FormatterService | None = None,
        capacity: int = DEFAULT_CAPACITY,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.formatter = formatter or FormatterService()
        self.capacity = capacity
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._items: list[NotificationEntity] = []
        self._listeners: list[Callable[[NotificationEntity], None]] = []

    def add(
        self,
        type: str,
        title: str,
        message: str,
        link: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> NotificationEntity:
        if type not in NOTIFICATION_TYPES:
            logger.warning("notification.unknown_type", type=type)
            type = "info"
        notification = NotificationEntity(
            id=str(uuid.uuid4()),
            type=type,
            title=title,
            message=message,
            timestamp=self._clock(),
            link=link,
            metadata=metadata or {},
        )
        self._items.insert(0, notification)
        del self._items[self.capacity:]
        logger.info("notification.added", type=type, title=title)
        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception as exc:
                logger.error("notification.listener_error", error=str(exc), exc_info=True)
        return notification

    def on_add(self, listener: Callable[[NotificationEntity], None]) -> None:
        """Usado pela apresentação para exibir o toast."""
        self._listeners.append(listener)

    # ───────────────────────── leitura ──────────────────────────
    def all(self) -> list[NotificationEntity]:
        return list(self._items)

    def unread(self) -> list[NotificationEntity]:
        return [n for n in self._items if not n.read]

    def unread_count(self) -> int:
        return sum(1 for n in self._items if not n.read)

    def relative_time(self, notification: NotificationEntity, now: datetime | None = None) -> str:
        return self.formatter.format_relative_time(notification.timestamp, now or self._clock())

    # ───────────────────────── escrita ──────────────────────────
    def mark_as_read(self, notification_id: str) -> bool:
        for n in self._items:
            if n.id == notification_id:
                n.read = True
                return True
        return False

    def mark_all_as_read(self) -> None:
        for n in self._items:
            n.read = True

    def delete(self, notification_id: str) -> bool:
        before = len(self._items)
        self._items = [n for n in self._items if n.id != notification_id]
        return len(self._items) != before

    def clear_all(self) -> None:
        self._items = []

    def clear_read(self) -> None:
        self._items = [n for n in self._items if not n.read]
