from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

Record = dict[str, Any]


class ChangeKind(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


ALL_CHANGE_KINDS: frozenset[ChangeKind] = frozenset(ChangeKind)


@dataclass(frozen=True, slots=True)
class OrderBy:
    column: str
    descending: bool = False


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """Notificação do feed: `new` em INSERT/UPDATE, `old` em UPDATE/DELETE."""
    table: str
    kind: ChangeKind
    new: Mapping[str, Any] | None = None
    old: Mapping[str, Any] | None = None

    @property
    def record_id(self) -> str | None:
        source = self.new if self.kind is not ChangeKind.DELETE else self.old
        if not source or source.get("id") is None:
            return None
        return str(source["id"])


class FeedChannel:
    """
    Canal explícito (fila) entre o transporte do store e um único consumidor.
    O consumidor drena com `get_nowait()`/`get()` ou `async for`; `close()`
    encerra a assinatura e desperta quem estiver aguardando.
    """

    def __init__(
        self,
        table: str,
        kinds: Iterable[ChangeKind] = ALL_CHANGE_KINDS,
        on_close: Callable[[FeedChannel], None] | None = None,
    ) -> None:
        self.table = table
        self.kinds = frozenset(kinds)
        self._queue: asyncio.Queue[ChangeEvent | None] = asyncio.Queue()
        self._on_close = on_close
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> int:
        return self._queue.qsize()

    def accepts(self, event: ChangeEvent) -> bool:
        return not self._closed and event.table == self.table and event.kind in self.kinds

    def publish(self, event: ChangeEvent) -> bool:
        if not self.accepts(event):
            return False
        self._queue.put_nowait(event)
        return True

    def get_nowait(self) -> ChangeEvent | None:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    async def get(self) -> ChangeEvent | None:
        """Aguarda o próximo evento; None quando o canal foi fechado."""
        if self._closed and self._queue.empty():
            return None
        return await self._queue.get()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)
        if self._on_close is not None:
            self._on_close(self)

    async def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event


class RecordStore(ABC):
    """Armazenamento durável de tabelas com CRUD + feed de mudanças."""

    @abstractmethod
    async def fetch_all(self, table: str, order_by: Sequence[OrderBy] = ()) -> list[Record]:
        """Retorna o snapshot completo da tabela na ordem pedida."""
        ...

    @abstractmethod
    async def insert(self, table: str, fields: Mapping[str, Any]) -> Record:
        """Cria um registro e retorna-o com id e defaults do servidor."""
        ...

    @abstractmethod
    async def update(self, table: str, record_id: str, fields: Mapping[str, Any]) -> Record:
        """Atualização parcial; levanta RecordNotFound se o id não existe."""
        ...

    @abstractmethod
    async def delete(self, table: str, record_id: str) -> None:
        """Remove o registro; levanta RecordNotFound se o id não existe."""
        ...

    @abstractmethod
    def subscribe(self, table: str, kinds: Iterable[ChangeKind] = ALL_CHANGE_KINDS) -> FeedChannel:
        """Abre um canal de eventos da tabela até `channel.close()`."""
        ...

    async def aclose(self) -> None:
        """Libera recursos de transporte (no-op por padrão)."""
        return None
