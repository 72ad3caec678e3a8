from __future__ import annotations

import inspect
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, Protocol, TypeVar

import structlog

from crm_imobiliario.core.domain.events.events import DomainEvent
from crm_imobiliario.core.domain.events.exceptions import UnhandledCommand
from crm_imobiliario.core.domain.services.event_dispatcher import EventDispatcher

# ───────────────────────────────────────────────
# CQRS (lado de escrita) com Log de Performance
# ───────────────────────────────────────────────

C = TypeVar('C')  # Command type

logger = structlog.get_logger(__name__)

# ───────────────────────────────────────────────
# DTOs
# ───────────────────────────────────────────────
@dataclass(frozen=True)
class CommandDTO:
    """Base para todos comandos de escrita (Create/Update/Delete)."""
    pass

@dataclass(frozen=True)
class CommandResult:
    """Resultado de um handler: registro gravado + eventos a despachar."""
    record: Any = None
    events: Sequence[DomainEvent] = field(default_factory=tuple)

# ───────────────────────────────────────────────
# Handler Protocol
# ───────────────────────────────────────────────
class CommandHandler(Protocol, Generic[C]):
    def handle(self, command: C) -> Any:
        """Processa um comando e aplica mudanças de estado (pode ser async)."""
        ...

# ───────────────────────────────────────────────
# Bus com Logging
# ───────────────────────────────────────────────
class CommandBus:
    """Dispatcher de comandos com medição de performance."""
    def __init__(self) -> None:
        self._handlers: dict[type, CommandHandler] = {}

    def register(self, command_type: type[C], handler: CommandHandler[C]) -> None:
        self._handlers[command_type] = handler
        logger.debug("command.registered", command=command_type.__name__)

    async def dispatch(self, command: C) -> Any:
        handler = self._handlers.get(type(command))
        if not handler:
            raise UnhandledCommand(f"Nenhum handler para comando: {type(command).__name__}")
        start = time.perf_counter()
        logger.info("command.executing", command=type(command).__name__)
        result = handler.handle(command)
        if inspect.isawaitable(result):
            result = await result
        elapsed = time.perf_counter() - start
        logger.info("command.executed", command=type(command).__name__, duration=f"{elapsed:.3f}s")
        return result

class CommandBusImpl(CommandBus):
    """CommandBus que despacha os DomainEvents devolvidos pelos handlers."""
    def __init__(self, dispatcher: EventDispatcher):
        super().__init__()
        self.dispatcher = dispatcher

    async def dispatch(self, command: Any) -> Any:
        result = await super().dispatch(command)

        if isinstance(result, DomainEvent):
            self.dispatcher.dispatch(result)
        elif isinstance(result, CommandResult):
            for evt in result.events:
                self.dispatcher.dispatch(evt)

        return result
