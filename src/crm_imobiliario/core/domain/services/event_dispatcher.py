import asyncio
import inspect
from collections.abc import Callable

import structlog

from crm_imobiliario.core.domain.events.events import DomainEvent

logger = structlog.get_logger(__name__)

Handler = Callable[[DomainEvent], object]


def _handler_name(handler: Handler) -> str:
    return getattr(handler, '__qualname__', None) or getattr(handler, '__name__', handler.__class__.__name__)


class EventDispatcher:
    """
    Dispatcher de eventos de domínio.

    Handlers síncronos rodam na hora; handlers `async` viram tasks no loop
    corrente e podem ser aguardados com `flush()`. Erros de handlers são
    logados e nunca propagam para quem disparou o evento.
    """
    def __init__(self) -> None:
        self._subs: dict[type[DomainEvent], list[Handler]] = {}
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, event_type: type[DomainEvent], handler: Handler) -> None:
        self._subs.setdefault(event_type, []).append(handler)
        logger.debug(
            "event.subscribed",
            event_type=event_type.__name__,
            handler_name=_handler_name(handler),
        )

    def unsubscribe(self, event_type: type[DomainEvent], handler: Handler) -> None:
        handlers = self._subs.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def dispatch(self, event: DomainEvent) -> None:
        handlers = list(self._subs.get(type(event), []))
        logger.info(
            "event.dispatch",
            event_name=type(event).__name__,
            listeners=len(handlers),
        )
        for h in handlers:
            try:
                result = h(event)
                if inspect.isawaitable(result):
                    self._schedule(event, h, result)
            except Exception as e:
                logger.error(
                    "event.handler_error",
                    event_name=type(event).__name__,
                    handler_name=_handler_name(h),
                    error=str(e),
                    exc_info=True,
                )

    def _schedule(self, event: DomainEvent, handler: Handler, awaitable) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            logger.warning(
                "event.async_handler_without_loop",
                event_name=type(event).__name__,
                handler_name=_handler_name(handler),
            )
            return

        async def _guarded():
            try:
                await awaitable
            except Exception as e:
                logger.error(
                    "event.handler_error",
                    event_name=type(event).__name__,
                    handler_name=_handler_name(handler),
                    error=str(e),
                    exc_info=True,
                )

        task = loop.create_task(_guarded())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def pending(self) -> int:
        return len(self._pending)

    async def flush(self) -> None:
        """Aguarda todos os handlers assíncronos disparados até aqui."""
        while self._pending:
            await asyncio.gather(*list(self._pending))
