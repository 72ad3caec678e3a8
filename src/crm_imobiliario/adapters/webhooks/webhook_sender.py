import time
from collections.abc import Mapping
from typing import Any

import backoff
import httpx
import structlog

from crm_imobiliario.adapters.observability.metrics import WEBHOOK_DELIVERIES, WEBHOOK_LATENCY
from crm_imobiliario.core.domain.events.exceptions import TransportFailure
from crm_imobiliario.core.domain.repositories.webhook_sender import WebhookResponse, WebhookSender

logger = structlog.get_logger(__name__)

# POST não é idempotente: só repete quando a conexão nem foi aberta
RETRYABLE_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)


class HttpxWebhookSender(WebhookSender):
    DEFAULT_TIMEOUT = 10

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, client: httpx.AsyncClient | None = None) -> None:
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @backoff.on_exception(backoff.expo, RETRYABLE_ERRORS, max_tries=3, jitter=None)
    async def _post(self, url: str, payload: Mapping[str, Any]) -> httpx.Response:
        return await self._client.post(url, json=dict(payload), headers={"User-Agent": "crm-imobiliario/webhooks"})

    async def post(self, url: str, payload: Mapping[str, Any], event: str) -> WebhookResponse:
        start = time.perf_counter()
        try:
            resp = await self._post(url, payload)
        except httpx.HTTPError as exc:
            WEBHOOK_DELIVERIES.labels(event, "failure").inc()
            logger.warning("webhook.transport_error", url=url, event_name=event, error=str(exc))
            raise TransportFailure(f"Falha ao chamar webhook: {exc}") from exc
        finally:
            WEBHOOK_LATENCY.labels(event).observe(time.perf_counter() - start)

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        result = WebhookResponse(status_code=resp.status_code, elapsed_ms=elapsed_ms)
        WEBHOOK_DELIVERIES.labels(event, "success" if result.ok else "failure").inc()
        return result

    async def aclose(self) -> None:
        await self._client.aclose()
