from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class WebhookResponse:
    status_code: int
    elapsed_ms: int

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class WebhookSender(ABC):
    @abstractmethod
    async def post(self, url: str, payload: Mapping[str, Any], event: str) -> WebhookResponse:
        """Envia o payload JSON; levanta TransportFailure se não houve resposta."""
        ...
