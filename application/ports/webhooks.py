"""
Webhook delivery ports: outbound HTTP transport and per-endpoint circuit breaker.

Application depends on these Protocols; infrastructure implements adapters
(httpx transport, in-memory / Redis breakers).
"""
from __future__ import annotations

from typing import Mapping, Protocol, runtime_checkable

from application.dtos.webhooks import TransportResponse
from domain.webhook.circuit import CircuitState


@runtime_checkable
class WebhookTransport(Protocol):
    """POSTs a signed body to a receiver.

    Implementations enforce the timeout and raise on network errors; non-2xx
    responses are returned, not raised.
    """

    async def post(
        self,
        url: str,
        *,
        content: bytes,
        headers: Mapping[str, str],
        timeout: float,
    ) -> TransportResponse: ...

    async def aclose(self) -> None: ...


@runtime_checkable
class CircuitBreaker(Protocol):
    async def is_circuit_open(self, endpoint_id: str) -> bool: ...

    async def release_trial(self, endpoint_id: str) -> None:
        """Give back a half-open trial slot granted by is_circuit_open but never used."""
        ...

    async def record_success(self, endpoint_id: str) -> None: ...

    async def record_failure(self, endpoint_id: str) -> None: ...

    async def get_state(self, endpoint_id: str) -> CircuitState: ...
