"""
Webhook delivery executor: sign, send, and record the outcome of one delivery.

Every outcome is written back to the delivery row; nothing escapes `deliver_webhook`.
"""
from __future__ import annotations

import json
import random
import time
from typing import Callable, Optional

from application.dtos.webhooks import TransportResponse
from application.ports.secrets import SecretCachePort, SecretDecryptor
from application.ports.webhooks import CircuitBreaker, WebhookTransport
from application.utils.url_validator import WebhookUrlValidator
from core.config import WebhookSettings
from core.logging_config import get_logger
from domain.common.exceptions import InvalidWebhookUrlException
from domain.common.helpers import utcnow
from domain.common.unit_of_work import UnitOfWorkFactory
from domain.webhook import retry
from domain.webhook.entity import WebhookDelivery, WebhookEndpoint
from domain.webhook.signature import sign


logger = get_logger(__name__)


def serialize_payload(payload: dict) -> str:
    """Compact JSON; this exact string is what gets signed and sent."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


class WebhookDeliveryExecutor:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        *,
        transport: WebhookTransport,
        breaker: CircuitBreaker,
        secret_cache: SecretCachePort,
        decryptor: SecretDecryptor,
        url_validator: Optional[WebhookUrlValidator] = None,
        config: Optional[WebhookSettings] = None,
        rng: Callable[[], float] = random.random,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._uow_factory = uow_factory
        self._transport = transport
        self._breaker = breaker
        self._secret_cache = secret_cache
        self._decryptor = decryptor
        self._config = config or WebhookSettings()
        self._url_validator = url_validator or WebhookUrlValidator(allow_http=self._config.allow_http)
        self._rng = rng
        self._clock = clock

    async def deliver_webhook(self, delivery: WebhookDelivery) -> None:
        try:
            await self._deliver(delivery)
        except Exception as exc:
            # Storage errors while recording the outcome leave the row as-is; the
            # queue picks it up again on a later pass.
            logger.error(
                "webhook_delivery_unexpected_error",
                delivery_id=delivery.id,
                error=str(exc),
                exc_info=True,
            )

    async def _deliver(self, delivery: WebhookDelivery) -> None:
        endpoint = delivery.endpoint or await self._load_endpoint(delivery.endpoint_id)
        if endpoint is None:
            logger.warning("webhook_endpoint_missing", delivery_id=delivery.id, endpoint_id=delivery.endpoint_id)
            return

        if not endpoint.enabled:
            logger.info(
                "webhook_delivery_skipped_endpoint_disabled",
                delivery_id=delivery.id,
                endpoint_id=endpoint.id,
            )
            return

        if await self._breaker.is_circuit_open(endpoint.id):
            logger.warning(
                "webhook_delivery_skipped_circuit_open",
                delivery_id=delivery.id,
                endpoint_id=endpoint.id,
            )
            return

        async with self._uow_factory() as uow:
            claimed = await uow.webhook_delivery_repository.mark_delivering(
                delivery.id, utcnow(), self._config.max_retries
            )
        if claimed is None:
            # Row was not claimable; give back the half-open trial slot it took.
            await self._breaker.release_trial(endpoint.id)
            return
        attempts = claimed.attempts

        try:
            await self._url_validator.validate(endpoint.url)
        except InvalidWebhookUrlException as exc:
            logger.warning("webhook_url_rejected", delivery_id=delivery.id, endpoint_id=endpoint.id, reason=exc.message)
            await self._record_failure(
                delivery.id,
                next_attempt_at=None,
                error_message=f"Invalid webhook URL: {exc.message}",
            )
            await self._breaker.record_failure(endpoint.id)
            return

        try:
            secret = self._secret_cache.get_or_load(endpoint.secret, self._decryptor.decrypt)
        except Exception as exc:
            logger.error(
                "webhook_secret_decryption_failed",
                delivery_id=delivery.id,
                endpoint_id=endpoint.id,
                error_type=type(exc).__name__,
            )
            await self.handle_delivery_failure(
                delivery.id, attempts, None, None, "Webhook secret decryption failed"
            )
            await self._breaker.record_failure(endpoint.id)
            return

        timestamp = int(self._clock())
        body = serialize_payload(claimed.payload)
        headers = {
            "Content-Type": "application/json",
            "X-Webhook-Signature": sign(body, timestamp, secret),
            "X-Webhook-Timestamp": str(timestamp),
            "X-Webhook-ID": delivery.id,
            "User-Agent": self._config.user_agent,
        }

        try:
            response = await self._transport.post(
                endpoint.url,
                content=body.encode("utf-8"),
                headers=headers,
                timeout=self._config.timeout_seconds,
            )
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            logger.warning(
                "webhook_delivery_request_error",
                delivery_id=delivery.id,
                endpoint_id=endpoint.id,
                attempts=attempts,
                error=message,
            )
            await self.handle_delivery_failure(delivery.id, attempts, None, None, message)
            await self._breaker.record_failure(endpoint.id)
            return

        await self._handle_response(delivery, endpoint, attempts, response)

    async def _handle_response(
        self,
        delivery: WebhookDelivery,
        endpoint: WebhookEndpoint,
        attempts: int,
        response: TransportResponse,
    ) -> None:
        body = self._truncate(response.text, self._config.response_body_max_chars)
        if response.ok:
            async with self._uow_factory() as uow:
                await uow.webhook_delivery_repository.mark_succeeded(
                    delivery.id,
                    now=utcnow(),
                    response_code=response.status_code,
                    response_body=body,
                )
            await self._breaker.record_success(endpoint.id)
            logger.info(
                "webhook_delivery_succeeded",
                delivery_id=delivery.id,
                endpoint_id=endpoint.id,
                status_code=response.status_code,
                attempts=attempts,
            )
            return

        logger.warning(
            "webhook_delivery_http_error",
            delivery_id=delivery.id,
            endpoint_id=endpoint.id,
            status_code=response.status_code,
            attempts=attempts,
        )
        await self.handle_delivery_failure(
            delivery.id,
            attempts,
            response.status_code,
            body,
            f"HTTP {response.status_code}: {response.reason}",
        )
        await self._breaker.record_failure(endpoint.id)

    async def handle_delivery_failure(
        self,
        delivery_id: str,
        attempts: int,
        response_code: Optional[int],
        response_body: Optional[str],
        error_message: str,
    ) -> None:
        """Schedule the next retry, or mark terminal once attempts reach max_retries."""
        max_retries = self._config.max_retries
        next_at = retry.next_attempt_at(
            attempts,
            utcnow(),
            max_retries=max_retries,
            delays=self._config.retry_delays,
            jitter_ratio=self._config.jitter_ratio,
            rng=self._rng,
        )
        if next_at is None:
            message = f"Max retries ({max_retries}) exceeded: {error_message}"
            logger.error("webhook_delivery_exhausted", delivery_id=delivery_id, attempts=attempts)
        else:
            message = error_message
            logger.info(
                "webhook_delivery_retry_scheduled",
                delivery_id=delivery_id,
                attempts=attempts,
                next_attempt_at=next_at.isoformat(),
            )
        await self._record_failure(
            delivery_id,
            next_attempt_at=next_at,
            error_message=message,
            response_code=response_code,
            response_body=response_body,
        )

    async def _record_failure(self, delivery_id: str, **fields) -> None:
        fields["error_message"] = self._truncate(
            fields["error_message"], self._config.error_message_max_chars
        )
        async with self._uow_factory() as uow:
            await uow.webhook_delivery_repository.mark_failed(delivery_id, **fields)

    async def _load_endpoint(self, endpoint_id: str) -> Optional[WebhookEndpoint]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.webhook_endpoint_repository.get_by_id(endpoint_id)

    @staticmethod
    def _truncate(value: Optional[str], limit: int) -> Optional[str]:
        if value is None:
            return None
        return value[:limit]
