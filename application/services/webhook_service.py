"""
Webhook queue service: fan events out to subscribed endpoints and drain due deliveries.
"""
from __future__ import annotations

import asyncio
from typing import Any, Optional

from application.dtos.webhooks import DeliveryStatusResponse, EndpointSummary
from application.services.webhook_delivery_executor import WebhookDeliveryExecutor
from core.config import WebhookSettings
from core.logging_config import get_logger
from domain.common.exceptions import WebhookDeliveryNotFoundException
from domain.common.helpers import utcnow
from domain.common.unit_of_work import AbstractUnitOfWork, UnitOfWorkFactory
from domain.webhook.entity import DeliveryStatus, EventType, WebhookDelivery, WebhookEvent


logger = get_logger(__name__)


class WebhookService:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        executor: Optional[WebhookDeliveryExecutor] = None,
        config: Optional[WebhookSettings] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._executor = executor
        self._config = config or WebhookSettings()

    async def queue_webhook(
        self,
        owner_id: str,
        event_type: EventType,
        data: dict[str, Any],
        uow: Optional[AbstractUnitOfWork] = None,
    ) -> int:
        """Create one PENDING delivery per subscribed endpoint; returns how many were queued.

        When `uow` is given the rows are written inside the caller's transaction,
        so the state change and the queued event commit (or roll back) together.
        """
        if uow is not None:
            return await self._queue(uow, owner_id, event_type, data)
        async with self._uow_factory() as own_uow:
            return await self._queue(own_uow, owner_id, event_type, data)

    async def _queue(
        self,
        uow: AbstractUnitOfWork,
        owner_id: str,
        event_type: EventType,
        data: dict[str, Any],
    ) -> int:
        endpoints = await uow.webhook_endpoint_repository.list_subscribed(owner_id, event_type)
        if not endpoints:
            logger.debug("webhook_no_subscribers", owner_id=owner_id, event_type=event_type.value)
            return 0

        event = WebhookEvent(type=event_type, data=data)
        payload = event.to_payload()
        now = utcnow()
        deliveries = [
            WebhookDelivery(
                endpoint_id=endpoint.id,
                event_type=event_type,
                payload=payload,
                status=DeliveryStatus.PENDING,
                attempts=0,
                next_attempt_at=now,
            )
            for endpoint in endpoints
        ]
        await uow.webhook_delivery_repository.create_many(deliveries)
        logger.info(
            "webhook_event_queued",
            event_id=event.id,
            event_type=event_type.value,
            owner_id=owner_id,
            deliveries=len(deliveries),
        )
        return len(deliveries)

    async def process_queue(self, concurrency_limit: Optional[int] = None, batch_size: int = 100) -> int:
        """Deliver every due delivery with at most `concurrency_limit` in flight; returns the number processed."""
        if self._executor is None:
            raise RuntimeError("WebhookService.process_queue requires a delivery executor")
        limit = concurrency_limit or self._config.queue_concurrency

        async with self._uow_factory(readonly=True) as uow:
            due = await uow.webhook_delivery_repository.list_due(
                utcnow(), self._config.max_retries, batch_size
            )
        if not due:
            return 0

        semaphore = asyncio.Semaphore(limit)

        async def _run(delivery: WebhookDelivery) -> None:
            async with semaphore:
                await self._executor.deliver_webhook(delivery)

        results = await asyncio.gather(*(_run(d) for d in due), return_exceptions=True)
        for delivery, result in zip(due, results):
            if isinstance(result, BaseException):
                logger.error("webhook_queue_delivery_error", delivery_id=delivery.id, error=str(result))

        logger.info("webhook_queue_processed", processed=len(due), concurrency=limit)
        return len(due)

    async def get_delivery_status(self, delivery_id: str, owner_id: str) -> DeliveryStatusResponse:
        async with self._uow_factory(readonly=True) as uow:
            delivery = await uow.webhook_delivery_repository.get_by_id(delivery_id, owner_id)
        if delivery is None:
            raise WebhookDeliveryNotFoundException(delivery_id)
        endpoint = None
        if delivery.endpoint is not None:
            endpoint = EndpointSummary(
                id=delivery.endpoint.id,
                url=delivery.endpoint.url,
                enabled=delivery.endpoint.enabled,
            )
        return DeliveryStatusResponse(
            id=delivery.id,
            event_type=delivery.event_type,
            status=delivery.status,
            attempts=delivery.attempts,
            next_attempt_at=delivery.next_attempt_at,
            last_attempt_at=delivery.last_attempt_at,
            succeeded_at=delivery.succeeded_at,
            response_code=delivery.response_code,
            error_message=delivery.error_message,
            payload=delivery.payload,
            endpoint=endpoint,
            created_at=delivery.created_at,
        )
