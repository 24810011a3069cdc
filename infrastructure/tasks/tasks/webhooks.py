"""Webhook delivery tasks"""
from __future__ import annotations

from celery import shared_task

from core.config import settings
from core.logging_config import get_logger
from ..runtime import run_with_services
from ..utils.base_task import BaseTask

logger = get_logger(__name__)


@shared_task(name="webhooks.process_queue", bind=True, base=BaseTask, ignore_result=True)
def process_webhook_queue(self, concurrency_limit: int | None = None, batch_size: int = 100) -> int:
    """Drain due deliveries (PENDING and FAILED whose backoff has elapsed)."""
    limit = concurrency_limit or settings.webhook.queue_concurrency
    processed = run_with_services(
        lambda services: services.webhook_service.process_queue(limit, batch_size)
    )
    logger.info("webhook_queue_task_done", processed=processed)
    return processed
