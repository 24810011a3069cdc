"""Refund finality polling tasks"""
from __future__ import annotations

from celery import shared_task

from core.logging_config import get_logger
from ..runtime import run_with_services
from ..utils.base_task import BaseTask

logger = get_logger(__name__)


@shared_task(name="refunds.poll_finality", bind=True, base=BaseTask, ignore_result=True)
def poll_refund_finality(self, limit: int = 100) -> dict:
    """Check confirmation depth for PROCESSING refunds and complete the final ones."""
    counts = run_with_services(lambda services: services.refund_service.poll_finality(limit))
    logger.info("refund_finality_task_done", **counts)
    return counts


@shared_task(
    name="refunds.confirm_finality",
    bind=True,
    base=BaseTask,
    max_retries=30,
    default_retry_delay=60,
)
def confirm_refund_finality(self, refund_id: str, tx_hash: str, network: str) -> dict:
    """Check one refund; reschedules itself while the transaction is still shallow."""
    result = run_with_services(
        lambda services: services.refund_service.confirm_refund_finality(refund_id, tx_hash, network)
    )
    if result.status == "pending":
        raise self.retry(countdown=60)
    return {"status": result.status, "confirmations": result.confirmations}
