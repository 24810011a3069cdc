"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from typing import Any, Dict

from ..config.celery import celery_app


class TaskDispatcher:
    """Internal facade used by the API layer to schedule background work."""

    def process_webhook_queue(self) -> None:
        """Ask a worker to drain the delivery queue now instead of waiting for beat."""
        celery_app.send_task("webhooks.process_queue")

    def schedule_refund_finality(self, refund_id: str, tx_hash: str, network: str, countdown: int = 60) -> None:
        celery_app.send_task(
            "refunds.confirm_finality",
            kwargs={"refund_id": refund_id, "tx_hash": tx_hash, "network": network},
            countdown=countdown,
        )

    def enqueue(self, task_name: str, *, args: tuple | None = None, kwargs: Dict[str, Any] | None = None) -> None:
        """Generic escape hatch for scheduling arbitrary tasks by name."""
        celery_app.send_task(task_name, args=args or (), kwargs=kwargs or {})
