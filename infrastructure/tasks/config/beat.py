"""Celery beat schedule.

Intervals come from settings so operators can tune them per environment.
"""
from __future__ import annotations

from core.config import settings

CELERY_BEAT_SCHEDULE = {
    "webhooks-process-queue": {
        "task": "webhooks.process_queue",
        "schedule": settings.webhook.queue_interval_seconds,
        "options": {"queue": "high"},
    },
    "refunds-poll-finality": {
        "task": "refunds.poll_finality",
        "schedule": settings.blockchain.finality_poll_interval_seconds,
        "options": {"queue": "default"},
    },
}
