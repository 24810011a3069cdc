"""
Payment and refund domain events.

Each event knows its webhook event type and renders the `data` section of the
webhook envelope. Domain remains free of infrastructure imports; the
application layer turns events into queued deliveries.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar, Optional

from domain.payment.entity import PaymentSession, Refund, compute_completed_total
from domain.webhook.entity import EventType


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class RefundEvent:
    event_type: ClassVar[EventType]

    refund: Refund

    def payload(self) -> dict[str, Any]:
        r = self.refund
        return {
            "id": r.id,
            "payment_session_id": r.payment_session_id,
            "amount": str(r.amount),
            "reason": r.reason,
            "status": r.status.value,
            "tx_hash": r.tx_hash,
            "block_number": r.block_number,
            "created_at": _iso(r.created_at),
        }


@dataclass
class RefundCreated(RefundEvent):
    event_type: ClassVar[EventType] = EventType.REFUND_CREATED


@dataclass
class RefundProcessing(RefundEvent):
    event_type: ClassVar[EventType] = EventType.REFUND_PROCESSING


@dataclass
class RefundCompleted(RefundEvent):
    event_type: ClassVar[EventType] = EventType.REFUND_COMPLETED

    confirmations: Optional[int] = None

    def payload(self) -> dict[str, Any]:
        data = super().payload()
        data["completed_at"] = _iso(self.refund.completed_at)
        if self.confirmations is not None:
            data["confirmations"] = self.confirmations
        return data


@dataclass
class RefundFailed(RefundEvent):
    event_type: ClassVar[EventType] = EventType.REFUND_FAILED


@dataclass
class PaymentRefunded:
    event_type: ClassVar[EventType] = EventType.PAYMENT_REFUNDED

    payment: PaymentSession
    refunds: list[Refund]

    def payload(self) -> dict[str, Any]:
        p = self.payment
        return {
            "id": p.id,
            "amount": str(p.amount),
            "currency": p.currency,
            "status": p.status.value,
            "network": p.network,
            "token": p.token,
            "merchant_address": p.merchant_address,
            "customer_address": p.customer_address,
            "refunded_amount": str(compute_completed_total(self.refunds)),
            "metadata": p.metadata,
        }
