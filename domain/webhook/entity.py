"""
Webhook 领域实体 - 端点、事件信封与投递记录
"""
from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from domain.common.exceptions import DomainValidationException
from domain.common.helpers import ensure_utc, new_id, utcnow


class EventType(str, Enum):
    """可订阅的事件类型"""
    PAYMENT_CREATED = "payment.created"
    PAYMENT_COMPLETED = "payment.completed"
    PAYMENT_FAILED = "payment.failed"
    PAYMENT_REFUNDED = "payment.refunded"
    REFUND_CREATED = "refund.created"
    REFUND_PROCESSING = "refund.processing"
    REFUND_COMPLETED = "refund.completed"
    REFUND_FAILED = "refund.failed"


class DeliveryStatus(str, Enum):
    """投递状态枚举"""
    PENDING = "PENDING"
    DELIVERING = "DELIVERING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"          # next_attempt_at 非空为可重试，为空为终态


@dataclass(frozen=True)
class WebhookEvent:
    """投递给订阅方的事件信封 {id, type, created_at, data}"""

    type: EventType
    data: dict[str, Any]
    id: str = field(default_factory=lambda: f"evt_{secrets.token_hex(12)}")
    created_at: datetime = field(default_factory=utcnow)

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "created_at": self.created_at.isoformat(),
            "data": self.data,
        }


WEBHOOK_SECRET_PREFIX = "whsec_"
MUTABLE_ENDPOINT_FIELDS = frozenset({"url", "events", "enabled", "description"})


def generate_webhook_secret() -> str:
    """whsec_ + 64 位十六进制（256 bit）"""
    return f"{WEBHOOK_SECRET_PREFIX}{secrets.token_hex(32)}"


def normalize_events(events: list) -> list[str]:
    """校验并去重事件类型，保持原有顺序"""
    if not events:
        raise DomainValidationException("至少需要订阅一个事件", field="events")
    normalized: list[str] = []
    for event in events:
        value = event.value if isinstance(event, EventType) else str(event)
        try:
            EventType(value)
        except ValueError:
            raise DomainValidationException(f"未知的事件类型: {value}", field="events") from None
        if value not in normalized:
            normalized.append(value)
    return normalized


@dataclass
class WebhookEndpoint:
    """订阅端点；secret 为加密后的密文，明文只在投递时解密"""

    user_id: str
    url: str
    secret: str
    events: list[str] = field(default_factory=list)
    enabled: bool = True
    description: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)

    def subscribes_to(self, event_type: EventType | str) -> bool:
        value = event_type.value if isinstance(event_type, EventType) else event_type
        return self.enabled and value in self.events

    def apply_changes(self, changes: dict) -> None:
        """更新可变字段（url、events、enabled、description）；secret 只能经轮换修改"""
        for key, value in changes.items():
            if key not in MUTABLE_ENDPOINT_FIELDS:
                raise DomainValidationException(f"未知或不可修改的字段: {key}", field=key)
            setattr(self, key, value)
        if "events" in changes:
            self.events = normalize_events(self.events)
        self.updated_at = utcnow()


@dataclass
class WebhookDelivery:
    """
    单次事件投递记录（可重试）

    只由投递执行器修改；SUCCEEDED 或 重试耗尽的 FAILED 后不再变化。
    endpoint 为加载时的端点快照。
    """

    endpoint_id: str
    event_type: EventType
    payload: dict[str, Any]
    status: DeliveryStatus = DeliveryStatus.PENDING
    attempts: int = 0
    next_attempt_at: Optional[datetime] = None
    last_attempt_at: Optional[datetime] = None
    succeeded_at: Optional[datetime] = None
    response_code: Optional[int] = None
    response_body: Optional[str] = None
    error_message: Optional[str] = None
    endpoint: Optional[WebhookEndpoint] = None
    id: str = field(default_factory=new_id)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.next_attempt_at = ensure_utc(self.next_attempt_at)
        self.last_attempt_at = ensure_utc(self.last_attempt_at)
        self.succeeded_at = ensure_utc(self.succeeded_at)
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)

    @property
    def is_terminal(self) -> bool:
        if self.status == DeliveryStatus.SUCCEEDED:
            return True
        return self.status == DeliveryStatus.FAILED and self.next_attempt_at is None

    def is_due(self, now: datetime, max_retries: int) -> bool:
        """是否应被队列处理器拾取"""
        if self.status == DeliveryStatus.PENDING:
            return True
        if self.status == DeliveryStatus.FAILED:
            return (
                self.next_attempt_at is not None
                and self.next_attempt_at <= now
                and self.attempts < max_retries
            )
        return False
