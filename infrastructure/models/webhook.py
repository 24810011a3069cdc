"""
Webhook 数据库模型 - 订阅端点与投递记录
"""
from sqlalchemy import (
    Column, Integer, String, DateTime, Text, JSON, Boolean,
    Index, ForeignKey
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WebhookEndpointModel(Base):
    """订阅端点数据库模型"""
    __tablename__ = "webhook_endpoints"

    id = Column(String(36), primary_key=True, comment="端点ID（UUID）")
    user_id = Column(String(36), nullable=False, index=True, comment="所属商户用户ID")
    url = Column(String(2048), nullable=False, comment="回调地址")
    secret = Column(Text, nullable=False, comment="签名密钥（AES-256-GCM 密文 iv:tag:ciphertext）")
    events = Column(JSON, nullable=False, default=list, comment="订阅的事件类型列表")
    enabled = Column(Boolean, nullable=False, default=True, comment="是否启用")
    description = Column(String(500), nullable=True, comment="描述")

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False, comment="更新时间")

    deliveries = relationship("WebhookDeliveryModel", back_populates="endpoint", lazy="select")

    __table_args__ = (
        Index("ix_webhook_endpoints_user_enabled", "user_id", "enabled"),
    )

    def __repr__(self):
        return f"<WebhookEndpointModel(id='{self.id}', url='{self.url}', enabled={self.enabled})>"


class WebhookDeliveryModel(Base):
    """投递记录数据库模型，只由投递执行器修改"""
    __tablename__ = "webhook_deliveries"

    id = Column(String(36), primary_key=True, comment="投递ID（UUID），即 X-Webhook-ID")
    endpoint_id = Column(
        String(36),
        ForeignKey("webhook_endpoints.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="目标端点ID"
    )
    event_type = Column(String(64), nullable=False, index=True, comment="事件类型")
    payload = Column(JSON, nullable=False, comment="事件信封 {id, type, created_at, data}")

    status = Column(
        String(20),
        nullable=False,
        default="PENDING",
        comment="投递状态: PENDING/DELIVERING/SUCCEEDED/FAILED"
    )
    attempts = Column(Integer, nullable=False, default=0, comment="已尝试次数")
    next_attempt_at = Column(DateTime(timezone=True), nullable=True, comment="下次重试时间（为空且 FAILED 表示终态）")
    last_attempt_at = Column(DateTime(timezone=True), nullable=True, comment="最近一次尝试时间")
    succeeded_at = Column(DateTime(timezone=True), nullable=True, comment="投递成功时间")

    response_code = Column(Integer, nullable=True, comment="HTTP 响应码")
    response_body = Column(Text, nullable=True, comment="响应体（截断至 10000 字符）")
    error_message = Column(Text, nullable=True, comment="错误信息（截断至 1000 字符）")

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False, comment="更新时间")

    endpoint = relationship("WebhookEndpointModel", back_populates="deliveries")

    __table_args__ = (
        # 队列扫描：status + next_attempt_at
        Index("ix_webhook_deliveries_status_next", "status", "next_attempt_at"),
    )

    def __repr__(self):
        return (
            f"<WebhookDeliveryModel(id='{self.id}', event_type='{self.event_type}', "
            f"status='{self.status}', attempts={self.attempts})>"
        )
