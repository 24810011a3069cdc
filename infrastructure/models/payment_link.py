"""
支付链接数据库模型
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Text, JSON, Boolean,
    Index, CheckConstraint
)
from datetime import datetime, timezone

from .base import Base
from .payment import AMOUNT_PRECISION, AMOUNT_SCALE


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentLinkModel(Base):
    """
    支付链接数据库模型

    usage_count 只能通过条件 UPDATE 原子递增（见 SQLAlchemyPaymentLinkRepository.increment_usage）
    """
    __tablename__ = "payment_links"

    id = Column(String(36), primary_key=True, comment="链接ID（UUID）")
    user_id = Column(String(36), nullable=False, index=True, comment="所属商户用户ID")
    short_code = Column(String(8), unique=True, nullable=False, comment="8 位 base62 短码")
    name = Column(String(200), nullable=True, comment="链接名称")

    amount = Column(Numeric(precision=AMOUNT_PRECISION, scale=AMOUNT_SCALE), nullable=True, comment="固定金额（为空时由付款方填写）")
    currency = Column(String(3), nullable=False, default="USD", comment="计价货币")
    network = Column(String(32), nullable=False, default="polygon", comment="区块链网络")
    token = Column(String(16), nullable=False, default="USDC", comment="稳定币")
    merchant_address = Column(String(64), nullable=False, comment="商户收款地址")

    success_url = Column(String(2048), nullable=True, comment="支付成功跳转地址")
    cancel_url = Column(String(2048), nullable=True, comment="取消支付跳转地址")
    description = Column(Text, nullable=True, comment="描述")
    extra_metadata = Column("metadata", JSON, nullable=True, comment="扩展元数据")

    active = Column(Boolean, nullable=False, default=True, comment="是否启用（停用即软删除）")
    usage_count = Column(Integer, nullable=False, default=0, comment="已兑换次数")
    max_usages = Column(Integer, nullable=True, comment="最大兑换次数（为空不限）")
    expires_at = Column(DateTime(timezone=True), nullable=True, comment="过期时间")

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False, comment="更新时间")

    __table_args__ = (
        Index("ix_payment_links_user_created", "user_id", "created_at"),
        CheckConstraint(
            "max_usages IS NULL OR usage_count <= max_usages",
            name="ck_payment_links_usage_within_limit",
        ),
    )

    def __repr__(self):
        return (
            f"<PaymentLinkModel(id='{self.id}', short_code='{self.short_code}', "
            f"usage={self.usage_count}/{self.max_usages})>"
        )
