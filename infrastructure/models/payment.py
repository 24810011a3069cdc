"""
支付数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Column, BigInteger, String, Numeric, DateTime, Text, JSON,
    Index, ForeignKey
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .base import Base

# 稳定币金额精度（USDC/USDT 为 6 位小数）
AMOUNT_PRECISION = 18
AMOUNT_SCALE = 6


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentSessionModel(Base):
    """
    支付会话数据库模型

    所有业务规则都在 domain.payment.entity.PaymentSession 中
    """
    __tablename__ = "payment_sessions"

    id = Column(String(36), primary_key=True, comment="支付会话ID（UUID）")
    user_id = Column(String(36), nullable=False, index=True, comment="所属商户用户ID")

    # 金额信息（使用 Numeric 存储精确金额）
    amount = Column(Numeric(precision=AMOUNT_PRECISION, scale=AMOUNT_SCALE), nullable=False, comment="支付金额")
    currency = Column(String(3), nullable=False, default="USD", comment="计价货币 ISO-4217")

    # 链上信息
    network = Column(String(32), nullable=False, default="polygon", comment="区块链网络: polygon/ethereum")
    token = Column(String(16), nullable=False, default="USDC", comment="稳定币: USDC/USDT")
    merchant_address = Column(String(64), nullable=False, comment="商户收款地址")
    customer_address = Column(String(64), nullable=True, comment="付款方地址")
    tx_hash = Column(String(80), nullable=True, index=True, comment="付款交易哈希")

    status = Column(
        String(20),
        nullable=False,
        default="PENDING",
        index=True,
        comment="支付状态: PENDING/CONFIRMING/COMPLETED/FAILED/REFUNDED"
    )

    # 元数据（使用 extra_metadata 避免与 SQLAlchemy 的 metadata 冲突）
    extra_metadata = Column("metadata", JSON, nullable=True, comment="扩展元数据")

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False, comment="更新时间")
    completed_at = Column(DateTime(timezone=True), nullable=True, comment="支付完成时间")

    refunds = relationship("RefundModel", back_populates="payment_session", lazy="select")

    __table_args__ = (
        Index("ix_payment_sessions_user_status", "user_id", "status"),
    )

    def __repr__(self):
        return (
            f"<PaymentSessionModel(id='{self.id}', amount={self.amount}, "
            f"status='{self.status}')>"
        )


class RefundModel(Base):
    """
    退款数据库模型

    退款归属于支付会话；归属校验通过 payment_sessions.user_id 完成
    """
    __tablename__ = "refunds"

    id = Column(String(36), primary_key=True, comment="退款ID（UUID）")
    payment_session_id = Column(
        String(36),
        ForeignKey("payment_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="关联的支付会话ID"
    )

    amount = Column(Numeric(precision=AMOUNT_PRECISION, scale=AMOUNT_SCALE), nullable=False, comment="退款金额")
    status = Column(
        String(20),
        nullable=False,
        default="PENDING",
        index=True,
        comment="退款状态: PENDING/PROCESSING/COMPLETED/FAILED"
    )
    reason = Column(Text, nullable=True, comment="退款原因")

    # 链上信息
    tx_hash = Column(String(80), nullable=True, index=True, comment="退款交易哈希")
    block_number = Column(BigInteger, nullable=True, comment="交易所在区块高度")

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False, comment="更新时间")
    completed_at = Column(DateTime(timezone=True), nullable=True, comment="退款完成（达到最终性）时间")

    payment_session = relationship("PaymentSessionModel", back_populates="refunds")

    __table_args__ = (
        Index("ix_refunds_payment_status", "payment_session_id", "status"),
    )

    def __repr__(self):
        return (
            f"<RefundModel(id='{self.id}', payment_session_id='{self.payment_session_id}', "
            f"amount={self.amount}, status='{self.status}')>"
        )
