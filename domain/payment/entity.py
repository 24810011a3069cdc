"""
支付领域实体 - 支付会话与退款聚合
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional
from enum import Enum

from domain.common.helpers import ensure_utc, new_id, utcnow
from domain.common.exceptions import (
    DomainValidationException,
    InvalidRefundStatusException,
    RefundAlreadyCompletedException,
)


class PaymentStatus(str, Enum):
    """支付会话状态枚举"""
    PENDING = "PENDING"
    CONFIRMING = "CONFIRMING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"      # 终态覆盖：仅能由 COMPLETED 经全额退款汇总进入


class RefundStatus(str, Enum):
    """退款状态枚举"""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"  # 已广播上链，等待确认
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass
class PaymentSession:
    """
    支付会话聚合根

    业务规则：
    1. 金额必须大于0
    2. 只有 COMPLETED 的支付可以退款
    3. REFUNDED 只能由 COMPLETED 进入，且进入后不再变化
    """

    user_id: str
    amount: Decimal
    currency: str = "USD"
    network: str = "polygon"
    token: str = "USDC"
    merchant_address: str = ""
    customer_address: Optional[str] = None
    status: PaymentStatus = PaymentStatus.PENDING
    tx_hash: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    id: str = field(default_factory=new_id)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def __post_init__(self):
        if self.amount <= 0:
            raise DomainValidationException(
                f"支付金额必须大于0: {self.amount}",
                field="amount"
            )
        if self.metadata is None:
            self.metadata = {}
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)
        self.completed_at = ensure_utc(self.completed_at)

    @property
    def is_refundable(self) -> bool:
        return self.status == PaymentStatus.COMPLETED

    def mark_refunded(self) -> bool:
        """
        标记为已全额退款

        已是 REFUNDED 时返回 False（幂等），其余非 COMPLETED 状态拒绝。
        """
        if self.status == PaymentStatus.REFUNDED:
            return False
        if self.status != PaymentStatus.COMPLETED:
            raise DomainValidationException(
                f"无法从状态 {self.status.value} 转换为 REFUNDED",
                field="status"
            )
        self.status = PaymentStatus.REFUNDED
        self.updated_at = utcnow()
        return True


@dataclass
class Refund:
    """
    退款实体 - 状态机 PENDING → PROCESSING → COMPLETED | FAILED

    业务规则：
    1. COMPLETED 不可逆，永远不能再转为 FAILED
    2. 重复失败为幂等空操作
    3. 只有 PROCESSING 可以完成
    """

    payment_session_id: str
    amount: Decimal
    status: RefundStatus = RefundStatus.PENDING
    reason: Optional[str] = None
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    id: str = field(default_factory=new_id)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def __post_init__(self):
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)
        self.completed_at = ensure_utc(self.completed_at)

    def start_processing(self, tx_hash: Optional[str] = None, block_number: Optional[int] = None) -> None:
        """退款交易已广播：PENDING → PROCESSING"""
        if self.status != RefundStatus.PENDING:
            raise InvalidRefundStatusException(self.id, self.status.value, RefundStatus.PENDING.value)
        self.status = RefundStatus.PROCESSING
        if tx_hash:
            self.tx_hash = tx_hash
        if block_number is not None:
            self.block_number = block_number
        self.updated_at = utcnow()

    def ensure_completable(self) -> None:
        """完成前置校验：重复完成与其它非 PROCESSING 状态区分报错"""
        if self.status == RefundStatus.COMPLETED:
            raise RefundAlreadyCompletedException(self.id)
        if self.status != RefundStatus.PROCESSING:
            raise InvalidRefundStatusException(self.id, self.status.value, RefundStatus.PROCESSING.value)

    def complete(self, tx_hash: str, block_number: Optional[int]) -> None:
        """达到最终性：PROCESSING → COMPLETED"""
        self.ensure_completable()
        now = utcnow()
        self.status = RefundStatus.COMPLETED
        self.tx_hash = tx_hash
        self.block_number = block_number
        self.completed_at = now
        self.updated_at = now

    def fail(self) -> bool:
        """
        标记失败

        Returns:
            True 表示发生了状态变化；已是 FAILED 时返回 False（幂等）

        Raises:
            RefundAlreadyCompletedException: 已完成的退款（冲突，409）
        """
        if self.status == RefundStatus.COMPLETED:
            raise RefundAlreadyCompletedException(self.id, conflict=True)
        if self.status == RefundStatus.FAILED:
            return False
        self.status = RefundStatus.FAILED
        self.updated_at = utcnow()
        return True


def compute_refunded_total(refunds: Iterable[Refund]) -> Decimal:
    """已占用的退款额度：除 FAILED 外的所有退款（含在途）"""
    total = Decimal("0")
    for refund in refunds:
        if refund.status != RefundStatus.FAILED:
            total += refund.amount
    return total


def compute_completed_total(refunds: Iterable[Refund]) -> Decimal:
    """已完成退款总额"""
    return sum((r.amount for r in refunds if r.status == RefundStatus.COMPLETED), Decimal("0"))


def compute_remaining_amount(payment_amount: Decimal, refunded_total: Decimal) -> Decimal:
    return payment_amount - refunded_total
