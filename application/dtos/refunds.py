"""
Refund DTOs (Pydantic v2).
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import Field

from application.dtos.base import DTOBase
from domain.payment.entity import RefundStatus


class CreateRefund(DTOBase):
    payment_session_id: str
    # 金额 <= 0 由服务层拒绝（invalid-refund-amount），这里不做范围校验
    amount: Decimal
    reason: Optional[str] = Field(None, max_length=500)


class ProcessRefund(DTOBase):
    tx_hash: str = Field(..., min_length=1, max_length=66)
    block_number: Optional[int] = Field(None, ge=0)


class CompleteRefund(DTOBase):
    tx_hash: str = Field(..., min_length=1, max_length=66)
    block_number: Optional[int] = Field(None, ge=0)


class ConfirmRefundFinality(DTOBase):
    tx_hash: str = Field(..., min_length=1, max_length=66)
    network: str


class RefundFilters(DTOBase):
    payment_session_id: Optional[str] = None
    status: Optional[RefundStatus] = None
    limit: int = Field(50, ge=1, le=100)
    offset: int = Field(0, ge=0)


class RefundResponse(DTOBase):
    id: str
    payment_session_id: str
    amount: Decimal
    status: RefundStatus
    reason: Optional[str] = None
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class RefundPage(DTOBase):
    items: list[RefundResponse]
    total: int
    limit: int
    offset: int


class FinalityResult(DTOBase):
    """Outcome of a finality check; `pending` is a normal, retryable result."""

    status: Literal["pending", "confirmed"]
    confirmations: int
    required: int
    refund: Optional[RefundResponse] = None
