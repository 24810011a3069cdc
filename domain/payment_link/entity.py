"""
支付链接领域实体
"""
from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from domain.common.exceptions import (
    DomainValidationException,
    PaymentLinkExpiredException,
    PaymentLinkInactiveException,
    PaymentLinkMaxUsageReachedException,
    PaymentLinkUsageLimitTooLowException,
)
from domain.common.helpers import ensure_utc, new_id

BASE62_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
SHORT_CODE_LENGTH = 8
SHORT_CODE_RANDOM_BYTES = 5  # 40 bits；62^8 > 2^40，保证定长

# 创建后不可修改的字段
IMMUTABLE_FIELDS = frozenset({"short_code", "amount", "currency", "network", "token", "merchant_address"})


def encode_base62(value: int) -> str:
    if value == 0:
        return BASE62_ALPHABET[0]
    digits = []
    while value > 0:
        value, rem = divmod(value, 62)
        digits.append(BASE62_ALPHABET[rem])
    return "".join(reversed(digits))


def generate_short_code() -> str:
    """生成 8 位 base62 短码（40 位随机数，左侧补 0）"""
    value = int.from_bytes(secrets.token_bytes(SHORT_CODE_RANDOM_BYTES), "big")
    return encode_base62(value).rjust(SHORT_CODE_LENGTH, BASE62_ALPHABET[0])


@dataclass
class PaymentLink:
    """
    支付链接 - 商户创建、按短码公开访问的收款对象

    业务规则：
    1. max_usages 设置时 usage_count 永不超过 max_usages
    2. 停用、过期或达到上限后不再计数
    3. 只允许停用（软删除），不做物理删除
    """

    user_id: str
    merchant_address: str
    short_code: str = field(default_factory=generate_short_code)
    name: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: str = "USD"
    network: str = "polygon"
    token: str = "USDC"
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None
    description: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    active: bool = True
    usage_count: int = 0
    max_usages: Optional[int] = None
    expires_at: Optional[datetime] = None
    id: str = field(default_factory=new_id)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.amount is not None and self.amount <= 0:
            raise DomainValidationException(f"链接金额必须大于0: {self.amount}", field="amount")
        if self.max_usages is not None and self.max_usages < 1:
            raise DomainValidationException("max_usages 必须大于等于1", field="max_usages")
        if self.metadata is None:
            self.metadata = {}
        self.expires_at = ensure_utc(self.expires_at)
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at < (now or datetime.now(timezone.utc))

    def is_exhausted(self) -> bool:
        return self.max_usages is not None and self.usage_count >= self.max_usages

    def ensure_redeemable(self, now: Optional[datetime] = None) -> None:
        """按顺序校验：停用 → 过期 → 达到上限，各自抛出不同错误"""
        if not self.active:
            raise PaymentLinkInactiveException(self.short_code)
        if self.is_expired(now):
            raise PaymentLinkExpiredException(self.short_code)
        if self.is_exhausted():
            raise PaymentLinkMaxUsageReachedException(self.short_code, max_usages=self.max_usages)

    def ensure_limit_covers_usage(self) -> None:
        """已使用次数不能超过新的上限"""
        if self.max_usages is not None and self.max_usages < self.usage_count:
            raise PaymentLinkUsageLimitTooLowException(self.usage_count, self.max_usages)

    def apply_changes(self, changes: dict) -> None:
        """更新可变字段；不可变或未知字段直接拒绝"""
        for key, value in changes.items():
            if key in IMMUTABLE_FIELDS:
                raise DomainValidationException(f"字段 {key} 创建后不可修改", field=key)
            if not hasattr(self, key) or key in {"id", "user_id", "usage_count", "created_at", "updated_at"}:
                raise DomainValidationException(f"未知或不可修改的字段: {key}", field=key)
            setattr(self, key, value)
        if self.max_usages is not None and self.max_usages < 1:
            raise DomainValidationException("max_usages 必须大于等于1", field="max_usages")
        self.ensure_limit_covers_usage()
        self.expires_at = ensure_utc(self.expires_at)
        self.updated_at = datetime.now(timezone.utc)
