"""
Payment link DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import Field, field_validator
from pydantic.types import condecimal

from application.dtos.base import DTOBase

SUPPORTED_CURRENCIES = {"USD"}
SUPPORTED_NETWORKS = {"polygon", "ethereum"}
SUPPORTED_TOKENS = {"USDC", "USDT"}


class CreatePaymentLink(DTOBase):
    merchant_address: str = Field(..., pattern=r"^0x[0-9a-fA-F]{40}$")
    name: Optional[str] = Field(None, max_length=200)
    amount: Optional[condecimal(gt=0, max_digits=18, decimal_places=6)] = None  # type: ignore[valid-type]
    currency: str = "USD"
    network: str = "polygon"
    token: str = "USDC"
    success_url: Optional[str] = Field(None, max_length=2048)
    cancel_url: Optional[str] = Field(None, max_length=2048)
    description: Optional[str] = Field(None, max_length=1000)
    metadata: dict[str, Any] = Field(default_factory=dict)
    max_usages: Optional[int] = Field(None, ge=1)
    expires_at: Optional[datetime] = None

    @field_validator("currency")
    @classmethod
    def _validate_currency(cls, v: str) -> str:
        u = (v or "").upper()
        if u not in SUPPORTED_CURRENCIES:
            raise ValueError("unsupported currency")
        return u

    @field_validator("network")
    @classmethod
    def _validate_network(cls, v: str) -> str:
        n = (v or "").lower()
        if n not in SUPPORTED_NETWORKS:
            raise ValueError(f"network must be one of {sorted(SUPPORTED_NETWORKS)}")
        return n

    @field_validator("token")
    @classmethod
    def _validate_token(cls, v: str) -> str:
        t = (v or "").upper()
        if t not in SUPPORTED_TOKENS:
            raise ValueError(f"token must be one of {sorted(SUPPORTED_TOKENS)}")
        return t


class UpdatePaymentLink(DTOBase):
    """Mutable fields only; unset fields are left untouched."""

    name: Optional[str] = Field(None, max_length=200)
    active: Optional[bool] = None
    success_url: Optional[str] = Field(None, max_length=2048)
    cancel_url: Optional[str] = Field(None, max_length=2048)
    description: Optional[str] = Field(None, max_length=1000)
    metadata: Optional[dict[str, Any]] = None
    max_usages: Optional[int] = Field(None, ge=1)
    expires_at: Optional[datetime] = None


class PaymentLinkFilters(DTOBase):
    active: Optional[bool] = None
    created_after: Optional[datetime] = None
    created_before: Optional[datetime] = None
    limit: int = Field(50, ge=1, le=100)
    offset: int = Field(0, ge=0)


class PaymentLinkResponse(DTOBase):
    id: str
    short_code: str
    name: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: str
    network: str
    token: str
    merchant_address: str
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None
    description: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    active: bool
    usage_count: int
    max_usages: Optional[int] = None
    expires_at: Optional[datetime] = None
    payment_url: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PaymentLinkPage(DTOBase):
    items: list[PaymentLinkResponse]
    total: int
    limit: int
    offset: int
