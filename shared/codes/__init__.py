"""
Shared business codes used across layers (Domain/Core/API).

This package exposes BusinessCode at `shared.codes`; the HTTP status for each
code is resolved in `core.exceptions`.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    """Unified business status codes (single source of truth)."""

    # Success
    SUCCESS = 0

    # Parameter errors (1xxxx)
    PARAM_ERROR = 10000
    PARAM_MISSING = 10001
    PARAM_TYPE_ERROR = 10002
    PARAM_VALIDATION_ERROR = 10003

    # Business errors (2xxxx)
    BUSINESS_ERROR = 20000
    TOKEN_INVALID = 20004
    TOKEN_EXPIRED = 20005
    NOT_FOUND = 20006  # Generic resource not found
    CONFLICT = 20007  # State conflict on a terminal resource

    # Payment links (21xxx)
    LINK_INACTIVE = 21001
    LINK_EXPIRED = 21002
    LINK_MAX_USAGE_REACHED = 21003

    # Refunds (22xxx)
    REFUND_INVALID_STATUS = 22001
    REFUND_ALREADY_COMPLETED = 22002
    REFUND_INVALID_AMOUNT = 22003
    REFUND_EXCEEDS_PAYMENT = 22004
    PAYMENT_NOT_COMPLETED = 22005
    INVALID_NETWORK = 22006

    # Authorization errors (3xxxx)
    PERMISSION_ERROR = 30000
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002

    # System errors (4xxxx)
    SYSTEM_ERROR = 40000
    DATABASE_ERROR = 40001
    NETWORK_ERROR = 40002
    SERVICE_UNAVAILABLE = 40003
    SHORT_CODE_GENERATION_FAILED = 40004

    # Rate limiting (5xxxx)
    RATE_LIMIT_ERROR = 50000
    TOO_MANY_REQUESTS = 50001


__all__ = ["BusinessCode"]
