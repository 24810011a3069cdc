"""领域层业务异常定义，供领域与基础设施使用。

`error_type` 携带对外稳定的机器可读错误码（如 link-inactive），
`code` 为 BusinessCode；HTTP 状态码的映射由 core.exceptions 负责。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
        message_key: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        self.message_key = message_key
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="validation-error",
            details=details,
            field=field,
            message_key="validation.domain",
        )


class ResourceNotFoundException(BusinessException):
    """通用资源不存在（未归属当前用户的资源同样视为不存在）"""

    def __init__(self, resource: str, resource_id: Optional[str] = None, *, error_type: str = "not-found"):
        details = {"resource": resource}
        if resource_id is not None:
            details["id"] = str(resource_id)
        super().__init__(
            code=BusinessCode.NOT_FOUND,
            message=f"{resource} not found",
            error_type=error_type,
            details=details,
            message_key="resource.not_found",
        )


# ---------------------------------------------------------------------------
# 支付链接
# ---------------------------------------------------------------------------

class PaymentLinkNotFoundException(ResourceNotFoundException):
    def __init__(self, link_ref: Optional[str] = None):
        super().__init__("Payment link", link_ref)


class PaymentLinkInactiveException(BusinessException):
    def __init__(self, short_code: str):
        super().__init__(
            code=BusinessCode.LINK_INACTIVE,
            message="Payment link is inactive",
            error_type="link-inactive",
            details={"short_code": short_code},
            message_key="payment_link.inactive",
        )


class PaymentLinkExpiredException(BusinessException):
    def __init__(self, short_code: str):
        super().__init__(
            code=BusinessCode.LINK_EXPIRED,
            message="Payment link has expired",
            error_type="link-expired",
            details={"short_code": short_code},
            message_key="payment_link.expired",
        )


class PaymentLinkMaxUsageReachedException(BusinessException):
    def __init__(self, short_code: Optional[str] = None, *, max_usages: Optional[int] = None):
        details = {}
        if short_code is not None:
            details["short_code"] = short_code
        if max_usages is not None:
            details["max_usages"] = max_usages
        super().__init__(
            code=BusinessCode.LINK_MAX_USAGE_REACHED,
            message="Payment link has reached its maximum usage limit",
            error_type="link-max-usage-reached",
            details=details or None,
            message_key="payment_link.max_usage_reached",
        )


class PaymentLinkUsageLimitTooLowException(BusinessException):
    """新的 max_usages 小于已使用次数"""

    def __init__(self, usage_count: Optional[int] = None, max_usages: Optional[int] = None):
        details = {}
        if usage_count is not None:
            details["usage_count"] = usage_count
        if max_usages is not None:
            details["max_usages"] = max_usages
        super().__init__(
            code=BusinessCode.PARAM_ERROR,
            message="max_usages cannot be lower than the current usage count",
            error_type="max-usages-below-usage-count",
            details=details or None,
            field="max_usages",
            message_key="payment_link.max_usages_below_usage",
        )


class PaymentLinkUnavailableException(BusinessException):
    """条件更新未命中：链接不存在、已停用、已过期或已达上限（由单条 UPDATE 判定，无法细分）"""

    def __init__(self, link_id: str):
        super().__init__(
            code=BusinessCode.CONFLICT,
            message="Payment link can no longer be redeemed",
            error_type="link-max-usage-reached",
            details={"link_id": link_id},
            message_key="payment_link.unavailable",
        )


class ShortCodeGenerationFailedException(BusinessException):
    def __init__(self, attempts: int):
        super().__init__(
            code=BusinessCode.SHORT_CODE_GENERATION_FAILED,
            message="Failed to generate a unique short code",
            error_type="short-code-generation-failed",
            details={"attempts": attempts},
            message_key="payment_link.short_code_failed",
        )


# ---------------------------------------------------------------------------
# 支付会话与退款
# ---------------------------------------------------------------------------

class PaymentNotFoundException(ResourceNotFoundException):
    def __init__(self, payment_session_id: Optional[str] = None):
        super().__init__("Payment session", payment_session_id, error_type="payment-not-found")


class PaymentNotCompletedException(BusinessException):
    def __init__(self, payment_session_id: str, status: str):
        super().__init__(
            code=BusinessCode.PAYMENT_NOT_COMPLETED,
            message="Only completed payments can be refunded",
            error_type="payment-not-completed",
            details={"payment_session_id": payment_session_id, "status": status},
            message_key="refund.payment_not_completed",
        )


class RefundNotFoundException(ResourceNotFoundException):
    def __init__(self, refund_id: Optional[str] = None):
        super().__init__("Refund", refund_id, error_type="refund-not-found")


class InvalidRefundAmountException(BusinessException):
    def __init__(self, amount: str):
        super().__init__(
            code=BusinessCode.REFUND_INVALID_AMOUNT,
            message="Refund amount must be greater than 0",
            error_type="invalid-refund-amount",
            details={"amount": amount},
            field="amount",
            message_key="refund.amount.invalid",
        )


class RefundExceedsPaymentException(BusinessException):
    def __init__(self, amount: str, remaining: str):
        super().__init__(
            code=BusinessCode.REFUND_EXCEEDS_PAYMENT,
            message=f"Refund amount ({amount}) exceeds remaining refundable amount ({remaining})",
            error_type="refund-exceeds-payment",
            details={"amount": amount, "remaining": remaining},
            field="amount",
            message_key="refund.amount.exceeds_payment",
        )


class InvalidRefundStatusException(BusinessException):
    def __init__(self, refund_id: str, current: str, expected: str):
        super().__init__(
            code=BusinessCode.REFUND_INVALID_STATUS,
            message=f"Cannot transition refund from {current}; expected {expected}",
            error_type="invalid-refund-status",
            details={"refund_id": refund_id, "status": current, "expected": expected},
            message_key="refund.status.invalid",
        )


class RefundAlreadyCompletedException(BusinessException):
    """重复完成返回 400；对已完成退款执行失败属于状态冲突，返回 409"""

    def __init__(self, refund_id: str, *, conflict: bool = False):
        super().__init__(
            code=BusinessCode.CONFLICT if conflict else BusinessCode.REFUND_ALREADY_COMPLETED,
            message="Refund is already completed",
            error_type="refund-already-completed",
            details={"refund_id": refund_id},
            message_key="refund.already_completed",
        )


class InvalidNetworkException(BusinessException):
    def __init__(self, network: str):
        super().__init__(
            code=BusinessCode.INVALID_NETWORK,
            message=f"Unsupported network: {network}",
            error_type="invalid-network",
            details={"network": network},
            field="network",
            message_key="blockchain.network.unsupported",
        )


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------

class WebhookDeliveryNotFoundException(ResourceNotFoundException):
    def __init__(self, delivery_id: Optional[str] = None):
        super().__init__("Webhook delivery", delivery_id)


class WebhookEndpointNotFoundException(ResourceNotFoundException):
    def __init__(self, endpoint_id: Optional[str] = None):
        super().__init__("Webhook endpoint", endpoint_id, error_type="webhook-not-found")


class InvalidWebhookUrlException(BusinessException):
    def __init__(self, reason: str):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=reason,
            error_type="invalid-webhook-url",
            field="url",
            message_key="webhook.url.invalid",
        )


# ---------------------------------------------------------------------------
# 团队
# ---------------------------------------------------------------------------

class OrganizationNotFoundException(ResourceNotFoundException):
    def __init__(self, org_id: Optional[str] = None):
        super().__init__("Organization", org_id, error_type="organization-not-found")


class TeamMemberNotFoundException(ResourceNotFoundException):
    def __init__(self, member_id: Optional[str] = None):
        super().__init__("Team member", member_id, error_type="member-not-found")


class UserNotFoundException(ResourceNotFoundException):
    def __init__(self, email: Optional[str] = None):
        super().__init__("User", email, error_type="user-not-found")


class NotAMemberException(BusinessException):
    def __init__(self, org_id: str):
        super().__init__(
            code=BusinessCode.FORBIDDEN,
            message="You are not a member of this organization",
            error_type="not-a-member",
            details={"organization_id": org_id},
            message_key="team.not_a_member",
        )


class InsufficientRoleException(BusinessException):
    def __init__(self, message: str = "Insufficient role for this action"):
        super().__init__(
            code=BusinessCode.FORBIDDEN,
            message=message,
            error_type="insufficient-role",
            message_key="team.insufficient_role",
        )


class AlreadyAMemberException(BusinessException):
    def __init__(self, org_id: str, user_id: str):
        super().__init__(
            code=BusinessCode.CONFLICT,
            message="User is already a member of this organization",
            error_type="already-a-member",
            details={"organization_id": org_id, "user_id": user_id},
            message_key="team.already_a_member",
        )


class LastOwnerException(BusinessException):
    def __init__(self, action: str):
        super().__init__(
            code=BusinessCode.BUSINESS_ERROR,
            message=f"Cannot {action} the last owner. Transfer ownership first.",
            error_type="last-owner",
            details={"action": action},
            message_key="team.last_owner",
        )
