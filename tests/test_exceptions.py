import pytest

from core.exceptions import business_code_to_http_status
from domain.common.exceptions import (
    AlreadyAMemberException,
    InsufficientRoleException,
    InvalidNetworkException,
    InvalidRefundStatusException,
    InvalidWebhookUrlException,
    LastOwnerException,
    NotAMemberException,
    PaymentLinkExpiredException,
    PaymentLinkInactiveException,
    PaymentLinkMaxUsageReachedException,
    PaymentLinkNotFoundException,
    PaymentLinkUnavailableException,
    PaymentLinkUsageLimitTooLowException,
    RefundAlreadyCompletedException,
    RefundNotFoundException,
    ShortCodeGenerationFailedException,
    WebhookEndpointNotFoundException,
)


@pytest.mark.parametrize(
    "exc, status, error_type",
    [
        (PaymentLinkNotFoundException("abc"), 404, None),
        (PaymentLinkInactiveException("abc"), 400, "link-inactive"),
        (PaymentLinkExpiredException("abc"), 400, "link-expired"),
        (PaymentLinkMaxUsageReachedException("abc", max_usages=1), 400, "link-max-usage-reached"),
        (PaymentLinkUnavailableException("abc"), 409, "link-max-usage-reached"),
        (PaymentLinkUsageLimitTooLowException(3, 1), 400, "max-usages-below-usage-count"),
        (ShortCodeGenerationFailedException(5), 500, "short-code-generation-failed"),
        (RefundNotFoundException("r1"), 404, "refund-not-found"),
        (RefundAlreadyCompletedException("r1"), 400, "refund-already-completed"),
        (RefundAlreadyCompletedException("r1", conflict=True), 409, "refund-already-completed"),
        (InvalidRefundStatusException("r1", "PENDING", "PROCESSING"), 400, "invalid-refund-status"),
        (InvalidNetworkException("solana"), 400, "invalid-network"),
        (InvalidWebhookUrlException("Webhook URL must use HTTPS protocol"), 422, "invalid-webhook-url"),
        (WebhookEndpointNotFoundException("wh_1"), 404, "webhook-not-found"),
        (NotAMemberException("org"), 403, "not-a-member"),
        (InsufficientRoleException(), 403, "insufficient-role"),
        (AlreadyAMemberException("org", "u"), 409, "already-a-member"),
        (LastOwnerException("remove"), 400, "last-owner"),
    ],
)
def test_business_exceptions_map_to_http_status(exc, status, error_type):
    assert business_code_to_http_status(exc.code) == status
    if error_type is not None:
        assert exc.error_type == error_type


def test_unknown_code_defaults_to_bad_request():
    assert business_code_to_http_status(123456) == 400
