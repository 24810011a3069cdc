"""Infrastructure models package exports."""
from .base import Base, metadata
from .user import UserModel
from .payment import PaymentSessionModel, RefundModel
from .payment_link import PaymentLinkModel
from .webhook import WebhookEndpointModel, WebhookDeliveryModel
from .team import OrganizationModel, TeamMemberModel

__all__ = [
    "Base",
    "metadata",
    "UserModel",
    "PaymentSessionModel",
    "RefundModel",
    "PaymentLinkModel",
    "WebhookEndpointModel",
    "WebhookDeliveryModel",
    "OrganizationModel",
    "TeamMemberModel",
]
