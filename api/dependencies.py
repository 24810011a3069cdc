"""
API依赖项 - 调用方身份与服务获取
"""
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional

import jwt
import structlog

from api.middleware.request_id import user_id_var
from application.services.payment_link_service import PaymentLinkService
from application.services.refund_service import RefundService
from application.services.team_service import TeamService
from application.services.webhook_endpoint_service import WebhookEndpointService
from application.services.webhook_service import WebhookService
from core.config import settings
from core.exceptions import TokenExpiredException, UnauthorizedException
from infrastructure.bootstrap import GatewayServices

# HTTP Bearer for direct API calls
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token authentication",
    auto_error=False,
)


async def get_token(
    bearer_token: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer)
) -> str:
    """从Bearer token中提取token"""
    if bearer_token and bearer_token.credentials:
        return bearer_token.credentials
    raise UnauthorizedException("Missing bearer token")


def decode_user_id(token: str) -> str:
    """校验JWT并返回 sub（调用方用户ID）"""
    try:
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError as e:
        raise TokenExpiredException() from e
    except jwt.InvalidTokenError as e:
        raise UnauthorizedException("Invalid token") from e
    sub = claims.get("sub")
    if not sub:
        raise UnauthorizedException("Token has no subject")
    return str(sub)


async def get_current_user_id(token: str = Depends(get_token)) -> str:
    """获取当前调用方用户ID，并绑定到日志上下文"""
    user_id = decode_user_id(token)
    user_id_var.set(user_id)
    structlog.contextvars.bind_contextvars(user_id=user_id)
    return user_id


def get_services(request: Request) -> GatewayServices:
    return request.app.state.services


def get_payment_link_service(services: GatewayServices = Depends(get_services)) -> PaymentLinkService:
    return services.payment_link_service


def get_refund_service(services: GatewayServices = Depends(get_services)) -> RefundService:
    return services.refund_service


def get_webhook_service(services: GatewayServices = Depends(get_services)) -> WebhookService:
    return services.webhook_service


def get_webhook_endpoint_service(services: GatewayServices = Depends(get_services)) -> WebhookEndpointService:
    return services.webhook_endpoint_service


def get_team_service(services: GatewayServices = Depends(get_services)) -> TeamService:
    return services.team_service
