"""
Webhook API路由 - 端点管理与投递查询
"""
from typing import Any

from fastapi import APIRouter, Depends, status

from api.dependencies import get_current_user_id, get_webhook_endpoint_service, get_webhook_service
from application.dtos.webhooks import (
    CreateWebhookEndpoint,
    DeliveryStatusResponse,
    SecretRotationResponse,
    UpdateWebhookEndpoint,
    WebhookEndpointCreated,
    WebhookEndpointResponse,
)
from application.services.webhook_endpoint_service import WebhookEndpointService
from application.services.webhook_service import WebhookService
from core.response import Response as ApiResponse, success_response

router = APIRouter(
    prefix="/webhooks",
    tags=["Webhooks"]
)


@router.post(
    "",
    summary="创建Webhook端点",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[WebhookEndpointCreated],
)
async def create_webhook_endpoint(
    body: CreateWebhookEndpoint,
    user_id: str = Depends(get_current_user_id),
    service: WebhookEndpointService = Depends(get_webhook_endpoint_service),
):
    """
    创建Webhook端点

    - **url**: 回调地址（仅 HTTPS，禁止内网地址）
    - **events**: 订阅的事件类型
    - 返回的 **secret** 仅此一次可见，请妥善保存
    """
    endpoint = await service.create_endpoint(user_id, body)
    return success_response(data=endpoint, message="Webhook endpoint created")


@router.get("", summary="Webhook端点列表", response_model=ApiResponse[list[WebhookEndpointResponse]])
async def list_webhook_endpoints(
    user_id: str = Depends(get_current_user_id),
    service: WebhookEndpointService = Depends(get_webhook_endpoint_service),
):
    endpoints = await service.list_endpoints(user_id)
    return success_response(data=endpoints)


@router.get(
    "/deliveries/{delivery_id}",
    summary="查询投递状态",
    response_model=ApiResponse[DeliveryStatusResponse],
)
async def get_delivery_status(
    delivery_id: str,
    user_id: str = Depends(get_current_user_id),
    service: WebhookService = Depends(get_webhook_service),
):
    delivery = await service.get_delivery_status(delivery_id, user_id)
    return success_response(data=delivery)


@router.get("/{endpoint_id}", summary="获取Webhook端点", response_model=ApiResponse[WebhookEndpointResponse])
async def get_webhook_endpoint(
    endpoint_id: str,
    user_id: str = Depends(get_current_user_id),
    service: WebhookEndpointService = Depends(get_webhook_endpoint_service),
):
    endpoint = await service.get_endpoint(endpoint_id, user_id)
    return success_response(data=endpoint)


@router.patch("/{endpoint_id}", summary="更新Webhook端点", response_model=ApiResponse[WebhookEndpointResponse])
async def update_webhook_endpoint(
    endpoint_id: str,
    body: UpdateWebhookEndpoint,
    user_id: str = Depends(get_current_user_id),
    service: WebhookEndpointService = Depends(get_webhook_endpoint_service),
):
    """停用（enabled=false）后不再拾取该端点的投递"""
    endpoint = await service.update_endpoint(endpoint_id, user_id, body)
    return success_response(data=endpoint, message="Webhook endpoint updated")


@router.delete("/{endpoint_id}", summary="删除Webhook端点", response_model=ApiResponse[Any])
async def delete_webhook_endpoint(
    endpoint_id: str,
    user_id: str = Depends(get_current_user_id),
    service: WebhookEndpointService = Depends(get_webhook_endpoint_service),
):
    """端点的投递记录一并删除"""
    await service.delete_endpoint(endpoint_id, user_id)
    return success_response(message="Webhook endpoint deleted")


@router.post(
    "/{endpoint_id}/rotate-secret",
    summary="轮换签名密钥",
    response_model=ApiResponse[SecretRotationResponse],
)
async def rotate_webhook_secret(
    endpoint_id: str,
    user_id: str = Depends(get_current_user_id),
    service: WebhookEndpointService = Depends(get_webhook_endpoint_service),
):
    """旧密钥立即失效；新密钥仅此一次可见"""
    rotation = await service.rotate_secret(endpoint_id, user_id)
    return success_response(data=rotation, message="Webhook secret rotated")
