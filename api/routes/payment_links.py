"""
支付链接API路由
"""
from fastapi import APIRouter, Depends

from api.dependencies import get_current_user_id, get_payment_link_service
from application.dtos.payment_links import (
    CreatePaymentLink,
    PaymentLinkFilters,
    PaymentLinkResponse,
    UpdatePaymentLink,
)
from application.services.payment_link_service import PaymentLinkService
from core.response import OffsetPage, Response as ApiResponse, paginated_response, success_response

router = APIRouter(
    prefix="/payment-links",
    tags=["Payment Links"]
)


@router.post("", summary="创建支付链接", response_model=ApiResponse[PaymentLinkResponse])
async def create_payment_link(
    body: CreatePaymentLink,
    user_id: str = Depends(get_current_user_id),
    service: PaymentLinkService = Depends(get_payment_link_service),
):
    """
    创建支付链接

    - **merchant_address**: 收款地址（0x 开头的 40 位十六进制）
    - **amount**: 固定金额（可选，不填则由付款方输入）
    - **max_usages**: 最大使用次数（可选）
    - **expires_at**: 过期时间（可选）
    """
    link = await service.create_payment_link(user_id, body)
    return success_response(data=link, message="Payment link created")


@router.get("", summary="支付链接列表", response_model=ApiResponse[OffsetPage[PaymentLinkResponse]])
async def list_payment_links(
    filters: PaymentLinkFilters = Depends(),
    user_id: str = Depends(get_current_user_id),
    service: PaymentLinkService = Depends(get_payment_link_service),
):
    page = await service.list_payment_links(user_id, filters)
    return paginated_response(page.items, page.total, page.limit, page.offset)


@router.get("/resolve/{short_code}", summary="按短码解析支付链接（公开）", response_model=ApiResponse[PaymentLinkResponse])
async def resolve_payment_link(
    short_code: str,
    service: PaymentLinkService = Depends(get_payment_link_service),
):
    """无需认证；停用、过期、达到使用上限分别返回不同错误"""
    link = await service.get_payment_link_by_short_code(short_code)
    return success_response(data=link)


@router.get("/{link_id}", summary="获取支付链接", response_model=ApiResponse[PaymentLinkResponse])
async def get_payment_link(
    link_id: str,
    user_id: str = Depends(get_current_user_id),
    service: PaymentLinkService = Depends(get_payment_link_service),
):
    link = await service.get_payment_link(link_id, user_id)
    return success_response(data=link)


@router.patch("/{link_id}", summary="更新支付链接", response_model=ApiResponse[PaymentLinkResponse])
async def update_payment_link(
    link_id: str,
    body: UpdatePaymentLink,
    user_id: str = Depends(get_current_user_id),
    service: PaymentLinkService = Depends(get_payment_link_service),
):
    link = await service.update_payment_link(link_id, user_id, body)
    return success_response(data=link, message="Payment link updated")


@router.delete("/{link_id}", summary="停用支付链接", response_model=ApiResponse[PaymentLinkResponse])
async def deactivate_payment_link(
    link_id: str,
    user_id: str = Depends(get_current_user_id),
    service: PaymentLinkService = Depends(get_payment_link_service),
):
    """软删除：仅置为停用，记录保留"""
    link = await service.deactivate_payment_link(link_id, user_id)
    return success_response(data=link, message="Payment link deactivated")


@router.post("/{link_id}/redeem", summary="兑换一次支付链接", response_model=ApiResponse[PaymentLinkResponse])
async def redeem_payment_link(
    link_id: str,
    user_id: str = Depends(get_current_user_id),
    service: PaymentLinkService = Depends(get_payment_link_service),
):
    link = await service.redeem(link_id, user_id)
    return success_response(data=link, message="Payment link redeemed")
