"""
退款API路由
"""
from fastapi import APIRouter, Depends, status

from api.dependencies import get_current_user_id, get_refund_service
from application.dtos.refunds import (
    CompleteRefund,
    ConfirmRefundFinality,
    CreateRefund,
    FinalityResult,
    ProcessRefund,
    RefundFilters,
    RefundResponse,
)
from application.services.refund_service import RefundService
from core.response import OffsetPage, Response as ApiResponse, paginated_response, success_response

router = APIRouter(
    prefix="/refunds",
    tags=["Refunds"]
)


@router.post(
    "",
    summary="发起退款",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[RefundResponse],
)
async def create_refund(
    body: CreateRefund,
    user_id: str = Depends(get_current_user_id),
    service: RefundService = Depends(get_refund_service),
):
    """支付须为 COMPLETED；退款总额（不含失败的退款）不得超过支付金额"""
    refund = await service.create_refund(user_id, body)
    return success_response(data=refund, message="Refund created")


@router.get("", summary="退款列表", response_model=ApiResponse[OffsetPage[RefundResponse]])
async def list_refunds(
    filters: RefundFilters = Depends(),
    user_id: str = Depends(get_current_user_id),
    service: RefundService = Depends(get_refund_service),
):
    page = await service.list_refunds(user_id, filters)
    return paginated_response(page.items, page.total, page.limit, page.offset)


@router.get("/{refund_id}", summary="获取退款", response_model=ApiResponse[RefundResponse])
async def get_refund(
    refund_id: str,
    user_id: str = Depends(get_current_user_id),
    service: RefundService = Depends(get_refund_service),
):
    refund = await service.get_refund(refund_id, user_id)
    return success_response(data=refund)


@router.post("/{refund_id}/process", summary="登记退款广播交易", response_model=ApiResponse[RefundResponse])
async def process_refund(
    refund_id: str,
    body: ProcessRefund,
    user_id: str = Depends(get_current_user_id),
    service: RefundService = Depends(get_refund_service),
):
    refund = await service.mark_refund_processing(refund_id, body.tx_hash, body.block_number, owner_id=user_id)
    return success_response(data=refund, message="Refund processing")


@router.post("/{refund_id}/complete", summary="完成退款", response_model=ApiResponse[RefundResponse])
async def complete_refund(
    refund_id: str,
    body: CompleteRefund,
    user_id: str = Depends(get_current_user_id),
    service: RefundService = Depends(get_refund_service),
):
    refund = await service.complete_refund(refund_id, body.tx_hash, body.block_number, owner_id=user_id)
    return success_response(data=refund, message="Refund completed")


@router.post("/{refund_id}/fail", summary="标记退款失败", response_model=ApiResponse[RefundResponse])
async def fail_refund(
    refund_id: str,
    user_id: str = Depends(get_current_user_id),
    service: RefundService = Depends(get_refund_service),
):
    """已失败的退款重复调用不产生变化；已完成的退款返回 409"""
    refund = await service.fail_refund(refund_id, owner_id=user_id)
    return success_response(data=refund)


@router.post(
    "/{refund_id}/confirm-finality",
    summary="确认退款最终性",
    response_model=ApiResponse[FinalityResult],
)
async def confirm_refund_finality(
    refund_id: str,
    body: ConfirmRefundFinality,
    user_id: str = Depends(get_current_user_id),
    service: RefundService = Depends(get_refund_service),
):
    """确认数不足时返回 status=pending（非错误），调用方稍后重试"""
    result = await service.confirm_refund_finality(refund_id, body.tx_hash, body.network, owner_id=user_id)
    return success_response(data=result)
