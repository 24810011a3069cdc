"""
团队API路由 - 组织与成员
"""
from typing import Any

from fastapi import APIRouter, Depends, status

from api.dependencies import get_current_user_id, get_team_service
from application.dtos.team import (
    AddMember,
    CreateOrganization,
    MemberResponse,
    OrganizationResponse,
    UpdateMemberRole,
)
from application.services.team_service import TeamService
from core.response import Response as ApiResponse, success_response

router = APIRouter(
    prefix="/organizations",
    tags=["Team"]
)


@router.post(
    "",
    summary="创建组织",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[OrganizationResponse],
)
async def create_organization(
    body: CreateOrganization,
    user_id: str = Depends(get_current_user_id),
    service: TeamService = Depends(get_team_service),
):
    """创建者自动成为 OWNER"""
    org = await service.create_organization(user_id, body)
    return success_response(data=org, message="Organization created")


@router.get("/memberships", summary="我加入的组织", response_model=ApiResponse[list[MemberResponse]])
async def list_my_memberships(
    user_id: str = Depends(get_current_user_id),
    service: TeamService = Depends(get_team_service),
):
    members = await service.list_my_memberships(user_id)
    return success_response(data=members)


@router.get("/{org_id}/members", summary="成员列表", response_model=ApiResponse[list[MemberResponse]])
async def list_members(
    org_id: str,
    user_id: str = Depends(get_current_user_id),
    service: TeamService = Depends(get_team_service),
):
    members = await service.list_members(org_id, user_id)
    return success_response(data=members)


@router.post(
    "/{org_id}/members",
    summary="添加成员",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[MemberResponse],
)
async def add_member(
    org_id: str,
    body: AddMember,
    user_id: str = Depends(get_current_user_id),
    service: TeamService = Depends(get_team_service),
):
    """仅 OWNER / ADMIN 可操作；ADMIN 不能授予 OWNER"""
    member = await service.add_member(org_id, user_id, body)
    return success_response(data=member, message="Member added")


@router.patch("/{org_id}/members/{member_id}", summary="修改成员角色", response_model=ApiResponse[MemberResponse])
async def update_member_role(
    org_id: str,
    member_id: str,
    body: UpdateMemberRole,
    user_id: str = Depends(get_current_user_id),
    service: TeamService = Depends(get_team_service),
):
    member = await service.update_member_role(org_id, user_id, member_id, body)
    return success_response(data=member, message="Member role updated")


@router.delete("/{org_id}/members/{member_id}", summary="移除成员", response_model=ApiResponse[Any])
async def remove_member(
    org_id: str,
    member_id: str,
    user_id: str = Depends(get_current_user_id),
    service: TeamService = Depends(get_team_service),
):
    await service.remove_member(org_id, user_id, member_id)
    return success_response(message="Member removed")


@router.post("/{org_id}/leave", summary="退出组织", response_model=ApiResponse[Any])
async def leave_organization(
    org_id: str,
    user_id: str = Depends(get_current_user_id),
    service: TeamService = Depends(get_team_service),
):
    """最后一位 OWNER 不能退出"""
    await service.leave_organization(org_id, user_id)
    return success_response(message="Left organization")
