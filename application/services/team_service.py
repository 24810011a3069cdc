"""
Team membership service: organizations, roles and the last-owner guard.
"""
from __future__ import annotations

from application.dtos.team import (
    AddMember,
    CreateOrganization,
    MemberResponse,
    OrganizationResponse,
    UpdateMemberRole,
)
from core.logging_config import get_logger
from domain.common.exceptions import (
    AlreadyAMemberException,
    InsufficientRoleException,
    LastOwnerException,
    NotAMemberException,
    OrganizationNotFoundException,
    TeamMemberNotFoundException,
    UserNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork, UnitOfWorkFactory
from domain.team.entity import MANAGER_ROLES, Organization, TeamMember, TeamRole


logger = get_logger(__name__)


class TeamService:
    def __init__(self, uow_factory: UnitOfWorkFactory) -> None:
        self._uow_factory = uow_factory

    async def create_organization(self, owner_id: str, data: CreateOrganization) -> OrganizationResponse:
        org = Organization(name=data.name)
        owner = TeamMember(organization_id=org.id, user_id=owner_id, role=TeamRole.OWNER)
        async with self._uow_factory() as uow:
            org = await uow.team_repository.create_organization(org, owner)
        return OrganizationResponse(id=org.id, name=org.name, created_at=org.created_at)

    async def list_my_memberships(self, user_id: str) -> list[MemberResponse]:
        async with self._uow_factory(readonly=True) as uow:
            members = await uow.team_repository.list_memberships(user_id)
        return [self._to_response(m) for m in members]

    async def list_members(self, org_id: str, actor_id: str) -> list[MemberResponse]:
        async with self._uow_factory(readonly=True) as uow:
            await self._require_membership(uow, org_id, actor_id)
            members = await uow.team_repository.list_members(org_id)
        return [self._to_response(m) for m in members]

    async def add_member(self, org_id: str, actor_id: str, data: AddMember) -> MemberResponse:
        async with self._uow_factory() as uow:
            actor = await self._require_membership(uow, org_id, actor_id)
            if actor.role not in MANAGER_ROLES:
                raise InsufficientRoleException("Only owners and admins can add members")
            if not actor.can_manage(data.role):
                raise InsufficientRoleException("Admins cannot add owners")

            user = await uow.user_repository.get_by_email(data.email)
            if user is None:
                raise UserNotFoundException(data.email)
            if await uow.team_repository.get_membership(org_id, user.id) is not None:
                raise AlreadyAMemberException(org_id, user.id)

            member = await uow.team_repository.add_member(
                TeamMember(
                    organization_id=org_id,
                    user_id=user.id,
                    role=data.role,
                    invited_by=actor_id,
                    email=user.email,
                )
            )
        logger.info("team_member_added", organization_id=org_id, user_id=member.user_id, role=member.role.value)
        return self._to_response(member)

    async def update_member_role(
        self, org_id: str, actor_id: str, member_id: str, data: UpdateMemberRole
    ) -> MemberResponse:
        async with self._uow_factory() as uow:
            actor = await self._require_membership(uow, org_id, actor_id)
            target = await self._require_member(uow, org_id, member_id)
            if not actor.can_manage(data.role, target.role):
                raise InsufficientRoleException()

            if target.is_owner and data.role != TeamRole.OWNER:
                await self._ensure_not_last_owner(uow, org_id, target, "demote")

            member = await uow.team_repository.update_role(target.id, data.role)
        logger.info("team_member_role_updated", organization_id=org_id, member_id=member_id, role=data.role.value)
        member.email = target.email
        return self._to_response(member)

    async def remove_member(self, org_id: str, actor_id: str, member_id: str) -> None:
        async with self._uow_factory() as uow:
            actor = await self._require_membership(uow, org_id, actor_id)
            target = await self._require_member(uow, org_id, member_id)
            if not actor.can_manage(target.role, target.role):
                raise InsufficientRoleException()
            if target.is_owner:
                await self._ensure_not_last_owner(uow, org_id, target, "remove")
            await uow.team_repository.remove_member(target.id)
        logger.info("team_member_removed", organization_id=org_id, member_id=member_id)

    async def leave_organization(self, org_id: str, user_id: str) -> None:
        async with self._uow_factory() as uow:
            membership = await self._require_membership(uow, org_id, user_id)
            if membership.is_owner:
                await self._ensure_not_last_owner(uow, org_id, membership, "remove")
            await uow.team_repository.remove_member(membership.id)
        logger.info("team_member_left", organization_id=org_id, user_id=user_id)

    async def _require_membership(self, uow: AbstractUnitOfWork, org_id: str, user_id: str) -> TeamMember:
        if await uow.team_repository.get_organization(org_id) is None:
            raise OrganizationNotFoundException(org_id)
        membership = await uow.team_repository.get_membership(org_id, user_id)
        if membership is None:
            raise NotAMemberException(org_id)
        return membership

    async def _require_member(self, uow: AbstractUnitOfWork, org_id: str, member_id: str) -> TeamMember:
        member = await uow.team_repository.get_member(org_id, member_id)
        if member is None:
            raise TeamMemberNotFoundException(member_id)
        return member

    async def _ensure_not_last_owner(
        self, uow: AbstractUnitOfWork, org_id: str, target: TeamMember, action: str
    ) -> None:
        # Owner rows stay locked until commit, so concurrent demotions see each other.
        owners = await uow.team_repository.lock_owners(org_id)
        if len(owners) <= 1 and any(o.id == target.id for o in owners):
            raise LastOwnerException(action)

    @staticmethod
    def _to_response(member: TeamMember) -> MemberResponse:
        return MemberResponse(
            id=member.id,
            organization_id=member.organization_id,
            user_id=member.user_id,
            email=member.email,
            role=member.role,
            invited_by=member.invited_by,
            created_at=member.created_at,
        )
