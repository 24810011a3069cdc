"""
团队仓储实现 - 组织与成员
"""
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import AlreadyAMemberException, TeamMemberNotFoundException
from domain.team.entity import Organization, TeamMember, TeamRole
from domain.team.repository import TeamRepository
from infrastructure.models.team import OrganizationModel, TeamMemberModel
from infrastructure.models.user import UserModel
from infrastructure.repositories.locking import conditional_update, lock_and_read_all
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyTeamRepository(TeamRepository):
    """团队仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _member_to_entity(self, model: TeamMemberModel, email: Optional[str] = None) -> TeamMember:
        return TeamMember(
            id=model.id,
            organization_id=model.organization_id,
            user_id=model.user_id,
            role=TeamRole(model.role),
            invited_by=model.invited_by,
            email=email,
            created_at=model.created_at,
        )

    def _members_with_email(self):
        return select(TeamMemberModel, UserModel.email).join(
            UserModel, UserModel.id == TeamMemberModel.user_id
        )

    async def create_organization(self, org: Organization, owner: TeamMember) -> Organization:
        db_org = OrganizationModel(id=org.id, name=org.name)
        self.session.add(db_org)
        # 组织需先落库，成员行的外键才能成立
        await self.session.flush()
        self.session.add(
            TeamMemberModel(
                id=owner.id,
                organization_id=db_org.id,
                user_id=owner.user_id,
                role=TeamRole.OWNER.value,
                invited_by=owner.invited_by,
            )
        )
        await self.session.flush()
        await self.session.refresh(db_org)
        logger.info("organization_created", organization_id=db_org.id, owner_id=owner.user_id)
        return Organization(id=db_org.id, name=db_org.name, created_at=db_org.created_at)

    async def get_organization(self, org_id: str) -> Optional[Organization]:
        db_org = await self.session.get(OrganizationModel, org_id)
        if db_org is None:
            return None
        return Organization(id=db_org.id, name=db_org.name, created_at=db_org.created_at)

    async def list_members(self, org_id: str) -> List[TeamMember]:
        result = await self.session.execute(
            self._members_with_email()
            .where(TeamMemberModel.organization_id == org_id)
            .order_by(TeamMemberModel.created_at)
        )
        return [self._member_to_entity(m, email) for m, email in result.all()]

    async def list_memberships(self, user_id: str) -> List[TeamMember]:
        result = await self.session.execute(
            self._members_with_email()
            .where(TeamMemberModel.user_id == user_id)
            .order_by(TeamMemberModel.created_at)
        )
        return [self._member_to_entity(m, email) for m, email in result.all()]

    async def get_membership(self, org_id: str, user_id: str) -> Optional[TeamMember]:
        result = await self.session.execute(
            self._members_with_email().where(
                TeamMemberModel.organization_id == org_id,
                TeamMemberModel.user_id == user_id,
            )
        )
        row = result.first()
        return self._member_to_entity(row[0], row[1]) if row else None

    async def get_member(self, org_id: str, member_id: str) -> Optional[TeamMember]:
        result = await self.session.execute(
            self._members_with_email().where(
                TeamMemberModel.organization_id == org_id,
                TeamMemberModel.id == member_id,
            )
        )
        row = result.first()
        return self._member_to_entity(row[0], row[1]) if row else None

    async def add_member(self, member: TeamMember) -> TeamMember:
        db_member = TeamMemberModel(
            id=member.id,
            organization_id=member.organization_id,
            user_id=member.user_id,
            role=member.role.value,
            invited_by=member.invited_by,
        )
        try:
            # 嵌套事务：唯一约束冲突只回滚到保存点，外层事务仍可用
            async with self.session.begin_nested():
                self.session.add(db_member)
        except IntegrityError as e:
            logger.warning(
                "team_member_conflict",
                organization_id=member.organization_id,
                user_id=member.user_id,
            )
            raise AlreadyAMemberException(member.organization_id, member.user_id) from e
        await self.session.refresh(db_member)
        return self._member_to_entity(db_member, member.email)

    async def lock_owners(self, org_id: str) -> List[TeamMember]:
        owners = await lock_and_read_all(
            self.session,
            select(TeamMemberModel)
            .where(
                TeamMemberModel.organization_id == org_id,
                TeamMemberModel.role == TeamRole.OWNER.value,
            )
            .order_by(TeamMemberModel.id),
        )
        return [self._member_to_entity(m) for m in owners]

    async def update_role(self, member_id: str, role: TeamRole) -> TeamMember:
        db_member = await conditional_update(
            self.session,
            TeamMemberModel,
            where=[TeamMemberModel.id == member_id],
            values={"role": role.value},
        )
        if db_member is None:
            raise TeamMemberNotFoundException(member_id)
        return self._member_to_entity(db_member)

    async def remove_member(self, member_id: str) -> None:
        result = await self.session.execute(
            delete(TeamMemberModel)
            .where(TeamMemberModel.id == member_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise TeamMemberNotFoundException(member_id)
