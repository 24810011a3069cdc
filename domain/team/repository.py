"""
团队仓储接口
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import Organization, TeamMember, TeamRole


class TeamRepository(ABC):
    """组织与成员仓储抽象接口"""

    @abstractmethod
    async def create_organization(self, org: Organization, owner: TeamMember) -> Organization:
        """创建组织并写入创建者的 OWNER 成员记录"""
        pass

    @abstractmethod
    async def get_organization(self, org_id: str) -> Optional[Organization]:
        pass

    @abstractmethod
    async def list_members(self, org_id: str) -> List[TeamMember]:
        pass

    @abstractmethod
    async def list_memberships(self, user_id: str) -> List[TeamMember]:
        pass

    @abstractmethod
    async def get_membership(self, org_id: str, user_id: str) -> Optional[TeamMember]:
        pass

    @abstractmethod
    async def get_member(self, org_id: str, member_id: str) -> Optional[TeamMember]:
        pass

    @abstractmethod
    async def add_member(self, member: TeamMember) -> TeamMember:
        """
        Raises:
            AlreadyAMemberException: (organization_id, user_id) 唯一约束冲突
        """
        pass

    @abstractmethod
    async def lock_owners(self, org_id: str) -> List[TeamMember]:
        """对组织的全部 OWNER 行加锁，串行化“最后一个 OWNER”判断"""
        pass

    @abstractmethod
    async def update_role(self, member_id: str, role: TeamRole) -> TeamMember:
        pass

    @abstractmethod
    async def remove_member(self, member_id: str) -> None:
        pass
