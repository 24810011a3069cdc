"""
团队领域实体 - 组织与成员角色
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from domain.common.helpers import ensure_utc, new_id


class TeamRole(str, Enum):
    """成员角色"""
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"
    VIEWER = "VIEWER"


# 可管理成员的角色
MANAGER_ROLES = frozenset({TeamRole.OWNER, TeamRole.ADMIN})


@dataclass
class Organization:
    name: str
    id: str = field(default_factory=new_id)
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.created_at = ensure_utc(self.created_at)


@dataclass
class TeamMember:
    organization_id: str
    user_id: str
    role: TeamRole = TeamRole.MEMBER
    invited_by: Optional[str] = None
    email: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.created_at = ensure_utc(self.created_at)

    @property
    def is_owner(self) -> bool:
        return self.role == TeamRole.OWNER

    def can_manage(self, target_role: TeamRole, current_role: Optional[TeamRole] = None) -> bool:
        """
        是否可以把成员设置为 target_role

        ADMIN 不能授予 OWNER，也不能改动现任 OWNER。
        """
        if self.role not in MANAGER_ROLES:
            return False
        if self.role == TeamRole.ADMIN:
            if target_role == TeamRole.OWNER or current_role == TeamRole.OWNER:
                return False
        return True
