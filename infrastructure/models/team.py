"""
团队数据库模型 - 组织与成员
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint, Index
from datetime import datetime, timezone

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrganizationModel(Base):
    """组织数据库模型"""
    __tablename__ = "organizations"

    id = Column(String(36), primary_key=True, comment="组织ID（UUID）")
    name = Column(String(200), nullable=False, comment="组织名称")
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, comment="创建时间")

    def __repr__(self):
        return f"<OrganizationModel(id='{self.id}', name='{self.name}')>"


class TeamMemberModel(Base):
    """组织成员数据库模型"""
    __tablename__ = "team_members"

    id = Column(String(36), primary_key=True, comment="成员记录ID（UUID）")
    organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        comment="组织ID"
    )
    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="用户ID"
    )
    role = Column(String(16), nullable=False, default="MEMBER", comment="角色: OWNER/ADMIN/MEMBER/VIEWER")
    invited_by = Column(String(36), nullable=True, comment="邀请人用户ID")
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, comment="加入时间")

    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", name="uq_team_members_org_user"),
        Index("ix_team_members_org_role", "organization_id", "role"),
    )

    def __repr__(self):
        return f"<TeamMemberModel(id='{self.id}', user_id='{self.user_id}', role='{self.role}')>"
