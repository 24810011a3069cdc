"""
用户数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import Column, String, DateTime
from datetime import datetime, timezone

from .base import Base


class UserModel(Base):
    """
    用户数据库模型（商户账号）

    所有业务规则都在 domain.user.entity.User 中
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, comment="用户ID（UUID）")
    email = Column(String(255), unique=True, index=True, nullable=False, comment="邮箱")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )

    def __repr__(self):
        return f"<UserModel(id='{self.id}', email='{self.email}')>"
