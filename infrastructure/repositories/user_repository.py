"""
用户仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from domain.user.entity import User
from domain.user.repository import UserRepository
from infrastructure.models.user import UserModel


class SQLAlchemyUserRepository(UserRepository):
    """用户仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: UserModel) -> User:
        return User(id=model.id, email=model.email, created_at=model.created_at)

    async def create(self, user: User) -> User:
        """创建用户"""
        db_user = UserModel(id=user.id, email=user.email)
        self.session.add(db_user)
        await self.session.flush()
        await self.session.refresh(db_user)
        return self._to_entity(db_user)

    async def get_by_id(self, user_id: str) -> Optional[User]:
        db_user = await self.session.get(UserModel, user_id)
        return self._to_entity(db_user) if db_user else None

    async def get_by_email(self, email: str) -> Optional[User]:
        """根据邮箱获取用户（不区分大小写）"""
        result = await self.session.execute(
            select(UserModel).where(UserModel.email == email.strip().lower())
        )
        db_user = result.scalar_one_or_none()
        return self._to_entity(db_user) if db_user else None
