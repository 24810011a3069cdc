"""
支付链接仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from domain.payment_link.entity import PaymentLink
from domain.payment_link.repository import PaymentLinkRepository, ShortCodeCollisionError
from infrastructure.models.payment_link import PaymentLinkModel
from infrastructure.repositories.locking import atomic_increment, conditional_update
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyPaymentLinkRepository(PaymentLinkRepository):
    """支付链接仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentLinkModel) -> PaymentLink:
        """将数据库模型转换为领域实体"""
        return PaymentLink(
            id=model.id,
            user_id=model.user_id,
            short_code=model.short_code,
            name=model.name,
            amount=Decimal(str(model.amount)) if model.amount is not None else None,
            currency=model.currency,
            network=model.network,
            token=model.token,
            merchant_address=model.merchant_address,
            success_url=model.success_url,
            cancel_url=model.cancel_url,
            description=model.description,
            metadata=model.extra_metadata or {},
            active=model.active,
            usage_count=model.usage_count,
            max_usages=model.max_usages,
            expires_at=model.expires_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: PaymentLink) -> PaymentLinkModel:
        """将领域实体转换为数据库模型"""
        return PaymentLinkModel(
            id=entity.id,
            user_id=entity.user_id,
            short_code=entity.short_code,
            name=entity.name,
            amount=entity.amount,
            currency=entity.currency,
            network=entity.network,
            token=entity.token,
            merchant_address=entity.merchant_address,
            success_url=entity.success_url,
            cancel_url=entity.cancel_url,
            description=entity.description,
            extra_metadata=entity.metadata,
            active=entity.active,
            usage_count=entity.usage_count,
            max_usages=entity.max_usages,
            expires_at=entity.expires_at,
        )

    async def create(self, link: PaymentLink) -> PaymentLink:
        """创建支付链接；短码唯一约束冲突转换为 ShortCodeCollisionError"""
        db_link = self._to_model(link)
        self.session.add(db_link)
        try:
            await self.session.flush()
        except IntegrityError as e:
            if "short_code" in str(e.orig).lower() or "short_code" in str(e).lower():
                logger.warning("payment_link_short_code_collision", short_code=link.short_code)
                raise ShortCodeCollisionError(link.short_code) from e
            raise
        await self.session.refresh(db_link)
        return self._to_entity(db_link)

    async def get_by_id(self, link_id: str, owner_id: Optional[str] = None) -> Optional[PaymentLink]:
        """根据ID获取链接"""
        stmt = select(PaymentLinkModel).where(PaymentLinkModel.id == link_id)
        if owner_id is not None:
            stmt = stmt.where(PaymentLinkModel.user_id == owner_id)
        result = await self.session.execute(stmt)
        db_link = result.scalar_one_or_none()
        return self._to_entity(db_link) if db_link else None

    async def get_by_short_code(self, short_code: str) -> Optional[PaymentLink]:
        """根据短码获取链接"""
        result = await self.session.execute(
            select(PaymentLinkModel).where(PaymentLinkModel.short_code == short_code)
        )
        db_link = result.scalar_one_or_none()
        return self._to_entity(db_link) if db_link else None

    async def list_by_owner(
        self,
        owner_id: str,
        *,
        active: Optional[bool] = None,
        created_after: Optional[datetime] = None,
        created_before: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[List[PaymentLink], int]:
        """获取用户的链接列表（按创建时间倒序）及总数"""
        conditions = [PaymentLinkModel.user_id == owner_id]
        if active is not None:
            conditions.append(PaymentLinkModel.active.is_(active))
        if created_after is not None:
            conditions.append(PaymentLinkModel.created_at >= created_after)
        if created_before is not None:
            conditions.append(PaymentLinkModel.created_at <= created_before)

        total = await self.session.scalar(
            select(func.count()).select_from(PaymentLinkModel).where(*conditions)
        )
        result = await self.session.execute(
            select(PaymentLinkModel)
            .where(*conditions)
            .order_by(PaymentLinkModel.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()], int(total or 0)

    async def update(self, link: PaymentLink) -> Optional[PaymentLink]:
        """
        更新可变字段（usage_count 不在此处修改）

        新的 max_usages 与当前 usage_count 的比较放在同一条 UPDATE 里，
        读取之后发生的并发兑换不会让上限低于已使用次数；未命中返回 None。
        """
        where = [PaymentLinkModel.id == link.id, PaymentLinkModel.user_id == link.user_id]
        if link.max_usages is not None:
            where.append(PaymentLinkModel.usage_count <= link.max_usages)
        db_link = await conditional_update(
            self.session,
            PaymentLinkModel,
            where=where,
            values={
                "name": link.name,
                "active": link.active,
                "success_url": link.success_url,
                "cancel_url": link.cancel_url,
                "description": link.description,
                PaymentLinkModel.extra_metadata: link.metadata,
                "max_usages": link.max_usages,
                "expires_at": link.expires_at,
                "updated_at": link.updated_at,
            },
        )
        return self._to_entity(db_link) if db_link else None

    async def deactivate(self, link_id: str, owner_id: str) -> Optional[PaymentLink]:
        """停用链接（软删除）"""
        db_link = await conditional_update(
            self.session,
            PaymentLinkModel,
            where=[PaymentLinkModel.id == link_id, PaymentLinkModel.user_id == owner_id],
            values={"active": False},
        )
        return self._to_entity(db_link) if db_link else None

    async def increment_usage(self, link_id: str, owner_id: str, now: datetime) -> Optional[PaymentLink]:
        """
        原子兑换

        UPDATE payment_links SET usage_count = usage_count + 1
        WHERE id = :id AND user_id = :owner AND active
          AND (max_usages IS NULL OR usage_count < max_usages)
          AND (expires_at IS NULL OR expires_at > :now)
        RETURNING *
        """
        db_link = await atomic_increment(
            self.session,
            PaymentLinkModel,
            "usage_count",
            where=[
                PaymentLinkModel.id == link_id,
                PaymentLinkModel.user_id == owner_id,
                PaymentLinkModel.active.is_(True),
                or_(
                    PaymentLinkModel.max_usages.is_(None),
                    PaymentLinkModel.usage_count < PaymentLinkModel.max_usages,
                ),
                or_(
                    PaymentLinkModel.expires_at.is_(None),
                    PaymentLinkModel.expires_at > now,
                ),
            ],
        )
        if db_link is None:
            logger.info("payment_link_increment_rejected", link_id=link_id)
            return None
        logger.info(
            "payment_link_usage_incremented",
            link_id=link_id,
            usage_count=db_link.usage_count,
            max_usages=db_link.max_usages,
        )
        return self._to_entity(db_link)
