"""
支付仓储实现 - 使用SQLAlchemy实现支付会话与退款的数据访问
"""
from typing import Optional, List
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from domain.payment.entity import PaymentSession, Refund, PaymentStatus, RefundStatus
from domain.payment.repository import PaymentSessionRepository, RefundRepository
from infrastructure.models.payment import PaymentSessionModel, RefundModel
from infrastructure.repositories.locking import lock_and_read
from core.logging_config import get_logger


logger = get_logger(__name__)


def _decimal(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


class SQLAlchemyPaymentSessionRepository(PaymentSessionRepository):
    """支付会话仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentSessionModel) -> PaymentSession:
        """将数据库模型转换为领域实体"""
        return PaymentSession(
            id=model.id,
            user_id=model.user_id,
            amount=_decimal(model.amount),
            currency=model.currency,
            network=model.network,
            token=model.token,
            merchant_address=model.merchant_address,
            customer_address=model.customer_address,
            status=PaymentStatus(model.status),
            tx_hash=model.tx_hash,
            metadata=model.extra_metadata or {},
            created_at=model.created_at,
            updated_at=model.updated_at,
            completed_at=model.completed_at,
        )

    def _to_model(self, entity: PaymentSession) -> PaymentSessionModel:
        """将领域实体转换为数据库模型"""
        return PaymentSessionModel(
            id=entity.id,
            user_id=entity.user_id,
            amount=entity.amount,
            currency=entity.currency,
            network=entity.network,
            token=entity.token,
            merchant_address=entity.merchant_address,
            customer_address=entity.customer_address,
            status=entity.status.value,
            tx_hash=entity.tx_hash,
            extra_metadata=entity.metadata,
            completed_at=entity.completed_at,
        )

    def _select(self, payment_id: str, owner_id: Optional[str]):
        stmt = select(PaymentSessionModel).where(PaymentSessionModel.id == payment_id)
        if owner_id is not None:
            stmt = stmt.where(PaymentSessionModel.user_id == owner_id)
        return stmt

    async def create(self, payment: PaymentSession) -> PaymentSession:
        """创建支付会话"""
        db_payment = self._to_model(payment)
        self.session.add(db_payment)
        await self.session.flush()
        await self.session.refresh(db_payment)
        logger.info("payment_session_created", payment_id=db_payment.id, amount=str(db_payment.amount))
        return self._to_entity(db_payment)

    async def get_by_id(self, payment_id: str, owner_id: Optional[str] = None) -> Optional[PaymentSession]:
        """根据ID获取支付会话"""
        result = await self.session.execute(self._select(payment_id, owner_id))
        db_payment = result.scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def lock_for_update(self, payment_id: str, owner_id: Optional[str] = None) -> Optional[PaymentSession]:
        """加行锁读取支付会话（归属条件在同一条加锁语句中）"""
        db_payment = await lock_and_read(self.session, self._select(payment_id, owner_id))
        return self._to_entity(db_payment) if db_payment else None

    async def update(self, payment: PaymentSession) -> PaymentSession:
        """更新支付会话状态"""
        db_payment = await self.session.get(PaymentSessionModel, payment.id)
        if db_payment is None:
            raise ValueError(f"Payment session {payment.id} not found")
        db_payment.status = payment.status.value
        db_payment.customer_address = payment.customer_address
        db_payment.tx_hash = payment.tx_hash
        db_payment.completed_at = payment.completed_at
        db_payment.extra_metadata = payment.metadata
        await self.session.flush()
        await self.session.refresh(db_payment)
        return self._to_entity(db_payment)


class SQLAlchemyRefundRepository(RefundRepository):
    """退款仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: RefundModel) -> Refund:
        """将数据库模型转换为领域实体"""
        return Refund(
            id=model.id,
            payment_session_id=model.payment_session_id,
            amount=_decimal(model.amount),
            status=RefundStatus(model.status),
            reason=model.reason,
            tx_hash=model.tx_hash,
            block_number=model.block_number,
            created_at=model.created_at,
            updated_at=model.updated_at,
            completed_at=model.completed_at,
        )

    def _to_model(self, entity: Refund) -> RefundModel:
        """将领域实体转换为数据库模型"""
        return RefundModel(
            id=entity.id,
            payment_session_id=entity.payment_session_id,
            amount=entity.amount,
            status=entity.status.value,
            reason=entity.reason,
            tx_hash=entity.tx_hash,
            block_number=entity.block_number,
            completed_at=entity.completed_at,
        )

    def _select(self, refund_id: str, owner_id: Optional[str]):
        stmt = select(RefundModel).where(RefundModel.id == refund_id)
        if owner_id is not None:
            # 经支付会话校验归属，归属条件与加锁在同一条语句中
            stmt = stmt.join(
                PaymentSessionModel, PaymentSessionModel.id == RefundModel.payment_session_id
            ).where(PaymentSessionModel.user_id == owner_id)
        return stmt

    async def create(self, refund: Refund) -> Refund:
        """创建退款记录"""
        db_refund = self._to_model(refund)
        self.session.add(db_refund)
        await self.session.flush()
        await self.session.refresh(db_refund)
        logger.info(
            "refund_created",
            refund_id=db_refund.id,
            payment_session_id=db_refund.payment_session_id,
            amount=str(db_refund.amount),
        )
        return self._to_entity(db_refund)

    async def get_by_id(self, refund_id: str, owner_id: Optional[str] = None) -> Optional[Refund]:
        """根据ID获取退款"""
        result = await self.session.execute(self._select(refund_id, owner_id))
        db_refund = result.scalar_one_or_none()
        return self._to_entity(db_refund) if db_refund else None

    async def lock_for_update(self, refund_id: str, owner_id: Optional[str] = None) -> Optional[Refund]:
        """加行锁读取退款；只锁退款行，不锁联表的支付会话"""
        db_refund = await lock_and_read(self.session, self._select(refund_id, owner_id), of=RefundModel)
        return self._to_entity(db_refund) if db_refund else None

    async def list_by_payment(self, payment_session_id: str) -> List[Refund]:
        """获取支付会话的全部退款"""
        result = await self.session.execute(
            select(RefundModel)
            .where(RefundModel.payment_session_id == payment_session_id)
            .order_by(RefundModel.created_at)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_by_owner(
        self,
        owner_id: str,
        *,
        payment_session_id: Optional[str] = None,
        status: Optional[RefundStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[List[Refund], int]:
        """获取用户的退款列表及总数"""
        conditions = [PaymentSessionModel.user_id == owner_id]
        if payment_session_id:
            conditions.append(RefundModel.payment_session_id == payment_session_id)
        if status is not None:
            conditions.append(RefundModel.status == status.value)

        base = select(RefundModel).join(
            PaymentSessionModel, PaymentSessionModel.id == RefundModel.payment_session_id
        ).where(*conditions)

        total = await self.session.scalar(select(func.count()).select_from(base.subquery()))
        result = await self.session.execute(
            base.order_by(RefundModel.created_at.desc()).offset(offset).limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()], int(total or 0)

    async def list_processing(self, limit: int = 100) -> List[Refund]:
        """PROCESSING 且已有交易哈希的退款，供最终性轮询"""
        result = await self.session.execute(
            select(RefundModel)
            .where(RefundModel.status == RefundStatus.PROCESSING.value, RefundModel.tx_hash.is_not(None))
            .order_by(RefundModel.updated_at)
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def update(self, refund: Refund) -> Refund:
        """更新退款记录（调用方已持有行锁）"""
        db_refund = await self.session.get(RefundModel, refund.id)
        if db_refund is None:
            raise ValueError(f"Refund {refund.id} not found")
        db_refund.status = refund.status.value
        db_refund.tx_hash = refund.tx_hash
        db_refund.block_number = refund.block_number
        db_refund.completed_at = refund.completed_at
        await self.session.flush()
        await self.session.refresh(db_refund)
        logger.info("refund_status_updated", refund_id=refund.id, status=refund.status.value)
        return self._to_entity(db_refund)
