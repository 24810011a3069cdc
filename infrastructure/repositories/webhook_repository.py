"""
Webhook 仓储实现 - 订阅端点与投递记录
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from domain.common.helpers import utcnow
from domain.webhook.entity import DeliveryStatus, EventType, WebhookDelivery, WebhookEndpoint
from domain.webhook.repository import WebhookDeliveryRepository, WebhookEndpointRepository
from infrastructure.models.webhook import WebhookDeliveryModel, WebhookEndpointModel
from infrastructure.repositories.locking import atomic_increment, conditional_update, lock_and_read
from core.logging_config import get_logger


logger = get_logger(__name__)


def _endpoint_to_entity(model: WebhookEndpointModel) -> WebhookEndpoint:
    return WebhookEndpoint(
        id=model.id,
        user_id=model.user_id,
        url=model.url,
        secret=model.secret,
        events=list(model.events or []),
        enabled=model.enabled,
        description=model.description,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _due_predicate(now: datetime):
    """PENDING，或 FAILED 且 next_attempt_at 非空且已到期；终态 FAILED 的 next_attempt_at 为空"""
    return or_(
        WebhookDeliveryModel.status == DeliveryStatus.PENDING.value,
        and_(
            WebhookDeliveryModel.status == DeliveryStatus.FAILED.value,
            WebhookDeliveryModel.next_attempt_at.is_not(None),
            WebhookDeliveryModel.next_attempt_at <= now,
        ),
    )


class SQLAlchemyWebhookEndpointRepository(WebhookEndpointRepository):
    """订阅端点仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, endpoint: WebhookEndpoint) -> WebhookEndpoint:
        db_endpoint = WebhookEndpointModel(
            id=endpoint.id,
            user_id=endpoint.user_id,
            url=endpoint.url,
            secret=endpoint.secret,
            events=list(endpoint.events),
            enabled=endpoint.enabled,
            description=endpoint.description,
        )
        self.session.add(db_endpoint)
        await self.session.flush()
        await self.session.refresh(db_endpoint)
        return _endpoint_to_entity(db_endpoint)

    async def get_by_id(self, endpoint_id: str, owner_id: Optional[str] = None) -> Optional[WebhookEndpoint]:
        stmt = select(WebhookEndpointModel).where(WebhookEndpointModel.id == endpoint_id)
        if owner_id is not None:
            stmt = stmt.where(WebhookEndpointModel.user_id == owner_id)
        db_endpoint = (await self.session.execute(stmt)).scalar_one_or_none()
        return _endpoint_to_entity(db_endpoint) if db_endpoint else None

    async def lock_for_update(self, endpoint_id: str, owner_id: str) -> Optional[WebhookEndpoint]:
        db_endpoint = await lock_and_read(
            self.session,
            select(WebhookEndpointModel).where(
                WebhookEndpointModel.id == endpoint_id,
                WebhookEndpointModel.user_id == owner_id,
            ),
        )
        return _endpoint_to_entity(db_endpoint) if db_endpoint else None

    async def list_by_owner(self, owner_id: str) -> List[WebhookEndpoint]:
        result = await self.session.execute(
            select(WebhookEndpointModel)
            .where(WebhookEndpointModel.user_id == owner_id)
            .order_by(WebhookEndpointModel.created_at.desc())
        )
        return [_endpoint_to_entity(m) for m in result.scalars().all()]

    async def list_subscribed(self, owner_id: str, event_type: EventType) -> List[WebhookEndpoint]:
        """
        用户下已启用且订阅了该事件的端点

        events 为 JSON 数组，跨方言的包含查询不可靠，这里在内存中过滤
        """
        result = await self.session.execute(
            select(WebhookEndpointModel)
            .where(
                WebhookEndpointModel.user_id == owner_id,
                WebhookEndpointModel.enabled.is_(True),
            )
            .order_by(WebhookEndpointModel.created_at)
        )
        endpoints = [_endpoint_to_entity(m) for m in result.scalars().all()]
        return [e for e in endpoints if e.subscribes_to(event_type)]

    async def update(self, endpoint: WebhookEndpoint) -> Optional[WebhookEndpoint]:
        db_endpoint = await conditional_update(
            self.session,
            WebhookEndpointModel,
            where=[
                WebhookEndpointModel.id == endpoint.id,
                WebhookEndpointModel.user_id == endpoint.user_id,
            ],
            values={
                "url": endpoint.url,
                "events": list(endpoint.events),
                "enabled": endpoint.enabled,
                "description": endpoint.description,
                "updated_at": endpoint.updated_at or utcnow(),
            },
        )
        return _endpoint_to_entity(db_endpoint) if db_endpoint else None

    async def replace_secret(self, endpoint_id: str, owner_id: str, secret: str) -> Optional[WebhookEndpoint]:
        db_endpoint = await conditional_update(
            self.session,
            WebhookEndpointModel,
            where=[
                WebhookEndpointModel.id == endpoint_id,
                WebhookEndpointModel.user_id == owner_id,
            ],
            values={"secret": secret, "updated_at": utcnow()},
        )
        return _endpoint_to_entity(db_endpoint) if db_endpoint else None

    async def delete(self, endpoint_id: str, owner_id: str) -> bool:
        """
        删除端点

        投递记录先于端点显式删除，不依赖数据库的外键级联（SQLite 默认不启用外键约束）
        """
        owned = select(WebhookEndpointModel.id).where(
            WebhookEndpointModel.id == endpoint_id,
            WebhookEndpointModel.user_id == owner_id,
        )
        await self.session.execute(
            delete(WebhookDeliveryModel)
            .where(WebhookDeliveryModel.endpoint_id.in_(owned))
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(
            delete(WebhookEndpointModel)
            .where(
                WebhookEndpointModel.id == endpoint_id,
                WebhookEndpointModel.user_id == owner_id,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0


class SQLAlchemyWebhookDeliveryRepository(WebhookDeliveryRepository):
    """投递记录仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: WebhookDeliveryModel, *, with_endpoint: bool = False) -> WebhookDelivery:
        """将数据库模型转换为领域实体；with_endpoint 时附带端点快照（需已预加载）"""
        endpoint = None
        if with_endpoint and model.endpoint is not None:
            endpoint = _endpoint_to_entity(model.endpoint)
        return WebhookDelivery(
            id=model.id,
            endpoint_id=model.endpoint_id,
            event_type=EventType(model.event_type),
            payload=model.payload,
            status=DeliveryStatus(model.status),
            attempts=model.attempts,
            next_attempt_at=model.next_attempt_at,
            last_attempt_at=model.last_attempt_at,
            succeeded_at=model.succeeded_at,
            response_code=model.response_code,
            response_body=model.response_body,
            error_message=model.error_message,
            endpoint=endpoint,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: WebhookDelivery) -> WebhookDeliveryModel:
        return WebhookDeliveryModel(
            id=entity.id,
            endpoint_id=entity.endpoint_id,
            event_type=entity.event_type.value,
            payload=entity.payload,
            status=entity.status.value,
            attempts=entity.attempts,
            next_attempt_at=entity.next_attempt_at,
        )

    async def create_many(self, deliveries: List[WebhookDelivery]) -> List[WebhookDelivery]:
        """批量创建投递记录"""
        if not deliveries:
            return []
        models = [self._to_model(d) for d in deliveries]
        self.session.add_all(models)
        await self.session.flush()
        return [self._to_entity(m) for m in models]

    async def get_by_id(self, delivery_id: str, owner_id: Optional[str] = None) -> Optional[WebhookDelivery]:
        stmt = (
            select(WebhookDeliveryModel)
            .options(selectinload(WebhookDeliveryModel.endpoint))
            .where(WebhookDeliveryModel.id == delivery_id)
        )
        if owner_id is not None:
            stmt = stmt.join(
                WebhookEndpointModel, WebhookEndpointModel.id == WebhookDeliveryModel.endpoint_id
            ).where(WebhookEndpointModel.user_id == owner_id)
        db_delivery = (await self.session.execute(stmt)).scalar_one_or_none()
        return self._to_entity(db_delivery, with_endpoint=True) if db_delivery else None

    async def list_due(self, now: datetime, max_retries: int, limit: int) -> List[WebhookDelivery]:
        """待投递队列：端点启用，且为 PENDING，或到期且未耗尽重试的 FAILED"""
        result = await self.session.execute(
            select(WebhookDeliveryModel)
            .join(WebhookEndpointModel, WebhookEndpointModel.id == WebhookDeliveryModel.endpoint_id)
            .options(selectinload(WebhookDeliveryModel.endpoint))
            .where(
                WebhookEndpointModel.enabled.is_(True),
                WebhookDeliveryModel.attempts < max_retries,
                _due_predicate(now),
            )
            .order_by(WebhookDeliveryModel.created_at)
            .limit(limit)
        )
        return [self._to_entity(m, with_endpoint=True) for m in result.scalars().all()]

    async def list_by_event_type(self, event_type: EventType) -> List[WebhookDelivery]:
        result = await self.session.execute(
            select(WebhookDeliveryModel)
            .where(WebhookDeliveryModel.event_type == event_type.value)
            .order_by(WebhookDeliveryModel.created_at)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def mark_delivering(
        self, delivery_id: str, now: datetime, max_retries: int
    ) -> Optional[WebhookDelivery]:
        """
        认领投递：PENDING，或已到重试时间且未耗尽重试的 FAILED

        谓词与 list_due 一致并在同一条 UPDATE 中判定：已被其他处理器认领、
        已 SUCCEEDED、重试耗尽的终态 FAILED、未到重试时间、端点已停用的记录都返回 None。
        """
        db_delivery = await atomic_increment(
            self.session,
            WebhookDeliveryModel,
            "attempts",
            where=[
                WebhookDeliveryModel.id == delivery_id,
                WebhookDeliveryModel.attempts < max_retries,
                _due_predicate(now),
                WebhookDeliveryModel.endpoint_id.in_(
                    select(WebhookEndpointModel.id).where(WebhookEndpointModel.enabled.is_(True))
                ),
            ],
            values={
                "status": DeliveryStatus.DELIVERING.value,
                "last_attempt_at": now,
                "updated_at": now,
            },
        )
        if db_delivery is None:
            logger.info("webhook_delivery_claim_skipped", delivery_id=delivery_id)
            return None
        return self._to_entity(db_delivery)

    async def mark_succeeded(
        self,
        delivery_id: str,
        *,
        now: datetime,
        response_code: int,
        response_body: Optional[str],
    ) -> None:
        await conditional_update(
            self.session,
            WebhookDeliveryModel,
            where=[WebhookDeliveryModel.id == delivery_id],
            values={
                "status": DeliveryStatus.SUCCEEDED.value,
                "succeeded_at": now,
                "next_attempt_at": None,
                "response_code": response_code,
                "response_body": response_body,
                "error_message": None,
                "updated_at": now,
            },
        )

    async def mark_failed(
        self,
        delivery_id: str,
        *,
        next_attempt_at: Optional[datetime],
        error_message: str,
        response_code: Optional[int] = None,
        response_body: Optional[str] = None,
    ) -> None:
        await conditional_update(
            self.session,
            WebhookDeliveryModel,
            where=[
                WebhookDeliveryModel.id == delivery_id,
                WebhookDeliveryModel.status != DeliveryStatus.SUCCEEDED.value,
            ],
            values={
                "status": DeliveryStatus.FAILED.value,
                "next_attempt_at": next_attempt_at,
                "error_message": error_message,
                "response_code": response_code,
                "response_body": response_body,
            },
        )
