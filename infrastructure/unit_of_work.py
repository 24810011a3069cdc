"""SQLAlchemy Unit of Work 实现"""
from __future__ import annotations

from typing import Optional, Callable
import inspect

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import AsyncSessionLocal
from infrastructure.repositories.payment_link_repository import SQLAlchemyPaymentLinkRepository
from infrastructure.repositories.payment_repository import (
    SQLAlchemyPaymentSessionRepository,
    SQLAlchemyRefundRepository,
)
from infrastructure.repositories.team_repository import SQLAlchemyTeamRepository
from infrastructure.repositories.user_repository import SQLAlchemyUserRepository
from infrastructure.repositories.webhook_repository import (
    SQLAlchemyWebhookDeliveryRepository,
    SQLAlchemyWebhookEndpointRepository,
)


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """基于SQLAlchemy的Unit of Work"""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
        lock_timeout_seconds: Optional[float] = None,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self._external_session = session
        self._lock_timeout_seconds = (
            lock_timeout_seconds if lock_timeout_seconds is not None
            else settings.database.lock_timeout_seconds
        )
        self.session: Optional[AsyncSession] = session
        self._clear_repositories()

    def _clear_repositories(self) -> None:
        self.user_repository = None
        self.payment_repository = None
        self.refund_repository = None
        self.payment_link_repository = None
        self.webhook_endpoint_repository = None
        self.webhook_delivery_repository = None
        self.team_repository = None

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        self.user_repository = SQLAlchemyUserRepository(self.session)
        self.payment_repository = SQLAlchemyPaymentSessionRepository(self.session)
        self.refund_repository = SQLAlchemyRefundRepository(self.session)
        self.payment_link_repository = SQLAlchemyPaymentLinkRepository(self.session)
        self.webhook_endpoint_repository = SQLAlchemyWebhookEndpointRepository(self.session)
        self.webhook_delivery_repository = SQLAlchemyWebhookDeliveryRepository(self.session)
        self.team_repository = SQLAlchemyTeamRepository(self.session)
        # 仅在非只读模式下显式开启事务
        if not self._readonly:
            self._transaction = await self.session.begin()
            await self._apply_lock_timeout()
        return self

    async def _apply_lock_timeout(self) -> None:
        """PostgreSQL 上限制行锁等待时间，超时由数据库报错并回滚本事务"""
        bind = self.session.get_bind()
        if bind.dialect.name != "postgresql":
            return
        ms = int(self._lock_timeout_seconds * 1000)
        await self.session.execute(text(f"SET LOCAL lock_timeout = '{ms}ms'"))

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            # 事务在 commit/rollback 后通常会结束，这里仅在仍然活动时做安全关闭
            tx = getattr(self, "_transaction", None)
            if tx is not None and getattr(tx, "is_active", False):
                close = getattr(tx, "close", None)
                if callable(close):
                    res = close()
                    if inspect.isawaitable(res):
                        await res
            if self._external_session is None and self.session is not None:
                await self.session.close()
                self.session = None
            self._clear_repositories()

    async def commit(self) -> None:
        if self._readonly:
            # 只读情况下不提交
            self._committed = True
            return
        if self.session and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False
