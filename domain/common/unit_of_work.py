"""Unit of Work 抽象定义"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

from domain.payment.repository import PaymentSessionRepository, RefundRepository
from domain.payment_link.repository import PaymentLinkRepository
from domain.team.repository import TeamRepository
from domain.user.repository import UserRepository
from domain.webhook.repository import WebhookDeliveryRepository, WebhookEndpointRepository


class AbstractUnitOfWork(ABC):
    """应用层事务边界控制抽象

    一个 UoW 对应一个数据库事务；仓储中的行锁在事务结束时释放。
    """

    user_repository: UserRepository
    payment_repository: PaymentSessionRepository
    refund_repository: RefundRepository
    payment_link_repository: PaymentLinkRepository
    webhook_endpoint_repository: WebhookEndpointRepository
    webhook_delivery_repository: WebhookDeliveryRepository
    team_repository: TeamRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            # 只在非只读且未显式提交时自动提交
            if not self._readonly and not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        """提交事务"""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """回滚事务"""


# uow_factory(readonly=False) -> AbstractUnitOfWork
UnitOfWorkFactory = Callable[..., AbstractUnitOfWork]
