"""
Webhook 仓储接口
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from .entity import EventType, WebhookDelivery, WebhookEndpoint


class WebhookEndpointRepository(ABC):
    """订阅端点仓储抽象接口"""

    @abstractmethod
    async def create(self, endpoint: WebhookEndpoint) -> WebhookEndpoint:
        pass

    @abstractmethod
    async def get_by_id(self, endpoint_id: str, owner_id: Optional[str] = None) -> Optional[WebhookEndpoint]:
        pass

    @abstractmethod
    async def lock_for_update(self, endpoint_id: str, owner_id: str) -> Optional[WebhookEndpoint]:
        """事务内加行锁读取（按归属过滤）"""
        pass

    @abstractmethod
    async def list_by_owner(self, owner_id: str) -> List[WebhookEndpoint]:
        """用户的全部端点，按创建时间倒序"""
        pass

    @abstractmethod
    async def list_subscribed(self, owner_id: str, event_type: EventType) -> List[WebhookEndpoint]:
        """用户下已启用且订阅了该事件的端点"""
        pass

    @abstractmethod
    async def update(self, endpoint: WebhookEndpoint) -> Optional[WebhookEndpoint]:
        """更新 url、events、enabled、description；未命中返回 None"""
        pass

    @abstractmethod
    async def replace_secret(self, endpoint_id: str, owner_id: str, secret: str) -> Optional[WebhookEndpoint]:
        """写入新的密文；未命中返回 None"""
        pass

    @abstractmethod
    async def delete(self, endpoint_id: str, owner_id: str) -> bool:
        """删除端点及其投递记录；未命中返回 False"""
        pass


class WebhookDeliveryRepository(ABC):
    """投递记录仓储抽象接口"""

    @abstractmethod
    async def create_many(self, deliveries: List[WebhookDelivery]) -> List[WebhookDelivery]:
        pass

    @abstractmethod
    async def get_by_id(self, delivery_id: str, owner_id: Optional[str] = None) -> Optional[WebhookDelivery]:
        """获取投递记录（含端点快照）；owner_id 非空时经端点校验归属"""
        pass

    @abstractmethod
    async def list_due(self, now: datetime, max_retries: int, limit: int) -> List[WebhookDelivery]:
        """端点启用，且为 PENDING，或 FAILED 且 next_attempt_at <= now 且 attempts < max_retries（含端点）"""
        pass

    @abstractmethod
    async def list_by_event_type(self, event_type: EventType) -> List[WebhookDelivery]:
        pass

    @abstractmethod
    async def mark_delivering(
        self, delivery_id: str, now: datetime, max_retries: int
    ) -> Optional[WebhookDelivery]:
        """
        原子地置为 DELIVERING、attempts + 1、记录 last_attempt_at，返回更新后的记录

        只认领到期的记录（与 list_due 同一谓词）；不可认领时返回 None
        """
        pass

    @abstractmethod
    async def mark_succeeded(
        self,
        delivery_id: str,
        *,
        now: datetime,
        response_code: int,
        response_body: Optional[str],
    ) -> None:
        pass

    @abstractmethod
    async def mark_failed(
        self,
        delivery_id: str,
        *,
        next_attempt_at: Optional[datetime],
        error_message: str,
        response_code: Optional[int] = None,
        response_body: Optional[str] = None,
    ) -> None:
        """next_attempt_at 为 None 表示终态失败"""
        pass
