"""
支付链接仓储接口
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from .entity import PaymentLink


class ShortCodeCollisionError(Exception):
    """插入时短码唯一约束冲突（由基础设施层识别后抛出，应用层负责重试）"""


class PaymentLinkRepository(ABC):
    """支付链接仓储抽象接口"""

    @abstractmethod
    async def create(self, link: PaymentLink) -> PaymentLink:
        """
        创建支付链接

        Raises:
            ShortCodeCollisionError: 短码已存在
        """
        pass

    @abstractmethod
    async def get_by_id(self, link_id: str, owner_id: Optional[str] = None) -> Optional[PaymentLink]:
        """根据ID获取链接（可选归属过滤）"""
        pass

    @abstractmethod
    async def get_by_short_code(self, short_code: str) -> Optional[PaymentLink]:
        """根据短码获取链接（公开访问，不校验归属）"""
        pass

    @abstractmethod
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
        pass

    @abstractmethod
    async def update(self, link: PaymentLink) -> Optional[PaymentLink]:
        """更新可变字段；max_usages 低于当前 usage_count 或记录不存在时返回 None"""
        pass

    @abstractmethod
    async def deactivate(self, link_id: str, owner_id: str) -> Optional[PaymentLink]:
        """条件更新 active=false；未命中返回 None"""
        pass

    @abstractmethod
    async def increment_usage(self, link_id: str, owner_id: str, now: datetime) -> Optional[PaymentLink]:
        """
        原子兑换：单条 UPDATE ... WHERE 同时校验归属、启用、未过期、未达上限并 +1

        任一条件不满足返回 None。
        """
        pass
