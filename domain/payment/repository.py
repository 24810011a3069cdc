"""
支付仓储接口 - 定义支付会话与退款数据访问的抽象接口

带 lock_ 前缀的方法必须在事务内调用，返回时已持有行锁（SELECT ... FOR UPDATE），
锁随事务提交或回滚释放。owner_id 非空时归属校验在加锁语句中完成。
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from .entity import PaymentSession, Refund, RefundStatus


class PaymentSessionRepository(ABC):
    """支付会话仓储抽象接口"""

    @abstractmethod
    async def create(self, payment: PaymentSession) -> PaymentSession:
        """创建支付会话"""
        pass

    @abstractmethod
    async def get_by_id(self, payment_id: str, owner_id: Optional[str] = None) -> Optional[PaymentSession]:
        """根据ID获取支付会话（可选归属过滤）"""
        pass

    @abstractmethod
    async def lock_for_update(self, payment_id: str, owner_id: Optional[str] = None) -> Optional[PaymentSession]:
        """加行锁读取支付会话"""
        pass

    @abstractmethod
    async def update(self, payment: PaymentSession) -> PaymentSession:
        """更新支付会话"""
        pass


class RefundRepository(ABC):
    """退款仓储抽象接口"""

    @abstractmethod
    async def create(self, refund: Refund) -> Refund:
        """创建退款记录"""
        pass

    @abstractmethod
    async def get_by_id(self, refund_id: str, owner_id: Optional[str] = None) -> Optional[Refund]:
        """根据ID获取退款（owner_id 非空时经支付会话校验归属）"""
        pass

    @abstractmethod
    async def lock_for_update(self, refund_id: str, owner_id: Optional[str] = None) -> Optional[Refund]:
        """加行锁读取退款；owner_id 非空时联表支付会话校验归属"""
        pass

    @abstractmethod
    async def list_by_payment(self, payment_session_id: str) -> List[Refund]:
        """获取支付会话的全部退款"""
        pass

    @abstractmethod
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
        pass

    @abstractmethod
    async def list_processing(self, limit: int = 100) -> List[Refund]:
        """获取待确认最终性的退款（PROCESSING 且已有 tx_hash）"""
        pass

    @abstractmethod
    async def update(self, refund: Refund) -> Refund:
        """更新退款记录"""
        pass
