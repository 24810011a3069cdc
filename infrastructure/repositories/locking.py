"""
行锁与条件更新原语

所有需要互斥保证的数据访问都经由这里，不在仓储方法里手写 FOR UPDATE / UPDATE ... WHERE：

- lock_and_read：事务内 SELECT ... FOR UPDATE，锁随事务结束释放
- conditional_update：单条 UPDATE ... WHERE <谓词> RETURNING，谓词不成立时不写入并返回 None
- atomic_increment：在 conditional_update 上对计数列做 col = col + n

PostgreSQL 上锁等待受 SET LOCAL lock_timeout 约束（见 SQLAlchemyUnitOfWork）；
SQLite 忽略 FOR UPDATE，由 BEGIN IMMEDIATE 事务保证写互斥（见 infrastructure.database）。
"""
from __future__ import annotations

from typing import Any, Optional, Sequence, Type, TypeVar

from sqlalchemy import Select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from infrastructure.models.base import Base

ModelT = TypeVar("ModelT", bound=Base)


async def lock_and_read(session: AsyncSession, stmt: Select, *, of: Optional[Any] = None) -> Optional[Any]:
    """执行加锁查询并返回第一行实体（未命中返回 None）"""
    locked = stmt.with_for_update(of=of) if of is not None else stmt.with_for_update()
    result = await session.execute(locked.execution_options(populate_existing=True))
    return result.scalars().first()


async def lock_and_read_all(session: AsyncSession, stmt: Select, *, of: Optional[Any] = None) -> list[Any]:
    """执行加锁查询并返回全部行"""
    locked = stmt.with_for_update(of=of) if of is not None else stmt.with_for_update()
    result = await session.execute(locked.execution_options(populate_existing=True))
    return list(result.scalars().all())


async def conditional_update(
    session: AsyncSession,
    model: Type[ModelT],
    *,
    where: Sequence[ColumnElement[bool]],
    values: dict[Any, Any],
) -> Optional[ModelT]:
    """
    条件更新：读取与写入合并为一条语句

    Returns:
        更新后的行；谓词不成立（含行不存在）时返回 None
    """
    stmt = (
        update(model)
        .where(*where)
        .values(values)
        .returning(model)
        .execution_options(populate_existing=True, synchronize_session=False)
    )
    result = await session.execute(stmt)
    return result.scalars().first()


async def atomic_increment(
    session: AsyncSession,
    model: Type[ModelT],
    column: str,
    *,
    where: Sequence[ColumnElement[bool]],
    amount: int = 1,
    values: Optional[dict[Any, Any]] = None,
) -> Optional[ModelT]:
    """对计数列做原子递增，可同时写入其它列"""
    col = getattr(model, column)
    changes: dict[Any, Any] = {column: col + amount}
    if values:
        changes.update(values)
    return await conditional_update(session, model, where=where, values=changes)
