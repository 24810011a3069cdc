"""
数据库配置和连接管理
"""
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.engine import make_url
from typing import AsyncGenerator

from core.config import settings
from infrastructure.models import Base


def _build_async_url(database_url: str) -> str:
    """确保数据库URL使用异步驱动"""
    url = make_url(database_url)
    drivername = url.drivername

    if "+" in drivername:
        return database_url

    driver_map = {
        "postgresql": "postgresql+asyncpg",
        "postgres": "postgresql+asyncpg",
        "sqlite": "sqlite+aiosqlite",
    }

    if drivername not in driver_map:
        raise ValueError(f"不支持的数据库驱动: {drivername}. 请使用 async 驱动或更新 DATABASE__URL")

    return url.set(drivername=driver_map[drivername]).render_as_string(hide_password=False)


def _enable_sqlite_immediate_transactions(engine: AsyncEngine) -> None:
    """
    SQLite 不支持 SELECT ... FOR UPDATE：每个事务以 BEGIN IMMEDIATE 开启，
    在事务开始时即取得写锁，使并发写事务串行化，等价于行锁的互斥效果。
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # pragma: no cover - driver hook
        # 关闭 aiosqlite 自动发出的 BEGIN，由下面的 begin 事件接管
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):  # pragma: no cover - driver hook
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine(database_url: str, *, echo: bool = False, lock_timeout_seconds: float = 10.0) -> AsyncEngine:
    """按 URL 创建异步引擎；SQLite 额外设置 busy timeout 与 IMMEDIATE 事务"""
    async_url = _build_async_url(database_url)
    if make_url(async_url).get_backend_name() == "sqlite":
        engine = create_async_engine(
            async_url,
            echo=echo,
            connect_args={"timeout": lock_timeout_seconds},
        )
        _enable_sqlite_immediate_transactions(engine)
        return engine
    return create_async_engine(async_url, echo=echo, pool_pre_ping=True)


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=bind, expire_on_commit=False)


engine = create_engine(
    settings.database.url,
    echo=settings.database.echo,
    lock_timeout_seconds=settings.database.lock_timeout_seconds,
)

AsyncSessionLocal = create_session_factory(engine)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """获取数据库会话（不自动提交，由调用方控制事务）"""
    async with AsyncSessionLocal() as session:
        yield session


async def create_tables(bind: AsyncEngine = engine):
    """
    创建所有表

    开发与测试环境使用；生产环境使用 Alembic 迁移
    """
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_tables(bind: AsyncEngine = engine):
    """
    删除所有表

    警告：仅用于测试环境，会删除所有数据！
    """
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
