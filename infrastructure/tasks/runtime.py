"""Run async application code from synchronous Celery tasks.

Each task invocation gets its own event loop via ``asyncio.run``; the async
engine and pooled connections are bound to that loop, so they are created and
disposed per run rather than shared with the web process.
"""
from __future__ import annotations

import asyncio
from functools import partial
from typing import Awaitable, Callable, TypeVar

from core.config import settings
from infrastructure.bootstrap import GatewayServices, build_services
from infrastructure.database import create_engine, create_session_factory
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

T = TypeVar("T")


async def _with_services(work: Callable[[GatewayServices], Awaitable[T]]) -> T:
    engine = create_engine(
        settings.database.url,
        echo=settings.database.echo,
        lock_timeout_seconds=settings.database.lock_timeout_seconds,
    )
    uow_factory = partial(SQLAlchemyUnitOfWork, create_session_factory(engine))
    services = await build_services(uow_factory)
    try:
        return await work(services)
    finally:
        await services.aclose()
        await engine.dispose()


def run_with_services(work: Callable[[GatewayServices], Awaitable[T]]) -> T:
    return asyncio.run(_with_services(work))
