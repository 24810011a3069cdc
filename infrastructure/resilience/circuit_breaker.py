"""
Webhook 端点熔断器实现

- InMemoryCircuitBreaker：进程内状态（默认），多实例部署时各实例独立计数
- RedisCircuitBreaker：状态保存在 Redis，多实例共享；Redis 故障时放行（熔断失效而不是阻断投递）
"""
from __future__ import annotations

import asyncio
import time
from typing import Callable, Optional

from redis.exceptions import RedisError

from core.config import WebhookSettings
from core.logging_config import get_logger
from domain.webhook.circuit import CircuitBreakerState, CircuitState
from infrastructure.cache.redis_cache import RedisCache, init_redis_cache


logger = get_logger(__name__)


class InMemoryCircuitBreaker:
    def __init__(
        self,
        failure_threshold: int = 10,
        cooldown_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._threshold = failure_threshold
        self._cooldown = cooldown_seconds
        self._clock = clock
        self._states: dict[str, CircuitBreakerState] = {}
        self._lock = asyncio.Lock()

    def _state(self, endpoint_id: str) -> CircuitBreakerState:
        state = self._states.get(endpoint_id)
        if state is None:
            state = self._states[endpoint_id] = CircuitBreakerState()
        return state

    async def is_circuit_open(self, endpoint_id: str) -> bool:
        async with self._lock:
            state = self._state(endpoint_id)
            before = state.state
            allowed = state.allow_request(self._clock(), self._cooldown)
            if before == CircuitState.OPEN and state.state == CircuitState.HALF_OPEN:
                logger.info("circuit_breaker_half_open", endpoint_id=endpoint_id)
            return not allowed

    async def release_trial(self, endpoint_id: str) -> None:
        async with self._lock:
            state = self._states.get(endpoint_id)
            if state is not None:
                state.release_trial()

    async def record_success(self, endpoint_id: str) -> None:
        async with self._lock:
            state = self._states.get(endpoint_id)
            if state is None:
                return
            if state.state != CircuitState.CLOSED:
                logger.info("circuit_breaker_closed", endpoint_id=endpoint_id)
            # 关闭状态无需保留条目
            del self._states[endpoint_id]

    async def record_failure(self, endpoint_id: str) -> None:
        async with self._lock:
            state = self._state(endpoint_id)
            if state.on_failure(self._clock(), self._threshold):
                logger.warning(
                    "circuit_breaker_opened",
                    endpoint_id=endpoint_id,
                    failures=state.failures,
                    cooldown_seconds=self._cooldown,
                )

    async def get_state(self, endpoint_id: str) -> CircuitState:
        async with self._lock:
            state = self._states.get(endpoint_id)
            return state.state if state else CircuitState.CLOSED

    def reset(self) -> None:
        self._states.clear()


class RedisCircuitBreaker:
    """
    键布局（均带命名空间前缀）：
      circuit:{endpoint_id}        hash {state, failures, opened_at}
      circuit:{endpoint_id}:trial  HALF_OPEN 试探名额（SET NX EX cooldown）
    """

    def __init__(
        self,
        redis: RedisCache,
        failure_threshold: int = 10,
        cooldown_seconds: float = 300.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._redis = redis
        self._threshold = failure_threshold
        self._cooldown = cooldown_seconds
        self._clock = clock
        # 状态键保留到冷却期之后，长期无失败的端点自然过期
        self._ttl = int(cooldown_seconds * 4) or 1

    @staticmethod
    def _key(endpoint_id: str) -> str:
        return f"circuit:{endpoint_id}"

    async def is_circuit_open(self, endpoint_id: str) -> bool:
        try:
            data = await self._redis.hgetall(self._key(endpoint_id))
            state = data.get("state", CircuitState.CLOSED.value)
            if state == CircuitState.CLOSED.value:
                return False
            if state == CircuitState.OPEN.value:
                opened_at = float(data.get("opened_at") or 0)
                if self._clock() - opened_at < self._cooldown:
                    return True
            # 冷却期已过（或已是 HALF_OPEN）：只有抢到试探名额的一次投递被放行
            acquired = await self._redis.set_if_absent(
                f"{self._key(endpoint_id)}:trial", str(self._clock()), int(self._cooldown)
            )
            if not acquired:
                return True
            await self._redis.hset(
                self._key(endpoint_id), {"state": CircuitState.HALF_OPEN.value}, ttl=self._ttl
            )
            logger.info("circuit_breaker_half_open", endpoint_id=endpoint_id)
            return False
        except RedisError as e:
            logger.error("circuit_breaker_redis_error", endpoint_id=endpoint_id, op="is_circuit_open", error=str(e))
            return False

    async def release_trial(self, endpoint_id: str) -> None:
        try:
            await self._redis.delete(f"{self._key(endpoint_id)}:trial")
        except RedisError as e:
            logger.error("circuit_breaker_redis_error", endpoint_id=endpoint_id, op="release_trial", error=str(e))

    async def record_success(self, endpoint_id: str) -> None:
        try:
            await self._redis.delete(self._key(endpoint_id), f"{self._key(endpoint_id)}:trial")
        except RedisError as e:
            logger.error("circuit_breaker_redis_error", endpoint_id=endpoint_id, op="record_success", error=str(e))

    async def record_failure(self, endpoint_id: str) -> None:
        key = self._key(endpoint_id)
        try:
            data = await self._redis.hgetall(key)
            half_open = data.get("state") == CircuitState.HALF_OPEN.value
            failures = await self._redis.hincrby(key, "failures", 1, ttl=self._ttl)
            if half_open or (failures >= self._threshold and data.get("state") != CircuitState.OPEN.value):
                await self._redis.hset(
                    key,
                    {"state": CircuitState.OPEN.value, "opened_at": self._clock()},
                    ttl=self._ttl,
                )
                await self._redis.delete(f"{key}:trial")
                logger.warning(
                    "circuit_breaker_opened",
                    endpoint_id=endpoint_id,
                    failures=failures,
                    cooldown_seconds=self._cooldown,
                )
        except RedisError as e:
            logger.error("circuit_breaker_redis_error", endpoint_id=endpoint_id, op="record_failure", error=str(e))

    async def get_state(self, endpoint_id: str) -> CircuitState:
        try:
            data = await self._redis.hgetall(self._key(endpoint_id))
        except RedisError as e:
            logger.error("circuit_breaker_redis_error", endpoint_id=endpoint_id, op="get_state", error=str(e))
            return CircuitState.CLOSED
        return CircuitState(data.get("state", CircuitState.CLOSED.value))


async def build_circuit_breaker(config: Optional[WebhookSettings] = None, redis_url: Optional[str] = None):
    """
    按配置选择后端：circuit_backend=redis，或 auto 且配置了 REDIS__URL 时使用 Redis；否则进程内
    """
    config = config or WebhookSettings()
    backend = (config.circuit_backend or "auto").lower()
    use_redis = backend == "redis" or (backend == "auto" and bool(redis_url))
    if use_redis:
        redis = await init_redis_cache()
        logger.info("circuit_breaker_backend", backend="redis")
        return RedisCircuitBreaker(
            redis,
            failure_threshold=config.circuit_failure_threshold,
            cooldown_seconds=config.circuit_cooldown_seconds,
        )
    logger.info("circuit_breaker_backend", backend="memory")
    return InMemoryCircuitBreaker(
        failure_threshold=config.circuit_failure_threshold,
        cooldown_seconds=config.circuit_cooldown_seconds,
    )
