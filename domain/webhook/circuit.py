"""
熔断器状态机（按端点）

CLOSED --连续失败达到阈值--> OPEN --冷却期结束--> HALF_OPEN（只放行一次试探）
HALF_OPEN --试探成功--> CLOSED；--试探失败--> OPEN（重新计时）
任意一次成功都会清零连续失败计数。
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass
class CircuitBreakerState:
    state: CircuitState = CircuitState.CLOSED
    failures: int = 0
    opened_at: Optional[float] = None
    trial_started_at: Optional[float] = None
    changed_at: Optional[float] = None

    def allow_request(self, now: float, cooldown_seconds: float) -> bool:
        """是否放行一次投递尝试；OPEN 冷却期满后转为 HALF_OPEN 并占用唯一的试探名额"""
        if self.state == CircuitState.CLOSED:
            return True
        if self.state == CircuitState.OPEN:
            if self.opened_at is not None and now - self.opened_at < cooldown_seconds:
                return False
            self.state = CircuitState.HALF_OPEN
            self.trial_started_at = now
            self.changed_at = now
            return True
        # HALF_OPEN：试探进行中则拒绝；试探迟迟没有结果（超过冷却期）时允许重新试探
        if self.trial_started_at is not None and now - self.trial_started_at < cooldown_seconds:
            return False
        self.trial_started_at = now
        return True

    def release_trial(self) -> None:
        """归还未被使用的试探名额（放行后投递未被认领）"""
        if self.state == CircuitState.HALF_OPEN:
            self.trial_started_at = None

    def on_success(self, now: float) -> None:
        if self.state != CircuitState.CLOSED:
            self.changed_at = now
        self.state = CircuitState.CLOSED
        self.failures = 0
        self.opened_at = None
        self.trial_started_at = None

    def on_failure(self, now: float, threshold: int) -> bool:
        """
        记录一次失败

        Returns:
            True 表示本次失败使熔断器进入 OPEN
        """
        self.failures += 1
        if self.state == CircuitState.HALF_OPEN or self.failures >= threshold:
            was_open = self.state == CircuitState.OPEN
            self.state = CircuitState.OPEN
            self.opened_at = now
            self.trial_started_at = None
            self.changed_at = now
            return not was_open
        return False
