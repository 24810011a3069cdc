"""
投递重试退避计算
"""
from __future__ import annotations

import math
import random
from datetime import datetime, timedelta
from typing import Callable, Optional, Sequence

DEFAULT_RETRY_DELAYS = (60, 300, 900, 3600, 7200)
FALLBACK_DELAY_SECONDS = 7200


def retry_delay_seconds(
    attempts: int,
    delays: Sequence[int] = DEFAULT_RETRY_DELAYS,
    jitter_ratio: float = 0.1,
    rng: Callable[[], float] = random.random,
) -> int:
    """
    第 attempts 次失败后的等待秒数：base + floor(base * jitter_ratio * rand)

    attempts 从 1 开始；超出表长使用 7200 秒。
    """
    index = attempts - 1
    base = delays[index] if 0 <= index < len(delays) else FALLBACK_DELAY_SECONDS
    jitter = math.floor(base * jitter_ratio * rng())
    return base + jitter


def next_attempt_at(
    attempts: int,
    now: datetime,
    *,
    max_retries: int,
    delays: Sequence[int] = DEFAULT_RETRY_DELAYS,
    jitter_ratio: float = 0.1,
    rng: Callable[[], float] = random.random,
) -> Optional[datetime]:
    """返回下次重试时间；重试次数耗尽返回 None（终态）"""
    if attempts >= max_retries:
        return None
    return now + timedelta(seconds=retry_delay_seconds(attempts, delays, jitter_ratio, rng))
