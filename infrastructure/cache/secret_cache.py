"""
已解密 Webhook 密钥的进程内缓存

以密文为键，避免每次投递都做一次 AES 解密。容量与有效期都有上限：
插入时若已满，先清理过期项；仍满则按插入顺序丢弃最旧的 (size - max + 100) 项。
实例由应用生命周期持有并在关闭时清空，不使用模块级单例。
"""
from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Callable, Optional

from core.logging_config import get_logger


logger = get_logger(__name__)

EVICTION_HEADROOM = 100


class SecretCache:
    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        # encrypted -> (plaintext, expires_at)
        self._entries: "OrderedDict[str, tuple[str, float]]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, encrypted: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(encrypted)
            if entry is None:
                return None
            plaintext, expires_at = entry
            if expires_at <= self._clock():
                del self._entries[encrypted]
                return None
            return plaintext

    def set(self, encrypted: str, plaintext: str) -> None:
        with self._lock:
            if encrypted in self._entries:
                del self._entries[encrypted]
            elif len(self._entries) >= self._max_entries:
                self._make_room()
            self._entries[encrypted] = (plaintext, self._clock() + self._ttl)

    def get_or_load(self, encrypted: str, loader: Callable[[str], str]) -> str:
        """命中直接返回；未命中调用 loader 解密并写入。loader 的异常原样抛出，不写缓存"""
        cached = self.get(encrypted)
        if cached is not None:
            return cached
        plaintext = loader(encrypted)
        self.set(encrypted, plaintext)
        return plaintext

    def invalidate(self, encrypted: str) -> bool:
        """端点轮换或删除密钥时调用"""
        with self._lock:
            return self._entries.pop(encrypted, None) is not None

    def evict_expired(self) -> int:
        with self._lock:
            return self._evict_expired_locked()

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def close(self) -> None:
        self.clear()
        logger.info("secret_cache_closed")

    def _evict_expired_locked(self) -> int:
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def _make_room(self) -> None:
        self._evict_expired_locked()
        size = len(self._entries)
        if size < self._max_entries:
            return
        overflow = size - self._max_entries + EVICTION_HEADROOM
        for _ in range(min(overflow, size)):
            self._entries.popitem(last=False)
        logger.debug("secret_cache_evicted", evicted=min(overflow, size), remaining=len(self._entries))
