"""
Webhook 签名

签名 = hex(HMAC-SHA256(secret, f"{timestamp}.{payload}"))，
接收方用同一 secret 对 X-Webhook-Timestamp 与原始请求体重新计算并比较。
"""
from __future__ import annotations

import hashlib
import hmac
import time
from typing import Optional

DEFAULT_TOLERANCE_SECONDS = 300


def _signed_content(payload: str, timestamp: int) -> bytes:
    return f"{timestamp}.{payload}".encode("utf-8")


def sign(payload: str, timestamp: int, secret: str) -> str:
    """计算签名（十六进制小写）"""
    return hmac.new(secret.encode("utf-8"), _signed_content(payload, timestamp), hashlib.sha256).hexdigest()


def verify(payload: str, timestamp: int, secret: str, signature: str) -> bool:
    """当且仅当 signature == sign(payload, timestamp, secret) 时返回 True（常量时间比较）"""
    if not signature:
        return False
    expected = sign(payload, timestamp, secret)
    return hmac.compare_digest(expected, signature)


def verify_with_tolerance(
    payload: str,
    timestamp: int,
    secret: str,
    signature: str,
    *,
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    now: Optional[float] = None,
) -> bool:
    """在签名校验之外拒绝时间戳偏差过大的请求，防止重放"""
    current = int(now if now is not None else time.time())
    if abs(current - int(timestamp)) > tolerance_seconds:
        return False
    return verify(payload, timestamp, secret, signature)
