"""
API客户端模块

提供与外部HTTP API集成的客户端基类
"""
from .base import BaseAPIClient, APIResponse, APIError, RetryableAPIError

__all__ = [
    "BaseAPIClient",
    "APIResponse",
    "APIError",
    "RetryableAPIError",
]
