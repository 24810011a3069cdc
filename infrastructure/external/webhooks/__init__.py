"""Webhook 出站 HTTP 适配器"""
from .httpx_transport import HttpxWebhookTransport

__all__ = ["HttpxWebhookTransport"]
