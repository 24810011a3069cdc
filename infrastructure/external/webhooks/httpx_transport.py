"""
基于 httpx 的 Webhook 出站传输

不跟随重定向；非 2xx 响应原样返回，由执行器决定重试。
"""
from typing import Mapping, Optional

import httpx

from application.dtos.webhooks import TransportResponse


class HttpxWebhookTransport:
    """WebhookTransport 的 httpx 实现（共享连接池）"""

    def __init__(
        self,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_connections: int = 100,
    ):
        self._transport = transport
        self._limits = httpx.Limits(max_connections=max_connections)
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                transport=self._transport,
                limits=self._limits,
                follow_redirects=False,
            )
        return self._client

    async def post(
        self,
        url: str,
        *,
        content: bytes,
        headers: Mapping[str, str],
        timeout: float,
    ) -> TransportResponse:
        response = await self.client.post(
            url,
            content=content,
            headers=dict(headers),
            timeout=httpx.Timeout(timeout),
        )
        return TransportResponse(
            status_code=response.status_code,
            reason=response.reason_phrase or "",
            text=response.text,
        )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
