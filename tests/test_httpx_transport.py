import httpx
import pytest

from infrastructure.external.webhooks import HttpxWebhookTransport


@pytest.mark.asyncio
async def test_posts_body_and_headers_and_returns_response():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["content"] = request.content
        seen["signature"] = request.headers["X-Webhook-Signature"]
        return httpx.Response(202, text="accepted")

    transport = HttpxWebhookTransport(transport=httpx.MockTransport(handler))
    response = await transport.post(
        "https://hooks.example.com/h",
        content=b'{"a":1}',
        headers={"X-Webhook-Signature": "abc"},
        timeout=5,
    )
    await transport.aclose()

    assert seen == {"content": b'{"a":1}', "signature": "abc"}
    assert response.status_code == 202
    assert response.ok
    assert response.text == "accepted"


@pytest.mark.asyncio
async def test_redirects_are_not_followed():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(302, headers={"Location": "http://169.254.169.254/"})

    transport = HttpxWebhookTransport(transport=httpx.MockTransport(handler))
    response = await transport.post("https://hooks.example.com/h", content=b"{}", headers={}, timeout=5)
    await transport.aclose()

    assert response.status_code == 302
    assert not response.ok
    assert response.reason == "Found"


@pytest.mark.asyncio
async def test_network_errors_propagate():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    transport = HttpxWebhookTransport(transport=httpx.MockTransport(handler))
    with pytest.raises(httpx.ConnectError):
        await transport.post("https://hooks.example.com/h", content=b"{}", headers={}, timeout=5)
    await transport.aclose()
