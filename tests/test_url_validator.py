import pytest

from application.utils.url_validator import WebhookUrlValidator
from domain.common.exceptions import InvalidWebhookUrlException


def _validator(addresses=None, **kwargs) -> WebhookUrlValidator:
    async def resolver(host):
        if addresses is None:
            raise OSError("no such host")
        return addresses

    return WebhookUrlValidator(resolver=resolver, **kwargs)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "url, message",
    [
        ("not a url", "Invalid webhook URL format"),
        ("https://", "Invalid webhook URL format"),
        ("https://example.com:99999/h", "Invalid webhook URL format"),
        ("http://example.com/h", "Webhook URL must use HTTPS protocol"),
        ("ftp://example.com/h", "Webhook URL must use HTTPS protocol"),
        ("https://user:pw@example.com/h", "Webhook URL cannot contain credentials"),
        ("https://169.254.169.254/latest", "Webhook URL cannot target cloud metadata endpoints"),
        ("https://localhost/h", "Webhook URL cannot target localhost or internal networks"),
        ("https://api.localhost/h", "Webhook URL cannot target localhost or internal networks"),
        ("https://127.0.0.1/h", "Webhook URL cannot target localhost or internal networks"),
        ("https://10.1.2.3/h", "Webhook URL cannot target localhost or internal networks"),
        ("https://192.168.0.10/h", "Webhook URL cannot target localhost or internal networks"),
        ("https://172.16.5.4/h", "Webhook URL cannot target localhost or internal networks"),
        ("https://[::1]/h", "Webhook URL cannot target localhost or internal networks"),
        ("https://[::ffff:10.0.0.1]/h", "Webhook URL cannot target localhost or internal networks"),
        ("https://0.0.0.0/h", "Webhook URL cannot target localhost or internal networks"),
    ],
)
async def test_rejected_urls(url, message):
    with pytest.raises(InvalidWebhookUrlException) as exc_info:
        await _validator(["93.184.216.34"]).validate(url)
    assert exc_info.value.message == message
    assert exc_info.value.error_type == "invalid-webhook-url"


@pytest.mark.asyncio
async def test_public_https_url_is_accepted():
    await _validator(["93.184.216.34"]).validate("https://hooks.example.com/stablecoin")


@pytest.mark.asyncio
async def test_public_ip_literal_skips_dns():
    await _validator(None).validate("https://93.184.216.34/h")


@pytest.mark.asyncio
async def test_hostname_resolving_to_private_address_is_rejected():
    with pytest.raises(InvalidWebhookUrlException) as exc_info:
        await _validator(["93.184.216.34", "10.0.0.7"]).validate("https://rebind.example.com/h")
    assert exc_info.value.message == "Webhook URL hostname resolves to a private/internal address"
    assert "10.0.0.7" not in exc_info.value.message


@pytest.mark.asyncio
async def test_unresolvable_hostname_is_rejected():
    with pytest.raises(InvalidWebhookUrlException) as exc_info:
        await _validator(None).validate("https://nowhere.invalid/h")
    assert exc_info.value.message == "Webhook URL hostname could not be resolved"


@pytest.mark.asyncio
async def test_http_allowed_when_configured():
    await _validator(["93.184.216.34"], allow_http=True).validate("http://hooks.example.com/h")


@pytest.mark.asyncio
async def test_dns_check_can_be_disabled():
    await WebhookUrlValidator(resolve_dns=False).validate("https://internal-looking.example/h")
