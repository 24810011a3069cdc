import re

import pytest
from pydantic import ValidationError

from application.dtos.webhooks import CreateWebhookEndpoint, UpdateWebhookEndpoint
from domain.common.exceptions import (
    DomainValidationException,
    InvalidWebhookUrlException,
    WebhookEndpointNotFoundException,
)
from domain.webhook.entity import DeliveryStatus, EventType, WebhookEndpoint
from tests.conftest import RecordingTransport

SECRET_PATTERN = re.compile(r"^whsec_[0-9a-f]{64}$")


def _create(url: str = "https://hooks.example.com/gateway", events=None, **kwargs) -> CreateWebhookEndpoint:
    return CreateWebhookEndpoint(url=url, events=events or [EventType.PAYMENT_COMPLETED], **kwargs)


@pytest.mark.asyncio
async def test_create_returns_secret_once_and_stores_it_sealed(endpoint_service, uow_factory, seed):
    user = await seed.user()

    created = await endpoint_service.create_endpoint(
        user.id,
        _create(events=[EventType.PAYMENT_COMPLETED, EventType.PAYMENT_COMPLETED, EventType.REFUND_COMPLETED]),
    )

    assert SECRET_PATTERN.match(created.secret)
    assert created.events == ["payment.completed", "refund.completed"]
    assert created.enabled is True

    async with uow_factory(readonly=True) as uow:
        stored = await uow.webhook_endpoint_repository.get_by_id(created.id, user.id)
    assert stored.secret == f"enc:{created.secret}"

    fetched = await endpoint_service.get_endpoint(created.id, user.id)
    assert "secret" not in fetched.model_dump()


@pytest.mark.asyncio
async def test_list_only_returns_own_endpoints(endpoint_service, seed):
    alice = await seed.user("alice@example.com")
    bob = await seed.user("bob@example.com")
    first = await endpoint_service.create_endpoint(alice.id, _create())
    second = await endpoint_service.create_endpoint(alice.id, _create(url="https://hooks.example.com/other"))
    await endpoint_service.create_endpoint(bob.id, _create())

    listed = await endpoint_service.list_endpoints(alice.id)

    assert {e.id for e in listed} == {first.id, second.id}


@pytest.mark.asyncio
async def test_other_owner_sees_not_found(endpoint_service, seed):
    alice = await seed.user("alice@example.com")
    bob = await seed.user("bob@example.com")
    created = await endpoint_service.create_endpoint(alice.id, _create())

    with pytest.raises(WebhookEndpointNotFoundException):
        await endpoint_service.get_endpoint(created.id, bob.id)
    with pytest.raises(WebhookEndpointNotFoundException):
        await endpoint_service.update_endpoint(created.id, bob.id, UpdateWebhookEndpoint(enabled=False))
    with pytest.raises(WebhookEndpointNotFoundException):
        await endpoint_service.rotate_secret(created.id, bob.id)
    with pytest.raises(WebhookEndpointNotFoundException):
        await endpoint_service.delete_endpoint(created.id, bob.id)

    assert (await endpoint_service.get_endpoint(created.id, alice.id)).enabled is True


@pytest.mark.asyncio
async def test_unsafe_url_is_rejected(endpoint_service, seed):
    user = await seed.user()

    with pytest.raises(InvalidWebhookUrlException):
        await endpoint_service.create_endpoint(user.id, _create(url="http://127.0.0.1/hook"))
    with pytest.raises(InvalidWebhookUrlException):
        await endpoint_service.create_endpoint(user.id, _create(url="ftp://hooks.example.com/hook"))

    created = await endpoint_service.create_endpoint(user.id, _create())
    with pytest.raises(InvalidWebhookUrlException):
        await endpoint_service.update_endpoint(
            created.id, user.id, UpdateWebhookEndpoint(url="https://169.254.169.254/latest")
        )
    assert (await endpoint_service.get_endpoint(created.id, user.id)).url == "https://hooks.example.com/gateway"


def test_unknown_event_is_rejected():
    with pytest.raises(ValidationError):
        CreateWebhookEndpoint(url="https://hooks.example.com/gateway", events=["payment.exploded"])
    with pytest.raises(ValidationError):
        CreateWebhookEndpoint(url="https://hooks.example.com/gateway", events=[])


@pytest.mark.asyncio
async def test_update_changes_only_given_fields(endpoint_service, seed):
    user = await seed.user()
    created = await endpoint_service.create_endpoint(user.id, _create(description="orders"))

    updated = await endpoint_service.update_endpoint(
        created.id,
        user.id,
        UpdateWebhookEndpoint(events=[EventType.REFUND_FAILED], url=None),
    )

    assert updated.events == ["refund.failed"]
    assert updated.url == created.url
    assert updated.description == "orders"
    assert updated.enabled is True


@pytest.mark.asyncio
async def test_disable_stops_new_deliveries_and_drops_cached_secret(
    endpoint_service, webhook_service, secret_cache, seed
):
    user = await seed.user()
    created = await endpoint_service.create_endpoint(user.id, _create())
    sealed = f"enc:{created.secret}"
    secret_cache.set(sealed, created.secret)

    updated = await endpoint_service.update_endpoint(created.id, user.id, UpdateWebhookEndpoint(enabled=False))

    assert updated.enabled is False
    assert secret_cache.get(sealed) is None
    queued = await webhook_service.queue_webhook(user.id, EventType.PAYMENT_COMPLETED, {"id": "pay_1"})
    assert queued == 0


@pytest.mark.asyncio
async def test_delete_removes_endpoint_and_its_deliveries(endpoint_service, webhook_service, uow_factory, seed):
    user = await seed.user()
    created = await endpoint_service.create_endpoint(user.id, _create())
    kept = await seed.endpoint(user.id)
    await webhook_service.queue_webhook(user.id, EventType.PAYMENT_COMPLETED, {"id": "pay_1"})

    await endpoint_service.delete_endpoint(created.id, user.id)

    with pytest.raises(WebhookEndpointNotFoundException):
        await endpoint_service.get_endpoint(created.id, user.id)
    async with uow_factory(readonly=True) as uow:
        remaining = await uow.webhook_delivery_repository.list_by_event_type(EventType.PAYMENT_COMPLETED)
    assert [d.endpoint_id for d in remaining] == [kept.id]


@pytest.mark.asyncio
async def test_rotation_replaces_secret_and_invalidates_cached_one(
    endpoint_service, secret_cache, uow_factory, seed
):
    user = await seed.user()
    created = await endpoint_service.create_endpoint(user.id, _create())
    old_sealed = f"enc:{created.secret}"
    secret_cache.set(old_sealed, created.secret)

    rotation = await endpoint_service.rotate_secret(created.id, user.id)

    assert rotation.id == created.id
    assert SECRET_PATTERN.match(rotation.secret)
    assert rotation.secret != created.secret
    assert secret_cache.get(old_sealed) is None
    async with uow_factory(readonly=True) as uow:
        stored = await uow.webhook_endpoint_repository.get_by_id(created.id, user.id)
    assert stored.secret == f"enc:{rotation.secret}"


@pytest.mark.asyncio
async def test_rotated_secret_signs_the_next_delivery(
    endpoint_service, webhook_service, make_executor, secret_cache, uow_factory, seed
):
    user = await seed.user()
    created = await endpoint_service.create_endpoint(user.id, _create())
    transport = RecordingTransport()
    executor = make_executor(transport, secret_cache=secret_cache)

    await webhook_service.queue_webhook(user.id, EventType.PAYMENT_COMPLETED, {"id": "pay_1"})
    async with uow_factory(readonly=True) as uow:
        [first] = await uow.webhook_delivery_repository.list_by_event_type(EventType.PAYMENT_COMPLETED)
    await executor.deliver_webhook(first)
    assert secret_cache.get(f"enc:{created.secret}") == created.secret

    rotation = await endpoint_service.rotate_secret(created.id, user.id)
    await webhook_service.queue_webhook(user.id, EventType.PAYMENT_COMPLETED, {"id": "pay_2"})
    async with uow_factory(readonly=True) as uow:
        deliveries = await uow.webhook_delivery_repository.list_by_event_type(EventType.PAYMENT_COMPLETED)
    [second] = [d for d in deliveries if d.status == DeliveryStatus.PENDING]
    await executor.deliver_webhook(second)

    assert len(transport.requests) == 2
    assert secret_cache.get(f"enc:{created.secret}") is None
    assert secret_cache.get(f"enc:{rotation.secret}") == rotation.secret


def test_apply_changes_rejects_secret_and_empty_events():
    endpoint = WebhookEndpoint(
        user_id="u1", url="https://hooks.example.com", secret="enc:x", events=["payment.created"]
    )

    with pytest.raises(DomainValidationException):
        endpoint.apply_changes({"secret": "enc:y"})
    with pytest.raises(DomainValidationException):
        endpoint.apply_changes({"events": []})
