from datetime import timedelta

import httpx
import pytest
from sqlalchemy import update

from application.dtos.webhooks import TransportResponse
from domain.common.helpers import utcnow
from domain.webhook.circuit import CircuitState
from domain.webhook.entity import DeliveryStatus, EventType
from domain.webhook.signature import verify
from infrastructure.models.webhook import WebhookDeliveryModel
from infrastructure.resilience.circuit_breaker import InMemoryCircuitBreaker
from tests.conftest import CountingDecryptor, RecordingTransport


async def _queue_one(webhook_service, uow_factory, owner_id, data=None):
    async with uow_factory(readonly=True) as uow:
        before = {d.id for d in await uow.webhook_delivery_repository.list_by_event_type(EventType.PAYMENT_COMPLETED)}
    await webhook_service.queue_webhook(owner_id, EventType.PAYMENT_COMPLETED, data or {"id": "pay_1"})
    async with uow_factory(readonly=True) as uow:
        deliveries = await uow.webhook_delivery_repository.list_by_event_type(EventType.PAYMENT_COMPLETED)
    [created] = [d for d in deliveries if d.id not in before]
    return created


async def _reload(uow_factory, delivery_id):
    async with uow_factory(readonly=True) as uow:
        return await uow.webhook_delivery_repository.get_by_id(delivery_id)


async def _backdate_retry(uow_factory, delivery_id, seconds=1):
    """Move next_attempt_at into the past so the row is due now."""
    async with uow_factory() as uow:
        await uow.session.execute(
            update(WebhookDeliveryModel)
            .where(WebhookDeliveryModel.id == delivery_id)
            .values(next_attempt_at=utcnow() - timedelta(seconds=seconds))
        )


@pytest.mark.asyncio
async def test_successful_delivery_is_signed_and_recorded(make_executor, webhook_service, uow_factory, seed):
    user = await seed.user()
    endpoint = await seed.endpoint(user.id)
    delivery = await _queue_one(webhook_service, uow_factory, user.id, {"id": "pay_1", "amount": "10"})
    transport = RecordingTransport(TransportResponse(status_code=200, reason="OK", text="received"))
    breaker = InMemoryCircuitBreaker()
    executor = make_executor(transport, breaker=breaker)

    await executor.deliver_webhook(delivery)

    [request] = transport.requests
    assert request["url"] == endpoint.url
    headers = request["headers"]
    assert headers["Content-Type"] == "application/json"
    assert headers["X-Webhook-ID"] == delivery.id
    assert headers["X-Webhook-Timestamp"] == "1700000000"
    assert headers["User-Agent"].startswith("StablecoinGateway-Webhooks")
    body = request["content"].decode("utf-8")
    assert verify(body, 1700000000, "whsec_test", headers["X-Webhook-Signature"])
    assert '"type":"payment.completed"' in body

    stored = await _reload(uow_factory, delivery.id)
    assert stored.status == DeliveryStatus.SUCCEEDED
    assert stored.attempts == 1
    assert stored.response_code == 200
    assert stored.response_body == "received"
    assert stored.succeeded_at is not None
    assert await breaker.get_state(endpoint.id) == CircuitState.CLOSED


@pytest.mark.asyncio
async def test_http_errors_back_off_then_become_terminal(make_executor, webhook_service, uow_factory, seed):
    user = await seed.user()
    await seed.endpoint(user.id)
    delivery = await _queue_one(webhook_service, uow_factory, user.id)
    transport = RecordingTransport(
        TransportResponse(status_code=500, reason="Internal Server Error", text="boom")
    )
    executor = make_executor(transport, rng=lambda: 0.5)

    delays = []
    for attempt in range(1, 5):
        await executor.deliver_webhook(delivery)
        stored = await _reload(uow_factory, delivery.id)
        assert stored.status == DeliveryStatus.FAILED
        assert stored.attempts == attempt
        assert stored.response_code == 500
        assert stored.next_attempt_at is not None
        delays.append((stored.next_attempt_at - stored.last_attempt_at).total_seconds())
        await _backdate_retry(uow_factory, delivery.id)

    await executor.deliver_webhook(delivery)
    final = await _reload(uow_factory, delivery.id)

    assert delays == sorted(delays)
    for delay, base in zip(delays, [60, 300, 900, 3600]):
        assert base <= delay <= base * 1.1 + 1
    assert final.attempts == 5
    assert final.status == DeliveryStatus.FAILED
    assert final.next_attempt_at is None
    assert final.is_terminal
    assert final.error_message == "Max retries (5) exceeded: HTTP 500: Internal Server Error"
    assert len(transport.requests) == 5


@pytest.mark.asyncio
async def test_network_error_schedules_retry(make_executor, webhook_service, uow_factory, seed):
    user = await seed.user()
    await seed.endpoint(user.id)
    delivery = await _queue_one(webhook_service, uow_factory, user.id)
    executor = make_executor(RecordingTransport(httpx.ConnectError("connection refused")))

    await executor.deliver_webhook(delivery)

    stored = await _reload(uow_factory, delivery.id)
    assert stored.status == DeliveryStatus.FAILED
    assert stored.error_message == "connection refused"
    assert stored.response_code is None
    assert stored.next_attempt_at is not None


@pytest.mark.asyncio
async def test_unsafe_url_fails_terminally_without_sending(make_executor, webhook_service, uow_factory, seed):
    user = await seed.user()
    await seed.endpoint(user.id, url="https://127.0.0.1/hooks")
    delivery = await _queue_one(webhook_service, uow_factory, user.id)
    transport = RecordingTransport()

    await make_executor(transport).deliver_webhook(delivery)

    stored = await _reload(uow_factory, delivery.id)
    assert transport.requests == []
    assert stored.status == DeliveryStatus.FAILED
    assert stored.next_attempt_at is None
    assert stored.error_message == (
        "Invalid webhook URL: Webhook URL cannot target localhost or internal networks"
    )


@pytest.mark.asyncio
async def test_decryption_failure_is_recorded_as_retryable(make_executor, webhook_service, uow_factory, seed):
    user = await seed.user()
    await seed.endpoint(user.id, secret="not-encrypted")
    delivery = await _queue_one(webhook_service, uow_factory, user.id)
    transport = RecordingTransport()

    await make_executor(transport).deliver_webhook(delivery)

    stored = await _reload(uow_factory, delivery.id)
    assert transport.requests == []
    assert stored.status == DeliveryStatus.FAILED
    assert stored.error_message == "Webhook secret decryption failed"
    assert stored.next_attempt_at is not None


@pytest.mark.asyncio
async def test_open_circuit_skips_without_touching_delivery(make_executor, webhook_service, uow_factory, seed):
    user = await seed.user()
    endpoint = await seed.endpoint(user.id)
    delivery = await _queue_one(webhook_service, uow_factory, user.id)
    breaker = InMemoryCircuitBreaker(failure_threshold=1, cooldown_seconds=300)
    await breaker.record_failure(endpoint.id)
    transport = RecordingTransport()

    await make_executor(transport, breaker=breaker).deliver_webhook(delivery)

    stored = await _reload(uow_factory, delivery.id)
    assert transport.requests == []
    assert stored.status == DeliveryStatus.PENDING
    assert stored.attempts == 0


@pytest.mark.asyncio
async def test_failures_open_the_circuit(make_executor, webhook_service, uow_factory, seed):
    user = await seed.user()
    endpoint = await seed.endpoint(user.id)
    first = await _queue_one(webhook_service, uow_factory, user.id, {"n": 1})
    second = await _queue_one(webhook_service, uow_factory, user.id, {"n": 2})
    breaker = InMemoryCircuitBreaker(failure_threshold=1, cooldown_seconds=300)
    transport = RecordingTransport(TransportResponse(status_code=503, reason="Service Unavailable"))
    executor = make_executor(transport, breaker=breaker)

    await executor.deliver_webhook(first)
    await executor.deliver_webhook(second)

    assert await breaker.get_state(endpoint.id) == CircuitState.OPEN
    assert len(transport.requests) == 1
    assert (await _reload(uow_factory, second.id)).status == DeliveryStatus.PENDING


@pytest.mark.asyncio
async def test_secret_is_decrypted_once_across_deliveries(make_executor, webhook_service, uow_factory, seed):
    user = await seed.user()
    await seed.endpoint(user.id)
    first = await _queue_one(webhook_service, uow_factory, user.id, {"n": 1})
    second = await _queue_one(webhook_service, uow_factory, user.id, {"n": 2})
    decryptor = CountingDecryptor()
    executor = make_executor(RecordingTransport(), decryptor=decryptor)

    await executor.deliver_webhook(first)
    await executor.deliver_webhook(second)

    assert decryptor.calls == 1


@pytest.mark.asyncio
async def test_succeeded_delivery_is_not_claimed_again(make_executor, webhook_service, uow_factory, seed):
    user = await seed.user()
    await seed.endpoint(user.id)
    delivery = await _queue_one(webhook_service, uow_factory, user.id)
    transport = RecordingTransport()
    executor = make_executor(transport)

    await executor.deliver_webhook(delivery)
    await executor.deliver_webhook(delivery)

    assert len(transport.requests) == 1
    assert (await _reload(uow_factory, delivery.id)).attempts == 1


@pytest.mark.asyncio
async def test_long_response_bodies_are_truncated(make_executor, webhook_service, uow_factory, seed, webhook_config):
    user = await seed.user()
    await seed.endpoint(user.id)
    delivery = await _queue_one(webhook_service, uow_factory, user.id)
    text = "x" * (webhook_config.response_body_max_chars + 50)
    executor = make_executor(RecordingTransport(TransportResponse(status_code=200, reason="OK", text=text)))

    await executor.deliver_webhook(delivery)

    stored = await _reload(uow_factory, delivery.id)
    assert len(stored.response_body) == webhook_config.response_body_max_chars


@pytest.mark.asyncio
async def test_retry_is_not_sent_before_it_is_due(make_executor, webhook_service, uow_factory, seed):
    user = await seed.user()
    await seed.endpoint(user.id)
    delivery = await _queue_one(webhook_service, uow_factory, user.id)
    transport = RecordingTransport(TransportResponse(status_code=500, reason="Internal Server Error"))
    executor = make_executor(transport)

    await executor.deliver_webhook(delivery)
    await executor.deliver_webhook(delivery)

    stored = await _reload(uow_factory, delivery.id)
    assert len(transport.requests) == 1
    assert stored.attempts == 1
    assert stored.status == DeliveryStatus.FAILED
    assert stored.next_attempt_at > utcnow()


@pytest.mark.asyncio
async def test_exhausted_delivery_is_never_sent_again(make_executor, webhook_service, uow_factory, seed):
    user = await seed.user()
    await seed.endpoint(user.id)
    delivery = await _queue_one(webhook_service, uow_factory, user.id)
    transport = RecordingTransport(TransportResponse(status_code=500, reason="Internal Server Error"))
    executor = make_executor(transport)
    for _ in range(5):
        await executor.deliver_webhook(delivery)
        await _backdate_retry(uow_factory, delivery.id)

    # a past next_attempt_at must not revive a row whose retries are used up
    await _backdate_retry(uow_factory, delivery.id)
    await executor.deliver_webhook(delivery)
    await executor.deliver_webhook(delivery)

    stored = await _reload(uow_factory, delivery.id)
    assert len(transport.requests) == 5
    assert stored.attempts == 5
    assert stored.status == DeliveryStatus.FAILED


@pytest.mark.asyncio
async def test_disabled_endpoint_snapshot_is_skipped(make_executor, webhook_service, uow_factory, seed):
    user = await seed.user()
    endpoint = await seed.endpoint(user.id)
    delivery = await _queue_one(webhook_service, uow_factory, user.id)
    async with uow_factory() as uow:
        endpoint.enabled = False
        await uow.webhook_endpoint_repository.update(endpoint)
    transport = RecordingTransport()

    # get_by_id attaches the (now disabled) endpoint snapshot
    await make_executor(transport).deliver_webhook(await _reload(uow_factory, delivery.id))

    stored = await _reload(uow_factory, delivery.id)
    assert transport.requests == []
    assert stored.status == DeliveryStatus.PENDING
    assert stored.attempts == 0


@pytest.mark.asyncio
async def test_endpoint_disabled_after_listing_is_not_claimed(
    make_executor, webhook_service, uow_factory, webhook_config, seed
):
    user = await seed.user()
    endpoint = await seed.endpoint(user.id)
    await _queue_one(webhook_service, uow_factory, user.id)
    async with uow_factory(readonly=True) as uow:
        [listed] = await uow.webhook_delivery_repository.list_due(utcnow(), webhook_config.max_retries, 10)
    assert listed.endpoint.enabled is True
    async with uow_factory() as uow:
        endpoint.enabled = False
        await uow.webhook_endpoint_repository.update(endpoint)
    transport = RecordingTransport()

    await make_executor(transport).deliver_webhook(listed)

    stored = await _reload(uow_factory, listed.id)
    assert transport.requests == []
    assert stored.status == DeliveryStatus.PENDING
    assert stored.attempts == 0


@pytest.mark.asyncio
async def test_unclaimed_delivery_gives_back_half_open_trial(make_executor, webhook_service, uow_factory, seed):
    user = await seed.user()
    endpoint = await seed.endpoint(user.id)
    delivery = await _queue_one(webhook_service, uow_factory, user.id)
    await make_executor().deliver_webhook(delivery)
    assert (await _reload(uow_factory, delivery.id)).status == DeliveryStatus.SUCCEEDED

    now = [0.0]
    breaker = InMemoryCircuitBreaker(failure_threshold=1, cooldown_seconds=300, clock=lambda: now[0])
    await breaker.record_failure(endpoint.id)
    now[0] = 301.0
    transport = RecordingTransport()

    # cooldown over: this call takes the trial, but the row is already SUCCEEDED
    await make_executor(transport, breaker=breaker).deliver_webhook(delivery)

    assert transport.requests == []
    assert await breaker.get_state(endpoint.id) == CircuitState.HALF_OPEN
    assert await breaker.is_circuit_open(endpoint.id) is False
