import asyncio
from decimal import Decimal

import pytest

from application.dtos.refunds import CreateRefund, RefundFilters
from application.services.refund_service import RefundService
from core.exceptions import business_code_to_http_status
from domain.common.exceptions import (
    InvalidNetworkException,
    InvalidRefundAmountException,
    InvalidRefundStatusException,
    PaymentNotCompletedException,
    PaymentNotFoundException,
    RefundAlreadyCompletedException,
    RefundExceedsPaymentException,
)
from domain.payment.entity import PaymentStatus, RefundStatus
from domain.webhook.entity import EventType
from tests.conftest import FakeOracle


@pytest.fixture
def oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture
def refund_service(uow_factory, webhook_service, oracle) -> RefundService:
    return RefundService(uow_factory, webhook_service, oracle=oracle)


async def _deliveries(uow_factory, event_type: EventType):
    async with uow_factory(readonly=True) as uow:
        return await uow.webhook_delivery_repository.list_by_event_type(event_type)


async def _payment_status(uow_factory, payment_id: str) -> PaymentStatus:
    async with uow_factory(readonly=True) as uow:
        return (await uow.payment_repository.get_by_id(payment_id)).status


@pytest.mark.asyncio
async def test_create_refund_queues_refund_created(refund_service, uow_factory, seed):
    user = await seed.user()
    await seed.endpoint(user.id)
    payment = await seed.payment(user.id)

    refund = await refund_service.create_refund(
        user.id, CreateRefund(payment_session_id=payment.id, amount=Decimal("30"), reason="damaged")
    )

    assert refund.status == RefundStatus.PENDING
    deliveries = await _deliveries(uow_factory, EventType.REFUND_CREATED)
    assert len(deliveries) == 1
    assert deliveries[0].payload["data"]["id"] == refund.id
    assert Decimal(deliveries[0].payload["data"]["amount"]) == Decimal("30")


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["0", "-5"])
async def test_create_refund_rejects_non_positive_amount(refund_service, seed, amount):
    user = await seed.user()
    payment = await seed.payment(user.id)

    with pytest.raises(InvalidRefundAmountException):
        await refund_service.create_refund(
            user.id, CreateRefund(payment_session_id=payment.id, amount=Decimal(amount))
        )


@pytest.mark.asyncio
async def test_create_refund_requires_completed_payment(refund_service, seed):
    user = await seed.user()
    payment = await seed.payment(user.id, status=PaymentStatus.PENDING)

    with pytest.raises(PaymentNotCompletedException):
        await refund_service.create_refund(
            user.id, CreateRefund(payment_session_id=payment.id, amount=Decimal("10"))
        )


@pytest.mark.asyncio
async def test_create_refund_checks_ownership(refund_service, seed):
    owner = await seed.user()
    other = await seed.user("other@example.com")
    payment = await seed.payment(owner.id)

    with pytest.raises(PaymentNotFoundException):
        await refund_service.create_refund(
            other.id, CreateRefund(payment_session_id=payment.id, amount=Decimal("10"))
        )


@pytest.mark.asyncio
async def test_create_refund_counts_in_flight_refunds(refund_service, seed):
    user = await seed.user()
    payment = await seed.payment(user.id, amount="100")
    await seed.refund(payment.id, "60")
    await seed.refund(payment.id, "30", status=RefundStatus.FAILED)

    with pytest.raises(RefundExceedsPaymentException):
        await refund_service.create_refund(
            user.id, CreateRefund(payment_session_id=payment.id, amount=Decimal("50"))
        )

    ok = await refund_service.create_refund(
        user.id, CreateRefund(payment_session_id=payment.id, amount=Decimal("40"))
    )
    assert ok.amount == Decimal("40")


@pytest.mark.asyncio
async def test_refund_lifecycle_and_listing(refund_service, seed):
    user = await seed.user()
    payment = await seed.payment(user.id)
    created = await refund_service.create_refund(
        user.id, CreateRefund(payment_session_id=payment.id, amount=Decimal("10"))
    )

    processing = await refund_service.mark_refund_processing(created.id, "0xabc", 100, owner_id=user.id)
    assert processing.status == RefundStatus.PROCESSING
    assert processing.tx_hash == "0xabc"

    with pytest.raises(InvalidRefundStatusException):
        await refund_service.mark_refund_processing(created.id, "0xdef", owner_id=user.id)

    page = await refund_service.list_refunds(user.id, RefundFilters(status=RefundStatus.PROCESSING))
    assert page.total == 1
    assert page.items[0].id == created.id


@pytest.mark.asyncio
async def test_completing_twice_is_rejected(refund_service, uow_factory, seed):
    user = await seed.user()
    await seed.endpoint(user.id)
    payment = await seed.payment(user.id)
    refund = await seed.refund(payment.id, "10")

    await refund_service.complete_refund(refund.id, "0xabc", 42)
    with pytest.raises(RefundAlreadyCompletedException) as exc_info:
        await refund_service.complete_refund(refund.id, "0xabc", 42)

    assert exc_info.value.error_type == "refund-already-completed"
    assert len(await _deliveries(uow_factory, EventType.REFUND_COMPLETED)) == 1


@pytest.mark.asyncio
async def test_complete_requires_processing(refund_service, seed):
    user = await seed.user()
    payment = await seed.payment(user.id)
    refund = await seed.refund(payment.id, "10", status=RefundStatus.PENDING, tx_hash=None)

    with pytest.raises(InvalidRefundStatusException):
        await refund_service.complete_refund(refund.id, "0xabc", 1)


@pytest.mark.asyncio
async def test_failing_a_completed_refund_is_a_conflict(refund_service, seed):
    user = await seed.user()
    payment = await seed.payment(user.id)
    refund = await seed.refund(payment.id, "10")
    await refund_service.complete_refund(refund.id, "0xabc", 1)

    with pytest.raises(RefundAlreadyCompletedException) as exc_info:
        await refund_service.fail_refund(refund.id)

    assert business_code_to_http_status(exc_info.value.code) == 409
    assert (await refund_service.get_refund(refund.id, user.id)).status == RefundStatus.COMPLETED


@pytest.mark.asyncio
async def test_failing_twice_is_a_noop(refund_service, uow_factory, seed):
    user = await seed.user()
    await seed.endpoint(user.id)
    payment = await seed.payment(user.id)
    refund = await seed.refund(payment.id, "10")

    first = await refund_service.fail_refund(refund.id)
    second = await refund_service.fail_refund(refund.id)

    assert first.status == second.status == RefundStatus.FAILED
    assert len(await _deliveries(uow_factory, EventType.REFUND_FAILED)) == 1


@pytest.mark.asyncio
async def test_partial_refund_leaves_payment_completed(refund_service, uow_factory, seed):
    user = await seed.user()
    payment = await seed.payment(user.id, amount="100")
    refund = await seed.refund(payment.id, "40")

    await refund_service.complete_refund(refund.id, "0xabc", 1)

    assert await _payment_status(uow_factory, payment.id) == PaymentStatus.COMPLETED
    assert await refund_service.update_payment_status_if_fully_refunded(payment.id) is False


@pytest.mark.asyncio
async def test_concurrent_completions_roll_up_exactly_once(refund_service, uow_factory, seed):
    user = await seed.user()
    await seed.endpoint(user.id)
    payment = await seed.payment(user.id, amount="100")
    r1 = await seed.refund(payment.id, "40")
    r2 = await seed.refund(payment.id, "60")

    await asyncio.gather(
        refund_service.complete_refund(r1.id, "0xaaa", 10),
        refund_service.complete_refund(r2.id, "0xbbb", 11),
    )

    assert await _payment_status(uow_factory, payment.id) == PaymentStatus.REFUNDED
    refunded = await _deliveries(uow_factory, EventType.PAYMENT_REFUNDED)
    assert len(refunded) == 1
    assert Decimal(refunded[0].payload["data"]["refunded_amount"]) == Decimal("100")
    assert len(await _deliveries(uow_factory, EventType.REFUND_COMPLETED)) == 2

    # rollup is idempotent
    assert await refund_service.update_payment_status_if_fully_refunded(payment.id) is False


@pytest.mark.asyncio
async def test_finality_pending_below_required_confirmations(refund_service, oracle, seed):
    user = await seed.user()
    payment = await seed.payment(user.id)
    refund = await seed.refund(payment.id, "10", tx_hash="0xslow")
    oracle.confirmations["0xslow"] = 11

    result = await refund_service.confirm_refund_finality(refund.id, "0xslow", "polygon")

    assert result.status == "pending"
    assert result.confirmations == 11
    assert result.required == 12
    assert result.refund.status == RefundStatus.PROCESSING


@pytest.mark.asyncio
async def test_finality_confirmed_completes_refund(refund_service, oracle, uow_factory, seed):
    user = await seed.user()
    await seed.endpoint(user.id)
    payment = await seed.payment(user.id, amount="10", network="ethereum")
    refund = await seed.refund(payment.id, "10", tx_hash="0xfast")
    oracle.confirmations["0xfast"] = 3

    result = await refund_service.confirm_refund_finality(refund.id, "0xfast", "Ethereum")

    assert result.status == "confirmed"
    assert result.refund.status == RefundStatus.COMPLETED
    assert oracle.calls == [("ethereum", "0xfast")]
    completed = await _deliveries(uow_factory, EventType.REFUND_COMPLETED)
    assert completed[0].payload["data"]["confirmations"] == 3
    assert await _payment_status(uow_factory, payment.id) == PaymentStatus.REFUNDED


@pytest.mark.asyncio
async def test_finality_rejects_unknown_network(refund_service, oracle, seed):
    user = await seed.user()
    payment = await seed.payment(user.id)
    refund = await seed.refund(payment.id, "10")

    with pytest.raises(InvalidNetworkException):
        await refund_service.confirm_refund_finality(refund.id, "0xrefund", "solana")
    assert oracle.calls == []


@pytest.mark.asyncio
async def test_finality_on_completed_refund_is_rejected(refund_service, oracle, seed):
    user = await seed.user()
    payment = await seed.payment(user.id)
    refund = await seed.refund(payment.id, "10")
    await refund_service.complete_refund(refund.id, "0xrefund", 5)

    with pytest.raises(RefundAlreadyCompletedException):
        await refund_service.confirm_refund_finality(refund.id, "0xrefund", "polygon")
    assert oracle.calls == []


@pytest.mark.asyncio
async def test_poll_finality_checks_processing_refunds(refund_service, oracle, seed):
    user = await seed.user()
    payment = await seed.payment(user.id, amount="100")
    await seed.refund(payment.id, "10", tx_hash="0xdone")
    await seed.refund(payment.id, "20", tx_hash="0xwait")
    await seed.refund(payment.id, "5", status=RefundStatus.PENDING, tx_hash=None)
    oracle.confirmations.update({"0xdone": 20, "0xwait": 1})

    counts = await refund_service.poll_finality()

    assert counts == {"checked": 2, "confirmed": 1, "pending": 1, "errors": 0}
    assert sorted(h for _, h in oracle.calls) == ["0xdone", "0xwait"]
