import asyncio
from datetime import timedelta

import pytest

from application.dtos.payment_links import CreatePaymentLink, PaymentLinkFilters, UpdatePaymentLink
from application.services.payment_link_service import PaymentLinkService
from domain.common.exceptions import (
    DomainValidationException,
    PaymentLinkExpiredException,
    PaymentLinkInactiveException,
    PaymentLinkMaxUsageReachedException,
    PaymentLinkNotFoundException,
    PaymentLinkUnavailableException,
    PaymentLinkUsageLimitTooLowException,
    ShortCodeGenerationFailedException,
)
from domain.common.helpers import utcnow
from domain.payment_link.entity import BASE62_ALPHABET, SHORT_CODE_LENGTH, generate_short_code
from tests.conftest import MERCHANT


def _service(uow_factory, **kwargs) -> PaymentLinkService:
    return PaymentLinkService(uow_factory, base_url="https://pay.example.com", **kwargs)


def test_short_code_is_fixed_length_base62():
    codes = {generate_short_code() for _ in range(200)}
    assert len(codes) > 190
    for code in codes:
        assert len(code) == SHORT_CODE_LENGTH
        assert set(code) <= set(BASE62_ALPHABET)


@pytest.mark.asyncio
async def test_create_and_resolve_by_short_code(uow_factory, seed):
    user = await seed.user()
    svc = _service(uow_factory)

    link = await svc.create_payment_link(
        user.id, CreatePaymentLink(merchant_address=MERCHANT, amount="25.50", network="Ethereum")
    )
    assert link.network == "ethereum"
    assert link.payment_url == f"https://pay.example.com/pay/{link.short_code}"

    resolved = await svc.get_payment_link_by_short_code(link.short_code)
    assert resolved.id == link.id
    assert resolved.usage_count == 0


@pytest.mark.asyncio
async def test_short_code_collision_retries_with_fresh_code(uow_factory, seed):
    user = await seed.user()
    codes = iter(["dupcode1", "dupcode1", "dupcode1", "freshcd2"])
    svc = _service(uow_factory, code_generator=lambda: next(codes))

    first = await svc.create_payment_link(user.id, CreatePaymentLink(merchant_address=MERCHANT))
    second = await svc.create_payment_link(user.id, CreatePaymentLink(merchant_address=MERCHANT))

    assert first.short_code == "dupcode1"
    assert second.short_code == "freshcd2"


@pytest.mark.asyncio
async def test_short_code_exhaustion_fails(uow_factory, seed):
    user = await seed.user()
    svc = _service(uow_factory, max_attempts=3, code_generator=lambda: "samecode")
    await svc.create_payment_link(user.id, CreatePaymentLink(merchant_address=MERCHANT))

    with pytest.raises(ShortCodeGenerationFailedException) as exc_info:
        await svc.create_payment_link(user.id, CreatePaymentLink(merchant_address=MERCHANT))
    assert exc_info.value.error_type == "short-code-generation-failed"


@pytest.mark.asyncio
async def test_resolve_errors_are_distinct(uow_factory, seed):
    user = await seed.user()
    svc = _service(uow_factory)

    with pytest.raises(PaymentLinkNotFoundException):
        await svc.get_payment_link_by_short_code("nothere1")

    inactive = await svc.create_payment_link(user.id, CreatePaymentLink(merchant_address=MERCHANT))
    await svc.deactivate_payment_link(inactive.id, user.id)
    with pytest.raises(PaymentLinkInactiveException) as exc_info:
        await svc.get_payment_link_by_short_code(inactive.short_code)
    assert exc_info.value.error_type == "link-inactive"

    expired = await svc.create_payment_link(
        user.id,
        CreatePaymentLink(merchant_address=MERCHANT, expires_at=utcnow() - timedelta(minutes=1)),
    )
    with pytest.raises(PaymentLinkExpiredException):
        await svc.get_payment_link_by_short_code(expired.short_code)

    limited = await svc.create_payment_link(user.id, CreatePaymentLink(merchant_address=MERCHANT, max_usages=1))
    await svc.redeem(limited.id, user.id)
    with pytest.raises(PaymentLinkMaxUsageReachedException) as exc_info:
        await svc.get_payment_link_by_short_code(limited.short_code)
    assert exc_info.value.error_type == "link-max-usage-reached"


@pytest.mark.asyncio
async def test_inactive_check_wins_over_expiry(uow_factory, seed):
    user = await seed.user()
    svc = _service(uow_factory)
    link = await svc.create_payment_link(
        user.id,
        CreatePaymentLink(merchant_address=MERCHANT, expires_at=utcnow() - timedelta(days=1), max_usages=1),
    )
    await svc.deactivate_payment_link(link.id, user.id)

    with pytest.raises(PaymentLinkInactiveException):
        await svc.get_payment_link_by_short_code(link.short_code)


@pytest.mark.asyncio
async def test_concurrent_redemptions_never_exceed_max_usages(uow_factory, seed):
    user = await seed.user()
    svc = _service(uow_factory)
    link = await svc.create_payment_link(user.id, CreatePaymentLink(merchant_address=MERCHANT, max_usages=3))

    results = await asyncio.gather(*(svc.increment_usage(link.id, user.id) for _ in range(10)))

    assert sum(1 for r in results if r is not None) == 3
    final = await svc.get_payment_link(link.id, user.id)
    assert final.usage_count == 3


@pytest.mark.asyncio
async def test_redeem_reports_unavailable_and_not_found(uow_factory, seed):
    owner = await seed.user()
    other = await seed.user("other@example.com")
    svc = _service(uow_factory)
    link = await svc.create_payment_link(owner.id, CreatePaymentLink(merchant_address=MERCHANT, max_usages=1))

    redeemed = await svc.redeem(link.id, owner.id)
    assert redeemed.usage_count == 1

    with pytest.raises(PaymentLinkUnavailableException):
        await svc.redeem(link.id, owner.id)
    with pytest.raises(PaymentLinkNotFoundException):
        await svc.redeem(link.id, other.id)


@pytest.mark.asyncio
async def test_expired_link_is_not_counted(uow_factory, seed):
    user = await seed.user()
    svc = _service(uow_factory)
    link = await svc.create_payment_link(
        user.id,
        CreatePaymentLink(merchant_address=MERCHANT, expires_at=utcnow() - timedelta(seconds=5)),
    )

    assert await svc.increment_usage(link.id, user.id) is None
    assert (await svc.get_payment_link(link.id, user.id)).usage_count == 0


@pytest.mark.asyncio
async def test_update_and_list_with_filters(uow_factory, seed):
    user = await seed.user()
    other = await seed.user("other@example.com")
    svc = _service(uow_factory)
    a = await svc.create_payment_link(user.id, CreatePaymentLink(merchant_address=MERCHANT, name="a"))
    await svc.create_payment_link(user.id, CreatePaymentLink(merchant_address=MERCHANT, name="b"))
    await svc.create_payment_link(other.id, CreatePaymentLink(merchant_address=MERCHANT, name="c"))

    updated = await svc.update_payment_link(a.id, user.id, UpdatePaymentLink(name="renamed", active=False))
    assert updated.name == "renamed"
    assert updated.active is False

    page = await svc.list_payment_links(user.id, PaymentLinkFilters())
    assert page.total == 2
    active_page = await svc.list_payment_links(user.id, PaymentLinkFilters(active=True))
    assert [item.name for item in active_page.items] == ["b"]


@pytest.mark.asyncio
async def test_update_of_other_owners_link_is_not_found(uow_factory, seed):
    owner = await seed.user()
    other = await seed.user("other@example.com")
    svc = _service(uow_factory)
    link = await svc.create_payment_link(owner.id, CreatePaymentLink(merchant_address=MERCHANT))

    with pytest.raises(PaymentLinkNotFoundException):
        await svc.update_payment_link(link.id, other.id, UpdatePaymentLink(name="x"))


def test_immutable_fields_are_rejected():
    from domain.payment_link.entity import PaymentLink

    link = PaymentLink(user_id="u1", merchant_address=MERCHANT)
    with pytest.raises(DomainValidationException):
        link.apply_changes({"amount": 10})


@pytest.mark.asyncio
async def test_max_usages_cannot_drop_below_usage_count(uow_factory, seed):
    user = await seed.user()
    svc = _service(uow_factory)
    link = await svc.create_payment_link(user.id, CreatePaymentLink(merchant_address=MERCHANT, max_usages=5))
    for _ in range(3):
        await svc.redeem(link.id, user.id)

    with pytest.raises(PaymentLinkUsageLimitTooLowException) as exc_info:
        await svc.update_payment_link(link.id, user.id, UpdatePaymentLink(max_usages=1))

    assert exc_info.value.field == "max_usages"
    assert exc_info.value.details == {"usage_count": 3, "max_usages": 1}
    unchanged = await svc.get_payment_link(link.id, user.id)
    assert unchanged.max_usages == 5
    assert unchanged.usage_count == 3

    lowered = await svc.update_payment_link(link.id, user.id, UpdatePaymentLink(max_usages=3))
    assert lowered.max_usages == 3
    assert lowered.usage_count == 3


@pytest.mark.asyncio
async def test_update_with_stale_usage_count_does_not_lower_limit(uow_factory, seed):
    user = await seed.user()
    svc = _service(uow_factory)
    created = await svc.create_payment_link(user.id, CreatePaymentLink(merchant_address=MERCHANT, max_usages=5))
    async with uow_factory(readonly=True) as uow:
        stale = await uow.payment_link_repository.get_by_id(created.id, user.id)
    for _ in range(3):
        await svc.redeem(created.id, user.id)

    stale.apply_changes({"max_usages": 2})
    async with uow_factory() as uow:
        assert await uow.payment_link_repository.update(stale) is None

    current = await svc.get_payment_link(created.id, user.id)
    assert current.max_usages == 5
    assert current.usage_count == 3
