"""
Payment link registry service.

Short codes are random; a unique-constraint collision is retried with a fresh
code a bounded number of times. Redemption is a single conditional UPDATE, so
the usage limit holds under any number of concurrent redeemers.
"""
from __future__ import annotations

from typing import Callable, Optional

from application.dtos.payment_links import (
    CreatePaymentLink,
    PaymentLinkFilters,
    PaymentLinkPage,
    PaymentLinkResponse,
    UpdatePaymentLink,
)
from core.config import settings
from core.logging_config import get_logger
from domain.common.exceptions import (
    PaymentLinkNotFoundException,
    PaymentLinkUnavailableException,
    PaymentLinkUsageLimitTooLowException,
    ShortCodeGenerationFailedException,
)
from domain.common.helpers import utcnow
from domain.common.unit_of_work import UnitOfWorkFactory
from domain.payment_link.entity import PaymentLink, generate_short_code
from domain.payment_link.repository import ShortCodeCollisionError


logger = get_logger(__name__)


def to_response(link: PaymentLink, base_url: str) -> PaymentLinkResponse:
    return PaymentLinkResponse(
        id=link.id,
        short_code=link.short_code,
        name=link.name,
        amount=link.amount,
        currency=link.currency,
        network=link.network,
        token=link.token,
        merchant_address=link.merchant_address,
        success_url=link.success_url,
        cancel_url=link.cancel_url,
        description=link.description,
        metadata=link.metadata or {},
        active=link.active,
        usage_count=link.usage_count,
        max_usages=link.max_usages,
        expires_at=link.expires_at,
        payment_url=f"{base_url.rstrip('/')}/pay/{link.short_code}",
        created_at=link.created_at,
        updated_at=link.updated_at,
    )


class PaymentLinkService:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        *,
        base_url: Optional[str] = None,
        max_attempts: Optional[int] = None,
        code_generator: Callable[[], str] = generate_short_code,
    ) -> None:
        self._uow_factory = uow_factory
        self._base_url = base_url or settings.payment_links.base_url
        self._max_attempts = max_attempts or settings.payment_links.short_code_max_attempts
        self._generate_code = code_generator

    def to_response(self, link: PaymentLink) -> PaymentLinkResponse:
        return to_response(link, self._base_url)

    async def create_payment_link(self, owner_id: str, data: CreatePaymentLink) -> PaymentLinkResponse:
        for attempt in range(1, self._max_attempts + 1):
            link = PaymentLink(
                user_id=owner_id,
                short_code=self._generate_code(),
                merchant_address=data.merchant_address,
                name=data.name,
                amount=data.amount,
                currency=data.currency,
                network=data.network,
                token=data.token,
                success_url=data.success_url,
                cancel_url=data.cancel_url,
                description=data.description,
                metadata=dict(data.metadata),
                max_usages=data.max_usages,
                expires_at=data.expires_at,
            )
            try:
                async with self._uow_factory() as uow:
                    created = await uow.payment_link_repository.create(link)
            except ShortCodeCollisionError:
                logger.warning("payment_link_short_code_retry", attempt=attempt, max_attempts=self._max_attempts)
                continue
            logger.info("payment_link_created", link_id=created.id, short_code=created.short_code, owner_id=owner_id)
            return self.to_response(created)

        logger.error("payment_link_short_code_exhausted", attempts=self._max_attempts, owner_id=owner_id)
        raise ShortCodeGenerationFailedException(self._max_attempts)

    async def get_payment_link(self, link_id: str, owner_id: str) -> PaymentLinkResponse:
        async with self._uow_factory(readonly=True) as uow:
            link = await uow.payment_link_repository.get_by_id(link_id, owner_id)
        if link is None:
            raise PaymentLinkNotFoundException(link_id)
        return self.to_response(link)

    async def get_payment_link_by_short_code(self, short_code: str) -> PaymentLinkResponse:
        """Public lookup: not found, then inactive, expired and limit-reached each fail distinctly."""
        async with self._uow_factory(readonly=True) as uow:
            link = await uow.payment_link_repository.get_by_short_code(short_code)
        if link is None:
            raise PaymentLinkNotFoundException(short_code)
        link.ensure_redeemable(utcnow())
        return self.to_response(link)

    async def list_payment_links(
        self, owner_id: str, filters: Optional[PaymentLinkFilters] = None
    ) -> PaymentLinkPage:
        filters = filters or PaymentLinkFilters()
        async with self._uow_factory(readonly=True) as uow:
            items, total = await uow.payment_link_repository.list_by_owner(
                owner_id,
                active=filters.active,
                created_after=filters.created_after,
                created_before=filters.created_before,
                limit=filters.limit,
                offset=filters.offset,
            )
        return PaymentLinkPage(
            items=[self.to_response(link) for link in items],
            total=total,
            limit=filters.limit,
            offset=filters.offset,
        )

    async def update_payment_link(
        self, link_id: str, owner_id: str, data: UpdatePaymentLink
    ) -> PaymentLinkResponse:
        changes = data.model_dump(exclude_unset=True)
        if "metadata" in changes and changes["metadata"] is None:
            changes["metadata"] = {}
        async with self._uow_factory() as uow:
            link = await uow.payment_link_repository.get_by_id(link_id, owner_id)
            if link is None:
                raise PaymentLinkNotFoundException(link_id)
            link.apply_changes(changes)
            updated = await uow.payment_link_repository.update(link)
            if updated is None:
                # A concurrent redemption pushed usage_count past the new limit.
                raise PaymentLinkUsageLimitTooLowException(max_usages=link.max_usages)
            link = updated
        logger.info("payment_link_updated", link_id=link_id, fields=sorted(changes))
        return self.to_response(link)

    async def deactivate_payment_link(self, link_id: str, owner_id: str) -> PaymentLinkResponse:
        async with self._uow_factory() as uow:
            link = await uow.payment_link_repository.deactivate(link_id, owner_id)
        if link is None:
            raise PaymentLinkNotFoundException(link_id)
        logger.info("payment_link_deactivated", link_id=link_id)
        return self.to_response(link)

    async def increment_usage(self, link_id: str, owner_id: str) -> Optional[PaymentLinkResponse]:
        """Atomically count one redemption; None when the link is inactive, expired, at its limit or not owned."""
        async with self._uow_factory() as uow:
            link = await uow.payment_link_repository.increment_usage(link_id, owner_id, utcnow())
        return self.to_response(link) if link is not None else None

    async def redeem(self, link_id: str, owner_id: str) -> PaymentLinkResponse:
        result = await self.increment_usage(link_id, owner_id)
        if result is not None:
            return result
        async with self._uow_factory(readonly=True) as uow:
            link = await uow.payment_link_repository.get_by_id(link_id, owner_id)
        if link is None:
            raise PaymentLinkNotFoundException(link_id)
        raise PaymentLinkUnavailableException(link_id)
