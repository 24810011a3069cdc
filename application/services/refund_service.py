"""
Refund ledger service.

Every state transition runs inside one unit of work holding a row lock on the
refund (or payment session), and its webhook deliveries are written in that same
transaction. The payment rollup runs in its own transaction after a completion
commits.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Mapping, Optional

from application.dtos.refunds import (
    CreateRefund,
    FinalityResult,
    RefundFilters,
    RefundPage,
    RefundResponse,
)
from application.ports.blockchain import ConfirmationOracle
from application.services.webhook_service import WebhookService
from core.logging_config import get_logger
from domain.common.exceptions import (
    BusinessException,
    InvalidNetworkException,
    InvalidRefundAmountException,
    PaymentNotCompletedException,
    PaymentNotFoundException,
    RefundExceedsPaymentException,
    RefundNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork, UnitOfWorkFactory
from domain.payment.entity import (
    PaymentStatus,
    Refund,
    RefundStatus,
    compute_completed_total,
    compute_refunded_total,
    compute_remaining_amount,
)
from domain.payment.events import (
    PaymentRefunded,
    RefundCompleted,
    RefundCreated,
    RefundEvent,
    RefundFailed,
    RefundProcessing,
)


logger = get_logger(__name__)

CONFIRMATION_REQUIREMENTS: Mapping[str, int] = {"polygon": 12, "ethereum": 3}


class RefundService:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        webhook_service: WebhookService,
        oracle: Optional[ConfirmationOracle] = None,
        confirmation_requirements: Optional[Mapping[str, int]] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._webhooks = webhook_service
        self._oracle = oracle
        self._requirements = dict(confirmation_requirements or CONFIRMATION_REQUIREMENTS)

    # ------------------------------------------------------------------
    # intake
    # ------------------------------------------------------------------

    async def create_refund(self, owner_id: str, data: CreateRefund) -> RefundResponse:
        """Open a PENDING refund after checking the remaining refundable amount under the payment lock."""
        amount = Decimal(data.amount)
        if amount <= 0:
            raise InvalidRefundAmountException(str(amount))

        async with self._uow_factory() as uow:
            payment = await uow.payment_repository.lock_for_update(data.payment_session_id, owner_id)
            if payment is None:
                raise PaymentNotFoundException(data.payment_session_id)
            if payment.status != PaymentStatus.COMPLETED:
                raise PaymentNotCompletedException(payment.id, payment.status.value)

            existing = await uow.refund_repository.list_by_payment(payment.id)
            remaining = compute_remaining_amount(payment.amount, compute_refunded_total(existing))
            if amount > remaining:
                raise RefundExceedsPaymentException(str(amount), str(remaining))

            refund = await uow.refund_repository.create(
                Refund(payment_session_id=payment.id, amount=amount, reason=data.reason)
            )
            await self._emit(uow, owner_id, RefundCreated(refund))

        logger.info("refund_requested", refund_id=refund.id, payment_session_id=payment.id, amount=str(amount))
        return self._to_response(refund)

    async def mark_refund_processing(
        self,
        refund_id: str,
        tx_hash: str,
        block_number: Optional[int] = None,
        owner_id: Optional[str] = None,
    ) -> RefundResponse:
        """Record the broadcast refund transaction: PENDING -> PROCESSING."""
        async with self._uow_factory() as uow:
            refund = await self._lock_refund(uow, refund_id, owner_id)
            refund.start_processing(tx_hash, block_number)
            refund = await uow.refund_repository.update(refund)
            await self._emit_for_payment(uow, refund, RefundProcessing(refund))

        logger.info("refund_processing", refund_id=refund.id, tx_hash=tx_hash)
        return self._to_response(refund)

    # ------------------------------------------------------------------
    # terminal transitions
    # ------------------------------------------------------------------

    async def complete_refund(
        self,
        refund_id: str,
        tx_hash: str,
        block_number: Optional[int],
        owner_id: Optional[str] = None,
    ) -> RefundResponse:
        refund = await self._complete(refund_id, tx_hash, block_number, owner_id)
        await self.update_payment_status_if_fully_refunded(refund.payment_session_id)
        return self._to_response(refund)

    async def _complete(
        self,
        refund_id: str,
        tx_hash: str,
        block_number: Optional[int],
        owner_id: Optional[str],
        confirmations: Optional[int] = None,
    ) -> Refund:
        async with self._uow_factory() as uow:
            refund = await self._lock_refund(uow, refund_id, owner_id)
            # Raises refund-already-completed / invalid-refund-status under the lock.
            refund.complete(tx_hash, block_number)
            refund = await uow.refund_repository.update(refund)
            await self._emit_for_payment(uow, refund, RefundCompleted(refund, confirmations=confirmations))

        logger.info(
            "refund_completed",
            refund_id=refund.id,
            payment_session_id=refund.payment_session_id,
            tx_hash=tx_hash,
            block_number=block_number,
        )
        return refund

    async def fail_refund(self, refund_id: str, owner_id: Optional[str] = None) -> RefundResponse:
        """Mark a refund FAILED. Re-failing is a no-op; failing a COMPLETED refund is a conflict."""
        async with self._uow_factory() as uow:
            refund = await self._lock_refund(uow, refund_id, owner_id)
            if not refund.fail():
                logger.info("refund_fail_noop", refund_id=refund.id)
                return self._to_response(refund)
            refund = await uow.refund_repository.update(refund)
            await self._emit_for_payment(uow, refund, RefundFailed(refund))

        logger.info("refund_failed", refund_id=refund.id)
        return self._to_response(refund)

    async def confirm_refund_finality(
        self,
        refund_id: str,
        tx_hash: str,
        network: str,
        owner_id: Optional[str] = None,
    ) -> FinalityResult:
        """Complete the refund once the oracle reports enough confirmations; otherwise report `pending`."""
        async with self._uow_factory(readonly=True) as uow:
            refund = await uow.refund_repository.get_by_id(refund_id, owner_id)
        if refund is None:
            raise RefundNotFoundException(refund_id)
        refund.ensure_completable()

        required = self._requirements.get((network or "").lower())
        if required is None:
            raise InvalidNetworkException(network)
        if self._oracle is None:
            raise RuntimeError("RefundService.confirm_refund_finality requires a confirmation oracle")

        confirmations = await self._oracle.get_confirmations(network.lower(), tx_hash)
        if confirmations < required:
            logger.info(
                "refund_finality_pending",
                refund_id=refund_id,
                confirmations=confirmations,
                required=required,
            )
            return FinalityResult(
                status="pending",
                confirmations=confirmations,
                required=required,
                refund=self._to_response(refund),
            )

        completed = await self._complete(
            refund_id, tx_hash, refund.block_number, owner_id, confirmations=confirmations
        )
        await self.update_payment_status_if_fully_refunded(completed.payment_session_id)
        return FinalityResult(
            status="confirmed",
            confirmations=confirmations,
            required=required,
            refund=self._to_response(completed),
        )

    async def update_payment_status_if_fully_refunded(self, payment_session_id: str) -> bool:
        """Move the payment to REFUNDED when COMPLETED refunds sum exactly to its amount.

        Returns True only for the call that performed the transition.
        """
        async with self._uow_factory() as uow:
            payment = await uow.payment_repository.lock_for_update(payment_session_id)
            if payment is None:
                return False
            if payment.status == PaymentStatus.REFUNDED:
                return False
            if payment.status != PaymentStatus.COMPLETED:
                logger.warning(
                    "refund_rollup_unexpected_status",
                    payment_session_id=payment.id,
                    status=payment.status.value,
                )
                return False

            refunds = await uow.refund_repository.list_by_payment(payment.id)
            completed_total = compute_completed_total(refunds)
            if completed_total != payment.amount:
                return False

            payment.mark_refunded()
            payment = await uow.payment_repository.update(payment)
            event = PaymentRefunded(payment, refunds)
            await self._webhooks.queue_webhook(payment.user_id, event.event_type, event.payload(), uow=uow)

        logger.info("payment_fully_refunded", payment_session_id=payment.id, refunded_amount=str(completed_total))
        return True

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------

    async def get_refund(self, refund_id: str, owner_id: str) -> RefundResponse:
        async with self._uow_factory(readonly=True) as uow:
            refund = await uow.refund_repository.get_by_id(refund_id, owner_id)
        if refund is None:
            raise RefundNotFoundException(refund_id)
        return self._to_response(refund)

    async def list_refunds(self, owner_id: str, filters: Optional[RefundFilters] = None) -> RefundPage:
        filters = filters or RefundFilters()
        async with self._uow_factory(readonly=True) as uow:
            items, total = await uow.refund_repository.list_by_owner(
                owner_id,
                payment_session_id=filters.payment_session_id,
                status=filters.status,
                limit=filters.limit,
                offset=filters.offset,
            )
        return RefundPage(
            items=[self._to_response(r) for r in items],
            total=total,
            limit=filters.limit,
            offset=filters.offset,
        )

    async def list_processing_refunds(self, limit: int = 100) -> list[RefundResponse]:
        async with self._uow_factory(readonly=True) as uow:
            refunds = await uow.refund_repository.list_processing(limit)
        return [self._to_response(r) for r in refunds]

    async def poll_finality(self, limit: int = 100) -> dict[str, int]:
        """Run a finality check for every PROCESSING refund that has a broadcast tx.

        The network comes from the refund's payment session. Business errors on one
        refund (a concurrent completion, an unknown network) are logged and skipped.
        """
        async with self._uow_factory(readonly=True) as uow:
            refunds = await uow.refund_repository.list_processing(limit)
            targets = []
            for refund in refunds:
                payment = await uow.payment_repository.get_by_id(refund.payment_session_id)
                if payment is not None and refund.tx_hash:
                    targets.append((refund, payment.network))

        counts = {"checked": 0, "confirmed": 0, "pending": 0, "errors": 0}
        for refund, network in targets:
            counts["checked"] += 1
            try:
                result = await self.confirm_refund_finality(refund.id, refund.tx_hash, network)
            except BusinessException as exc:
                counts["errors"] += 1
                logger.warning(
                    "refund_finality_poll_skipped",
                    refund_id=refund.id,
                    error_type=exc.error_type,
                    error=exc.message,
                )
                continue
            counts[result.status] += 1
        return counts

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    async def _lock_refund(self, uow: AbstractUnitOfWork, refund_id: str, owner_id: Optional[str]) -> Refund:
        refund = await uow.refund_repository.lock_for_update(refund_id, owner_id)
        if refund is None:
            raise RefundNotFoundException(refund_id)
        return refund

    async def _emit_for_payment(self, uow: AbstractUnitOfWork, refund: Refund, event: RefundEvent) -> None:
        payment = await uow.payment_repository.get_by_id(refund.payment_session_id)
        if payment is None:
            logger.warning("refund_event_without_payment", refund_id=refund.id)
            return
        await self._emit(uow, payment.user_id, event)

    async def _emit(self, uow: AbstractUnitOfWork, owner_id: str, event: RefundEvent) -> None:
        await self._webhooks.queue_webhook(owner_id, event.event_type, event.payload(), uow=uow)

    @staticmethod
    def _to_response(refund: Refund) -> RefundResponse:
        return RefundResponse(
            id=refund.id,
            payment_session_id=refund.payment_session_id,
            amount=refund.amount,
            status=RefundStatus(refund.status),
            reason=refund.reason,
            tx_hash=refund.tx_hash,
            block_number=refund.block_number,
            created_at=refund.created_at,
            updated_at=refund.updated_at,
            completed_at=refund.completed_at,
        )
