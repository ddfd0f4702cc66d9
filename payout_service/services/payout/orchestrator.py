# payout_service/services/payout/orchestrator.py
"""
Payout orchestrator.

Drives payouts through their lifecycle:
- Creates one payout per organizer/event once the event has ended
- Processes due stripe payouts in batches (bounded concurrency)
- Releases funds for a single event on operator request
- Retries failed stripe payouts
- Migrates an organizer's manual payouts to stripe once an account is linked
- Cancels and recomputes pending payouts
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional

from sqlalchemy.orm import Session

from payout_service import crud
from payout_service.db.types import utcnow
from payout_service.models.payout import Payout
from payout_service.schemas.payout import (
    AttemptStatus,
    BatchResult,
    EventPayoutResult,
    PayoutAttemptResult,
    PayoutCreate,
    PayoutMethod,
    PayoutStatus,
    RetryResult,
)
from .collaborators import EventInfo, EventRevenueSource, OrganizerDirectory
from .disbursement import DisbursementExecutor
from .errors import (
    AlreadyProcessing,
    DuplicatePayout,
    EventNotFound,
    ExternalTransferFailed,
    InvalidTransition,
    NoPayableAccount,
    NoRevenue,
    NotDue,
    PayoutError,
    PayoutNotFound,
)
from .fee_calculator import FeeCalculator

logger = logging.getLogger(__name__)


class PayoutOrchestrator:
    def __init__(
        self,
        db: Session,
        executor: DisbursementExecutor,
        event_source: EventRevenueSource,
        organizer_directory: OrganizerDirectory,
        fee_calculator: FeeCalculator,
        *,
        default_currency: str = "USD",
        payout_delay: timedelta = timedelta(0),
        max_concurrency: int = 4,
        now: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.executor = executor
        self.event_source = event_source
        self.organizer_directory = organizer_directory
        self.fee_calculator = fee_calculator
        self.default_currency = default_currency
        self.payout_delay = payout_delay
        self.max_concurrency = max(1, max_concurrency)
        self.now = now

    # ------------------------------------------------------------------ #
    # Lookups
    # ------------------------------------------------------------------ #

    def get_payout(self, payout_id: str) -> Payout:
        payout = crud.payout.get(self.db, id=payout_id)
        if not payout:
            raise PayoutNotFound(f"Payout {payout_id} not found", payout_id=payout_id)
        return payout

    def _get_event(self, event_id: str) -> EventInfo:
        event = self.event_source.get_event(event_id)
        if not event:
            raise EventNotFound(f"Event {event_id} not found")
        return event

    # ------------------------------------------------------------------ #
    # Creation
    # ------------------------------------------------------------------ #

    def _new_payout(self, event: EventInfo) -> PayoutCreate:
        """
        Compute the payout an ended event is owed. Raises NotDue or NoRevenue
        without touching any stored payout.
        """
        if not event.has_ended(self.now()):
            raise NotDue(f'Event "{event.title}" has not ended yet')

        gross = self.event_source.gross_revenue(event.id)
        if gross <= 0:
            raise NoRevenue(f'Event "{event.title}" has no confirmed ticket revenue')

        fee = self.fee_calculator.calculate(gross)
        organizer = self.organizer_directory.get_organizer(event.organizer_id)
        method = (
            PayoutMethod.stripe
            if organizer and organizer.has_payable_account
            else PayoutMethod.manual
        )
        return PayoutCreate(
            organizer_id=event.organizer_id,
            event_id=event.id,
            amount=fee.net_amount,
            gross_amount=fee.gross_amount,
            platform_fee=fee.fee,
            fee_percent=fee.fee_percent,
            currency=event.currency or self.default_currency,
            payout_method=method,
            scheduled_for=event.ends_at + self.payout_delay,
        )

    def _create(self, obj_in: PayoutCreate, actor_id: Optional[str]) -> Payout:
        payout = crud.payout.create_payout(self.db, obj_in=obj_in, actor_id=actor_id)
        logger.info(
            f"Scheduled payout {payout.id} for event {obj_in.event_id}: "
            f"gross={obj_in.gross_amount} fee={obj_in.platform_fee} net={obj_in.amount} "
            f"method={obj_in.payout_method.value}"
        )
        return payout

    def schedule_payout_for_event(
        self, event_id: str, *, actor_id: Optional[str] = None
    ) -> Payout:
        """
        Create the payout for an ended event from its confirmed ticket revenue.
        The method is stripe when the organizer has a payable account, manual
        otherwise.
        """
        event = self._get_event(event_id)
        obj_in = self._new_payout(event)

        if crud.payout.get_active_for(
            self.db, organizer_id=event.organizer_id, event_id=event.id
        ):
            raise DuplicatePayout(f'Event "{event.title}" already has a payout')

        return self._create(obj_in, actor_id)

    def schedule_completed_events(self) -> int:
        """Create payouts for every ended event that does not have one yet."""
        created = 0
        for event in self.event_source.list_ended_events(self.now()):
            if crud.payout.get_active_for(
                self.db, organizer_id=event.organizer_id, event_id=event.id
            ):
                continue
            try:
                self.schedule_payout_for_event(event.id)
                created += 1
            except NoRevenue:
                logger.info(f"Event {event.id} has no ticket revenue, no payout created")
            except DuplicatePayout:
                logger.info(f"Event {event.id} was scheduled concurrently, skipping")

        if created:
            logger.info(f"Scheduled {created} new payouts")
        return created

    # ------------------------------------------------------------------ #
    # Processing
    # ------------------------------------------------------------------ #

    async def _attempt(
        self, payout: Payout, semaphore: asyncio.Semaphore, actor_id: Optional[str]
    ) -> PayoutAttemptResult:
        payout_id = payout.id
        amount = payout.amount
        async with semaphore:
            try:
                paid = await self.executor.transfer(payout, actor_id=actor_id)
                return PayoutAttemptResult(
                    payout_id=payout_id,
                    status=AttemptStatus.succeeded,
                    amount=amount,
                    transfer_id=paid.external_transfer_id,
                )
            except ExternalTransferFailed as e:
                return PayoutAttemptResult(
                    payout_id=payout_id,
                    status=AttemptStatus.failed,
                    amount=amount,
                    error=e.message,
                )
            except PayoutError as e:
                logger.warning(f"Skipped payout {payout_id}: {e.message}")
                return PayoutAttemptResult(
                    payout_id=payout_id,
                    status=AttemptStatus.skipped,
                    amount=amount,
                    error=e.message,
                )

    async def _run_batch(
        self, payouts: Iterable[Payout], actor_id: Optional[str]
    ) -> BatchResult:
        semaphore = asyncio.Semaphore(self.max_concurrency)
        outcomes = await asyncio.gather(
            *(self._attempt(p, semaphore, actor_id) for p in payouts),
            return_exceptions=True,
        )

        # Every attempt has settled; now surface infrastructure failures
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

        succeeded = sum(1 for r in outcomes if r.status == AttemptStatus.succeeded)
        failed = sum(1 for r in outcomes if r.status == AttemptStatus.failed)
        return BatchResult(
            processed=succeeded + failed,
            succeeded=succeeded,
            failed=failed,
            results=list(outcomes),
        )

    def _payable(self, payouts: List[Payout]) -> List[Payout]:
        payable = []
        for payout in payouts:
            organizer = self.organizer_directory.get_organizer(payout.organizer_id)
            if organizer and organizer.has_payable_account:
                payable.append(payout)
        return payable

    async def process_all_due_stripe_payouts(
        self, *, actor_id: Optional[str] = None
    ) -> BatchResult:
        """Transfer every due, pending stripe payout whose organizer can be paid."""
        due = self._payable(crud.payout.get_due_stripe(self.db, now=self.now()))
        if not due:
            logger.info("No pending Stripe payouts to process")
            return BatchResult()

        result = await self._run_batch(due, actor_id)
        logger.info(
            f"Stripe payout batch: processed={result.processed} "
            f"succeeded={result.succeeded} failed={result.failed}"
        )
        return result

    async def process_event_payout(
        self, event_id: str, *, actor_id: Optional[str] = None
    ) -> EventPayoutResult:
        """Release the stripe payouts of a single ended event immediately."""
        event = self._get_event(event_id)
        now = self.now()
        if not event.has_ended(now):
            logger.warning(f"Refusing to process payouts for event {event_id}: not ended")
            raise NotDue(f'Event "{event.title}" has not ended yet')

        warnings: List[str] = []
        to_process: List[Payout] = []
        for payout in crud.payout.get_pending_by_event(self.db, event_id=event_id):
            if payout.payout_method != PayoutMethod.stripe.value:
                warnings.append(f"Payout {payout.id} requires a manual transfer")
                continue
            if payout.scheduled_for > now:
                warnings.append(
                    f"Payout {payout.id} is not due until {payout.scheduled_for.isoformat()}"
                )
                continue
            if not self._payable([payout]):
                warnings.append(f"Payout {payout.id}: organizer has no linked payable account")
                continue
            to_process.append(payout)

        for warning in warnings:
            logger.warning(f"Event {event_id}: {warning}")

        batch = await self._run_batch(to_process, actor_id) if to_process else BatchResult()
        return EventPayoutResult(
            event_id=event.id,
            event_title=event.title,
            processed=batch.processed,
            succeeded=batch.succeeded,
            failed=batch.failed,
            results=batch.results,
            total_amount=sum(
                r.amount for r in batch.results if r.status == AttemptStatus.succeeded
            ),
            warnings=warnings,
        )

    async def retry(self, payout_id: str, *, actor_id: Optional[str] = None) -> RetryResult:
        """
        Put a failed stripe payout back to pending and transfer it again.
        Amount and schedule are left as they were.
        """
        payout = self.get_payout(payout_id)
        if payout.payout_method != PayoutMethod.stripe.value:
            raise InvalidTransition(
                "Only stripe payouts can be retried",
                current=payout.status,
                target=PayoutStatus.pending.value,
                payout_id=payout_id,
            )
        if payout.status != PayoutStatus.failed.value:
            raise InvalidTransition(
                f"Payout {payout_id} is {payout.status}; only failed payouts can be retried",
                current=payout.status,
                target=PayoutStatus.pending.value,
                payout_id=payout_id,
            )
        self.executor.require_payable_account(payout)

        reset = crud.payout.transition(
            self.db,
            payout_id=payout_id,
            from_status=PayoutStatus.failed.value,
            to_status=PayoutStatus.pending.value,
            payout_method=PayoutMethod.stripe.value,
            action="payout.retried",
            actor_type="admin" if actor_id else "system",
            actor_id=actor_id,
        )
        if not reset:
            raise AlreadyProcessing(
                f"Payout {payout_id} is already being retried", payout_id=payout_id
            )

        paid = await self.executor.transfer(payout, actor_id=actor_id)
        return RetryResult(
            payout_id=paid.id,
            transfer_id=paid.external_transfer_id,
            amount=paid.amount,
        )

    # ------------------------------------------------------------------ #
    # Operator actions
    # ------------------------------------------------------------------ #

    def mark_manual_paid(
        self, payout_id: str, notes: Optional[str] = None, *, actor_id: Optional[str] = None
    ) -> Payout:
        payout = self.get_payout(payout_id)
        return self.executor.mark_manual_paid(payout, notes, actor_id=actor_id)

    def migrate_organizer_to_stripe(
        self, organizer_id: str, *, actor_id: Optional[str] = None
    ) -> int:
        """Switch an organizer's pending manual payouts to stripe."""
        organizer = self.organizer_directory.get_organizer(organizer_id)
        if not organizer or not organizer.has_payable_account:
            raise NoPayableAccount(
                f"Organizer {organizer_id} has no linked payable account"
            )

        migrated = crud.payout.migrate_to_stripe(
            self.db, organizer_id=organizer_id, actor_id=actor_id
        )
        logger.info(f"Migrated {migrated} payouts of organizer {organizer_id} to stripe")
        return migrated

    def cancel_payout(
        self, payout_id: str, reason: Optional[str] = None, *, actor_id: Optional[str] = None
    ) -> Payout:
        payout = self.get_payout(payout_id)
        if payout.status == PayoutStatus.processing.value:
            raise AlreadyProcessing(
                f"Payout {payout_id} is being transferred and cannot be cancelled",
                payout_id=payout_id,
            )

        cancelled = crud.payout.transition(
            self.db,
            payout_id=payout_id,
            from_status=payout.status,
            to_status=PayoutStatus.cancelled.value,
            payout_method=payout.payout_method,
            values={"notes": reason} if reason else None,
            action="payout.cancelled",
            actor_type="admin" if actor_id else "system",
            actor_id=actor_id,
            notes=reason,
        )
        if not cancelled:
            raise AlreadyProcessing(
                f"Payout {payout_id} changed while being cancelled", payout_id=payout_id
            )

        self.db.refresh(payout)
        return payout

    def recompute_payout(self, payout_id: str, *, actor_id: Optional[str] = None) -> Payout:
        """
        Replace a pending payout with a freshly computed one. The old record
        is cancelled, never edited in place.
        """
        payout = self.get_payout(payout_id)
        if payout.status != PayoutStatus.pending.value:
            raise InvalidTransition(
                f"Payout {payout_id} is {payout.status}; only pending payouts can be recomputed",
                current=payout.status,
                target=PayoutStatus.cancelled.value,
                payout_id=payout_id,
            )
        if payout.event_id is None:
            raise InvalidTransition(
                f"Payout {payout_id} is not tied to an event and cannot be recomputed",
                payout_id=payout_id,
            )

        # Every check runs before the old payout is cancelled
        event = self._get_event(payout.event_id)
        obj_in = self._new_payout(event)

        self.cancel_payout(payout_id, "Replaced by recomputed payout", actor_id=actor_id)
        return self._create(obj_in, actor_id)
