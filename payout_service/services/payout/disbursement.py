# payout_service/services/payout/disbursement.py
"""
Disbursement executor.

Performs the money movement for a single payout:
- stripe payouts are claimed (pending -> processing) with a compare-and-swap
  and only the claim winner calls the processor, so a payout is transferred
  at most once even under concurrent batch runs and retries
- manual payouts are only ever paid by an operator confirmation
"""
import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from payout_service import crud
from payout_service.db.types import utcnow
from payout_service.models.payout import Payout
from payout_service.schemas.payout import PayoutMethod, PayoutStatus
from payout_service.utils.kafka_helpers import (
    publish_payout_failed_email,
    publish_payout_sent_email,
)
from .collaborators import OrganizerDirectory, OrganizerInfo
from .errors import (
    AlreadyProcessing,
    ExternalTransferFailed,
    InvalidTransition,
    NoPayableAccount,
    NotDue,
)
from .transfer_client import TransferClient, TransferError

logger = logging.getLogger(__name__)


class DisbursementExecutor:
    def __init__(
        self,
        db: Session,
        transfer_client: TransferClient,
        organizer_directory: OrganizerDirectory,
        now: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.transfer_client = transfer_client
        self.organizer_directory = organizer_directory
        self.now = now

    def require_payable_account(self, payout: Payout) -> OrganizerInfo:
        organizer = self.organizer_directory.get_organizer(payout.organizer_id)
        if not organizer or not organizer.has_payable_account or not organizer.account_id:
            raise NoPayableAccount(
                f"Organizer {payout.organizer_id} has no linked payable account",
                payout_id=payout.id,
            )
        return organizer

    def _record_failure(
        self,
        payout_id: str,
        organizer: OrganizerInfo,
        amount: int,
        currency: str,
        event_title: str,
        error: TransferError,
        actor_id: Optional[str],
    ) -> None:
        crud.payout.transition(
            self.db,
            payout_id=payout_id,
            from_status=PayoutStatus.processing.value,
            to_status=PayoutStatus.failed.value,
            payout_method=PayoutMethod.stripe.value,
            values={"failure_reason": error.message},
            action="payout.failed",
            actor_type="admin" if actor_id else "system",
            actor_id=actor_id,
        )
        publish_payout_failed_email(
            to_email=organizer.email,
            organizer_name=organizer.name,
            payout_id=payout_id,
            payout_amount_cents=amount,
            currency=currency,
            failure_reason=error.message,
            event_title=event_title,
        )

    async def transfer(self, payout: Payout, *, actor_id: Optional[str] = None) -> Payout:
        """
        Transfer a due stripe payout to the organizer's connected account.

        On success the payout becomes paid with the processor's transfer id.
        On a processor error it becomes failed with the error as
        failure_reason and ExternalTransferFailed is raised. A transfer that
        went through but could not be stored as paid is recorded the same way,
        with the transfer id in failure_reason. If the transfer is never
        issued (including task cancellation) the claim is released.
        """
        self.db.refresh(payout)
        payout_id = payout.id

        if payout.payout_method != PayoutMethod.stripe.value:
            raise InvalidTransition(
                "Only stripe payouts can be transferred automatically",
                current=payout.status,
                target=PayoutStatus.paid.value,
                payout_id=payout_id,
            )
        if payout.status == PayoutStatus.processing.value:
            raise AlreadyProcessing(
                f"Payout {payout_id} is already being processed", payout_id=payout_id
            )
        if payout.status != PayoutStatus.pending.value:
            raise InvalidTransition(
                f"Payout {payout_id} is {payout.status}, expected pending",
                current=payout.status,
                target=PayoutStatus.processing.value,
                payout_id=payout_id,
            )

        now = self.now()
        if payout.scheduled_for > now:
            raise NotDue(
                f"Payout {payout_id} is scheduled for {payout.scheduled_for.isoformat()}",
                payout_id=payout_id,
            )

        organizer = self.require_payable_account(payout)

        claimed = crud.payout.transition(
            self.db,
            payout_id=payout_id,
            from_status=PayoutStatus.pending.value,
            to_status=PayoutStatus.processing.value,
            payout_method=PayoutMethod.stripe.value,
            values={"attempt_count": Payout.attempt_count + 1},
            action="payout.claimed",
            actor_type="admin" if actor_id else "system",
            actor_id=actor_id,
        )
        if not claimed:
            raise AlreadyProcessing(
                f"Payout {payout_id} was claimed by another run", payout_id=payout_id
            )

        self.db.refresh(payout)
        amount = payout.amount
        currency = payout.currency
        event_title = payout.event.title if payout.event else ""
        idempotency_key = f"payout_{payout_id}_attempt_{payout.attempt_count}"

        try:
            transfer_id = await self.transfer_client.create_transfer(
                account_id=organizer.account_id,
                amount=amount,
                currency=currency,
                idempotency_key=idempotency_key,
                metadata={
                    "payout_id": payout_id,
                    "organizer_id": payout.organizer_id,
                    "event_id": payout.event_id or "",
                },
            )
            if not transfer_id:
                raise TransferError(
                    code="EMPTY_TRANSFER_ID",
                    message="Processor returned no transfer id",
                    retryable=True,
                )
        except TransferError as e:
            logger.warning(f"Transfer for payout {payout_id} failed: {e.message}")
            self._record_failure(payout_id, organizer, amount, currency, event_title, e, actor_id)
            raise ExternalTransferFailed(payout_id, e) from e
        except (Exception, asyncio.CancelledError):
            # Nothing reached the processor; hand the payout back
            logger.exception(f"Transfer for payout {payout_id} could not be issued, releasing claim")
            crud.payout.transition(
                self.db,
                payout_id=payout_id,
                from_status=PayoutStatus.processing.value,
                to_status=PayoutStatus.pending.value,
                payout_method=PayoutMethod.stripe.value,
                action="payout.claim_released",
            )
            raise

        try:
            crud.payout.transition(
                self.db,
                payout_id=payout_id,
                from_status=PayoutStatus.processing.value,
                to_status=PayoutStatus.paid.value,
                payout_method=PayoutMethod.stripe.value,
                values={"processed_at": self.now(), "external_transfer_id": transfer_id},
                action="payout.paid",
                actor_type="admin" if actor_id else "system",
                actor_id=actor_id,
            )
        except SQLAlchemyError as e:
            # The money moved; keep the transfer id on the failure for reconciliation
            logger.exception(f"Payout {payout_id}: transfer {transfer_id} issued but not recorded")
            error = TransferError(
                code="TRANSFER_NOT_RECORDED",
                message=(
                    f"Transfer {transfer_id} was issued but could not be recorded "
                    f"({e.__class__.__name__}); reconcile before retrying"
                ),
                retryable=False,
            )
            self._record_failure(
                payout_id, organizer, amount, currency, event_title, error, actor_id
            )
            raise ExternalTransferFailed(payout_id, error) from e
        logger.info(f"Payout {payout_id} paid: {amount} {currency} via transfer {transfer_id}")

        publish_payout_sent_email(
            to_email=organizer.email,
            organizer_name=organizer.name,
            payout_id=payout_id,
            payout_amount_cents=amount,
            currency=currency,
            transfer_id=transfer_id,
            event_title=event_title,
        )

        self.db.refresh(payout)
        return payout

    def mark_manual_paid(
        self, payout: Payout, notes: Optional[str] = None, *, actor_id: Optional[str] = None
    ) -> Payout:
        """Record an operator's confirmation that a manual transfer was made."""
        self.db.refresh(payout)

        if payout.payout_method != PayoutMethod.manual.value:
            raise InvalidTransition(
                "Only manual payouts can be marked as paid",
                current=payout.status,
                target=PayoutStatus.paid.value,
                payout_id=payout.id,
            )
        if payout.status != PayoutStatus.pending.value:
            raise InvalidTransition(
                f"Payout {payout.id} is {payout.status}, expected pending",
                current=payout.status,
                target=PayoutStatus.paid.value,
                payout_id=payout.id,
            )

        changed = crud.payout.transition(
            self.db,
            payout_id=payout.id,
            from_status=PayoutStatus.pending.value,
            to_status=PayoutStatus.paid.value,
            payout_method=PayoutMethod.manual.value,
            values={"processed_at": self.now(), "notes": notes},
            action="payout.paid",
            actor_type="admin",
            actor_id=actor_id,
            notes=notes,
        )
        if not changed:
            raise InvalidTransition(
                f"Payout {payout.id} changed while being marked as paid",
                payout_id=payout.id,
            )

        self.db.refresh(payout)
        logger.info(f"Manual payout {payout.id} marked as paid by {actor_id or 'operator'}")
        return payout
