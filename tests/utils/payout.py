import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from payout_service.models.event import Event
from payout_service.models.organizer import Organizer
from payout_service.models.payout import Payout
from payout_service.models.ticket import Ticket
from payout_service.services.payout.collaborators import (
    SqlEventRevenueSource,
    SqlOrganizerDirectory,
)
from payout_service.services.payout.disbursement import DisbursementExecutor
from payout_service.services.payout.fee_calculator import FeeCalculator
from payout_service.services.payout.orchestrator import PayoutOrchestrator
from payout_service.services.payout.transfer_client import TransferClient, TransferError

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)
YESTERDAY = NOW - timedelta(days=1)
TOMORROW = NOW + timedelta(days=1)


def run_async(coro):
    """Helper to run async coroutines in sync tests."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class FakeTransferClient(TransferClient):
    """
    Records every transfer request. Accounts listed in `failures` are
    answered with that error; everything else succeeds with the next id
    from `transfer_ids` (or tr_<n>).
    """

    def __init__(
        self,
        transfer_ids: Optional[List[str]] = None,
        failures: Optional[Dict[str, BaseException]] = None,
    ):
        self.calls: List[dict] = []
        self.transfer_ids = list(transfer_ids or [])
        self.failures = dict(failures or {})

    async def create_transfer(self, *, account_id, amount, currency, idempotency_key, metadata=None):
        self.calls.append({
            "account_id": account_id,
            "amount": amount,
            "currency": currency,
            "idempotency_key": idempotency_key,
            "metadata": metadata,
        })
        # Decided before yielding so concurrent callers get distinct ids
        error = self.failures.get(account_id)
        transfer_id = None
        if error is None:
            transfer_id = self.transfer_ids.pop(0) if self.transfer_ids else f"tr_{len(self.calls)}"
        # Yield so concurrent callers interleave like a real network call
        await asyncio.sleep(0)
        if error is not None:
            raise error
        return transfer_id


def processor_error(message: str, code: str = "insufficient_funds") -> TransferError:
    return TransferError(code=code, message=message, retryable=False)


def create_organizer(
    db: Session,
    *,
    name: str = "Ada Events",
    email: str = "ada@example.com",
    stripe_account_id: Optional[str] = "acct_ada",
    phone: Optional[str] = None,
) -> Organizer:
    organizer = Organizer(
        name=name, email=email, phone=phone, stripe_account_id=stripe_account_id
    )
    db.add(organizer)
    db.commit()
    db.refresh(organizer)
    return organizer


def create_event(
    db: Session,
    organizer: Organizer,
    *,
    title: str = "Summer Meetup",
    end_date: Optional[datetime] = YESTERDAY,
    start_date: Optional[datetime] = None,
    ticket_price: int = 2500,
    currency: str = "USD",
) -> Event:
    if start_date is None:
        start_date = (end_date or YESTERDAY) - timedelta(hours=6)
    event = Event(
        organizer_id=organizer.id,
        title=title,
        start_date=start_date,
        end_date=end_date,
        ticket_price=ticket_price,
        currency=currency,
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


def create_ticket(
    db: Session, event: Event, *, total_price: int, status: str = "confirmed", quantity: int = 1
) -> Ticket:
    ticket = Ticket(event_id=event.id, total_price=total_price, status=status, quantity=quantity)
    db.add(ticket)
    db.commit()
    db.refresh(ticket)
    return ticket


def create_payout(
    db: Session,
    organizer: Organizer,
    event: Optional[Event] = None,
    *,
    amount: int = 95000,
    status: str = "pending",
    payout_method: str = "stripe",
    scheduled_for: Optional[datetime] = None,
    currency: str = "USD",
    failure_reason: Optional[str] = None,
) -> Payout:
    if scheduled_for is None:
        scheduled_for = event.ends_at if event is not None else YESTERDAY
    gross = int(Decimal(amount) / Decimal("0.95"))
    payout = Payout(
        organizer_id=organizer.id,
        event_id=event.id if event is not None else None,
        amount=amount,
        gross_amount=gross,
        platform_fee=gross - amount,
        fee_percent=Decimal("5.00"),
        currency=currency,
        status=status,
        payout_method=payout_method,
        scheduled_for=scheduled_for,
        failure_reason=failure_reason,
    )
    db.add(payout)
    db.commit()
    db.refresh(payout)
    return payout


def build_orchestrator(
    db: Session,
    transfer_client: Optional[TransferClient] = None,
    *,
    now: datetime = NOW,
    payout_delay: timedelta = timedelta(0),
    max_concurrency: int = 4,
) -> PayoutOrchestrator:
    directory = SqlOrganizerDirectory(db)
    executor = DisbursementExecutor(
        db,
        transfer_client=transfer_client or FakeTransferClient(),
        organizer_directory=directory,
        now=lambda: now,
    )
    return PayoutOrchestrator(
        db,
        executor=executor,
        event_source=SqlEventRevenueSource(db),
        organizer_directory=directory,
        fee_calculator=FeeCalculator(5.0),
        payout_delay=payout_delay,
        max_concurrency=max_concurrency,
        now=lambda: now,
    )
