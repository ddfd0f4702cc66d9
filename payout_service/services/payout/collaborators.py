# payout_service/services/payout/collaborators.py
"""
Interfaces to the rest of the platform.

The payout engine only needs to know who an organizer is (and whether they
linked a payable account) and what an event earned. The SQL implementations
read the local directory/event tables; other deployments can plug in
API-backed versions.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from payout_service.models.event import Event
from payout_service.models.organizer import Organizer
from payout_service.models.ticket import Ticket

CONFIRMED_TICKET_STATUS = "confirmed"


@dataclass
class OrganizerInfo:
    id: str
    name: str
    email: str
    has_payable_account: bool
    account_id: Optional[str] = None
    phone: Optional[str] = None


@dataclass
class EventInfo:
    id: str
    organizer_id: str
    title: str
    start_date: datetime
    end_date: Optional[datetime]
    currency: str

    @property
    def ends_at(self) -> datetime:
        return self.end_date or self.start_date

    def has_ended(self, now: datetime) -> bool:
        return self.ends_at <= now


class OrganizerDirectory(ABC):
    @abstractmethod
    def get_organizer(self, organizer_id: str) -> Optional[OrganizerInfo]:
        """Look up an organizer and their payable account."""
        pass


class EventRevenueSource(ABC):
    @abstractmethod
    def get_event(self, event_id: str) -> Optional[EventInfo]:
        pass

    @abstractmethod
    def gross_revenue(self, event_id: str) -> int:
        """Sum of confirmed ticket totals for an event, in cents."""
        pass

    @abstractmethod
    def list_ended_events(self, now: datetime) -> List[EventInfo]:
        pass


def _organizer_info(organizer: Organizer) -> OrganizerInfo:
    return OrganizerInfo(
        id=organizer.id,
        name=organizer.name,
        email=organizer.email,
        phone=organizer.phone,
        has_payable_account=organizer.has_payable_account,
        account_id=organizer.stripe_account_id if organizer.has_payable_account else None,
    )


def _event_info(event: Event) -> EventInfo:
    return EventInfo(
        id=event.id,
        organizer_id=event.organizer_id,
        title=event.title,
        start_date=event.start_date,
        end_date=event.end_date,
        currency=event.currency,
    )


class SqlOrganizerDirectory(OrganizerDirectory):
    def __init__(self, db: Session):
        self.db = db

    def get_organizer(self, organizer_id: str) -> Optional[OrganizerInfo]:
        organizer = self.db.get(Organizer, organizer_id)
        return _organizer_info(organizer) if organizer else None


class SqlEventRevenueSource(EventRevenueSource):
    def __init__(self, db: Session):
        self.db = db

    def get_event(self, event_id: str) -> Optional[EventInfo]:
        event = self.db.get(Event, event_id)
        return _event_info(event) if event else None

    def gross_revenue(self, event_id: str) -> int:
        total = (
            self.db.query(func.coalesce(func.sum(Ticket.total_price), 0))
            .filter(
                Ticket.event_id == event_id,
                Ticket.status == CONFIRMED_TICKET_STATUS,
            )
            .scalar()
        )
        return int(total or 0)

    def list_ended_events(self, now: datetime) -> List[EventInfo]:
        events = (
            self.db.query(Event)
            .filter(func.coalesce(Event.end_date, Event.start_date) <= now)
            .order_by(Event.start_date.asc())
            .all()
        )
        return [_event_info(e) for e in events]
