# payout_service/models/__init__.py
from .organizer import Organizer
from .event import Event
from .ticket import Ticket
from .payout import Payout
from .payout_audit_log import PayoutAuditLog

__all__ = ["Organizer", "Event", "Ticket", "Payout", "PayoutAuditLog"]
