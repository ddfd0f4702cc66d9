# payout_service/models/organizer.py
from sqlalchemy import Column, String, Boolean, text
from payout_service.db.base_class import Base
from payout_service.db.types import UTCDateTime, utcnow
import uuid


class Organizer(Base):
    """Read model of the platform's organizer directory."""

    __tablename__ = "organizers"

    id = Column(
        String, primary_key=True, default=lambda: f"orgz_{uuid.uuid4().hex[:12]}"
    )
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    phone = Column(String(50), nullable=True)

    # Stripe Connect account the organizer linked, if any
    stripe_account_id = Column(String(255), nullable=True)
    payouts_enabled = Column(Boolean, nullable=False, server_default=text("true"), default=True)

    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def has_payable_account(self) -> bool:
        return bool(self.stripe_account_id) and bool(self.payouts_enabled)
