# payout_service/models/payout.py
from sqlalchemy import Column, String, Integer, Text, Numeric, ForeignKey, Index, text
from sqlalchemy.orm import relationship
from payout_service.db.base_class import Base
from payout_service.db.types import UTCDateTime, utcnow
import uuid


class Payout(Base):
    __tablename__ = "payouts"
    __table_args__ = (
        # One live payout per organizer/event pair
        Index(
            "uq_payouts_organizer_event_active",
            "organizer_id",
            "event_id",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
        Index("ix_payouts_status_method_scheduled", "status", "payout_method", "scheduled_for"),
    )

    id = Column(
        String, primary_key=True, default=lambda: f"po_{uuid.uuid4().hex[:12]}"
    )
    organizer_id = Column(String, ForeignKey("organizers.id"), nullable=False, index=True)
    event_id = Column(String, ForeignKey("events.id"), nullable=True, index=True)

    # Financial (all cents)
    amount = Column(Integer, nullable=False)  # net payable
    gross_amount = Column(Integer, nullable=False)
    platform_fee = Column(Integer, nullable=False)
    fee_percent = Column(Numeric(5, 2), nullable=False)
    currency = Column(String(3), nullable=False)

    status = Column(String(50), nullable=False, default="pending")
    # Values: 'pending', 'processing' (claimed, internal), 'paid', 'failed', 'cancelled'
    payout_method = Column(String(20), nullable=False)  # 'stripe' or 'manual'

    scheduled_for = Column(UTCDateTime, nullable=False)
    processed_at = Column(UTCDateTime, nullable=True)
    failure_reason = Column(Text, nullable=True)
    external_transfer_id = Column(String(255), nullable=True, unique=True)
    notes = Column(Text, nullable=True)

    # Bumped on every claim; feeds the processor idempotency key
    attempt_count = Column(Integer, nullable=False, default=0, server_default="0")

    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    organizer = relationship("Organizer", lazy="joined")
    event = relationship("Event", lazy="joined")
