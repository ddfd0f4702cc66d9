# payout_service/models/ticket.py
from sqlalchemy import Column, String, Integer, ForeignKey
from sqlalchemy.orm import relationship
from payout_service.db.base_class import Base
from payout_service.db.types import UTCDateTime, utcnow
import uuid


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(
        String, primary_key=True, default=lambda: f"tkt_{uuid.uuid4().hex[:12]}"
    )
    event_id = Column(String, ForeignKey("events.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=1)
    total_price = Column(Integer, nullable=False)  # cents
    status = Column(String(50), nullable=False, default="confirmed")
    # Values: 'pending', 'confirmed', 'cancelled', 'refunded'
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    event = relationship("Event", back_populates="tickets")
