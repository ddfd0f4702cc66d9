# payout_service/models/event.py
from sqlalchemy import Column, String, Integer, ForeignKey
from sqlalchemy.orm import relationship
from payout_service.db.base_class import Base
from payout_service.db.types import UTCDateTime, utcnow
import uuid


class Event(Base):
    __tablename__ = "events"

    id = Column(
        String, primary_key=True, default=lambda: f"evt_{uuid.uuid4().hex[:12]}"
    )
    organizer_id = Column(String, ForeignKey("organizers.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    start_date = Column(UTCDateTime, nullable=False)
    end_date = Column(UTCDateTime, nullable=True)
    ticket_price = Column(Integer, nullable=False, default=0)  # cents
    currency = Column(String(3), nullable=False, default="USD")
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    organizer = relationship("Organizer")
    tickets = relationship("Ticket", back_populates="event")

    @property
    def ends_at(self):
        # Single-day events may only carry a start date
        return self.end_date or self.start_date
