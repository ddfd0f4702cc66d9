# payout_service/models/payout_audit_log.py
from sqlalchemy import Column, String, Text, JSON
from payout_service.db.base_class import Base
from payout_service.db.types import UTCDateTime, utcnow
import uuid


class PayoutAuditLog(Base):
    __tablename__ = "payout_audit_log"

    id = Column(
        String, primary_key=True, default=lambda: f"pal_{uuid.uuid4().hex[:12]}"
    )
    payout_id = Column(String, nullable=False, index=True)

    # What happened
    action = Column(String(100), nullable=False)
    # Values: 'payout.created', 'payout.claimed', 'payout.paid', 'payout.failed',
    #         'payout.claim_released', 'payout.retried', 'payout.migrated',
    #         'payout.cancelled', 'payout.updated'

    # Who did it
    actor_type = Column(String(50), nullable=False)  # 'system', 'admin', 'scheduler'
    actor_id = Column(String, nullable=True)

    previous_status = Column(String(50), nullable=True)
    new_status = Column(String(50), nullable=True)
    change_details = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)

    # Immutable timestamp
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
