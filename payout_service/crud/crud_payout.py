# payout_service/crud/crud_payout.py
import logging
from typing import Any, Dict, List, Optional, Tuple, Union
from datetime import datetime, timezone

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from payout_service.crud.base import CRUDBase
from payout_service.db.types import utcnow
from payout_service.models.organizer import Organizer
from payout_service.models.payout import Payout
from payout_service.models.payout_audit_log import PayoutAuditLog
from payout_service.schemas.payout import (
    PayoutCreate,
    PayoutFilters,
    PayoutMethod,
    PayoutStatus,
    PayoutUpdate,
)
from payout_service.services.payout.errors import (
    DuplicatePayout,
    InvalidPayoutUpdate,
    InvalidTransition,
)
from payout_service.services.payout.state_machine import validate_transition

logger = logging.getLogger(__name__)

# Statuses that count as "pending" from the outside
PENDING_STATUSES = (PayoutStatus.pending.value, PayoutStatus.processing.value)


class CRUDPayout(CRUDBase[Payout, PayoutCreate, PayoutUpdate]):
    """
    Persistence for payouts.

    Plain field updates are last-write-wins. Status changes are validated
    against the state machine and applied as a compare-and-swap on the
    current status, so a transition either commits entirely or leaves the
    stored row untouched.
    """

    def get_active_for(
        self, db: Session, *, organizer_id: str, event_id: Optional[str]
    ) -> Optional[Payout]:
        """Get the non-cancelled payout for an organizer/event pair."""
        return (
            db.query(self.model)
            .filter(
                self.model.organizer_id == organizer_id,
                self.model.event_id == event_id,
                self.model.status != PayoutStatus.cancelled.value,
            )
            .first()
        )

    def create_payout(
        self, db: Session, *, obj_in: PayoutCreate, actor_id: Optional[str] = None
    ) -> Payout:
        """Create a pending payout, enforcing one live payout per organizer/event."""
        if obj_in.event_id is not None and self.get_active_for(
            db, organizer_id=obj_in.organizer_id, event_id=obj_in.event_id
        ):
            raise DuplicatePayout(
                f"A payout already exists for organizer {obj_in.organizer_id} "
                f"and event {obj_in.event_id}"
            )

        db_obj = Payout(
            organizer_id=obj_in.organizer_id,
            event_id=obj_in.event_id,
            amount=obj_in.amount,
            gross_amount=obj_in.gross_amount,
            platform_fee=obj_in.platform_fee,
            fee_percent=obj_in.fee_percent,
            currency=obj_in.currency.upper(),
            payout_method=obj_in.payout_method.value,
            scheduled_for=obj_in.scheduled_for,
            status=PayoutStatus.pending.value,
        )
        db.add(db_obj)
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            raise DuplicatePayout(
                f"A payout already exists for organizer {obj_in.organizer_id} "
                f"and event {obj_in.event_id}"
            )
        db.add(
            PayoutAuditLog(
                payout_id=db_obj.id,
                action="payout.created",
                actor_type="admin" if actor_id else "system",
                actor_id=actor_id,
                new_status=PayoutStatus.pending.value,
                change_details={
                    "gross_amount": obj_in.gross_amount,
                    "platform_fee": obj_in.platform_fee,
                    "fee_percent": str(obj_in.fee_percent),
                    "amount": obj_in.amount,
                    "payout_method": obj_in.payout_method.value,
                },
            )
        )
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def update(
        self,
        db: Session,
        *,
        db_obj: Payout,
        obj_in: Union[PayoutUpdate, Dict[str, Any]],
    ) -> Payout:
        """Last-write-wins update; a status change must be a legal transition."""
        if isinstance(obj_in, dict):
            update_data = dict(obj_in)
        else:
            update_data = obj_in.model_dump(exclude_unset=True)

        new_status = update_data.pop("status", None)
        if new_status is not None:
            new_status = PayoutStatus(new_status).value
        self._check_update_fields(db_obj, update_data, new_status or db_obj.status)

        if new_status is not None and new_status != db_obj.status:
            ok = self.transition(
                db,
                payout_id=db_obj.id,
                from_status=db_obj.status,
                to_status=new_status,
                payout_method=db_obj.payout_method,
                values=update_data,
                action="payout.updated",
                external_transfer_id=db_obj.external_transfer_id,
            )
            if not ok:
                raise InvalidTransition(
                    f"Payout {db_obj.id} changed concurrently; reload and try again",
                    current=db_obj.status,
                    target=new_status,
                    payout_id=db_obj.id,
                )
            db.refresh(db_obj)
            return db_obj
        return super().update(db, db_obj=db_obj, obj_in=update_data)

    def _check_update_fields(
        self, db_obj: Payout, update_data: Dict[str, Any], resulting_status: str
    ) -> None:
        """
        failure_reason only lives on failed payouts; scheduled_for only moves
        while the payout is pending, and never before the event ends.
        """
        if (
            update_data.get("failure_reason") is not None
            and resulting_status != PayoutStatus.failed.value
        ):
            raise InvalidPayoutUpdate(
                f"Payout {db_obj.id} is {resulting_status}; failure_reason is only "
                f"set on failed payouts",
                payout_id=db_obj.id,
            )

        if "scheduled_for" not in update_data:
            return
        scheduled_for = update_data["scheduled_for"]
        if scheduled_for is None:
            raise InvalidPayoutUpdate(
                f"Payout {db_obj.id} must keep a scheduled time", payout_id=db_obj.id
            )
        if (
            db_obj.status != PayoutStatus.pending.value
            or resulting_status != PayoutStatus.pending.value
        ):
            raise InvalidPayoutUpdate(
                f"Payout {db_obj.id} is {db_obj.status}; only pending payouts can be rescheduled",
                payout_id=db_obj.id,
            )
        if scheduled_for.tzinfo is None:
            scheduled_for = scheduled_for.replace(tzinfo=timezone.utc)
        if db_obj.event is not None and scheduled_for < db_obj.event.ends_at:
            raise InvalidPayoutUpdate(
                f"Payout {db_obj.id} cannot be scheduled before its event ends "
                f"({db_obj.event.ends_at.isoformat()})",
                payout_id=db_obj.id,
            )

    def transition(
        self,
        db: Session,
        *,
        payout_id: str,
        from_status: str,
        to_status: str,
        payout_method: str,
        values: Optional[Dict[str, Any]] = None,
        action: str,
        actor_type: str = "system",
        actor_id: Optional[str] = None,
        notes: Optional[str] = None,
        external_transfer_id: Optional[str] = None,
    ) -> bool:
        """
        Atomically move a payout from from_status to to_status.

        Raises InvalidTransition if the move is illegal. Returns False when the
        stored status no longer equals from_status (a concurrent writer won);
        nothing is written in that case.
        """
        values = dict(values or {})
        validate_transition(
            from_status,
            to_status,
            payout_method=payout_method,
            external_transfer_id=values.get("external_transfer_id") or external_transfer_id,
            payout_id=payout_id,
        )

        values["status"] = to_status
        values["updated_at"] = utcnow()
        if to_status != PayoutStatus.failed.value:
            values["failure_reason"] = None

        details = {
            k: (v.isoformat() if isinstance(v, datetime) else v)
            for k, v in values.items()
            if k not in ("status", "updated_at") and isinstance(v, (str, int, datetime, type(None)))
        }

        try:
            updated = (
                db.query(self.model)
                .filter(
                    self.model.id == payout_id,
                    self.model.status == from_status,
                    self.model.payout_method == payout_method,
                )
                .update(values, synchronize_session=False)
            )
            if updated != 1:
                db.rollback()
                logger.info(
                    f"Payout {payout_id} transition {from_status}->{to_status} lost: "
                    f"status changed concurrently"
                )
                return False

            db.add(
                PayoutAuditLog(
                    payout_id=payout_id,
                    action=action,
                    actor_type=actor_type,
                    actor_id=actor_id,
                    previous_status=from_status,
                    new_status=to_status,
                    change_details=details or None,
                    notes=notes,
                )
            )
            db.commit()
        except SQLAlchemyError:
            # The session is shared by concurrent attempts; leave it usable
            db.rollback()
            raise
        logger.info(f"Payout {payout_id}: {from_status} -> {to_status} ({action})")
        return True

    def migrate_to_stripe(
        self, db: Session, *, organizer_id: str, actor_id: Optional[str] = None
    ) -> int:
        """
        Switch every pending manual payout of an organizer to stripe.
        Each record is swapped individually; returns how many changed.
        """
        candidates = (
            db.query(self.model.id)
            .filter(
                self.model.organizer_id == organizer_id,
                self.model.status == PayoutStatus.pending.value,
                self.model.payout_method == PayoutMethod.manual.value,
            )
            .all()
        )

        migrated = 0
        for (payout_id,) in candidates:
            try:
                updated = (
                    db.query(self.model)
                    .filter(
                        self.model.id == payout_id,
                        self.model.status == PayoutStatus.pending.value,
                        self.model.payout_method == PayoutMethod.manual.value,
                    )
                    .update(
                        {
                            "payout_method": PayoutMethod.stripe.value,
                            "updated_at": utcnow(),
                        },
                        synchronize_session=False,
                    )
                )
                if updated != 1:
                    db.rollback()
                    continue
                db.add(
                    PayoutAuditLog(
                        payout_id=payout_id,
                        action="payout.migrated",
                        actor_type="admin" if actor_id else "system",
                        actor_id=actor_id,
                        previous_status=PayoutStatus.pending.value,
                        new_status=PayoutStatus.pending.value,
                        change_details={"payout_method": {"from": "manual", "to": "stripe"}},
                    )
                )
                db.commit()
            except SQLAlchemyError:
                db.rollback()
                raise
            migrated += 1

        return migrated

    def get_due_stripe(
        self, db: Session, *, now: datetime, event_id: Optional[str] = None
    ) -> List[Payout]:
        """Pending stripe payouts whose scheduled time has passed."""
        query = db.query(self.model).filter(
            self.model.status == PayoutStatus.pending.value,
            self.model.payout_method == PayoutMethod.stripe.value,
            self.model.scheduled_for <= now,
        )
        if event_id is not None:
            query = query.filter(self.model.event_id == event_id)
        return query.order_by(self.model.scheduled_for.asc()).all()

    def get_pending_by_event(self, db: Session, *, event_id: str) -> List[Payout]:
        return (
            db.query(self.model)
            .filter(
                self.model.event_id == event_id,
                self.model.status == PayoutStatus.pending.value,
            )
            .order_by(self.model.created_at.asc())
            .all()
        )

    def list_payouts(
        self,
        db: Session,
        *,
        filters: PayoutFilters,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Payout], int]:
        """Filter by organizer name/email substring, status and method."""
        query = db.query(self.model).outerjoin(
            Organizer, Organizer.id == self.model.organizer_id
        )

        if filters.search:
            pattern = f"%{filters.search.strip()}%"
            query = query.filter(
                or_(Organizer.name.ilike(pattern), Organizer.email.ilike(pattern))
            )

        if filters.status:
            if filters.status in (PayoutStatus.pending, PayoutStatus.processing):
                query = query.filter(self.model.status.in_(PENDING_STATUSES))
            else:
                query = query.filter(self.model.status == filters.status.value)

        if filters.payout_method:
            query = query.filter(self.model.payout_method == filters.payout_method.value)

        total = query.count()
        payouts = (
            query.order_by(self.model.created_at.desc(), self.model.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )
        return payouts, total

    def count_by_status(self, db: Session) -> Dict[str, int]:
        rows = (
            db.query(self.model.status, func.count(self.model.id))
            .group_by(self.model.status)
            .all()
        )
        return {status: count for status, count in rows}

    def count_pending_by_method(self, db: Session) -> Dict[str, int]:
        rows = (
            db.query(self.model.payout_method, func.count(self.model.id))
            .filter(self.model.status.in_(PENDING_STATUSES))
            .group_by(self.model.payout_method)
            .all()
        )
        return {method: count for method, count in rows}

    def sum_amount_by_status(self, db: Session) -> Dict[str, int]:
        rows = (
            db.query(self.model.status, func.coalesce(func.sum(self.model.amount), 0))
            .group_by(self.model.status)
            .all()
        )
        return {status: int(total) for status, total in rows}


payout = CRUDPayout(Payout)
