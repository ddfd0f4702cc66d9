# payout_service/services/payout/reporting.py
from sqlalchemy.orm import Session

from payout_service import crud
from payout_service.schemas.payout import (
    PayoutAmounts,
    PayoutCounts,
    PayoutMethod,
    PayoutStats,
    PayoutStatus,
)


class PayoutReporting:
    """Read-side aggregates for the admin payouts dashboard, computed at query time."""

    def __init__(self, db: Session):
        self.db = db

    def get_stats(self) -> PayoutStats:
        by_status = crud.payout.count_by_status(self.db)
        pending_by_method = crud.payout.count_pending_by_method(self.db)
        sums = crud.payout.sum_amount_by_status(self.db)

        # Claimed payouts are still pending from the outside
        pending_count = by_status.get(PayoutStatus.pending.value, 0) + by_status.get(
            PayoutStatus.processing.value, 0
        )
        pending_amount = sums.get(PayoutStatus.pending.value, 0) + sums.get(
            PayoutStatus.processing.value, 0
        )

        return PayoutStats(
            counts=PayoutCounts(
                pending=pending_count,
                paid=by_status.get(PayoutStatus.paid.value, 0),
                failed=by_status.get(PayoutStatus.failed.value, 0),
                cancelled=by_status.get(PayoutStatus.cancelled.value, 0),
                pending_stripe=pending_by_method.get(PayoutMethod.stripe.value, 0),
                pending_manual=pending_by_method.get(PayoutMethod.manual.value, 0),
            ),
            amounts=PayoutAmounts(
                pending=pending_amount,
                paid=sums.get(PayoutStatus.paid.value, 0),
            ),
        )
