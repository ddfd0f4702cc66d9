# payout_service/services/payout/state_machine.py
"""
Payout status state machine.

Public lifecycle:
    pending -> paid | failed | cancelled
    failed  -> pending (retry)

Internal claim substate used by the disbursement executor:
    pending    -> processing (claim)
    processing -> paid | failed | pending (claim released)
"""
from typing import Dict, Optional, Set

from payout_service.schemas.payout import PayoutMethod, PayoutStatus
from .errors import InvalidTransition

ALLOWED_TRANSITIONS: Dict[PayoutStatus, Set[PayoutStatus]] = {
    PayoutStatus.pending: {
        PayoutStatus.processing,
        PayoutStatus.paid,
        PayoutStatus.failed,
        PayoutStatus.cancelled,
    },
    PayoutStatus.processing: {
        PayoutStatus.paid,
        PayoutStatus.failed,
        PayoutStatus.pending,
    },
    PayoutStatus.failed: {PayoutStatus.pending},
    PayoutStatus.paid: set(),
    PayoutStatus.cancelled: set(),
}

TERMINAL_STATUSES = {PayoutStatus.paid, PayoutStatus.cancelled}


def can_transition(current: str, target: str) -> bool:
    return PayoutStatus(target) in ALLOWED_TRANSITIONS[PayoutStatus(current)]


def validate_transition(
    current: str,
    target: str,
    *,
    payout_method: str,
    external_transfer_id: Optional[str] = None,
    payout_id: Optional[str] = None,
) -> None:
    """
    Raise InvalidTransition unless current -> target is legal for a payout
    with the given method.
    """
    current_status = PayoutStatus(current)
    target_status = PayoutStatus(target)
    method = PayoutMethod(payout_method)

    if target_status not in ALLOWED_TRANSITIONS[current_status]:
        raise InvalidTransition(
            f"Cannot move payout from {current_status.value} to {target_status.value}",
            current=current_status.value,
            target=target_status.value,
            payout_id=payout_id,
        )

    if target_status == PayoutStatus.processing and method != PayoutMethod.stripe:
        raise InvalidTransition(
            "Only stripe payouts can be claimed for transfer",
            current=current_status.value,
            target=target_status.value,
            payout_id=payout_id,
        )

    if target_status == PayoutStatus.paid:
        if method == PayoutMethod.stripe:
            # Only a completed transfer pays a stripe payout
            if current_status != PayoutStatus.processing or not external_transfer_id:
                raise InvalidTransition(
                    "Stripe payouts can only be paid by a transfer with a transfer id",
                    current=current_status.value,
                    target=target_status.value,
                    payout_id=payout_id,
                )
        elif current_status != PayoutStatus.pending:
            raise InvalidTransition(
                "Manual payouts can only be paid by operator confirmation",
                current=current_status.value,
                target=target_status.value,
                payout_id=payout_id,
            )
