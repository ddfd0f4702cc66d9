# payout_service/api/v1/endpoints/admin_payouts.py
"""
Admin endpoints for organizer payouts.

Backs the platform admin "Payouts" page: listing and stats, operator
actions (mark paid, retry, migrate, cancel, recompute) and the batch
triggers. Every response uses the {success, message, data, meta} envelope.
"""
import logging
import math
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from payout_service import crud
from payout_service.api.deps import get_admin_actor, get_db, get_payout_orchestrator
from payout_service.schemas.payout import (
    CancelPayoutInput,
    MarkPaidInput,
    MigrateResult,
    PageMeta,
    PayoutFilters,
    PayoutMethod,
    PayoutRead,
    PayoutStatus,
    ScheduleResult,
)
from payout_service.services.payout.errors import (
    AlreadyProcessing,
    DuplicatePayout,
    EventNotFound,
    ExternalTransferFailed,
    InvalidPayoutUpdate,
    InvalidTransition,
    NoPayableAccount,
    NoRevenue,
    NotDue,
    PayoutError,
    PayoutNotFound,
)
from payout_service.services.payout.orchestrator import PayoutOrchestrator
from payout_service.services.payout.reporting import PayoutReporting

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_STATUS = {
    PayoutNotFound: status.HTTP_404_NOT_FOUND,
    EventNotFound: status.HTTP_404_NOT_FOUND,
    InvalidTransition: status.HTTP_409_CONFLICT,
    AlreadyProcessing: status.HTTP_409_CONFLICT,
    DuplicatePayout: status.HTTP_409_CONFLICT,
    NotDue: status.HTTP_422_UNPROCESSABLE_ENTITY,
    InvalidPayoutUpdate: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NoPayableAccount: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NoRevenue: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ExternalTransferFailed: status.HTTP_502_BAD_GATEWAY,
}


def _http_error(e: PayoutError) -> HTTPException:
    status_code = ERROR_STATUS.get(type(e), status.HTTP_400_BAD_REQUEST)
    return HTTPException(
        status_code=status_code,
        detail={
            "success": "Error",
            "message": e.message,
            "error": {"code": e.code, "retryable": e.retryable, "payoutId": e.payout_id},
        },
    )


def _ok(data: Any, message: str = "Success", meta: Optional[PageMeta] = None) -> dict:
    body = {
        "success": "Success",
        "message": message,
        "data": jsonable_encoder(data, by_alias=True),
    }
    if meta is not None:
        body["meta"] = jsonable_encoder(meta, by_alias=True)
    return body


@router.get("/stats")
def get_payout_stats(
    db: Session = Depends(get_db),
    actor: str = Depends(get_admin_actor),
):
    """Counts per status, pending counts per method, pending and paid totals."""
    return _ok(PayoutReporting(db).get_stats())


@router.get("/detailed")
def list_payouts(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None),
    status_filter: Optional[PayoutStatus] = Query(None, alias="status"),
    payout_method: Optional[PayoutMethod] = Query(None, alias="payoutMethod"),
    db: Session = Depends(get_db),
    actor: str = Depends(get_admin_actor),
):
    """List payouts with organizer and event details."""
    filters = PayoutFilters(search=search, status=status_filter, payout_method=payout_method)
    payouts, total = crud.payout.list_payouts(
        db, filters=filters, skip=(page - 1) * limit, limit=limit
    )
    meta = PageMeta(
        page=page,
        limit=limit,
        total=total,
        total_pages=max(1, math.ceil(total / limit)),
    )
    return _ok([PayoutRead.model_validate(p) for p in payouts], meta=meta)


@router.post("/process-stripe")
async def process_stripe_payouts(
    orchestrator: PayoutOrchestrator = Depends(get_payout_orchestrator),
    actor: str = Depends(get_admin_actor),
):
    """Transfer every due pending stripe payout."""
    result = await orchestrator.process_all_due_stripe_payouts(actor_id=actor)
    if result.processed == 0:
        return _ok(result, "No pending Stripe payouts to process")
    return _ok(
        result,
        f"Processed {result.processed} payouts: "
        f"{result.succeeded} succeeded, {result.failed} failed",
    )


@router.post("/process-event/{event_id}")
async def process_event_payout(
    event_id: str,
    orchestrator: PayoutOrchestrator = Depends(get_payout_orchestrator),
    actor: str = Depends(get_admin_actor),
):
    """Release the payouts of one event without waiting for the batch."""
    try:
        result = await orchestrator.process_event_payout(event_id, actor_id=actor)
    except PayoutError as e:
        raise _http_error(e)
    return _ok(result, f'Processed payouts for "{result.event_title}"')


@router.post("/schedule", status_code=status.HTTP_201_CREATED)
def schedule_completed_events(
    orchestrator: PayoutOrchestrator = Depends(get_payout_orchestrator),
    actor: str = Depends(get_admin_actor),
):
    """Create payouts for ended events that do not have one yet."""
    created = orchestrator.schedule_completed_events()
    return _ok(ScheduleResult(created_count=created), f"Scheduled {created} payouts")


@router.put("/migrate/{organizer_id}")
def migrate_organizer_to_stripe(
    organizer_id: str,
    orchestrator: PayoutOrchestrator = Depends(get_payout_orchestrator),
    actor: str = Depends(get_admin_actor),
):
    """Move an organizer's pending manual payouts to stripe."""
    try:
        migrated = orchestrator.migrate_organizer_to_stripe(organizer_id, actor_id=actor)
    except PayoutError as e:
        raise _http_error(e)
    return _ok(MigrateResult(migrated_count=migrated), f"Migrated {migrated} payouts to Stripe")


@router.get("/{payout_id}")
def get_payout(
    payout_id: str,
    orchestrator: PayoutOrchestrator = Depends(get_payout_orchestrator),
    actor: str = Depends(get_admin_actor),
):
    try:
        payout = orchestrator.get_payout(payout_id)
    except PayoutError as e:
        raise _http_error(e)
    return _ok(PayoutRead.model_validate(payout))


@router.put("/{payout_id}/mark-paid")
def mark_payout_paid(
    payout_id: str,
    body: MarkPaidInput,
    orchestrator: PayoutOrchestrator = Depends(get_payout_orchestrator),
    actor: str = Depends(get_admin_actor),
):
    """Confirm that a manual payout was transferred outside the platform."""
    try:
        payout = orchestrator.mark_manual_paid(payout_id, body.notes, actor_id=actor)
    except PayoutError as e:
        raise _http_error(e)
    return _ok(PayoutRead.model_validate(payout), "Payout marked as paid")


@router.put("/{payout_id}/retry")
async def retry_payout(
    payout_id: str,
    orchestrator: PayoutOrchestrator = Depends(get_payout_orchestrator),
    actor: str = Depends(get_admin_actor),
):
    """Retry a failed stripe payout."""
    try:
        result = await orchestrator.retry(payout_id, actor_id=actor)
    except PayoutError as e:
        raise _http_error(e)
    return _ok(result, "Payout retried successfully")


@router.put("/{payout_id}/cancel")
def cancel_payout(
    payout_id: str,
    body: CancelPayoutInput,
    orchestrator: PayoutOrchestrator = Depends(get_payout_orchestrator),
    actor: str = Depends(get_admin_actor),
):
    try:
        payout = orchestrator.cancel_payout(payout_id, body.reason, actor_id=actor)
    except PayoutError as e:
        raise _http_error(e)
    return _ok(PayoutRead.model_validate(payout), "Payout cancelled")


@router.put("/{payout_id}/recompute")
def recompute_payout(
    payout_id: str,
    orchestrator: PayoutOrchestrator = Depends(get_payout_orchestrator),
    actor: str = Depends(get_admin_actor),
):
    """Cancel a pending payout and replace it with one computed from current revenue."""
    try:
        payout = orchestrator.recompute_payout(payout_id, actor_id=actor)
    except PayoutError as e:
        raise _http_error(e)
    return _ok(PayoutRead.model_validate(payout), "Payout recomputed")
