# payout_service/schemas/payout.py
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List, Any
from datetime import datetime
from decimal import Decimal
from enum import Enum


# ============================================
# Enums
# ============================================

class PayoutStatus(str, Enum):
    pending = "pending"
    processing = "processing"  # claimed by the executor, never shown to clients
    paid = "paid"
    failed = "failed"
    cancelled = "cancelled"


class PayoutMethod(str, Enum):
    stripe = "stripe"
    manual = "manual"


class AttemptStatus(str, Enum):
    succeeded = "succeeded"
    failed = "failed"
    skipped = "skipped"


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ============================================
# Read models
# ============================================

class OrganizerRef(CamelModel):
    id: str
    name: str
    email: str
    phone: Optional[str] = None
    has_payable_account: bool = False
    stripe_account_id: Optional[str] = None


class EventRef(CamelModel):
    id: str
    title: str
    start_date: datetime
    end_date: Optional[datetime] = None
    ticket_price: int = 0


class PayoutRead(CamelModel):
    id: str
    amount: int
    gross_amount: int
    platform_fee: int
    fee_percent: Decimal
    currency: str
    status: PayoutStatus
    payout_method: PayoutMethod
    scheduled_for: datetime
    processed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    external_transfer_id: Optional[str] = None
    notes: Optional[str] = None
    # None when the organizer is gone from the directory
    organizer: Optional[OrganizerRef] = None
    event: Optional[EventRef] = None
    created_at: datetime

    @field_validator("status", mode="before")
    @classmethod
    def hide_claim_state(cls, v: Any) -> Any:
        """The claim substate is reported as pending."""
        if v == PayoutStatus.processing or v == PayoutStatus.processing.value:
            return PayoutStatus.pending
        return v


# ============================================
# Write models
# ============================================

class PayoutCreate(BaseModel):
    organizer_id: str
    event_id: Optional[str] = None
    amount: int = Field(..., ge=0)
    gross_amount: int = Field(..., ge=0)
    platform_fee: int = Field(..., ge=0)
    fee_percent: Decimal
    currency: str = Field(..., min_length=3, max_length=3)
    payout_method: PayoutMethod
    scheduled_for: datetime


class PayoutUpdate(BaseModel):
    status: Optional[PayoutStatus] = None
    failure_reason: Optional[str] = None
    notes: Optional[str] = None
    scheduled_for: Optional[datetime] = None


class PayoutFilters(BaseModel):
    search: Optional[str] = None
    status: Optional[PayoutStatus] = None
    payout_method: Optional[PayoutMethod] = None


class MarkPaidInput(BaseModel):
    notes: Optional[str] = None


class CancelPayoutInput(BaseModel):
    reason: Optional[str] = None


# ============================================
# Operation results
# ============================================

class PayoutAttemptResult(CamelModel):
    payout_id: str
    status: AttemptStatus
    amount: int = 0
    transfer_id: Optional[str] = None
    error: Optional[str] = None


class BatchResult(CamelModel):
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    results: List[PayoutAttemptResult] = []


class EventPayoutResult(BatchResult):
    event_id: str
    event_title: str
    total_amount: int = 0
    warnings: List[str] = []


class RetryResult(CamelModel):
    payout_id: str
    transfer_id: str
    amount: int


class MigrateResult(CamelModel):
    migrated_count: int


class ScheduleResult(CamelModel):
    created_count: int


# ============================================
# Reporting
# ============================================

class PayoutCounts(CamelModel):
    pending: int = 0
    paid: int = 0
    failed: int = 0
    cancelled: int = 0
    pending_stripe: int = 0
    pending_manual: int = 0


class PayoutAmounts(CamelModel):
    pending: int = 0  # cents
    paid: int = 0  # cents


class PayoutStats(CamelModel):
    counts: PayoutCounts
    amounts: PayoutAmounts


class PageMeta(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int
