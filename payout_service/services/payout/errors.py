# payout_service/services/payout/errors.py
"""
Error taxonomy for the payout engine.

Validation errors are raised before any state is mutated. Processor errors
are recorded on the payout (status=failed) and then surfaced as
ExternalTransferFailed.
"""
from typing import Optional


class PayoutError(Exception):
    """Base exception for payout operations."""

    code = "PAYOUT_ERROR"

    def __init__(self, message: str, retryable: bool = False, payout_id: Optional[str] = None):
        self.message = message
        self.retryable = retryable
        self.payout_id = payout_id
        super().__init__(message)


class InvalidTransition(PayoutError):
    code = "INVALID_TRANSITION"

    def __init__(self, message: str, current: Optional[str] = None,
                 target: Optional[str] = None, payout_id: Optional[str] = None):
        self.current = current
        self.target = target
        super().__init__(message, retryable=False, payout_id=payout_id)


class InvalidPayoutUpdate(PayoutError):
    code = "INVALID_UPDATE"


class NotDue(PayoutError):
    code = "NOT_DUE"

    def __init__(self, message: str, payout_id: Optional[str] = None):
        super().__init__(message, retryable=True, payout_id=payout_id)


class NoPayableAccount(PayoutError):
    code = "NO_PAYABLE_ACCOUNT"


class AlreadyProcessing(PayoutError):
    code = "ALREADY_PROCESSING"

    def __init__(self, message: str, payout_id: Optional[str] = None):
        super().__init__(message, retryable=True, payout_id=payout_id)


class ExternalTransferFailed(PayoutError):
    """Wraps the processor's TransferError after the failure was recorded."""

    code = "EXTERNAL_TRANSFER_FAILED"

    def __init__(self, payout_id: str, cause):
        self.cause = cause
        super().__init__(
            cause.message,
            retryable=getattr(cause, "retryable", False),
            payout_id=payout_id,
        )


class PayoutNotFound(PayoutError):
    code = "PAYOUT_NOT_FOUND"


class EventNotFound(PayoutError):
    code = "EVENT_NOT_FOUND"


class DuplicatePayout(PayoutError):
    code = "DUPLICATE_PAYOUT"


class NoRevenue(PayoutError):
    code = "NO_REVENUE"
