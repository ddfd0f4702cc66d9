# payout_service/services/payout/__init__.py
from .fee_calculator import FeeCalculator, PayoutFee
from .errors import (
    PayoutError,
    InvalidTransition,
    InvalidPayoutUpdate,
    NotDue,
    NoPayableAccount,
    ExternalTransferFailed,
    AlreadyProcessing,
    PayoutNotFound,
    EventNotFound,
    DuplicatePayout,
    NoRevenue,
)

__all__ = [
    "FeeCalculator",
    "PayoutFee",
    "PayoutError",
    "InvalidTransition",
    "InvalidPayoutUpdate",
    "NotDue",
    "NoPayableAccount",
    "ExternalTransferFailed",
    "AlreadyProcessing",
    "PayoutNotFound",
    "EventNotFound",
    "DuplicatePayout",
    "NoRevenue",
]
