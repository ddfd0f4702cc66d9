# payout_service/crud/__init__.py

from .crud_payout import payout
