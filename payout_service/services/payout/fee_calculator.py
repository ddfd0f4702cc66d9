"""
Platform service fee for organizer payouts.

Fee model:
- net_amount = gross * (1 - fee_percent / 100), rounded half-even to the cent
- fee = gross - net_amount, so fee + net always equals gross
- Amounts are integers in the currency's minor unit
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_EVEN


@dataclass
class PayoutFee:
    gross_amount: int       # cents
    fee: int                # cents
    net_amount: int         # cents
    fee_percent: Decimal    # the percentage applied, kept for audit


class FeeCalculator:
    """
    Calculates the platform service fee withheld from an organizer's
    ticket revenue.

    Args:
        fee_percent: Platform fee percentage (e.g., 5.0 for 5%)
    """

    def __init__(self, fee_percent: float = 5.0):
        fee_percent = Decimal(str(fee_percent))
        if fee_percent < 0 or fee_percent > 100:
            raise ValueError("fee_percent must be between 0 and 100")
        self.fee_percent = fee_percent

    def calculate(self, gross_amount: int) -> PayoutFee:
        """Split gross revenue into platform fee and net payable amount."""
        if isinstance(gross_amount, bool) or not isinstance(gross_amount, int):
            raise TypeError("Gross revenue must be an integer amount of minor units")
        if gross_amount < 0:
            raise ValueError("Gross revenue cannot be negative")

        gross = Decimal(gross_amount)
        rate = self.fee_percent / Decimal(100)
        net = (gross * (Decimal(1) - rate)).quantize(Decimal(1), rounding=ROUND_HALF_EVEN)
        net_amount = int(net)

        return PayoutFee(
            gross_amount=gross_amount,
            fee=gross_amount - net_amount,
            net_amount=net_amount,
            fee_percent=self.fee_percent,
        )
