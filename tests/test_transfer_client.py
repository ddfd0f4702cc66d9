"""
Tests for the Stripe transfer client.

All Stripe API calls are mocked.
"""

from unittest.mock import MagicMock, patch

import pytest
import stripe

from payout_service.services.payout.transfer_client import StripeTransferClient, TransferError
from tests.utils.payout import run_async


def _transfer(client, **overrides):
    kwargs = dict(
        account_id="acct_ada",
        amount=95000,
        currency="USD",
        idempotency_key="payout_po_1_attempt_1",
        metadata={"payout_id": "po_1"},
    )
    kwargs.update(overrides)
    return run_async(client.create_transfer(**kwargs))


class TestStripeTransferClient:

    def setup_method(self):
        self.client = StripeTransferClient(api_key="sk_test_123")

    @patch("stripe.Transfer.create")
    def test_creates_transfer(self, mock_create):
        mock_create.return_value = MagicMock(id="tr_123")

        transfer_id = _transfer(self.client)

        assert transfer_id == "tr_123"
        mock_create.assert_called_once_with(
            amount=95000,
            currency="usd",
            destination="acct_ada",
            metadata={"payout_id": "po_1"},
            idempotency_key="payout_po_1_attempt_1",
        )

    @patch("stripe.Transfer.create")
    def test_invalid_request_is_not_retryable(self, mock_create):
        mock_create.side_effect = stripe.InvalidRequestError(
            "Insufficient funds in Stripe account", param="amount", code="balance_insufficient"
        )

        with pytest.raises(TransferError) as exc_info:
            _transfer(self.client)

        assert exc_info.value.code == "balance_insufficient"
        assert "Insufficient funds" in exc_info.value.message
        assert exc_info.value.retryable is False

    @patch("stripe.Transfer.create")
    def test_connection_error_is_retryable(self, mock_create):
        mock_create.side_effect = stripe.APIConnectionError("Network unreachable")

        with pytest.raises(TransferError) as exc_info:
            _transfer(self.client)

        assert exc_info.value.code == "PROVIDER_UNAVAILABLE"
        assert exc_info.value.retryable is True

    @patch("stripe.Transfer.create")
    def test_rate_limit_is_retryable(self, mock_create):
        mock_create.side_effect = stripe.RateLimitError("Too many requests")

        with pytest.raises(TransferError) as exc_info:
            _transfer(self.client)

        assert exc_info.value.retryable is True

    @patch("stripe.Transfer.create")
    def test_other_errors_propagate(self, mock_create):
        mock_create.side_effect = RuntimeError("unexpected")

        with pytest.raises(RuntimeError):
            _transfer(self.client)
