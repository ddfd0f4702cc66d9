# payout_service/services/payout/transfer_client.py
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

import stripe

from payout_service.core.config import settings

logger = logging.getLogger(__name__)


class TransferError(Exception):
    """Error returned by the payment processor for a transfer."""

    def __init__(self, code: str, message: str, retryable: bool = False):
        self.code = code
        self.message = message
        self.retryable = retryable
        super().__init__(message)


class TransferClient(ABC):
    """Moves money from the platform balance to an organizer account."""

    @abstractmethod
    async def create_transfer(
        self,
        *,
        account_id: str,
        amount: int,
        currency: str,
        idempotency_key: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        """
        Issue a transfer and return the processor's transfer id.
        Raises TransferError when the processor rejects it.
        """
        pass


class StripeTransferClient(TransferClient):
    """Stripe Connect transfers to Express connected accounts."""

    def __init__(self, api_key: Optional[str] = None):
        if api_key:
            stripe.api_key = api_key
        elif not stripe.api_key:
            stripe.api_key = settings.STRIPE_SECRET_KEY

    async def create_transfer(
        self,
        *,
        account_id: str,
        amount: int,
        currency: str,
        idempotency_key: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        try:
            # The SDK is blocking; keep the event loop free for the rest of the batch
            transfer = await asyncio.to_thread(
                stripe.Transfer.create,
                amount=amount,
                currency=currency.lower(),
                destination=account_id,
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            )
        except stripe.InvalidRequestError as e:
            logger.error(f"Invalid transfer request to {account_id}: {e}")
            raise TransferError(
                code=e.code or "INVALID_REQUEST",
                message=e.user_message or str(e),
                retryable=False,
            )
        except (stripe.APIConnectionError, stripe.RateLimitError) as e:
            logger.warning(f"Transient Stripe error transferring to {account_id}: {e}")
            raise TransferError(
                code="PROVIDER_UNAVAILABLE",
                message=e.user_message or str(e),
                retryable=True,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error transferring to {account_id}: {e}")
            raise TransferError(
                code=e.code or "PROVIDER_ERROR",
                message=e.user_message or str(e),
                retryable=True,
            )

        logger.info(
            f"Created Stripe transfer {transfer.id} of {amount} {currency} to {account_id}"
        )
        return transfer.id
