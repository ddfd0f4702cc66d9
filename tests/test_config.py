import pytest
from pydantic import ValidationError

from payout_service.core.config import Settings


def test_defaults():
    settings = Settings()

    assert settings.PLATFORM_FEE_PERCENT == 5.0
    assert settings.PAYOUT_DELAY_HOURS == 0


def test_negative_payout_delay_rejected():
    with pytest.raises(ValidationError):
        Settings(PAYOUT_DELAY_HOURS=-1)


def test_batch_concurrency_must_be_positive():
    with pytest.raises(ValidationError):
        Settings(PAYOUT_BATCH_CONCURRENCY=0)
