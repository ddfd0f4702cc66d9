# payout_service/api/deps.py
from datetime import timedelta
from typing import Generator, Optional

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader, OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from payout_service.core.config import settings
from payout_service.db.session import SessionLocal
from payout_service.schemas.token import TokenPayload
from payout_service.services.payout.collaborators import (
    SqlEventRevenueSource,
    SqlOrganizerDirectory,
)
from payout_service.services.payout.disbursement import DisbursementExecutor
from payout_service.services.payout.fee_calculator import FeeCalculator
from payout_service.services.payout.orchestrator import PayoutOrchestrator
from payout_service.services.payout.transfer_client import StripeTransferClient


def get_db() -> Generator:
    """Dependency to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


oauth2_scheme_optional = OAuth2PasswordBearer(tokenUrl="token", auto_error=False)

# Cron-like callers authenticate with the internal key instead of a user token
api_key_header = APIKeyHeader(name="X-Internal-Api-Key", auto_error=False)


def get_admin_actor(
    token: Optional[str] = Depends(oauth2_scheme_optional),
    api_key: Optional[str] = Security(api_key_header),
) -> str:
    """
    Authorize a platform admin (JWT with isPlatformAdmin) or an internal
    caller. Returns the actor id recorded in the payout audit log.
    """
    if api_key is not None:
        if api_key == settings.INTERNAL_API_KEY:
            return "internal"
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid Internal API Key",
        )

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if token is None:
        raise credentials_exception
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=["HS256"])
        token_data = TokenPayload(**payload)
    except (JWTError, ValueError):
        raise credentials_exception

    if not token_data.is_platform_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Platform admin access required",
        )
    return token_data.sub


def build_orchestrator(db: Session) -> PayoutOrchestrator:
    """Wire the orchestrator with the SQL collaborators and the Stripe client."""
    organizer_directory = SqlOrganizerDirectory(db)
    executor = DisbursementExecutor(
        db,
        transfer_client=StripeTransferClient(),
        organizer_directory=organizer_directory,
    )
    return PayoutOrchestrator(
        db,
        executor=executor,
        event_source=SqlEventRevenueSource(db),
        organizer_directory=organizer_directory,
        fee_calculator=FeeCalculator(settings.PLATFORM_FEE_PERCENT),
        default_currency=settings.DEFAULT_CURRENCY,
        payout_delay=timedelta(hours=settings.PAYOUT_DELAY_HOURS),
        max_concurrency=settings.PAYOUT_BATCH_CONCURRENCY,
    )


def get_payout_orchestrator(db: Session = Depends(get_db)) -> PayoutOrchestrator:
    return build_orchestrator(db)
