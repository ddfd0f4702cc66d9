# payout_service/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from payout_service.api.v1.api import api_router
from payout_service.core.config import settings
from payout_service.core.kafka_producer import close_kafka_singleton
from payout_service.core.logging import configure_logging
from payout_service.db.base_class import Base
from payout_service.db.session import engine
from payout_service import models  # noqa: F401  registers tables on Base
from payout_service.scheduler import init_scheduler, shutdown_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Payout service starting up...")
    if settings.ENV == "local":
        # Production schemas are managed by alembic
        Base.metadata.create_all(bind=engine)
    if settings.PAYOUT_SCHEDULER_ENABLED:
        init_scheduler()
    yield
    shutdown_scheduler()
    close_kafka_singleton()
    logger.info("Payout service shutting down...")


app = FastAPI(
    title="Organizer Payout Service",
    version="1.0.0",
    description="""
        Organizer payout distribution engine.

        ## Features

        * **Payout scheduling**: One payout per organizer and event once the event has ended
        * **Fees**: Platform service fee withheld from gross ticket revenue
        * **Stripe transfers**: Batch and per-event transfers to connected accounts
        * **Manual payouts**: Operator confirmation for organizers without an account
        * **Retries and migration**: Retry failed transfers, move manual payouts to Stripe
        * **Reporting**: Counts and totals for the admin dashboard

        ## Authentication

        Admin endpoints require a platform admin JWT via `Authorization: Bearer <token>`
        or the `X-Internal-Api-Key` header for internal callers.
        """,
    lifespan=lifespan,
)

origins = [
    "http://localhost:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")


@app.get("/")
def read_root():
    return {"status": "Payout Service is running"}
