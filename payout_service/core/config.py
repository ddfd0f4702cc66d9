# payout_service/core/config.py

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Values come from the environment provided by Docker Compose.
    model_config = SettingsConfigDict(extra="ignore")

    # The environment mode: 'local' or 'prod'
    ENV: str = "local"

    # --- Production URLs (for inside Docker) ---
    DATABASE_URL_PROD: str = "postgresql://postgres:postgres@db:5432/payouts_db"
    KAFKA_BOOTSTRAP_SERVERS_PROD: str = "kafka:9092"

    # --- Local Development URLs (for running locally) ---
    DATABASE_URL_LOCAL: str = "sqlite:///./payouts.db"
    KAFKA_BOOTSTRAP_SERVERS_LOCAL: str = "localhost:9092"

    # Other secrets
    JWT_SECRET: str = "change-me"
    INTERNAL_API_KEY: str = "change-me"
    STRIPE_SECRET_KEY: str = ""

    # --- Payouts ---
    PLATFORM_FEE_PERCENT: float = Field(5.0, ge=0, le=100)
    DEFAULT_CURRENCY: str = "USD"
    PAYOUT_DELAY_HOURS: int = Field(0, ge=0)
    PAYOUT_BATCH_CONCURRENCY: int = Field(4, ge=1)
    PAYOUT_SCHEDULER_ENABLED: bool = False
    PAYOUT_SCHEDULE_INTERVAL_MINUTES: int = 60
    KAFKA_ENABLED: bool = False

    LOG_LEVEL: str = "INFO"

    # --- Dynamic Properties ---
    @property
    def DATABASE_URL(self) -> str:
        return (
            self.DATABASE_URL_LOCAL if self.ENV == "local" else self.DATABASE_URL_PROD
        )

    @property
    def KAFKA_BOOTSTRAP_SERVERS(self) -> str:
        return (
            self.KAFKA_BOOTSTRAP_SERVERS_LOCAL
            if self.ENV == "local"
            else self.KAFKA_BOOTSTRAP_SERVERS_PROD
        )


# Create a single instance of the settings
settings = Settings()
