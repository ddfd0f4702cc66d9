# payout_service/core/logging.py
import logging

from payout_service.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging() -> None:
    """
    Configure the root logger once for the whole service.
    Modules only ever call logging.getLogger(__name__).
    """
    root = logging.getLogger()
    if root.handlers:
        return
    logging.basicConfig(level=settings.LOG_LEVEL.upper(), format=LOG_FORMAT)
    # The Stripe SDK and kafka are chatty at INFO
    logging.getLogger("stripe").setLevel(logging.WARNING)
    logging.getLogger("kafka").setLevel(logging.WARNING)
