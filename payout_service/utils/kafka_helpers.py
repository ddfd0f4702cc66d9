# payout_service/utils/kafka_helpers.py
"""
Kafka helper functions for publishing payout notifications.
Uses the singleton producer from payout_service.core.kafka_producer.
"""
import logging

from kafka.errors import KafkaError

from payout_service.core.kafka_producer import get_kafka_singleton

logger = logging.getLogger(__name__)

# Kafka Topics
TOPIC_PAYMENT_EMAILS = "payment.emails.v1"


def _publish_payment_email_event(event_type: str, payload: dict) -> bool:
    """
    Publish a payment-related email event to Kafka.

    Fire-and-forget: a missing or failing broker is logged and reported
    as False, never raised to the caller.
    """
    producer = get_kafka_singleton()
    if producer is None:
        logger.debug(f"Kafka unavailable, {event_type} not published")
        return False

    event_data = {
        "type": event_type,
        **payload,
    }
    try:
        future = producer.send(TOPIC_PAYMENT_EMAILS, value=event_data)
        future.get(timeout=5)
        logger.info(f"Published {event_type} event to {TOPIC_PAYMENT_EMAILS}")
        return True
    except KafkaError as e:
        logger.error(f"Failed to publish {event_type} event: {e}")
        return False


def publish_payout_sent_email(
    to_email: str,
    organizer_name: str,
    payout_id: str,
    payout_amount_cents: int = 0,
    currency: str = "USD",
    transfer_id: str = "",
    event_title: str = "",
) -> bool:
    """Publish a payout_sent email event to Kafka."""
    return _publish_payment_email_event("PAYOUT_SENT", {
        "toEmail": to_email,
        "organizerName": organizer_name,
        "payoutId": payout_id,
        "payoutAmountCents": payout_amount_cents,
        "currency": currency,
        "transferId": transfer_id,
        "eventTitle": event_title,
    })


def publish_payout_failed_email(
    to_email: str,
    organizer_name: str,
    payout_id: str,
    payout_amount_cents: int = 0,
    currency: str = "USD",
    failure_reason: str = "",
    event_title: str = "",
) -> bool:
    """Publish a payout_failed email event to Kafka."""
    return _publish_payment_email_event("PAYOUT_FAILED", {
        "toEmail": to_email,
        "organizerName": organizer_name,
        "payoutId": payout_id,
        "payoutAmountCents": payout_amount_cents,
        "currency": currency,
        "failureReason": failure_reason,
        "eventTitle": event_title,
    })
