from unittest.mock import MagicMock, patch

from kafka.errors import KafkaTimeoutError

from payout_service.utils.kafka_helpers import (
    TOPIC_PAYMENT_EMAILS,
    publish_payout_failed_email,
    publish_payout_sent_email,
)


@patch("payout_service.utils.kafka_helpers.get_kafka_singleton")
def test_payout_sent_event(mock_get_producer):
    producer = MagicMock()
    mock_get_producer.return_value = producer

    result = publish_payout_sent_email(
        to_email="ada@example.com",
        organizer_name="Ada Events",
        payout_id="po_1",
        payout_amount_cents=95000,
        currency="USD",
        transfer_id="tr_123",
        event_title="Summer Meetup",
    )

    assert result is True
    topic = producer.send.call_args.args[0]
    value = producer.send.call_args.kwargs["value"]
    assert topic == TOPIC_PAYMENT_EMAILS
    assert value["type"] == "PAYOUT_SENT"
    assert value["payoutId"] == "po_1"
    assert value["transferId"] == "tr_123"
    assert value["payoutAmountCents"] == 95000


@patch("payout_service.utils.kafka_helpers.get_kafka_singleton")
def test_payout_failed_event(mock_get_producer):
    producer = MagicMock()
    mock_get_producer.return_value = producer

    publish_payout_failed_email(
        to_email="ada@example.com",
        organizer_name="Ada Events",
        payout_id="po_1",
        failure_reason="account restricted",
    )

    value = producer.send.call_args.kwargs["value"]
    assert value["type"] == "PAYOUT_FAILED"
    assert value["failureReason"] == "account restricted"


@patch("payout_service.utils.kafka_helpers.get_kafka_singleton", return_value=None)
def test_no_producer_is_not_an_error(mock_get_producer):
    assert publish_payout_sent_email("ada@example.com", "Ada", "po_1") is False


@patch("payout_service.utils.kafka_helpers.get_kafka_singleton")
def test_broker_failure_is_swallowed(mock_get_producer):
    producer = MagicMock()
    producer.send.return_value.get.side_effect = KafkaTimeoutError("timed out")
    mock_get_producer.return_value = producer

    assert publish_payout_sent_email("ada@example.com", "Ada", "po_1") is False
