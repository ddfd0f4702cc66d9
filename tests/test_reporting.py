from payout_service.services.payout.reporting import PayoutReporting
from tests.utils.payout import create_event, create_organizer, create_payout


def test_stats_on_empty_database(db_session):
    stats = PayoutReporting(db_session).get_stats()

    assert stats.counts.pending == 0
    assert stats.counts.paid == 0
    assert stats.amounts.pending == 0
    assert stats.amounts.paid == 0


def test_stats_counts_and_amounts(db_session):
    organizer = create_organizer(db_session)

    def payout(**kwargs):
        return create_payout(db_session, organizer, create_event(db_session, organizer), **kwargs)

    payout(amount=1000)
    payout(amount=2000, payout_method="manual")
    payout(amount=4000, status="processing")
    payout(amount=8000, status="paid")
    payout(amount=16000, status="paid", payout_method="manual")
    payout(amount=32000, status="failed")
    payout(amount=64000, status="cancelled")

    stats = PayoutReporting(db_session).get_stats()

    # A claimed payout still counts as pending
    assert stats.counts.pending == 3
    assert stats.counts.paid == 2
    assert stats.counts.failed == 1
    assert stats.counts.cancelled == 1
    assert stats.counts.pending_stripe == 2
    assert stats.counts.pending_manual == 1
    assert stats.amounts.pending == 7000
    assert stats.amounts.paid == 24000


def test_stats_serialize_in_camel_case(db_session):
    stats = PayoutReporting(db_session).get_stats()

    data = stats.model_dump(by_alias=True)

    assert set(data["counts"]) == {
        "pending", "paid", "failed", "cancelled", "pendingStripe", "pendingManual",
    }
