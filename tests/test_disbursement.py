"""
Tests for the disbursement executor.

Verifies that DisbursementExecutor correctly:
- Pays a due stripe payout and records the processor's transfer id
- Records processor rejections as failed with the processor's message
- Refuses payouts that are not due, have no payable account or are manual
- Transfers a payout at most once under concurrent callers
- Hands the payout back when the transfer could not be issued
- Marks manual payouts paid on operator confirmation
"""

import asyncio
from unittest.mock import patch

import pytest

from payout_service.models.payout_audit_log import PayoutAuditLog
from payout_service.services.payout.collaborators import SqlOrganizerDirectory
from payout_service.services.payout.disbursement import DisbursementExecutor
from payout_service.services.payout.errors import (
    AlreadyProcessing,
    ExternalTransferFailed,
    InvalidTransition,
    NoPayableAccount,
    NotDue,
)
from tests.utils.payout import (
    NOW,
    TOMORROW,
    FakeTransferClient,
    create_event,
    create_organizer,
    create_payout,
    processor_error,
    run_async,
)


def _executor(db_session, client):
    return DisbursementExecutor(
        db_session,
        transfer_client=client,
        organizer_directory=SqlOrganizerDirectory(db_session),
        now=lambda: NOW,
    )


class TestTransfer:

    @patch("payout_service.services.payout.disbursement.publish_payout_sent_email")
    def test_successful_transfer(self, mock_sent, db_session):
        organizer = create_organizer(db_session, stripe_account_id="acct_ada")
        event = create_event(db_session, organizer)
        payout = create_payout(db_session, organizer, event, amount=95000)
        client = FakeTransferClient(transfer_ids=["tr_123"])

        result = run_async(_executor(db_session, client).transfer(payout))

        assert result.status == "paid"
        assert result.external_transfer_id == "tr_123"
        assert result.processed_at == NOW
        assert result.attempt_count == 1
        assert client.calls == [{
            "account_id": "acct_ada",
            "amount": 95000,
            "currency": "USD",
            "idempotency_key": f"payout_{payout.id}_attempt_1",
            "metadata": {
                "payout_id": payout.id,
                "organizer_id": organizer.id,
                "event_id": event.id,
            },
        }]
        mock_sent.assert_called_once()
        assert mock_sent.call_args.kwargs["transfer_id"] == "tr_123"
        assert mock_sent.call_args.kwargs["to_email"] == "ada@example.com"

    @patch("payout_service.services.payout.disbursement.publish_payout_failed_email")
    def test_processor_rejection_records_failure(self, mock_failed, db_session):
        organizer = create_organizer(db_session, stripe_account_id="acct_ada")
        payout = create_payout(db_session, organizer, create_event(db_session, organizer))
        client = FakeTransferClient(
            failures={"acct_ada": processor_error("insufficient connected balance")}
        )

        with pytest.raises(ExternalTransferFailed) as exc_info:
            run_async(_executor(db_session, client).transfer(payout))

        assert exc_info.value.message == "insufficient connected balance"
        assert exc_info.value.payout_id == payout.id
        db_session.refresh(payout)
        assert payout.status == "failed"
        assert payout.failure_reason == "insufficient connected balance"
        assert payout.external_transfer_id is None
        mock_failed.assert_called_once()
        assert mock_failed.call_args.kwargs["failure_reason"] == "insufficient connected balance"

    def test_not_due_payout_is_untouched(self, db_session):
        organizer = create_organizer(db_session)
        payout = create_payout(
            db_session, organizer, create_event(db_session, organizer), scheduled_for=TOMORROW
        )
        client = FakeTransferClient()

        with pytest.raises(NotDue):
            run_async(_executor(db_session, client).transfer(payout))

        db_session.refresh(payout)
        assert payout.status == "pending"
        assert payout.attempt_count == 0
        assert client.calls == []

    def test_organizer_without_account(self, db_session):
        organizer = create_organizer(db_session, stripe_account_id=None)
        payout = create_payout(db_session, organizer, create_event(db_session, organizer))
        client = FakeTransferClient()

        with pytest.raises(NoPayableAccount):
            run_async(_executor(db_session, client).transfer(payout))

        db_session.refresh(payout)
        assert payout.status == "pending"
        assert client.calls == []

    def test_manual_payout_is_never_transferred(self, db_session):
        organizer = create_organizer(db_session)
        payout = create_payout(
            db_session, organizer, create_event(db_session, organizer), payout_method="manual"
        )
        client = FakeTransferClient()

        with pytest.raises(InvalidTransition):
            run_async(_executor(db_session, client).transfer(payout))

        assert client.calls == []

    def test_paid_payout_is_not_transferred_again(self, db_session):
        organizer = create_organizer(db_session)
        payout = create_payout(
            db_session, organizer, create_event(db_session, organizer), status="paid"
        )
        client = FakeTransferClient()

        with pytest.raises(InvalidTransition):
            run_async(_executor(db_session, client).transfer(payout))

        assert client.calls == []

    def test_concurrent_transfers_pay_once(self, db_session):
        organizer = create_organizer(db_session)
        payout = create_payout(db_session, organizer, create_event(db_session, organizer))
        client = FakeTransferClient()
        executor = _executor(db_session, client)

        async def both():
            return await asyncio.gather(
                executor.transfer(payout),
                executor.transfer(payout),
                return_exceptions=True,
            )

        outcomes = run_async(both())

        assert len(client.calls) == 1
        assert sum(1 for o in outcomes if isinstance(o, AlreadyProcessing)) == 1
        db_session.refresh(payout)
        assert payout.status == "paid"
        assert payout.attempt_count == 1

    def test_unexpected_error_releases_claim(self, db_session):
        organizer = create_organizer(db_session, stripe_account_id="acct_ada")
        payout = create_payout(db_session, organizer, create_event(db_session, organizer))
        client = FakeTransferClient(failures={"acct_ada": RuntimeError("socket closed")})

        with pytest.raises(RuntimeError):
            run_async(_executor(db_session, client).transfer(payout))

        db_session.refresh(payout)
        assert payout.status == "pending"
        assert payout.attempt_count == 1
        actions = [
            row.action
            for row in db_session.query(PayoutAuditLog)
            .filter(PayoutAuditLog.payout_id == payout.id)
            .all()
        ]
        assert "payout.claim_released" in actions


class TestMarkManualPaid:

    def test_marks_manual_payout_paid(self, db_session):
        organizer = create_organizer(db_session, stripe_account_id=None)
        payout = create_payout(
            db_session, organizer, create_event(db_session, organizer), payout_method="manual"
        )
        executor = _executor(db_session, FakeTransferClient())

        result = executor.mark_manual_paid(payout, "Wired via bank", actor_id="admin_1")

        assert result.status == "paid"
        assert result.notes == "Wired via bank"
        assert result.processed_at == NOW
        audit = (
            db_session.query(PayoutAuditLog)
            .filter(PayoutAuditLog.payout_id == payout.id, PayoutAuditLog.action == "payout.paid")
            .one()
        )
        assert audit.actor_type == "admin"
        assert audit.actor_id == "admin_1"

    def test_stripe_payout_cannot_be_marked_paid(self, db_session):
        organizer = create_organizer(db_session)
        payout = create_payout(db_session, organizer, create_event(db_session, organizer))
        executor = _executor(db_session, FakeTransferClient())

        with pytest.raises(InvalidTransition):
            executor.mark_manual_paid(payout)

        db_session.refresh(payout)
        assert payout.status == "pending"

    def test_cancelled_payout_cannot_be_marked_paid(self, db_session):
        organizer = create_organizer(db_session, stripe_account_id=None)
        payout = create_payout(
            db_session,
            organizer,
            create_event(db_session, organizer),
            payout_method="manual",
            status="cancelled",
        )
        executor = _executor(db_session, FakeTransferClient())

        with pytest.raises(InvalidTransition):
            executor.mark_manual_paid(payout)


class TestCancelledTransfer:

    def test_cancellation_releases_claim(self, db_session):
        organizer = create_organizer(db_session, stripe_account_id="acct_ada")
        payout = create_payout(db_session, organizer, create_event(db_session, organizer))
        client = FakeTransferClient(failures={"acct_ada": asyncio.CancelledError()})

        with pytest.raises(asyncio.CancelledError):
            run_async(_executor(db_session, client).transfer(payout))

        db_session.refresh(payout)
        assert payout.status == "pending"
        assert payout.attempt_count == 1
