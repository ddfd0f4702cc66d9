from unittest.mock import MagicMock, patch

from payout_service import scheduler
from payout_service.schemas.payout import BatchResult


@patch("payout_service.scheduler.SessionLocal")
@patch("payout_service.api.deps.build_orchestrator")
def test_run_payout_cycle(mock_build, mock_session_local):
    orchestrator = MagicMock()
    orchestrator.schedule_completed_events.return_value = 2

    async def process(**kwargs):
        return BatchResult(processed=2, succeeded=2)

    orchestrator.process_all_due_stripe_payouts.side_effect = process
    mock_build.return_value = orchestrator

    scheduler.run_payout_cycle()

    orchestrator.schedule_completed_events.assert_called_once()
    orchestrator.process_all_due_stripe_payouts.assert_called_once()
    mock_session_local.return_value.close.assert_called_once()


@patch("payout_service.scheduler.BackgroundScheduler")
def test_init_and_shutdown_scheduler(mock_scheduler_cls):
    instance = mock_scheduler_cls.return_value

    assert scheduler.init_scheduler() is instance
    instance.add_job.assert_called_once()
    assert instance.add_job.call_args.kwargs["id"] == "payout_cycle"
    instance.start.assert_called_once()

    scheduler.shutdown_scheduler()
    instance.shutdown.assert_called_once_with(wait=False)
    assert scheduler.scheduler is None
