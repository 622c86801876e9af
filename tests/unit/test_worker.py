from unittest.mock import MagicMock, patch

from docproc.worker.worker import Worker


def _make_worker(max_workers: int = 1) -> tuple[Worker, MagicMock, MagicMock, MagicMock, MagicMock]:
    """Create a Worker with mocked dependencies."""
    mock_queue = MagicMock()
    mock_runner = MagicMock()
    mock_orchestrator = MagicMock()
    mock_orchestrator.find_stuck_jobs.return_value = []
    mock_sleep = MagicMock()
    settings = MagicMock(max_workers=max_workers, job_poll_interval_seconds=1)
    worker = Worker(mock_queue, mock_runner, mock_orchestrator, settings, sleep=mock_sleep)
    return worker, mock_queue, mock_runner, mock_orchestrator, mock_sleep


class TestWorkerDispatch:
    def test_dispatches_job_to_runner(self) -> None:
        worker, _queue, mock_runner, _orch, _sleep = _make_worker()

        with patch.object(worker, "_try_claim_job", side_effect=[1, KeyboardInterrupt]):
            worker.run()

        mock_runner.run.assert_called_once_with(1)

    def test_dispatches_multiple_jobs(self) -> None:
        worker, _queue, mock_runner, _orch, _sleep = _make_worker(max_workers=2)

        with patch.object(worker, "_try_claim_job", side_effect=[1, 2, KeyboardInterrupt]):
            worker.run()

        assert sorted(c.args[0] for c in mock_runner.run.call_args_list) == [1, 2]

    def test_stops_after_max_jobs(self) -> None:
        worker, mock_queue, mock_runner, _orch, _sleep = _make_worker()
        mock_queue.claim_next.side_effect = [7, 8]

        worker.run(max_jobs=1)

        mock_runner.run.assert_called_once_with(7)
        assert mock_queue.claim_next.call_count == 1

    def test_runner_exception_does_not_stop_worker(self) -> None:
        worker, mock_queue, mock_runner, _orch, _sleep = _make_worker()
        mock_queue.claim_next.side_effect = [1, 2]
        mock_runner.run.side_effect = [RuntimeError("boom"), None]

        worker.run(max_jobs=2)

        assert mock_runner.run.call_count == 2


class TestWorkerIdle:
    def test_sleeps_when_no_job(self) -> None:
        worker, _queue, _runner, _orch, mock_sleep = _make_worker()

        with patch.object(worker, "_try_claim_job", side_effect=[None, KeyboardInterrupt]):
            worker.run()

        mock_sleep.assert_called_once_with(1)

    def test_queue_error_treated_as_no_job(self) -> None:
        worker, mock_queue, _runner, _orch, mock_sleep = _make_worker()
        mock_queue.claim_next.side_effect = [ConnectionError("db down"), KeyboardInterrupt]

        worker.run()

        mock_sleep.assert_called_once_with(1)

    def test_stuck_check_is_rate_limited(self) -> None:
        worker, _queue, _runner, mock_orchestrator, _sleep = _make_worker()

        with patch.object(
            worker, "_try_claim_job", side_effect=[None, None, None, KeyboardInterrupt]
        ):
            worker.run()

        mock_orchestrator.find_stuck_jobs.assert_called_once()

    def test_stuck_check_failure_is_logged(self) -> None:
        worker, _queue, _runner, mock_orchestrator, mock_sleep = _make_worker()
        mock_orchestrator.find_stuck_jobs.side_effect = ConnectionError("db down")

        with patch.object(worker, "_try_claim_job", side_effect=[None, KeyboardInterrupt]):
            worker.run()

        mock_sleep.assert_called_once_with(1)


class TestWorkerShutdown:
    def test_handles_keyboard_interrupt(self) -> None:
        worker, _queue, _runner, _orch, _sleep = _make_worker()

        with patch.object(worker, "_try_claim_job", side_effect=KeyboardInterrupt):
            worker.run()  # Should not raise
