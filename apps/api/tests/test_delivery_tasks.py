"""
Tests for the hourly quote delivery task.

The task body is exercised directly (no broker); the schedule service is
real and bound to the test database.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

from celery.exceptions import SoftTimeLimitExceeded

from services.quote_schedule import Schedule
from services.quote_widget_cache import DELIVERY_LOCK_KEY, acquire_delivery_lock
from services.schedule_service import DeliveryBatchReport
from tasks import celery_app
from tasks.delivery_tasks import TASK_HARD_TIMEOUT_S, deliver_due_quotes_task, lock_ttl_s, run_delivery_batch

NOW = datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc)


class TestRunDeliveryBatch:
    def test_ok(self, service, add_quote):
        add_quote("q1")
        service.create_schedule(Schedule(id="s1", scheduled_hour=9))

        result = run_delivery_batch(service, NOW)

        assert result["status"] == "ok"
        assert result["counts"]["delivered"] == 1
        assert result["outcomes"][0]["quote_id"] == "q1"

    def test_second_run_delivers_nothing(self, service, add_quote):
        add_quote("q1")
        add_quote("q2")
        service.create_schedule(Schedule(id="s1", scheduled_hour=9))

        run_delivery_batch(service, NOW)
        again = run_delivery_batch(service, NOW)

        assert again["status"] == "ok"
        assert again["outcomes"] == []

    def test_skipped_when_locked(self, fake_redis):
        fake_redis.set(DELIVERY_LOCK_KEY, "1")
        service = MagicMock()

        result = run_delivery_batch(service, NOW)

        assert result == {"status": "skipped", "reason": "locked"}
        service.deliver_due_quotes.assert_not_called()

    def test_lock_released_after_run(self, fake_redis):
        service = MagicMock()
        service.deliver_due_quotes.return_value = DeliveryBatchReport(run_at=NOW)

        run_delivery_batch(service, NOW)

        assert DELIVERY_LOCK_KEY not in fake_redis._store

    def test_lock_outlives_the_hard_time_limit(self, fake_redis):
        service = MagicMock()
        service.deliver_due_quotes.return_value = DeliveryBatchReport(run_at=NOW)

        with patch("tasks.delivery_tasks.acquire_delivery_lock", wraps=acquire_delivery_lock) as acquire:
            run_delivery_batch(service, NOW)

        acquire.assert_called_once_with(lock_ttl_s())
        assert lock_ttl_s() > TASK_HARD_TIMEOUT_S

    def test_newer_runs_lock_survives_a_slow_run(self, fake_redis):
        service = MagicMock()

        def slow_batch(now):
            # This run's lock expired; a newer run now holds the key.
            fake_redis._store[DELIVERY_LOCK_KEY] = "newer-run"
            return DeliveryBatchReport(run_at=now)

        service.deliver_due_quotes.side_effect = slow_batch

        run_delivery_batch(service, NOW)

        assert fake_redis._store[DELIVERY_LOCK_KEY] == "newer-run"

    def test_lock_released_when_batch_raises(self, fake_redis):
        service = MagicMock()
        service.deliver_due_quotes.side_effect = RuntimeError("boom")

        try:
            run_delivery_batch(service, NOW)
        except RuntimeError:
            pass

        assert DELIVERY_LOCK_KEY not in fake_redis._store

    def test_error_report(self):
        service = MagicMock()
        service.deliver_due_quotes.return_value = DeliveryBatchReport(run_at=NOW, error="database down")

        result = run_delivery_batch(service, NOW)

        assert result == {"status": "error", "error": "database down", "run_at": NOW.isoformat()}


class TestDeliverDueQuotesTask:
    def test_registered_and_scheduled(self):
        assert "tasks.deliver_due_quotes" in celery_app.tasks
        beat = celery_app.conf.beat_schedule["deliver-due-quotes"]
        assert beat["task"] == "tasks.deliver_due_quotes"

    def test_returns_batch_result(self):
        with patch("tasks.delivery_tasks.run_delivery_batch", return_value={"status": "ok"}) as run:
            assert deliver_due_quotes_task() == {"status": "ok"}
        run.assert_called_once()

    def test_never_raises(self):
        with patch("tasks.delivery_tasks.run_delivery_batch", side_effect=RuntimeError("boom")):
            result = deliver_due_quotes_task()
        assert result == {"status": "error", "error": "boom"}

    def test_soft_time_limit(self):
        with patch("tasks.delivery_tasks.run_delivery_batch", side_effect=SoftTimeLimitExceeded()):
            result = deliver_due_quotes_task()
        assert result["error"] == "soft_time_limit_exceeded"
