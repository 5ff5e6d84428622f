"""
Tests for the daily notification scheduler.
"""

import asyncio
from datetime import datetime
from unittest.mock import Mock

import pytest

from cursor_usage.core.notifications import (
    NOTIFICATION_STATE_KEY,
    ConsoleNotifier,
    NotificationScheduler,
)
from cursor_usage.core.reconciler import UsageSnapshot
from cursor_usage.core.status import StatusResult, StatusState

SNAPSHOT = UsageSnapshot(
    remaining_requests=350,
    total_requests=500,
    spend_cents=1234,
    hard_limit_dollars=50,
)


class StatusProvider:
    """Scripted status source that counts refreshes."""

    def __init__(self, result=None, error=None):
        self.result = result or StatusResult(state=StatusState.READY, snapshot=SNAPSHOT)
        self.error = error
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.error:
            raise self.error
        return self.result


class TestNotificationScheduler:
    """Test the daily notification state machine."""

    @pytest.fixture(autouse=True)
    def _setup(self, repository):
        self.repository = repository
        self.notifier = Mock()
        self.provider = StatusProvider()

    def _scheduler(self, now):
        return NotificationScheduler(
            self.repository,
            status_provider=self.provider,
            notifier=self.notifier,
            now=lambda: now,
        )

    def _check(self, now, state=None):
        if state is not None:
            self.repository.set(NOTIFICATION_STATE_KEY, state)
        return asyncio.run(self._scheduler(now).check())

    def test_does_not_send_before_nine(self):
        state = {"date": "2025-09-25", "attempts": 0, "sent": False}

        self._check(datetime(2025, 9, 25, 8, 59), state)

        self.notifier.notify.assert_not_called()
        assert self.provider.calls == 0
        assert self.repository.get(NOTIFICATION_STATE_KEY) == state

    def test_sends_at_nine(self):
        result = self._check(
            datetime(2025, 9, 25, 9, 0),
            {"date": "2025-09-25", "attempts": 0, "sent": False},
        )

        self.notifier.notify.assert_called_once()
        assert result.attempts == 1
        assert result.sent is True

    def test_sends_on_startup_after_nine(self):
        self._check(
            datetime(2025, 9, 25, 14, 0),
            {"date": "2025-09-25", "attempts": 0, "sent": False},
        )

        self.notifier.notify.assert_called_once()
        message = self.notifier.notify.call_args[0][0]
        assert "350/500" in message
        assert "$12.34 of $50.00" in message

    def test_does_not_send_twice(self):
        state = {"date": "2025-09-25", "attempts": 1, "sent": True}

        self._check(datetime(2025, 9, 25, 15, 0), state)

        self.notifier.notify.assert_not_called()
        assert self.repository.get(NOTIFICATION_STATE_KEY) == state

    def test_failed_refresh_consumes_attempt(self):
        self.provider.result = StatusResult(state=StatusState.FAILED, message="down")

        result = self._check(
            datetime(2025, 9, 25, 11, 0),
            {"date": "2025-09-25", "attempts": 0, "sent": False},
        )

        self.notifier.notify.assert_not_called()
        assert result.attempts == 1
        assert result.sent is False
        assert self.repository.get(NOTIFICATION_STATE_KEY) == {
            "date": "2025-09-25", "attempts": 1, "sent": False,
        }

    @pytest.mark.parametrize("state", [StatusState.LOADING, StatusState.UNCONFIGURED])
    def test_not_ready_states_suppress_notification(self, state):
        self.provider.result = StatusResult(state=state)

        result = self._check(datetime(2025, 9, 25, 11, 0))

        self.notifier.notify.assert_not_called()
        assert result.sent is False

    def test_status_provider_exception_is_contained(self):
        self.provider.error = RuntimeError("unexpected")

        result = self._check(datetime(2025, 9, 25, 11, 0))

        assert result.attempts == 1
        assert result.sent is False
        assert self.repository.get(NOTIFICATION_STATE_KEY)["attempts"] == 1

    def test_delivery_failure_keeps_sent_false(self):
        self.notifier.notify.side_effect = OSError("no display")

        result = self._check(datetime(2025, 9, 25, 11, 0))

        assert result.attempts == 1
        assert result.sent is False

    def test_new_day_resets_state_and_sends(self):
        result = self._check(
            datetime(2025, 9, 26, 9, 30),
            {"date": "2025-09-25", "attempts": 3, "sent": True},
        )

        self.notifier.notify.assert_called_once()
        assert result.to_dict() == {"date": "2025-09-26", "attempts": 1, "sent": True}
        assert self.repository.get(NOTIFICATION_STATE_KEY) == {
            "date": "2025-09-26", "attempts": 1, "sent": True,
        }

    def test_attempt_limit_reached(self):
        state = {"date": "2025-09-25", "attempts": 3, "sent": False}

        self._check(datetime(2025, 9, 25, 10, 0), state)

        self.notifier.notify.assert_not_called()
        assert self.provider.calls == 0

    def test_three_attempts_then_stops(self):
        self.provider.result = StatusResult(state=StatusState.FAILED)
        scheduler = self._scheduler(datetime(2025, 9, 25, 10, 0))

        for _ in range(5):
            asyncio.run(scheduler.check())

        assert self.provider.calls == 3
        assert self.repository.get(NOTIFICATION_STATE_KEY)["attempts"] == 3

    def test_absent_state_treated_as_fresh_day(self):
        result = self._check(datetime(2025, 9, 25, 10, 0))

        assert result.date == "2025-09-25"
        assert result.attempts == 1
        assert result.sent is True

    def test_malformed_state_treated_as_fresh_day(self):
        result = self._check(datetime(2025, 9, 25, 10, 0), {"date": "2025-09-25", "attempts": 99})

        assert result.attempts == 1

    def test_fresh_day_before_nine_not_persisted(self):
        state = {"date": "2025-09-25", "attempts": 3, "sent": True}

        result = self._check(datetime(2025, 9, 26, 7, 0), state)

        assert result.to_dict() == {"date": "2025-09-26", "attempts": 0, "sent": False}
        assert self.repository.get(NOTIFICATION_STATE_KEY) == state

    def test_overlapping_checks_do_not_double_count(self):
        """Concurrent checks are serialized: one sends, the other sees sent=True."""
        scheduler = self._scheduler(datetime(2025, 9, 25, 10, 0))

        async def slow_status():
            await asyncio.sleep(0.01)
            return StatusResult(state=StatusState.READY, snapshot=SNAPSHOT)

        scheduler.status_provider = slow_status

        async def run_both():
            return await asyncio.gather(scheduler.check(), scheduler.check())

        asyncio.run(run_both())

        self.notifier.notify.assert_called_once()
        assert self.repository.get(NOTIFICATION_STATE_KEY) == {
            "date": "2025-09-25", "attempts": 1, "sent": True,
        }

    def test_custom_notify_hour(self):
        scheduler = NotificationScheduler(
            self.repository,
            status_provider=self.provider,
            notifier=self.notifier,
            notify_hour=17,
            now=lambda: datetime(2025, 9, 25, 16, 59),
        )

        asyncio.run(scheduler.check())

        self.notifier.notify.assert_not_called()


def test_console_notifier_prints_message():
    from rich.console import Console

    console = Console(record=True, width=200)
    ConsoleNotifier(console).notify("Cursor usage: 10/500")

    assert "Cursor usage: 10/500" in console.export_text()
