"""
Daily usage notification.

A persisted per-day state machine decides on each check whether to try
delivering the usage notification:

1. Fresh day - the stored date is not today, start over at zero attempts
2. Guarded - already sent, attempt budget spent, or before the notify hour
3. Attempting - consume one attempt, fetch status, deliver if ready

Checks are serialized per scheduler so overlapping timer firings cannot
double-count attempts.
"""

import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from typing import Awaitable, Callable, Optional

from rich.console import Console

from cursor_usage.storage.models import MAX_DAILY_ATTEMPTS, NotificationState
from cursor_usage.storage.repository import StateRepository

from .status import StatusResult, notification_message

logger = logging.getLogger(__name__)

NOTIFICATION_STATE_KEY = "dailyNotificationState"
DEFAULT_NOTIFY_HOUR = 9


class ConsoleNotifier:
    """Delivers notifications as highlighted console messages."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def notify(self, message: str) -> None:
        self.console.print(f"[bold cyan]ⓘ[/] {message}")


class NotificationScheduler:
    """Gates the daily notification to one delivery and three attempts."""

    def __init__(
        self,
        repository: StateRepository,
        status_provider: Callable[[], Awaitable[StatusResult]],
        notifier,
        notify_hour: int = DEFAULT_NOTIFY_HOUR,
        now: Callable[[], datetime] = datetime.now,
    ):
        """Initialize the scheduler.

        Args:
            repository: Durable store for the notification state
            status_provider: Refreshes usage and returns the render result
            notifier: Object with a notify(message) method
            notify_hour: Local hour before which no attempt is made
            now: Local time provider
        """
        self.repository = repository
        self.status_provider = status_provider
        self.notifier = notifier
        self.notify_hour = notify_hour
        self.now = now
        self._lock = asyncio.Lock()

    def load_state(self, today: str) -> NotificationState:
        """Return today's state, starting fresh on a new or unreadable day."""
        raw = self.repository.get(NOTIFICATION_STATE_KEY)
        if raw is not None:
            try:
                state = NotificationState.from_dict(raw)
            except ValueError:
                logger.warning("Stored notification state is malformed, starting fresh")
            else:
                if state.date == today:
                    return state
        return NotificationState(date=today)

    def _is_guarded(self, state: NotificationState, hour: int) -> bool:
        return state.sent or state.attempts >= MAX_DAILY_ATTEMPTS or hour < self.notify_hour

    async def check(self) -> NotificationState:
        """Evaluate the state machine once and attempt delivery if allowed.

        The updated state is persisted before returning whenever an
        attempt was made, whatever its outcome.

        Returns:
            The notification state after this check
        """
        async with self._lock:
            now = self.now()
            state = self.load_state(now.date().isoformat())

            if self._is_guarded(state, now.hour):
                logger.debug(f"Notification check skipped: {state}")
                return state

            state = replace(state, attempts=state.attempts + 1)
            try:
                state = await self._attempt(state)
            finally:
                self.repository.set(NOTIFICATION_STATE_KEY, state.to_dict())
            return state

    async def _attempt(self, state: NotificationState) -> NotificationState:
        try:
            status = await self.status_provider()
        except Exception as e:
            logger.error(f"Usage refresh failed during notification attempt {state.attempts}: {e}")
            return state

        if not status.is_ready:
            logger.info(
                f"Usage not ready ({status.state.value}), notification attempt "
                f"{state.attempts}/{MAX_DAILY_ATTEMPTS} not delivered"
            )
            return state

        try:
            self.notifier.notify(notification_message(status.snapshot))
        except Exception as e:
            logger.error(f"Notification delivery failed: {e}")
            return state

        logger.info("Daily usage notification sent")
        return replace(state, sent=True)
