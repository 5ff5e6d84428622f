"""
Usage monitor lifecycle.

Owns the recurring refresh timer and the daily notification timer as
asyncio tasks, with explicit start/stop.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from cursor_usage.storage.repository import StateRepository

from .notifications import DEFAULT_NOTIFY_HOUR, NotificationScheduler
from .reconciler import MissingCredentialError, UsageReconciler
from .status import StatusResult, StatusState

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 60 * 60


def seconds_until_next(hour: int, now: datetime) -> float:
    """Seconds from now until the next local hour:00 boundary.

    An exact hit on the boundary schedules the following day.
    """
    target = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


class UsageMonitor:
    """Runs periodic refreshes and the daily notification check."""

    def __init__(
        self,
        reconciler: UsageReconciler,
        repository: StateRepository,
        notifier,
        poll_minutes: int = 30,
        notify_hour: int = DEFAULT_NOTIFY_HOUR,
        on_status: Optional[Callable[[StatusResult], None]] = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        """Initialize the monitor.

        Args:
            reconciler: Produces usage snapshots
            repository: Durable store for notification state
            notifier: Object with a notify(message) method
            poll_minutes: Minutes between refreshes
            notify_hour: Local hour of the daily notification
            on_status: Called with every new status result
            now: Local time provider
        """
        self.reconciler = reconciler
        self.poll_minutes = poll_minutes
        self.on_status = on_status
        self.now = now
        self.scheduler = NotificationScheduler(
            repository,
            status_provider=self.current_status,
            notifier=notifier,
            notify_hour=notify_hour,
            now=now,
        )
        self.last_status = StatusResult(state=StatusState.LOADING)
        self._tasks: List[asyncio.Task] = []
        self._starting = False

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def current_status(self) -> StatusResult:
        """Refresh usage and map the outcome onto a render result."""
        try:
            snapshot = await self.reconciler.refresh()
        except MissingCredentialError as e:
            status = StatusResult(
                state=StatusState.UNCONFIGURED, message=str(e), updated_at=self.now()
            )
        except Exception as e:
            logger.error(f"Failed to refresh Cursor usage: {e}")
            status = StatusResult(
                state=StatusState.FAILED, message=str(e), updated_at=self.now()
            )
        else:
            status = StatusResult(
                state=StatusState.READY, snapshot=snapshot, updated_at=self.now()
            )

        self.last_status = status
        if self.on_status is not None:
            try:
                self.on_status(status)
            except Exception as e:
                logger.error(f"Status callback failed: {e}")
        return status

    async def start(self) -> None:
        """Run the initial refresh and check, then arm both timers."""
        if self.running or self._starting:
            return
        self._starting = True
        try:
            await self.current_status()
            await self.scheduler.check()
            self._tasks = [
                asyncio.create_task(self._refresh_loop()),
                asyncio.create_task(self._notification_loop()),
            ]
        finally:
            self._starting = False
        logger.info(f"Refresh timer set to {self.poll_minutes} minutes")

    async def stop(self) -> None:
        """Cancel both timers and wait for them to finish."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_minutes * 60)
            try:
                await self.current_status()
            except Exception as e:
                logger.error(f"Scheduled usage refresh failed: {e}")

    async def _notification_loop(self) -> None:
        delay = seconds_until_next(self.scheduler.notify_hour, self.now())
        logger.info(f"Daily notification check armed in {delay / 3600:.1f} hours")
        while True:
            await asyncio.sleep(delay)
            try:
                await self.scheduler.check()
            except Exception as e:
                logger.error(f"Daily notification check failed: {e}")
            delay = DAY_SECONDS
