"""
Status rendering.

Turns a usage snapshot into the compact summary, the detailed breakdown
and the daily notification message. The render result is a tagged value,
so consumers never inspect display text to learn whether data is ready.
"""

import calendar
import math
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional

from .reconciler import UsageSnapshot

LOW_REQUESTS_FRACTION = 0.1
SPEND_WARNING_FRACTION = 0.8


class StatusState(Enum):
    """What the status surface is currently showing."""
    READY = "ready"
    LOADING = "loading"
    UNCONFIGURED = "unconfigured"
    FAILED = "failed"


class Severity(Enum):
    """Display severity of a snapshot."""
    NORMAL = "normal"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class StatusResult:
    """Outcome of one refresh as seen by the renderer.

    Only READY results carry a snapshot.
    """
    state: StatusState
    snapshot: Optional[UsageSnapshot] = None
    message: Optional[str] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate the snapshot matches the state."""
        if (self.state == StatusState.READY) != (self.snapshot is not None):
            raise ValueError("snapshot must be present exactly when state is READY")

    @property
    def is_ready(self) -> bool:
        return self.state == StatusState.READY


def _has_spend(snapshot: UsageSnapshot) -> bool:
    return snapshot.spend_cents is not None and snapshot.hard_limit_dollars is not None


def _spend_ratio(snapshot: UsageSnapshot) -> Optional[float]:
    if not _has_spend(snapshot):
        return None
    if snapshot.hard_limit_dollars <= 0:
        # any spend against a zero limit is over it
        return math.inf
    return (snapshot.spend_cents / 100) / snapshot.hard_limit_dollars


def _is_low_on_requests(snapshot: UsageSnapshot) -> bool:
    return snapshot.remaining_requests <= snapshot.total_requests * LOW_REQUESTS_FRACTION


def severity(snapshot: UsageSnapshot) -> Severity:
    """Severity of a snapshot.

    While requests remain, only a low request count warns. Once requests
    run out, the spend position decides.
    """
    if snapshot.remaining_requests > 0:
        return Severity.WARNING if _is_low_on_requests(snapshot) else Severity.NORMAL

    ratio = _spend_ratio(snapshot)
    if ratio is None:
        return Severity.NORMAL
    if ratio >= 1:
        return Severity.ERROR
    if ratio >= SPEND_WARNING_FRACTION:
        return Severity.WARNING
    return Severity.NORMAL


def summary_text(snapshot: UsageSnapshot) -> str:
    """Compact summary: remaining requests, or spend once requests run out."""
    if snapshot.remaining_requests > 0:
        return str(snapshot.remaining_requests)
    if _has_spend(snapshot):
        return f"${snapshot.spend_cents / 100:.2f}/${snapshot.hard_limit_dollars:.2f}"
    return "0"


def _reset_line(snapshot: UsageSnapshot) -> Optional[str]:
    reset = snapshot.reset_info
    if reset is None:
        return None

    days = reset.display_days_remaining
    date_str = reset.reset_date_exclusive.isoformat()
    if days == 0:
        return f"Resets today ({date_str})"
    if days == 1:
        return f"Resets tomorrow ({date_str})"
    return f"Resets in {days} days ({date_str})"


def cycle_length_days(reset_date: date) -> int:
    """Length in days of the cycle ending on reset_date."""
    year = reset_date.year if reset_date.month > 1 else reset_date.year - 1
    month = reset_date.month - 1 or 12
    day = min(reset_date.day, calendar.monthrange(year, month)[1])
    return (reset_date - date(year, month, day)).days


def daily_usage_rate(snapshot: UsageSnapshot) -> float:
    """Average requests per elapsed day in the current cycle, or 0."""
    reset = snapshot.reset_info
    if reset is None or reset.days_remaining <= 0:
        return 0.0
    days_elapsed = cycle_length_days(reset.reset_date_exclusive) - reset.days_remaining
    if days_elapsed <= 0:
        return 0.0
    return round(snapshot.used_requests / days_elapsed, 1)


def detail_text(
    snapshot: UsageSnapshot,
    updated_at: Optional[datetime] = None,
) -> str:
    """Multi-line breakdown of usage, spending and reset timing."""
    lines = []

    reset_line = _reset_line(snapshot)
    if reset_line:
        rate = daily_usage_rate(snapshot)
        if rate > 0:
            reset_line += f" --> {rate} requests/day avg"
        lines.append(reset_line)

        if snapshot.remaining_requests > 0 and rate > 0:
            days_left = math.ceil(snapshot.remaining_requests / rate)
            if days_left < snapshot.reset_info.days_remaining:
                lines.append(f"At current rate, quota exhausts in ~{days_left} days")
        lines.append("")

    percent_used = snapshot.used_requests / snapshot.total_requests * 100
    lines.append(
        f"Fast Premium Requests: {snapshot.remaining_requests}/{snapshot.total_requests} "
        f"remaining ({percent_used:.1f}% used)"
    )

    ratio = _spend_ratio(snapshot)
    if _has_spend(snapshot):
        spend_dollars = snapshot.spend_cents / 100
        limit = snapshot.hard_limit_dollars
        spend_percent = f"{ratio * 100:.1f}%" if math.isfinite(ratio) else "n/a"
        lines.append(f"Spending: ${spend_dollars:.2f} of ${limit:.2f} limit ({spend_percent} used)")
        lines.append(f"Remaining budget: ${limit - spend_dollars:.2f}")

    if snapshot.remaining_requests > 0:
        if _is_low_on_requests(snapshot):
            lines.append("Warning: low on requests")
    elif ratio is not None:
        if ratio >= 1:
            lines.append("Warning: spend limit reached")
        elif ratio >= SPEND_WARNING_FRACTION:
            lines.append("Warning: approaching spend limit")
    elif not _has_spend(snapshot):
        lines.append("Warning: no requests remaining")

    if updated_at is not None:
        lines.append("")
        lines.append(f"Last updated at: {updated_at:%Y-%m-%d %H:%M:%S}")

    return "\n".join(lines)


def notification_message(snapshot: UsageSnapshot) -> str:
    """One-line daily notification text."""
    message = (
        f"Cursor usage: {snapshot.remaining_requests}/{snapshot.total_requests} "
        "fast premium requests remaining"
    )
    if _has_spend(snapshot):
        message += (
            f", ${snapshot.spend_cents / 100:.2f} of "
            f"${snapshot.hard_limit_dollars:.2f} spent"
        )
    reset_line = _reset_line(snapshot)
    if reset_line:
        message += f". {reset_line}"
    return message + "."
