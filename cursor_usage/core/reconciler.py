"""
Usage reconciliation.

Builds one consistent usage snapshot from two independent upstream
sources: the user's individual quota and the team spend report.

Failure taxonomy:
1. Missing credential - configuration error, reported and not retried
2. Complete failure - individual quota unavailable after retries, no snapshot
3. Partial failure - team data unavailable, snapshot degrades to individual data
"""

import calendar
import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, AsyncContextManager, Callable, Optional

from cursor_usage.client.models import (
    TeamDetails,
    TeamMemberSpend,
    TeamSpend,
    UserMe,
    UserUsage,
    parse_teams,
)
from cursor_usage.config.credentials import COOKIE_NAME, CredentialStore

from .cache import TEAMS_KEY, USER_ME_KEY, ExpiringCache, team_details_key
from .fingerprint import resolve_explicit_team_id
from .retry import DEFAULT_DELAY_MS, DEFAULT_RETRIES, DEFAULT_TIMEOUT_MS, with_retry

logger = logging.getLogger(__name__)


class MissingCredentialError(Exception):
    """Raised when no session cookie is configured."""


class UsageUnavailableError(Exception):
    """Raised when the individual quota cannot be obtained for this cycle."""


@dataclass(frozen=True)
class ResetInfo:
    """When the current billing cycle resets."""
    reset_date_exclusive: date
    days_remaining: int

    @property
    def display_days_remaining(self) -> int:
        """Days remaining clamped at zero for display."""
        return max(0, self.days_remaining)


@dataclass(frozen=True)
class UsageSnapshot:
    """Reconciled usage for one refresh cycle. Never cached or persisted."""
    remaining_requests: int
    total_requests: int
    spend_cents: Optional[int] = None
    hard_limit_dollars: Optional[float] = None
    reset_info: Optional[ResetInfo] = None
    source: str = "individual"

    def __post_init__(self):
        """Validate request counts."""
        if self.remaining_requests < 0:
            raise ValueError("remaining_requests cannot be negative")
        if self.total_requests <= 0:
            raise ValueError("total_requests must be > 0")

    @property
    def used_requests(self) -> int:
        return self.total_requests - self.remaining_requests


def add_one_month(moment: datetime) -> datetime:
    """Return the same wall-clock moment one month later.

    Days past the end of the next month are clamped to its last day.
    """
    year = moment.year + (moment.month // 12)
    month = moment.month % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def compute_reset_info(start_of_cycle: datetime, now: datetime) -> ResetInfo:
    """Derive reset information from the start of the billing cycle.

    Args:
        start_of_cycle: Cycle start; naive values are treated as UTC
        now: Current time; naive values are treated as UTC

    Returns:
        ResetInfo with days rounded up to whole days
    """
    if start_of_cycle.tzinfo is None:
        start_of_cycle = start_of_cycle.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    reset_at = add_one_month(start_of_cycle)
    days_remaining = math.ceil((reset_at - now) / timedelta(days=1))
    return ResetInfo(
        reset_date_exclusive=reset_at.date(),
        days_remaining=days_remaining,
    )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UsageReconciler:
    """Produces usage snapshots from the quota and team spend endpoints.

    Stable calls (identity, team list, team details) go through the
    expiring cache; volatile calls (quota usage, team spend) are fetched
    fresh every time through the bounded retry executor.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        cache: ExpiringCache,
        api_factory: Callable[[str], AsyncContextManager[Any]],
        team_setting: Optional[str] = None,
        retries: int = DEFAULT_RETRIES,
        delay_ms: int = DEFAULT_DELAY_MS,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        now: Callable[[], datetime] = _utc_now,
    ):
        """Initialize the reconciler.

        Args:
            credentials: Source of the session cookie
            cache: Cache for stable upstream responses
            api_factory: Builds an API client (async context manager) for a cookie
            team_setting: Team selector - numeric id, "auto" or empty
            retries: Retries for volatile calls
            delay_ms: Delay between retries
            timeout_ms: Per-attempt timeout
            now: Current time provider
        """
        self.credentials = credentials
        self.cache = cache
        self.api_factory = api_factory
        self.team_setting = team_setting
        self.retries = retries
        self.delay_ms = delay_ms
        self.timeout_ms = timeout_ms
        self.now = now
        self._session_team_id: Optional[int] = None

    def reset_session(self) -> None:
        """Forget the team id auto-detected during this session."""
        self._session_team_id = None

    async def _retrying(self, operation, label: str):
        return await with_retry(
            operation,
            retries=self.retries,
            delay_ms=self.delay_ms,
            timeout_ms=self.timeout_ms,
            label=label,
        )

    async def refresh(self) -> UsageSnapshot:
        """Fetch and reconcile usage for the current user.

        Returns:
            A usage snapshot, degraded to individual data if team data failed

        Raises:
            MissingCredentialError: If no session cookie is configured
            UsageUnavailableError: If individual usage cannot be fetched
        """
        cookie = self.credentials.get(COOKIE_NAME)
        if not cookie:
            raise MissingCredentialError(
                "Cursor session cookie not found. Run 'cursor-usage set-cookie' to set it."
            )

        async with self.api_factory(cookie) as api:
            try:
                user = await self.cache.get_or_fetch(
                    USER_ME_KEY, api.fetch_user_me, UserMe.from_dict
                )
                raw_usage = await self._retrying(
                    lambda: api.fetch_user_usage(user.sub), "fetch_user_usage"
                )
                usage = UserUsage.from_dict(raw_usage)
            except Exception as e:
                logger.error(f"Failed to fetch individual usage: {e}")
                raise UsageUnavailableError(f"Failed to refresh Cursor usage: {e}") from e

            team_id = await self._resolve_team_id(api)
            member = None
            if team_id is not None:
                member = await self._fetch_team_member(api, team_id)

        return self._build_snapshot(usage, member)

    async def _resolve_team_id(self, api) -> Optional[int]:
        """Resolve the team to report on, or None for an individual user."""
        explicit = resolve_explicit_team_id(self.team_setting, self.cache.repository)
        if explicit is not None:
            logger.debug(f"Using configured team id {explicit}")
            return explicit

        if self._session_team_id is not None:
            return self._session_team_id

        try:
            teams = await self.cache.get_or_fetch(TEAMS_KEY, api.fetch_teams, parse_teams)
        except Exception as e:
            logger.warning(f"Failed to auto-detect team id: {e}")
            return None

        if not teams:
            logger.info("No teams found, using individual usage only")
            return None

        self._session_team_id = teams[0].id
        logger.info(f"Automatically detected team id {self._session_team_id}")
        return self._session_team_id

    async def _fetch_team_member(self, api, team_id: int) -> Optional[TeamMemberSpend]:
        """Fetch the user's row in the team spend report.

        Any failure here is a partial failure: it is logged and the
        snapshot falls back to individual data.
        """
        try:
            details = await self.cache.get_or_fetch(
                team_details_key(team_id),
                lambda: api.fetch_team_details(team_id),
                TeamDetails.from_dict,
            )
            raw_spend = await self._retrying(
                lambda: api.fetch_team_spend(team_id), "fetch_team_spend"
            )
            spend = TeamSpend.from_dict(raw_spend)
        except Exception as e:
            logger.warning(f"Team data unavailable for team {team_id}, using individual usage: {e}")
            return None

        member = spend.find_member(details.user_id)
        if member is None or member.fast_premium_requests is None:
            logger.warning(f"No spend data for user {details.user_id} in team {team_id}")
            return None
        return member

    def _build_snapshot(
        self,
        usage: UserUsage,
        member: Optional[TeamMemberSpend],
    ) -> UsageSnapshot:
        total_requests = usage.max_requests
        reset_info = None
        if usage.start_of_month is not None:
            reset_info = compute_reset_info(usage.start_of_month, self.now())

        if member is not None:
            used_requests = int(member.fast_premium_requests)
            spend_cents = int(member.spend_cents) if member.spend_cents is not None else None
            hard_limit_dollars = member.hard_limit_dollars
            source = "team"
        else:
            used_requests = usage.num_requests
            spend_cents = None
            hard_limit_dollars = None
            source = "individual"

        snapshot = UsageSnapshot(
            remaining_requests=max(0, total_requests - used_requests),
            total_requests=total_requests,
            spend_cents=spend_cents,
            hard_limit_dollars=hard_limit_dollars,
            reset_info=reset_info,
            source=source,
        )
        logger.info(
            f"Usage refreshed from {source} data: "
            f"{snapshot.remaining_requests}/{total_requests} requests remaining"
        )
        return snapshot
