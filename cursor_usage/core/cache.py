"""
Expiring cache for stable upstream responses.

Entries carry their write time and are checked lazily on read; there is
no background sweep. Volatile data (quota usage, team spend) never goes
through this cache.
"""

import logging
import time
from typing import Any, Awaitable, Callable, Iterable, Optional, TypeVar

from cursor_usage.storage.models import CacheEntry
from cursor_usage.storage.repository import StateRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

CACHE_TTL_MS = 24 * 60 * 60 * 1000

USER_ME_KEY = "cache.userMe"
TEAMS_KEY = "cache.teams"
TEAM_DETAILS_PREFIX = "cache.teamDetails."


def team_details_key(team_id: int) -> str:
    """Cache key for one team's membership details."""
    return f"{TEAM_DETAILS_PREFIX}{team_id}"


def _now_ms() -> int:
    return int(time.time() * 1000)


class ExpiringCache:
    """Key/value cache with a fixed TTL over the durable state store."""

    def __init__(
        self,
        repository: StateRepository,
        ttl_ms: int = CACHE_TTL_MS,
        clock: Callable[[], int] = _now_ms,
    ):
        """Initialize the cache.

        Args:
            repository: Durable store holding the entries
            ttl_ms: Maximum entry age in milliseconds
            clock: Current time in epoch milliseconds
        """
        self.repository = repository
        self.ttl_ms = ttl_ms
        self.clock = clock

    def get(self, key: str) -> Optional[Any]:
        """Return a cached value, or None if absent, expired or corrupt.

        Expired and corrupt entries are deleted as a side effect.
        """
        raw = self.repository.get(key)
        if raw is None:
            return None

        try:
            entry = CacheEntry.from_dict(raw)
        except ValueError:
            logger.warning(f"Dropping malformed cache entry '{key}'")
            self.repository.delete(key)
            return None

        if self.clock() - entry.stored_at_ms > self.ttl_ms:
            logger.debug(f"Cache entry '{key}' expired")
            self.repository.delete(key)
            return None
        return entry.value

    def set(self, key: str, value: Any) -> None:
        """Store a value stamped with the current time."""
        entry = CacheEntry(value=value, stored_at_ms=self.clock())
        self.repository.set(key, entry.to_dict())

    def clear(self, keys: Iterable[str]) -> None:
        """Delete the given keys; absent keys are ignored."""
        self.repository.delete_many(keys)

    def clear_team_data(self) -> None:
        """Invalidate the team list and every per-team details entry."""
        team_keys = self.repository.keys(prefix=TEAM_DETAILS_PREFIX)
        self.clear({TEAMS_KEY} | team_keys)
        logger.info("Cleared team caches")

    def clear_all(self) -> None:
        """Invalidate every cached upstream response."""
        team_keys = self.repository.keys(prefix=TEAM_DETAILS_PREFIX)
        self.clear({USER_ME_KEY, TEAMS_KEY} | team_keys)
        logger.info("Cleared all cached upstream data")

    async def get_or_fetch(
        self,
        key: str,
        fetch: Callable[[], Awaitable[Any]],
        parse: Callable[[Any], T],
    ) -> T:
        """Return the parsed cached value, fetching and storing it on a miss.

        A cached value that no longer parses is treated as a miss and
        overwritten with a fresh response. Fetch failures propagate.

        Args:
            key: Cache key
            fetch: Upstream call producing the raw response
            parse: Converts a raw response into its model, raising ValueError
                on shape mismatch

        Returns:
            Parsed value
        """
        cached = self.get(key)
        if cached is not None:
            try:
                return parse(cached)
            except ValueError:
                logger.warning(f"Cached value for '{key}' has unexpected shape, refetching")

        raw = await fetch()
        parsed = parse(raw)
        self.set(key, raw)
        return parsed
