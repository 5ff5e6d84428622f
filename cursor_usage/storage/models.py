"""
Data models for storage layer.

Defines the entities persisted in the durable key-value store.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

MAX_DAILY_ATTEMPTS = 3


@dataclass(frozen=True)
class CacheEntry:
    """A cached upstream response stamped with its write time.

    Owned exclusively by the expiring cache; never handed to callers
    once older than the cache TTL.
    """
    value: Any
    stored_at_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "storedAt": self.stored_at_ms}

    @classmethod
    def from_dict(cls, data: Any) -> "CacheEntry":
        """Rebuild an entry from its stored form.

        Raises:
            ValueError: If the stored data does not look like a cache entry
        """
        if not isinstance(data, dict) or "value" not in data or "storedAt" not in data:
            raise ValueError("Malformed cache entry")
        stored_at = data["storedAt"]
        if isinstance(stored_at, bool) or not isinstance(stored_at, (int, float)):
            raise ValueError("Cache entry timestamp must be numeric")
        return cls(value=data["value"], stored_at_ms=int(stored_at))


@dataclass(frozen=True)
class AuthFingerprint:
    """Identity under which cached data was fetched.

    Stores a digest of the credential, never the credential itself.
    """
    cookie_hash: str
    team_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"cookieHash": self.cookie_hash, "teamId": self.team_id}

    @classmethod
    def from_dict(cls, data: Any) -> "AuthFingerprint":
        if not isinstance(data, dict) or not isinstance(data.get("cookieHash"), str):
            raise ValueError("Malformed auth fingerprint")
        team_id = data.get("teamId")
        if team_id is not None and (isinstance(team_id, bool) or not isinstance(team_id, int)):
            raise ValueError("Fingerprint team id must be an integer")
        return cls(cookie_hash=data["cookieHash"], team_id=team_id)


@dataclass(frozen=True)
class NotificationState:
    """Per-day notification bookkeeping.

    A new calendar day overwrites the previous day's tuple in place.
    """
    date: str
    attempts: int = 0
    sent: bool = False

    def __post_init__(self):
        """Validate the attempt counter stays within the daily budget."""
        if not 0 <= self.attempts <= MAX_DAILY_ATTEMPTS:
            raise ValueError(f"attempts must be between 0 and {MAX_DAILY_ATTEMPTS}")

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date, "attempts": self.attempts, "sent": self.sent}

    @classmethod
    def from_dict(cls, data: Any) -> "NotificationState":
        if not isinstance(data, dict):
            raise ValueError("Malformed notification state")
        date = data.get("date")
        attempts = data.get("attempts", 0)
        sent = data.get("sent", False)
        if not isinstance(date, str):
            raise ValueError("Notification state date must be a string")
        if isinstance(attempts, bool) or not isinstance(attempts, int):
            raise ValueError("Notification state attempts must be an integer")
        if not isinstance(sent, bool):
            raise ValueError("Notification state sent flag must be a boolean")
        return cls(date=date, attempts=attempts, sent=sent)
