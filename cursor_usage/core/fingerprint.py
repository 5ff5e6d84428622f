"""
Auth fingerprint tracking.

Detects credential and team changes across restarts by comparing a digest
of the current identity against the one persisted by the previous run,
and invalidates cached data fetched under a stale identity.
"""

import hashlib
import logging
from typing import Optional

from cursor_usage.storage.models import AuthFingerprint
from cursor_usage.storage.repository import StateRepository

from .cache import ExpiringCache

logger = logging.getLogger(__name__)

FINGERPRINT_KEY = "auth.fingerprint"
TEAM_OVERRIDE_KEY = "team.override"


def hash_credential(credential: str) -> str:
    """Return a fixed-length, non-reversible digest of a credential."""
    return hashlib.sha256(credential.encode("utf-8")).hexdigest()


def parse_team_setting(team_setting: Optional[str]) -> Optional[int]:
    """Parse an explicit numeric team id from a team selector.

    Returns:
        The team id, or None for "auto", empty or non-numeric selectors
    """
    if team_setting is None:
        return None
    value = str(team_setting).strip()
    if not value or value.lower() == "auto":
        return None
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-numeric team id setting: {value!r}")
        return None


def resolve_explicit_team_id(
    team_setting: Optional[str],
    repository: StateRepository,
) -> Optional[int]:
    """Resolve the team id chosen by the user, without auto-detection.

    A numeric setting wins. "auto" clears any stored override. An empty
    setting falls back to the stored override, if one exists.
    """
    explicit = parse_team_setting(team_setting)
    if explicit is not None:
        return explicit

    if team_setting is not None and str(team_setting).strip().lower() == "auto":
        repository.delete(TEAM_OVERRIDE_KEY)
        return None

    override = repository.get(TEAM_OVERRIDE_KEY)
    if isinstance(override, int) and not isinstance(override, bool):
        return override
    return None


class AuthFingerprintTracker:
    """Invalidates caches when the credential or selected team changes."""

    def __init__(self, repository: StateRepository, cache: ExpiringCache):
        self.repository = repository
        self.cache = cache

    def load(self) -> Optional[AuthFingerprint]:
        """Return the persisted fingerprint, or None if absent or malformed."""
        raw = self.repository.get(FINGERPRINT_KEY)
        if raw is None:
            return None
        try:
            return AuthFingerprint.from_dict(raw)
        except ValueError:
            logger.warning("Persisted auth fingerprint is malformed, ignoring it")
            return None

    def reconcile(self, credential: Optional[str], team_setting: Optional[str]) -> None:
        """Compare the current identity with the persisted one.

        Safe to call at any time. A changed credential clears every cache;
        a changed team clears only team-scoped caches. The persisted
        fingerprint is then overwritten with the current identity.

        Args:
            credential: Current credential, or None if not configured
            team_setting: Team selector from configuration
        """
        if not credential:
            logger.debug("No credential configured, skipping fingerprint check")
            return

        current = AuthFingerprint(
            cookie_hash=hash_credential(credential),
            team_id=resolve_explicit_team_id(team_setting, self.repository),
        )
        previous = self.load()

        if previous is not None:
            if previous.cookie_hash != current.cookie_hash:
                logger.info("Credential changed since last run, invalidating caches")
                self.cache.clear_all()
            elif previous.team_id != current.team_id:
                logger.info(
                    f"Team changed from {previous.team_id} to {current.team_id}, "
                    "invalidating team caches"
                )
                self.cache.clear_team_data()

        self.repository.set(FINGERPRINT_KEY, current.to_dict())

    def credential_updated(self, credential: str, team_setting: Optional[str]) -> None:
        """Handle an explicit credential entry.

        A freshly entered credential always invalidates every cache,
        whether or not its digest matches the previous one.
        """
        self.cache.clear_all()
        self.reconcile(credential, team_setting)
