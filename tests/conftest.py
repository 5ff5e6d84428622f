"""
Shared fixtures: a scripted fake of the usage service and sample payloads.
"""

import copy
from collections import Counter
from datetime import datetime, timezone

import pytest

from cursor_usage.config.credentials import COOKIE_ENV_VAR, COOKIE_NAME, CredentialStore
from cursor_usage.core.cache import ExpiringCache
from cursor_usage.core.reconciler import UsageReconciler
from cursor_usage.storage.repository import StateRepository

USER_ME = {"sub": "user_01ABC", "email": "dev@example.com", "name": "Dev"}
USER_USAGE = {
    "gpt-4": {
        "numRequests": 120,
        "numRequestsTotal": 130,
        "numTokens": 0,
        "maxRequestUsage": 500,
        "maxTokenUsage": None,
    },
    "startOfMonth": "2025-09-10T00:00:00.000Z",
}
TEAMS = {"teams": [{"id": 42, "name": "Acme"}, {"id": 99, "name": "Other"}]}
TEAM_DETAILS = {"userId": 7}
TEAM_SPEND = {
    "teamMemberSpend": [
        {"userId": 3, "email": "a@example.com", "fastPremiumRequests": 10},
        {
            "userId": 7,
            "email": "dev@example.com",
            "fastPremiumRequests": 150,
            "spendCents": 1234,
            "hardLimitOverrideDollars": 50,
        },
    ]
}

FIXED_NOW = datetime(2025, 9, 25, 12, 0, tzinfo=timezone.utc)


class FakeCursorApi:
    """Stand-in for CursorApiClient that records calls and scripts failures."""

    def __init__(self, **responses):
        self.responses = {
            "fetch_user_me": USER_ME,
            "fetch_user_usage": USER_USAGE,
            "fetch_teams": TEAMS,
            "fetch_team_details": TEAM_DETAILS,
            "fetch_team_spend": TEAM_SPEND,
        }
        self.responses.update(responses)
        self.failures = {}
        self.calls = Counter()
        self.cookies = []

    def __call__(self, cookie):
        self.cookies.append(cookie)
        return self

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return None

    async def _respond(self, name):
        self.calls[name] += 1
        if name in self.failures:
            raise self.failures[name]
        return copy.deepcopy(self.responses[name])

    async def fetch_user_me(self):
        return await self._respond("fetch_user_me")

    async def fetch_user_usage(self, user_id):
        return await self._respond("fetch_user_usage")

    async def fetch_teams(self):
        return await self._respond("fetch_teams")

    async def fetch_team_details(self, team_id):
        return await self._respond("fetch_team_details")

    async def fetch_team_spend(self, team_id):
        return await self._respond("fetch_team_spend")


@pytest.fixture(autouse=True)
def no_cookie_env(monkeypatch):
    """Keep a developer's real session cookie out of the tests."""
    monkeypatch.delenv(COOKIE_ENV_VAR, raising=False)


@pytest.fixture
def repository(tmp_path):
    return StateRepository(str(tmp_path / "state.db"))


@pytest.fixture
def cache(repository):
    return ExpiringCache(repository)


@pytest.fixture
def credentials(tmp_path):
    store = CredentialStore(str(tmp_path / "credentials.json"))
    store.store(COOKIE_NAME, "user_01ABC%3A%3Asecret-token")
    return store


@pytest.fixture
def fake_api():
    return FakeCursorApi()


@pytest.fixture
def make_reconciler(credentials, cache, fake_api):
    """Build a reconciler over the fake API with fast retries."""
    def _make(team_setting="", **kwargs):
        options = dict(
            credentials=credentials,
            cache=cache,
            api_factory=fake_api,
            team_setting=team_setting,
            retries=2,
            delay_ms=0,
            timeout_ms=1000,
            now=lambda: FIXED_NOW,
        )
        options.update(kwargs)
        return UsageReconciler(**options)
    return _make
