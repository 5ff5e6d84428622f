"""
Response models for the Cursor usage service.

Each parser accepts the decoded JSON body and raises ValueError when the
shape does not match, so callers can treat bad data like a cache miss.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional

DEFAULT_MAX_REQUESTS = 500
QUOTA_MODEL = "gpt-4"


def _require_dict(data: Any, name: str) -> dict:
    if not isinstance(data, dict):
        raise ValueError(f"{name} response must be an object")
    return data


def _optional_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


@dataclass(frozen=True)
class UserMe:
    """Current user identity from /api/auth/me."""
    sub: str
    email: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "UserMe":
        data = _require_dict(data, "User identity")
        sub = data.get("sub")
        if not isinstance(sub, str) or not sub:
            raise ValueError("User identity is missing 'sub'")
        return cls(sub=sub, email=data.get("email"), name=data.get("name"))


@dataclass(frozen=True)
class UserUsage:
    """Individual quota usage for the current billing cycle."""
    num_requests: int
    max_requests: int
    start_of_month: Optional[datetime]

    @classmethod
    def from_dict(cls, data: Any) -> "UserUsage":
        data = _require_dict(data, "User usage")
        model_usage = data.get(QUOTA_MODEL)
        if not isinstance(model_usage, dict):
            raise ValueError(f"User usage is missing '{QUOTA_MODEL}' entry")

        num_requests = _optional_number(model_usage.get("numRequests"))
        if num_requests is None:
            raise ValueError("User usage 'numRequests' must be numeric")

        max_requests = _optional_number(model_usage.get("maxRequestUsage"))
        if max_requests is None or max_requests <= 0:
            max_requests = DEFAULT_MAX_REQUESTS

        start = data.get("startOfMonth")
        start_of_month = None
        if isinstance(start, str) and start:
            try:
                start_of_month = datetime.fromisoformat(start.replace("Z", "+00:00"))
            except ValueError:
                start_of_month = None

        return cls(
            num_requests=int(num_requests),
            max_requests=int(max_requests),
            start_of_month=start_of_month,
        )


@dataclass(frozen=True)
class Team:
    """A team the user belongs to."""
    id: int
    name: str = ""


def parse_teams(data: Any) -> List[Team]:
    """Parse the /api/dashboard/teams response into a list of teams."""
    data = _require_dict(data, "Teams")
    raw_teams = data.get("teams", [])
    if not isinstance(raw_teams, list):
        raise ValueError("Teams response 'teams' must be a list")

    teams = []
    for raw in raw_teams:
        if not isinstance(raw, dict):
            raise ValueError("Team entry must be an object")
        team_id = raw.get("id")
        if isinstance(team_id, bool) or not isinstance(team_id, int):
            raise ValueError("Team entry 'id' must be an integer")
        teams.append(Team(id=team_id, name=str(raw.get("name", ""))))
    return teams


@dataclass(frozen=True)
class TeamDetails:
    """The current user's membership in a team."""
    user_id: int

    @classmethod
    def from_dict(cls, data: Any) -> "TeamDetails":
        data = _require_dict(data, "Team details")
        user_id = data.get("userId")
        if isinstance(user_id, bool) or not isinstance(user_id, int):
            raise ValueError("Team details 'userId' must be an integer")
        return cls(user_id=user_id)


@dataclass(frozen=True)
class TeamMemberSpend:
    """One member's row in the team spend report."""
    user_id: Optional[int]
    fast_premium_requests: Optional[float] = None
    spend_cents: Optional[float] = None
    hard_limit_dollars: Optional[float] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class TeamSpend:
    """Spend report for every member of a team."""
    members: List[TeamMemberSpend]

    @classmethod
    def from_dict(cls, data: Any) -> "TeamSpend":
        data = _require_dict(data, "Team spend")
        rows = data.get("teamMemberSpend", [])
        if not isinstance(rows, list):
            raise ValueError("Team spend 'teamMemberSpend' must be a list")

        members = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            user_id = row.get("userId")
            members.append(TeamMemberSpend(
                user_id=user_id if isinstance(user_id, int) and not isinstance(user_id, bool) else None,
                fast_premium_requests=_optional_number(row.get("fastPremiumRequests")),
                spend_cents=_optional_number(row.get("spendCents")),
                hard_limit_dollars=_optional_number(row.get("hardLimitOverrideDollars")),
                email=row.get("email"),
            ))
        return cls(members=members)

    def find_member(self, user_id: int) -> Optional[TeamMemberSpend]:
        """Return the spend row for a user id, if present."""
        for member in self.members:
            if member.user_id == user_id:
                return member
        return None
