"""
Cursor usage service client.

Thin async wrapper over the dashboard endpoints. Responses are returned as
decoded JSON objects; parsing into models happens in the caller so raw
bodies can be cached as-is.
"""

import logging
import urllib.parse
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

CURSOR_BASE_URL = "https://cursor.com"
SESSION_COOKIE_NAME = "WorkosCursorSessionToken"
DEFAULT_TIMEOUT = 10.0


class UpstreamResponseError(Exception):
    """Raised when the service answers with a body that is not a JSON object."""


class CursorApiClient:
    """Authenticated client for the Cursor usage endpoints.

    The session cookie is only placed in request headers and is never
    logged. The transport has its own timeout, so a request abandoned by
    the retry executor cannot hang indefinitely.
    """

    def __init__(
        self,
        cookie: str,
        base_url: str = CURSOR_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the client.

        Args:
            cookie: WorkosCursorSessionToken value (required)
            base_url: Service root URL
            timeout: Transport timeout in seconds
            client: Optional shared HTTP client for connection reuse

        Raises:
            ValueError: If cookie is missing/empty
        """
        if not cookie or not cookie.strip():
            raise ValueError("cookie is required and cannot be empty")

        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._cookie = cookie.strip()
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "CursorApiClient":
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Cookie": f"{SESSION_COOKIE_NAME}={self._cookie}",
        }

    async def _request(
        self,
        method: str,
        path: str,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
            self._owns_client = True

        url = f"{self.base_url}{path}"
        logger.debug(f"Fetching {method} {path}")
        try:
            response = await self._client.request(
                method, url, headers=self._headers(), json=json_body, timeout=self.timeout
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status in (401, 403):
                logger.warning(
                    f"Authentication failed for {path} (HTTP {status}); "
                    "the session cookie may have expired"
                )
            else:
                logger.warning(f"Request to {path} failed: HTTP {status}")
            raise
        except httpx.TransportError as e:
            logger.warning(f"Request to {path} failed: {type(e).__name__}: {e}")
            raise

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamResponseError(f"{path} returned invalid JSON") from e
        if not isinstance(data, dict):
            raise UpstreamResponseError(f"{path} returned {type(data).__name__}, expected object")
        return data

    async def fetch_user_me(self) -> Dict[str, Any]:
        """Fetch the current user's identity."""
        return await self._request("GET", "/api/auth/me")

    async def fetch_user_usage(self, user_id: str) -> Dict[str, Any]:
        """Fetch the current user's quota usage for this billing cycle."""
        encoded_user_id = urllib.parse.quote(user_id, safe="")
        return await self._request("GET", f"/api/usage?user={encoded_user_id}")

    async def fetch_teams(self) -> Dict[str, Any]:
        """Fetch all teams the user belongs to."""
        return await self._request("POST", "/api/dashboard/teams", {})

    async def fetch_team_details(self, team_id: int) -> Dict[str, Any]:
        """Fetch team details, including the user's id within that team."""
        return await self._request("POST", "/api/dashboard/team", {"teamId": team_id})

    async def fetch_team_spend(self, team_id: int) -> Dict[str, Any]:
        """Fetch spend data for every member of a team."""
        return await self._request("POST", "/api/dashboard/get-team-spend", {"teamId": team_id})
