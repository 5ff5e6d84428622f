"""
Client for the Cursor usage service.

Provides programmatic access to quota, team and spend endpoints.
"""

from .api import CursorApiClient, UpstreamResponseError

__all__ = ["CursorApiClient", "UpstreamResponseError"]
