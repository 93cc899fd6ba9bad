"""
Client-side failures of the refresh flow.
"""

from typing import Optional


class RefreshError(Exception):
    """Base class for everything that can go wrong while refreshing."""


class RefreshFailed(RefreshError):
    """The refresh endpoint rejected the cookie or could not be reached."""

    def __init__(self, message: str = "Token refresh failed", status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class RefreshTimeout(RefreshError):
    """The refresh call did not finish in time."""


class SessionExpired(RefreshError):
    """Refresh failed; the caller has to log in again."""
