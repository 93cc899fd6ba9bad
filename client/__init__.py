"""
Client package exports.
"""

from client.auth_client import AuthClient
from client.errors import RefreshError, RefreshFailed, RefreshTimeout, SessionExpired
from client.refresh_coordinator import RefreshCoordinator, RefreshState

__all__ = [
    "AuthClient",
    "RefreshCoordinator",
    "RefreshState",
    "RefreshError",
    "RefreshFailed",
    "RefreshTimeout",
    "SessionExpired",
]
