"""
HTTP client for the auth API.

Keeps the access token in memory and the refresh cookie in the httpx cookie
jar. A call rejected because its bearer token is stale is refreshed through
the RefreshCoordinator and replayed once.
"""

from typing import Any, Optional

import httpx

from client.errors import RefreshError, RefreshFailed, SessionExpired
from client.refresh_coordinator import DEFAULT_REFRESH_TIMEOUT, RefreshCoordinator
from utils.logger import get_logger

logger = get_logger(__name__)

REFRESH_PATH = "/auth/refresh"
# Never answered by refreshing: either they issue credentials or they are the refresh itself
NO_REFRESH_PATHS = frozenset({REFRESH_PATH, "/auth/login", "/auth/register"})


def is_stale_credential(response: httpx.Response) -> bool:
    """401 with a Bearer challenge; a 403 or a bare 401 is not about the token."""
    if response.status_code != 401:
        return False
    challenge = response.headers.get("www-authenticate", "")
    return challenge.lower().startswith("bearer")


class AuthClient:

    def __init__(self, base_url: str, *, transport: Optional[httpx.AsyncBaseTransport] = None,
                 timeout: float = 30.0, refresh_timeout: float = DEFAULT_REFRESH_TIMEOUT):
        self._http = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)
        self._access_token: Optional[str] = None
        self.coordinator = RefreshCoordinator(self._refresh_access_token, timeout=refresh_timeout)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    @property
    def cookies(self) -> httpx.Cookies:
        return self._http.cookies

    def set_access_token(self, token: Optional[str]) -> None:
        self._access_token = token

    def clear_credentials(self) -> None:
        self._access_token = None
        self._http.cookies.clear()

    async def register(self, email: str, username: str, password: str) -> dict:
        response = await self._http.post(
            "/auth/register",
            json={"email": email, "username": username, "password": password}
        )
        response.raise_for_status()
        data = response.json()
        self._access_token = data["access_token"]
        return data

    async def login(self, email: str, password: str, remember_me: bool = False) -> dict:
        response = await self._http.post(
            "/auth/login",
            json={"email": email, "password": password, "remember_me": remember_me}
        )
        response.raise_for_status()
        data = response.json()
        self._access_token = data["access_token"]
        return data

    async def refresh(self) -> str:
        """Force a refresh; joins one already in flight."""
        try:
            return await self.coordinator.await_fresh_token()
        except RefreshError:
            self.clear_credentials()
            raise

    async def logout(self) -> None:
        try:
            response = await self._http.post("/auth/logout")
            response.raise_for_status()
        finally:
            self.clear_credentials()

    async def get_current_user(self) -> dict:
        response = await self.request("GET", "/auth/me")
        response.raise_for_status()
        return response.json()

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Send an authenticated request.

        On a stale-credential 401 the call waits for a fresh token (one shared
        refresh for all concurrent callers) and is replayed exactly once. If
        another call already refreshed while this one was in flight, it is
        replayed with that token straight away.
        """
        sent_with = self._access_token
        response = await self._send(method, url, sent_with, **kwargs)

        if httpx.URL(url).path in NO_REFRESH_PATHS or not is_stale_credential(response):
            return response

        if self._access_token is not None and self._access_token != sent_with:
            token = self._access_token
        else:
            try:
                token = await self.coordinator.await_fresh_token()
            except RefreshError as exc:
                self.clear_credentials()
                logger.info("Session expired, login required", extra={"path": httpx.URL(url).path})
                raise SessionExpired("Session expired, please log in again") from exc

        return await self._send(method, url, token, **kwargs)

    async def _send(self, method: str, url: str, token: Optional[str], **kwargs: Any) -> httpx.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return await self._http.request(method, url, headers=headers, **kwargs)

    async def _refresh_access_token(self) -> str:
        try:
            response = await self._http.post(REFRESH_PATH)
        except httpx.HTTPError as exc:
            raise RefreshFailed(f"Refresh request failed: {exc}") from exc

        if response.status_code != 200:
            raise RefreshFailed("Refresh token rejected", status_code=response.status_code)

        self._access_token = response.json()["access_token"]
        return self._access_token
