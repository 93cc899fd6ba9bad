"""
Single-flight token refresh.

However many calls discover a stale access token at the same time, only one
refresh request goes out. Everyone else queues behind it and receives the same
outcome, in the order they arrived.
"""

import asyncio
from collections import deque
from enum import Enum
from typing import Awaitable, Callable

from client.errors import RefreshError, RefreshFailed, RefreshTimeout
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_REFRESH_TIMEOUT = 10.0


class RefreshState(str, Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"


class RefreshCoordinator:

    def __init__(self, refresh: Callable[[], Awaitable[str]], timeout: float = DEFAULT_REFRESH_TIMEOUT):
        self._refresh = refresh
        self._timeout = timeout
        self._state = RefreshState.IDLE
        self._waiters: deque[asyncio.Future] = deque()
        self.refresh_count = 0

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def refreshing(self) -> bool:
        return self._state is RefreshState.REFRESHING

    @property
    def pending(self) -> int:
        return len(self._waiters)

    async def await_fresh_token(self) -> str:
        """
        Return a new access token.

        The first caller runs the refresh; callers arriving while it is in
        flight wait for its result instead of starting their own. A failure is
        raised to every one of them.
        """
        if self._state is RefreshState.REFRESHING:
            waiter = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            return await waiter

        self._state = RefreshState.REFRESHING
        self.refresh_count += 1

        try:
            token = await asyncio.wait_for(self._refresh(), timeout=self._timeout)
        except asyncio.TimeoutError:
            error = RefreshTimeout(f"Token refresh timed out after {self._timeout}s")
            logger.warning("Token refresh timed out", extra={"waiters": len(self._waiters)})
            self._release(error=error)
            raise error from None
        except asyncio.CancelledError:
            self._release(error=RefreshFailed("Token refresh was cancelled"))
            raise
        except RefreshError as exc:
            logger.warning("Token refresh failed", extra={"waiters": len(self._waiters)})
            self._release(error=exc)
            raise
        except Exception as exc:
            error = RefreshFailed(f"Token refresh failed: {exc}")
            logger.error("Token refresh raised unexpectedly", exc_info=True)
            self._release(error=error)
            raise error from exc

        self._release(token=token)
        return token

    def _release(self, token: str | None = None, error: BaseException | None = None) -> None:
        """Drain the queue FIFO, then go back to IDLE."""
        waiters, self._waiters = self._waiters, deque()

        while waiters:
            waiter = waiters.popleft()
            # cancelled while waiting
            if waiter.done():
                continue
            if error is not None:
                waiter.set_exception(error)
            else:
                waiter.set_result(token)

        self._state = RefreshState.IDLE
