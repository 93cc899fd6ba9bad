"""
Sliding-window limits on password reset and verification email requests.

A window is evaluated by counting stored records newer than now - window,
so there are no bucket edges to game. Exceeding a limit raises RateLimited
and has no other side effect.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from core.errors import RateLimited
from models.verification_attempts import ATTEMPT_SEND
from services.credential_store import CredentialStore
from utils.logger import get_logger
from utils.verification import as_utc, utcnow

logger = get_logger(__name__)


@dataclass(frozen=True)
class AttemptPolicy:
    name: str
    limit: int
    window: timedelta
    message: str


PASSWORD_RESET_POLICY = AttemptPolicy(
    name="password_reset",
    limit=3,
    window=timedelta(minutes=5),
    message="Too many reset requests. Please wait 5 minutes.",
)

VERIFICATION_SEND_POLICY = AttemptPolicy(
    name="verification_send",
    limit=3,
    window=timedelta(hours=1),
    message="Too many verification emails requested. Try again in 1 hour.",
)


class AttemptLimiter:

    def __init__(self, store: CredentialStore):
        self.store = store

    async def _recent(self, user_id: int, policy: AttemptPolicy, since: datetime) -> list[datetime]:
        # Reset requests are counted from the codes themselves, sends from the audit table
        if policy is PASSWORD_RESET_POLICY:
            times = await self.store.reset_code_times_since(user_id, since)
        elif policy is VERIFICATION_SEND_POLICY:
            times = await self.store.attempt_times_since(user_id, ATTEMPT_SEND, since)
        else:
            raise ValueError(f"Unknown attempt policy: {policy.name}")
        return [as_utc(t) for t in times]

    async def check(self, user_id: int, policy: AttemptPolicy, now: Optional[datetime] = None) -> None:
        """Raise RateLimited if user_id already used up policy.limit inside the window."""
        now = now or utcnow()
        recent = await self._recent(user_id, policy, now - policy.window)

        if len(recent) < policy.limit:
            return

        # The window frees up when the oldest counted attempt falls out of it
        oldest = recent[-policy.limit]
        retry_after = math.ceil((oldest + policy.window - now).total_seconds())

        logger.warning(
            "Attempt limit reached",
            extra={"user_id": user_id, "policy": policy.name, "retry_after": retry_after}
        )
        raise RateLimited(retry_after, policy.message)

    async def check_locked(self, user_id: int, policy: AttemptPolicy) -> None:
        """
        check() under the user's row lock.

        On success the lock is held until the caller commits the attempt it is
        about to store, so concurrent requests count each other's rows. On
        breach the transaction is rolled back, releasing the lock.
        """
        await self.store.lock_user(user_id)
        try:
            await self.check(user_id, policy)
        except RateLimited:
            await self.store.rollback()
            raise

    async def remaining(self, user_id: int, policy: AttemptPolicy) -> int:
        recent = await self._recent(user_id, policy, utcnow() - policy.window)
        return max(0, policy.limit - len(recent))

    async def record(self, user_id: int, attempt_type: str, ip_address: Optional[str] = None) -> None:
        await self.store.add_attempt(user_id, attempt_type, ip_address)
