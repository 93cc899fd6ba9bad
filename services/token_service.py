import secrets
from datetime import timedelta, datetime
from typing import NamedTuple, Optional

from jose import jwt, JWTError
from sqlalchemy.exc import IntegrityError

from core.config import settings
from core.errors import InvalidAccessToken, InvalidRefreshToken
from models.users import User
from services.credential_store import CredentialStore
from utils.hashing import hash_token
from utils.logger import get_logger
from utils.verification import utcnow

logger = get_logger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"
BLACKLIST_RETENTION = timedelta(days=7)


class IssuedRefreshToken(NamedTuple):
    token: str
    expires_at: datetime
    persistent: bool

    @property
    def max_age(self) -> int:
        """Seconds until expiry, used as the cookie lifetime."""
        return max(0, int((self.expires_at - utcnow()).total_seconds()))


class SweepResult(NamedTuple):
    refresh_tokens: int
    blacklist_entries: int
    verification_tokens: int
    reset_codes: int


def refresh_token_lifetime(persistent: bool) -> timedelta:
    days = settings.REFRESH_TOKEN_PERSISTENT_EXPIRE_DAYS if persistent else settings.REFRESH_TOKEN_EXPIRE_DAYS
    return timedelta(days=days)


class TokenService:
    """
    Handles all token operations: creation, validation, revocation and cleanup.

    Access tokens are stateless JWTs signed with JWT_ACCESS_SECRET. Refresh
    tokens are JWTs signed with JWT_REFRESH_SECRET and are only usable while a
    matching row exists in refresh_tokens and no row exists in blacklisted_tokens.
    """

    def __init__(self, store: CredentialStore):
        self.store = store

    @staticmethod
    def issue_access(user: User, expires_delta: Optional[timedelta] = None) -> str:
        """
        Creates a JWT access token.

        Args:
            user: Token subject
            expires_delta: Token lifetime (default: ACCESS_TOKEN_EXPIRE_MINUTES)

        Returns:
            Signed JWT string
        """
        if expires_delta is None:
            expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

        payload = {
            "sub": str(user.id),
            "email": user.email,
            "username": user.username,
            "type": ACCESS_TOKEN_TYPE,
            "exp": utcnow() + expires_delta,
        }
        return jwt.encode(payload, settings.JWT_ACCESS_SECRET, algorithm=settings.ALGORITHM)

    @staticmethod
    def verify_access(token: str) -> dict:
        """Signature, expiry and type only; never touches the database."""
        try:
            payload = jwt.decode(token, settings.JWT_ACCESS_SECRET, algorithms=[settings.ALGORITHM])
        except JWTError:
            raise InvalidAccessToken()

        if payload.get("type") != ACCESS_TOKEN_TYPE or not payload.get("sub"):
            raise InvalidAccessToken()

        try:
            user_id = int(payload["sub"])
        except (TypeError, ValueError):
            raise InvalidAccessToken()

        return {"user_id": user_id, "email": payload.get("email"), "username": payload.get("username")}

    async def issue_refresh(self, user: User, persistent: bool = False) -> IssuedRefreshToken:
        """
        Creates a refresh token and stores its hash with the same expiry.

        Args:
            user: Token subject
            persistent: "remember me"; 30 days instead of 7

        Returns:
            IssuedRefreshToken(token, expires_at, persistent)
        """
        # JWT exp has second resolution; keep the stored expiry identical
        expires_at = (utcnow() + refresh_token_lifetime(persistent)).replace(microsecond=0)

        payload = {
            "sub": str(user.id),
            "type": REFRESH_TOKEN_TYPE,
            "persistent": persistent,
            "jti": secrets.token_urlsafe(16),
            "exp": expires_at,
        }
        token = jwt.encode(payload, settings.JWT_REFRESH_SECRET, algorithm=settings.ALGORITHM)

        await self.store.add_refresh_token(user.id, hash_token(token), expires_at, persistent)
        await self.store.commit()

        return IssuedRefreshToken(token=token, expires_at=expires_at, persistent=persistent)

    async def verify_refresh(self, token: str) -> dict:
        """
        Validates a refresh token.

        The JWT must verify, the stored record must exist and be unexpired and
        the token must not be blacklisted. Every failure raises the same
        InvalidRefreshToken; the reason is only logged.
        """
        try:
            payload = jwt.decode(token, settings.JWT_REFRESH_SECRET, algorithms=[settings.ALGORITHM])
        except JWTError:
            logger.debug("Refresh rejected - bad signature or expired")
            raise InvalidRefreshToken()

        if payload.get("type") != REFRESH_TOKEN_TYPE or not payload.get("sub"):
            logger.debug("Refresh rejected - wrong token type")
            raise InvalidRefreshToken()

        record = await self.store.find_usable_refresh_token(hash_token(token), utcnow())
        if record is None or str(record.user_id) != payload["sub"]:
            logger.info("Refresh rejected - token unknown, expired or revoked",
                        extra={"user_id": payload.get("sub")})
            raise InvalidRefreshToken()

        return {"user_id": record.user_id, "persistent": bool(payload.get("persistent", False))}

    async def refresh_access(self, token: str) -> tuple[str, User]:
        """Exchange a refresh token for a new access token. The refresh token stays valid."""
        claims = await self.verify_refresh(token)

        user = await self.store.get_user(claims["user_id"])
        if user is None:
            logger.warning("Refresh rejected - user no longer exists", extra={"user_id": claims["user_id"]})
            raise InvalidRefreshToken()

        return self.issue_access(user), user

    async def revoke(self, token: str) -> None:
        """
        Revokes a refresh token (logout). Safe to call repeatedly.

        The token does not need to verify: a forged or expired string simply
        ends up blacklisted with nothing to delete.
        """
        token_hash = hash_token(token)
        try:
            await self.store.blacklist([token_hash])
            await self.store.delete_refresh_tokens([token_hash])
            await self.store.commit()
        except IntegrityError:
            # A concurrent revoke inserted the blacklist row first
            await self.store.rollback()
            await self.store.delete_refresh_tokens([token_hash])
            await self.store.commit()

    async def stage_revoke_all(self, user_id: int) -> int:
        """Blacklist and delete every refresh token of a user without committing."""
        token_hashes = await self.store.list_refresh_token_hashes(user_id)
        await self.store.blacklist(token_hashes)
        await self.store.delete_refresh_tokens(token_hashes)
        return len(token_hashes)

    async def revoke_all_for_user(self, user_id: int) -> int:
        """Revokes all refresh tokens for a user (logout from all devices)."""
        revoked = await self.stage_revoke_all(user_id)
        await self.store.commit()

        logger.info("Revoked all refresh tokens", extra={"user_id": user_id, "count": revoked})
        return revoked

    async def sweep_expired(self) -> SweepResult:
        """
        Delete expired refresh records, old blacklist entries and expired codes.

        Needs no lock: every read path re-checks expiry and blacklist status itself.
        """
        now = utcnow()
        result = SweepResult(
            refresh_tokens=await self.store.delete_expired_refresh_tokens(now),
            blacklist_entries=await self.store.delete_blacklist_before(now - BLACKLIST_RETENTION),
            verification_tokens=await self.store.delete_expired_verification_tokens(now),
            reset_codes=await self.store.delete_expired_reset_codes(now),
        )
        await self.store.commit()
        return result
