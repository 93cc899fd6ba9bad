"""
Single-use secrets for account recovery.

Password reset uses a 6-digit code (bcrypt-hashed, 15 minutes, newest code
wins). Email verification uses a 64-hex token (SHA-256 stored, 24 hours, one
per user). Plaintext secrets are returned only to the caller that hands them
to EmailService; they are never logged or put in an HTTP response.
"""

from datetime import timedelta
from typing import NamedTuple, Optional

from core.errors import InvalidOrExpiredToken, InvalidResetCode, ValidationError
from models.users import User
from models.verification_attempts import ATTEMPT_SEND, ATTEMPT_VERIFY
from services.attempt_limiter import AttemptLimiter, PASSWORD_RESET_POLICY, VERIFICATION_SEND_POLICY
from services.credential_store import CredentialStore
from services.token_service import TokenService
from utils.hashing import burn_hash_check, get_password_hash, hash_token, verify_password
from utils.logger import get_logger
from utils.password_policy import check_password_policy
from utils.verification import (
    generate_reset_code,
    generate_verification_token,
    get_code_expiry_time,
    utcnow,
)

logger = get_logger(__name__)

RESET_CODE_EXPIRE_MINUTES = 15
VERIFICATION_TOKEN_EXPIRE = timedelta(hours=24)


class ResetRequest(NamedTuple):
    user: User
    code: str


class VerifiedIdentity(NamedTuple):
    user_id: int
    email: str
    username: str


class SecurityCodeManager:

    def __init__(self, store: CredentialStore, tokens: TokenService, limiter: AttemptLimiter):
        self.store = store
        self.tokens = tokens
        self.limiter = limiter

    # password reset

    async def _store_reset_code(self, user: User, code_hash: str) -> None:
        invalidated = await self.store.invalidate_unused_reset_codes(user.id)
        await self.store.add_reset_code(
            user.id,
            code_hash,
            get_code_expiry_time(minutes=RESET_CODE_EXPIRE_MINUTES),
        )
        await self.store.commit()

        logger.info("Password reset code issued", extra={"user_id": user.id, "invalidated": invalidated})

    async def issue_reset_code(self, user: User) -> str:
        """
        Issue a fresh reset code for user and return it in plaintext.

        Every older unused code of the user stops working in the same commit.
        """
        code = generate_reset_code()
        await self._store_reset_code(user, get_password_hash(code))
        return code

    async def request_password_reset(self, email: str) -> Optional[ResetRequest]:
        """
        Forgot-password entry point.

        Returns None for unknown emails so the caller can answer exactly as it
        would for a known one. Raises RateLimited after 3 requests in 5 minutes.
        Every path pays one bcrypt hash, so timing does not tell them apart.
        """
        code = generate_reset_code()
        code_hash = get_password_hash(code)

        user = await self.store.get_user_by_email(email.lower().strip())
        if user is None:
            logger.info("Password reset requested for unknown email")
            return None

        await self.limiter.check_locked(user.id, PASSWORD_RESET_POLICY)
        await self._store_reset_code(user, code_hash)
        return ResetRequest(user=user, code=code)

    async def redeem_reset_code(self, email: str, code: str, new_password: str) -> User:
        """
        Set a new password using a reset code.

        On success the password hash is replaced, the code is marked used and
        every refresh token of the user is revoked, all in one commit.
        """
        if new_password == code:
            raise ValidationError("New password cannot be the reset code")
        try:
            check_password_policy(new_password)
        except ValueError as e:
            raise ValidationError(str(e))

        user = await self.store.get_user_by_email(email.lower().strip())
        reset = await self.store.latest_active_reset_code(user.id, utcnow()) if user else None

        if reset is None:
            burn_hash_check(code)
            logger.warning("Password reset failed - no active code",
                           extra={"user_id": user.id if user else None})
            raise InvalidResetCode()

        if not verify_password(code, reset.code_hash):
            logger.warning("Password reset failed - code mismatch", extra={"user_id": user.id})
            raise InvalidResetCode()

        if not await self.store.claim_reset_code(reset.id):
            logger.warning("Password reset failed - code already used", extra={"user_id": user.id})
            await self.store.rollback()
            raise InvalidResetCode()

        await self.store.set_password(user.id, get_password_hash(new_password))
        revoked = await self.tokens.stage_revoke_all(user.id)
        await self.store.commit()

        logger.info("Password reset completed", extra={"user_id": user.id, "revoked_tokens": revoked})
        return user

    # email verification

    async def issue_verification_token(self, user_id: int, ip_address: Optional[str] = None) -> str:
        """
        Replace any pending verification token of the user with a new one.

        Each issued token is one verification email, so a send attempt is
        recorded in the same commit.
        """
        token = generate_verification_token()
        await self.store.replace_verification_token(user_id, hash_token(token),
                                                    utcnow() + VERIFICATION_TOKEN_EXPIRE)
        await self.limiter.record(user_id, ATTEMPT_SEND, ip_address)
        await self.store.commit()
        return token

    async def resend_verification(self, user: User, ip_address: Optional[str] = None) -> str:
        """Rate-limited resend: 3 per hour per user, counting the mail sent at registration."""
        if user.email_verified:
            raise ValidationError("Email already verified")

        await self.limiter.check_locked(user.id, VERIFICATION_SEND_POLICY)
        token = await self.issue_verification_token(user.id, ip_address)

        logger.info("Verification email re-issued", extra={"user_id": user.id})
        return token

    async def redeem_verification_token(self, token: str, ip_address: Optional[str] = None) -> VerifiedIdentity:
        """Mark the owning user verified and consume the token."""
        now = utcnow()
        record = await self.store.find_verification_token(hash_token(token), now)
        if record is None:
            logger.info("Email verification failed - unknown or expired token")
            raise InvalidOrExpiredToken()

        if not await self.store.consume_verification_token(record.id):
            await self.store.rollback()
            raise InvalidOrExpiredToken()

        user = await self.store.get_user(record.user_id)
        if user is None:
            await self.store.rollback()
            raise InvalidOrExpiredToken()

        await self.store.mark_email_verified(user.id, now)
        await self.limiter.record(user.id, ATTEMPT_VERIFY, ip_address)
        await self.store.commit()

        logger.info("Email verified", extra={"user_id": user.id, "verified_at": now.isoformat()})
        return VerifiedIdentity(user_id=user.id, email=user.email, username=user.username)
