"""
Async persistence for users and every credential artifact.

Store methods stage changes on the session and never commit; the service
operation that owns the transaction commits once at the end.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, exists, select, update, or_
from sqlalchemy.ext.asyncio import AsyncSession

from models.users import User
from models.refresh_tokens import RefreshToken
from models.blacklisted_tokens import BlacklistedToken
from models.password_resets import PasswordReset
from models.email_verifications import EmailVerification
from models.verification_attempts import VerificationAttempt
from models.sessions import LoginSession
from utils.verification import utcnow


class CredentialStore:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def commit(self) -> None:
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()

    # users

    async def get_user(self, user_id: int) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def get_user_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def email_or_username_taken(self, email: str, username: str) -> bool:
        result = await self.db.execute(
            select(User.id).where(or_(User.email == email, User.username == username)).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def add_user(self, email: str, username: str, hashed_password: str) -> User:
        user = User(email=email, username=username, hashed_password=hashed_password, email_verified=False)
        self.db.add(user)
        await self.db.flush()
        return user

    async def lock_user(self, user_id: int) -> None:
        """
        Take a write lock on the user's row until the transaction ends.

        A no-op UPDATE rather than SELECT ... FOR UPDATE, which SQLite ignores;
        concurrent limit checks for the same user queue behind it.
        """
        await self.db.execute(
            update(User).where(User.id == user_id).values(id=User.id)
            .execution_options(synchronize_session=False)
        )

    async def set_password(self, user_id: int, hashed_password: str) -> None:
        await self.db.execute(
            update(User).where(User.id == user_id).values(hashed_password=hashed_password)
        )

    async def mark_email_verified(self, user_id: int, verified_at: datetime) -> None:
        await self.db.execute(
            update(User).where(User.id == user_id).values(email_verified=True, verified_at=verified_at)
        )

    # refresh tokens and blacklist

    async def add_refresh_token(self, user_id: int, token_hash: str, expires_at: datetime,
                                persistent: bool) -> RefreshToken:
        record = RefreshToken(user_id=user_id, token_hash=token_hash, expires_at=expires_at,
                              persistent=persistent)
        self.db.add(record)
        await self.db.flush()
        return record

    async def find_usable_refresh_token(self, token_hash: str, now: datetime) -> Optional[RefreshToken]:
        """Stored, unexpired and not blacklisted, checked in one statement."""
        blacklisted = exists().where(BlacklistedToken.token_hash == token_hash)
        result = await self.db.execute(
            select(RefreshToken).where(
                RefreshToken.token_hash == token_hash,
                RefreshToken.expires_at > now,
                ~blacklisted,
            )
        )
        return result.scalar_one_or_none()

    async def list_refresh_token_hashes(self, user_id: int) -> list[str]:
        result = await self.db.execute(
            select(RefreshToken.token_hash).where(RefreshToken.user_id == user_id)
        )
        return list(result.scalars().all())

    async def is_blacklisted(self, token_hash: str) -> bool:
        result = await self.db.execute(select(exists().where(BlacklistedToken.token_hash == token_hash)))
        return bool(result.scalar())

    async def blacklist(self, token_hashes: list[str]) -> None:
        for token_hash in token_hashes:
            if not await self.is_blacklisted(token_hash):
                self.db.add(BlacklistedToken(token_hash=token_hash, blacklisted_at=utcnow()))
        await self.db.flush()

    async def delete_refresh_tokens(self, token_hashes: list[str]) -> int:
        if not token_hashes:
            return 0
        result = await self.db.execute(
            delete(RefreshToken).where(RefreshToken.token_hash.in_(token_hashes))
        )
        return result.rowcount

    async def delete_expired_refresh_tokens(self, now: datetime) -> int:
        result = await self.db.execute(delete(RefreshToken).where(RefreshToken.expires_at < now))
        return result.rowcount

    async def delete_blacklist_before(self, cutoff: datetime) -> int:
        result = await self.db.execute(
            delete(BlacklistedToken).where(BlacklistedToken.blacklisted_at < cutoff)
        )
        return result.rowcount

    # password reset codes

    async def invalidate_unused_reset_codes(self, user_id: int) -> int:
        result = await self.db.execute(
            update(PasswordReset)
            .where(PasswordReset.user_id == user_id, PasswordReset.used.is_(False))
            .values(used=True)
        )
        return result.rowcount

    async def add_reset_code(self, user_id: int, code_hash: str, expires_at: datetime) -> PasswordReset:
        record = PasswordReset(user_id=user_id, code_hash=code_hash, expires_at=expires_at, used=False,
                               created_at=utcnow())
        self.db.add(record)
        await self.db.flush()
        return record

    async def latest_active_reset_code(self, user_id: int, now: datetime) -> Optional[PasswordReset]:
        result = await self.db.execute(
            select(PasswordReset)
            .where(
                PasswordReset.user_id == user_id,
                PasswordReset.used.is_(False),
                PasswordReset.expires_at > now,
            )
            .order_by(PasswordReset.created_at.desc(), PasswordReset.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def claim_reset_code(self, reset_id: int) -> bool:
        """Mark a code used; False when another request already did."""
        result = await self.db.execute(
            update(PasswordReset)
            .where(PasswordReset.id == reset_id, PasswordReset.used.is_(False))
            .values(used=True)
        )
        return result.rowcount == 1

    async def reset_code_times_since(self, user_id: int, since: datetime) -> list[datetime]:
        result = await self.db.execute(
            select(PasswordReset.created_at)
            .where(PasswordReset.user_id == user_id, PasswordReset.created_at > since)
            .order_by(PasswordReset.created_at)
        )
        return list(result.scalars().all())

    async def delete_expired_reset_codes(self, now: datetime) -> int:
        # Used codes stay until expiry: reset requests are rate limited by counting these rows
        result = await self.db.execute(delete(PasswordReset).where(PasswordReset.expires_at < now))
        return result.rowcount

    # email verification tokens

    async def replace_verification_token(self, user_id: int, token_hash: str,
                                         expires_at: datetime) -> EmailVerification:
        await self.db.execute(delete(EmailVerification).where(EmailVerification.user_id == user_id))
        record = EmailVerification(user_id=user_id, token_hash=token_hash, expires_at=expires_at)
        self.db.add(record)
        await self.db.flush()
        return record

    async def find_verification_token(self, token_hash: str, now: datetime) -> Optional[EmailVerification]:
        result = await self.db.execute(
            select(EmailVerification).where(
                EmailVerification.token_hash == token_hash,
                EmailVerification.expires_at > now,
            )
        )
        return result.scalar_one_or_none()

    async def consume_verification_token(self, verification_id: int) -> bool:
        """Delete a verification token; False when it was already consumed."""
        result = await self.db.execute(
            delete(EmailVerification).where(EmailVerification.id == verification_id)
        )
        return result.rowcount == 1

    async def delete_expired_verification_tokens(self, now: datetime) -> int:
        result = await self.db.execute(delete(EmailVerification).where(EmailVerification.expires_at < now))
        return result.rowcount

    # attempts and sessions

    async def add_attempt(self, user_id: int, attempt_type: str, ip_address: Optional[str] = None) -> None:
        self.db.add(VerificationAttempt(user_id=user_id, attempt_type=attempt_type, ip_address=ip_address,
                                        attempted_at=utcnow()))
        await self.db.flush()

    async def attempt_times_since(self, user_id: int, attempt_type: str, since: datetime) -> list[datetime]:
        result = await self.db.execute(
            select(VerificationAttempt.attempted_at)
            .where(
                VerificationAttempt.user_id == user_id,
                VerificationAttempt.attempt_type == attempt_type,
                VerificationAttempt.attempted_at > since,
            )
            .order_by(VerificationAttempt.attempted_at)
        )
        return list(result.scalars().all())

    async def add_session(self, user_id: int, ip_address: Optional[str], user_agent: Optional[str]) -> None:
        self.db.add(LoginSession(user_id=user_id, ip_address=ip_address,
                                 user_agent=(user_agent or "")[:512] or None))
        await self.db.flush()
