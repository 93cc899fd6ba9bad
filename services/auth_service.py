from typing import Optional

from sqlalchemy.exc import IntegrityError

from core.errors import Conflict, InvalidCredentials, NotFound, ValidationError
from models.users import User
from schemas.auth_schemas import RegisterRequest
from services.credential_store import CredentialStore
from services.token_service import TokenService
from utils.hashing import burn_hash_check, get_password_hash, verify_password
from utils.logger import get_logger
from utils.password_policy import check_password_policy

logger = get_logger(__name__)


class AuthService:
    """Account-level operations: registration, login checks, identity, password change."""

    def __init__(self, store: CredentialStore, tokens: TokenService):
        self.store = store
        self.tokens = tokens

    async def create_user(self, request: RegisterRequest) -> User:
        """
        Creates a new, unverified user.

        Flow:
        1. Reject if email or username is taken (409)
        2. Hash password and insert
        3. A unique-constraint race at insert time is reported the same way
        """
        email = request.email.lower().strip()
        username = request.username.strip()

        if await self.store.email_or_username_taken(email, username):
            logger.warning("Registration attempt with existing email or username",
                           extra={"email": email, "username": username})
            raise Conflict()

        try:
            user = await self.store.add_user(email, username, get_password_hash(request.password))
            await self.store.commit()
        except IntegrityError:
            await self.store.rollback()
            logger.warning("Registration lost a uniqueness race", extra={"email": email})
            raise Conflict()

        logger.info("User registered", extra={"user_id": user.id})
        return user

    async def authenticate_user(self, email: str, password: str) -> User:
        """Unknown email and wrong password produce the same error."""
        user = await self.store.get_user_by_email(email.lower().strip())

        if not user:
            burn_hash_check(password)
            logger.warning("Login failed - user not found", extra={"email": email})
            raise InvalidCredentials()

        if not verify_password(password, user.hashed_password):
            logger.warning("Login failed - invalid password", extra={"user_id": user.id})
            raise InvalidCredentials()

        logger.debug("User authenticated successfully", extra={"user_id": user.id})
        return user

    async def get_user(self, user_id: int) -> User:
        user = await self.store.get_user(user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    async def record_session(self, user: User, ip_address: Optional[str], user_agent: Optional[str]) -> None:
        await self.store.add_session(user.id, ip_address, user_agent)
        await self.store.commit()

    async def change_password(self, user_id: int, current_password: str, new_password: str) -> int:
        """
        Replace the password of a signed-in user and revoke every refresh token.

        Returns the number of refresh tokens revoked.
        """
        user = await self.get_user(user_id)

        if not verify_password(current_password, user.hashed_password):
            logger.warning("Password change failed - wrong current password", extra={"user_id": user_id})
            raise InvalidCredentials("Incorrect current password")

        if current_password == new_password:
            raise ValidationError("New password must differ from the current password")
        try:
            check_password_policy(new_password)
        except ValueError as e:
            raise ValidationError(str(e))

        await self.store.set_password(user.id, get_password_hash(new_password))
        revoked = await self.tokens.stage_revoke_all(user.id)
        await self.store.commit()

        logger.info("Password changed", extra={"user_id": user.id, "revoked_tokens": revoked})
        return revoked
