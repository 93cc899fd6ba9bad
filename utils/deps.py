from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_db
from core.errors import InvalidAccessToken
from services.attempt_limiter import AttemptLimiter
from services.auth_service import AuthService
from services.credential_store import CredentialStore
from services.email_service import EmailService
from services.security_codes import SecurityCodeManager
from services.token_service import TokenService

db_dependency = Annotated[AsyncSession, Depends(get_db)]


def get_credential_store(db: db_dependency) -> CredentialStore:
    return CredentialStore(db)


store_dependency = Annotated[CredentialStore, Depends(get_credential_store)]


def get_token_service(store: store_dependency) -> TokenService:
    return TokenService(store)


token_service_dependency = Annotated[TokenService, Depends(get_token_service)]


def get_auth_service(store: store_dependency, tokens: token_service_dependency) -> AuthService:
    return AuthService(store, tokens)


auth_service_dependency = Annotated[AuthService, Depends(get_auth_service)]


def get_security_codes(store: store_dependency, tokens: token_service_dependency) -> SecurityCodeManager:
    return SecurityCodeManager(store, tokens, AttemptLimiter(store))


security_codes_dependency = Annotated[SecurityCodeManager, Depends(get_security_codes)]


def get_email_service(request: Request) -> EmailService:
    return request.app.state.email_service


email_dependency = Annotated[EmailService, Depends(get_email_service)]

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> dict:
    """Claims of a valid access token: {"user_id", "email", "username"}."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise InvalidAccessToken("Access token required")
    return TokenService.verify_access(credentials.credentials)


user_dependency = Annotated[dict, Depends(get_current_user)]


def client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None
