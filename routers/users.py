from fastapi import APIRouter, Request, Response, status

from middleware.rate_limiter import limiter
from routers.auth import clear_refresh_cookie
from schemas.auth_schemas import ChangePasswordRequest, RevokedResponse
from utils.deps import auth_service_dependency, token_service_dependency, user_dependency
from utils.logger import get_logger

logger = get_logger(__name__)


router = APIRouter(
    prefix="/users",
    tags=["users"]
)


@router.put("/me/password", response_model=RevokedResponse, status_code=status.HTTP_200_OK)
@limiter.limit("2/minute")
async def change_password(request: Request, response: Response, body: ChangePasswordRequest,
                          user: user_dependency, auth: auth_service_dependency):
    """
    Change password of the signed-in user. Every refresh token is revoked,
    including the one in this browser.
    """
    revoked = await auth.change_password(user["user_id"], body.current_password, body.new_password)
    clear_refresh_cookie(response)

    return {"message": "Password updated successfully. Please login again.", "revoked": revoked}


@router.post("/me/logout-all", response_model=RevokedResponse, status_code=status.HTTP_200_OK)
@limiter.limit("3/minute")
async def logout_all_sessions(request: Request, response: Response, user: user_dependency,
                              tokens: token_service_dependency):
    revoked = await tokens.revoke_all_for_user(user["user_id"])
    clear_refresh_cookie(response)

    logger.info("User logged out of all sessions", extra={"user_id": user["user_id"]})

    return {"message": "Logged out of all sessions", "revoked": revoked}
