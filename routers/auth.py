from fastapi import APIRouter, BackgroundTasks, Request, Response
from starlette import status

from core.config import settings
from core.errors import InvalidRefreshToken, RateLimited
from middleware.rate_limiter import limiter
from schemas.auth_schemas import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    ResendVerificationResponse,
    ResetPasswordRequest,
    UserOut,
    VerificationStatus,
    VerifiedUser,
    VerifyEmailRequest,
    VerifyEmailResponse,
)
from services.attempt_limiter import VERIFICATION_SEND_POLICY
from services.token_service import IssuedRefreshToken
from utils.deps import (
    auth_service_dependency,
    client_ip,
    email_dependency,
    security_codes_dependency,
    token_service_dependency,
    user_dependency,
)
from utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["auth"]
)

FORGOT_PASSWORD_MESSAGE = "If that email exists, a reset code has been sent."
ACCESS_TOKEN_EXPIRE_SECONDS = settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60


def set_refresh_cookie(response: Response, refresh: IssuedRefreshToken) -> None:
    """http-only, same-site strict; lifetime mirrors the token's own TTL."""
    response.set_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        value=refresh.token,
        max_age=refresh.max_age,
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
        path="/",
    )


def clear_refresh_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
        path="/",
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("3/minute")
async def register(request: Request, response: Response, body: RegisterRequest,
                   auth: auth_service_dependency, tokens: token_service_dependency,
                   codes: security_codes_dependency, email: email_dependency, bg: BackgroundTasks):
    user = await auth.create_user(body)

    verification_token = await codes.issue_verification_token(user.id, client_ip(request))
    bg.add_task(email.send_verification_email, to_email=user.email, username=user.username,
                token=verification_token)

    refresh = await tokens.issue_refresh(user, persistent=False)
    set_refresh_cookie(response, refresh)

    logger.info("User registered successfully", extra={"user_id": user.id})

    return AuthResponse(access_token=tokens.issue_access(user), expires_in=ACCESS_TOKEN_EXPIRE_SECONDS,
                        user=UserOut.model_validate(user))


@router.post("/login", response_model=AuthResponse)
@limiter.limit("5/minute")
async def login(request: Request, response: Response, body: LoginRequest,
                auth: auth_service_dependency, tokens: token_service_dependency):
    user = await auth.authenticate_user(body.email, body.password)

    refresh = await tokens.issue_refresh(user, persistent=body.remember_me)
    await auth.record_session(user, client_ip(request), request.headers.get("user-agent"))
    set_refresh_cookie(response, refresh)

    logger.info(
        "User logged in successfully",
        extra={"user_id": user.id, "remember_me": body.remember_me}
    )

    return AuthResponse(access_token=tokens.issue_access(user), expires_in=ACCESS_TOKEN_EXPIRE_SECONDS,
                        user=UserOut.model_validate(user))


@router.post("/refresh", response_model=AuthResponse)
@limiter.limit("30/minute")
async def refresh_token(request: Request, tokens: token_service_dependency):
    """
    Get a new access token using the refresh cookie.
    """
    cookie = request.cookies.get(settings.REFRESH_COOKIE_NAME)
    if not cookie:
        raise InvalidRefreshToken("Refresh token required")

    access_token, user = await tokens.refresh_access(cookie)

    logger.info("Access token refreshed", extra={"user_id": user.id})

    return AuthResponse(access_token=access_token, expires_in=ACCESS_TOKEN_EXPIRE_SECONDS,
                        user=UserOut.model_validate(user))


@router.post("/logout", response_model=MessageResponse)
@limiter.limit("10/minute")
async def logout(request: Request, response: Response, tokens: token_service_dependency):
    """
    Revoke the refresh cookie (if any) and clear it. Always succeeds.
    """
    cookie = request.cookies.get(settings.REFRESH_COOKIE_NAME)
    if cookie:
        await tokens.revoke(cookie)

    clear_refresh_cookie(response)

    logger.info("User logged out")

    return {"message": "Logout successful"}


@router.get("/me", response_model=UserOut)
@limiter.limit("30/minute")
async def get_current_identity(request: Request, user: user_dependency, auth: auth_service_dependency):
    return UserOut.model_validate(await auth.get_user(user["user_id"]))


@router.post("/forgot-password", response_model=MessageResponse)
@limiter.limit("3/minute")
async def forgot_password(request: Request, body: ForgotPasswordRequest,
                          codes: security_codes_dependency, email: email_dependency, bg: BackgroundTasks):
    """
    Request a password reset code by email.

    The answer is the same whether the email is unknown, registered or over
    its reset limit; the code itself only ever travels by email.
    """
    try:
        reset = await codes.request_password_reset(body.email)
    except RateLimited:
        # over the limit: no code, same answer as an unknown email
        reset = None

    if reset is not None:
        bg.add_task(email.send_password_reset_email, to_email=reset.user.email,
                    username=reset.user.username, code=reset.code)

    return {"message": FORGOT_PASSWORD_MESSAGE}


@router.post("/reset-password", response_model=MessageResponse)
@limiter.limit("5/minute")
async def reset_password(request: Request, body: ResetPasswordRequest, codes: security_codes_dependency):
    await codes.redeem_reset_code(body.email, body.code, body.new_password)

    return {"message": "Password updated successfully. Please login again."}


@router.post("/verify-email", response_model=VerifyEmailResponse)
@limiter.limit("10/minute")
async def verify_email(request: Request, body: VerifyEmailRequest, codes: security_codes_dependency):
    identity = await codes.redeem_verification_token(body.token, client_ip(request))

    return VerifyEmailResponse(
        message="Email verified successfully",
        user=VerifiedUser(id=identity.user_id, email=identity.email, username=identity.username),
    )


@router.post("/resend-verification", response_model=ResendVerificationResponse)
@limiter.limit("5/minute")
async def resend_verification(request: Request, user: user_dependency, auth: auth_service_dependency,
                              codes: security_codes_dependency, email: email_dependency, bg: BackgroundTasks):
    model = await auth.get_user(user["user_id"])

    token = await codes.resend_verification(model, client_ip(request))
    bg.add_task(email.send_verification_email, to_email=model.email, username=model.username, token=token)

    remaining = await codes.limiter.remaining(model.id, VERIFICATION_SEND_POLICY)
    return ResendVerificationResponse(message="Verification email sent. Check your inbox.", remaining=remaining)


@router.get("/verification-status", response_model=VerificationStatus)
@limiter.limit("30/minute")
async def verification_status(request: Request, user: user_dependency, auth: auth_service_dependency):
    model = await auth.get_user(user["user_id"])

    return VerificationStatus(email_verified=model.email_verified, verified_at=model.verified_at)
