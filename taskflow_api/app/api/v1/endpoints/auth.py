"""
Authentication endpoints: registration, login, password change and reset.

``POST /auth/forgot-password`` is throttled per lowercase email by the
limiter stored on ``app.state.forgot_password_limiter`` (one request per
24 hours by default).  When sending the reset mail fails, the attempt
is refunded so the user can try again right away.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from taskflow_api.app.core.errors import ValidationError, to_http_exception
from taskflow_api.app.core.rate_limiter import format_remaining_time
from taskflow_api.app.core.security import create_access_token, get_current_user
from taskflow_api.app.schemas.user import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    ResetPasswordRequest,
    TokenResponse,
    UserCreate,
    UserRead,
)
from taskflow_api.app.services.password_reset_service import PasswordResetService
from taskflow_api.app.services.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter()

RESET_REQUESTED_MESSAGE = "If an account exists for this email, a password reset link has been sent."


@router.post("/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def register_user(user: UserCreate) -> UserRead:
    """Register a new account.  The very first account becomes super admin."""
    try:
        return await UserService.create_user(user)
    except ValueError as exc:
        raise to_http_exception(exc)


@router.post("/login", response_model=TokenResponse)
async def login_user(credentials: LoginRequest) -> TokenResponse:
    db_user = await UserService.authenticate(credentials.email, credentials.password)
    if not db_user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return TokenResponse(access_token=create_access_token({"sub": db_user.email}))


@router.get("/me", response_model=UserRead)
async def read_me(current_user: dict = Depends(get_current_user)) -> UserRead:
    return await UserService.get_user(current_user["user_id"])


@router.post("/forgot-password")
async def forgot_password(payload: ForgotPasswordRequest, request: Request) -> dict:
    """Request a password reset link.

    Returns 429 when the email already requested a reset within the
    current window; the message says how long to wait.  The response is
    the same whether or not the email is registered.
    """
    limiter = request.app.state.forgot_password_limiter
    identifier = payload.email
    if not limiter.is_allowed(identifier):
        remaining = limiter.get_remaining_time(identifier)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=(
                "You can only request a password reset once per day. "
                f"Please try again in {format_remaining_time(remaining)}."
            ),
            headers={"Retry-After": str(max(1, remaining // 1000))},
        )
    try:
        await PasswordResetService.request_reset(identifier)
    except Exception:
        # Refund the attempt so a failed send does not use up the quota.
        limiter.reset(identifier)
        logger.exception("Password reset request failed for %s", identifier)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Failed to send password reset email. Please try again.",
        )
    return {"success": True, "message": RESET_REQUESTED_MESSAGE}


@router.post("/reset-password")
async def reset_password(payload: ResetPasswordRequest) -> dict:
    try:
        await PasswordResetService.reset_password(payload.token, payload.password)
    except ValidationError as exc:
        raise to_http_exception(exc)
    return {"success": True, "message": "Password has been reset"}


@router.post("/change-password")
async def change_password(payload: ChangePasswordRequest, current_user: dict = Depends(get_current_user)) -> dict:
    """Change the caller's password; 400 when the current one is wrong."""
    try:
        await UserService.change_password(
            current_user["user_id"], payload.current_password, payload.new_password
        )
    except ValueError as exc:
        raise to_http_exception(exc)
    return {"success": True}
