"""
Auth API Routes - Registration, login, logout, profile, email verification
and password reset.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from leadhub.api.dependencies import get_current_user, get_mailer, get_session_token
from leadhub.config import settings
from leadhub.db.models import User
from leadhub.db.session import get_write_db
from leadhub.exceptions import (
    AccountTokenError,
    AuthenticationError,
    AuthorizationError,
    DuplicateEmailError,
    EmailDeliveryError,
)
from leadhub.models.api import (
    ChangePasswordRequest,
    EmailRequest,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    SetNewPasswordRequest,
    UpdateProfileRequest,
    UserResponse,
    UserStatus,
    VerifyEmailRequest,
)
from leadhub.services.auth import AuthService, decode_session_token, issue_session_token
from leadhub.services.mailer import Mailer
from leadhub.services.session_revocation import session_revocation_service

logger = get_logger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register(
    request: RegisterRequest,
    db: AsyncSession = Depends(get_write_db),
    mailer: Mailer = Depends(get_mailer),
) -> UserResponse:
    """
    Create a user account with the signup LeadCoin bonus.

    Pending accounts are emailed their verification code; a failed send is
    logged and the user can ask for a new code.
    """
    try:
        user = await AuthService(db).register(request)
    except DuplicateEmailError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User with this email already exists",
        ) from exc

    if user.status == UserStatus.PENDING.value and user.verification_code:
        try:
            await mailer.send_verification_code(user.email, user.name, user.verification_code)
        except EmailDeliveryError as exc:
            logger.warning("verification_email_failed", user_id=user.id, error=exc.message)

    return UserResponse.model_validate(user)


@router.post("/login", response_model=UserResponse)
async def login(
    request: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_write_db),
) -> UserResponse:
    """Check credentials and set the session cookie."""
    try:
        user = await AuthService(db).authenticate(request.email, request.password)
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        ) from exc
    except AuthorizationError as exc:
        detail = (
            "Please verify your email before logging in"
            if exc.required_role == "verified account"
            else "Account is not active"
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail) from exc

    session = issue_session_token(user, remember_me=request.remember_me)
    response.set_cookie(
        key=settings.session_cookie_name,
        value=session.token,
        max_age=session.max_age_seconds,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        path="/",
    )
    return UserResponse.model_validate(user)


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(get_current_user)) -> UserResponse:
    """The authenticated user."""
    return UserResponse.model_validate(user)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    token: str | None = Depends(get_session_token),
    db: AsyncSession = Depends(get_write_db),
) -> MessageResponse:
    """
    Revoke the session token and clear the cookie.

    Idempotent: logging out without a valid session still succeeds.
    """
    if token:
        try:
            claims = decode_session_token(token)
        except AuthenticationError:
            logger.info("logout_with_invalid_session")
        else:
            await session_revocation_service.revoke(token, claims.user_id, claims.expires_at, db)

    response.delete_cookie(key=settings.session_cookie_name, path="/")
    return MessageResponse(message="Logged out successfully")


@router.patch("/profile", response_model=UserResponse)
async def update_profile(
    request: UpdateProfileRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_write_db),
) -> UserResponse:
    """Update name and profile image."""
    updated = await AuthService(db).update_profile(user.id, request)
    return UserResponse.model_validate(updated)


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    request: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_write_db),
) -> MessageResponse:
    """Replace the password after checking the current one."""
    try:
        await AuthService(db).change_password(user.id, request)
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect",
        ) from exc

    return MessageResponse(message="Password changed successfully")


# ============================================================================
# Email verification and password reset
# ============================================================================


@router.post("/verify", response_model=UserResponse)
async def verify_email(
    request: VerifyEmailRequest,
    db: AsyncSession = Depends(get_write_db),
) -> UserResponse:
    """Activate a pending account with its emailed code."""
    try:
        user = await AuthService(db).verify_email(request.email, request.code)
    except AccountTokenError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message) from exc
    return UserResponse.model_validate(user)


@router.post("/resend-code", response_model=MessageResponse)
async def resend_code(
    request: EmailRequest,
    db: AsyncSession = Depends(get_write_db),
    mailer: Mailer = Depends(get_mailer),
) -> MessageResponse:
    """Email a fresh verification code to an unverified account."""
    user = await AuthService(db).resend_verification_code(request.email)
    if user is not None and user.verification_code:
        try:
            await mailer.send_verification_code(user.email, user.name, user.verification_code)
        except EmailDeliveryError as exc:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Failed to send verification email",
            ) from exc

    return MessageResponse(
        message="If the account is awaiting verification, a new code has been sent"
    )


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    request: EmailRequest,
    db: AsyncSession = Depends(get_write_db),
    mailer: Mailer = Depends(get_mailer),
) -> MessageResponse:
    """
    Email a password reset link.

    The response is the same whether or not the email is registered.
    """
    issued = await AuthService(db).request_password_reset(request.email)
    if issued is not None:
        user, token = issued
        try:
            await mailer.send_password_reset(user.email, user.name, token)
        except EmailDeliveryError as exc:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Failed to send reset email",
            ) from exc

    return MessageResponse(
        message="If your email is registered, you will receive reset instructions"
    )


@router.post("/set-new-password", response_model=MessageResponse)
async def set_new_password(
    request: SetNewPasswordRequest,
    db: AsyncSession = Depends(get_write_db),
) -> MessageResponse:
    """Replace the password using the emailed reset token."""
    try:
        await AuthService(db).reset_password(request.email, request.reset_token, request.password)
    except AccountTokenError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message) from exc
    return MessageResponse(message="Password successfully reset")
