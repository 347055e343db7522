"""
API Dependencies - Session authentication, role and permission checks.

The session token is read from the Authorization header first, then from
the session cookie.
"""

from collections.abc import Awaitable, Callable
from functools import lru_cache

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from leadhub.config import get_settings
from leadhub.db.models import User
from leadhub.db.session import get_write_db
from leadhub.exceptions import AuthenticationError
from leadhub.models.api import StaffPermission, UserRole, UserStatus
from leadhub.models.domain import SessionClaims
from leadhub.services.auth import decode_session_token, has_permission
from leadhub.services.mailer import Mailer
from leadhub.services.payment_provider import PaymentProvider
from leadhub.services.session_revocation import session_revocation_service
from leadhub.services.stripe_provider import StripeProvider

logger = get_logger(__name__)


def get_session_token(
    request: Request,
    authorization: str | None = Header(None),
) -> str | None:
    """Extract the raw session token, if any."""
    if authorization and authorization.startswith("Bearer "):
        return authorization.removeprefix("Bearer ").strip() or None
    return request.cookies.get(get_settings().session_cookie_name)


async def get_session_claims(
    token: str | None = Depends(get_session_token),
    db: AsyncSession = Depends(get_write_db),
) -> SessionClaims:
    """
    Validate the session token.

    Raises:
        HTTPException(401): Missing, invalid, expired or revoked token
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        claims = decode_session_token(token)
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc

    if await session_revocation_service.is_revoked(token, db):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session has been revoked",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return claims


async def get_current_user(
    claims: SessionClaims = Depends(get_session_claims),
    db: AsyncSession = Depends(get_write_db),
) -> User:
    """
    Load the authenticated user.

    Raises:
        HTTPException(401): User no longer exists
        HTTPException(403): Account is not active
    """
    user = await db.get(User, claims.user_id)
    if user is None:
        logger.warning("session_user_not_found", user_id=claims.user_id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    if user.status != UserStatus.ACTIVE.value:
        logger.warning("session_user_inactive", user_id=user.id, status=user.status)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is not active",
        )

    return user


def require_role(*roles: UserRole) -> Callable[..., Awaitable[User]]:
    """
    Dependency factory restricting a route to the given roles.

    Usage:
        @router.post("/api/leads")
        async def create_lead(user: User = Depends(require_role(UserRole.ADMIN))):
            ...
    """
    allowed = {role.value for role in roles}

    async def _check_role(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            logger.warning(
                "insufficient_role",
                user_id=user.id,
                role=user.role,
                required=sorted(allowed),
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(sorted(allowed))}",
            )
        return user

    return _check_role


def require_permission(permission: StaffPermission) -> Callable[..., Awaitable[User]]:
    """
    Dependency factory restricting a route to staff holding a permission.

    Admins always pass; subadmins need the permission in their grant list.
    """

    async def _check_permission(user: User = Depends(get_current_user)) -> User:
        if not has_permission(user, permission):
            logger.warning(
                "missing_permission",
                user_id=user.id,
                role=user.role,
                required=permission.value,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires permission: {permission.value}",
            )
        return user

    return _check_permission


@lru_cache
def _stripe_provider(api_key: str, webhook_secret: str, return_url: str) -> StripeProvider:
    return StripeProvider(api_key=api_key, webhook_secret=webhook_secret, return_url=return_url)


def get_mailer() -> Mailer:
    """Account mailer for the configured EMAIL_MODE."""
    return Mailer(get_settings())


def get_payment_provider() -> PaymentProvider | None:
    """The configured payment provider, or None when Stripe is not set up."""
    settings = get_settings()
    if not settings.stripe_configured:
        return None
    return _stripe_provider(
        settings.stripe_api_key,
        settings.stripe_webhook_secret,
        settings.checkout_return_url,
    )
