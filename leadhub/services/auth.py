"""
Authentication Service - Registration, login and signed session tokens.

Passwords are hashed with Argon2id; sessions are HS256 JWTs carried in an
httpOnly cookie (or a Bearer header for API clients).
"""

import hashlib
import hmac
import secrets
from datetime import UTC, datetime, timedelta

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from leadhub.config import settings
from leadhub.db.models import CoinTransaction, User
from leadhub.exceptions import (
    AccountTokenError,
    AuthenticationError,
    AuthorizationError,
    DuplicateEmailError,
    InvalidStateError,
    ResourceNotFoundError,
    UserNotFoundError,
)
from leadhub.models.api import (
    AdminUpdateUserRequest,
    ChangePasswordRequest,
    CoinTransactionType,
    CreateSubadminRequest,
    RegisterRequest,
    StaffPermission,
    UpdateProfileRequest,
    UserRole,
    UserStatus,
)
from leadhub.models.domain import IssuedSession, SessionClaims
from leadhub.observability.metrics import metrics

logger = get_logger(__name__)

_password_hasher = PasswordHasher()


def hash_password(password: str) -> str:
    """Hash a password with Argon2id."""
    return _password_hasher.hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    """Check a password against its stored hash."""
    try:
        return _password_hasher.verify(password_hash, password)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


def generate_verification_code() -> str:
    """Four-digit email verification code."""
    return f"{secrets.randbelow(10_000):04d}"


def hash_reset_token(token: str) -> str:
    """Reset tokens are stored as SHA-256 digests, never in the clear."""
    return hashlib.sha256(token.encode()).hexdigest()


def has_permission(user: User, permission: StaffPermission) -> bool:
    """Admins hold every permission; subadmins only the ones granted to them."""
    if user.role == UserRole.ADMIN.value:
        return True
    if user.role != UserRole.SUBADMIN.value:
        return False
    return permission.value in (user.permissions or [])


def issue_session_token(user: User, remember_me: bool = False) -> IssuedSession:
    """Sign a session token for the user."""
    now = datetime.now(UTC)
    lifetime = (
        timedelta(days=settings.session_remember_me_days)
        if remember_me
        else timedelta(hours=settings.session_ttl_hours)
    )
    expires_at = now + lifetime
    payload = {
        "sub": str(user.id),
        "role": user.role,
        "iat": now,
        "exp": expires_at,
    }
    token = jwt.encode(payload, settings.session_secret, algorithm="HS256")
    return IssuedSession(
        token=token,
        expires_at=expires_at,
        max_age_seconds=int(lifetime.total_seconds()),
    )


def decode_session_token(token: str) -> SessionClaims:
    """
    Verify a session token.

    Raises:
        AuthenticationError: Expired, tampered or malformed token
    """
    try:
        payload = jwt.decode(token, settings.session_secret, algorithms=["HS256"])
    except jwt.ExpiredSignatureError as exc:
        logger.info("session_token_expired")
        raise AuthenticationError("Session expired") from exc
    except jwt.InvalidTokenError as exc:
        logger.warning("session_token_invalid", error=str(exc))
        raise AuthenticationError("Invalid session") from exc

    try:
        return SessionClaims(
            user_id=int(payload["sub"]),
            role=UserRole(payload["role"]),
            issued_at=datetime.fromtimestamp(payload["iat"], UTC),
            expires_at=datetime.fromtimestamp(payload["exp"], UTC),
        )
    except (KeyError, ValueError) as exc:
        raise AuthenticationError("Invalid session claims") from exc


class AuthService:
    """User account operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize auth service with database session."""
        self.session = session

    async def register(self, request: RegisterRequest) -> User:
        """
        Create a user with the signup LeadCoin bonus.

        When email verification is required the account starts out pending
        with a fresh verification code; otherwise it is active immediately.

        Raises:
            DuplicateEmailError: Email already registered
        """
        if await self.get_by_email(request.email) is not None:
            raise DuplicateEmailError(request.email)

        bonus = settings.signup_bonus_lead_coins
        needs_verification = settings.email_verification_required
        user = User(
            email=request.email,
            name=request.name,
            password_hash=hash_password(request.password),
            role=UserRole.USER.value,
            status=(UserStatus.PENDING if needs_verification else UserStatus.ACTIVE).value,
            permissions=[],
            lead_coins=bonus,
            verified=not needs_verification,
            verification_code=generate_verification_code() if needs_verification else None,
        )
        self.session.add(user)

        try:
            await self.session.flush()
        except IntegrityError as exc:
            # Concurrent registration with the same email
            await self.session.rollback()
            raise DuplicateEmailError(request.email) from exc

        if bonus > 0:
            self.session.add(
                CoinTransaction(
                    user_id=user.id,
                    amount=bonus,
                    balance_after=bonus,
                    type=CoinTransactionType.BONUS,
                    description="Signup bonus",
                )
            )
            metrics.record_coins_credited(CoinTransactionType.BONUS.value, bonus)

        await self.session.commit()
        logger.info(
            "user_registered",
            user_id=user.id,
            signup_bonus=bonus,
            verification_required=needs_verification,
        )
        return user

    async def authenticate(self, email: str, password: str) -> User:
        """
        Check credentials and record the login.

        Raises:
            AuthenticationError: Unknown email or wrong password
            AuthorizationError: Account is pending verification or inactive
        """
        user = await self.get_by_email(email)
        if user is None or not verify_password(user.password_hash, password):
            logger.info("login_failed", email_domain=email.rsplit("@", 1)[-1])
            raise AuthenticationError("Invalid email or password")

        if user.status == UserStatus.PENDING.value and not user.verified:
            logger.info("login_unverified_account", user_id=user.id)
            raise AuthorizationError("verified account")

        if user.status != UserStatus.ACTIVE.value:
            logger.info("login_inactive_account", user_id=user.id, status=user.status)
            raise AuthorizationError("active account")

        if _password_hasher.check_needs_rehash(user.password_hash):
            user.password_hash = hash_password(password)

        user.last_login_at = datetime.now(UTC)
        await self.session.commit()

        logger.info("login_succeeded", user_id=user.id)
        return user

    async def get_user(self, user_id: int) -> User:
        """Raises UserNotFoundError when missing."""
        user = await self.session.get(User, user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    async def get_by_email(self, email: str) -> User | None:
        stmt = select(User).where(User.email == email.lower())
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_users(
        self, role: UserRole | None = None, search: str | None = None
    ) -> list[User]:
        """All users, newest first, optionally filtered by role and a name/email search."""
        stmt = select(User).order_by(User.created_at.desc())
        if role is not None:
            stmt = stmt.where(User.role == role.value)
        if search:
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(or_(User.name.ilike(pattern), User.email.ilike(pattern)))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def update_profile(self, user_id: int, request: UpdateProfileRequest) -> User:
        user = await self.get_user(user_id)
        user.name = request.name
        if request.profile_image is not None:
            user.profile_image = request.profile_image
        await self.session.commit()
        logger.info("profile_updated", user_id=user_id)
        return user

    async def change_password(self, user_id: int, request: ChangePasswordRequest) -> None:
        """
        Replace the password after checking the current one.

        Raises:
            AuthenticationError: Current password is wrong
        """
        user = await self.get_user(user_id)
        if not verify_password(user.password_hash, request.current_password):
            raise AuthenticationError("Current password is incorrect")

        user.password_hash = hash_password(request.new_password)
        await self.session.commit()
        logger.info("password_changed", user_id=user_id)

    # ========================================================================
    # Email verification and password reset
    # ========================================================================

    async def verify_email(self, email: str, code: str) -> User:
        """
        Activate a pending account with its emailed code.

        Raises:
            AccountTokenError: Unknown email or wrong code
        """
        user = await self.get_by_email(email)
        stored = (user.verification_code or "").strip() if user is not None else ""
        if user is None or not stored or not hmac.compare_digest(stored, code.strip()):
            logger.info("email_verification_rejected", email_domain=email.rsplit("@", 1)[-1])
            raise AccountTokenError("Invalid verification code")

        user.verified = True
        user.verification_code = None
        if user.status == UserStatus.PENDING.value:
            user.status = UserStatus.ACTIVE.value
        await self.session.commit()

        logger.info("email_verified", user_id=user.id)
        return user

    async def resend_verification_code(self, email: str) -> User | None:
        """Issue a new code for an unverified account; None when there is nothing to send."""
        user = await self.get_by_email(email)
        if user is None or user.verified:
            return None

        user.verification_code = generate_verification_code()
        await self.session.commit()
        logger.info("verification_code_reissued", user_id=user.id)
        return user

    async def request_password_reset(self, email: str) -> tuple[User, str] | None:
        """
        Store a fresh reset token for the account.

        Returns the user and the raw token to email, or None for unknown
        emails so callers can answer without revealing who is registered.
        """
        user = await self.get_by_email(email)
        if user is None:
            logger.info("password_reset_unknown_email", email_domain=email.rsplit("@", 1)[-1])
            return None

        token = secrets.token_urlsafe(32)
        user.password_reset_token_hash = hash_reset_token(token)
        user.password_reset_expires_at = datetime.now(UTC) + timedelta(
            minutes=settings.password_reset_ttl_minutes
        )
        await self.session.commit()

        logger.info("password_reset_requested", user_id=user.id)
        return user, token

    async def reset_password(self, email: str, token: str, new_password: str) -> User:
        """
        Replace the password using an emailed reset token; tokens are single use.

        Raises:
            AccountTokenError: Unknown email, wrong token or expired token
        """
        user = await self.get_by_email(email)
        if (
            user is None
            or not user.password_reset_token_hash
            or not hmac.compare_digest(user.password_reset_token_hash, hash_reset_token(token))
        ):
            raise AccountTokenError("Invalid or expired reset token")

        expires_at = user.password_reset_expires_at
        if expires_at is None or expires_at <= datetime.now(UTC):
            user.password_reset_token_hash = None
            user.password_reset_expires_at = None
            await self.session.commit()
            logger.info("password_reset_token_expired", user_id=user.id)
            raise AccountTokenError("Invalid or expired reset token")

        user.password_hash = hash_password(new_password)
        user.password_reset_token_hash = None
        user.password_reset_expires_at = None
        await self.session.commit()

        logger.info("password_reset_completed", user_id=user.id)
        return user

    # ========================================================================
    # User administration
    # ========================================================================

    async def set_status(self, actor: User, user_id: int, status: UserStatus) -> User:
        """
        Activate or deactivate an account (admin).

        Raises:
            UserNotFoundError: No such user
            InvalidStateError: Admin tried to change their own status
        """
        if actor.id == user_id:
            raise InvalidStateError("You cannot change your own account status")

        user = await self.get_user(user_id)
        user.status = status.value
        await self.session.commit()

        logger.info("user_status_changed", user_id=user_id, status=status.value, actor_id=actor.id)
        return user

    async def update_user(self, actor: User, user_id: int, request: AdminUpdateUserRequest) -> User:
        """
        Edit a user's details.

        Admins may edit anyone and change status; everyone else may only
        edit their own account and never their status.

        Raises:
            AuthorizationError: Non-admin editing someone else
            UserNotFoundError: No such user
            DuplicateEmailError: New email belongs to another account
        """
        is_admin = actor.role == UserRole.ADMIN.value
        if not is_admin and actor.id != user_id:
            raise AuthorizationError(UserRole.ADMIN.value)

        user = await self.get_user(user_id)

        if request.email is not None and request.email != user.email:
            existing = await self.get_by_email(request.email)
            if existing is not None and existing.id != user.id:
                raise DuplicateEmailError(request.email)
            user.email = request.email
        if request.name is not None:
            user.name = request.name
        if request.profile_image is not None:
            user.profile_image = request.profile_image
        if request.status is not None and is_admin:
            user.status = request.status.value

        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            raise DuplicateEmailError(request.email or user.email) from exc

        logger.info("user_updated", user_id=user_id, actor_id=actor.id)
        return user

    async def create_subadmin(self, request: CreateSubadminRequest) -> User:
        """
        Create an active, verified staff account with the given permissions.

        Raises:
            DuplicateEmailError: Email already registered
        """
        if await self.get_by_email(request.email) is not None:
            raise DuplicateEmailError(request.email)

        user = User(
            email=request.email,
            name=request.name,
            password_hash=hash_password(request.password),
            role=UserRole.SUBADMIN.value,
            status=UserStatus.ACTIVE.value,
            permissions=sorted({permission.value for permission in request.permissions}),
            lead_coins=0,
            verified=True,
        )
        self.session.add(user)

        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            raise DuplicateEmailError(request.email) from exc

        logger.info("subadmin_created", user_id=user.id, permissions=user.permissions)
        return user

    async def get_subadmin(self, user_id: int) -> User:
        """Raises ResourceNotFoundError unless the user is a subadmin."""
        user = await self.session.get(User, user_id)
        if user is None or user.role != UserRole.SUBADMIN.value:
            raise ResourceNotFoundError("Subadmin", user_id)
        return user

    async def update_permissions(self, user_id: int, permissions: list[StaffPermission]) -> User:
        """Replace a subadmin's permission set."""
        user = await self.get_subadmin(user_id)
        user.permissions = sorted({permission.value for permission in permissions})
        await self.session.commit()
        logger.info("subadmin_permissions_updated", user_id=user_id, permissions=user.permissions)
        return user

    async def remove_subadmin(self, user_id: int) -> User:
        """
        Revoke a subadmin's access.

        The account is deactivated and stripped of permissions rather than
        deleted, since leads and ticket replies keep referencing it.
        """
        user = await self.get_subadmin(user_id)
        user.status = UserStatus.INACTIVE.value
        user.permissions = []
        await self.session.commit()
        logger.info("subadmin_removed", user_id=user_id)
        return user
