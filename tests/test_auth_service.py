"""
Tests for AuthService and session tokens.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import jwt
import pytest
from sqlalchemy.exc import IntegrityError

from conftest import create_mock_user, make_result
from leadhub.config import settings
from leadhub.db.models import CoinTransaction
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
from leadhub.services.auth import (
    AuthService,
    decode_session_token,
    has_permission,
    hash_password,
    hash_reset_token,
    issue_session_token,
    verify_password,
)


def register_request(**overrides) -> RegisterRequest:
    values = {
        "email": "New.User@Example.com",
        "name": "New User",
        "password": "secret123",
        "confirmPassword": "secret123",
    }
    values.update(overrides)
    return RegisterRequest.model_validate(values)


class TestPasswords:
    """Argon2 password hashing."""

    def test_hash_and_verify(self) -> None:
        password_hash = hash_password("secret123")

        assert password_hash.startswith("$argon2id$")
        assert verify_password(password_hash, "secret123") is True
        assert verify_password(password_hash, "wrong-password") is False

    def test_garbage_hash_does_not_verify(self) -> None:
        assert verify_password("not-a-hash", "secret123") is False


class TestSessionTokens:
    """Signed session token round trip and rejection."""

    def test_issue_and_decode(self) -> None:
        user = create_mock_user(user_id=7, role=UserRole.SUBADMIN)

        issued = issue_session_token(user)
        claims = decode_session_token(issued.token)

        assert claims.user_id == 7
        assert claims.role == UserRole.SUBADMIN
        assert issued.max_age_seconds == settings.session_ttl_hours * 3600

    def test_remember_me_lasts_longer(self) -> None:
        user = create_mock_user()

        short = issue_session_token(user)
        long = issue_session_token(user, remember_me=True)

        assert long.max_age_seconds == settings.session_remember_me_days * 86400
        assert long.expires_at > short.expires_at

    def test_expired_token_rejected(self) -> None:
        past = datetime.now(UTC) - timedelta(hours=1)
        token = jwt.encode(
            {"sub": "1", "role": "user", "iat": past - timedelta(hours=1), "exp": past},
            settings.session_secret,
            algorithm="HS256",
        )

        with pytest.raises(AuthenticationError, match="Session expired"):
            decode_session_token(token)

    def test_tampered_token_rejected(self) -> None:
        token = jwt.encode(
            {"sub": "1", "role": "admin", "exp": datetime.now(UTC) + timedelta(hours=1)},
            "some-other-secret-that-is-long-enough",
            algorithm="HS256",
        )

        with pytest.raises(AuthenticationError, match="Invalid session"):
            decode_session_token(token)

    def test_unknown_role_rejected(self) -> None:
        now = datetime.now(UTC)
        token = jwt.encode(
            {"sub": "1", "role": "superuser", "iat": now, "exp": now + timedelta(hours=1)},
            settings.session_secret,
            algorithm="HS256",
        )

        with pytest.raises(AuthenticationError, match="claims"):
            decode_session_token(token)


class TestRegister:
    """Account registration."""

    async def test_register_grants_signup_bonus(self, db_session: AsyncMock) -> None:
        user = await AuthService(db_session).register(register_request())

        assert user.email == "new.user@example.com"
        assert user.role == UserRole.USER.value
        assert user.status == UserStatus.ACTIVE.value
        assert user.lead_coins == settings.signup_bonus_lead_coins
        assert verify_password(user.password_hash, "secret123")

        added = [c.args[0] for c in db_session.add.call_args_list]
        bonus = [obj for obj in added if isinstance(obj, CoinTransaction)]
        assert len(bonus) == 1
        assert bonus[0].type == CoinTransactionType.BONUS
        assert bonus[0].balance_after == settings.signup_bonus_lead_coins
        db_session.commit.assert_awaited_once()

    async def test_existing_email_rejected(self, db_session: AsyncMock) -> None:
        db_session.execute = AsyncMock(return_value=make_result(scalar=create_mock_user()))

        with pytest.raises(DuplicateEmailError):
            await AuthService(db_session).register(register_request())

        db_session.add.assert_not_called()

    async def test_concurrent_registration_rejected(self, db_session: AsyncMock) -> None:
        db_session.flush = AsyncMock(side_effect=IntegrityError("insert", {}, Exception("dup")))

        with pytest.raises(DuplicateEmailError):
            await AuthService(db_session).register(register_request())

        db_session.rollback.assert_awaited_once()

    async def test_verification_required_starts_pending(self, db_session: AsyncMock) -> None:
        with patch.object(settings, "email_verification_required", True):
            user = await AuthService(db_session).register(register_request())

        assert user.status == UserStatus.PENDING.value
        assert user.verified is False
        assert len(user.verification_code) == 4
        assert user.verification_code.isdigit()

    def test_password_confirmation_must_match(self) -> None:
        with pytest.raises(ValueError, match="Passwords don't match"):
            register_request(confirmPassword="different1")


class TestAuthenticate:
    """Login."""

    async def test_valid_credentials(self, db_session: AsyncMock) -> None:
        user = create_mock_user(password_hash=hash_password("secret123"))
        db_session.execute = AsyncMock(return_value=make_result(scalar=user))

        result = await AuthService(db_session).authenticate("user@example.com", "secret123")

        assert result is user
        assert user.last_login_at is not None
        db_session.commit.assert_awaited_once()

    async def test_wrong_password(self, db_session: AsyncMock) -> None:
        user = create_mock_user(password_hash=hash_password("secret123"))
        db_session.execute = AsyncMock(return_value=make_result(scalar=user))

        with pytest.raises(AuthenticationError, match="Invalid email or password"):
            await AuthService(db_session).authenticate("user@example.com", "nope-nope")

    async def test_unknown_email(self, db_session: AsyncMock) -> None:
        with pytest.raises(AuthenticationError):
            await AuthService(db_session).authenticate("ghost@example.com", "secret123")

    async def test_inactive_account(self, db_session: AsyncMock) -> None:
        user = create_mock_user(
            status=UserStatus.INACTIVE, password_hash=hash_password("secret123")
        )
        db_session.execute = AsyncMock(return_value=make_result(scalar=user))

        with pytest.raises(AuthorizationError):
            await AuthService(db_session).authenticate("user@example.com", "secret123")


    async def test_unverified_account(self, db_session: AsyncMock) -> None:
        user = create_mock_user(
            status=UserStatus.PENDING, verified=False, password_hash=hash_password("secret123")
        )
        db_session.execute = AsyncMock(return_value=make_result(scalar=user))

        with pytest.raises(AuthorizationError) as exc_info:
            await AuthService(db_session).authenticate("user@example.com", "secret123")

        assert exc_info.value.required_role == "verified account"
        db_session.commit.assert_not_awaited()


class TestProfile:
    """Profile and password changes."""

    async def test_update_profile(self, db_session: AsyncMock) -> None:
        user = create_mock_user()
        db_session.get = AsyncMock(return_value=user)

        updated = await AuthService(db_session).update_profile(
            user.id, UpdateProfileRequest(name="Renamed", profile_image="https://img/1.png")
        )

        assert updated.name == "Renamed"
        assert updated.profile_image == "https://img/1.png"

    async def test_missing_user(self, db_session: AsyncMock) -> None:
        with pytest.raises(UserNotFoundError):
            await AuthService(db_session).get_user(404)

    async def test_change_password_requires_current(self, db_session: AsyncMock) -> None:
        user = create_mock_user(password_hash=hash_password("secret123"))
        db_session.get = AsyncMock(return_value=user)
        request = ChangePasswordRequest(
            current_password="wrong-one", new_password="newpass1", confirm_password="newpass1"
        )

        with pytest.raises(AuthenticationError, match="Current password is incorrect"):
            await AuthService(db_session).change_password(user.id, request)

    async def test_change_password(self, db_session: AsyncMock) -> None:
        user = create_mock_user(password_hash=hash_password("secret123"))
        db_session.get = AsyncMock(return_value=user)
        request = ChangePasswordRequest(
            current_password="secret123", new_password="newpass1", confirm_password="newpass1"
        )

        await AuthService(db_session).change_password(user.id, request)

        assert verify_password(user.password_hash, "newpass1")


class TestEmailVerification:
    """Verification codes for pending accounts."""

    async def test_correct_code_activates(self, db_session: AsyncMock) -> None:
        user = create_mock_user(status=UserStatus.PENDING, verified=False)
        user.verification_code = "0427"
        db_session.execute = AsyncMock(return_value=make_result(scalar=user))

        result = await AuthService(db_session).verify_email("user@example.com", " 0427 ")

        assert result.verified is True
        assert result.status == UserStatus.ACTIVE.value
        assert result.verification_code is None
        db_session.commit.assert_awaited_once()

    async def test_deactivated_account_stays_inactive(self, db_session: AsyncMock) -> None:
        user = create_mock_user(status=UserStatus.INACTIVE, verified=False)
        user.verification_code = "0427"
        db_session.execute = AsyncMock(return_value=make_result(scalar=user))

        result = await AuthService(db_session).verify_email("user@example.com", "0427")

        assert result.verified is True
        assert result.status == UserStatus.INACTIVE.value

    @pytest.mark.parametrize("stored", ["0427", None], ids=["wrong-code", "no-code-issued"])
    async def test_wrong_code_rejected(self, db_session: AsyncMock, stored) -> None:
        user = create_mock_user(status=UserStatus.PENDING, verified=False)
        user.verification_code = stored
        db_session.execute = AsyncMock(return_value=make_result(scalar=user))

        with pytest.raises(AccountTokenError, match="Invalid verification code"):
            await AuthService(db_session).verify_email("user@example.com", "9999")

        assert user.status == UserStatus.PENDING.value
        db_session.commit.assert_not_awaited()

    async def test_unknown_email_rejected(self, db_session: AsyncMock) -> None:
        with pytest.raises(AccountTokenError):
            await AuthService(db_session).verify_email("ghost@example.com", "0427")

    async def test_resend_issues_new_code(self, db_session: AsyncMock) -> None:
        user = create_mock_user(status=UserStatus.PENDING, verified=False)
        user.verification_code = "0000"
        db_session.execute = AsyncMock(return_value=make_result(scalar=user))

        with patch("leadhub.services.auth.generate_verification_code", return_value="8512"):
            result = await AuthService(db_session).resend_verification_code("user@example.com")

        assert result is user
        assert user.verification_code == "8512"

    async def test_resend_skips_verified_accounts(self, db_session: AsyncMock) -> None:
        db_session.execute = AsyncMock(return_value=make_result(scalar=create_mock_user()))

        assert await AuthService(db_session).resend_verification_code("user@example.com") is None
        db_session.commit.assert_not_awaited()


class TestPasswordReset:
    """Emailed reset tokens."""

    async def test_request_stores_hashed_token(self, db_session: AsyncMock) -> None:
        user = create_mock_user()
        db_session.execute = AsyncMock(return_value=make_result(scalar=user))

        issued = await AuthService(db_session).request_password_reset("user@example.com")

        assert issued is not None
        returned_user, token = issued
        assert returned_user is user
        assert user.password_reset_token_hash == hash_reset_token(token)
        assert user.password_reset_token_hash != token
        assert user.password_reset_expires_at > datetime.now(UTC)

    async def test_request_for_unknown_email(self, db_session: AsyncMock) -> None:
        assert await AuthService(db_session).request_password_reset("ghost@example.com") is None
        db_session.commit.assert_not_awaited()

    async def test_reset_with_valid_token(self, db_session: AsyncMock) -> None:
        user = create_mock_user(password_hash=hash_password("secret123"))
        user.password_reset_token_hash = hash_reset_token("tok-123")
        user.password_reset_expires_at = datetime.now(UTC) + timedelta(minutes=10)
        db_session.execute = AsyncMock(return_value=make_result(scalar=user))

        await AuthService(db_session).reset_password("user@example.com", "tok-123", "fresh-pass")

        assert verify_password(user.password_hash, "fresh-pass")
        assert user.password_reset_token_hash is None
        assert user.password_reset_expires_at is None

    async def test_wrong_token_rejected(self, db_session: AsyncMock) -> None:
        user = create_mock_user(password_hash=hash_password("secret123"))
        user.password_reset_token_hash = hash_reset_token("tok-123")
        user.password_reset_expires_at = datetime.now(UTC) + timedelta(minutes=10)
        db_session.execute = AsyncMock(return_value=make_result(scalar=user))

        with pytest.raises(AccountTokenError, match="Invalid or expired reset token"):
            await AuthService(db_session).reset_password("user@example.com", "guess", "fresh-pass")

        assert verify_password(user.password_hash, "secret123")

    async def test_expired_token_is_cleared(self, db_session: AsyncMock) -> None:
        user = create_mock_user(password_hash=hash_password("secret123"))
        user.password_reset_token_hash = hash_reset_token("tok-123")
        user.password_reset_expires_at = datetime.now(UTC) - timedelta(minutes=1)
        db_session.execute = AsyncMock(return_value=make_result(scalar=user))

        with pytest.raises(AccountTokenError):
            await AuthService(db_session).reset_password(
                "user@example.com", "tok-123", "fresh-pass"
            )

        assert user.password_reset_token_hash is None
        assert verify_password(user.password_hash, "secret123")

    async def test_no_outstanding_token(self, db_session: AsyncMock) -> None:
        db_session.execute = AsyncMock(return_value=make_result(scalar=create_mock_user()))

        with pytest.raises(AccountTokenError):
            await AuthService(db_session).reset_password("user@example.com", "tok", "fresh-pass")


class TestPermissions:
    """Staff permission checks."""

    def test_admin_holds_everything(self) -> None:
        admin = create_mock_user(role=UserRole.ADMIN)

        assert all(has_permission(admin, permission) for permission in StaffPermission)

    def test_subadmin_holds_granted_only(self) -> None:
        subadmin = create_mock_user(role=UserRole.SUBADMIN, permissions=["support_management"])

        assert has_permission(subadmin, StaffPermission.SUPPORT_MANAGEMENT) is True
        assert has_permission(subadmin, StaffPermission.LEADS_MANAGEMENT) is False

    def test_users_hold_nothing(self) -> None:
        user = create_mock_user(permissions=["support_management"])

        assert has_permission(user, StaffPermission.SUPPORT_MANAGEMENT) is False


class TestUserAdministration:
    """Account status, edits and subadmin management."""

    async def test_set_status(self, db_session: AsyncMock, admin_user) -> None:
        user = create_mock_user(user_id=5)
        db_session.get = AsyncMock(return_value=user)

        result = await AuthService(db_session).set_status(admin_user, 5, UserStatus.INACTIVE)

        assert result.status == UserStatus.INACTIVE.value
        db_session.commit.assert_awaited_once()

    async def test_admin_cannot_change_own_status(self, db_session: AsyncMock, admin_user) -> None:
        with pytest.raises(InvalidStateError):
            await AuthService(db_session).set_status(admin_user, admin_user.id, UserStatus.INACTIVE)

    async def test_user_edits_self_but_not_status(self, db_session: AsyncMock) -> None:
        user = create_mock_user(user_id=5)
        db_session.get = AsyncMock(return_value=user)
        request = AdminUpdateUserRequest(name="New Name", status=UserStatus.INACTIVE)

        result = await AuthService(db_session).update_user(user, 5, request)

        assert result.name == "New Name"
        assert result.status == UserStatus.ACTIVE.value

    async def test_user_cannot_edit_others(self, db_session: AsyncMock) -> None:
        with pytest.raises(AuthorizationError):
            await AuthService(db_session).update_user(
                create_mock_user(user_id=5), 6, AdminUpdateUserRequest(name="Hijack")
            )

    async def test_admin_changes_status_and_email(self, db_session: AsyncMock, admin_user) -> None:
        user = create_mock_user(user_id=5)
        db_session.get = AsyncMock(return_value=user)
        request = AdminUpdateUserRequest(email="Moved@Example.com", status=UserStatus.INACTIVE)

        result = await AuthService(db_session).update_user(admin_user, 5, request)

        assert result.email == "moved@example.com"
        assert result.status == UserStatus.INACTIVE.value

    async def test_email_taken_by_another_account(self, db_session: AsyncMock, admin_user) -> None:
        db_session.get = AsyncMock(return_value=create_mock_user(user_id=5))
        db_session.execute = AsyncMock(
            return_value=make_result(scalar=create_mock_user(user_id=6, email="taken@example.com"))
        )

        with pytest.raises(DuplicateEmailError):
            await AuthService(db_session).update_user(
                admin_user, 5, AdminUpdateUserRequest(email="taken@example.com")
            )

    async def test_create_subadmin(self, db_session: AsyncMock) -> None:
        request = CreateSubadminRequest(
            name="Support Desk",
            email="Desk@Example.com",
            password="secret123",
            permissions=[StaffPermission.SUPPORT_MANAGEMENT, StaffPermission.SUPPORT_MANAGEMENT],
        )

        subadmin = await AuthService(db_session).create_subadmin(request)

        assert subadmin.role == UserRole.SUBADMIN.value
        assert subadmin.status == UserStatus.ACTIVE.value
        assert subadmin.verified is True
        assert subadmin.permissions == ["support_management"]
        assert subadmin.lead_coins == 0
        db_session.add.assert_called_once_with(subadmin)

    async def test_create_subadmin_duplicate_email(self, db_session: AsyncMock) -> None:
        db_session.execute = AsyncMock(return_value=make_result(scalar=create_mock_user()))
        request = CreateSubadminRequest(name="Dup", email="user@example.com", password="secret123")

        with pytest.raises(DuplicateEmailError):
            await AuthService(db_session).create_subadmin(request)

    async def test_update_permissions(self, db_session: AsyncMock) -> None:
        subadmin = create_mock_user(
            user_id=5, role=UserRole.SUBADMIN, permissions=["leads_management"]
        )
        db_session.get = AsyncMock(return_value=subadmin)

        await AuthService(db_session).update_permissions(
            5, [StaffPermission.USER_MANAGEMENT, StaffPermission.LEADS_MANAGEMENT]
        )

        assert subadmin.permissions == ["leads_management", "user_management"]

    async def test_permissions_only_for_subadmins(self, db_session: AsyncMock) -> None:
        db_session.get = AsyncMock(return_value=create_mock_user(user_id=5))

        with pytest.raises(ResourceNotFoundError):
            await AuthService(db_session).update_permissions(5, [StaffPermission.LEADS_MANAGEMENT])

    async def test_remove_subadmin_deactivates(self, db_session: AsyncMock) -> None:
        subadmin = create_mock_user(
            user_id=5, role=UserRole.SUBADMIN, permissions=["support_management"]
        )
        db_session.get = AsyncMock(return_value=subadmin)

        await AuthService(db_session).remove_subadmin(5)

        assert subadmin.status == UserStatus.INACTIVE.value
        assert subadmin.permissions == []
        db_session.delete.assert_not_called()
