"""
Tests for account routes: verification, password reset, user administration,
subadmins and dashboards.

Route handler functions are called directly with mocked services.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import HTTPException, Response

from conftest import create_mock_user
from leadhub.api.admin_routes import (
    create_subadmin,
    lead_coin_stats,
    list_subadmins,
    remove_subadmin,
    set_user_status,
    update_subadmin_permissions,
    update_user,
)
from leadhub.api.auth_routes import (
    login,
    register,
    resend_code,
    reset_password,
    set_new_password,
    verify_email,
)
from leadhub.api.user_routes import user_dashboard
from leadhub.exceptions import (
    AccountTokenError,
    AuthorizationError,
    DuplicateEmailError,
    EmailDeliveryError,
    InvalidStateError,
    ResourceNotFoundError,
    UserNotFoundError,
)
from leadhub.models.api import (
    AdminUpdateUserRequest,
    CreateSubadminRequest,
    EmailRequest,
    LeadCoinStatsResponse,
    LoginRequest,
    RegisterRequest,
    SetNewPasswordRequest,
    StaffPermission,
    SubadminPermissionsRequest,
    UserDashboardResponse,
    UserRole,
    UserStatus,
    UserStatusRequest,
    VerifyEmailRequest,
)


def mock_mailer(error: Exception | None = None) -> MagicMock:
    mailer = MagicMock()
    mailer.send_verification_code = AsyncMock(side_effect=error)
    mailer.send_password_reset = AsyncMock(side_effect=error)
    return mailer


def auth_service(**methods) -> MagicMock:
    service = MagicMock()
    for name, value in methods.items():
        if isinstance(value, Exception):
            setattr(service, name, AsyncMock(side_effect=value))
        else:
            setattr(service, name, AsyncMock(return_value=value))
    return service


def pending_user() -> MagicMock:
    user = create_mock_user(status=UserStatus.PENDING, verified=False)
    user.verification_code = "0427"
    return user


REGISTER = RegisterRequest(
    email="user@example.com", name="Test User", password="secret123", confirm_password="secret123"
)


# ============================================================================
# Registration and login
# ============================================================================


class TestRegisterVerification:
    async def test_pending_account_is_emailed_its_code(self, db_session):
        mailer = mock_mailer()
        service = auth_service(register=pending_user())

        with patch("leadhub.api.auth_routes.AuthService", return_value=service):
            response = await register(REGISTER, db_session, mailer)

        assert response.status == UserStatus.PENDING
        assert response.verified is False
        mailer.send_verification_code.assert_awaited_once_with(
            "user@example.com", "Test User", "0427"
        )

    async def test_active_account_gets_no_email(self, db_session, active_user):
        mailer = mock_mailer()

        with patch(
            "leadhub.api.auth_routes.AuthService",
            return_value=auth_service(register=active_user),
        ):
            await register(REGISTER, db_session, mailer)

        mailer.send_verification_code.assert_not_awaited()

    async def test_failed_send_still_registers(self, db_session):
        mailer = mock_mailer(EmailDeliveryError("connection refused"))

        with patch(
            "leadhub.api.auth_routes.AuthService",
            return_value=auth_service(register=pending_user()),
        ):
            response = await register(REGISTER, db_session, mailer)

        assert response.email == "user@example.com"

    @pytest.mark.parametrize(
        ("required", "detail"),
        [
            ("verified account", "Please verify your email before logging in"),
            ("active account", "Account is not active"),
        ],
        ids=["unverified", "inactive"],
    )
    async def test_login_refusals(self, db_session, required, detail):
        service = auth_service(authenticate=AuthorizationError(required))
        request = LoginRequest(email="user@example.com", password="secret123")

        with patch("leadhub.api.auth_routes.AuthService", return_value=service):
            with pytest.raises(HTTPException) as exc_info:
                await login(request, Response(), db_session)

        assert exc_info.value.status_code == 403
        assert exc_info.value.detail == detail


# ============================================================================
# Verification codes and password reset
# ============================================================================


class TestVerifyRoutes:
    async def test_verify(self, db_session, active_user):
        with patch(
            "leadhub.api.auth_routes.AuthService",
            return_value=auth_service(verify_email=active_user),
        ):
            response = await verify_email(
                VerifyEmailRequest(email="user@example.com", code="0427"), db_session
            )

        assert response.status == UserStatus.ACTIVE

    async def test_wrong_code_is_400(self, db_session):
        service = auth_service(verify_email=AccountTokenError("Invalid verification code"))

        with patch("leadhub.api.auth_routes.AuthService", return_value=service):
            with pytest.raises(HTTPException) as exc_info:
                await verify_email(
                    VerifyEmailRequest(email="user@example.com", code="9999"), db_session
                )

        assert exc_info.value.status_code == 400
        assert exc_info.value.detail == "Invalid verification code"

    async def test_resend_to_unknown_email_looks_the_same(self, db_session):
        mailer = mock_mailer()

        with patch(
            "leadhub.api.auth_routes.AuthService",
            return_value=auth_service(resend_verification_code=None),
        ):
            response = await resend_code(
                EmailRequest(email="ghost@example.com"), db_session, mailer
            )

        assert "new code has been sent" in response.message
        mailer.send_verification_code.assert_not_awaited()

    async def test_resend_sends_new_code(self, db_session):
        mailer = mock_mailer()

        with patch(
            "leadhub.api.auth_routes.AuthService",
            return_value=auth_service(resend_verification_code=pending_user()),
        ):
            await resend_code(EmailRequest(email="user@example.com"), db_session, mailer)

        mailer.send_verification_code.assert_awaited_once()


class TestPasswordResetRoutes:
    async def test_known_and_unknown_emails_get_the_same_answer(self, db_session, active_user):
        mailer = mock_mailer()

        with patch(
            "leadhub.api.auth_routes.AuthService",
            return_value=auth_service(request_password_reset=(active_user, "tok-123")),
        ):
            known = await reset_password(EmailRequest(email="user@example.com"), db_session, mailer)
        with patch(
            "leadhub.api.auth_routes.AuthService",
            return_value=auth_service(request_password_reset=None),
        ):
            unknown = await reset_password(
                EmailRequest(email="ghost@example.com"), db_session, mailer
            )

        assert known.message == unknown.message
        mailer.send_password_reset.assert_awaited_once_with(
            "user@example.com", "Test User", "tok-123"
        )

    async def test_mail_failure_is_502(self, db_session, active_user):
        mailer = mock_mailer(EmailDeliveryError("timed out"))

        with patch(
            "leadhub.api.auth_routes.AuthService",
            return_value=auth_service(request_password_reset=(active_user, "tok-123")),
        ):
            with pytest.raises(HTTPException) as exc_info:
                await reset_password(EmailRequest(email="user@example.com"), db_session, mailer)

        assert exc_info.value.status_code == 502

    async def test_set_new_password_with_bad_token(self, db_session):
        service = auth_service(reset_password=AccountTokenError("Invalid or expired reset token"))
        request = SetNewPasswordRequest(
            email="user@example.com", reset_token="guess", password="fresh-pass"
        )

        with patch("leadhub.api.auth_routes.AuthService", return_value=service):
            with pytest.raises(HTTPException) as exc_info:
                await set_new_password(request, db_session)

        assert exc_info.value.status_code == 400

    async def test_set_new_password(self, db_session, active_user):
        service = auth_service(reset_password=active_user)
        request = SetNewPasswordRequest(
            email="user@example.com", reset_token="tok-123", password="fresh-pass"
        )

        with patch("leadhub.api.auth_routes.AuthService", return_value=service):
            response = await set_new_password(request, db_session)

        assert response.message == "Password successfully reset"
        service.reset_password.assert_awaited_once_with("user@example.com", "tok-123", "fresh-pass")


# ============================================================================
# User administration
# ============================================================================


class TestUserAdministrationRoutes:
    @pytest.mark.parametrize(
        ("error", "status_code"),
        [
            (UserNotFoundError(404), 404),
            (InvalidStateError("You cannot change your own account status"), 400),
        ],
        ids=["missing", "self"],
    )
    async def test_status_errors(self, db_session, admin_user, error, status_code):
        with patch(
            "leadhub.api.admin_routes.AuthService",
            return_value=auth_service(set_status=error),
        ):
            with pytest.raises(HTTPException) as exc_info:
                await set_user_status(
                    5, UserStatusRequest(status=UserStatus.INACTIVE), admin_user, db_session
                )

        assert exc_info.value.status_code == status_code

    async def test_status_change(self, db_session, admin_user):
        target = create_mock_user(user_id=5, status=UserStatus.INACTIVE)
        service = auth_service(set_status=target)

        with patch("leadhub.api.admin_routes.AuthService", return_value=service):
            response = await set_user_status(
                5, UserStatusRequest(status=UserStatus.INACTIVE), admin_user, db_session
            )

        assert response.status == UserStatus.INACTIVE
        service.set_status.assert_awaited_once_with(admin_user, 5, UserStatus.INACTIVE)

    @pytest.mark.parametrize(
        ("error", "status_code"),
        [
            (AuthorizationError("admin"), 403),
            (UserNotFoundError(6), 404),
            (DuplicateEmailError("taken@example.com"), 409),
        ],
        ids=["other-user", "missing", "email-taken"],
    )
    async def test_update_errors(self, db_session, active_user, error, status_code):
        with patch(
            "leadhub.api.admin_routes.AuthService",
            return_value=auth_service(update_user=error),
        ):
            with pytest.raises(HTTPException) as exc_info:
                await update_user(
                    6, AdminUpdateUserRequest(name="Renamed"), active_user, db_session
                )

        assert exc_info.value.status_code == status_code


class TestSubadminRoutes:
    async def test_list_searches_subadmins(self, db_session, admin_user):
        subadmin = create_mock_user(user_id=5, role=UserRole.SUBADMIN)
        service = auth_service(list_users=[subadmin])

        with patch("leadhub.api.admin_routes.AuthService", return_value=service):
            response = await list_subadmins("desk", db_session, admin_user)

        assert [user.id for user in response] == [5]
        service.list_users.assert_awaited_once_with(UserRole.SUBADMIN, "desk")

    async def test_create(self, db_session, admin_user):
        subadmin = create_mock_user(
            user_id=5, role=UserRole.SUBADMIN, permissions=["leads_management"]
        )
        request = CreateSubadminRequest(
            name="Desk",
            email="desk@example.com",
            password="secret123",
            permissions=[StaffPermission.LEADS_MANAGEMENT],
        )

        with patch(
            "leadhub.api.admin_routes.AuthService",
            return_value=auth_service(create_subadmin=subadmin),
        ):
            response = await create_subadmin(request, db_session, admin_user)

        assert response.role == UserRole.SUBADMIN
        assert response.permissions == ["leads_management"]

    async def test_create_duplicate_is_409(self, db_session, admin_user):
        request = CreateSubadminRequest(name="Desk", email="desk@example.com", password="secret123")

        with patch(
            "leadhub.api.admin_routes.AuthService",
            return_value=auth_service(create_subadmin=DuplicateEmailError("desk@example.com")),
        ):
            with pytest.raises(HTTPException) as exc_info:
                await create_subadmin(request, db_session, admin_user)

        assert exc_info.value.status_code == 409

    async def test_permissions_for_non_subadmin_is_404(self, db_session, admin_user):
        request = SubadminPermissionsRequest(permissions=[StaffPermission.USER_MANAGEMENT])

        with patch(
            "leadhub.api.admin_routes.AuthService",
            return_value=auth_service(update_permissions=ResourceNotFoundError("Subadmin", 1)),
        ):
            with pytest.raises(HTTPException) as exc_info:
                await update_subadmin_permissions(1, request, db_session, admin_user)

        assert exc_info.value.status_code == 404

    def test_unknown_permission_rejected(self):
        with pytest.raises(ValueError):
            SubadminPermissionsRequest.model_validate({"permissions": ["billing_wizard"]})

    async def test_remove(self, db_session, admin_user):
        removed = create_mock_user(user_id=5, role=UserRole.SUBADMIN, status=UserStatus.INACTIVE)

        with patch(
            "leadhub.api.admin_routes.AuthService",
            return_value=auth_service(remove_subadmin=removed),
        ):
            response = await remove_subadmin(5, db_session, admin_user)

        assert response.status == UserStatus.INACTIVE
        assert response.permissions == []


# ============================================================================
# Dashboards
# ============================================================================


class TestDashboardRoutes:
    async def test_lead_coin_stats(self, db_session, admin_user):
        stats = LeadCoinStatsResponse(
            total_coins=10, coins_spent_this_month=4, leads_viewed_today=1, top_users=[]
        )
        service = MagicMock(lead_coin_stats=AsyncMock(return_value=stats))

        with patch("leadhub.api.admin_routes.StatsService", return_value=service):
            assert await lead_coin_stats(db_session, admin_user) is stats

    async def test_user_dashboard_commits_settled_subscriptions(self, db_session, active_user):
        dashboard = UserDashboardResponse(
            lead_coins=50, leads_viewed=0, open_tickets=0, recent_views=[], recent_tickets=[]
        )
        service = MagicMock(user_dashboard=AsyncMock(return_value=dashboard))

        with patch("leadhub.api.user_routes.StatsService", return_value=service):
            response = await user_dashboard(active_user, db_session)

        assert response is dashboard
        service.user_dashboard.assert_awaited_once_with(active_user)
        db_session.commit.assert_awaited_once()
