"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
Wire format is camelCase; Python attributes stay snake_case.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class UserRole(str, Enum):
    """User role enumeration."""

    ADMIN = "admin"
    SUBADMIN = "subadmin"
    USER = "user"


class UserStatus(str, Enum):
    """User account status enumeration."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"


class StaffPermission(str, Enum):
    """Module access a subadmin can be granted; admins hold all of them."""

    LEADS_MANAGEMENT = "leads_management"
    SUPPORT_MANAGEMENT = "support_management"
    USER_MANAGEMENT = "user_management"
    SUBSCRIPTION_MANAGEMENT = "subscription_management"


class SubscriptionStatus(str, Enum):
    """UserSubscription lifecycle status."""

    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class CoinPurchaseStatus(str, Enum):
    """Coin package purchase status."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class CoinTransactionType(str, Enum):
    """LeadCoin ledger entry type."""

    PURCHASE = "purchase"
    SUBSCRIPTION = "subscription"
    ADMIN_TOPUP = "admin_topup"
    COUPON = "coupon"
    BONUS = "bonus"
    SPENT = "spent"
    REFUND = "refund"


class ViewType(str, Enum):
    """Level of lead detail unlocked by a view."""

    CONTACT_INFO = "contact_info"
    DETAILED_INFO = "detailed_info"
    FULL_ACCESS = "full_access"


class WorkType(str, Enum):
    """Lead work type."""

    PART_TIME = "part_time"
    FULL_TIME = "full_time"


class TicketStatus(str, Enum):
    """Support ticket status."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class NotificationType(str, Enum):
    """User notification type."""

    COIN_RECEIVED = "coin_received"
    LOW_BALANCE = "low_balance"
    SUBSCRIPTION_UPDATE = "subscription_update"
    SYSTEM = "system"


class PurchaseKind(str, Enum):
    """What a payment session pays for."""

    SUBSCRIPTION = "subscription"
    COINS = "coins"


class ApiModel(BaseModel):
    """Base model: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ============================================================================
# Auth Models
# ============================================================================


class RegisterRequest(ApiModel):
    """POST /api/auth/register request body."""

    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    name: str = Field(..., min_length=2, max_length=255)
    password: str = Field(..., min_length=6, max_length=255)
    confirm_password: str = Field(..., min_length=6, max_length=255)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Emails are stored lower-case."""
        return v.strip().lower()

    @model_validator(mode="after")
    def passwords_match(self) -> "RegisterRequest":
        """Password and confirmation must match."""
        if self.password != self.confirm_password:
            raise ValueError("Passwords don't match")
        return self


class LoginRequest(ApiModel):
    """POST /api/auth/login request body."""

    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=6, max_length=255)
    remember_me: bool = False

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Emails are stored lower-case."""
        return v.strip().lower()


class UpdateProfileRequest(ApiModel):
    """PATCH /api/auth/profile request body."""

    name: str = Field(..., min_length=2, max_length=255)
    profile_image: str | None = None


class ChangePasswordRequest(ApiModel):
    """POST /api/auth/change-password request body."""

    current_password: str = Field(..., min_length=6)
    new_password: str = Field(..., min_length=6)
    confirm_password: str = Field(..., min_length=6)

    @model_validator(mode="after")
    def passwords_match(self) -> "ChangePasswordRequest":
        """New password and confirmation must match."""
        if self.new_password != self.confirm_password:
            raise ValueError("Passwords don't match")
        return self


class VerifyEmailRequest(ApiModel):
    """POST /api/auth/verify request body."""

    email: str = Field(..., min_length=3, max_length=255)
    code: str = Field(..., min_length=4, max_length=10)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Emails are stored lower-case."""
        return v.strip().lower()

    @field_validator("code")
    @classmethod
    def strip_code(cls, v: str) -> str:
        return v.strip()


class EmailRequest(ApiModel):
    """Body for endpoints keyed only by email (resend-code, reset-password)."""

    email: str = Field(..., min_length=3, max_length=255)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Emails are stored lower-case."""
        return v.strip().lower()


class SetNewPasswordRequest(ApiModel):
    """POST /api/auth/set-new-password request body."""

    email: str = Field(..., min_length=3, max_length=255)
    reset_token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=6, max_length=255)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Emails are stored lower-case."""
        return v.strip().lower()


class UserResponse(ApiModel):
    """Public view of a user."""

    id: int
    email: str
    name: str
    role: UserRole
    status: UserStatus
    lead_coins: int
    permissions: list[str] = Field(default_factory=list)
    verified: bool = True
    profile_image: str | None = None
    last_login_at: datetime | None = None
    created_at: datetime


# ============================================================================
# User Administration Models
# ============================================================================


class UserStatusRequest(ApiModel):
    """PATCH /api/users/{id}/status request body (admin)."""

    status: UserStatus


class AdminUpdateUserRequest(ApiModel):
    """
    POST /api/users/{id}/update request body.

    Admins may edit anyone and change status; users may only edit
    themselves, and `status` is ignored for them.
    """

    name: str | None = Field(None, min_length=2, max_length=255)
    email: str | None = Field(
        None, min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
    )
    profile_image: str | None = None
    status: UserStatus | None = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str | None) -> str | None:
        """Emails are stored lower-case."""
        return v.strip().lower() if v else v


class CreateSubadminRequest(ApiModel):
    """POST /api/subadmins request body (admin)."""

    name: str = Field(..., min_length=2, max_length=255)
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(..., min_length=6, max_length=255)
    permissions: list[StaffPermission] = Field(default_factory=list)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Emails are stored lower-case."""
        return v.strip().lower()


class SubadminPermissionsRequest(ApiModel):
    """PATCH /api/subadmins/{id}/permissions request body (admin)."""

    permissions: list[StaffPermission]


# ============================================================================
# Plan / Package Models
# ============================================================================


class CreatePlanRequest(ApiModel):
    """POST /api/subscriptions request body (admin)."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    price: int = Field(..., ge=0, description="Price in cents")
    duration_days: int = Field(..., ge=1)
    lead_coins: int = Field(..., ge=1)
    features: list[str] = Field(default_factory=list)


class UpdatePlanRequest(ApiModel):
    """PATCH /api/subscriptions/{id} request body (admin)."""

    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, min_length=1)
    price: int | None = Field(None, ge=0)
    duration_days: int | None = Field(None, ge=1)
    lead_coins: int | None = Field(None, ge=1)
    features: list[str] | None = None
    active: bool | None = None


class PlanResponse(ApiModel):
    """Subscription plan template."""

    id: int
    name: str
    description: str
    price: int
    duration_days: int
    lead_coins: int
    features: list[str] = Field(default_factory=list)
    active: bool


class PackageRequest(ApiModel):
    """POST /api/leadcoin-packages request body (admin)."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    lead_coins: int = Field(..., ge=1)
    price: int = Field(..., ge=0, description="Price in cents")
    active: bool = True


class UpdatePackageRequest(ApiModel):
    """PATCH /api/leadcoin-packages/{id} request body (admin)."""

    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    lead_coins: int | None = Field(None, ge=1)
    price: int | None = Field(None, ge=0)
    active: bool | None = None


class PackageResponse(ApiModel):
    """LeadCoin package template."""

    id: int
    name: str
    description: str | None = None
    lead_coins: int
    price: int
    active: bool


# ============================================================================
# Purchase / Payment Models
# ============================================================================


class PurchaseRequest(ApiModel):
    """POST /api/subscriptions/purchase and /buy-coins request body."""

    subscription_id: int = Field(..., gt=0)


class PaymentSessionResponse(ApiModel):
    """Payment session handle returned to the client."""

    session_id: str
    client_secret: str = ""
    payment_url: str = ""
    qr_code_data_url: str = ""
    expires_at: int


class PurchaseResponse(ApiModel):
    """Response for session-creating purchase endpoints."""

    payment_session: PaymentSessionResponse
    session_id: str | None = None
    message: str | None = None


class UserSubscriptionResponse(ApiModel):
    """A user's subscription record."""

    id: int
    user_id: int
    subscription_id: int
    status: SubscriptionStatus
    payment_verified: bool
    lead_coins_left: int
    start_date: datetime
    end_date: datetime | None = None
    payment_session_id: str | None = None
    plan: PlanResponse | None = None


class CoinPurchaseResponse(ApiModel):
    """A coin package purchase record."""

    id: int
    user_id: int
    package_id: int
    status: CoinPurchaseStatus
    lead_coins: int
    amount: int
    payment_session_id: str | None = None
    purchase_date: datetime


class PaymentVerificationResponse(ApiModel):
    """
    GET /api/subscriptions/verify-payment response.

    Loosely-shaped by contract: only `verified` is always present, routes
    serialize with exclude_none.
    """

    verified: bool
    session_status: str | None = None
    pending: bool | None = None
    error: str | None = None
    user_subscription: UserSubscriptionResponse | None = None
    coin_purchase: CoinPurchaseResponse | None = None
    lead_coins: int | None = None
    message: str | None = None


# ============================================================================
# LeadCoin Administration Models
# ============================================================================


class SendCoinsRequest(ApiModel):
    """POST /api/users/{id}/send-coins request body (admin)."""

    amount: int = Field(..., ge=1)
    description: str = Field("Admin Top-up", min_length=1)


class SendCoinsResponse(ApiModel):
    """Result of an admin coin grant."""

    message: str
    amount: int
    recipient: str
    new_balance: int


class LeadCoinSettingsRequest(ApiModel):
    """PUT /api/leadcoins/settings request body (admin)."""

    contact_info_cost: int = Field(..., ge=1)
    detailed_info_cost: int = Field(..., ge=1)
    full_access_cost: int = Field(..., ge=1)


class LeadCoinSettingsResponse(ApiModel):
    """Current view costs."""

    contact_info_cost: int
    detailed_info_cost: int
    full_access_cost: int


class CoinTransactionResponse(ApiModel):
    """LeadCoin ledger row."""

    id: int
    amount: int
    balance_after: int
    type: CoinTransactionType
    description: str
    created_at: datetime


# ============================================================================
# Coupon Models
# ============================================================================


class CreateCouponRequest(ApiModel):
    """POST /api/coupons request body (admin)."""

    code: str | None = Field(None, min_length=4, max_length=32)
    max_uses: int = Field(..., ge=1)
    coin_amount: int = Field(..., ge=1)
    active: bool = True

    @field_validator("code")
    @classmethod
    def upper_code(cls, v: str | None) -> str | None:
        """Coupon codes are case-insensitive; stored upper-case."""
        return v.strip().upper() if v else v


class UpdateCouponRequest(ApiModel):
    """PATCH /api/coupons/{id} request body (admin)."""

    max_uses: int | None = Field(None, ge=1)
    coin_amount: int | None = Field(None, ge=1)
    active: bool | None = None


class CouponResponse(ApiModel):
    """Coupon as seen by admins."""

    id: int
    code: str
    max_uses: int
    current_uses: int
    coin_amount: int
    active: bool


class ClaimCouponRequest(ApiModel):
    """POST /api/coupons/claim request body."""

    code: str = Field(..., min_length=1)

    @field_validator("code")
    @classmethod
    def upper_code(cls, v: str) -> str:
        """Coupon codes are case-insensitive."""
        return v.strip().upper()


class ClaimCouponResponse(ApiModel):
    """Result of a coupon claim."""

    message: str
    coins_received: int
    new_balance: int


# ============================================================================
# Lead Models
# ============================================================================


class CategoryRequest(ApiModel):
    """Lead category create/update body (admin)."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    active: bool | None = None


class CategoryResponse(ApiModel):
    """Lead category."""

    id: int
    name: str
    description: str | None = None
    active: bool


class LeadRequest(ApiModel):
    """POST /api/leads request body."""

    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    category_id: int | None = None
    category_name: str | None = None
    skills: list[str] = Field(default_factory=list)
    work_type: WorkType = WorkType.FULL_TIME
    duration: str = Field(..., min_length=1)
    location: str = Field(..., min_length=1)
    price: int = Field(..., ge=0)
    total_members: int = Field(1, ge=1)
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    contact_number: str = Field(..., pattern=r"^\d{10}$")
    images: list[str] = Field(default_factory=list)


class UpdateLeadRequest(ApiModel):
    """PATCH /api/leads/{id} request body."""

    title: str | None = Field(None, min_length=1)
    description: str | None = Field(None, min_length=1)
    category_id: int | None = None
    category_name: str | None = None
    skills: list[str] | None = None
    work_type: WorkType | None = None
    duration: str | None = Field(None, min_length=1)
    location: str | None = Field(None, min_length=1)
    price: int | None = Field(None, ge=0)
    total_members: int | None = Field(None, ge=1)
    email: str | None = Field(None, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    contact_number: str | None = Field(None, pattern=r"^\d{10}$")
    images: list[str] | None = None


class LeadResponse(ApiModel):
    """Lead as returned to a viewer; contact fields are None until unlocked."""

    id: int
    title: str
    description: str
    category_id: int | None = None
    category_name: str | None = None
    skills: list[str] = Field(default_factory=list)
    work_type: WorkType
    duration: str
    location: str
    price: int
    total_members: int
    images: list[str] = Field(default_factory=list)
    email: str | None = None
    contact_number: str | None = None
    creator_id: int
    unlocked: bool = False
    created_at: datetime


class ViewLeadRequest(ApiModel):
    """POST /api/leads/{id}/view request body."""

    view_type: ViewType = ViewType.CONTACT_INFO


class LeadViewChargeResponse(ApiModel):
    """Result of unlocking a lead."""

    success: bool
    coins_spent: int
    remaining_coins: int
    already_viewed: bool = False


class LeadViewRecord(ApiModel):
    """Lead view history row (reports)."""

    id: int
    user_id: int
    lead_id: int
    lead_title: str | None = None
    coins_spent: int
    view_type: ViewType
    viewed_at: datetime


# ============================================================================
# Support Models
# ============================================================================


class TicketRequest(ApiModel):
    """POST /api/support request body."""

    subject: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)


class ReplyRequest(ApiModel):
    """POST /api/support/{id}/replies request body."""

    message: str = Field(..., min_length=1)


class TicketStatusRequest(ApiModel):
    """PATCH /api/support/{id}/status request body (staff)."""

    status: TicketStatus


class TicketResponse(ApiModel):
    """Support ticket."""

    id: int
    user_id: int
    subject: str
    message: str
    status: TicketStatus
    created_at: datetime
    updated_at: datetime


class ReplyResponse(ApiModel):
    """Support ticket reply."""

    id: int
    ticket_id: int
    user_id: int
    message: str
    is_from_staff: bool
    created_at: datetime


# ============================================================================
# Dashboard / Stats Models
# ============================================================================


class TopCoinHolder(ApiModel):
    """One row of the LeadCoin leaderboard."""

    id: int
    name: str
    email: str
    lead_coins: int
    total_spent: int


class LeadCoinStatsResponse(ApiModel):
    """GET /api/leadcoins/stats response."""

    total_coins: int
    coins_spent_this_month: int
    leads_viewed_today: int
    top_users: list[TopCoinHolder]


class AdminDashboardResponse(ApiModel):
    """GET /api/admin/dashboard response; growth values are whole percentages."""

    total_users: int
    active_users: int
    total_leads: int
    open_tickets: int
    active_subscriptions: int
    user_growth: int
    lead_growth: int
    ticket_growth: int
    recent_users: list[UserResponse]
    recent_tickets: list[TicketResponse]


class UserDashboardResponse(ApiModel):
    """GET /api/user/dashboard response."""

    lead_coins: int
    leads_viewed: int
    open_tickets: int
    subscription: UserSubscriptionResponse | None = None
    recent_views: list[LeadViewRecord]
    recent_tickets: list[TicketResponse]


# ============================================================================
# Notification / Misc Models
# ============================================================================


class NotificationResponse(ApiModel):
    """User notification."""

    id: int
    type: NotificationType
    title: str
    message: str
    read: bool
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="extra")
    created_at: datetime


class MessageResponse(ApiModel):
    """Generic acknowledgement."""

    message: str


class HealthResponse(ApiModel):
    """GET /health response."""

    status: str
    database: str
    version: str
    timestamp: str


class WebhookAck(ApiModel):
    """POST /api/webhook response."""

    received: bool
    type: str | None = None
