"""
Admin API Routes - LeadCoin packages, view costs, coin grants, users,
subadmins, coupons and dashboards.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from leadhub.api.dependencies import get_current_user, require_permission, require_role
from leadhub.db.models import User
from leadhub.db.session import get_read_db, get_write_db
from leadhub.exceptions import (
    AuthorizationError,
    CouponError,
    DuplicateEmailError,
    InvalidStateError,
    ResourceNotFoundError,
    UserNotFoundError,
)
from leadhub.models.api import (
    AdminDashboardResponse,
    AdminUpdateUserRequest,
    CouponResponse,
    CreateCouponRequest,
    CreateSubadminRequest,
    LeadCoinStatsResponse,
    LeadCoinSettingsRequest,
    LeadCoinSettingsResponse,
    PackageRequest,
    PackageResponse,
    SendCoinsRequest,
    SendCoinsResponse,
    StaffPermission,
    SubadminPermissionsRequest,
    UpdateCouponRequest,
    UpdatePackageRequest,
    UserResponse,
    UserRole,
    UserStatusRequest,
)
from leadhub.services.auth import AuthService
from leadhub.services.catalog import CatalogService
from leadhub.services.ledger import LedgerService
from leadhub.services.stats import StatsService

logger = get_logger(__name__)
router = APIRouter(tags=["admin"])

require_admin = require_role(UserRole.ADMIN)
require_user_manager = require_permission(StaffPermission.USER_MANAGEMENT)


# ============================================================================
# LeadCoin packages
# ============================================================================


@router.get("/api/leadcoin-packages", response_model=list[PackageResponse])
async def list_packages(
    include_inactive: bool = Query(False, alias="includeInactive"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_read_db),
) -> list[PackageResponse]:
    """Coin packages; inactive ones only for admins."""
    show_all = include_inactive and user.role == UserRole.ADMIN.value
    packages = await CatalogService(db).list_packages(include_inactive=show_all)
    return [PackageResponse.model_validate(package) for package in packages]


@router.post(
    "/api/leadcoin-packages",
    response_model=PackageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_package(
    request: PackageRequest,
    db: AsyncSession = Depends(get_write_db),
    _admin: User = Depends(require_admin),
) -> PackageResponse:
    package = await CatalogService(db).create_package(request)
    return PackageResponse.model_validate(package)


@router.patch("/api/leadcoin-packages/{package_id}", response_model=PackageResponse)
async def update_package(
    package_id: int,
    request: UpdatePackageRequest,
    db: AsyncSession = Depends(get_write_db),
    _admin: User = Depends(require_admin),
) -> PackageResponse:
    try:
        package = await CatalogService(db).update_package(package_id, request)
    except ResourceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return PackageResponse.model_validate(package)


@router.delete("/api/leadcoin-packages/{package_id}", response_model=PackageResponse)
async def delete_package(
    package_id: int,
    db: AsyncSession = Depends(get_write_db),
    _admin: User = Depends(require_admin),
) -> PackageResponse:
    """Deactivate a package; existing purchases keep referencing it."""
    try:
        package = await CatalogService(db).deactivate_package(package_id)
    except ResourceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return PackageResponse.model_validate(package)


# ============================================================================
# View costs
# ============================================================================


@router.get("/api/leadcoins/settings", response_model=LeadCoinSettingsResponse)
async def get_view_costs(
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_read_db),
) -> LeadCoinSettingsResponse:
    costs = await LedgerService(db).get_view_costs()
    return LeadCoinSettingsResponse(
        contact_info_cost=costs.contact_info,
        detailed_info_cost=costs.detailed_info,
        full_access_cost=costs.full_access,
    )


@router.put("/api/leadcoins/settings", response_model=LeadCoinSettingsResponse)
async def update_view_costs(
    request: LeadCoinSettingsRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_write_db),
) -> LeadCoinSettingsResponse:
    costs = await LedgerService(db).update_view_costs(admin.id, request)
    return LeadCoinSettingsResponse(
        contact_info_cost=costs.contact_info,
        detailed_info_cost=costs.detailed_info,
        full_access_cost=costs.full_access,
    )


# ============================================================================
# Users
# ============================================================================


@router.get("/api/users", response_model=list[UserResponse])
async def list_users(
    role: UserRole | None = Query(None),
    search: str | None = Query(None, max_length=255),
    db: AsyncSession = Depends(get_read_db),
    _manager: User = Depends(require_user_manager),
) -> list[UserResponse]:
    users = await AuthService(db).list_users(role, search)
    return [UserResponse.model_validate(user) for user in users]


@router.post("/api/users/{user_id}/send-coins", response_model=SendCoinsResponse)
async def send_coins(
    user_id: int,
    request: SendCoinsRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_write_db),
) -> SendCoinsResponse:
    """Grant LeadCoins to a user (admin top-up)."""
    try:
        recipient = await AuthService(db).get_user(user_id)
        change = await LedgerService(db).grant_coins(
            admin.id, user_id, request.amount, request.description
        )
    except UserNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="User not found"
        ) from exc

    return SendCoinsResponse(
        message=f"Successfully sent {request.amount} LeadCoins to {recipient.name}",
        amount=request.amount,
        recipient=recipient.name,
        new_balance=change.balance_after,
    )


@router.patch("/api/users/{user_id}/status", response_model=UserResponse)
async def set_user_status(
    user_id: int,
    request: UserStatusRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_write_db),
) -> UserResponse:
    """Activate or deactivate an account."""
    try:
        user = await AuthService(db).set_status(admin, user_id, request.status)
    except UserNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="User not found"
        ) from exc
    except InvalidStateError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message) from exc
    return UserResponse.model_validate(user)


@router.post("/api/users/{user_id}/update", response_model=UserResponse)
async def update_user(
    user_id: int,
    request: AdminUpdateUserRequest,
    actor: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_write_db),
) -> UserResponse:
    """Edit account details; admins may edit anyone, users only themselves."""
    try:
        user = await AuthService(db).update_user(actor, user_id, request)
    except AuthorizationError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only update your own account",
        ) from exc
    except UserNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="User not found"
        ) from exc
    except DuplicateEmailError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Email already in use"
        ) from exc
    return UserResponse.model_validate(user)


# ============================================================================
# Subadmins
# ============================================================================


@router.get("/api/subadmins", response_model=list[UserResponse])
async def list_subadmins(
    search: str | None = Query(None, max_length=255),
    db: AsyncSession = Depends(get_read_db),
    _admin: User = Depends(require_admin),
) -> list[UserResponse]:
    subadmins = await AuthService(db).list_users(UserRole.SUBADMIN, search)
    return [UserResponse.model_validate(user) for user in subadmins]


@router.post(
    "/api/subadmins",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_subadmin(
    request: CreateSubadminRequest,
    db: AsyncSession = Depends(get_write_db),
    _admin: User = Depends(require_admin),
) -> UserResponse:
    """Create an active, verified staff account."""
    try:
        subadmin = await AuthService(db).create_subadmin(request)
    except DuplicateEmailError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Email already in use"
        ) from exc
    return UserResponse.model_validate(subadmin)


@router.patch("/api/subadmins/{user_id}/permissions", response_model=UserResponse)
async def update_subadmin_permissions(
    user_id: int,
    request: SubadminPermissionsRequest,
    db: AsyncSession = Depends(get_write_db),
    _admin: User = Depends(require_admin),
) -> UserResponse:
    try:
        subadmin = await AuthService(db).update_permissions(user_id, request.permissions)
    except ResourceNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Subadmin not found"
        ) from exc
    return UserResponse.model_validate(subadmin)


@router.delete("/api/subadmins/{user_id}", response_model=UserResponse)
async def remove_subadmin(
    user_id: int,
    db: AsyncSession = Depends(get_write_db),
    _admin: User = Depends(require_admin),
) -> UserResponse:
    """Deactivate a subadmin and revoke all permissions."""
    try:
        subadmin = await AuthService(db).remove_subadmin(user_id)
    except ResourceNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Subadmin not found"
        ) from exc
    return UserResponse.model_validate(subadmin)


# ============================================================================
# Dashboards
# ============================================================================


@router.get("/api/leadcoins/stats", response_model=LeadCoinStatsResponse)
async def lead_coin_stats(
    db: AsyncSession = Depends(get_read_db),
    _admin: User = Depends(require_admin),
) -> LeadCoinStatsResponse:
    """Coins in circulation, spend this month, views today and top holders."""
    return await StatsService(db).lead_coin_stats()


@router.get("/api/admin/dashboard", response_model=AdminDashboardResponse)
async def admin_dashboard(
    db: AsyncSession = Depends(get_read_db),
    _admin: User = Depends(require_admin),
) -> AdminDashboardResponse:
    return await StatsService(db).admin_dashboard()


# ============================================================================
# Coupons
# ============================================================================


@router.get("/api/coupons", response_model=list[CouponResponse])
async def list_coupons(
    db: AsyncSession = Depends(get_read_db),
    _admin: User = Depends(require_admin),
) -> list[CouponResponse]:
    coupons = await LedgerService(db).list_coupons()
    return [CouponResponse.model_validate(coupon) for coupon in coupons]


@router.post(
    "/api/coupons",
    response_model=CouponResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_coupon(
    request: CreateCouponRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_write_db),
) -> CouponResponse:
    try:
        coupon = await LedgerService(db).create_coupon(admin.id, request)
    except CouponError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.reason) from exc
    return CouponResponse.model_validate(coupon)


@router.patch("/api/coupons/{coupon_id}", response_model=CouponResponse)
async def update_coupon(
    coupon_id: int,
    request: UpdateCouponRequest,
    db: AsyncSession = Depends(get_write_db),
    _admin: User = Depends(require_admin),
) -> CouponResponse:
    try:
        coupon = await LedgerService(db).update_coupon(coupon_id, request)
    except ResourceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return CouponResponse.model_validate(coupon)
