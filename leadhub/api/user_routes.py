"""
User API Routes - Dashboard, notifications and coupon redemption.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from leadhub.api.dependencies import get_current_user
from leadhub.db.models import User
from leadhub.db.session import get_read_db, get_write_db
from leadhub.exceptions import CouponError, ResourceNotFoundError
from leadhub.models.api import (
    ClaimCouponRequest,
    ClaimCouponResponse,
    MessageResponse,
    NotificationResponse,
    UserDashboardResponse,
)
from leadhub.services.ledger import LedgerService
from leadhub.services.notifications import NotificationService
from leadhub.services.stats import StatsService

router = APIRouter(tags=["users"])


@router.get("/api/user/dashboard", response_model=UserDashboardResponse)
async def user_dashboard(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_write_db),
) -> UserDashboardResponse:
    """Balance, current subscription, unlocked leads and tickets."""
    dashboard = await StatsService(db).user_dashboard(user)
    # Expired or promoted subscriptions are settled while reading
    await db.commit()
    return dashboard


@router.get("/api/notifications", response_model=list[NotificationResponse])
async def list_notifications(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_read_db),
) -> list[NotificationResponse]:
    notifications = await NotificationService(db).list_for_user(user.id)
    return [NotificationResponse.model_validate(n) for n in notifications]


@router.patch("/api/notifications/read-all", response_model=MessageResponse)
async def mark_all_read(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_write_db),
) -> MessageResponse:
    await NotificationService(db).mark_all_read(user.id)
    return MessageResponse(message="All notifications marked as read")


@router.patch("/api/notifications/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_write_db),
) -> NotificationResponse:
    try:
        notification = await NotificationService(db).mark_read(user.id, notification_id)
    except ResourceNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found"
        ) from exc
    return NotificationResponse.model_validate(notification)


@router.post("/api/coupons/claim", response_model=ClaimCouponResponse)
async def claim_coupon(
    request: ClaimCouponRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_write_db),
) -> ClaimCouponResponse:
    """Redeem a coupon code for LeadCoins."""
    try:
        change = await LedgerService(db).claim_coupon(user.id, request.code)
    except CouponError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.reason) from exc

    received = change.balance_after - change.balance_before
    return ClaimCouponResponse(
        message=f"Coupon claimed! You received {received} LeadCoins.",
        coins_received=received,
        new_balance=change.balance_after,
    )
