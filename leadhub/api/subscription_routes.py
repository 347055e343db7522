"""
Subscription API Routes - Plans, purchases and payment verification.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from leadhub.api.dependencies import get_current_user, get_payment_provider, require_permission
from leadhub.db.models import User
from leadhub.db.session import get_read_db, get_write_db
from leadhub.exceptions import (
    PaymentProviderError,
    PlanInactiveError,
    ResourceNotFoundError,
    WebhookVerificationError,
)
from leadhub.models.api import (
    CreatePlanRequest,
    PaymentVerificationResponse,
    PlanResponse,
    PurchaseRequest,
    PurchaseResponse,
    StaffPermission,
    UpdatePlanRequest,
    UserSubscriptionResponse,
    WebhookAck,
)
from leadhub.services.catalog import CatalogService
from leadhub.services.ledger import LedgerService
from leadhub.services.payment_provider import PaymentProvider
from leadhub.services.payments import PaymentService

logger = get_logger(__name__)
router = APIRouter(tags=["subscriptions"])

require_plan_manager = require_permission(StaffPermission.SUBSCRIPTION_MANAGEMENT)


def _purchase_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ResourceNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, PlanInactiveError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="This plan is no longer available"
        )
    if isinstance(exc, PaymentProviderError):
        logger.error("payment_session_creation_failed", error=exc.message)
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Purchase failed"
    )


# ============================================================================
# Plans
# ============================================================================


@router.get("/api/subscriptions", response_model=list[PlanResponse])
async def list_plans(
    db: AsyncSession = Depends(get_read_db),
) -> list[PlanResponse]:
    """Active subscription plans."""
    plans = await CatalogService(db).list_plans()
    return [PlanResponse.model_validate(plan) for plan in plans]


@router.get("/api/subscriptions/all", response_model=list[PlanResponse])
async def list_all_plans(
    db: AsyncSession = Depends(get_read_db),
    _manager: User = Depends(require_plan_manager),
) -> list[PlanResponse]:
    """All plans including inactive ones (subscription managers)."""
    plans = await CatalogService(db).list_plans(include_inactive=True)
    return [PlanResponse.model_validate(plan) for plan in plans]


@router.post(
    "/api/subscriptions",
    response_model=PlanResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_plan(
    request: CreatePlanRequest,
    db: AsyncSession = Depends(get_write_db),
    _manager: User = Depends(require_plan_manager),
) -> PlanResponse:
    """Create a subscription plan (subscription managers)."""
    plan = await CatalogService(db).create_plan(request)
    return PlanResponse.model_validate(plan)


# ============================================================================
# User subscriptions
# ============================================================================


@router.get("/api/subscriptions/current", response_model=UserSubscriptionResponse | None)
async def current_subscription(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_write_db),
) -> UserSubscriptionResponse | None:
    """The user's current subscription, or null."""
    ledger = LedgerService(db)
    current = await ledger.get_current_subscription(user.id)
    await db.commit()
    return UserSubscriptionResponse.model_validate(current) if current else None


@router.get("/api/subscriptions/history", response_model=list[UserSubscriptionResponse])
async def subscription_history(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_read_db),
) -> list[UserSubscriptionResponse]:
    """All of the user's subscription records, newest first."""
    records = await LedgerService(db).get_subscription_history(user.id)
    return [UserSubscriptionResponse.model_validate(record) for record in records]


@router.post(
    "/api/subscriptions/purchase",
    response_model=PurchaseResponse,
    response_model_exclude_none=True,
)
async def purchase_subscription(
    request: PurchaseRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_write_db),
    provider: PaymentProvider | None = Depends(get_payment_provider),
) -> PurchaseResponse:
    """Create a payment session for a plan."""
    try:
        session = await PaymentService(db, provider).create_subscription_session(
            user, request.subscription_id
        )
    except (ResourceNotFoundError, PlanInactiveError, PaymentProviderError) as exc:
        raise _purchase_error(exc) from exc

    return PurchaseResponse(payment_session=session.to_response())


@router.post(
    "/api/subscriptions/buy-coins",
    response_model=PurchaseResponse,
    response_model_exclude_none=True,
)
async def buy_coins(
    request: PurchaseRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_write_db),
    provider: PaymentProvider | None = Depends(get_payment_provider),
) -> PurchaseResponse:
    """Create a payment session for a LeadCoin package (subscriptionId holds the package id)."""
    try:
        session = await PaymentService(db, provider).create_coin_session(
            user, request.subscription_id
        )
    except (ResourceNotFoundError, PlanInactiveError, PaymentProviderError) as exc:
        raise _purchase_error(exc) from exc

    return PurchaseResponse(
        payment_session=session.to_response(),
        session_id=session.session_id,
    )


@router.get(
    "/api/subscriptions/verify-payment",
    response_model=PaymentVerificationResponse,
    response_model_exclude_none=True,
)
async def verify_payment(
    session_id: str = Query(..., alias="sessionId", min_length=1),
    coins: bool = Query(False),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_write_db),
    provider: PaymentProvider | None = Depends(get_payment_provider),
) -> PaymentVerificationResponse:
    """
    Poll a payment session.

    Always 200: the outcome (verified, pending, expired or error) is in the body.
    """
    return await PaymentService(db, provider).verify_payment(user, session_id, coins=coins)


@router.post("/api/webhook", response_model=WebhookAck, response_model_exclude_none=True)
async def payment_webhook(
    request: Request,
    stripe_signature: str = Header("", alias="Stripe-Signature"),
    db: AsyncSession = Depends(get_write_db),
    provider: PaymentProvider | None = Depends(get_payment_provider),
) -> WebhookAck:
    """Stripe webhook receiver."""
    payload = await request.body()
    try:
        event = await PaymentService(db, provider).handle_webhook(payload, stripe_signature)
    except WebhookVerificationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message) from exc
    except PaymentProviderError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.message
        ) from exc

    return WebhookAck(received=True, type=event.event_type)


# ============================================================================
# Plan administration
# ============================================================================


@router.patch("/api/subscriptions/{plan_id}", response_model=PlanResponse)
async def update_plan(
    plan_id: int,
    request: UpdatePlanRequest,
    db: AsyncSession = Depends(get_write_db),
    _manager: User = Depends(require_plan_manager),
) -> PlanResponse:
    """Update a plan (subscription managers)."""
    try:
        plan = await CatalogService(db).update_plan(plan_id, request)
    except ResourceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return PlanResponse.model_validate(plan)


@router.delete("/api/subscriptions/{plan_id}", response_model=PlanResponse)
async def delete_plan(
    plan_id: int,
    db: AsyncSession = Depends(get_write_db),
    _manager: User = Depends(require_plan_manager),
) -> PlanResponse:
    """Deactivate a plan (subscription managers). Plans are never physically deleted."""
    try:
        plan = await CatalogService(db).deactivate_plan(plan_id)
    except ResourceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return PlanResponse.model_validate(plan)
