"""
Lead API Routes - Lead catalogue, unlocking, view history and categories.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from leadhub.api.dependencies import get_current_user, require_permission
from leadhub.db.models import User
from leadhub.db.session import get_read_db, get_write_db
from leadhub.exceptions import (
    AuthorizationError,
    InsufficientLeadCoinsError,
    InvalidStateError,
    ResourceNotFoundError,
)
from leadhub.models.api import (
    CategoryRequest,
    CategoryResponse,
    LeadRequest,
    LeadResponse,
    LeadViewChargeResponse,
    LeadViewRecord,
    StaffPermission,
    UpdateLeadRequest,
    UserRole,
    ViewLeadRequest,
)
from leadhub.services.leads import LeadService, to_lead_response
from leadhub.services.ledger import LedgerService

logger = get_logger(__name__)
router = APIRouter(tags=["leads"])

require_leads_manager = require_permission(StaffPermission.LEADS_MANAGEMENT)


# ============================================================================
# Leads
# ============================================================================


@router.get("/api/leads", response_model=list[LeadResponse])
async def list_leads(
    category_id: int | None = Query(None, alias="categoryId"),
    search: str | None = Query(None, max_length=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_read_db),
) -> list[LeadResponse]:
    """Leads newest first; contact details masked until unlocked."""
    return await LeadService(db).list_leads(user, category_id=category_id, search=search)


@router.get("/api/leads/{lead_id}", response_model=LeadResponse)
async def get_lead(
    lead_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_read_db),
) -> LeadResponse:
    try:
        return await LeadService(db).get_lead(user, lead_id)
    except ResourceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lead not found") from exc


@router.post(
    "/api/leads",
    response_model=LeadResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_lead(
    request: LeadRequest,
    staff: User = Depends(require_leads_manager),
    db: AsyncSession = Depends(get_write_db),
) -> LeadResponse:
    try:
        lead = await LeadService(db).create_lead(staff, request)
    except ResourceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return to_lead_response(lead, unlocked=True)


@router.patch("/api/leads/{lead_id}", response_model=LeadResponse)
async def update_lead(
    lead_id: int,
    request: UpdateLeadRequest,
    staff: User = Depends(require_leads_manager),
    db: AsyncSession = Depends(get_write_db),
) -> LeadResponse:
    try:
        lead = await LeadService(db).update_lead(staff, lead_id, request)
    except ResourceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except AuthorizationError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only admins or the lead's creator can edit it",
        ) from exc
    return to_lead_response(lead, unlocked=True)


@router.delete("/api/leads/{lead_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_lead(
    lead_id: int,
    staff: User = Depends(require_leads_manager),
    db: AsyncSession = Depends(get_write_db),
) -> Response:
    try:
        await LeadService(db).delete_lead(staff, lead_id)
    except ResourceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except AuthorizationError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only admins or the lead's creator can delete it",
        ) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/api/leads/{lead_id}/view", response_model=LeadViewChargeResponse)
async def view_lead(
    lead_id: int,
    request: ViewLeadRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_write_db),
) -> LeadViewChargeResponse:
    """
    Unlock a lead's details with LeadCoins.

    Re-viewing at an already unlocked level is free, as is viewing for
    admins and the lead's creator.
    """
    try:
        lead = await LeadService(db).get_lead(user, lead_id)
        if user.role == UserRole.ADMIN.value or lead.creator_id == user.id:
            return LeadViewChargeResponse(
                success=True,
                coins_spent=0,
                remaining_coins=user.lead_coins,
                already_viewed=True,
            )
        charge = await LedgerService(db).charge_lead_view(user.id, lead_id, request.view_type)
    except ResourceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lead not found") from exc
    except InsufficientLeadCoinsError as exc:
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail=f"Insufficient LeadCoins. Balance: {exc.balance}, Required: {exc.required}",
        ) from exc

    return LeadViewChargeResponse(
        success=True,
        coins_spent=charge.coins_spent,
        remaining_coins=charge.remaining_coins,
        already_viewed=charge.already_viewed,
    )


# ============================================================================
# View history
# ============================================================================


@router.get("/api/lead-views/user", response_model=list[LeadViewRecord])
async def my_lead_views(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_read_db),
) -> list[LeadViewRecord]:
    return await LeadService(db).views_for_user(user.id)


@router.get("/api/lead-views/admin", response_model=list[LeadViewRecord])
async def all_lead_views(
    db: AsyncSession = Depends(get_read_db),
    _staff: User = Depends(require_leads_manager),
) -> list[LeadViewRecord]:
    return await LeadService(db).all_views()


# ============================================================================
# Categories
# ============================================================================


@router.get("/api/lead-categories", response_model=list[CategoryResponse])
async def list_categories(
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_read_db),
) -> list[CategoryResponse]:
    categories = await LeadService(db).list_categories()
    return [CategoryResponse.model_validate(category) for category in categories]


@router.post(
    "/api/lead-categories",
    response_model=CategoryResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_category(
    request: CategoryRequest,
    db: AsyncSession = Depends(get_write_db),
    _staff: User = Depends(require_leads_manager),
) -> CategoryResponse:
    try:
        category = await LeadService(db).create_category(request)
    except InvalidStateError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.message) from exc
    return CategoryResponse.model_validate(category)


@router.patch("/api/lead-categories/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: int,
    request: CategoryRequest,
    db: AsyncSession = Depends(get_write_db),
    _admin: User = Depends(require_leads_manager),
) -> CategoryResponse:
    try:
        category = await LeadService(db).update_category(category_id, request)
    except ResourceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return CategoryResponse.model_validate(category)


@router.delete("/api/lead-categories/{category_id}", response_model=CategoryResponse)
async def delete_category(
    category_id: int,
    db: AsyncSession = Depends(get_write_db),
    _admin: User = Depends(require_leads_manager),
) -> CategoryResponse:
    try:
        category = await LeadService(db).deactivate_category(category_id)
    except ResourceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return CategoryResponse.model_validate(category)
