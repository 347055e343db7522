"""
Support API Routes - Tickets and replies.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from leadhub.api.dependencies import get_current_user, require_permission
from leadhub.db.models import User
from leadhub.db.session import get_read_db, get_write_db
from leadhub.exceptions import AuthorizationError, InvalidStateError, ResourceNotFoundError
from leadhub.models.api import (
    ReplyRequest,
    ReplyResponse,
    StaffPermission,
    TicketRequest,
    TicketResponse,
    TicketStatus,
    TicketStatusRequest,
)
from leadhub.services.support import SupportService

router = APIRouter(prefix="/api/support", tags=["support"])

require_support_staff = require_permission(StaffPermission.SUPPORT_MANAGEMENT)


def _ticket_error(exc: ResourceNotFoundError | AuthorizationError) -> HTTPException:
    # Tickets of other users are reported as missing
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ticket not found")


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def open_ticket(
    request: TicketRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_write_db),
) -> TicketResponse:
    ticket = await SupportService(db).open_ticket(user, request)
    return TicketResponse.model_validate(ticket)


@router.get("", response_model=list[TicketResponse])
async def list_tickets(
    ticket_status: TicketStatus | None = Query(None, alias="status"),
    db: AsyncSession = Depends(get_read_db),
    _staff: User = Depends(require_support_staff),
) -> list[TicketResponse]:
    """All tickets (support staff)."""
    tickets = await SupportService(db).list_all(ticket_status)
    return [TicketResponse.model_validate(ticket) for ticket in tickets]


@router.get("/user", response_model=list[TicketResponse])
async def my_tickets(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_read_db),
) -> list[TicketResponse]:
    tickets = await SupportService(db).list_for_user(user.id)
    return [TicketResponse.model_validate(ticket) for ticket in tickets]


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(
    ticket_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_read_db),
) -> TicketResponse:
    try:
        ticket = await SupportService(db).get_ticket(user, ticket_id)
    except (ResourceNotFoundError, AuthorizationError) as exc:
        raise _ticket_error(exc) from exc
    return TicketResponse.model_validate(ticket)


@router.get("/{ticket_id}/replies", response_model=list[ReplyResponse])
async def list_replies(
    ticket_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_read_db),
) -> list[ReplyResponse]:
    try:
        replies = await SupportService(db).list_replies(user, ticket_id)
    except (ResourceNotFoundError, AuthorizationError) as exc:
        raise _ticket_error(exc) from exc
    return [ReplyResponse.model_validate(reply) for reply in replies]


@router.post(
    "/{ticket_id}/replies",
    response_model=ReplyResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_reply(
    ticket_id: int,
    request: ReplyRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_write_db),
) -> ReplyResponse:
    try:
        reply = await SupportService(db).reply(user, ticket_id, request.message)
    except (ResourceNotFoundError, AuthorizationError) as exc:
        raise _ticket_error(exc) from exc
    except InvalidStateError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message) from exc
    return ReplyResponse.model_validate(reply)


@router.patch("/{ticket_id}/status", response_model=TicketResponse)
async def update_ticket_status(
    ticket_id: int,
    request: TicketStatusRequest,
    db: AsyncSession = Depends(get_write_db),
    _staff: User = Depends(require_support_staff),
) -> TicketResponse:
    try:
        ticket = await SupportService(db).update_status(ticket_id, request.status)
    except ResourceNotFoundError as exc:
        raise _ticket_error(exc) from exc
    return TicketResponse.model_validate(ticket)
