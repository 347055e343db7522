"""
Support Service - Tickets and threaded replies.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from leadhub.db.models import SupportTicket, SupportTicketReply, User
from leadhub.exceptions import AuthorizationError, InvalidStateError, ResourceNotFoundError
from leadhub.models.api import NotificationType, StaffPermission, TicketRequest, TicketStatus
from leadhub.services.auth import has_permission
from leadhub.services.notifications import NotificationService

logger = get_logger(__name__)


def _is_support_staff(user: User) -> bool:
    return has_permission(user, StaffPermission.SUPPORT_MANAGEMENT)


class SupportService:
    """Support ticket workflow."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize support service with database session."""
        self.session = session
        self.notifications = NotificationService(session)

    async def open_ticket(self, user: User, request: TicketRequest) -> SupportTicket:
        ticket = SupportTicket(
            user_id=user.id,
            subject=request.subject,
            message=request.message,
            status=TicketStatus.OPEN.value,
        )
        self.session.add(ticket)
        await self.session.commit()
        logger.info("support_ticket_opened", ticket_id=ticket.id, user_id=user.id)
        return ticket

    async def list_for_user(self, user_id: int) -> list[SupportTicket]:
        stmt = (
            select(SupportTicket)
            .where(SupportTicket.user_id == user_id)
            .order_by(SupportTicket.updated_at.desc())
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def list_all(self, status: TicketStatus | None = None) -> list[SupportTicket]:
        stmt = select(SupportTicket).order_by(SupportTicket.updated_at.desc())
        if status is not None:
            stmt = stmt.where(SupportTicket.status == status.value)
        return list((await self.session.execute(stmt)).scalars().all())

    async def get_ticket(self, viewer: User, ticket_id: int) -> SupportTicket:
        """
        Raises:
            ResourceNotFoundError: Ticket doesn't exist
            AuthorizationError: Viewer is neither support staff nor the ticket owner
        """
        ticket = await self.session.get(SupportTicket, ticket_id)
        if ticket is None:
            raise ResourceNotFoundError("SupportTicket", ticket_id)
        if not _is_support_staff(viewer) and ticket.user_id != viewer.id:
            raise AuthorizationError("ticket owner")
        return ticket

    async def list_replies(self, viewer: User, ticket_id: int) -> list[SupportTicketReply]:
        await self.get_ticket(viewer, ticket_id)
        stmt = (
            select(SupportTicketReply)
            .where(SupportTicketReply.ticket_id == ticket_id)
            .order_by(SupportTicketReply.created_at)
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def reply(self, author: User, ticket_id: int, message: str) -> SupportTicketReply:
        """
        Add a reply. Staff replies move an open ticket to in_progress and
        notify the ticket owner.

        Raises:
            InvalidStateError: Ticket is closed
        """
        ticket = await self.get_ticket(author, ticket_id)
        if ticket.status == TicketStatus.CLOSED.value:
            raise InvalidStateError("Cannot reply to a closed ticket")

        is_staff = _is_support_staff(author)
        reply = SupportTicketReply(
            ticket_id=ticket.id,
            user_id=author.id,
            message=message,
            is_from_staff=is_staff,
        )
        self.session.add(reply)

        if is_staff:
            if ticket.status == TicketStatus.OPEN.value:
                ticket.status = TicketStatus.IN_PROGRESS.value
            if ticket.user_id != author.id:
                self.notifications.notify(
                    ticket.user_id,
                    NotificationType.SYSTEM,
                    "Support Reply",
                    f"Support replied to your ticket: {ticket.subject}",
                    {"ticketId": ticket.id},
                )

        await self.session.commit()
        logger.info(
            "support_reply_added", ticket_id=ticket.id, author_id=author.id, is_staff=is_staff
        )
        return reply

    async def update_status(self, ticket_id: int, status: TicketStatus) -> SupportTicket:
        ticket = await self.session.get(SupportTicket, ticket_id)
        if ticket is None:
            raise ResourceNotFoundError("SupportTicket", ticket_id)

        ticket.status = status.value
        self.notifications.notify(
            ticket.user_id,
            NotificationType.SYSTEM,
            "Ticket Status Updated",
            f"Your ticket '{ticket.subject}' is now {status.value.replace('_', ' ')}.",
            {"ticketId": ticket.id, "status": status.value},
        )
        await self.session.commit()
        logger.info("support_ticket_status_updated", ticket_id=ticket_id, status=status.value)
        return ticket
