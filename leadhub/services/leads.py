"""
Lead Service - Lead catalogue, categories and view history.

Contact details of a lead are masked until the viewer has unlocked it,
unless the viewer is an admin or the lead's creator.
"""

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from leadhub.db.models import Lead, LeadCategory, LeadView, User
from leadhub.exceptions import AuthorizationError, InvalidStateError, ResourceNotFoundError
from leadhub.models.api import (
    CategoryRequest,
    LeadRequest,
    LeadResponse,
    LeadViewRecord,
    UpdateLeadRequest,
    UserRole,
    WorkType,
)

logger = get_logger(__name__)


def to_lead_response(lead: Lead, unlocked: bool) -> LeadResponse:
    """Render a lead, hiding contact fields unless unlocked."""
    return LeadResponse(
        id=lead.id,
        title=lead.title,
        description=lead.description,
        category_id=lead.category_id,
        category_name=lead.category_name,
        skills=list(lead.skills or []),
        work_type=WorkType(lead.work_type),
        duration=lead.duration,
        location=lead.location,
        price=lead.price,
        total_members=lead.total_members,
        images=list(lead.images or []),
        email=lead.email if unlocked else None,
        contact_number=lead.contact_number if unlocked else None,
        creator_id=lead.creator_id,
        unlocked=unlocked,
        created_at=lead.created_at,
    )


class LeadService:
    """Lead CRUD and visibility rules."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize lead service with database session."""
        self.session = session

    # ========================================================================
    # Leads
    # ========================================================================

    async def list_leads(
        self,
        viewer: User,
        category_id: int | None = None,
        search: str | None = None,
    ) -> list[LeadResponse]:
        """Leads newest first, masked per viewer."""
        stmt = select(Lead).order_by(Lead.created_at.desc())
        if category_id is not None:
            stmt = stmt.where(Lead.category_id == category_id)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(
                or_(
                    Lead.title.ilike(pattern),
                    Lead.description.ilike(pattern),
                    Lead.location.ilike(pattern),
                )
            )
        leads = list((await self.session.execute(stmt)).scalars().all())

        unlocked_ids = await self._unlocked_lead_ids(viewer.id)
        return [
            to_lead_response(lead, self._can_see_contact(viewer, lead, unlocked_ids))
            for lead in leads
        ]

    async def get_lead(self, viewer: User, lead_id: int) -> LeadResponse:
        """Raises ResourceNotFoundError when missing."""
        lead = await self._get(lead_id)
        unlocked_ids = await self._unlocked_lead_ids(viewer.id)
        return to_lead_response(lead, self._can_see_contact(viewer, lead, unlocked_ids))

    async def create_lead(self, creator: User, request: LeadRequest) -> Lead:
        category_name = request.category_name
        if request.category_id is not None:
            category = await self.session.get(LeadCategory, request.category_id)
            if category is None:
                raise ResourceNotFoundError("LeadCategory", request.category_id)
            category_name = category.name

        lead = Lead(
            title=request.title,
            description=request.description,
            category_id=request.category_id,
            category_name=category_name,
            skills=request.skills,
            work_type=request.work_type.value,
            duration=request.duration,
            location=request.location,
            price=request.price,
            total_members=request.total_members,
            email=request.email,
            contact_number=request.contact_number,
            images=request.images,
            creator_id=creator.id,
        )
        self.session.add(lead)
        await self.session.commit()
        logger.info("lead_created", lead_id=lead.id, creator_id=creator.id)
        return lead

    async def update_lead(self, editor: User, lead_id: int, request: UpdateLeadRequest) -> Lead:
        lead = await self._get(lead_id)
        self._require_owner(editor, lead)

        changes = request.model_dump(exclude_none=True)
        if "work_type" in changes:
            changes["work_type"] = request.work_type.value if request.work_type else None
        if request.category_id is not None:
            category = await self.session.get(LeadCategory, request.category_id)
            if category is None:
                raise ResourceNotFoundError("LeadCategory", request.category_id)
            changes["category_name"] = category.name

        for field, value in changes.items():
            setattr(lead, field, value)
        await self.session.commit()
        logger.info("lead_updated", lead_id=lead_id, editor_id=editor.id)
        return lead

    async def delete_lead(self, editor: User, lead_id: int) -> None:
        lead = await self._get(lead_id)
        self._require_owner(editor, lead)
        await self.session.delete(lead)
        await self.session.commit()
        logger.info("lead_deleted", lead_id=lead_id, editor_id=editor.id)

    # ========================================================================
    # View history
    # ========================================================================

    async def views_for_user(self, user_id: int) -> list[LeadViewRecord]:
        """A user's unlocked leads, newest first."""
        stmt = (
            select(LeadView)
            .where(LeadView.user_id == user_id)
            .order_by(LeadView.viewed_at.desc())
        )
        views = (await self.session.execute(stmt)).scalars().all()
        return [self._view_record(view) for view in views]

    async def all_views(self, limit: int = 500) -> list[LeadViewRecord]:
        """Lead view report across all users (staff)."""
        stmt = select(LeadView).order_by(LeadView.viewed_at.desc()).limit(limit)
        views = (await self.session.execute(stmt)).scalars().all()
        return [self._view_record(view) for view in views]

    # ========================================================================
    # Categories
    # ========================================================================

    async def list_categories(self, include_inactive: bool = False) -> list[LeadCategory]:
        stmt = select(LeadCategory).order_by(LeadCategory.name)
        if not include_inactive:
            stmt = stmt.where(LeadCategory.active.is_(True))
        return list((await self.session.execute(stmt)).scalars().all())

    async def create_category(self, request: CategoryRequest) -> LeadCategory:
        """
        Raises:
            InvalidStateError: Category name already exists
        """
        category = LeadCategory(
            name=request.name,
            description=request.description,
            active=True if request.active is None else request.active,
        )
        self.session.add(category)
        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            raise InvalidStateError(f"Category '{request.name}' already exists") from exc
        logger.info("lead_category_created", category_id=category.id)
        return category

    async def update_category(self, category_id: int, request: CategoryRequest) -> LeadCategory:
        category = await self.session.get(LeadCategory, category_id)
        if category is None:
            raise ResourceNotFoundError("LeadCategory", category_id)

        category.name = request.name
        if request.description is not None:
            category.description = request.description
        if request.active is not None:
            category.active = request.active
        await self.session.commit()
        return category

    async def deactivate_category(self, category_id: int) -> LeadCategory:
        """Leads keep their category; it just stops being offered."""
        category = await self.session.get(LeadCategory, category_id)
        if category is None:
            raise ResourceNotFoundError("LeadCategory", category_id)
        category.active = False
        await self.session.commit()
        return category

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _get(self, lead_id: int) -> Lead:
        lead = await self.session.get(Lead, lead_id)
        if lead is None:
            raise ResourceNotFoundError("Lead", lead_id)
        return lead

    async def _unlocked_lead_ids(self, user_id: int) -> set[int]:
        stmt = select(LeadView.lead_id).where(LeadView.user_id == user_id)
        return set((await self.session.execute(stmt)).scalars().all())

    @staticmethod
    def _can_see_contact(viewer: User, lead: Lead, unlocked_ids: set[int]) -> bool:
        return (
            viewer.role == UserRole.ADMIN.value
            or lead.creator_id == viewer.id
            or lead.id in unlocked_ids
        )

    @staticmethod
    def _require_owner(editor: User, lead: Lead) -> None:
        if editor.role == UserRole.ADMIN.value:
            return
        if editor.role == UserRole.SUBADMIN.value and lead.creator_id == editor.id:
            return
        raise AuthorizationError("admin or lead creator")

    @staticmethod
    def _view_record(view: LeadView) -> LeadViewRecord:
        return LeadViewRecord(
            id=view.id,
            user_id=view.user_id,
            lead_id=view.lead_id,
            lead_title=view.lead.title if view.lead is not None else None,
            coins_spent=view.coins_spent,
            view_type=view.view_type,
            viewed_at=view.viewed_at,
        )
