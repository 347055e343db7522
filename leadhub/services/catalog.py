"""
Catalog Service - Subscription plans and LeadCoin packages.

Admin-managed purchase templates.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from leadhub.db.models import LeadCoinPackage, Subscription
from leadhub.exceptions import ResourceNotFoundError
from leadhub.models.api import (
    CreatePlanRequest,
    PackageRequest,
    UpdatePackageRequest,
    UpdatePlanRequest,
)

logger = get_logger(__name__)


class CatalogService:
    """CRUD over plans and coin packages."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize catalog service with database session."""
        self.session = session

    # ========================================================================
    # Plans
    # ========================================================================

    async def list_plans(self, include_inactive: bool = False) -> list[Subscription]:
        """Plans ordered by price; inactive ones only on request."""
        stmt = select(Subscription).order_by(Subscription.price, Subscription.id)
        if not include_inactive:
            stmt = stmt.where(Subscription.active.is_(True))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_plan(self, plan_id: int) -> Subscription:
        """Raises ResourceNotFoundError when missing."""
        plan = await self.session.get(Subscription, plan_id)
        if plan is None:
            raise ResourceNotFoundError("Subscription", plan_id)
        return plan

    async def create_plan(self, request: CreatePlanRequest) -> Subscription:
        plan = Subscription(
            name=request.name,
            description=request.description,
            price=request.price,
            duration_days=request.duration_days,
            lead_coins=request.lead_coins,
            features=request.features,
            active=True,
        )
        self.session.add(plan)
        await self.session.commit()
        logger.info("plan_created", plan_id=plan.id, name=plan.name)
        return plan

    async def update_plan(self, plan_id: int, request: UpdatePlanRequest) -> Subscription:
        plan = await self.get_plan(plan_id)
        for field, value in request.model_dump(exclude_none=True).items():
            setattr(plan, field, value)
        await self.session.commit()
        logger.info("plan_updated", plan_id=plan_id)
        return plan

    async def deactivate_plan(self, plan_id: int) -> Subscription:
        """
        Switch a plan off.

        Plans are referenced by user subscriptions, so they are never
        physically deleted.
        """
        plan = await self.get_plan(plan_id)
        plan.active = False
        await self.session.commit()
        logger.info("plan_deactivated", plan_id=plan_id)
        return plan

    # ========================================================================
    # Packages
    # ========================================================================

    async def list_packages(self, include_inactive: bool = False) -> list[LeadCoinPackage]:
        stmt = select(LeadCoinPackage).order_by(LeadCoinPackage.price, LeadCoinPackage.id)
        if not include_inactive:
            stmt = stmt.where(LeadCoinPackage.active.is_(True))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_package(self, package_id: int) -> LeadCoinPackage:
        """Raises ResourceNotFoundError when missing."""
        package = await self.session.get(LeadCoinPackage, package_id)
        if package is None:
            raise ResourceNotFoundError("LeadCoinPackage", package_id)
        return package

    async def create_package(self, request: PackageRequest) -> LeadCoinPackage:
        package = LeadCoinPackage(
            name=request.name,
            description=request.description,
            lead_coins=request.lead_coins,
            price=request.price,
            active=request.active,
        )
        self.session.add(package)
        await self.session.commit()
        logger.info("package_created", package_id=package.id, lead_coins=package.lead_coins)
        return package

    async def update_package(
        self, package_id: int, request: UpdatePackageRequest
    ) -> LeadCoinPackage:
        package = await self.get_package(package_id)
        for field, value in request.model_dump(exclude_none=True).items():
            setattr(package, field, value)
        await self.session.commit()
        logger.info("package_updated", package_id=package_id)
        return package

    async def deactivate_package(self, package_id: int) -> LeadCoinPackage:
        """Switch a package off; purchases keep referencing it."""
        package = await self.get_package(package_id)
        package.active = False
        await self.session.commit()
        logger.info("package_deactivated", package_id=package_id)
        return package
