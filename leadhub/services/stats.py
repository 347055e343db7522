"""
Stats Service - LeadCoin economy figures and dashboard summaries.

Growth figures compare today's totals with the totals as they stood one
calendar month ago, as whole percentages.
"""

import calendar
from datetime import UTC, datetime

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leadhub.db.models import CoinTransaction, Lead, LeadView, SupportTicket, User, UserSubscription
from leadhub.models.api import (
    AdminDashboardResponse,
    CoinTransactionType,
    LeadCoinStatsResponse,
    SubscriptionStatus,
    TicketResponse,
    TicketStatus,
    TopCoinHolder,
    UserDashboardResponse,
    UserResponse,
    UserRole,
    UserStatus,
    UserSubscriptionResponse,
)
from leadhub.services.leads import LeadService
from leadhub.services.ledger import LedgerService
from leadhub.services.support import SupportService

TOP_HOLDERS_LIMIT = 10
RECENT_LIMIT = 5


def one_month_before(now: datetime) -> datetime:
    """Same day of the previous month, clamped to that month's length."""
    year, month = (now.year - 1, 12) if now.month == 1 else (now.year, now.month - 1)
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


def growth_percent(current: int, previous: int) -> int:
    """Whole-percent growth; 100 when there was nothing to grow from."""
    if previous <= 0:
        return 100
    # Integer form of floor(pct + 0.5)
    return (200 * (current - previous) + previous) // (2 * previous)


class StatsService:
    """Aggregates for the LeadCoin stats and dashboard endpoints."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize stats service with database session."""
        self.session = session

    async def _scalar(self, stmt) -> int:
        return int((await self.session.execute(stmt)).scalar_one() or 0)

    async def lead_coin_stats(self, now: datetime | None = None) -> LeadCoinStatsResponse:
        """Coins in circulation, this month's spend, today's views and the top holders."""
        now = now or datetime.now(UTC)
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)

        total_coins = await self._scalar(select(func.coalesce(func.sum(User.lead_coins), 0)))
        # Spend is ledgered as negative amounts
        spent_this_month = await self._scalar(
            select(func.coalesce(func.sum(-CoinTransaction.amount), 0)).where(
                CoinTransaction.type == CoinTransactionType.SPENT,
                CoinTransaction.created_at >= month_start,
            )
        )
        viewed_today = await self._scalar(
            select(func.count(LeadView.id)).where(LeadView.viewed_at >= day_start)
        )

        total_spent = func.coalesce(
            func.sum(
                case(
                    (CoinTransaction.type == CoinTransactionType.SPENT, -CoinTransaction.amount),
                    else_=0,
                )
            ),
            0,
        ).label("total_spent")
        top_stmt = (
            select(User.id, User.name, User.email, User.lead_coins, total_spent)
            .outerjoin(CoinTransaction, CoinTransaction.user_id == User.id)
            .where(
                User.role != UserRole.ADMIN.value,
                User.status == UserStatus.ACTIVE.value,
                User.verified.is_(True),
            )
            .group_by(User.id)
            .order_by(User.lead_coins.desc(), User.id)
            .limit(TOP_HOLDERS_LIMIT)
        )
        rows = (await self.session.execute(top_stmt)).all()

        return LeadCoinStatsResponse(
            total_coins=total_coins,
            coins_spent_this_month=spent_this_month,
            leads_viewed_today=viewed_today,
            top_users=[
                TopCoinHolder(
                    id=row.id,
                    name=row.name,
                    email=row.email,
                    lead_coins=row.lead_coins,
                    total_spent=row.total_spent,
                )
                for row in rows
            ],
        )

    async def admin_dashboard(self, now: datetime | None = None) -> AdminDashboardResponse:
        now = now or datetime.now(UTC)
        month_ago = one_month_before(now)

        total_users = await self._scalar(select(func.count(User.id)))
        active_users = await self._scalar(
            select(func.count(User.id)).where(User.status == UserStatus.ACTIVE.value)
        )
        total_leads = await self._scalar(select(func.count(Lead.id)))
        total_tickets = await self._scalar(select(func.count(SupportTicket.id)))
        open_tickets = await self._scalar(
            select(func.count(SupportTicket.id)).where(
                SupportTicket.status == TicketStatus.OPEN.value
            )
        )
        active_subscriptions = await self._scalar(
            select(func.count(UserSubscription.id)).where(
                UserSubscription.status == SubscriptionStatus.ACTIVE.value,
                UserSubscription.payment_verified.is_(True),
            )
        )

        previous_users = await self._scalar(
            select(func.count(User.id)).where(User.created_at < month_ago)
        )
        previous_leads = await self._scalar(
            select(func.count(Lead.id)).where(Lead.created_at < month_ago)
        )
        previous_tickets = await self._scalar(
            select(func.count(SupportTicket.id)).where(SupportTicket.created_at < month_ago)
        )

        recent_users = (
            await self.session.execute(
                select(User).order_by(User.created_at.desc()).limit(RECENT_LIMIT)
            )
        ).scalars().all()
        recent_tickets = (
            await self.session.execute(
                select(SupportTicket).order_by(SupportTicket.created_at.desc()).limit(RECENT_LIMIT)
            )
        ).scalars().all()

        return AdminDashboardResponse(
            total_users=total_users,
            active_users=active_users,
            total_leads=total_leads,
            open_tickets=open_tickets,
            active_subscriptions=active_subscriptions,
            user_growth=growth_percent(total_users, previous_users),
            lead_growth=growth_percent(total_leads, previous_leads),
            ticket_growth=growth_percent(total_tickets, previous_tickets),
            recent_users=[UserResponse.model_validate(user) for user in recent_users],
            recent_tickets=[TicketResponse.model_validate(ticket) for ticket in recent_tickets],
        )

    async def user_dashboard(
        self, user: User, now: datetime | None = None
    ) -> UserDashboardResponse:
        """Balance, current subscription, unlocked leads and support tickets for one user."""
        subscription = await LedgerService(self.session).get_current_subscription(user.id, now)
        views = await LeadService(self.session).views_for_user(user.id)
        tickets = await SupportService(self.session).list_for_user(user.id)

        return UserDashboardResponse(
            lead_coins=user.lead_coins,
            leads_viewed=len(views),
            open_tickets=sum(1 for ticket in tickets if ticket.status == TicketStatus.OPEN.value),
            subscription=(
                UserSubscriptionResponse.model_validate(subscription) if subscription else None
            ),
            recent_views=views[:RECENT_LIMIT],
            recent_tickets=[
                TicketResponse.model_validate(ticket) for ticket in tickets[:RECENT_LIMIT]
            ],
        )
