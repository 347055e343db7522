"""
Ledger Service - LeadCoin balances and subscription lifecycle.

NO DICTIONARIES - All operations use strongly typed domain models.

Every balance change follows the same pattern:
1. Lock the user row (SELECT FOR UPDATE)
2. Validate the non-negative balance invariant
3. Write a CoinTransaction row and the new balance
4. Flush, refresh and verify the stored balance
"""

import secrets
from datetime import UTC, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from leadhub.config import settings
from leadhub.db.models import (
    CoinPurchase,
    CoinTransaction,
    Coupon,
    CouponClaim,
    Lead,
    LeadCoinSettings,
    LeadView,
    Subscription,
    User,
    UserSubscription,
)
from leadhub.exceptions import (
    CouponError,
    DataIntegrityError,
    InsufficientLeadCoinsError,
    ResourceNotFoundError,
    UserNotFoundError,
)
from leadhub.models.api import (
    CoinPurchaseStatus,
    CoinTransactionType,
    CreateCouponRequest,
    LeadCoinSettingsRequest,
    NotificationType,
    SubscriptionStatus,
    UpdateCouponRequest,
    ViewType,
)
from leadhub.models.domain import (
    BalanceChange,
    CoinMovement,
    ExpirySweepResult,
    LeadViewCharge,
    ViewCosts,
)
from leadhub.observability.metrics import metrics
from leadhub.services.notifications import NotificationService

logger = get_logger(__name__)


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class LedgerService:
    """
    LeadCoin ledger and subscription lifecycle.

    Public operations commit; the private _credit/_debit helpers only
    flush so several movements can share one transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize ledger service with database session."""
        self.session = session
        self.notifications = NotificationService(session)

    # ========================================================================
    # Balance movements
    # ========================================================================

    async def credit_coins(self, movement: CoinMovement) -> BalanceChange:
        """Add LeadCoins to a user's balance and commit."""
        change = await self._credit(movement)
        await self.session.commit()
        return change

    async def debit_coins(self, movement: CoinMovement) -> BalanceChange:
        """
        Remove LeadCoins from a user's balance and commit.

        Raises:
            UserNotFoundError: User doesn't exist
            InsufficientLeadCoinsError: Balance lower than the amount
        """
        change = await self._debit(movement)
        await self.session.commit()
        return change

    async def grant_coins(
        self, admin_id: int, user_id: int, amount: int, description: str
    ) -> BalanceChange:
        """Admin top-up: credit coins and notify the recipient."""
        change = await self._credit(
            CoinMovement(
                user_id=user_id,
                amount=amount,
                type=CoinTransactionType.ADMIN_TOPUP,
                description=description,
                admin_id=admin_id,
            )
        )
        self.notifications.notify(
            user_id,
            NotificationType.COIN_RECEIVED,
            "LeadCoins Received",
            f"You received {amount} LeadCoins. {description}",
            {"amount": amount, "adminId": admin_id, "newBalance": change.balance_after},
        )
        await self.session.commit()

        logger.info(
            "admin_coins_granted",
            admin_id=admin_id,
            user_id=user_id,
            amount=amount,
            balance_after=change.balance_after,
        )
        return change

    # ========================================================================
    # Subscriptions
    # ========================================================================

    async def get_current_subscription(
        self, user_id: int, now: datetime | None = None
    ) -> UserSubscription | None:
        """
        Return the user's current subscription.

        Active records whose end_date has passed are marked expired on the
        way; when nothing is current, the oldest queued verified record
        whose start_date has arrived is promoted.
        """
        now = now or _utc_now()

        stmt = (
            select(UserSubscription)
            .where(
                UserSubscription.user_id == user_id,
                UserSubscription.status == SubscriptionStatus.ACTIVE.value,
                UserSubscription.payment_verified.is_(True),
            )
            .order_by(UserSubscription.start_date)
        )
        result = await self.session.execute(stmt)

        current: UserSubscription | None = None
        for record in result.scalars().all():
            if record.end_date is not None and record.end_date <= now:
                record.status = SubscriptionStatus.EXPIRED.value
                logger.info("subscription_expired", user_subscription_id=record.id)
            elif current is None:
                current = record

        if current is None:
            current = await self._promote_queued(user_id, now)

        await self.session.flush()
        return current

    async def get_subscription_history(self, user_id: int) -> list[UserSubscription]:
        """All subscription records of a user, newest first."""
        stmt = (
            select(UserSubscription)
            .where(UserSubscription.user_id == user_id)
            .order_by(UserSubscription.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def activate_subscription(
        self, user_subscription: UserSubscription, now: datetime | None = None
    ) -> UserSubscription:
        """
        Mark a paid subscription verified and grant its LeadCoins.

        The plan's allotment is credited to the user's balance exactly once.
        When another subscription is already current the new one is queued
        to start at the current one's end_date.
        """
        if user_subscription.payment_verified:
            return user_subscription

        now = now or _utc_now()
        plan = user_subscription.plan or await self.session.get(
            Subscription, user_subscription.subscription_id
        )
        if plan is None:
            raise ResourceNotFoundError("Subscription", user_subscription.subscription_id)

        current = await self.get_current_subscription(user_subscription.user_id, now)
        if current is not None and current.end_date is not None:
            start, queued = current.end_date, True
        else:
            start, queued = now, False

        user_subscription.start_date = start
        user_subscription.end_date = start + timedelta(days=plan.duration_days)
        user_subscription.payment_verified = True
        user_subscription.lead_coins_left = plan.lead_coins
        user_subscription.status = (
            SubscriptionStatus.PENDING.value if queued else SubscriptionStatus.ACTIVE.value
        )

        change = await self._credit(
            CoinMovement(
                user_id=user_subscription.user_id,
                amount=plan.lead_coins,
                type=CoinTransactionType.SUBSCRIPTION,
                description=f"Subscription purchase: {plan.name}",
            )
        )

        if queued:
            title = "Subscription Queued"
            message = (
                f"Your {plan.name} subscription starts on {start.date().isoformat()}, "
                "when your current plan ends."
            )
        else:
            title = "Subscription Activated"
            message = f"Your {plan.name} subscription is active. {plan.lead_coins} LeadCoins added."
        self.notifications.notify(
            user_subscription.user_id,
            NotificationType.SUBSCRIPTION_UPDATE,
            title,
            message,
            {"userSubscriptionId": user_subscription.id, "leadCoins": plan.lead_coins},
        )

        await self.session.commit()

        logger.info(
            "subscription_activated",
            user_subscription_id=user_subscription.id,
            user_id=user_subscription.user_id,
            queued=queued,
            lead_coins=plan.lead_coins,
            balance_after=change.balance_after,
        )
        return user_subscription

    async def expire_subscriptions(self, now: datetime | None = None) -> ExpirySweepResult:
        """
        Sweep lapsed records.

        - active subscriptions past end_date become expired
        - queued subscriptions are promoted for affected users
        - unpaid subscriptions and coin purchases past their payment
          session expiry are cancelled
        """
        now = now or _utc_now()

        lapsed_stmt = select(UserSubscription).where(
            UserSubscription.status == SubscriptionStatus.ACTIVE.value,
            UserSubscription.end_date.is_not(None),
            UserSubscription.end_date <= now,
        )
        lapsed = list((await self.session.execute(lapsed_stmt)).scalars().all())
        affected_users: set[int] = set()
        for record in lapsed:
            record.status = SubscriptionStatus.EXPIRED.value
            affected_users.add(record.user_id)
        await self.session.flush()

        promoted = 0
        for user_id in sorted(affected_users):
            if await self.get_current_subscription(user_id, now) is not None:
                promoted += 1

        unpaid_stmt = select(UserSubscription).where(
            UserSubscription.status == SubscriptionStatus.PENDING.value,
            UserSubscription.payment_verified.is_(False),
            UserSubscription.payment_expires_at.is_not(None),
            UserSubscription.payment_expires_at <= now,
        )
        unpaid = list((await self.session.execute(unpaid_stmt)).scalars().all())
        for record in unpaid:
            record.status = SubscriptionStatus.CANCELLED.value

        purchases_stmt = select(CoinPurchase).where(
            CoinPurchase.status == CoinPurchaseStatus.PENDING.value,
            CoinPurchase.payment_expires_at.is_not(None),
            CoinPurchase.payment_expires_at <= now,
        )
        purchases = list((await self.session.execute(purchases_stmt)).scalars().all())
        for purchase in purchases:
            purchase.status = CoinPurchaseStatus.CANCELLED.value

        await self.session.commit()

        sweep = ExpirySweepResult(
            expired_subscriptions=len(lapsed),
            promoted_subscriptions=promoted,
            abandoned_subscriptions=len(unpaid),
            abandoned_coin_purchases=len(purchases),
        )
        logger.info(
            "expiry_sweep_completed",
            expired=sweep.expired_subscriptions,
            promoted=sweep.promoted_subscriptions,
            abandoned_subscriptions=sweep.abandoned_subscriptions,
            abandoned_coin_purchases=sweep.abandoned_coin_purchases,
        )
        return sweep

    # ========================================================================
    # Coin purchases
    # ========================================================================

    async def complete_coin_purchase(self, purchase: CoinPurchase) -> CoinPurchase:
        """
        Credit a paid coin purchase.

        Idempotent: a completed purchase is returned unchanged.
        """
        if purchase.status == CoinPurchaseStatus.COMPLETED.value:
            return purchase

        purchase.status = CoinPurchaseStatus.COMPLETED.value
        change = await self._credit(
            CoinMovement(
                user_id=purchase.user_id,
                amount=purchase.lead_coins,
                type=CoinTransactionType.PURCHASE,
                description=f"Purchased {purchase.lead_coins} LeadCoins",
            )
        )

        current = await self.get_current_subscription(purchase.user_id)
        if current is not None:
            current.lead_coins_left += purchase.lead_coins

        self.notifications.notify(
            purchase.user_id,
            NotificationType.COIN_RECEIVED,
            "LeadCoins Purchased",
            f"{purchase.lead_coins} LeadCoins have been added to your balance.",
            {"amount": purchase.lead_coins, "coinPurchaseId": purchase.id},
        )
        await self.session.commit()

        logger.info(
            "coin_purchase_completed",
            coin_purchase_id=purchase.id,
            user_id=purchase.user_id,
            lead_coins=purchase.lead_coins,
            balance_after=change.balance_after,
        )
        return purchase

    # ========================================================================
    # Lead views
    # ========================================================================

    async def get_view_costs(self) -> ViewCosts:
        """Current view costs, falling back to configured defaults."""
        row = await self._get_settings_row()
        if row is None:
            return ViewCosts(
                contact_info=settings.default_contact_info_cost,
                detailed_info=settings.default_detailed_info_cost,
                full_access=settings.default_full_access_cost,
            )
        return ViewCosts(
            contact_info=row.contact_info_cost,
            detailed_info=row.detailed_info_cost,
            full_access=row.full_access_cost,
        )

    async def update_view_costs(self, admin_id: int, request: LeadCoinSettingsRequest) -> ViewCosts:
        """Replace the view costs (admin)."""
        row = await self._get_settings_row()
        if row is None:
            row = LeadCoinSettings(
                contact_info_cost=request.contact_info_cost,
                detailed_info_cost=request.detailed_info_cost,
                full_access_cost=request.full_access_cost,
            )
            self.session.add(row)
        else:
            row.contact_info_cost = request.contact_info_cost
            row.detailed_info_cost = request.detailed_info_cost
            row.full_access_cost = request.full_access_cost
        row.updated_by = admin_id
        await self.session.commit()

        logger.info(
            "view_costs_updated",
            admin_id=admin_id,
            contact_info=request.contact_info_cost,
            detailed_info=request.detailed_info_cost,
            full_access=request.full_access_cost,
        )
        return ViewCosts(
            contact_info=request.contact_info_cost,
            detailed_info=request.detailed_info_cost,
            full_access=request.full_access_cost,
        )

    async def charge_lead_view(
        self, user_id: int, lead_id: int, view_type: ViewType
    ) -> LeadViewCharge:
        """
        Unlock a lead for a user.

        Re-viewing a lead at an already unlocked view type costs nothing.
        Otherwise the cost is debited from the user's balance and from the
        current subscription's remaining allotment (floored at zero).

        Raises:
            ResourceNotFoundError: Lead doesn't exist
            InsufficientLeadCoinsError: Balance lower than the view cost
        """
        lead = await self.session.get(Lead, lead_id)
        if lead is None:
            raise ResourceNotFoundError("Lead", lead_id)

        if await self.has_viewed(user_id, lead_id, view_type):
            return await self._already_viewed(user_id, lead_id, view_type)

        costs = await self.get_view_costs()
        cost = costs.cost_for(view_type)

        change = await self._debit(
            CoinMovement(
                user_id=user_id,
                amount=cost,
                type=CoinTransactionType.SPENT,
                description=f"Viewed lead: {lead.title}",
            )
        )

        current = await self.get_current_subscription(user_id)
        if current is not None:
            current.lead_coins_left = max(0, current.lead_coins_left - cost)

        self.session.add(
            LeadView(user_id=user_id, lead_id=lead_id, coins_spent=cost, view_type=view_type)
        )

        try:
            await self.session.commit()
        except IntegrityError:
            # Concurrent request unlocked the same lead first
            await self.session.rollback()
            logger.warning("lead_view_race", user_id=user_id, lead_id=lead_id)
            return await self._already_viewed(user_id, lead_id, view_type)

        metrics.record_coins_spent(view_type.value, cost)
        logger.info(
            "lead_view_charged",
            user_id=user_id,
            lead_id=lead_id,
            view_type=view_type.value,
            coins_spent=cost,
            balance_after=change.balance_after,
        )
        return LeadViewCharge(
            lead_id=lead_id,
            view_type=view_type,
            coins_spent=cost,
            remaining_coins=change.balance_after,
            already_viewed=False,
        )

    async def has_viewed(
        self, user_id: int, lead_id: int, view_type: ViewType | None = None
    ) -> bool:
        """Whether the user has unlocked the lead (at the given view type, if any)."""
        stmt = select(LeadView.id).where(LeadView.user_id == user_id, LeadView.lead_id == lead_id)
        if view_type is not None:
            stmt = stmt.where(LeadView.view_type == view_type)
        result = await self.session.execute(stmt.limit(1))
        return result.scalar_one_or_none() is not None

    # ========================================================================
    # Coupons
    # ========================================================================

    async def create_coupon(self, admin_id: int, request: CreateCouponRequest) -> Coupon:
        """Create a coupon; a random code is generated when none is given."""
        coupon = Coupon(
            code=request.code or secrets.token_hex(4).upper(),
            max_uses=request.max_uses,
            current_uses=0,
            coin_amount=request.coin_amount,
            active=request.active,
            created_by=admin_id,
        )
        self.session.add(coupon)
        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            raise CouponError(f"Coupon code {coupon.code} already exists") from exc
        logger.info("coupon_created", coupon_id=coupon.id, admin_id=admin_id)
        return coupon

    async def list_coupons(self) -> list[Coupon]:
        """All coupons, newest first."""
        result = await self.session.execute(select(Coupon).order_by(Coupon.created_at.desc()))
        return list(result.scalars().all())

    async def update_coupon(self, coupon_id: int, request: UpdateCouponRequest) -> Coupon:
        """Update coupon limits or switch it on/off."""
        coupon = await self.session.get(Coupon, coupon_id)
        if coupon is None:
            raise ResourceNotFoundError("Coupon", coupon_id)

        for field, value in request.model_dump(exclude_none=True).items():
            setattr(coupon, field, value)
        await self.session.commit()
        return coupon

    async def claim_coupon(self, user_id: int, code: str) -> BalanceChange:
        """
        Redeem a coupon for LeadCoins.

        Raises:
            CouponError: Unknown, inactive, exhausted or already claimed
        """
        stmt = select(Coupon).where(Coupon.code == code.upper()).with_for_update()
        coupon = (await self.session.execute(stmt)).scalar_one_or_none()

        if coupon is None:
            raise CouponError("Invalid coupon code")
        if not coupon.active:
            raise CouponError("Coupon is no longer active")
        if coupon.current_uses >= coupon.max_uses:
            raise CouponError("Coupon usage limit reached")

        claim_stmt = select(CouponClaim.id).where(
            CouponClaim.coupon_id == coupon.id, CouponClaim.user_id == user_id
        )
        if (await self.session.execute(claim_stmt)).scalar_one_or_none() is not None:
            raise CouponError("You have already claimed this coupon")

        coupon.current_uses += 1
        self.session.add(CouponClaim(coupon_id=coupon.id, user_id=user_id))

        change = await self._credit(
            CoinMovement(
                user_id=user_id,
                amount=coupon.coin_amount,
                type=CoinTransactionType.COUPON,
                description=f"Coupon {coupon.code}",
            )
        )
        self.notifications.notify(
            user_id,
            NotificationType.COIN_RECEIVED,
            "Coupon Redeemed",
            f"You received {coupon.coin_amount} LeadCoins from coupon {coupon.code}.",
            {"amount": coupon.coin_amount, "couponId": coupon.id},
        )

        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            raise CouponError("You have already claimed this coupon") from exc

        logger.info("coupon_claimed", coupon_id=coupon.id, user_id=user_id)
        return change

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _credit(self, movement: CoinMovement) -> BalanceChange:
        user = await self._lock_user(movement.user_id)

        balance_before = user.lead_coins
        balance_after = balance_before + movement.amount
        change = await self._write_movement(user, movement.amount, balance_after, movement)

        metrics.record_coins_credited(movement.type.value, movement.amount)
        return change

    async def _debit(self, movement: CoinMovement) -> BalanceChange:
        user = await self._lock_user(movement.user_id)

        balance_before = user.lead_coins
        if balance_before < movement.amount:
            raise InsufficientLeadCoinsError(balance_before, movement.amount)

        balance_after = balance_before - movement.amount
        change = await self._write_movement(user, -movement.amount, balance_after, movement)

        crossed = [
            t
            for t in settings.low_balance_notification_thresholds
            if balance_after <= t < balance_before
        ]
        if crossed:
            self.notifications.notify_low_balance(user.id, min(crossed), balance_after)

        return change

    async def _write_movement(
        self, user: User, signed_amount: int, balance_after: int, movement: CoinMovement
    ) -> BalanceChange:
        balance_before = user.lead_coins
        transaction = CoinTransaction(
            user_id=user.id,
            admin_id=movement.admin_id,
            amount=signed_amount,
            balance_after=balance_after,
            type=movement.type,
            description=movement.description,
        )
        self.session.add(transaction)
        user.lead_coins = balance_after
        await self.session.flush()

        # Verify the stored balance
        await self.session.refresh(user)
        if user.lead_coins != balance_after:
            raise DataIntegrityError(
                f"LeadCoin balance mismatch: expected {balance_after}, got {user.lead_coins}"
            )

        return BalanceChange(
            user_id=user.id,
            balance_before=balance_before,
            balance_after=balance_after,
            transaction_id=transaction.id,
        )

    async def _lock_user(self, user_id: int) -> User:
        stmt = select(User).where(User.id == user_id).with_for_update()
        result = await self.session.execute(stmt)
        user = result.scalar_one_or_none()
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    async def _promote_queued(self, user_id: int, now: datetime) -> UserSubscription | None:
        stmt = (
            select(UserSubscription)
            .where(
                UserSubscription.user_id == user_id,
                UserSubscription.status == SubscriptionStatus.PENDING.value,
                UserSubscription.payment_verified.is_(True),
                UserSubscription.start_date <= now,
            )
            .order_by(UserSubscription.start_date)
            .limit(1)
        )
        queued = (await self.session.execute(stmt)).scalar_one_or_none()
        if queued is None:
            return None

        queued.status = SubscriptionStatus.ACTIVE.value
        logger.info("queued_subscription_promoted", user_subscription_id=queued.id)
        return queued

    async def _get_settings_row(self) -> LeadCoinSettings | None:
        stmt = select(LeadCoinSettings).order_by(LeadCoinSettings.id).limit(1)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def _already_viewed(
        self, user_id: int, lead_id: int, view_type: ViewType
    ) -> LeadViewCharge:
        user = await self.session.get(User, user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return LeadViewCharge(
            lead_id=lead_id,
            view_type=view_type,
            coins_spent=0,
            remaining_coins=user.lead_coins,
            already_viewed=True,
        )
