"""
Payment Service - Payment sessions and their verification.

NO DICTIONARIES - All operations use strongly typed domain models.

A purchase starts as a pending record (UserSubscription or CoinPurchase)
pointing at a provider checkout session. The record is settled either by
the client polling verify_payment or by the provider webhook; both paths
converge on the ledger, which makes settlement idempotent.
"""

from datetime import UTC, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from leadhub.config import settings
from leadhub.db.models import (
    CoinPurchase,
    LeadCoinPackage,
    Subscription,
    User,
    UserSubscription,
)
from leadhub.exceptions import PaymentProviderError, PlanInactiveError, ResourceNotFoundError
from leadhub.models.api import (
    CoinPurchaseResponse,
    CoinPurchaseStatus,
    PaymentVerificationResponse,
    PurchaseKind,
    SubscriptionStatus,
    UserSubscriptionResponse,
)
from leadhub.models.domain import PaymentSession
from leadhub.observability.metrics import metrics
from leadhub.observability.tracing import trace_operation
from leadhub.services.ledger import LedgerService
from leadhub.services.payment_provider import CheckoutRequest, PaymentProvider, WebhookEvent
from leadhub.services.qr_codes import payment_qr_data_url

logger = get_logger(__name__)


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class PaymentService:
    """Create and settle payment sessions for plans and coin packages."""

    def __init__(self, session: AsyncSession, provider: PaymentProvider | None) -> None:
        """
        Initialize payment service.

        Args:
            session: Database session
            provider: Payment provider, None when payments are not configured
        """
        self.session = session
        self.provider = provider
        self.ledger = LedgerService(session)

    # ========================================================================
    # Session creation
    # ========================================================================

    async def create_subscription_session(self, user: User, plan_id: int) -> PaymentSession:
        """
        Start paying for a plan.

        Raises:
            ResourceNotFoundError: Plan doesn't exist
            PlanInactiveError: Plan is switched off
            PaymentProviderError: Provider missing or failing
        """
        plan = await self.session.get(Subscription, plan_id)
        if plan is None:
            raise ResourceNotFoundError("Subscription", plan_id)
        if not plan.active:
            raise PlanInactiveError(plan_id)

        now = _utc_now()
        payment_session = await self._open_session(
            user,
            kind=PurchaseKind.SUBSCRIPTION,
            item_id=plan.id,
            name=plan.name,
            description=plan.description,
            price=plan.price,
            now=now,
        )
        expires_at = datetime.fromtimestamp(payment_session.expires_at, UTC)

        existing = await self._find_user_subscription(payment_session.session_id)
        if existing is not None:
            logger.info(
                "subscription_session_already_recorded",
                session_id=payment_session.session_id,
                user_subscription_id=existing.id,
            )
        else:
            pending = await self._find_pending_for_plan(user.id, plan.id)
            if pending is not None:
                # Reuse the unpaid record for the same plan
                pending.payment_session_id = payment_session.session_id
                pending.payment_expires_at = expires_at
                logger.info(
                    "pending_subscription_repointed",
                    user_subscription_id=pending.id,
                    session_id=payment_session.session_id,
                )
            else:
                self.session.add(
                    UserSubscription(
                        user_id=user.id,
                        subscription_id=plan.id,
                        status=SubscriptionStatus.PENDING.value,
                        payment_verified=False,
                        lead_coins_left=plan.lead_coins,
                        start_date=now,
                        end_date=now + timedelta(days=plan.duration_days),
                        payment_session_id=payment_session.session_id,
                        payment_expires_at=expires_at,
                    )
                )

        await self.session.commit()
        return payment_session

    async def create_coin_session(self, user: User, package_id: int) -> PaymentSession:
        """
        Start paying for a LeadCoin package.

        Raises:
            ResourceNotFoundError: Package doesn't exist
            PlanInactiveError: Package is switched off
            PaymentProviderError: Provider missing or failing
        """
        package = await self.session.get(LeadCoinPackage, package_id)
        if package is None:
            raise ResourceNotFoundError("LeadCoinPackage", package_id)
        if not package.active:
            raise PlanInactiveError(package_id)

        payment_session = await self._open_session(
            user,
            kind=PurchaseKind.COINS,
            item_id=package.id,
            name=package.name,
            description=package.description or f"{package.lead_coins} LeadCoins",
            price=package.price,
            now=_utc_now(),
        )

        self.session.add(
            CoinPurchase(
                user_id=user.id,
                package_id=package.id,
                status=CoinPurchaseStatus.PENDING.value,
                lead_coins=package.lead_coins,
                amount=package.price,
                payment_session_id=payment_session.session_id,
                payment_expires_at=datetime.fromtimestamp(payment_session.expires_at, UTC),
            )
        )
        await self.session.commit()
        return payment_session

    # ========================================================================
    # Verification
    # ========================================================================

    async def verify_payment(
        self, user: User, session_id: str, coins: bool = False
    ) -> PaymentVerificationResponse:
        """
        Check a payment session and settle it when paid.

        Never raises for provider or lookup problems: the outcome is
        reported in the response so a polling client can decide.
        """
        kind = PurchaseKind.COINS if coins else PurchaseKind.SUBSCRIPTION
        with trace_operation("payment_verification", session_id=session_id, kind=kind.value):
            if coins:
                response = await self._verify_coin_purchase(user, session_id)
            else:
                response = await self._verify_subscription(user, session_id)

        if response.verified:
            outcome = "verified"
        elif response.error:
            outcome = "error"
        elif response.session_status == "expired":
            outcome = "expired"
        else:
            outcome = "pending"
        metrics.record_verification(kind.value, outcome)
        logger.info(
            "payment_verification_checked",
            session_id=session_id,
            user_id=user.id,
            kind=kind.value,
            outcome=outcome,
        )
        return response

    async def handle_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        """
        Apply a provider webhook.

        Raises:
            PaymentProviderError: Provider not configured
            WebhookVerificationError: Invalid signature or payload
        """
        provider = self._require_provider()
        event = await provider.verify_webhook(payload, signature)

        if event.session_id is None:
            logger.info("webhook_ignored", event_type=event.event_type, event_id=event.event_id)
            return event

        paid_events = ("checkout.session.completed", "checkout.session.async_payment_succeeded")
        failed_events = ("checkout.session.expired", "checkout.session.async_payment_failed")

        if event.event_type in paid_events and event.payment_status == "paid":
            await self._settle_paid(event.session_id)
        elif event.event_type in failed_events:
            await self._settle_expired(event.session_id)
        else:
            logger.info(
                "webhook_ignored",
                event_type=event.event_type,
                event_id=event.event_id,
                payment_status=event.payment_status,
            )
        return event

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    def _require_provider(self) -> PaymentProvider:
        if self.provider is None:
            raise PaymentProviderError("Payment provider is not configured")
        return self.provider

    async def _open_session(
        self,
        user: User,
        kind: PurchaseKind,
        item_id: int,
        name: str,
        description: str | None,
        price: int,
        now: datetime,
    ) -> PaymentSession:
        provider = self._require_provider()
        ttl = timedelta(minutes=settings.payment_session_ttl_minutes)
        expires_at = int((now + ttl).timestamp())

        checkout = await provider.create_checkout_session(
            CheckoutRequest(
                amount_minor=price,
                currency=settings.stripe_currency,
                product_name=name,
                product_description=description,
                customer_email=user.email,
                user_id=user.id,
                item_id=item_id,
                kind=kind.value,
                expires_at=expires_at,
            )
        )

        metrics.record_payment_session(kind.value)
        logger.info(
            "payment_session_created",
            session_id=checkout.session_id,
            user_id=user.id,
            kind=kind.value,
            item_id=item_id,
        )

        return PaymentSession(
            session_id=checkout.session_id,
            client_secret=checkout.client_secret,
            payment_url=checkout.payment_url,
            qr_code_data_url=payment_qr_data_url(checkout.payment_url),
            expires_at=checkout.expires_at,
            kind=kind,
        )

    async def _verify_subscription(
        self, user: User, session_id: str
    ) -> PaymentVerificationResponse:
        record = await self._find_user_subscription(session_id, user_id=user.id)
        if record is None:
            return PaymentVerificationResponse(
                verified=False, error="No subscription found for this payment session"
            )

        if record.payment_verified:
            return PaymentVerificationResponse(
                verified=True,
                session_status="already_verified",
                user_subscription=UserSubscriptionResponse.model_validate(record),
                lead_coins=await self._balance(user.id),
            )

        if record.status == SubscriptionStatus.CANCELLED.value:
            return PaymentVerificationResponse(verified=False, session_status="expired")

        try:
            status = await self._require_provider().get_checkout_status(session_id)
        except PaymentProviderError as exc:
            logger.warning("payment_status_lookup_failed", session_id=session_id, error=str(exc))
            return PaymentVerificationResponse(verified=False, error=exc.message)

        if status.is_paid:
            await self.ledger.activate_subscription(record)
            return PaymentVerificationResponse(
                verified=True,
                session_status="paid",
                user_subscription=UserSubscriptionResponse.model_validate(record),
                lead_coins=await self._balance(user.id),
            )

        if status.is_expired or self._payment_window_closed(record.payment_expires_at):
            record.status = SubscriptionStatus.CANCELLED.value
            await self.session.commit()
            return PaymentVerificationResponse(verified=False, session_status="expired")

        return PaymentVerificationResponse(
            verified=False, pending=True, session_status=status.session_status
        )

    async def _verify_coin_purchase(
        self, user: User, session_id: str
    ) -> PaymentVerificationResponse:
        purchase = await self._find_coin_purchase(session_id, user_id=user.id)
        if purchase is None:
            return PaymentVerificationResponse(
                verified=False, error="No coin purchase found for this payment session"
            )

        if purchase.status == CoinPurchaseStatus.COMPLETED.value:
            return PaymentVerificationResponse(
                verified=True,
                session_status="already_verified",
                coin_purchase=CoinPurchaseResponse.model_validate(purchase),
                lead_coins=await self._balance(user.id),
            )

        if purchase.status in (CoinPurchaseStatus.CANCELLED.value, CoinPurchaseStatus.FAILED.value):
            return PaymentVerificationResponse(verified=False, session_status="expired")

        try:
            status = await self._require_provider().get_checkout_status(session_id)
        except PaymentProviderError as exc:
            logger.warning("payment_status_lookup_failed", session_id=session_id, error=str(exc))
            return PaymentVerificationResponse(verified=False, error=exc.message)

        if status.is_paid:
            await self.ledger.complete_coin_purchase(purchase)
            return PaymentVerificationResponse(
                verified=True,
                session_status="paid",
                coin_purchase=CoinPurchaseResponse.model_validate(purchase),
                lead_coins=await self._balance(user.id),
            )

        if status.is_expired or self._payment_window_closed(purchase.payment_expires_at):
            purchase.status = CoinPurchaseStatus.CANCELLED.value
            await self.session.commit()
            return PaymentVerificationResponse(verified=False, session_status="expired")

        return PaymentVerificationResponse(
            verified=False, pending=True, session_status=status.session_status
        )

    async def _settle_paid(self, session_id: str) -> None:
        record = await self._find_user_subscription(session_id)
        if record is not None:
            await self.ledger.activate_subscription(record)
            logger.info("webhook_subscription_settled", session_id=session_id)
            return

        purchase = await self._find_coin_purchase(session_id)
        if purchase is not None:
            await self.ledger.complete_coin_purchase(purchase)
            logger.info("webhook_coin_purchase_settled", session_id=session_id)
            return

        logger.warning("webhook_session_unknown", session_id=session_id)

    async def _settle_expired(self, session_id: str) -> None:
        record = await self._find_user_subscription(session_id)
        if record is not None and not record.payment_verified:
            record.status = SubscriptionStatus.CANCELLED.value

        purchase = await self._find_coin_purchase(session_id)
        if purchase is not None and purchase.status == CoinPurchaseStatus.PENDING.value:
            purchase.status = CoinPurchaseStatus.CANCELLED.value

        await self.session.commit()
        logger.info("webhook_session_expired", session_id=session_id)

    @staticmethod
    def _payment_window_closed(expires_at: datetime | None) -> bool:
        return expires_at is not None and expires_at <= _utc_now()

    async def _balance(self, user_id: int) -> int:
        stmt = select(User.lead_coins).where(User.id == user_id)
        balance = (await self.session.execute(stmt)).scalar_one_or_none()
        return balance or 0

    async def _find_user_subscription(
        self, session_id: str, user_id: int | None = None
    ) -> UserSubscription | None:
        stmt = select(UserSubscription).where(UserSubscription.payment_session_id == session_id)
        if user_id is not None:
            stmt = stmt.where(UserSubscription.user_id == user_id)
        result = await self.session.execute(stmt.with_for_update())
        return result.scalar_one_or_none()

    async def _find_pending_for_plan(self, user_id: int, plan_id: int) -> UserSubscription | None:
        stmt = (
            select(UserSubscription)
            .where(
                UserSubscription.user_id == user_id,
                UserSubscription.subscription_id == plan_id,
                UserSubscription.status == SubscriptionStatus.PENDING.value,
                UserSubscription.payment_verified.is_(False),
            )
            .limit(1)
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def _find_coin_purchase(
        self, session_id: str, user_id: int | None = None
    ) -> CoinPurchase | None:
        stmt = select(CoinPurchase).where(CoinPurchase.payment_session_id == session_id)
        if user_id is not None:
            stmt = stmt.where(CoinPurchase.user_id == user_id)
        result = await self.session.execute(stmt.with_for_update())
        return result.scalar_one_or_none()
