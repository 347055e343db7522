"""
Purchase Flow - Payment session creation through verified balance.

Requests a payment session, remembers it as pending, and runs the
verifier. On success the balance-related cache keys are invalidated and
the user's balance is refetched.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from functools import partial

from structlog import get_logger

from leadhub.client.api_client import ApiClient
from leadhub.client.config import ClientSettings
from leadhub.client.errors import InvalidResponseError
from leadhub.client.pending_store import PendingPayment, PendingPaymentStore
from leadhub.client.query_cache import (
    AUTH_ME,
    CURRENT_SUBSCRIPTION,
    SUBSCRIPTION_HISTORY,
    QueryCache,
)
from leadhub.client.verification import (
    Notice,
    PaymentVerifier,
    Verified,
    VerifierState,
)
from leadhub.models.api import PaymentSessionResponse, PurchaseKind

logger = get_logger(__name__)

# Terminal states that make the pending record useless
CLEARING_STATES = frozenset({VerifierState.SUCCESS, VerifierState.EXPIRED, VerifierState.ERROR})


class PurchaseFlow:
    """
    One purchase at a time, from session creation to verified balance.

    Usage:
        flow = PurchaseFlow(api, cache, PendingPaymentStore(path), on_notice=print)
        session = await flow.start_subscription_purchase(plan_id=2)
        # user pays at session.payment_url
        state = await flow.wait()
    """

    def __init__(
        self,
        api: ApiClient,
        cache: QueryCache,
        store: PendingPaymentStore | None = None,
        *,
        settings: ClientSettings | None = None,
        on_notice: Callable[[Notice], None] | None = None,
        on_close: Callable[[], None] | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.api = api
        self.cache = cache
        self.settings = settings or api.settings
        self.store = store or PendingPaymentStore(self.settings.pending_state_path)
        self.verifier: PaymentVerifier | None = None
        self._on_notice = on_notice
        self._on_close = on_close
        self._clock = clock
        self._sleep = sleep

    async def start_subscription_purchase(self, plan_id: int) -> PaymentSessionResponse:
        """Open a payment session for a plan and start verifying it."""
        purchase = await self.api.purchase_subscription(plan_id)
        self._begin(purchase.payment_session, PurchaseKind.SUBSCRIPTION)
        return purchase.payment_session

    async def start_coin_purchase(self, package_id: int) -> PaymentSessionResponse:
        """Open a payment session for a coin package and start verifying it."""
        purchase = await self.api.buy_coins(package_id)
        session = purchase.payment_session
        if purchase.session_id and purchase.session_id != session.session_id:
            raise InvalidResponseError("Payment session id mismatch")
        self._begin(session, PurchaseKind.COINS)
        return session

    def resume(self) -> PaymentVerifier | None:
        """Continue verifying a remembered session, if it hasn't expired."""
        pending = self.store.load()
        if pending is None:
            return None
        if pending.expires_at <= self._clock():
            logger.info("pending_payment_expired", session_id=pending.session_id)
            self.store.clear()
            return None

        session = PaymentSessionResponse(
            session_id=pending.session_id, expires_at=pending.expires_at
        )
        logger.info("pending_payment_resumed", session_id=pending.session_id)
        return self._start_verifier(session, pending.kind)

    def cancel(self) -> None:
        """Stop verification; the pending record is kept for resume()."""
        if self.verifier is not None:
            self.verifier.cancel()

    async def wait(self) -> VerifierState | None:
        if self.verifier is None:
            return None
        return await self.verifier.wait()

    def _begin(self, session: PaymentSessionResponse, kind: PurchaseKind) -> None:
        self.store.save(
            PendingPayment(session_id=session.session_id, kind=kind, expires_at=session.expires_at)
        )
        self._start_verifier(session, kind)

    def _start_verifier(
        self, session: PaymentSessionResponse, kind: PurchaseKind
    ) -> PaymentVerifier:
        if self.verifier is not None and not self.verifier.is_terminal:
            self.verifier.cancel()

        self.verifier = PaymentVerifier(
            session,
            partial(
                self.api.verify_payment, session.session_id, coins=kind == PurchaseKind.COINS
            ),
            settings=self.settings,
            on_success=self._refresh_balance,
            on_notice=self._on_notice,
            on_state_change=self._on_state_change,
            on_close=self._on_close,
            clock=self._clock,
            sleep=self._sleep,
        )
        self.verifier.start()
        return self.verifier

    async def _refresh_balance(self, outcome: Verified) -> None:
        self.cache.invalidate(AUTH_ME, CURRENT_SUBSCRIPTION, SUBSCRIPTION_HISTORY)
        await self.cache.fetch(AUTH_ME, self.api.me)

    def _on_state_change(self, state: VerifierState) -> None:
        if state in CLEARING_STATES:
            self.store.clear()
