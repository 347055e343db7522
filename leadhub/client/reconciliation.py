"""
Balance Reconciliation - Usage percentage from two independent counters.

`user.lead_coins` is the global spendable balance; a subscription's
`lead_coins_left` is the plan-scoped allotment. The usage view is
re-derived from the latest cached values whenever either changes.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass

from structlog import get_logger

from leadhub.client.api_client import ApiClient
from leadhub.client.errors import ClientError
from leadhub.client.query_cache import (
    AUTH_ME,
    CURRENT_SUBSCRIPTION,
    CacheEvent,
    CacheKey,
    QueryCache,
)
from leadhub.models.api import UserResponse, UserSubscriptionResponse

logger = get_logger(__name__)

NO_SUBSCRIPTION_DEFAULT_TOTAL = 100


@dataclass(frozen=True)
class BalanceUsage:
    """Derived allotment usage for a progress bar."""

    total: int
    current: int
    used: int
    percentage: int
    has_subscription: bool


def compute_balance_usage(
    user_lead_coins: int,
    plan_lead_coins: int | None = None,
    lead_coins_left: int | None = None,
) -> BalanceUsage:
    """
    Percent of the allotment consumed.

    With a subscription the total is the larger of the plan allotment and
    the live balance. Coins held above the plan baseline (grants, packages)
    count as unused, so only spending from the allotment raises the
    percentage. Without a subscription the percentage is 0.
    """
    if plan_lead_coins is None:
        total = user_lead_coins if user_lead_coins > 0 else NO_SUBSCRIPTION_DEFAULT_TOTAL
        return BalanceUsage(
            total=total,
            current=user_lead_coins,
            used=0,
            percentage=0,
            has_subscription=False,
        )

    left = lead_coins_left if lead_coins_left is not None else plan_lead_coins
    total = max(plan_lead_coins, user_lead_coins)
    current = left + (total - plan_lead_coins)
    used = max(0, total - current)
    if total <= 0:
        percentage = 0
    else:
        percentage = min(100, max(0, round(used / total * 100)))

    return BalanceUsage(
        total=total,
        current=current,
        used=used,
        percentage=percentage,
        has_subscription=True,
    )


def usage_from_cache(
    user: UserResponse | None, subscription: UserSubscriptionResponse | None
) -> BalanceUsage:
    """Usage for whatever the cache currently holds."""
    balance = user.lead_coins if user is not None else 0
    if subscription is None:
        return compute_balance_usage(balance)

    plan_coins = (
        subscription.plan.lead_coins
        if subscription.plan is not None
        else subscription.lead_coins_left
    )
    return compute_balance_usage(balance, plan_coins, subscription.lead_coins_left)


class BalanceMonitor:
    """
    Keeps a BalanceUsage in sync with the query cache.

    Recomputes on every update of the user or current-subscription keys and
    refetches them when they are invalidated.
    """

    def __init__(self, cache: QueryCache, api: ApiClient) -> None:
        self.cache = cache
        self.api = api
        self.usage = usage_from_cache(cache.get(AUTH_ME), cache.get(CURRENT_SUBSCRIPTION))
        self._listeners: list[Callable[[BalanceUsage], None]] = []
        self._refetches: set[asyncio.Task[None]] = set()
        self._unsubscribers = [
            cache.subscribe(AUTH_ME, self._on_cache_event),
            cache.subscribe(CURRENT_SUBSCRIPTION, self._on_cache_event),
        ]

    def on_change(self, listener: Callable[[BalanceUsage], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def refresh(self) -> BalanceUsage:
        """Load both counters (from cache when fresh) and recompute."""
        await self.cache.fetch(AUTH_ME, self.api.me)
        await self.cache.fetch(CURRENT_SUBSCRIPTION, self.api.current_subscription)
        return self.usage

    async def settle(self) -> None:
        """Wait for refetches triggered by invalidation."""
        while True:
            pending = [task for task in self._refetches if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        for task in self._refetches:
            task.cancel()
        self._refetches.clear()

    def _on_cache_event(self, key: CacheKey, event: CacheEvent) -> None:
        if event == CacheEvent.UPDATED:
            self._recompute()
            return

        loader = self.api.me if key == AUTH_ME else self.api.current_subscription
        task = asyncio.create_task(self._refetch(key, loader))
        self._refetches.add(task)
        task.add_done_callback(self._refetches.discard)

    async def _refetch(self, key: CacheKey, loader: Callable) -> None:
        try:
            await self.cache.fetch(key, loader)
        except ClientError as exc:
            logger.warning("balance_refetch_failed", key=list(key), error=str(exc))

    def _recompute(self) -> None:
        usage = usage_from_cache(self.cache.get(AUTH_ME), self.cache.get(CURRENT_SUBSCRIPTION))
        if usage == self.usage:
            return
        self.usage = usage
        for listener in list(self._listeners):
            listener(usage)
