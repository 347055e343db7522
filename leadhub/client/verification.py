"""
Payment Verification - Drives a payment session to a terminal state.

A single asyncio task waits the initial delay, then polls the verification
endpoint at a fixed interval. Each response is classified into a tagged
outcome; the state machine decides whether to keep polling. On success the
success hook runs once and one auto-close is scheduled.

NO DICTIONARIES - Outcomes and notices are typed dataclasses.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import assert_never

from structlog import get_logger

from leadhub.client.config import ClientSettings
from leadhub.client.errors import (
    ApiRequestError,
    ApiTransportError,
    InvalidResponseError,
    RateLimitedError,
    SessionExpiredError,
)
from leadhub.models.api import PaymentSessionResponse, PaymentVerificationResponse

logger = get_logger(__name__)


# ============================================================================
# Poll outcomes
# ============================================================================


@dataclass(frozen=True)
class Verified:
    """Payment confirmed; balance already credited server-side."""

    lead_coins: int | None
    response: PaymentVerificationResponse


@dataclass(frozen=True)
class StillProcessing:
    """Provider reports paid but the server hasn't finished crediting."""


@dataclass(frozen=True)
class Pending:
    """No terminal state yet."""


@dataclass(frozen=True)
class Expired:
    """Session lifetime is over."""


@dataclass(frozen=True)
class VerificationFailed:
    """Server answered with an error."""

    message: str


PollOutcome = Verified | StillProcessing | Pending | Expired | VerificationFailed


def classify(
    response: PaymentVerificationResponse, expires_at: int, now: float
) -> PollOutcome:
    """
    Classify one verification response.

    A session past its expiry is expired no matter what the server says.
    """
    if expires_at <= now:
        return Expired()
    if response.verified:
        return Verified(lead_coins=response.lead_coins, response=response)
    if response.session_status == "expired":
        return Expired()
    if response.session_status == "paid":
        return StillProcessing()
    if response.pending:
        return Pending()
    if response.error:
        return VerificationFailed(message=response.error)
    return Pending()


# ============================================================================
# State machine
# ============================================================================


class VerifierState(str, Enum):
    """Lifecycle of a verifier."""

    IDLE = "idle"
    POLLING = "polling"
    SUCCESS = "success"
    EXPIRED = "expired"
    ERROR = "error"
    CANCELLED = "cancelled"
    CLOSED = "closed"


TERMINAL_STATES = frozenset(
    {
        VerifierState.SUCCESS,
        VerifierState.EXPIRED,
        VerifierState.ERROR,
        VerifierState.CANCELLED,
        VerifierState.CLOSED,
    }
)


class NoticeLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Notice:
    """User-facing message; rendering is up to the caller."""

    level: NoticeLevel
    message: str


class PaymentVerifier:
    """
    Polls one payment session until it resolves.

    Usage:
        verifier = PaymentVerifier(
            session,
            check=lambda: api.verify_payment(session.session_id),
            on_success=refresh_balance,
            on_notice=show_toast,
        )
        verifier.start()
        state = await verifier.wait()
    """

    def __init__(
        self,
        session: PaymentSessionResponse,
        check: Callable[[], Awaitable[PaymentVerificationResponse]],
        *,
        settings: ClientSettings | None = None,
        on_success: Callable[[Verified], Awaitable[None]] | None = None,
        on_notice: Callable[[Notice], None] | None = None,
        on_state_change: Callable[[VerifierState], None] | None = None,
        on_close: Callable[[], None] | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        settings = settings or ClientSettings()
        self.session = session
        self.initial_delay = settings.verification_initial_delay
        self.poll_interval = settings.poll_interval
        self.auto_close_delay = settings.auto_close_delay
        self.max_consecutive_errors = settings.max_consecutive_errors

        self._check = check
        self._on_success = on_success
        self._on_notice = on_notice
        self._on_state_change = on_state_change
        self._on_close = on_close
        self._clock = clock
        self._sleep = sleep

        self.state = VerifierState.IDLE
        self.outcome: PollOutcome | None = None
        self.error_message: str | None = None
        self.checks = 0

        self._poll_task: asyncio.Task[None] | None = None
        self._close_task: asyncio.Task[None] | None = None
        self._consecutive_errors = 0
        self._processing_noticed = False
        self._error_noticed = False

    @property
    def pending_timers(self) -> int:
        """Scheduled tasks that could still fire."""
        return sum(
            1
            for task in (self._poll_task, self._close_task)
            if task is not None and not task.done()
        )

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def start(self) -> None:
        """Begin polling; no-op if already started."""
        if self.state != VerifierState.IDLE:
            return
        self._set_state(VerifierState.POLLING)
        self._poll_task = asyncio.create_task(self._run())
        logger.info("payment_verification_started", session_id=self.session.session_id)

    def cancel(self) -> None:
        """Stop polling and drop any pending auto-close."""
        for task in (self._poll_task, self._close_task):
            if task is not None and not task.done():
                task.cancel()
        self._poll_task = None
        self._close_task = None
        if not self.is_terminal:
            self._set_state(VerifierState.CANCELLED)
        logger.info("payment_verification_cancelled", session_id=self.session.session_id)

    async def wait(self) -> VerifierState:
        """Wait until polling (and any auto-close) has finished."""
        if self._poll_task is not None:
            await asyncio.gather(self._poll_task, return_exceptions=True)
        if self._close_task is not None:
            await asyncio.gather(self._close_task, return_exceptions=True)
        return self.state

    # ========================================================================
    # Loop
    # ========================================================================

    async def _run(self) -> None:
        delay = self.initial_delay
        while True:
            await self._sleep(delay)
            delay = self.poll_interval

            outcome = await self._poll_once()
            if outcome is None:
                continue
            if await self._apply(outcome):
                return

    async def _poll_once(self) -> PollOutcome | None:
        """One check; None when the failure should just be retried next tick."""
        self.checks += 1
        try:
            response = await self._check()
        except SessionExpiredError:
            return VerificationFailed(message="Your session has expired. Please log in again.")
        except (ApiTransportError, InvalidResponseError) as exc:
            logger.warning(
                "payment_verification_poll_failed",
                session_id=self.session.session_id,
                error=str(exc),
            )
            return self._retry_or_expire()
        except ApiRequestError as exc:
            if exc.is_server_error or isinstance(exc, RateLimitedError):
                logger.warning(
                    "payment_verification_poll_failed",
                    session_id=self.session.session_id,
                    status_code=exc.status_code,
                )
                return self._retry_or_expire()
            return VerificationFailed(message=exc.message)

        return classify(response, self.session.expires_at, self._clock())

    def _retry_or_expire(self) -> Expired | None:
        # Failed polls never extend a session past its expiry
        return Expired() if self.session.expires_at <= self._clock() else None

    async def _apply(self, outcome: PollOutcome) -> bool:
        """Update state from an outcome; True when polling should stop."""
        self.outcome = outcome
        match outcome:
            case Verified():
                self._consecutive_errors = 0
                await self._succeed(outcome)
                return True
            case Expired():
                self._finish(VerifierState.EXPIRED)
                self._notify(NoticeLevel.ERROR, "Payment session expired. Please try again.")
                return True
            case StillProcessing():
                self._consecutive_errors = 0
                if not self._processing_noticed:
                    self._processing_noticed = True
                    self._notify(
                        NoticeLevel.INFO,
                        "Payment received. Your purchase is being finalized...",
                    )
                return False
            case Pending():
                self._consecutive_errors = 0
                return False
            case VerificationFailed(message=message):
                self._consecutive_errors += 1
                self.error_message = message
                if not self._error_noticed:
                    self._error_noticed = True
                    self._notify(NoticeLevel.ERROR, message)
                if self._consecutive_errors >= self.max_consecutive_errors:
                    logger.warning(
                        "payment_verification_gave_up",
                        session_id=self.session.session_id,
                        errors=self._consecutive_errors,
                        error=message,
                    )
                    self._finish(VerifierState.ERROR)
                    return True
                return False
            case _:
                assert_never(outcome)

    async def _succeed(self, outcome: Verified) -> None:
        self._finish(VerifierState.SUCCESS)
        logger.info(
            "payment_verified",
            session_id=self.session.session_id,
            lead_coins=outcome.lead_coins,
            checks=self.checks,
        )
        if self._on_success is not None:
            try:
                await self._on_success(outcome)
            except (ApiRequestError, ApiTransportError, InvalidResponseError) as exc:
                # Payment is settled server-side; a failed refresh only delays the UI
                logger.warning("payment_success_refresh_failed", error=str(exc))

        if outcome.lead_coins is not None:
            message = f"Payment successful! Your balance is now {outcome.lead_coins} LeadCoins."
        else:
            message = "Payment successful!"
        self._notify(NoticeLevel.SUCCESS, message)
        self._close_task = asyncio.create_task(self._auto_close())

    async def _auto_close(self) -> None:
        await self._sleep(self.auto_close_delay)
        self._set_state(VerifierState.CLOSED)
        if self._on_close is not None:
            self._on_close()

    def _finish(self, state: VerifierState) -> None:
        if self.is_terminal:
            return
        self._set_state(state)

    def _set_state(self, state: VerifierState) -> None:
        self.state = state
        if self._on_state_change is not None:
            self._on_state_change(state)

    def _notify(self, level: NoticeLevel, message: str) -> None:
        if self._on_notice is not None:
            self._on_notice(Notice(level=level, message=message))
