"""
Tests for PaymentVerifier: response classification and the polling state
machine.

Sleeps are instant; the scripted check yields to the event loop on every
call so other tasks get to run.
"""

import asyncio
from collections.abc import Iterable
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import no_sleep
from leadhub.client.config import ClientSettings
from leadhub.client.errors import (
    ApiRequestError,
    ApiTransportError,
    RateLimitedError,
    SessionExpiredError,
)
from leadhub.client.verification import (
    Expired,
    NoticeLevel,
    PaymentVerifier,
    Pending,
    StillProcessing,
    VerificationFailed,
    Verified,
    VerifierState,
    classify,
)
from leadhub.models.api import PaymentSessionResponse, PaymentVerificationResponse

EXPIRES_AT = 2_000
NOW = 1_000.0


def response(**fields) -> PaymentVerificationResponse:
    fields.setdefault("verified", False)
    return PaymentVerificationResponse(**fields)


PENDING = response(pending=True)
PAID = response(session_status="paid")
VERIFIED = response(verified=True, lead_coins=140)


class ScriptedCheck:
    """Returns (or raises) scripted results, repeating the last one."""

    def __init__(self, results: Iterable) -> None:
        self.results = list(results)
        self.calls = 0

    async def __call__(self) -> PaymentVerificationResponse:
        await asyncio.sleep(0)
        result = self.results[min(self.calls, len(self.results) - 1)]
        self.calls += 1
        if isinstance(result, Exception):
            raise result
        return result


class Clock:
    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_verifier(
    check,
    settings: ClientSettings,
    *,
    clock: Clock | None = None,
    sleep=no_sleep,
    **hooks,
) -> PaymentVerifier:
    session = PaymentSessionResponse(session_id="cs_test_123", expires_at=EXPIRES_AT)
    return PaymentVerifier(
        session, check, settings=settings, clock=clock or Clock(), sleep=sleep, **hooks
    )


class TestClassify:
    def test_past_expiry_wins_over_verified(self) -> None:
        assert isinstance(classify(VERIFIED, EXPIRES_AT, EXPIRES_AT + 1), Expired)

    def test_verified(self) -> None:
        outcome = classify(VERIFIED, EXPIRES_AT, NOW)

        assert isinstance(outcome, Verified)
        assert outcome.lead_coins == 140

    @pytest.mark.parametrize(
        ("fields", "expected"),
        [
            ({"session_status": "expired"}, Expired),
            ({"session_status": "paid"}, StillProcessing),
            ({"pending": True}, Pending),
            ({"pending": True, "error": "ignored while pending"}, Pending),
            ({"error": "Card declined"}, VerificationFailed),
            ({}, Pending),
        ],
    )
    def test_unverified_responses(self, fields: dict, expected: type) -> None:
        assert isinstance(classify(response(**fields), EXPIRES_AT, NOW), expected)


class TestSuccess:
    async def test_success_then_auto_close(self, client_settings: ClientSettings) -> None:
        check = ScriptedCheck([PENDING, PENDING, VERIFIED])
        on_success = AsyncMock()
        on_close = MagicMock()
        notices = []
        verifier = make_verifier(
            check,
            client_settings,
            on_success=on_success,
            on_close=on_close,
            on_notice=notices.append,
        )

        verifier.start()
        state = await verifier.wait()

        assert state == VerifierState.CLOSED
        assert check.calls == 3
        on_success.assert_awaited_once()
        on_close.assert_called_once()
        assert [n.message for n in notices] == [
            "Payment successful! Your balance is now 140 LeadCoins."
        ]
        assert notices[0].level == NoticeLevel.SUCCESS
        assert verifier.pending_timers == 0

    async def test_processing_notice_shown_once(self, client_settings: ClientSettings) -> None:
        notices = []
        verifier = make_verifier(
            ScriptedCheck([PAID, PAID, PAID, VERIFIED]),
            client_settings,
            on_notice=notices.append,
        )

        verifier.start()
        await verifier.wait()

        info = [n for n in notices if n.level == NoticeLevel.INFO]
        assert len(info) == 1
        assert "being finalized" in info[0].message

    async def test_refresh_failure_does_not_undo_success(
        self, client_settings: ClientSettings
    ) -> None:
        on_success = AsyncMock(side_effect=ApiTransportError("offline"))
        verifier = make_verifier(ScriptedCheck([VERIFIED]), client_settings, on_success=on_success)

        verifier.start()

        assert await verifier.wait() == VerifierState.CLOSED

    async def test_state_changes_reported(self, client_settings: ClientSettings) -> None:
        states = []
        verifier = make_verifier(
            ScriptedCheck([VERIFIED]), client_settings, on_state_change=states.append
        )

        verifier.start()
        verifier.start()
        await verifier.wait()

        assert states == [VerifierState.POLLING, VerifierState.SUCCESS, VerifierState.CLOSED]

    async def test_server_errors_are_retried(self, client_settings: ClientSettings) -> None:
        check = ScriptedCheck([ApiRequestError(503, "Service Unavailable"), VERIFIED])
        verifier = make_verifier(check, client_settings)

        verifier.start()

        assert await verifier.wait() == VerifierState.CLOSED
        assert check.calls == 2


class TestExpiry:
    async def test_expired_by_clock(self, client_settings: ClientSettings) -> None:
        notices = []
        verifier = make_verifier(
            ScriptedCheck([PENDING]),
            client_settings,
            clock=Clock(EXPIRES_AT + 1),
            on_notice=notices.append,
        )

        verifier.start()

        assert await verifier.wait() == VerifierState.EXPIRED
        assert notices[0].message == "Payment session expired. Please try again."
        assert verifier.pending_timers == 0

    async def test_expired_session_status(self, client_settings: ClientSettings) -> None:
        verifier = make_verifier(
            ScriptedCheck([PENDING, response(session_status="expired")]), client_settings
        )

        verifier.start()

        assert await verifier.wait() == VerifierState.EXPIRED

    async def test_transport_error_after_expiry(self, client_settings: ClientSettings) -> None:
        clock = Clock()
        check = ScriptedCheck([PENDING, ApiTransportError("offline")])

        async def advancing_sleep(_seconds: float) -> None:
            clock.now += 600

        verifier = make_verifier(check, client_settings, clock=clock, sleep=advancing_sleep)
        verifier.start()

        assert await verifier.wait() == VerifierState.EXPIRED
        assert isinstance(verifier.outcome, Expired)

    @pytest.mark.parametrize(
        "failure",
        [
            ApiRequestError(503, "Service Unavailable"),
            RateLimitedError(1),
            ApiTransportError("offline"),
        ],
        ids=["server-error", "rate-limited", "transport"],
    )
    async def test_failing_polls_after_expiry(
        self, client_settings: ClientSettings, failure: Exception
    ) -> None:
        check = ScriptedCheck([failure])
        verifier = make_verifier(check, client_settings, clock=Clock(EXPIRES_AT + 1000))

        verifier.start()

        assert await verifier.wait() == VerifierState.EXPIRED
        assert check.calls == 1
        assert verifier.pending_timers == 0

    async def test_server_errors_until_expiry(self, client_settings: ClientSettings) -> None:
        clock = Clock()
        check = ScriptedCheck([ApiRequestError(502, "Bad Gateway")])

        async def advancing_sleep(_seconds: float) -> None:
            clock.now += 300

        verifier = make_verifier(check, client_settings, clock=clock, sleep=advancing_sleep)
        verifier.start()

        assert await verifier.wait() == VerifierState.EXPIRED
        # 1000 -> 2000 in 300s steps: polls at 1300, 1600, 1900, then 2200 expires
        assert check.calls == 4


class TestErrors:
    async def test_gives_up_after_consecutive_errors(
        self, client_settings: ClientSettings
    ) -> None:
        notices = []
        check = ScriptedCheck([response(error="Card declined")])
        verifier = make_verifier(check, client_settings, on_notice=notices.append)

        verifier.start()

        assert await verifier.wait() == VerifierState.ERROR
        assert check.calls == client_settings.max_consecutive_errors
        assert verifier.error_message == "Card declined"
        assert [n.message for n in notices] == ["Card declined"]

    async def test_pending_resets_error_count(self, client_settings: ClientSettings) -> None:
        failed = response(error="Temporary")
        check = ScriptedCheck([failed, failed, PENDING, failed, failed, VERIFIED])
        verifier = make_verifier(check, client_settings)

        verifier.start()

        assert await verifier.wait() == VerifierState.CLOSED

    async def test_session_expiry_message(self, client_settings: ClientSettings) -> None:
        verifier = make_verifier(ScriptedCheck([SessionExpiredError()]), client_settings)

        verifier.start()

        assert await verifier.wait() == VerifierState.ERROR
        assert verifier.error_message == "Your session has expired. Please log in again."

    async def test_client_error_message_surfaced(self, client_settings: ClientSettings) -> None:
        check = ScriptedCheck([ApiRequestError(404, "Payment session not found")])
        verifier = make_verifier(check, client_settings)

        verifier.start()
        await verifier.wait()

        assert isinstance(verifier.outcome, VerificationFailed)
        assert verifier.error_message == "Payment session not found"

    async def test_rate_limited_polls_do_not_count_as_errors(
        self, client_settings: ClientSettings
    ) -> None:
        notices = []
        throttled = RateLimitedError(1)
        check = ScriptedCheck([throttled] * 5 + [VERIFIED])
        verifier = make_verifier(check, client_settings, on_notice=notices.append)

        verifier.start()

        assert await verifier.wait() == VerifierState.CLOSED
        assert check.calls == 6
        assert verifier.error_message is None
        assert [n.level for n in notices] == [NoticeLevel.SUCCESS]


class TestCancel:
    async def test_cancel_while_polling(self, client_settings: ClientSettings) -> None:
        check = ScriptedCheck([PENDING])
        verifier = make_verifier(check, client_settings)

        verifier.start()
        while check.calls < 3:
            await asyncio.sleep(0)
        verifier.cancel()

        assert verifier.pending_timers == 0
        assert verifier.state == VerifierState.CANCELLED
        calls = check.calls
        await asyncio.sleep(0)
        assert check.calls == calls

    async def test_cancel_drops_auto_close(self, client_settings: ClientSettings) -> None:
        settings = client_settings.model_copy(update={"auto_close_delay": 60.0})
        on_close = MagicMock()
        verifier = make_verifier(
            ScriptedCheck([VERIFIED]), settings, sleep=asyncio.sleep, on_close=on_close
        )

        verifier.start()
        while verifier.state != VerifierState.SUCCESS:
            await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert verifier.pending_timers == 1

        verifier.cancel()

        assert verifier.pending_timers == 0
        # Already terminal; cancelling does not overwrite the result
        assert verifier.state == VerifierState.SUCCESS
        on_close.assert_not_called()

    async def test_cancel_before_start(self, client_settings: ClientSettings) -> None:
        verifier = make_verifier(ScriptedCheck([PENDING]), client_settings)

        verifier.cancel()

        assert verifier.state == VerifierState.CANCELLED
        assert await verifier.wait() == VerifierState.CANCELLED
