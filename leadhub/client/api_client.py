"""
API Client - Async HTTP client for the LeadHub REST API.

Wraps httpx.AsyncClient with cookie persistence, per-request timeouts,
capped 429 retry and typed response parsing.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError
from structlog import get_logger

from leadhub.client.config import ClientSettings
from leadhub.client.errors import (
    ApiRequestError,
    ApiTransportError,
    InvalidResponseError,
    RateLimitedError,
    SessionExpiredError,
)
from leadhub.models.api import (
    LoginRequest,
    PaymentVerificationResponse,
    PlanResponse,
    PurchaseRequest,
    PurchaseResponse,
    UserResponse,
    UserSubscriptionResponse,
)

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

AUTH_PATH_PREFIX = "/api/auth/"
RATE_LIMIT_BACKOFF_SECONDS = 1.0


def _error_message(response: httpx.Response) -> str:
    """Pull a human readable message out of an error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase

    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
            if value:
                return str(value)
    return response.text or response.reason_phrase


def _retry_after(response: httpx.Response, attempt: int) -> float:
    """Seconds to wait before retrying a 429."""
    header = response.headers.get("Retry-After")
    if header:
        try:
            return max(0.0, float(header))
        except ValueError:
            # HTTP-date form falls back to linear backoff
            pass
    return RATE_LIMIT_BACKOFF_SECONDS * attempt


def _parse(model: type[ModelT], data: Any) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise InvalidResponseError(f"Unexpected {model.__name__} payload: {exc}") from exc


class ApiClient:
    """
    LeadHub API client.

    Usage:
        async with ApiClient(ClientSettings()) as api:
            user = await api.login("a@example.com", "secret123")
            purchase = await api.purchase_subscription(plan_id=2)
    """

    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.settings = settings or ClientSettings()
        self._sleep = sleep
        self._http = httpx.AsyncClient(
            base_url=self.settings.base_url,
            timeout=self.settings.request_timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    @property
    def cookies(self) -> httpx.Cookies:
        """Session cookies persisted across requests."""
        return self._http.cookies

    # ========================================================================
    # Core request
    # ========================================================================

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, str] | None = None,
        retries: int = 0,
        timeout: float | None = None,
    ) -> Any:
        """
        Send a request and return the decoded JSON body (None when empty).

        Raises:
            RateLimitedError: Still 429 after `retries` retries
            SessionExpiredError: 401 from a non-auth endpoint
            ApiRequestError: Any other non-2xx response
            ApiTransportError: Network failure, timeout or unparseable body
        """
        attempt = 0
        while True:
            attempt += 1
            response = await self._send(method, path, json=json, params=params, timeout=timeout)

            if response.status_code == 429:
                if attempt > retries:
                    logger.warning("rate_limit_exhausted", path=path, attempts=attempt)
                    raise RateLimitedError(attempt)
                delay = _retry_after(response, attempt)
                logger.info("rate_limited_retrying", path=path, attempt=attempt, delay=delay)
                await self._sleep(delay)
                continue

            return self._decode(path, response)

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: Any,
        params: dict[str, str] | None,
        timeout: float | None,
    ) -> httpx.Response:
        request_timeout = timeout if timeout is not None else self.settings.request_timeout
        try:
            return await self._http.request(
                method, path, json=json, params=params, timeout=request_timeout
            )
        except httpx.TimeoutException as exc:
            logger.warning("api_request_timeout", method=method, path=path)
            raise ApiTransportError(f"Request to {path} timed out") from exc
        except httpx.HTTPError as exc:
            logger.warning("api_request_failed", method=method, path=path, error=str(exc))
            raise ApiTransportError(f"Request to {path} failed: {exc}") from exc

    @staticmethod
    def _decode(path: str, response: httpx.Response) -> Any:
        if response.status_code == 401 and not path.startswith(AUTH_PATH_PREFIX):
            raise SessionExpiredError(_error_message(response))

        if response.is_error:
            raise ApiRequestError(response.status_code, _error_message(response))

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ApiTransportError(f"Invalid JSON from {path}") from exc

    # ========================================================================
    # Auth
    # ========================================================================

    async def me(self) -> UserResponse | None:
        """The logged-in user, or None when unauthenticated."""
        try:
            data = await self.request("GET", "/api/auth/me")
        except ApiRequestError as exc:
            if exc.status_code == 401:
                return None
            raise
        return _parse(UserResponse, data)

    async def login(self, email: str, password: str, remember_me: bool = False) -> UserResponse:
        body = LoginRequest(email=email, password=password, remember_me=remember_me)
        data = await self.request("POST", "/api/auth/login", json=body.model_dump(by_alias=True))
        return _parse(UserResponse, data)

    async def logout(self) -> None:
        await self.request("POST", "/api/auth/logout")
        self._http.cookies.clear()

    # ========================================================================
    # Subscriptions
    # ========================================================================

    async def list_plans(self) -> list[PlanResponse]:
        data = await self.request("GET", "/api/subscriptions")
        if not isinstance(data, list):
            raise InvalidResponseError("Expected a list of plans")
        return [_parse(PlanResponse, item) for item in data]

    async def current_subscription(self) -> UserSubscriptionResponse | None:
        data = await self.request("GET", "/api/subscriptions/current")
        return _parse(UserSubscriptionResponse, data) if data else None

    async def subscription_history(self) -> list[UserSubscriptionResponse]:
        data = await self.request("GET", "/api/subscriptions/history")
        if not isinstance(data, list):
            raise InvalidResponseError("Expected a list of subscriptions")
        return [_parse(UserSubscriptionResponse, item) for item in data]

    async def purchase_subscription(self, plan_id: int) -> PurchaseResponse:
        """Open a payment session for a plan (retries on 429)."""
        body = PurchaseRequest(subscription_id=plan_id)
        data = await self.request(
            "POST",
            "/api/subscriptions/purchase",
            json=body.model_dump(by_alias=True),
            retries=self.settings.max_retries,
        )
        return _parse(PurchaseResponse, data)

    async def buy_coins(self, package_id: int) -> PurchaseResponse:
        """Open a payment session for a LeadCoin package (retries on 429)."""
        body = PurchaseRequest(subscription_id=package_id)
        data = await self.request(
            "POST",
            "/api/subscriptions/buy-coins",
            json=body.model_dump(by_alias=True),
            retries=self.settings.max_retries,
        )
        return _parse(PurchaseResponse, data)

    async def verify_payment(
        self, session_id: str, coins: bool = False
    ) -> PaymentVerificationResponse:
        params = {"sessionId": session_id}
        if coins:
            params["coins"] = "true"
        data = await self.request("GET", "/api/subscriptions/verify-payment", params=params)
        return _parse(PaymentVerificationResponse, data)
