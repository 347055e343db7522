"""
Stripe Payment Provider Implementation.

NO DICTIONARIES - All data uses strongly typed models.
"""

import stripe
from structlog import get_logger

from leadhub.exceptions import PaymentProviderError, WebhookVerificationError
from leadhub.services.payment_provider import (
    CheckoutRequest,
    CheckoutSessionResult,
    CheckoutStatus,
    WebhookEvent,
)

logger = get_logger(__name__)


class StripeProvider:
    """
    Stripe payment provider implementation.

    Creates a PaymentIntent (for in-page card entry) together with a hosted
    Checkout Session (for the payment link and QR code). The Checkout Session
    id is the payment session id the client polls with.
    """

    def __init__(self, api_key: str, webhook_secret: str, return_url: str) -> None:
        """
        Initialize Stripe provider.

        Args:
            api_key: Stripe secret API key
            webhook_secret: Stripe webhook signing secret
            return_url: Base URL for checkout success/cancel redirects
        """
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.return_url = return_url.rstrip("/")
        stripe.api_key = api_key

    def _metadata(self, request: CheckoutRequest) -> dict[str, str]:
        item_key = "subscriptionId" if request.kind == "subscription" else "packageId"
        return {
            "userId": str(request.user_id),
            item_key: str(request.item_id),
            "kind": request.kind,
        }

    async def create_checkout_session(self, request: CheckoutRequest) -> CheckoutSessionResult:
        """
        Create a Stripe PaymentIntent and Checkout Session.

        Raises:
            PaymentProviderError: If Stripe API call fails
        """
        try:
            logger.info(
                "creating_stripe_checkout_session",
                user_id=request.user_id,
                kind=request.kind,
                amount_minor=request.amount_minor,
            )

            payment_intent = stripe.PaymentIntent.create(
                amount=request.amount_minor,
                currency=request.currency.lower(),
                metadata=self._metadata(request),
            )
            if not payment_intent.client_secret:
                raise PaymentProviderError("Stripe did not return a client secret")

            session = stripe.checkout.Session.create(
                payment_method_types=["card"],
                mode="payment",
                success_url=(
                    f"{self.return_url}/user/profile?success=true"
                    f"&session_id={{CHECKOUT_SESSION_ID}}&type={request.kind}"
                ),
                cancel_url=f"{self.return_url}/user/profile?canceled=true",
                customer_email=request.customer_email,
                client_reference_id=str(request.user_id),
                line_items=[
                    {
                        "price_data": {
                            "currency": request.currency.lower(),
                            "product_data": {
                                "name": request.product_name,
                                **(
                                    {"description": request.product_description}
                                    if request.product_description
                                    else {}
                                ),
                            },
                            "unit_amount": request.amount_minor,
                        },
                        "quantity": 1,
                    }
                ],
                metadata=self._metadata(request),
                expires_at=request.expires_at,
            )

            logger.info(
                "stripe_checkout_session_created",
                session_id=session.id,
                payment_intent_id=payment_intent.id,
            )

            return CheckoutSessionResult(
                session_id=session.id,
                client_secret=payment_intent.client_secret,
                payment_url=session.url or "",
                expires_at=session.expires_at or request.expires_at,
            )

        except stripe.StripeError as exc:
            logger.error(
                "stripe_checkout_session_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise PaymentProviderError(f"Stripe checkout failed: {exc}") from exc

    async def get_checkout_status(self, session_id: str) -> CheckoutStatus:
        """
        Retrieve a Checkout Session from Stripe.

        Raises:
            PaymentProviderError: If Stripe API call fails
        """
        try:
            session = stripe.checkout.Session.retrieve(session_id)

            logger.info(
                "stripe_checkout_status_retrieved",
                session_id=session_id,
                payment_status=session.payment_status,
                status=session.status,
            )

            return CheckoutStatus(
                session_id=session.id,
                payment_status=session.payment_status or "unpaid",
                session_status=session.status or "open",
            )

        except stripe.StripeError as exc:
            logger.error(
                "stripe_checkout_status_failed",
                session_id=session_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise PaymentProviderError(f"Failed to get checkout status: {exc}") from exc

    async def verify_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        """
        Verify and parse a Stripe webhook event.

        Raises:
            WebhookVerificationError: If signature verification fails
        """
        if not self.webhook_secret:
            raise WebhookVerificationError("Stripe webhook secret is not configured")

        try:
            event = stripe.Webhook.construct_event(  # type: ignore[no-untyped-call]
                payload, signature, self.webhook_secret
            )
        except stripe.SignatureVerificationError as exc:
            logger.error("stripe_webhook_verification_failed", error=str(exc))
            raise WebhookVerificationError("Invalid Stripe webhook signature") from exc
        except ValueError as exc:
            logger.error("stripe_webhook_parsing_failed", error=str(exc))
            raise WebhookVerificationError(f"Failed to parse Stripe webhook: {exc}") from exc

        logger.info("stripe_webhook_verified", event_id=event.id, event_type=event.type)

        obj = event.data.object
        metadata = obj.get("metadata") or {}
        user_id = metadata.get("userId")

        return WebhookEvent(
            event_id=event.id,
            event_type=event.type,
            session_id=obj.get("id") if event.type.startswith("checkout.session.") else None,
            payment_status=obj.get("payment_status"),
            kind=metadata.get("kind"),
            user_id=int(user_id) if user_id and user_id.isdigit() else None,
        )
