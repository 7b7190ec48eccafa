from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import stripe

logger = logging.getLogger(__name__)


class PaymentError(RuntimeError):
    pass


class WebhookSignatureError(PaymentError):
    pass


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: str | None
    payment_status: str | None
    status: str | None
    payment_intent_id: str | None
    customer_email: str | None
    amount_total: int | None
    currency: str | None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def paid(self) -> bool:
        return self.payment_status == "paid"


def to_cents(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int | None) -> Decimal | None:
    if cents is None:
        return None
    return (Decimal(int(cents)) / 100).quantize(Decimal("0.01"))


def _as_dict(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, dict):
        return dict(value)
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return dict(vars(value))


def _get(obj: Any, key: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def _intent_id(value: Any) -> str | None:
    # Either the bare id or an expanded PaymentIntent.
    if value is None or isinstance(value, str):
        return value
    return _get(value, "id")


def session_from_object(obj: Any) -> CheckoutSession:
    """Builds a CheckoutSession from a Stripe object or a webhook's plain `data.object` dict."""
    details = _get(obj, "customer_details")
    return CheckoutSession(
        id=_get(obj, "id"),
        url=_get(obj, "url"),
        payment_status=_get(obj, "payment_status"),
        status=_get(obj, "status"),
        payment_intent_id=_intent_id(_get(obj, "payment_intent")),
        customer_email=_get(obj, "customer_email") or (_get(details, "email") if details else None),
        amount_total=_get(obj, "amount_total"),
        currency=_get(obj, "currency"),
        metadata={str(k): str(v) for k, v in _as_dict(_get(obj, "metadata")).items()},
    )


@dataclass(frozen=True)
class StripePaymentClient:
    api_key: str
    webhook_secret: str
    currency: str = "usd"

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _ensure_key(self) -> None:
        if not self.configured:
            raise PaymentError("Payment processor is not configured")
        stripe.api_key = self.api_key

    def create_checkout_session(
        self,
        *,
        amount: Decimal,
        product_name: str,
        customer_email: str,
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
        description: str | None = None,
    ) -> CheckoutSession:
        self._ensure_key()
        product_data: dict[str, Any] = {"name": product_name}
        if description:
            product_data["description"] = description[:500]
        try:
            cs = stripe.checkout.Session.create(
                mode="payment",
                payment_method_types=["card"],
                line_items=[
                    {
                        "price_data": {
                            "currency": self.currency,
                            "product_data": product_data,
                            "unit_amount": to_cents(amount),
                        },
                        "quantity": 1,
                    }
                ],
                customer_email=customer_email,
                metadata=metadata,
                success_url=success_url,
                cancel_url=cancel_url,
            )
        except stripe.StripeError as e:
            logger.error("Stripe checkout session create failed: %s", e)
            raise PaymentError(f"Failed to create checkout session: {e}") from e
        session = session_from_object(cs)
        logger.info("Stripe checkout session created id=%s metadata=%s", session.id, metadata)
        return session

    def retrieve_checkout_session(self, session_id: str) -> CheckoutSession:
        self._ensure_key()
        try:
            cs = stripe.checkout.Session.retrieve(session_id)
        except stripe.StripeError as e:
            logger.warning("Stripe checkout session retrieve failed id=%s: %s", session_id, e)
            raise PaymentError(f"Failed to retrieve checkout session: {e}") from e
        return session_from_object(cs)

    def refund(self, payment_intent_id: str) -> str:
        self._ensure_key()
        try:
            refund = stripe.Refund.create(payment_intent=payment_intent_id)
        except stripe.StripeError as e:
            logger.error("Stripe refund failed payment_intent=%s: %s", payment_intent_id, e)
            raise PaymentError(f"Refund failed: {e}") from e
        refund_id = _get(refund, "id")
        logger.info("Stripe refund created id=%s payment_intent=%s", refund_id, payment_intent_id)
        return refund_id

    def parse_webhook(self, payload: bytes, signature: str | None) -> dict[str, Any]:
        """
        Verifies the Stripe-Signature header and returns the event as a plain dict.
        """
        if not self.webhook_secret:
            raise WebhookSignatureError("Webhook secret is not configured")
        if not signature:
            raise WebhookSignatureError("Missing Stripe-Signature header")
        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise WebhookSignatureError("Invalid webhook payload") from e
        try:
            stripe.WebhookSignature.verify_header(text, signature, self.webhook_secret, stripe.Webhook.DEFAULT_TOLERANCE)
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(str(e)) from e
        try:
            event = json.loads(text)
        except ValueError as e:
            raise WebhookSignatureError("Invalid webhook payload") from e
        if not isinstance(event, dict) or "type" not in event:
            raise WebhookSignatureError("Invalid webhook payload")
        return event


def payment_client_from_config(config: dict) -> StripePaymentClient:
    return StripePaymentClient(
        api_key=(config.get("STRIPE_API_KEY") or "").strip(),
        webhook_secret=(config.get("STRIPE_WEBHOOK_SECRET") or "").strip(),
        currency=(config.get("STRIPE_CURRENCY") or "usd").strip().lower(),
    )
