import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

import stripe

from zapshift.config import settings
from zapshift.errors import UpstreamGatewayError, ValidationError
from zapshift.models import SessionPaymentStatus

logger = logging.getLogger("zapshift")


def configure_stripe():
    stripe.api_key = settings.stripe_secret_key
    stripe.max_network_retries = 0
    stripe.default_http_client = stripe.RequestsClient(timeout=settings.stripe_timeout)


def to_minor_units(cost) -> int:
    """Convert a major-unit cost (19.99) to Stripe's integer minor units (1999)."""
    try:
        minor = Decimal(str(cost)) * 100
    except InvalidOperation:
        raise ValidationError(f"Invalid cost: {cost!r}")
    if minor <= 0 or minor != minor.to_integral_value():
        raise ValidationError(f"Cost must be a positive amount with at most two decimals: {cost}")
    return int(minor)


@dataclass
class LineItem:
    name: str
    unit_amount: int
    quantity: int = 1


@dataclass
class CheckoutSessionDetail:
    payment_status: SessionPaymentStatus
    amount_total: int
    currency: str
    customer_email: Optional[str]
    payment_intent_id: Optional[str]
    metadata: Dict[str, Any] = field(default_factory=dict)


class StripeGateway:
    def __init__(self, currency: Optional[str] = None):
        self.currency = currency or settings.stripe_currency

    def create_checkout_session(self, line_item: LineItem, buyer_email: str, metadata: Dict[str, str],
                                success_url: str, cancel_url: str) -> str:
        if not isinstance(line_item.unit_amount, int) or line_item.unit_amount <= 0:
            raise ValidationError("unit_amount must be a positive integer in minor units")

        try:
            session = stripe.checkout.Session.create(
                line_items=[
                    {
                        "price_data": {
                            "currency": self.currency,
                            "unit_amount": line_item.unit_amount,
                            "product_data": {"name": line_item.name},
                        },
                        "quantity": line_item.quantity,
                    }
                ],
                customer_email=buyer_email,
                mode="payment",
                metadata=metadata,
                success_url=success_url,
                cancel_url=cancel_url,
            )
        except stripe.error.StripeError as e:
            logger.error(f"Checkout session creation failed for parcel {metadata.get('parcelId')}: {e}")
            raise UpstreamGatewayError("Payment provider unavailable")

        return session.url

    def retrieve_session(self, session_id: str) -> CheckoutSessionDetail:
        if not session_id:
            raise ValidationError("session_id is required")

        try:
            session = stripe.checkout.Session.retrieve(session_id)
        except stripe.error.InvalidRequestError as e:
            logger.warning(f"Unknown checkout session {session_id}: {e}")
            raise ValidationError("Invalid checkout session")
        except stripe.error.StripeError as e:
            logger.error(f"Checkout session retrieval failed for {session_id}: {e}")
            raise UpstreamGatewayError("Payment provider unavailable")

        # StripeObject is not a dict; read fields from a plain copy
        data = session.to_dict()
        try:
            status = SessionPaymentStatus(data.get("payment_status"))
        except ValueError:
            raise UpstreamGatewayError(f"Unexpected payment status: {data.get('payment_status')}")

        return CheckoutSessionDetail(
            payment_status=status,
            amount_total=data.get("amount_total") or 0,
            currency=data.get("currency"),
            customer_email=data.get("customer_email"),
            payment_intent_id=data.get("payment_intent"),
            metadata=dict(data.get("metadata") or {}),
        )

    def construct_event(self, payload: bytes, signature: str):
        return stripe.Webhook.construct_event(payload, signature, settings.stripe_webhook_secret)
