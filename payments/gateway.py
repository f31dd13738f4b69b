"""
Stripe Checkout gateway.

Card registrations are paid on a Stripe-hosted page.  Phase one creates
the checkout session with the registration details in its metadata and
returns the hosted URL; phase two (browser return or webhook) retrieves
the session and only accepts it once Stripe reports it paid for the
same event the registrant started from.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

import stripe
from django.conf import settings

from events.pricing import calculate_total_with_card_fee, event_pricing, to_minor_units

from .exceptions import GatewayError

logger = logging.getLogger("payments")


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: str


@dataclass(frozen=True)
class PaidCheckout:
    """What a paid checkout session tells us about the registration."""

    session_id: str
    event_id: str
    tickets: int
    name: str
    email: str
    phone: str
    notes: str


class StripeGateway:
    def __init__(self, api_key=None, currency=None):
        self.api_key = api_key or settings.STRIPE_SECRET_KEY
        self.currency = currency or settings.STRIPE_DEFAULT_CURRENCY

    def _configure(self):
        if not self.api_key:
            raise GatewayError("Stripe is not configured")
        stripe.api_key = self.api_key

    def charge_amount(self, event, tickets: int, is_member_verified: bool = False) -> int:
        """Total charge in cents, grossed up for card fees when configured."""
        total = event_pricing(event, tickets, is_member_verified).total_fee
        if settings.STRIPE_PASS_FEES:
            total = calculate_total_with_card_fee(total)
        return to_minor_units(total)

    def create_checkout_session(self, event, tickets: int, contact: dict, notes: str,
                                success_url: str, cancel_url: str,
                                is_member_verified: bool = False) -> CheckoutSession:
        amount = self.charge_amount(event, tickets, is_member_verified)
        if amount <= 0:
            raise GatewayError("Free events do not require card payment")
        self._configure()
        email = (contact.get("email") or "").strip()
        metadata = {
            "event_id": str(event.id),
            "tickets": str(tickets),
            "name": contact.get("name", "").strip(),
            "email": email,
            "phone": (contact.get("phone") or "").strip(),
            "notes": (notes or "").strip()[:500],
            "member": "1" if is_member_verified else "0",
        }
        # One line for the whole order; the member price covers a single ticket
        label = event.title or "Event"
        if tickets > 1:
            label = f"{label} ({tickets} tickets)"
        try:
            session = stripe.checkout.Session.create(
                mode="payment",
                payment_method_types=["card"],
                success_url=success_url,
                cancel_url=cancel_url,
                customer_email=email or None,
                client_reference_id=str(event.id),
                metadata=metadata,
                line_items=[
                    {
                        "quantity": 1,
                        "price_data": {
                            "currency": (event.currency or self.currency).lower(),
                            "unit_amount": amount,
                            "product_data": {
                                "name": label,
                                "metadata": {"event_id": str(event.id)},
                            },
                        },
                    }
                ],
            )
        except stripe.StripeError as exc:
            logger.exception("Stripe checkout session create failed for event=%s", event.id)
            raise GatewayError("Could not start payment, please try again.") from exc

        if not getattr(session, "url", None):
            raise GatewayError("Missing checkout session URL")
        logger.info("Created checkout session %s for event=%s tickets=%s", session.id, event.id, tickets)
        return CheckoutSession(id=session.id, url=session.url)

    def retrieve_checkout_session(self, session_id: str):
        self._configure()
        try:
            return stripe.checkout.Session.retrieve(session_id)
        except stripe.StripeError as exc:
            logger.exception("Stripe checkout session retrieve failed id=%s", session_id)
            raise GatewayError("Could not confirm payment with the gateway") from exc

    def recent_checkout_sessions(self, since: datetime) -> list:
        """Checkout sessions created since `since`, newest first."""
        self._configure()
        try:
            page = stripe.checkout.Session.list(created={"gte": int(since.timestamp())}, limit=100)
            return list(page.auto_paging_iter())
        except stripe.StripeError as exc:
            logger.exception("Stripe checkout session listing failed since=%s", since.isoformat())
            raise GatewayError("Could not list checkout sessions") from exc

    def construct_webhook_event(self, payload: bytes, sig_header: str):
        self._configure()
        return stripe.Webhook.construct_event(
            payload=payload, sig_header=sig_header, secret=settings.STRIPE_WEBHOOK_SECRET
        )

    def paid_checkout(self, session, expected_event_id=None) -> PaidCheckout:
        """
        Read a checkout session that should be paid.

        Raises GatewayError when Stripe does not report it paid or when it
        belongs to a different event than `expected_event_id`.
        """
        session_id = session.get("id")
        if session.get("payment_status") != "paid":
            raise GatewayError(f"Payment not completed for session {session_id}")
        metadata = session.get("metadata") or {}
        event_id = metadata.get("event_id") or session.get("client_reference_id")
        if not event_id:
            raise GatewayError(f"Missing event_id in metadata for session {session_id}")
        if expected_event_id is not None and str(expected_event_id) != str(event_id):
            raise GatewayError(f"Checkout session {session_id} belongs to another event")
        try:
            tickets = int(metadata.get("tickets") or 1)
        except (TypeError, ValueError):
            tickets = 1
        return PaidCheckout(
            session_id=session_id,
            event_id=str(event_id),
            tickets=max(tickets, 1),
            name=metadata.get("name") or "Guest",
            email=metadata.get("email") or "",
            phone=metadata.get("phone") or "",
            notes=metadata.get("notes") or "",
        )
