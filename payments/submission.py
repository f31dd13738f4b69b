"""
Registration submission engine.

A `RegistrationSubmission` walks one registrant through
form -> payment -> success for one event and produces exactly one
registration whose status matches its payment path:

- free event:     created at once, payment_status "confirmed"
- cash:           created at once, payment_status left unrecorded
- bank transfer:  created only with a proof reference, status "pending"
- card:           never created here; see `begin_card_checkout` and
                  `complete_card_checkout`, which bracket the redirect to
                  the hosted checkout page with an intent kept in the
                  caller's session storage.

Staff notifications are best-effort and never fail a registration.
"""
from __future__ import annotations

import logging
import re
from collections.abc import MutableMapping
from dataclasses import asdict, dataclass

from django.conf import settings

from events.catalog import get_event
from events.models import MAX_TICKETS_PER_REGISTRATION, EventRegistration
from events.pricing import event_pricing
from events.tasks import dispatch_registration_notification

from .evidence import S3EvidenceStore, is_event_proof_key, validate_evidence
from .exceptions import EvidenceRejected, GatewayError, SubmissionIncomplete
from .gateway import CheckoutSession, PaidCheckout, StripeGateway
from .store import OrmRegistrationStore, RegistrationRecord

logger = logging.getLogger("payments")

STEP_FORM = "form"
STEP_PAYMENT = "payment"
STEP_SUCCESS = "success"

INTENT_KEY = "pending_event_registration"

PAYMENT_METHODS = {choice for choice, _ in EventRegistration.METHOD_CHOICES}
TRANSFER_METHODS = set(EventRegistration.TRANSFER_METHODS)


@dataclass(frozen=True)
class ContactDetails:
    name: str
    phone: str
    email: str = ""
    tickets: int = 1
    notes: str = ""

    @classmethod
    def from_data(cls, data: dict) -> "ContactDetails":
        errors = {}
        name = (data.get("name") or "").strip()
        phone = (data.get("phone") or "").strip()
        if not name:
            errors["name"] = "This field is required."
        if not phone:
            errors["phone"] = "This field is required."
        try:
            tickets = data.get("tickets")
            if tickets is None:
                tickets = data.get("participants")
            tickets = 1 if tickets is None else int(tickets)
        except (TypeError, ValueError):
            tickets = 0
        if not 1 <= tickets <= MAX_TICKETS_PER_REGISTRATION:
            errors["tickets"] = f"Choose between 1 and {MAX_TICKETS_PER_REGISTRATION} tickets."
        if errors:
            raise SubmissionIncomplete("Please complete the registration form", detail=errors)
        return cls(
            name=name,
            phone=phone,
            email=(data.get("email") or "").strip(),
            tickets=tickets,
            notes=(data.get("notes") or "").strip(),
        )


@dataclass(frozen=True)
class SettlementDetails:
    """What a registrant copies into their banking app for a transfer."""

    method: str
    amount: str
    currency: str
    reference: str
    payid: str = ""
    account_name: str = ""
    bsb: str = ""
    account_number: str = ""

    def as_dict(self) -> dict:
        return asdict(self)


def transfer_reference(event, name: str) -> str:
    initials = re.sub(r"[^A-Z0-9]", "", (name or "").upper())[:12] or "GUEST"
    return f"EV{event.id}-{initials}"


def settlement_details(event, contact: ContactDetails, method: str,
                       is_member_verified: bool = False) -> SettlementDetails:
    amount = event_pricing(event, contact.tickets, is_member_verified).total_fee
    details = SettlementDetails(
        method=method,
        amount=str(amount),
        currency=(event.currency or "aud").upper(),
        reference=transfer_reference(event, contact.name),
        account_name=settings.TRANSFER_ACCOUNT_NAME,
    )
    if method == EventRegistration.METHOD_PAYID:
        return SettlementDetails(**{**details.as_dict(), "payid": settings.TRANSFER_PAYID})
    return SettlementDetails(
        **{
            **details.as_dict(),
            "bsb": settings.TRANSFER_BSB,
            "account_number": settings.TRANSFER_ACCOUNT_NUMBER,
        }
    )


class RegistrationSubmission:
    """Drives one registration from the form to a stored record."""

    def __init__(self, event, store=None, evidence_store=None, gateway=None,
                 notify=dispatch_registration_notification, is_member_verified=False):
        self.event = event
        self.is_member_verified = is_member_verified
        self.store = store or OrmRegistrationStore()
        self.evidence_store = evidence_store or S3EvidenceStore()
        self.gateway = gateway or StripeGateway()
        self.notify = notify
        self.step = STEP_FORM
        self.contact: ContactDetails | None = None
        self.payment_method: str | None = None
        self.proof_ref: str | None = None
        self.record: RegistrationRecord | None = None

    # ---------- form ----------

    def submit_form(self, data: dict) -> str:
        """Validate contact details; free events are registered straight away."""
        self.contact = ContactDetails.from_data(data)
        if self.event.is_free:
            self._create(payment_method=None, payment_status=EventRegistration.STATUS_CONFIRMED)
        else:
            self.step = STEP_PAYMENT
        return self.step

    # ---------- payment ----------

    def choose_payment_method(self, method: str) -> None:
        self._require_step(STEP_PAYMENT)
        if method not in PAYMENT_METHODS:
            raise SubmissionIncomplete("Choose a payment method", detail={"payment_method": "Invalid choice."})
        if method != self.payment_method and method not in TRANSFER_METHODS:
            # Leaving the transfer path drops the attached proof
            self.proof_ref = None
        self.payment_method = method

    @property
    def needs_evidence(self) -> bool:
        return self.payment_method in TRANSFER_METHODS

    @property
    def settlement_details(self) -> SettlementDetails | None:
        if not self.needs_evidence or self.contact is None:
            return None
        return settlement_details(self.event, self.contact, self.payment_method, self.is_member_verified)

    def attach_evidence(self, fileobj, content_type: str, filename: str = "", size=None) -> str:
        """Check the image locally, upload it once and keep its reference."""
        self._require_step(STEP_PAYMENT)
        if not self.needs_evidence:
            raise SubmissionIncomplete("Payment proof is only needed for bank transfers")
        if size is None:
            size = getattr(fileobj, "size", 0) or 0
        validate_evidence(content_type, size)
        self.proof_ref = self.evidence_store.upload_evidence(
            fileobj, content_type, self.event.id, filename=filename, size=size
        )
        return self.proof_ref

    def attach_uploaded_evidence(self, proof_ref: str) -> None:
        """Use a proof reference returned by an earlier upload."""
        self._require_step(STEP_PAYMENT)
        if not self.needs_evidence:
            raise SubmissionIncomplete("Payment proof is only needed for bank transfers")
        if not proof_ref:
            raise EvidenceRejected("Please upload your payment proof")
        if not is_event_proof_key(proof_ref, self.event.id):
            # Keys from this event's own uploads only
            raise EvidenceRejected("Payment proof was not uploaded for this event")
        self.proof_ref = proof_ref

    def clear_evidence(self) -> None:
        self.proof_ref = None

    @property
    def can_confirm(self) -> bool:
        if self.step != STEP_PAYMENT or not self.payment_method:
            return False
        if self.needs_evidence:
            return bool(self.proof_ref)
        return True

    def confirm(self) -> RegistrationRecord:
        """Create the record for cash and transfer payments."""
        self._require_step(STEP_PAYMENT)
        if self.payment_method == EventRegistration.METHOD_CARD:
            raise SubmissionIncomplete("Card payments complete through the checkout page")
        if not self.can_confirm:
            if self.needs_evidence:
                raise SubmissionIncomplete(
                    "Please upload your payment proof", detail={"payment_proof": "This field is required."}
                )
            raise SubmissionIncomplete("Choose a payment method", detail={"payment_method": "This field is required."})
        if self.needs_evidence:
            return self._create(
                payment_method=self.payment_method,
                payment_status=EventRegistration.STATUS_PENDING,
                payment_proof=self.proof_ref,
            )
        return self._create(payment_method=self.payment_method, payment_status=None)

    # ---------- card ----------

    def begin_card_checkout(self, intent_storage: MutableMapping, success_url: str,
                            cancel_url: str) -> CheckoutSession:
        """
        Phase one of a card payment: start a hosted checkout and keep an
        intent in `intent_storage` so the return request can finish it.
        """
        self._require_step(STEP_PAYMENT)
        if self.payment_method != EventRegistration.METHOD_CARD:
            raise SubmissionIncomplete("Card checkout needs the card payment method")
        intent = {
            "event_id": str(self.event.id),
            **asdict(self.contact),
        }
        intent_storage[INTENT_KEY] = intent
        try:
            session = self.gateway.create_checkout_session(
                self.event,
                self.contact.tickets,
                {"name": self.contact.name, "email": self.contact.email, "phone": self.contact.phone},
                self.contact.notes,
                success_url,
                cancel_url,
                is_member_verified=self.is_member_verified,
            )
        except GatewayError:
            intent_storage.pop(INTENT_KEY, None)
            raise
        intent_storage[INTENT_KEY] = {**intent, "session_id": session.id}
        return session

    # ---------- internals ----------

    def _require_step(self, step: str) -> None:
        if self.step != step:
            raise SubmissionIncomplete(f"Registration is at the '{self.step}' step")

    def _create(self, payment_method, payment_status, payment_proof=None) -> RegistrationRecord:
        # A store failure propagates; the submission keeps its step and
        # proof reference so the registrant can retry without re-uploading.
        self.record = self.store.create_registration(
            {
                "event_id": self.event.id,
                "name": self.contact.name,
                "phone": self.contact.phone,
                "email": self.contact.email,
                "tickets": self.contact.tickets,
                "notes": self.contact.notes,
                "payment_method": payment_method,
                "payment_status": payment_status,
                "payment_proof": payment_proof,
            }
        )
        self.step = STEP_SUCCESS
        logger.info(
            "Registration %s created event=%s method=%s status=%s",
            self.record.id, self.event.id, payment_method, payment_status,
        )
        _notify(self.notify, self.record, self.event)
        return self.record


def _notify(notify, record, event) -> None:
    if notify is None:
        return
    try:
        notify(record, event)
    except Exception:
        logger.exception("Registration notification failed for %s", record.id)


def record_paid_checkout(paid: PaidCheckout, event, store=None,
                         notify=dispatch_registration_notification) -> RegistrationRecord:
    """
    Store the registration for a paid checkout session, once.

    Card registrations leave payment_status unrecorded; settlement is
    the gateway's word.  Shared by the browser return and the webhook.
    """
    store = store or OrmRegistrationStore()
    existing = store.find_by_checkout_session(paid.session_id)
    if existing is not None:
        return existing
    record = store.create_registration(
        {
            "event_id": event.id,
            "name": paid.name,
            "phone": paid.phone,
            "email": paid.email,
            "tickets": paid.tickets,
            "notes": paid.notes,
            "payment_method": EventRegistration.METHOD_CARD,
            "payment_status": None,
            "checkout_session_id": paid.session_id,
        }
    )
    logger.info("Card registration %s recorded for session %s", record.id, paid.session_id)
    _notify(notify, record, event)
    return record


def complete_card_checkout(intent_storage: MutableMapping, outcome: str, event=None,
                           session_id=None, store=None, gateway=None,
                           notify=dispatch_registration_notification) -> RegistrationRecord | None:
    """
    Phase two of a card payment, on return from the hosted page.

    `cancel` discards the stored intent and creates nothing.  `success`
    verifies the session with the gateway before recording it.
    """
    intent = intent_storage.pop(INTENT_KEY, None)
    if outcome != "success":
        logger.info("Card checkout cancelled; intent discarded=%s", intent is not None)
        return None

    session_id = session_id or (intent or {}).get("session_id")
    if not session_id:
        raise SubmissionIncomplete("No card checkout in progress")
    expected_event_id = (intent or {}).get("event_id") or (event.id if event is not None else None)

    gateway = gateway or StripeGateway()
    try:
        session = gateway.retrieve_checkout_session(session_id)
        paid = gateway.paid_checkout(session, expected_event_id=expected_event_id)
    except GatewayError:
        # Keep the intent so a later retry of the return URL can finish it
        if intent is not None:
            intent_storage[INTENT_KEY] = intent
        raise

    if event is None or str(event.id) != paid.event_id:
        event = get_event(paid.event_id)
    return record_paid_checkout(paid, event, store=store, notify=notify)
