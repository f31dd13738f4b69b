"""
Registration record store.

`OrmRegistrationStore` is the only place that reads or writes
`EventRegistration` rows on behalf of the submission and review engines.
It hands out immutable `RegistrationRecord` snapshots so that review
sessions can hold their own copies without touching live model
instances.

Older clients sent the payment fields under several spellings
(`paymentStatus`, `payment_proof_url`, `paymentProofUrl`, ...).  Those
aliases are folded into the canonical names by
`normalize_registration_payload` and nowhere else.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime

from django.core.exceptions import ValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from events.catalog import EventNotFound, get_event
from events.models import EventRegistration

from .exceptions import RecordStoreError, RegistrationNotFound, StaleRegistration

logger = logging.getLogger("payments")

_ALIASES = {
    "payment_status": ("payment_status", "paymentStatus"),
    "payment_proof": ("payment_proof", "payment_proof_url", "paymentProof", "paymentProofUrl"),
    "payment_method": ("payment_method", "paymentMethod"),
    "event_id": ("event_id", "eventId", "event"),
    "checkout_session_id": ("checkout_session_id", "checkoutSessionId"),
    "tickets": ("tickets", "participants"),
    "created_at": ("created_at", "createdAt", "registration_date"),
}

_PLAIN_FIELDS = ("id", "name", "phone", "email", "notes", "reviewed_by", "reviewed_at")

# Sentinel: "do not check the stored status before writing"
ANY_STATUS = object()


def normalize_registration_payload(data: dict) -> dict:
    """Fold alias spellings into canonical field names; first non-empty alias wins."""
    normalized = {key: data[key] for key in _PLAIN_FIELDS if key in data}
    for canonical, aliases in _ALIASES.items():
        for alias in aliases:
            value = data.get(alias)
            if value not in (None, ""):
                normalized[canonical] = value
                break
    if "event_id" in normalized and hasattr(normalized["event_id"], "pk"):
        normalized["event_id"] = normalized["event_id"].pk
    return normalized


@dataclass(frozen=True)
class RegistrationRecord:
    """Immutable snapshot of one registration as the store last reported it."""

    id: str
    event_id: int
    name: str
    phone: str
    email: str | None = None
    tickets: int = 1
    notes: str = ""
    payment_method: str | None = None
    payment_status: str | None = None
    payment_proof: str | None = None
    checkout_session_id: str | None = None
    reviewed_by: str = ""
    reviewed_at: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, instance: EventRegistration) -> "RegistrationRecord":
        return cls(
            id=str(instance.id),
            event_id=instance.event_id,
            name=instance.name,
            phone=instance.phone,
            email=instance.email,
            tickets=instance.tickets,
            notes=instance.notes,
            payment_method=instance.payment_method,
            payment_status=instance.payment_status or None,
            payment_proof=instance.payment_proof or None,
            checkout_session_id=instance.checkout_session_id,
            reviewed_by=instance.reviewed_by,
            reviewed_at=instance.reviewed_at,
            created_at=instance.created_at,
        )

    @classmethod
    def from_payload(cls, data: dict) -> "RegistrationRecord":
        fields = normalize_registration_payload(data)
        return cls(
            id=str(fields["id"]),
            event_id=int(fields["event_id"]),
            name=fields.get("name", ""),
            phone=fields.get("phone", ""),
            email=fields.get("email") or None,
            tickets=int(fields.get("tickets") or 1),
            notes=fields.get("notes") or "",
            payment_method=fields.get("payment_method"),
            payment_status=fields.get("payment_status"),
            payment_proof=fields.get("payment_proof"),
            checkout_session_id=fields.get("checkout_session_id"),
            reviewed_by=fields.get("reviewed_by") or "",
            reviewed_at=fields.get("reviewed_at"),
            created_at=fields.get("created_at"),
        )

    def with_status(self, status: str | None) -> "RegistrationRecord":
        return replace(self, payment_status=status)


class OrmRegistrationStore:
    """Registration store backed by the Django ORM."""

    def create_registration(self, data: dict) -> RegistrationRecord:
        fields = normalize_registration_payload(data)
        try:
            event = get_event(fields.get("event_id"))
        except EventNotFound as exc:
            raise RecordStoreError(str(exc))

        values = {
            "name": fields.get("name", ""),
            "phone": fields.get("phone", ""),
            "email": fields.get("email") or None,
            "tickets": int(fields.get("tickets") or 1),
            "notes": fields.get("notes") or "",
            "payment_method": fields.get("payment_method"),
            "payment_status": fields.get("payment_status"),
            "payment_proof": fields.get("payment_proof"),
        }
        session_id = fields.get("checkout_session_id")
        try:
            with transaction.atomic():
                if session_id:
                    # Browser return and webhook may both complete the same checkout
                    instance, created = EventRegistration.objects.get_or_create(
                        checkout_session_id=session_id,
                        defaults={"event": event, **values},
                    )
                    if not created:
                        logger.info("Checkout session %s already recorded as %s", session_id, instance.id)
                else:
                    instance = EventRegistration.objects.create(event=event, **values)
        except IntegrityError:
            if session_id:
                instance = EventRegistration.objects.get(checkout_session_id=session_id)
            else:
                logger.exception("Registration insert rejected for event=%s", event.id)
                raise RecordStoreError("Failed to record registration")
        except DatabaseError:
            logger.exception("Registration insert failed for event=%s", event.id)
            raise RecordStoreError("Failed to record registration")
        return RegistrationRecord.from_model(instance)

    def get_registration(self, registration_id) -> RegistrationRecord:
        try:
            return RegistrationRecord.from_model(EventRegistration.objects.get(pk=registration_id))
        except (EventRegistration.DoesNotExist, ValidationError, ValueError):
            raise RegistrationNotFound(f"Registration {registration_id} not found")
        except DatabaseError:
            logger.exception("Registration lookup failed id=%s", registration_id)
            raise RecordStoreError("Failed to load registration")

    def list_registrations(self, event_id=None) -> list[RegistrationRecord]:
        qs = EventRegistration.objects.all().order_by("-created_at")
        if event_id is not None:
            qs = qs.filter(event_id=event_id)
        try:
            return [RegistrationRecord.from_model(reg) for reg in qs]
        except DatabaseError:
            logger.exception("Registration listing failed event=%s", event_id)
            raise RecordStoreError("Failed to fetch event registrations")

    def update_registration_status(
        self, registration_id, status: str, actor: str, expected_status=ANY_STATUS
    ) -> RegistrationRecord:
        """
        Write a new payment status and return the stored record.

        With `expected_status` the write only happens while the row still
        holds that status (None meaning unrecorded); otherwise
        `StaleRegistration` carries the row as it is now.
        """
        now = timezone.now()
        self.get_registration(registration_id)
        try:
            with transaction.atomic():
                qs = EventRegistration.objects.filter(pk=registration_id)
                if expected_status is not ANY_STATUS:
                    if expected_status is None:
                        qs = qs.filter(payment_status__isnull=True)
                    else:
                        qs = qs.filter(payment_status=expected_status)
                updated = qs.update(
                    payment_status=status,
                    reviewed_by=actor or "",
                    reviewed_at=now,
                    updated_at=now,
                )
        except (ValueError, DatabaseError):
            logger.exception("Status update failed id=%s status=%s", registration_id, status)
            raise RecordStoreError("Failed to update payment status")

        current = self.get_registration(registration_id)
        if not updated:
            logger.warning(
                "Stale status update id=%s expected=%s current=%s actor=%s",
                registration_id, expected_status, current.payment_status, actor,
            )
            raise StaleRegistration("Registration was changed by someone else", current=current)
        logger.info("Registration %s payment_status=%s by %s", registration_id, status, actor)
        return current

    def find_by_checkout_session(self, session_id: str) -> RegistrationRecord | None:
        instance = EventRegistration.objects.filter(checkout_session_id=session_id).first()
        return RegistrationRecord.from_model(instance) if instance else None
