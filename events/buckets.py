"""
Status bucketing for event registrations.

Every registration lands in exactly one display bucket: confirmed,
pending or cancelled.  Not every creation path writes `payment_status`
(cash and card registrations leave it empty), so an unrecorded status is
inferred from the event's fees.  These helpers are pure: they read
`payment_status` / `payment_proof` from the registration and the fee
fields from the event, so they work on model instances and on the
`payments.store.RegistrationRecord` snapshots used by review sessions.
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

BUCKET_CONFIRMED = "confirmed"
BUCKET_PENDING = "pending"
BUCKET_CANCELLED = "cancelled"
BUCKETS = (BUCKET_CONFIRMED, BUCKET_PENDING, BUCKET_CANCELLED)

_CANCELLED_STATUSES = {"cancelled", "expired"}


def _as_decimal(value) -> Decimal:
    if value in (None, ""):
        return Decimal("0")
    return Decimal(str(value))


def event_has_price(event) -> bool:
    """True when the event charges something on either fee tier."""
    return _as_decimal(getattr(event, "fee", 0)) > 0 or _as_decimal(getattr(event, "member_fee", None)) > 0


def registration_bucket(registration, event) -> str:
    """
    Classify a registration, first match wins:

    1. confirmed            -> confirmed
    2. cancelled / expired  -> cancelled
    3. pending              -> pending
    4. not recorded         -> pending for fee-bearing events, else confirmed
    """
    status = getattr(registration, "payment_status", None) or None
    if status == "confirmed":
        return BUCKET_CONFIRMED
    if status in _CANCELLED_STATUSES:
        return BUCKET_CANCELLED
    if status == "pending":
        return BUCKET_PENDING
    return BUCKET_PENDING if event_has_price(event) else BUCKET_CONFIRMED


def has_pending_evidence(registration) -> bool:
    """Uploaded proof that no staff member has decided on yet."""
    if not getattr(registration, "payment_proof", None):
        return False
    status = getattr(registration, "payment_status", None) or None
    return status is None or status == "pending"


def group_by_bucket(registrations: Iterable, event) -> dict[str, list]:
    """Partition registrations of one event into the three buckets, keeping order."""
    grouped: dict[str, list] = {bucket: [] for bucket in BUCKETS}
    for registration in registrations:
        grouped[registration_bucket(registration, event)].append(registration)
    return grouped


@dataclass(frozen=True)
class CapacitySummary:
    confirmed_tickets: int
    capacity: int | None
    remaining: int | None
    is_full: bool

    def as_dict(self) -> dict:
        return {
            "confirmed_tickets": self.confirmed_tickets,
            "capacity": self.capacity,
            "remaining": self.remaining,
            "is_full": self.is_full,
        }


def capacity_summary(event, registrations: Iterable) -> CapacitySummary:
    """
    Confirmed tickets against capacity, for display only.

    Only the confirmed bucket counts; nothing here blocks a submission.
    """
    confirmed = sum(
        int(getattr(reg, "tickets", 1) or 1)
        for reg in registrations
        if registration_bucket(reg, event) == BUCKET_CONFIRMED
    )
    capacity = getattr(event, "capacity", None)
    if capacity is None:
        return CapacitySummary(confirmed, None, None, False)
    remaining = max(capacity - confirmed, 0)
    return CapacitySummary(confirmed, capacity, remaining, remaining == 0)
