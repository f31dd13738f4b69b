"""
Models for the events app.

An `Event` carries the registration facts the payment workflow reads:
the non-member fee, an optional member fee, capacity and access type.
An `EventRegistration` is one attempt to claim one or more seats at an
event.  Its `payment_status` is nullable on purpose: cash and card
registrations never write it, and `events.buckets` infers their bucket
from the event's fees.
"""
import uuid
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import F, Q
from django.utils.text import slugify


MAX_TICKETS_PER_REGISTRATION = 5


class Event(models.Model):
    """Represents an event that members can register for."""
    ACCESS_MEMBERS_ONLY = "members_only"
    ACCESS_ALL_WELCOME = "all_welcome"
    ACCESS_CHOICES = [
        (ACCESS_MEMBERS_ONLY, "Members only"),
        (ACCESS_ALL_WELCOME, "All welcome"),
    ]
    STATUS_CHOICES = [
        ("draft", "Draft"),
        ("published", "Published"),
        ("ended", "Ended"),
    ]
    title = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, unique=True, blank=True)
    description = models.TextField(blank=True)
    start_time = models.DateTimeField(null=True, blank=True)
    end_time = models.DateTimeField(null=True, blank=True)
    location = models.CharField(max_length=255, blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default="published")
    # Pricing
    fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    member_fee = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    currency = models.CharField(max_length=10, default="aud")
    capacity = models.PositiveIntegerField(null=True, blank=True, help_text="Empty means unlimited")
    access_type = models.CharField(max_length=20, choices=ACCESS_CHOICES, default=ACCESS_ALL_WELCOME)
    # Meta
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                check=Q(member_fee__isnull=True) | Q(member_fee__lte=F("fee")),
                name="event_member_fee_lte_fee",
            ),
        ]

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = f"{slugify(self.title)[:200]}-{uuid.uuid4().hex[:6]}"
        super().save(*args, **kwargs)

    def clean(self):
        if self.member_fee is not None and self.fee is not None and self.member_fee > self.fee:
            raise ValidationError({"member_fee": "Member fee cannot be higher than the fee."})

    @property
    def effective_member_fee(self):
        """Member fee only applies to events open to everyone."""
        if self.access_type == self.ACCESS_MEMBERS_ONLY:
            return None
        return self.member_fee

    @property
    def has_price(self) -> bool:
        """True when either fee tier is non-zero, whatever the access type."""
        return (self.fee or 0) > 0 or (self.member_fee or 0) > 0

    @property
    def is_free(self) -> bool:
        member_fee = self.effective_member_fee
        return (self.fee or 0) == 0 and (member_fee is None or member_fee == 0)

    def __str__(self) -> str:
        return self.title


class EventRegistration(models.Model):
    """One registration attempt for one event."""

    METHOD_CARD = "card"
    METHOD_CASH = "cash"
    METHOD_PAYID = "payid"
    METHOD_TRANSFER = "transfer"
    METHOD_CHOICES = [
        (METHOD_CARD, "Card"),
        (METHOD_CASH, "Cash"),
        (METHOD_PAYID, "Bank transfer (PayID)"),
        (METHOD_TRANSFER, "Bank transfer (BSB)"),
    ]
    TRANSFER_METHODS = (METHOD_PAYID, METHOD_TRANSFER)

    STATUS_PENDING = "pending"
    STATUS_CONFIRMED = "confirmed"
    STATUS_CANCELLED = "cancelled"
    STATUS_EXPIRED = "expired"
    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_CONFIRMED, "Confirmed"),
        (STATUS_CANCELLED, "Cancelled"),
        (STATUS_EXPIRED, "Expired"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="registrations")
    name = models.CharField(max_length=255)
    phone = models.CharField(max_length=50)
    email = models.EmailField(blank=True, null=True)
    tickets = models.PositiveSmallIntegerField(
        default=1,
        validators=[MinValueValidator(1), MaxValueValidator(MAX_TICKETS_PER_REGISTRATION)],
    )
    notes = models.TextField(blank=True)
    payment_method = models.CharField(max_length=16, choices=METHOD_CHOICES, null=True, blank=True)
    payment_status = models.CharField(max_length=16, choices=STATUS_CHOICES, null=True, blank=True)
    payment_proof = models.CharField(
        max_length=512,
        blank=True,
        null=True,
        help_text="Storage key of the uploaded transfer evidence (or a legacy absolute URL)",
    )
    checkout_session_id = models.CharField(max_length=255, unique=True, null=True, blank=True)
    reviewed_by = models.CharField(max_length=150, blank=True)
    reviewed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "event_registrations"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["event", "payment_status"], name="event_regis_event_i_6c1f0d_idx"),
            models.Index(fields=["payment_status"], name="event_regis_payment_3b9e2a_idx"),
        ]

    def __str__(self):
        return f"{self.name} -> {self.event_id} ({self.payment_status or 'unrecorded'})"
