"""
Serializers for the payments app.

Registrations reach the API as `RegistrationRecord` values rather than
model instances, so the output serializer is a plain `Serializer` that
reads attributes.  Input serializers only shape and type-check request
data; the workflow rules live in `payments.submission`.
"""
from __future__ import annotations

from rest_framework import serializers

from events.buckets import registration_bucket
from events.models import MAX_TICKETS_PER_REGISTRATION, Event, EventRegistration

from .review import DECISION_STATUS


class ContactSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    phone = serializers.CharField(max_length=50)
    email = serializers.EmailField(required=False, allow_blank=True, default="")
    tickets = serializers.IntegerField(min_value=1, max_value=MAX_TICKETS_PER_REGISTRATION, default=1)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class RegistrationCreateSerializer(ContactSerializer):
    """Body of POST /api/events/{id}/registrations/."""

    payment_method = serializers.ChoiceField(
        choices=EventRegistration.METHOD_CHOICES, required=False, allow_null=True, default=None
    )
    payment_proof = serializers.CharField(max_length=512, required=False, allow_blank=True, default="")


class CheckoutSessionRequestSerializer(ContactSerializer):
    event = serializers.PrimaryKeyRelatedField(queryset=Event.objects.all())


class EvidenceUploadSerializer(serializers.Serializer):
    event = serializers.PrimaryKeyRelatedField(queryset=Event.objects.all())
    file = serializers.FileField()


class DecisionSerializer(serializers.Serializer):
    outcome = serializers.ChoiceField(choices=sorted(DECISION_STATUS))


class RegistrationRecordSerializer(serializers.Serializer):
    """
    Read-only view of a registration.

    Context:
      - ``event``: adds the derived ``bucket``
      - ``review_session``: adds ``payment_proof_url`` for staff screens
    """

    id = serializers.CharField(read_only=True)
    event_id = serializers.IntegerField(read_only=True)
    name = serializers.CharField(read_only=True)
    phone = serializers.CharField(read_only=True)
    email = serializers.CharField(read_only=True, allow_null=True)
    tickets = serializers.IntegerField(read_only=True)
    notes = serializers.CharField(read_only=True)
    payment_method = serializers.CharField(read_only=True, allow_null=True)
    payment_status = serializers.CharField(read_only=True, allow_null=True)
    payment_proof = serializers.CharField(read_only=True, allow_null=True)
    reviewed_by = serializers.CharField(read_only=True)
    reviewed_at = serializers.DateTimeField(read_only=True, allow_null=True)
    created_at = serializers.DateTimeField(read_only=True, allow_null=True)
    bucket = serializers.SerializerMethodField()
    payment_proof_url = serializers.SerializerMethodField()

    def get_bucket(self, record):
        event = self.context.get("event")
        if event is None:
            session = self.context.get("review_session")
            if session is None:
                return None
            event = session.event(record.event_id)
        return registration_bucket(record, event)

    def get_payment_proof_url(self, record):
        session = self.context.get("review_session")
        if session is None or not record.payment_proof:
            return None
        return session.resolve_evidence_url(record.payment_proof)
