"""
Serializers for the events app.

The catalog is read-only over the API; events are edited in the admin.
Query serializers type-check the pricing and transfer-details helpers.
"""
from rest_framework import serializers

from .models import MAX_TICKETS_PER_REGISTRATION, Event, EventRegistration


class EventSerializer(serializers.ModelSerializer):
    """Serializer for Event objects."""

    is_free = serializers.BooleanField(read_only=True)
    has_price = serializers.BooleanField(read_only=True)
    effective_member_fee = serializers.DecimalField(
        max_digits=10, decimal_places=2, read_only=True, allow_null=True
    )

    class Meta:
        model = Event
        fields = [
            "id",
            "title",
            "slug",
            "description",
            "start_time",
            "end_time",
            "location",
            "status",
            "fee",
            "member_fee",
            "effective_member_fee",
            "currency",
            "capacity",
            "access_type",
            "is_free",
            "has_price",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class PricingQuerySerializer(serializers.Serializer):
    tickets = serializers.IntegerField(min_value=1, max_value=MAX_TICKETS_PER_REGISTRATION, default=1)
    member = serializers.BooleanField(required=False, default=False)


class TransferDetailsQuerySerializer(serializers.Serializer):
    tickets = serializers.IntegerField(min_value=1, max_value=MAX_TICKETS_PER_REGISTRATION, default=1)
    name = serializers.CharField(required=False, allow_blank=True, default="")
    method = serializers.ChoiceField(
        choices=[c for c in EventRegistration.METHOD_CHOICES if c[0] in EventRegistration.TRANSFER_METHODS],
        default=EventRegistration.METHOD_PAYID,
    )
