"""
django-filter FilterSet definitions for the events app.

``EventFilter`` narrows the public catalog by date window, access type
and whether the event takes payment.  Staff see drafts too; that rule
is enforced in the view.
"""
from django.db.models import Q
from django_filters import rest_framework as filters

from .models import Event


class EventFilter(filters.FilterSet):
    """Filter set for the event catalog."""

    q = filters.CharFilter(method="filter_q")
    start_after = filters.IsoDateTimeFilter(field_name="start_time", lookup_expr="gte")
    start_before = filters.IsoDateTimeFilter(field_name="start_time", lookup_expr="lte")
    is_free = filters.BooleanFilter(method="filter_is_free")

    class Meta:
        model = Event
        fields = ["status", "access_type"]

    def filter_q(self, queryset, name, value):
        if not value:
            return queryset
        return queryset.filter(
            Q(title__icontains=value)
            | Q(description__icontains=value)
            | Q(location__icontains=value)
        )

    def filter_is_free(self, queryset, name, value):
        if value is None:
            return queryset
        # A member fee only counts when the event is open to non-members
        paid = Q(fee__gt=0) | (Q(member_fee__gt=0) & ~Q(access_type=Event.ACCESS_MEMBERS_ONLY))
        return queryset.exclude(paid) if value else queryset.filter(paid)
