"""
Admin configuration for the events app.

Events are created and priced here.  Registrations can be searched and
filtered by payment path, but their payment status is changed through
the review queue so every decision records who made it.
"""
from django.contrib import admin

from .buckets import registration_bucket
from .models import Event, EventRegistration


class EventRegistrationInline(admin.TabularInline):
    model = EventRegistration
    extra = 0
    can_delete = False
    fields = ("name", "phone", "tickets", "payment_method", "payment_status", "created_at")
    readonly_fields = fields
    show_change_link = True


@admin.register(Event)
class EventAdmin(admin.ModelAdmin):
    list_display = ("title", "status", "start_time", "fee", "member_fee", "capacity", "access_type")
    list_filter = ("status", "access_type")
    search_fields = ("title", "location")
    prepopulated_fields = {"slug": ("title",)}
    ordering = ("-start_time",)
    inlines = [EventRegistrationInline]


@admin.register(EventRegistration)
class EventRegistrationAdmin(admin.ModelAdmin):
    list_display = (
        "name",
        "event",
        "tickets",
        "payment_method",
        "payment_status",
        "bucket",
        "reviewed_by",
        "created_at",
    )
    list_filter = ("payment_method", "payment_status", "event")
    search_fields = ("name", "phone", "email", "checkout_session_id")
    ordering = ("-created_at",)
    list_select_related = ("event",)
    readonly_fields = (
        "id",
        "event",
        "payment_method",
        "payment_status",
        "payment_proof",
        "checkout_session_id",
        "reviewed_by",
        "reviewed_at",
        "created_at",
        "updated_at",
    )

    @admin.display(description="Bucket")
    def bucket(self, obj):
        return registration_bucket(obj, obj.event)
