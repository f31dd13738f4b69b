"""
ViewSets for the events app.

The catalog is public and read-only.  Each event also exposes the
registration helpers registrants need (pricing quote, transfer details,
capacity, the registration form itself) and the staff-only registration
list, grouped into confirmed / pending / cancelled, plus a CSV export of
confirmed attendees.
"""
import csv
import logging

from django.http import HttpResponse
from django.utils import timezone
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.response import Response

from payments.exceptions import RegistrationError, SubmissionIncomplete
from payments.review import ReviewSession
from payments.serializers import RegistrationCreateSerializer, RegistrationRecordSerializer
from payments.submission import (
    STEP_PAYMENT,
    ContactDetails,
    RegistrationSubmission,
    settlement_details,
)

from .buckets import BUCKET_CONFIRMED, BUCKETS, capacity_summary
from .filters import EventFilter
from .models import Event, EventRegistration
from .pricing import calculate_card_fee, event_pricing
from .serializers import EventSerializer, PricingQuerySerializer, TransferDetailsQuerySerializer

logger = logging.getLogger("events")

EXPORT_COLUMNS = ["name", "phone", "email", "tickets", "payment_method", "notes", "created_at"]


def _error(exc: RegistrationError) -> Response:
    return Response(exc.as_response_data(), status=exc.status_code)


class EventViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Read-only catalog with:
    - Filtering (status, access type, date window, free/paid) & ordering
    - Registrant helpers (pricing, transfer-details, capacity, registrations POST)
    - Staff helpers (registrations GET, registrations/export)
    """
    serializer_class = EventSerializer
    permission_classes = [AllowAny]
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_class = EventFilter
    ordering_fields = ["start_time", "created_at", "title", "fee"]
    ordering = ["start_time"]

    # ------------------------ Queryset -----------------------
    def get_queryset(self):
        """Staff see every event; everyone else only published ones."""
        qs = Event.objects.all()
        if not self.request.user.is_staff:
            qs = qs.exclude(status="draft")
        return qs

    # ---------------------- Permissions ----------------------
    def get_permissions(self):
        if self.action == "registrations" and self.request.method == "GET":
            return [IsAdminUser()]
        if self.action == "export_registrations":
            return [IsAdminUser()]
        return super().get_permissions()

    def _is_member(self, request) -> bool:
        return bool(request.user and request.user.is_authenticated)

    # --------------------- Registrant helpers ----------------
    @action(detail=True, methods=["get"], url_path="pricing")
    def pricing(self, request, pk=None):
        """Price quote for N tickets; the member price needs a signed-in member."""
        event = self.get_object()
        query = PricingQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        tickets = query.validated_data["tickets"]
        member = query.validated_data["member"] and self._is_member(request)
        quote = event_pricing(event, tickets, member)
        return Response(
            {
                "event": event.id,
                "tickets": tickets,
                "currency": event.currency.upper(),
                "is_free": event.is_free,
                **quote.as_dict(),
                "card_fee": str(calculate_card_fee(quote.total_fee)),
            }
        )

    @action(detail=True, methods=["get"], url_path="transfer-details")
    def transfer_details(self, request, pk=None):
        """Where and how much to transfer, with the reference to quote."""
        event = self.get_object()
        if event.is_free:
            return Response(
                {"error": "not_payable", "detail": "Free events do not take payment"},
                status=status.HTTP_400_BAD_REQUEST,
            )
        query = TransferDetailsQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        contact = ContactDetails(
            name=query.validated_data["name"],
            phone="",
            tickets=query.validated_data["tickets"],
        )
        details = settlement_details(event, contact, query.validated_data["method"], self._is_member(request))
        return Response(details.as_dict())

    @action(detail=True, methods=["get"], url_path="capacity")
    def capacity(self, request, pk=None):
        event = self.get_object()
        summary = capacity_summary(event, event.registrations.all())
        return Response({"event": event.id, **summary.as_dict()})

    # ---------------------- Registrations --------------------
    @action(detail=True, methods=["get", "post"], url_path="registrations")
    def registrations(self, request, pk=None):
        """
        POST: register for the event (free, cash or bank transfer).
        GET (staff): every registration, grouped by bucket.
        """
        event = self.get_object()
        if request.method == "POST":
            return self._register(request, event)

        review = ReviewSession()
        try:
            review.load(event.id)
        except RegistrationError as exc:
            return _error(exc)
        grouped = review.registrations_by_bucket(event.id)
        context = {"event": event, "review_session": review}
        return Response(
            {
                "event": event.id,
                "capacity": review.capacity(event.id).as_dict(),
                **{
                    bucket: RegistrationRecordSerializer(grouped[bucket], many=True, context=context).data
                    for bucket in BUCKETS
                },
            }
        )

    def _register(self, request, event):
        serializer = RegistrationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        submission = RegistrationSubmission(event, is_member_verified=self._is_member(request))
        try:
            submission.submit_form(data)
            if submission.step == STEP_PAYMENT:
                method = data.get("payment_method")
                if not method:
                    raise SubmissionIncomplete(
                        "Choose a payment method", detail={"payment_method": "This field is required."}
                    )
                if method == EventRegistration.METHOD_CARD:
                    return Response(
                        {
                            "error": "card_checkout_required",
                            "detail": "Card payments start at /api/payments/checkout-session/",
                        },
                        status=status.HTTP_400_BAD_REQUEST,
                    )
                submission.choose_payment_method(method)
                if submission.needs_evidence and data.get("payment_proof"):
                    submission.attach_uploaded_evidence(data["payment_proof"])
                submission.confirm()
        except RegistrationError as exc:
            return _error(exc)

        body = RegistrationRecordSerializer(submission.record, context={"event": event}).data
        return Response(body, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["get"], url_path="registrations/export")
    def export_registrations(self, request, pk=None):
        """CSV of confirmed registrations for the door list."""
        event = self.get_object()
        review = ReviewSession()
        try:
            review.load(event.id)
        except RegistrationError as exc:
            return _error(exc)
        confirmed = review.registrations_by_bucket(event.id)[BUCKET_CONFIRMED]

        stamp = timezone.now().strftime("%Y%m%d")
        response = HttpResponse(content_type="text/csv")
        response["Content-Disposition"] = f'attachment; filename="{event.slug or event.id}-registrations-{stamp}.csv"'
        writer = csv.writer(response)
        writer.writerow(EXPORT_COLUMNS)
        for record in reversed(confirmed):
            writer.writerow(
                [
                    record.name,
                    record.phone,
                    record.email or "",
                    record.tickets,
                    record.payment_method or "",
                    record.notes,
                    record.created_at.isoformat() if record.created_at else "",
                ]
            )
        logger.info("Exported %s confirmed registrations for event=%s", len(confirmed), event.id)
        return response
