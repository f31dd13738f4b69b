"""
Views for the payments app.

Exposes the payment side of event registration: payment proof upload
and signing, the two halves of a Stripe Checkout card payment, the
Stripe webhook, and the staff review queue.  Proof upload and checkout
are open to anonymous registrants; signing and review are staff only.
The webhook relies solely on signature verification.
"""
from __future__ import annotations

import logging
from urllib.parse import urlencode

import stripe
from django.urls import reverse
from django.utils.decorators import method_decorator
from django.views.decorators.csrf import csrf_exempt
from rest_framework import permissions, status, views, viewsets
from rest_framework.decorators import action
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.response import Response

from events.catalog import EventNotFound, get_event

from .evidence import S3EvidenceStore, validate_evidence
from .exceptions import GatewayError, RegistrationError
from .gateway import StripeGateway
from .review import ReviewSession
from .serializers import (
    CheckoutSessionRequestSerializer,
    DecisionSerializer,
    EvidenceUploadSerializer,
    RegistrationRecordSerializer,
)
from .submission import (
    RegistrationSubmission,
    complete_card_checkout,
    record_paid_checkout,
)

logger = logging.getLogger("payments")


def error_response(exc: RegistrationError) -> Response:
    return Response(exc.as_response_data(), status=exc.status_code)


class PaymentProofUploadView(views.APIView):
    """Store a bank transfer screenshot and return its proof reference."""

    permission_classes = [permissions.AllowAny]
    parser_classes = (MultiPartParser, FormParser)

    def post(self, request):
        serializer = EvidenceUploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        event = serializer.validated_data["event"]
        upload = serializer.validated_data["file"]
        try:
            validate_evidence(upload.content_type or "", upload.size)
            path = S3EvidenceStore().upload_evidence(
                upload,
                upload.content_type or "",
                event.id,
                filename=upload.name,
                size=upload.size,
            )
        except RegistrationError as exc:
            return error_response(exc)
        return Response({"path": path}, status=status.HTTP_201_CREATED)


class PaymentProofSignedUrlView(views.APIView):
    """Exchange a proof reference for a short-lived URL (staff only)."""

    permission_classes = [permissions.IsAdminUser]

    def get(self, request):
        path = (request.query_params.get("path") or "").strip()
        if not path:
            return Response({"error": "path_required", "detail": "path is required"}, status=400)
        expires_in = request.query_params.get("expires_in")
        try:
            expires_in = int(expires_in) if expires_in else None
        except ValueError:
            return Response({"error": "invalid_expiry", "detail": "expires_in must be an integer"}, status=400)
        try:
            url = S3EvidenceStore().get_signed_url(path, expires_in=expires_in)
        except RegistrationError as exc:
            return error_response(exc)
        return Response({"url": url})


class CheckoutSessionView(views.APIView):
    """
    Card payment, phase one.

    Creates a Stripe Checkout session and keeps the registration intent
    in the caller's Django session until the browser comes back.
    """

    permission_classes = [permissions.AllowAny]

    def post(self, request):
        serializer = CheckoutSessionRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        event = data.pop("event")

        return_url = request.build_absolute_uri(reverse("checkout-return"))
        success_url = f"{return_url}?status=success&session_id={{CHECKOUT_SESSION_ID}}"
        cancel_url = f"{return_url}?{urlencode({'status': 'cancel'})}"

        if event.is_free:
            return Response(
                {"error": "not_payable", "detail": "Free events do not require card payment"},
                status=400,
            )
        submission = RegistrationSubmission(
            event, is_member_verified=request.user.is_authenticated
        )
        try:
            submission.submit_form(data)
            submission.choose_payment_method("card")
            session = submission.begin_card_checkout(request.session, success_url, cancel_url)
        except RegistrationError as exc:
            return error_response(exc)
        return Response({"id": session.id, "url": session.url}, status=status.HTTP_201_CREATED)


class CheckoutReturnView(views.APIView):
    """Card payment, phase two: the browser returns from Stripe."""

    permission_classes = [permissions.AllowAny]

    def get(self, request):
        outcome = (request.query_params.get("status") or "").strip().lower()
        if outcome not in ("success", "cancel"):
            return Response({"error": "invalid_status", "detail": "status must be success or cancel"}, status=400)
        try:
            record = complete_card_checkout(
                request.session,
                outcome,
                session_id=request.query_params.get("session_id") or None,
            )
            if record is None:
                return Response({"status": "cancelled"})
            event = get_event(record.event_id)
        except EventNotFound as exc:
            return Response({"error": "event_not_found", "detail": str(exc)}, status=404)
        except RegistrationError as exc:
            return error_response(exc)
        data = RegistrationRecordSerializer(record, context={"event": event}).data
        return Response({"status": "registered", "registration": data})


@method_decorator(csrf_exempt, name="dispatch")
class StripeWebhookView(views.APIView):
    """Record card registrations from checkout.session.completed events."""

    permission_classes = []  # no authentication
    authentication_classes = []

    def post(self, request):
        payload = request.body
        sig_header = request.META.get("HTTP_STRIPE_SIGNATURE", "")
        gateway = StripeGateway()
        try:
            event = gateway.construct_webhook_event(payload, sig_header)
        except (ValueError, stripe.SignatureVerificationError):
            logger.warning("Rejected Stripe webhook with invalid payload or signature")
            return Response({"error": "invalid_signature"}, status=400)
        except GatewayError as exc:
            return error_response(exc)

        if event["type"] != "checkout.session.completed":
            return Response({"received": True})

        session = event["data"]["object"]
        try:
            paid = gateway.paid_checkout(session)
            registration_event = get_event(paid.event_id)
            record_paid_checkout(paid, registration_event)
        except GatewayError as exc:
            # Unpaid or foreign sessions are acknowledged so Stripe stops retrying
            logger.warning("Ignoring checkout session %s: %s", session.get("id"), exc)
        except EventNotFound:
            logger.warning("Checkout session %s names an unknown event", session.get("id"))
        except RegistrationError:
            logger.exception("Could not record checkout session %s", session.get("id"))
            return Response({"error": "record_store_error"}, status=500)
        return Response({"received": True})


class PaymentReviewViewSet(viewsets.ViewSet):
    """
    Staff review of transfer payments.

    - list: registrations with uploaded proof and no decision (?event=)
    - decide: approve or reject one registration
    - reopen: put a decided registration back to pending
    """

    permission_classes = [permissions.IsAdminUser]

    def get_review_session(self):
        return ReviewSession()

    def _actor(self, request) -> str:
        return request.user.get_username()

    def list(self, request):
        event_id = request.query_params.get("event") or None
        review = self.get_review_session()
        try:
            if event_id is not None:
                review.event(event_id)
            review.load(event_id)
        except EventNotFound as exc:
            return Response({"error": "event_not_found", "detail": str(exc)}, status=404)
        except RegistrationError as exc:
            return error_response(exc)
        items = review.list_reviewables(event_id)
        data = RegistrationRecordSerializer(items, many=True, context={"review_session": review}).data
        return Response(
            {
                "count": len(items),
                "pending_by_event": review.pending_counts_by_event(),
                "results": data,
            }
        )

    @action(detail=True, methods=["post"], url_path="decide")
    def decide(self, request, pk=None):
        serializer = DecisionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        review = self.get_review_session()
        try:
            record = review.decide(pk, serializer.validated_data["outcome"], self._actor(request))
        except RegistrationError as exc:
            return error_response(exc)
        return Response(RegistrationRecordSerializer(record, context={"review_session": review}).data)

    @action(detail=True, methods=["post"], url_path="reopen")
    def reopen(self, request, pk=None):
        review = self.get_review_session()
        try:
            record = review.reopen(pk, self._actor(request))
        except RegistrationError as exc:
            return error_response(exc)
        return Response(RegistrationRecordSerializer(record, context={"review_session": review}).data)
