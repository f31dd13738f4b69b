"""
URL configuration for the payments app.

Registers proof upload/signing, the Stripe Checkout endpoints and the
staff review queue.  Include this module under ``/api/`` in the
project-level URL config.
"""
from django.urls import path
from rest_framework.routers import DefaultRouter

from .views import (
    CheckoutReturnView,
    CheckoutSessionView,
    PaymentProofSignedUrlView,
    PaymentProofUploadView,
    PaymentReviewViewSet,
    StripeWebhookView,
)

router = DefaultRouter()
router.register(r"payment-reviews", PaymentReviewViewSet, basename="payment-review")

urlpatterns = [
    *router.urls,
    path("payment-proofs/", PaymentProofUploadView.as_view(), name="payment-proof-upload"),
    path("payment-proofs/signed-url/", PaymentProofSignedUrlView.as_view(), name="payment-proof-signed-url"),
    path("payments/checkout-session/", CheckoutSessionView.as_view(), name="checkout-session"),
    path("payments/checkout-return/", CheckoutReturnView.as_view(), name="checkout-return"),
    path("payments/stripe-webhook/", StripeWebhookView.as_view(), name="stripe-webhook"),
]
