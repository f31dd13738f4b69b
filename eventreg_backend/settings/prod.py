"""
Production settings for the event registration backend.

Extends the base settings by disabling debug mode, enforcing secure
cookies, enabling HTTP Strict Transport Security and requiring the
Stripe keys.
"""
from django.core.exceptions import ImproperlyConfigured

from .base import *  # noqa

DEBUG = False

SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True
SECURE_SSL_REDIRECT = True

SECURE_HSTS_SECONDS = 31536000
SECURE_HSTS_INCLUDE_SUBDOMAINS = True
SECURE_HSTS_PRELOAD = True

# The card checkout intent rides on the session cookie across the
# redirect back from Stripe, which is a top-level GET.
SESSION_COOKIE_SAMESITE = "Lax"

if not STRIPE_SECRET_KEY or not STRIPE_WEBHOOK_SECRET:  # noqa: F405
    raise ImproperlyConfigured("STRIPE_SECRET_KEY and STRIPE_WEBHOOK_SECRET are required in production")
