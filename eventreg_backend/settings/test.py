"""
Test settings for the event registration backend.

SQLite in memory, eager Celery, local memory cache and e-mail outbox so
the suite runs without Postgres, Redis, Stripe or S3.
"""
from .base import *  # noqa

DEBUG = False

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

CACHES = {
    "default": {"BACKEND": "django.core.cache.backends.locmem.LocMemCache"},
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"

EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"
ADMIN_NOTIFICATION_EMAIL = "staff@example.com"

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

REST_FRAMEWORK = {
    **REST_FRAMEWORK,  # noqa: F405
    "DEFAULT_THROTTLE_CLASSES": [],
}

STRIPE_SECRET_KEY = "sk_test_dummy"
STRIPE_WEBHOOK_SECRET = "whsec_dummy"
PAYMENT_PROOF_BUCKET = "payment-proofs-test"

TRANSFER_PAYID = "events@payid.example.org"
TRANSFER_ACCOUNT_NAME = "Community Association Inc."
TRANSFER_BSB = "063-000"
TRANSFER_ACCOUNT_NUMBER = "1234 5678"
