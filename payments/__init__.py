"""
Payments app package for the event registration backend.

Holds the registration workflow on top of the `events` models: the
record store, payment evidence store, Stripe Checkout gateway, the
submission engine and the staff review engine.  See payments/views.py
for API details.
"""
