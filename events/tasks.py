"""
Celery tasks for the events app.

Registration notifications are fire-and-forget: the registrant gets a
confirmation when they left an e-mail address and staff get a copy at
ADMIN_NOTIFICATION_EMAIL.  Nothing here may fail a registration, so the
dispatcher swallows broker errors and the task swallows mail errors.
"""
from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail
import logging

logger = logging.getLogger('events')

PAYMENT_METHOD_LABELS = {
    "card": "Card",
    "cash": "Cash at the event",
    "payid": "Bank transfer (PayID)",
    "transfer": "Bank transfer (BSB)",
}


def _registration_lines(payload: dict) -> list[str]:
    lines = [
        f"Event: {payload.get('event_title') or 'Event registration'}",
        f"Name: {payload.get('name')}",
        f"Tickets: {payload.get('tickets') or 1}",
    ]
    method = payload.get("payment_method")
    if method:
        lines.append(f"Payment: {PAYMENT_METHOD_LABELS.get(method, method)}")
    return lines


@shared_task
def notify_event_registration(payload: dict) -> dict:
    """Send the registrant confirmation and the staff copy for one registration."""
    sent = {"registrant": False, "admin": False}
    lines = _registration_lines(payload)

    email = (payload.get("email") or "").strip()
    if email:
        try:
            send_mail(
                subject=f"Registration received: {payload.get('event_title') or 'event'}",
                message="\n".join([f"Hi {payload.get('name')},", "", *lines, "", "Thank you for registering!"]),
                from_email=settings.DEFAULT_FROM_EMAIL,
                recipient_list=[email],
            )
            sent["registrant"] = True
        except Exception:
            logger.exception("Registrant notification failed for registration=%s", payload.get("registration_id"))

    admin_email = getattr(settings, "ADMIN_NOTIFICATION_EMAIL", "")
    if admin_email:
        admin_lines = list(lines)
        if payload.get("notes"):
            admin_lines.append(f"Notes: {payload['notes']}")
        if payload.get("needs_review"):
            admin_lines.append("Payment proof uploaded, awaiting review.")
        try:
            send_mail(
                subject=f"New registration: {payload.get('event_title') or 'event'}",
                message="\n".join(admin_lines),
                from_email=settings.DEFAULT_FROM_EMAIL,
                recipient_list=[admin_email],
            )
            sent["admin"] = True
        except Exception:
            logger.exception("Staff notification failed for registration=%s", payload.get("registration_id"))
    else:
        logger.warning("ADMIN_NOTIFICATION_EMAIL not configured; skipping staff copy")

    return sent


def registration_notification_payload(registration, event) -> dict:
    return {
        "registration_id": str(registration.id),
        "event_id": event.id,
        "event_title": event.title,
        "name": registration.name,
        "email": registration.email or "",
        "tickets": registration.tickets,
        "payment_method": registration.payment_method,
        "notes": registration.notes or "",
        "needs_review": bool(registration.payment_proof),
    }


def dispatch_registration_notification(registration, event) -> None:
    """Queue the notification; a broker outage is logged, never raised."""
    try:
        notify_event_registration.delay(registration_notification_payload(registration, event))
    except Exception:
        logger.exception("Could not queue notification for registration=%s", registration.id)
