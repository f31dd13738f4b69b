"""
Read-only access to the event catalog.

The payment workflow never edits events; it only needs a lookup that
turns a missing id into a typed error instead of a bare DoesNotExist.
"""
from .models import Event


class EventNotFound(LookupError):
    pass


def get_event(event_id) -> Event:
    try:
        return Event.objects.get(pk=event_id)
    except (Event.DoesNotExist, ValueError, TypeError):
        raise EventNotFound(f"Event {event_id} not found")
