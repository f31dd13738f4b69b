"""
Events app package for the event registration backend.

Holds the event catalog, the registration records, the bucketing rules
that classify registrations as confirmed, pending or cancelled, and the
member pricing helpers.
"""
