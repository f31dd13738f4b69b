"""
Staff review and decision engine.

A `ReviewSession` is what one staff member has open: the registrations
of an event they are looking at and the cross-event list of payments
waiting for review.  Both lists are projections of a single
`RegistrationLedger` keyed by registration id, so a decision recorded
once is visible in every list before anything reads them again.

Decisions are not optimistic.  The store is asked first and only the
record it returns is written to the ledger; if the store fails, the
ledger is left exactly as it was.
"""
from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timezone as dt_timezone

from events.buckets import (
    BUCKET_CANCELLED,
    BUCKET_CONFIRMED,
    capacity_summary,
    group_by_bucket,
    has_pending_evidence,
    registration_bucket,
)
from events.catalog import get_event

from .evidence import S3EvidenceStore, is_external_reference
from .exceptions import DecisionNotAllowed, EvidenceStoreError, StaleRegistration
from .store import OrmRegistrationStore, RegistrationRecord

logger = logging.getLogger("payments")

DECISION_APPROVE = "approve"
DECISION_REJECT = "reject"
DECISION_STATUS = {
    DECISION_APPROVE: "confirmed",
    DECISION_REJECT: "cancelled",
}

_EPOCH = datetime.min.replace(tzinfo=dt_timezone.utc)


class RegistrationLedger:
    """The session's only copy of each registration, keyed by id."""

    def __init__(self):
        self._records: dict[str, RegistrationRecord] = {}

    def put(self, record: RegistrationRecord) -> None:
        self._records[record.id] = record

    def load(self, records) -> None:
        for record in records:
            self.put(record)

    def get(self, registration_id) -> RegistrationRecord | None:
        return self._records.get(str(registration_id))

    def __contains__(self, registration_id) -> bool:
        return str(registration_id) in self._records

    def __len__(self) -> int:
        return len(self._records)

    def records(self, event_id=None) -> list[RegistrationRecord]:
        """Newest first, optionally for one event."""
        selected = [
            record for record in self._records.values()
            if event_id is None or str(record.event_id) == str(event_id)
        ]
        return sorted(selected, key=lambda r: r.created_at or _EPOCH, reverse=True)


class EvidenceUrlCache:
    """
    Signed URLs for proof references, fetched once per session.

    Signed URLs expire, so they are only kept in memory.  A failed
    exchange is not cached; the next access tries again.
    """

    def __init__(self, evidence_store):
        self.evidence_store = evidence_store
        self._urls: dict[str, str] = {}

    def resolve(self, proof_ref) -> str | None:
        if not proof_ref:
            return None
        if is_external_reference(proof_ref):
            return proof_ref
        if proof_ref in self._urls:
            return self._urls[proof_ref]
        try:
            url = self.evidence_store.get_signed_url(proof_ref)
        except EvidenceStoreError:
            logger.warning("Payment proof %s could not be signed; showing placeholder", proof_ref)
            return None
        if url:
            self._urls[proof_ref] = url
        return url or None

    def cached(self, proof_ref) -> str | None:
        return self._urls.get(proof_ref)


class ReviewSession:
    """One staff member's view of registrations and pending payments."""

    def __init__(self, store=None, evidence_store=None, event_lookup=get_event):
        self.store = store or OrmRegistrationStore()
        self.ledger = RegistrationLedger()
        self.evidence_urls = EvidenceUrlCache(evidence_store or S3EvidenceStore())
        self._event_lookup = event_lookup
        self._events = {}

    def event(self, event_id):
        key = str(event_id)
        if key not in self._events:
            self._events[key] = self._event_lookup(event_id)
        return self._events[key]

    # ---------- loading ----------

    def load(self, event_id=None) -> list[RegistrationRecord]:
        """Fetch registrations from the store into the ledger."""
        records = self.store.list_registrations(event_id)
        self.ledger.load(records)
        return records

    # ---------- projections ----------

    def event_registrations(self, event_id) -> list[RegistrationRecord]:
        return self.ledger.records(event_id)

    def registrations_by_bucket(self, event_id) -> dict[str, list[RegistrationRecord]]:
        return group_by_bucket(self.ledger.records(event_id), self.event(event_id))

    def list_reviewables(self, event_id=None) -> list[RegistrationRecord]:
        """Registrations with uploaded proof that nobody has decided on."""
        return [record for record in self.ledger.records(event_id) if has_pending_evidence(record)]

    def pending_counts_by_event(self) -> dict[str, int]:
        return dict(Counter(str(record.event_id) for record in self.list_reviewables()))

    def capacity(self, event_id):
        return capacity_summary(self.event(event_id), self.ledger.records(event_id))

    def bucket_of(self, registration_id) -> str:
        record = self._record(registration_id)
        return registration_bucket(record, self.event(record.event_id))

    # ---------- evidence ----------

    def resolve_evidence_url(self, proof_ref) -> str | None:
        return self.evidence_urls.resolve(proof_ref)

    # ---------- decisions ----------

    def decide(self, registration_id, outcome: str, actor: str) -> RegistrationRecord:
        """
        Approve or reject a registration's payment.

        Already confirmed or cancelled registrations must be reopened
        before they can be decided again.
        """
        if outcome not in DECISION_STATUS:
            raise ValueError(f"Unknown decision {outcome!r}")
        record = self._record(registration_id)
        bucket = registration_bucket(record, self.event(record.event_id))
        if bucket in (BUCKET_CONFIRMED, BUCKET_CANCELLED):
            raise DecisionNotAllowed(f"Registration is already {bucket}; reopen it first")
        return self._write_status(record, DECISION_STATUS[outcome], actor)

    def reopen(self, registration_id, actor: str) -> RegistrationRecord:
        """Move a decided registration back to pending so it can be decided again."""
        record = self._record(registration_id)
        bucket = registration_bucket(record, self.event(record.event_id))
        if bucket not in (BUCKET_CONFIRMED, BUCKET_CANCELLED) or record.payment_status is None:
            raise DecisionNotAllowed("Only decided registrations can be reopened")
        return self._write_status(record, "pending", actor)

    # ---------- internals ----------

    def _record(self, registration_id) -> RegistrationRecord:
        record = self.ledger.get(registration_id)
        if record is None:
            record = self.store.get_registration(registration_id)
            self.ledger.put(record)
        return record

    def _write_status(self, record: RegistrationRecord, status: str, actor: str) -> RegistrationRecord:
        try:
            updated = self.store.update_registration_status(
                record.id, status, actor, expected_status=record.payment_status
            )
        except StaleRegistration as exc:
            # The store's view wins; the caller decides whether to act again
            if exc.current is not None:
                self.ledger.put(exc.current)
            raise
        self.ledger.put(updated)
        logger.info("Registration %s -> %s by %s", record.id, status, actor)
        return updated
