"""
Submission engine tests.

The engine is driven directly with in-memory evidence store, gateway and
notification fakes; the record store is the real ORM store.
"""
import io
from unittest import mock

import pytest

from events.buckets import BUCKET_CONFIRMED, BUCKET_PENDING, has_pending_evidence, registration_bucket
from events.models import EventRegistration
from payments.evidence import S3EvidenceStore
from payments.exceptions import EvidenceRejected, GatewayError, RecordStoreError, SubmissionIncomplete
from payments.store import OrmRegistrationStore
from payments.submission import (
    INTENT_KEY,
    STEP_PAYMENT,
    STEP_SUCCESS,
    RegistrationSubmission,
    complete_card_checkout,
    transfer_reference,
)

CONTACT = {"name": "Nguyen Van A", "phone": "0400 111 222", "email": "a@example.com", "tickets": 2}


@pytest.fixture
def submission_for(evidence_store, gateway, notifications):
    def build(event, **kwargs):
        return RegistrationSubmission(
            event,
            evidence_store=evidence_store,
            gateway=gateway,
            notify=notifications,
            **kwargs,
        )
    return build


def image(size=2 * 1024 * 1024):
    return io.BytesIO(b"\xff\xd8" + b"0" * 16), size


@pytest.mark.django_db
def test_free_event_is_confirmed_at_once(free_event, submission_for, notifications):
    submission = submission_for(free_event)
    assert submission.submit_form(CONTACT) == STEP_SUCCESS

    record = submission.record
    assert record.payment_status == "confirmed"
    assert record.payment_proof is None
    assert registration_bucket(record, free_event) == BUCKET_CONFIRMED
    assert not submission.needs_evidence
    assert len(notifications.sent) == 1


@pytest.mark.django_db
def test_members_only_free_event_is_confirmed(members_only_event, submission_for):
    submission = submission_for(members_only_event)
    assert submission.submit_form(CONTACT) == STEP_SUCCESS
    assert submission.record.payment_status == "confirmed"


@pytest.mark.django_db
def test_form_validation(paid_event, submission_for):
    submission = submission_for(paid_event)
    with pytest.raises(SubmissionIncomplete) as excinfo:
        submission.submit_form({"name": "", "phone": "", "tickets": 9})
    assert set(excinfo.value.detail) == {"name", "phone", "tickets"}
    assert not EventRegistration.objects.exists()


@pytest.mark.django_db
@pytest.mark.parametrize("tickets", [0, "0", -1, 6, "two"])
def test_ticket_count_out_of_range_is_refused(paid_event, submission_for, tickets):
    with pytest.raises(SubmissionIncomplete) as excinfo:
        submission_for(paid_event).submit_form({**CONTACT, "tickets": tickets})
    assert set(excinfo.value.detail) == {"tickets"}


@pytest.mark.django_db
def test_ticket_count_defaults_to_one(paid_event, submission_for):
    submission = submission_for(paid_event)
    submission.submit_form({"name": "Le B", "phone": "0400"})
    assert submission.contact.tickets == 1
    submission.submit_form({"name": "Le B", "phone": "0400", "participants": 3})
    assert submission.contact.tickets == 3


@pytest.mark.django_db
def test_cash_registration_leaves_status_unrecorded(paid_event, submission_for):
    submission = submission_for(paid_event)
    assert submission.submit_form(CONTACT) == STEP_PAYMENT
    submission.choose_payment_method("cash")
    assert submission.can_confirm

    record = submission.confirm()
    assert record.payment_method == "cash"
    assert record.payment_status is None
    assert registration_bucket(record, paid_event) == BUCKET_PENDING
    assert not has_pending_evidence(record)


@pytest.mark.django_db
def test_transfer_requires_evidence_before_confirm(paid_event, submission_for, evidence_store):
    submission = submission_for(paid_event)
    submission.submit_form(CONTACT)
    submission.choose_payment_method("payid")
    assert submission.needs_evidence
    assert not submission.can_confirm

    with pytest.raises(SubmissionIncomplete):
        submission.confirm()
    assert not EventRegistration.objects.exists()

    fileobj, size = image()
    submission.attach_evidence(fileobj, "image/jpeg", filename="receipt.jpg", size=size)
    assert submission.can_confirm

    record = submission.confirm()
    assert record.payment_status == "pending"
    assert record.payment_proof == evidence_store.uploads[0]
    assert has_pending_evidence(record)


@pytest.mark.django_db
@pytest.mark.parametrize(
    "content_type, size, message",
    [
        ("application/pdf", 1024, "Please upload an image file"),
        ("image/png", 5 * 1024 * 1024 + 1, "Image size must be less than 5MB"),
    ],
)
def test_rejected_evidence_is_never_uploaded(paid_event, submission_for, evidence_store, content_type, size, message):
    submission = submission_for(paid_event)
    submission.submit_form(CONTACT)
    submission.choose_payment_method("transfer")

    with pytest.raises(EvidenceRejected, match=message):
        submission.attach_evidence(io.BytesIO(b"x"), content_type, size=size)
    assert evidence_store.uploads == []
    assert not submission.can_confirm


@pytest.mark.django_db
def test_store_failure_keeps_uploaded_proof_for_retry(paid_event, submission_for, evidence_store):
    submission = submission_for(paid_event)
    submission.submit_form(CONTACT)
    submission.choose_payment_method("payid")
    fileobj, size = image()
    submission.attach_evidence(fileobj, "image/png", size=size)

    with mock.patch.object(OrmRegistrationStore, "create_registration", side_effect=RecordStoreError("down")):
        with pytest.raises(RecordStoreError):
            submission.confirm()
    assert submission.step == STEP_PAYMENT
    assert submission.proof_ref == evidence_store.uploads[0]

    record = submission.confirm()
    assert record.payment_proof == evidence_store.uploads[0]
    assert len(evidence_store.uploads) == 1


@pytest.mark.django_db
def test_switching_away_from_transfer_drops_proof(paid_event, submission_for):
    submission = submission_for(paid_event)
    submission.submit_form(CONTACT)
    submission.choose_payment_method("payid")
    submission.attach_uploaded_evidence(S3EvidenceStore().build_key(paid_event.id, "proof.png"))
    submission.choose_payment_method("cash")
    assert submission.proof_ref is None
    assert submission.confirm().payment_proof is None


@pytest.mark.django_db
def test_uploaded_proof_must_belong_to_the_event(paid_event, free_event, submission_for):
    submission = submission_for(paid_event)
    submission.submit_form(CONTACT)
    submission.choose_payment_method("transfer")

    for ref in (
        "https://cdn.example.com/receipt.png",
        S3EvidenceStore().build_key(free_event.id, "receipt.png"),
        f"event-registrations/{paid_event.id}/receipt.png",
        f"event-registrations/{paid_event.id}/../private/anything.pdf",
        "private/anything.pdf",
    ):
        with pytest.raises(EvidenceRejected):
            submission.attach_uploaded_evidence(ref)
    assert not submission.can_confirm

    own = S3EvidenceStore().build_key(paid_event.id, "receipt.png")
    submission.attach_uploaded_evidence(own)
    assert submission.confirm().payment_proof == own


@pytest.mark.django_db
def test_notification_failure_does_not_fail_registration(free_event, evidence_store, gateway):
    submission = RegistrationSubmission(
        free_event, evidence_store=evidence_store, gateway=gateway,
        notify=mock.Mock(side_effect=RuntimeError("smtp down")),
    )
    submission.submit_form(CONTACT)
    assert EventRegistration.objects.filter(pk=submission.record.id).exists()


@pytest.mark.django_db
def test_settlement_details_for_payid(paid_event, submission_for, settings):
    submission = submission_for(paid_event)
    submission.submit_form(CONTACT)
    submission.choose_payment_method("payid")
    details = submission.settlement_details
    assert details.payid == settings.TRANSFER_PAYID
    assert details.amount == "40.00"
    assert details.currency == "AUD"
    assert details.reference == transfer_reference(paid_event, CONTACT["name"])
    assert details.reference == f"EV{paid_event.id}-NGUYENVANA"


@pytest.mark.django_db
def test_settlement_details_apply_member_price(paid_event, submission_for):
    submission = submission_for(paid_event, is_member_verified=True)
    submission.submit_form(CONTACT)
    submission.choose_payment_method("transfer")
    details = submission.settlement_details
    assert details.amount == "35.00"
    assert details.bsb and details.account_number


# ---------------------------------------------------------------- card


@pytest.mark.django_db
def test_card_payment_success_creates_record_after_return(paid_event, submission_for, gateway, notifications):
    intent_storage = {}
    submission = submission_for(paid_event)
    submission.submit_form(CONTACT)
    submission.choose_payment_method("card")
    with pytest.raises(SubmissionIncomplete):
        submission.confirm()

    session = submission.begin_card_checkout(intent_storage, "https://x/success", "https://x/cancel")
    assert session.url.startswith("https://checkout.stripe.com/")
    assert intent_storage[INTENT_KEY]["session_id"] == session.id
    assert not EventRegistration.objects.exists()

    gateway.mark_paid(session.id)
    record = complete_card_checkout(intent_storage, "success", event=paid_event, gateway=gateway, notify=notifications)

    assert record.payment_method == "card"
    assert record.payment_status is None
    assert record.checkout_session_id == session.id
    assert record.tickets == 2
    assert INTENT_KEY not in intent_storage
    assert len(notifications.sent) == 1


@pytest.mark.django_db
def test_card_payment_cancel_discards_intent(paid_event, submission_for, gateway):
    intent_storage = {}
    submission = submission_for(paid_event)
    submission.submit_form(CONTACT)
    submission.choose_payment_method("card")
    submission.begin_card_checkout(intent_storage, "https://x/success", "https://x/cancel")

    assert complete_card_checkout(intent_storage, "cancel", gateway=gateway) is None
    assert INTENT_KEY not in intent_storage
    assert not EventRegistration.objects.exists()


@pytest.mark.django_db
def test_unpaid_session_is_not_recorded_and_intent_survives(paid_event, submission_for, gateway):
    intent_storage = {}
    submission = submission_for(paid_event)
    submission.submit_form(CONTACT)
    submission.choose_payment_method("card")
    session = submission.begin_card_checkout(intent_storage, "https://x/success", "https://x/cancel")

    with pytest.raises(GatewayError):
        complete_card_checkout(intent_storage, "success", gateway=gateway)
    assert intent_storage[INTENT_KEY]["session_id"] == session.id
    assert not EventRegistration.objects.exists()


@pytest.mark.django_db
def test_gateway_failure_leaves_no_intent(paid_event, evidence_store, failing_gateway, notifications):
    intent_storage = {}
    submission = RegistrationSubmission(
        paid_event, evidence_store=evidence_store, gateway=failing_gateway, notify=notifications
    )
    submission.submit_form(CONTACT)
    submission.choose_payment_method("card")
    with pytest.raises(GatewayError):
        submission.begin_card_checkout(intent_storage, "https://x/success", "https://x/cancel")
    assert intent_storage == {}


@pytest.mark.django_db
def test_return_without_checkout_in_progress(gateway):
    with pytest.raises(SubmissionIncomplete):
        complete_card_checkout({}, "success", gateway=gateway)


@pytest.mark.django_db
def test_repeated_return_records_once(paid_event, submission_for, gateway, notifications):
    intent_storage = {}
    submission = submission_for(paid_event)
    submission.submit_form(CONTACT)
    submission.choose_payment_method("card")
    session = submission.begin_card_checkout(intent_storage, "https://x/success", "https://x/cancel")
    gateway.mark_paid(session.id)

    first = complete_card_checkout(intent_storage, "success", gateway=gateway, notify=notifications)
    again = complete_card_checkout({}, "success", session_id=session.id, gateway=gateway, notify=notifications)
    assert first.id == again.id
    assert EventRegistration.objects.count() == 1
    assert len(notifications.sent) == 1
