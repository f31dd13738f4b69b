"""
API tests for the payments app: proof upload and signing, the Stripe
Checkout round trip, the webhook and the staff review queue.
"""
import json
from unittest import mock

import pytest
import stripe
from django.core.files.uploadedfile import SimpleUploadedFile

from events.catalog import EventNotFound
from events.models import EventRegistration
from payments.store import OrmRegistrationStore


@pytest.fixture(autouse=True)
def fakes(evidence_store, gateway):
    with mock.patch("payments.views.S3EvidenceStore", return_value=evidence_store), \
            mock.patch("payments.review.S3EvidenceStore", return_value=evidence_store), \
            mock.patch("payments.submission.S3EvidenceStore", return_value=evidence_store), \
            mock.patch("payments.submission.StripeGateway", return_value=gateway), \
            mock.patch("payments.views.StripeGateway", return_value=gateway):
        yield


# ---------------------------------------------------------------- evidence


@pytest.mark.django_db
def test_upload_payment_proof(client, paid_event, evidence_store):
    upload = SimpleUploadedFile("receipt.png", b"\x89PNG" + b"0" * 64, content_type="image/png")
    resp = client.post("/api/payment-proofs/", {"event": paid_event.id, "file": upload})
    assert resp.status_code == 201
    assert resp.json()["path"] == evidence_store.uploads[0]


@pytest.mark.django_db
def test_upload_rejects_non_images(client, paid_event, evidence_store):
    upload = SimpleUploadedFile("receipt.pdf", b"%PDF-1.4", content_type="application/pdf")
    resp = client.post("/api/payment-proofs/", {"event": paid_event.id, "file": upload})
    assert resp.status_code == 400
    assert resp.json()["error"] == "evidence_rejected"
    assert evidence_store.uploads == []


@pytest.mark.django_db
def test_signed_url_is_staff_only(client, auth_client):
    assert auth_client.get("/api/payment-proofs/signed-url/", {"path": "k"}).status_code == 403


@pytest.mark.django_db
def test_signed_url(staff_client, evidence_store):
    resp = staff_client.get("/api/payment-proofs/signed-url/", {"path": "event-registrations/1/a.png"})
    assert resp.status_code == 200
    assert resp.json()["url"].startswith("https://signed.example.com/event-registrations/1/a.png")


@pytest.mark.django_db
def test_signed_url_failure(staff_client, evidence_store):
    evidence_store.fail_sign = True
    resp = staff_client.get("/api/payment-proofs/signed-url/", {"path": "k"})
    assert resp.status_code == 502
    assert resp.json()["error"] == "evidence_store_error"


@pytest.mark.django_db
def test_signed_url_requires_path(staff_client):
    assert staff_client.get("/api/payment-proofs/signed-url/").status_code == 400


# ---------------------------------------------------------------- card


def start_checkout(client, event, **extra):
    body = {"event": event.id, "name": "Hoang G", "phone": "0400", "email": "g@example.com", "tickets": 2, **extra}
    return client.post("/api/payments/checkout-session/", body, content_type="application/json")


@pytest.mark.django_db
def test_checkout_round_trip(client, paid_event, gateway, mailoutbox):
    resp = start_checkout(client, paid_event)
    assert resp.status_code == 201
    session_id = resp.json()["id"]
    assert resp.json()["url"].endswith(session_id)
    assert gateway.sessions[session_id]["success_url"].endswith("?status=success&session_id={CHECKOUT_SESSION_ID}")
    assert not EventRegistration.objects.exists()

    gateway.mark_paid(session_id)
    resp = client.get("/api/payments/checkout-return/", {"status": "success", "session_id": session_id})
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "registered"
    assert body["registration"]["payment_method"] == "card"
    assert body["registration"]["payment_status"] is None
    assert body["registration"]["tickets"] == 2
    assert EventRegistration.objects.get().checkout_session_id == session_id
    assert len(mailoutbox) == 2


@pytest.mark.django_db
def test_checkout_cancel_creates_nothing(client, paid_event):
    start_checkout(client, paid_event)
    resp = client.get("/api/payments/checkout-return/", {"status": "cancel"})
    assert resp.json() == {"status": "cancelled"}
    assert not EventRegistration.objects.exists()


@pytest.mark.django_db
def test_checkout_return_unpaid(client, paid_event):
    session_id = start_checkout(client, paid_event).json()["id"]
    resp = client.get("/api/payments/checkout-return/", {"status": "success", "session_id": session_id})
    assert resp.status_code == 502
    assert resp.json()["error"] == "gateway_error"
    assert not EventRegistration.objects.exists()


@pytest.mark.django_db
def test_checkout_return_bad_status(client):
    assert client.get("/api/payments/checkout-return/", {"status": "maybe"}).status_code == 400


@pytest.mark.django_db
def test_checkout_return_for_deleted_event(client, paid_event, gateway):
    session_id = start_checkout(client, paid_event).json()["id"]
    gateway.mark_paid(session_id)
    with mock.patch("payments.views.get_event", side_effect=EventNotFound("Event gone")):
        resp = client.get("/api/payments/checkout-return/", {"status": "success", "session_id": session_id})
    assert resp.status_code == 404
    assert resp.json()["error"] == "event_not_found"


@pytest.mark.django_db
def test_checkout_refused_for_free_event(client, free_event):
    resp = start_checkout(client, free_event)
    assert resp.status_code == 400
    assert not EventRegistration.objects.exists()


@pytest.mark.django_db
def test_checkout_gateway_down(client, paid_event, gateway):
    gateway.fail = True
    resp = start_checkout(client, paid_event)
    assert resp.status_code == 502
    assert resp.json()["error"] == "gateway_error"


# ---------------------------------------------------------------- webhook


def post_webhook(client, event_payload):
    return client.post(
        "/api/payments/stripe-webhook/",
        data=json.dumps(event_payload),
        content_type="application/json",
        HTTP_STRIPE_SIGNATURE="t=1,v1=abc",
    )


def completed(session):
    return {"type": "checkout.session.completed", "data": {"object": session}}


@pytest.mark.django_db
def test_webhook_records_paid_session_once(client, paid_event, gateway):
    session_id = start_checkout(client, paid_event).json()["id"]
    session = gateway.mark_paid(session_id)

    with mock.patch.object(gateway, "construct_webhook_event", return_value=completed(session)):
        assert post_webhook(client, completed(session)).status_code == 200
        assert post_webhook(client, completed(session)).status_code == 200
    assert EventRegistration.objects.filter(checkout_session_id=session_id).count() == 1

    # The browser return after the webhook finds the same registration
    resp = client.get("/api/payments/checkout-return/", {"status": "success", "session_id": session_id})
    assert resp.status_code == 200
    assert EventRegistration.objects.count() == 1


@pytest.mark.django_db
def test_webhook_ignores_unpaid_sessions(client, paid_event, gateway):
    session_id = start_checkout(client, paid_event).json()["id"]
    session = gateway.sessions[session_id]
    with mock.patch.object(gateway, "construct_webhook_event", return_value=completed(session)):
        assert post_webhook(client, completed(session)).status_code == 200
    assert not EventRegistration.objects.exists()


@pytest.mark.django_db
def test_webhook_bad_signature(client, gateway):
    error = stripe.SignatureVerificationError("bad signature", "t=1,v1=abc")
    with mock.patch.object(gateway, "construct_webhook_event", side_effect=error):
        assert post_webhook(client, {"type": "checkout.session.completed"}).status_code == 400


@pytest.mark.django_db
def test_webhook_other_events_acknowledged(client, gateway):
    event = {"type": "payment_intent.created", "data": {"object": {}}}
    with mock.patch.object(gateway, "construct_webhook_event", return_value=event):
        assert post_webhook(client, event).json() == {"received": True}


# ---------------------------------------------------------------- review


@pytest.fixture
def pending_transfer(paid_event):
    return OrmRegistrationStore().create_registration(
        {
            "event_id": paid_event.id,
            "name": "Ly H",
            "phone": "0400",
            "tickets": 1,
            "payment_method": "transfer",
            "payment_status": "pending",
            "payment_proof": f"event-registrations/{paid_event.id}/h.png",
        }
    )


@pytest.mark.django_db
def test_review_queue(staff_client, paid_event, pending_transfer):
    resp = staff_client.get("/api/payment-reviews/")
    assert resp.status_code == 200
    body = resp.json()
    assert body["count"] == 1
    assert body["pending_by_event"] == {str(paid_event.id): 1}
    item = body["results"][0]
    assert item["id"] == pending_transfer.id
    assert item["bucket"] == "pending"
    assert item["payment_proof_url"].startswith("https://signed.example.com/")


@pytest.mark.django_db
def test_review_queue_unknown_event(staff_client):
    assert staff_client.get("/api/payment-reviews/", {"event": 999}).status_code == 404


@pytest.mark.django_db
def test_review_queue_is_staff_only(auth_client):
    assert auth_client.get("/api/payment-reviews/").status_code == 403


@pytest.mark.django_db
def test_approve_then_reopen(staff_client, paid_event, pending_transfer):
    url = f"/api/payment-reviews/{pending_transfer.id}/"
    resp = staff_client.post(url + "decide/", {"outcome": "approve"}, content_type="application/json")
    assert resp.status_code == 200
    assert resp.json()["payment_status"] == "confirmed"
    assert resp.json()["reviewed_by"] == "treasurer"
    assert staff_client.get("/api/payment-reviews/").json()["count"] == 0

    again = staff_client.post(url + "decide/", {"outcome": "reject"}, content_type="application/json")
    assert again.status_code == 409
    assert again.json()["error"] == "decision_not_allowed"

    reopened = staff_client.post(url + "reopen/", content_type="application/json")
    assert reopened.json()["payment_status"] == "pending"
    rejected = staff_client.post(url + "decide/", {"outcome": "reject"}, content_type="application/json")
    assert rejected.json()["payment_status"] == "cancelled"


@pytest.mark.django_db
def test_decide_unknown_registration(staff_client):
    resp = staff_client.post(
        "/api/payment-reviews/5f0f5b8e-8a4e-4c1a-9f55-3f3cbd1b9a10/decide/",
        {"outcome": "approve"},
        content_type="application/json",
    )
    assert resp.status_code == 404


@pytest.mark.django_db
def test_decide_requires_valid_outcome(staff_client, pending_transfer):
    resp = staff_client.post(
        f"/api/payment-reviews/{pending_transfer.id}/decide/", {"outcome": "maybe"}, content_type="application/json"
    )
    assert resp.status_code == 400
