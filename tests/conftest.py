"""
Common test fixtures for the event registration API tests.

Provides users, a JWT-authenticated staff client, a few events covering
the pricing shapes the workflow cares about, and in-memory stand-ins for
the S3 evidence store and the Stripe gateway.
"""
from decimal import Decimal

import pytest
from django.contrib.auth.models import User

from events.models import Event
from payments.exceptions import EvidenceStoreError, GatewayError
from payments.evidence import S3EvidenceStore
from payments.gateway import CheckoutSession, StripeGateway


@pytest.fixture
def user(db):
    """Create a test user."""
    return User.objects.create_user(username="u1", password="pass12345", email="u1@example.com")


@pytest.fixture
def staff_user(db):
    return User.objects.create_user(
        username="treasurer", password="pass12345", email="treasurer@example.com", is_staff=True
    )


def _jwt_login(client, username):
    resp = client.post(
        "/api/token/",
        {"username": username, "password": "pass12345"},
        content_type="application/json",
    )
    assert resp.status_code == 200
    client.defaults["HTTP_AUTHORIZATION"] = f"Bearer {resp.json()['access']}"
    return client


@pytest.fixture
def auth_client(client, db, user):
    """Authenticate the Django test client using JWT tokens."""
    return _jwt_login(client, "u1")


@pytest.fixture
def staff_client(client, db, staff_user):
    return _jwt_login(client, "treasurer")


@pytest.fixture
def free_event(db):
    return Event.objects.create(title="Lunar New Year Picnic", fee=Decimal("0"), capacity=50)


@pytest.fixture
def paid_event(db):
    return Event.objects.create(
        title="Spring Gala Dinner",
        fee=Decimal("20.00"),
        member_fee=Decimal("15.00"),
        capacity=10,
    )


@pytest.fixture
def members_only_event(db):
    return Event.objects.create(
        title="Members Workshop",
        fee=Decimal("0"),
        member_fee=Decimal("0"),
        access_type=Event.ACCESS_MEMBERS_ONLY,
    )


class FakeEvidenceStore:
    """Records uploads and sign requests instead of talking to S3."""

    def __init__(self, fail_sign=False, fail_upload=False):
        self.fail_sign = fail_sign
        self.fail_upload = fail_upload
        self.uploads = []
        self.sign_calls = []

    def upload_evidence(self, fileobj, content_type, event_id, filename="", size=None):
        if self.fail_upload:
            raise EvidenceStoreError("Failed to upload payment proof")
        key = S3EvidenceStore().build_key(event_id, filename, content_type)
        self.uploads.append(key)
        return key

    def get_signed_url(self, proof_ref, expires_in=None):
        self.sign_calls.append(proof_ref)
        if self.fail_sign:
            raise EvidenceStoreError("Failed to sign payment proof URL")
        return f"https://signed.example.com/{proof_ref}?X-Amz-Signature=abc"


class FakeGateway(StripeGateway):
    """StripeGateway with the network calls replaced by a dict of sessions."""

    def __init__(self, fail=False):
        super().__init__(api_key="sk_test_dummy", currency="aud")
        self.fail = fail
        self.sessions = {}

    def create_checkout_session(self, event, tickets, contact, notes, success_url, cancel_url,
                                is_member_verified=False):
        if self.fail:
            raise GatewayError("Could not start payment, please try again.")
        session_id = f"cs_test_{len(self.sessions) + 1}"
        self.sessions[session_id] = {
            "id": session_id,
            "payment_status": "unpaid",
            "client_reference_id": str(event.id),
            "amount_total": self.charge_amount(event, tickets, is_member_verified),
            "success_url": success_url,
            "metadata": {
                "event_id": str(event.id),
                "tickets": str(tickets),
                "name": contact.get("name", ""),
                "email": contact.get("email", ""),
                "phone": contact.get("phone", ""),
                "notes": notes,
            },
        }
        return CheckoutSession(id=session_id, url=f"https://checkout.stripe.com/c/pay/{session_id}")

    def retrieve_checkout_session(self, session_id):
        if self.fail or session_id not in self.sessions:
            raise GatewayError("Could not confirm payment with the gateway")
        return self.sessions[session_id]

    def mark_paid(self, session_id):
        self.sessions[session_id]["payment_status"] = "paid"
        return self.sessions[session_id]


@pytest.fixture
def evidence_store():
    return FakeEvidenceStore()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifications():
    """Collects notification calls instead of queueing Celery tasks."""
    sent = []

    def notify(record, event):
        sent.append((record, event))

    notify.sent = sent
    return notify


@pytest.fixture
def failing_gateway():
    return FakeGateway(fail=True)
