"""Shared fixtures: a throwaway SQLite database and a stubbed Razorpay client."""

import pytest
from razorpay.errors import SignatureVerificationError

from app import create_app
from database_manager import DatabaseManager
from payment_gateway import RazorpayGateway

VALID_SIGNATURE = "valid-signature"
NO_GATEWAY = {"RAZORPAY_KEY_ID": None, "RAZORPAY_KEY_SECRET": None}


class FakeOrderResource:
    """Stands in for razorpay.Client().order."""

    def __init__(self):
        self.created = []
        self.error = None

    def create(self, data):
        if self.error is not None:
            raise self.error
        order = {"id": f"order_test{len(self.created) + 1}", "entity": "order", "status": "created", **data}
        self.created.append(order)
        return order


class FakeUtility:
    def verify_payment_signature(self, parameters):
        if parameters["razorpay_signature"] != VALID_SIGNATURE:
            raise SignatureVerificationError("Razorpay Signature Verification Failed")
        return True


class FakeRazorpayClient:
    def __init__(self):
        self.order = FakeOrderResource()
        self.utility = FakeUtility()


@pytest.fixture
def db(tmp_path):
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'booking.db'}")
    manager.create_schema()
    yield manager
    manager.dispose()


@pytest.fixture
def razorpay_client():
    return FakeRazorpayClient()


@pytest.fixture
def gateway(razorpay_client):
    return RazorpayGateway("rzp_test_key", "rzp_test_secret", client=razorpay_client)


@pytest.fixture
def app(db, gateway):
    return create_app(NO_GATEWAY, db=db, gateway=gateway)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def user_id(client):
    resp = client.post("/register", json={"name": "Asha", "email": "asha@example.com", "phone": "9000000001"})
    assert resp.status_code == 201
    return resp.get_json()["id"]


@pytest.fixture
def booking_request(user_id):
    """A valid /book payload against the seeded catalog."""
    return {
        "user_id": user_id,
        "movie_id": 1,
        "date": "2026-10-20",
        "time_slot_id": 2,
        "seats": ["A1", "A2"],
        "total_amount": 400,
    }
