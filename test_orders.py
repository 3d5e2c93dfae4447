from decimal import Decimal

import pytest
from razorpay.errors import BadRequestError
import requests
from sqlalchemy import event
from sqlalchemy.exc import OperationalError

from conftest import NO_GATEWAY
from app import create_app
from models import Order, OrderStatus, User
from orders import OrderService

ORDER = {
    "name": "Ravi",
    "email": "ravi@example.com",
    "phone": "9000000002",
    "order_item": "Popcorn combo",
    "quantity": 2,
    "amount": 349.5,
}


def test_upsert_returns_same_id_and_keeps_first_name(db):
    service = OrderService(db, None)

    ok, first = service.upsert_user_by_email("Ravi", "ravi@example.com", "111")
    assert ok and first["created"]
    ok, second = service.upsert_user_by_email("Ravi Kumar", "ravi@example.com", "222")
    assert ok and not second["created"]

    assert first["user"]["id"] == second["user"]["id"]
    with db.get_session() as session:
        user = session.get(User, first["user"]["id"])
        assert (user.name, user.phone) == ("Ravi", "111")
        assert session.query(User).count() == 1


def test_upsert_requires_email(db):
    ok, result = OrderService(db, None).upsert_user_by_email("Nobody", "  ")
    assert not ok
    assert result["kind"] == "validation"


def test_register_endpoint_reports_created_then_existing(client):
    first = client.post("/register", json={"name": "Meera", "email": "meera@example.com", "phone": "1"})
    second = client.post("/register", json={"name": "Someone Else", "email": "meera@example.com"})

    assert first.status_code == 201
    assert second.status_code == 200
    assert second.get_json() == first.get_json()
    assert second.get_json()["name"] == "Meera"


def test_register_requires_name_and_email(client):
    resp = client.post("/register", json={"phone": "1"})
    assert resp.status_code == 400
    assert resp.get_json()["details"]["missing"] == ["name", "email"]


def test_save_order_bridges_to_gateway(client, razorpay_client, db):
    resp = client.post("/api/saveOrder", json=ORDER)

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "success"
    assert body["orderId"] == "order_test1"

    sent = razorpay_client.order.created[0]
    assert sent["amount"] == 34950
    assert sent["currency"] == "INR"
    assert sent["receipt"] == f"order_rcpt_{body['dbOrderId']}"

    with db.get_session() as session:
        order = session.get(Order, body["dbOrderId"])
        assert order.status == OrderStatus.CREATED
        assert order.gateway_order_id == "order_test1"
        assert order.amount == Decimal("349.50")


def test_save_order_reuses_existing_user(client, db):
    client.post("/api/saveOrder", json=ORDER)
    client.post("/api/saveOrder", json=dict(ORDER, name="Another Name", order_item="Nachos"))

    with db.get_session() as session:
        assert session.query(User).count() == 1
        assert session.query(Order).count() == 2


@pytest.mark.parametrize("error", [
    BadRequestError("The amount must be atleast INR 1.00"),
    requests.ConnectionError("connection refused"),
])
def test_gateway_failure_marks_order_failed(client, razorpay_client, db, error):
    razorpay_client.order.error = error

    resp = client.post("/api/saveOrder", json=ORDER)

    assert resp.status_code == 502
    assert resp.get_json()["status"] == "error"
    with db.get_session() as session:
        order = session.query(Order).one()
        assert order.status == OrderStatus.FAILED
        assert order.gateway_order_id is None


def test_save_order_without_gateway_stays_pending(db):
    app = create_app(dict(NO_GATEWAY, SEED_CATALOG=False), db=db)
    resp = app.test_client().post("/api/saveOrder", json=ORDER)

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["orderId"] is None

    order_resp = app.test_client().get(f"/api/orders/{body['dbOrderId']}")
    assert order_resp.get_json()["status"] == "pending"


@pytest.mark.parametrize("change", [
    {"quantity": 0}, {"amount": -1}, {"amount": "free"}, {"quantity": "two"}, {"quantity": 2.5},
])
def test_invalid_order_writes_nothing(client, db, change):
    resp = client.post("/api/saveOrder", json=dict(ORDER, **change))

    assert resp.status_code == 400
    with db.get_session() as session:
        assert session.query(Order).count() == 0
        assert session.query(User).count() == 0


def test_create_order_for_existing_user(db, gateway, razorpay_client):
    service = OrderService(db, gateway)
    _, user = service.upsert_user_by_email("Ravi", "ravi@example.com")

    ok, result = service.create_order(user["user"]["id"], "Ticket upgrade", 1, 50)

    assert ok
    assert result["orderId"] == razorpay_client.order.created[0]["id"]
    ok, order = service.get_order(result["dbOrderId"])
    assert ok and order["status"] == "created"


def test_create_order_for_unknown_user(db, gateway):
    ok, result = OrderService(db, gateway).create_order(404, "Ticket upgrade", 1, 50)
    assert not ok
    assert result["kind"] == "invalid_reference"


def register_concurrently(db, email, name="Racer"):
    """Insert a user from another connection just before the session's next flush."""
    def insert_first(session, flush_context, instances):
        with db.engine.begin() as conn:
            conn.execute(User.__table__.insert().values(name=name, email=email))

    event.listen(db.session_factory.session_factory, "before_flush", insert_first, once=True)


def test_upsert_losing_the_insert_race_returns_existing_user(db):
    register_concurrently(db, "race@example.com")

    ok, result = OrderService(db, None).upsert_user_by_email("Late", "Race@Example.com ")

    assert ok
    assert not result["created"]
    assert result["user"]["name"] == "Racer"
    with db.get_session() as session:
        assert session.query(User).count() == 1
        assert session.query(User).one().id == result["user"]["id"]


def test_save_order_retries_after_losing_the_insert_race(db, gateway):
    register_concurrently(db, ORDER["email"])

    ok, result = OrderService(db, gateway).save_order(
        ORDER["name"], ORDER["email"], ORDER["phone"], ORDER["order_item"], ORDER["quantity"], ORDER["amount"])

    assert ok
    with db.get_session() as session:
        user = session.query(User).one()
        order = session.get(Order, result["dbOrderId"])
        assert user.name == "Racer"
        assert order.user_id == user.id
        assert order.status == OrderStatus.CREATED


def test_status_update_failure_reports_the_gateway_order(db, gateway):
    def refuse_order_updates(session, flush_context, instances):
        if any(isinstance(obj, Order) for obj in session.dirty):
            raise OperationalError("UPDATE orders", {}, Exception("database is locked"))

    event.listen(db.session_factory.session_factory, "before_flush", refuse_order_updates)

    ok, result = OrderService(db, gateway).save_order(
        ORDER["name"], ORDER["email"], ORDER["phone"], ORDER["order_item"], ORDER["quantity"], ORDER["amount"])

    assert not ok
    assert result["kind"] == "internal"
    assert result["details"]["orderId"] == "order_test1"
    with db.get_session() as session:
        order = session.get(Order, result["details"]["dbOrderId"])
        assert order.status == OrderStatus.PENDING


def test_status_update_failure_after_gateway_error_still_reports_gateway_error(db, gateway, razorpay_client):
    razorpay_client.order.error = requests.ConnectionError("connection refused")

    def refuse_order_updates(session, flush_context, instances):
        if any(isinstance(obj, Order) for obj in session.dirty):
            raise OperationalError("UPDATE orders", {}, Exception("database is locked"))

    event.listen(db.session_factory.session_factory, "before_flush", refuse_order_updates)

    ok, result = OrderService(db, gateway).save_order(
        ORDER["name"], ORDER["email"], ORDER["phone"], ORDER["order_item"], ORDER["quantity"], ORDER["amount"])

    assert not ok
    assert result["kind"] == "gateway_error"
