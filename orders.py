"""Users keyed by email, and single-item orders bridged to the payment gateway."""

from decimal import Decimal, InvalidOperation
from typing import Dict, Optional, Tuple
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from database_manager import DatabaseManager
from errors import (DataConstraintError, InvalidReferenceError, NotFoundError,
                    PaymentGatewayError, ServiceError, failure, parse_id)
from models import Order, OrderStatus, User
from payment_gateway import RazorpayGateway

logger = logging.getLogger(__name__)


def _normalize_email(email) -> str:
    if not isinstance(email, str) or not email.strip():
        raise DataConstraintError("email is required")
    return email.strip().lower()


def _find_or_add_user(session, name, email, phone) -> Tuple[User, bool]:
    """Return the user with this email, inserting it first if absent."""
    email = _normalize_email(email)

    user = session.query(User).filter(User.email == email).first()
    if user is not None:
        return user, False

    user = User(name=name, email=email, phone=phone)
    session.add(user)
    session.flush()
    return user, True


def _validate_order(order_item, quantity, amount) -> Tuple[str, int, Decimal]:
    if not isinstance(order_item, str) or not order_item.strip():
        raise DataConstraintError("order_item is required")
    quantity = parse_id("quantity", quantity)
    if quantity < 1:
        raise DataConstraintError("quantity must be a positive integer")
    if isinstance(amount, bool):
        raise DataConstraintError("amount must be a positive number")
    try:
        amount = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise DataConstraintError("amount must be a positive number")
    if not amount.is_finite() or amount <= 0:
        raise DataConstraintError("amount must be a positive number")
    return order_item.strip(), quantity, amount


class OrderService:
    """Users keyed by email and the orders they place through the gateway."""

    def __init__(self, db: DatabaseManager, gateway: Optional[RazorpayGateway]):
        self.db = db
        self.gateway = gateway

    def upsert_user_by_email(self, name, email, phone=None) -> Tuple[bool, Dict]:
        """Insert the user unless the email is known; existing rows are never modified."""
        try:
            with self.db.get_session() as session:
                user, created = _find_or_add_user(session, name, email, phone)
                result = {"user": user.to_dict(), "created": created}

            if created:
                logger.info(f"User registered: {result['user']['id']}")
            return True, result
        except ServiceError as e:
            return False, e.to_result()
        except IntegrityError as e:
            # A concurrent request inserted the same email after our lookup
            logger.warning(f"Concurrent registration for the same email: {e.orig}")
            try:
                with self.db.get_session() as session:
                    user = session.query(User).filter(User.email == _normalize_email(email)).first()
                    if user is None:
                        return False, failure("internal", "could not save user")
                    return True, {"user": user.to_dict(), "created": False}
            except SQLAlchemyError as e:
                logger.error(f"Upsert user error: {e}")
                return False, failure("internal", "could not save user")
        except SQLAlchemyError as e:
            logger.error(f"Upsert user error: {e}")
            return False, failure("internal", "could not save user")

    def create_order(self, user_id, order_item, quantity, amount) -> Tuple[bool, Dict]:
        """Record a pending order for an existing user, then bridge it to the gateway."""
        try:
            order_item, quantity, amount = _validate_order(order_item, quantity, amount)
            user_id = parse_id("user_id", user_id)

            with self.db.get_session() as session:
                if session.get(User, user_id) is None:
                    raise InvalidReferenceError("user does not exist")
                order_id = self._insert_order(session, user_id, order_item, quantity, amount)
        except ServiceError as e:
            return False, e.to_result()
        except SQLAlchemyError as e:
            logger.error(f"Create order error: {e}")
            return False, failure("internal", "could not save order")

        return self._bridge(order_id, amount)

    def save_order(self, name, email, phone, order_item, quantity, amount) -> Tuple[bool, Dict]:
        """Upsert the buyer and insert the order together, then bridge it to the gateway.

        If a concurrent registration wins the race for the email, the whole
        transaction is retried once so the order lands on the existing user.
        """
        try:
            order_item, quantity, amount = _validate_order(order_item, quantity, amount)
            for attempt in range(2):
                try:
                    with self.db.get_session() as session:
                        user, _ = _find_or_add_user(session, name, email, phone)
                        order_id = self._insert_order(session, user.id, order_item, quantity, amount)
                    break
                except IntegrityError as e:
                    if attempt:
                        raise
                    logger.warning(f"Save order collided with a concurrent registration, retrying: {e.orig}")
        except ServiceError as e:
            return False, e.to_result()
        except SQLAlchemyError as e:
            logger.error(f"Save order error: {e}")
            return False, failure("internal", "could not save order")

        return self._bridge(order_id, amount)

    def get_order(self, order_id) -> Tuple[bool, Dict]:
        """Fetch one order by its local id."""
        try:
            order_id = parse_id("order_id", order_id)
            with self.db.get_session() as session:
                order = session.get(Order, order_id)
                if order is None:
                    raise NotFoundError("order not found")
                return True, order.to_dict()
        except ServiceError as e:
            return False, e.to_result()
        except SQLAlchemyError as e:
            logger.error(f"Get order error: {e}")
            return False, failure("internal", "could not load order")

    @staticmethod
    def _insert_order(session, user_id, order_item, quantity, amount) -> int:
        order = Order(user_id=user_id, order_item=order_item, quantity=quantity,
                      amount=amount, status=OrderStatus.PENDING)
        session.add(order)
        session.flush()
        return order.id

    def _bridge(self, order_id: int, amount: Decimal) -> Tuple[bool, Dict]:
        """Create the remote order for a committed local order and record the outcome.

        The local row is committed first. If the gateway fails, the row is
        marked failed so no pending order is left without a remote twin. If the
        status update itself fails, the remote id is reported so the two can be
        reconciled.
        """
        if self.gateway is None:
            logger.warning(f"Order {order_id} saved without a gateway order (gateway disabled)")
            return True, {"orderId": None, "dbOrderId": order_id}

        try:
            remote = self.gateway.create_order(amount, receipt=f"order_rcpt_{order_id}",
                                               notes={"db_order_id": str(order_id)})
        except PaymentGatewayError as e:
            try:
                self._finish_order(order_id, OrderStatus.FAILED)
            except SQLAlchemyError as db_error:
                logger.error(f"Order {order_id} could not be marked failed: {db_error}")
            return False, e.to_result()

        try:
            self._finish_order(order_id, OrderStatus.CREATED, remote["id"])
        except SQLAlchemyError as e:
            logger.error(f"Order {order_id} has gateway order {remote['id']} but its status "
                         f"could not be updated: {e}")
            return False, failure("internal", "order saved but its status could not be updated",
                                  details={"orderId": remote["id"], "dbOrderId": order_id})

        logger.info(f"Order {order_id} bridged to gateway order {remote['id']}")
        return True, {"orderId": remote["id"], "dbOrderId": order_id}

    def _finish_order(self, order_id: int, status: OrderStatus, gateway_order_id: Optional[str] = None):
        with self.db.get_session() as session:
            order = session.get(Order, order_id)
            order.status = status
            order.gateway_order_id = gateway_order_id
