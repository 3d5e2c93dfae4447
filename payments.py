"""Gateway checkout for bookings and the append-only payments ledger."""

from typing import Dict, Optional, Tuple
import logging

from sqlalchemy.exc import SQLAlchemyError

from database_manager import DatabaseManager
from errors import (ConflictError, DataConstraintError, GatewayUnavailableError, NotFoundError,
                    PaymentFailedError, PaymentGatewayError, ServiceError, failure, parse_id)
from models import Booking, BookingSeat, LedgerStatus, Payment, PaymentStatus
from payment_gateway import RazorpayGateway

logger = logging.getLogger(__name__)


def _load_booking(session, booking_id) -> Booking:
    booking = session.get(Booking, parse_id("booking_id", booking_id))
    if booking is None:
        raise NotFoundError("booking not found")
    return booking


class PaymentService:
    """Booking checkout through the gateway, recorded in the payments ledger."""

    def __init__(self, db: DatabaseManager, gateway: Optional[RazorpayGateway]):
        self.db = db
        self.gateway = gateway

    def create_booking_payment(self, booking_id) -> Tuple[bool, Dict]:
        """Open a gateway order for a pending booking's total."""
        try:
            if self.gateway is None:
                raise GatewayUnavailableError("payment gateway is not configured")

            with self.db.get_session() as session:
                booking = _load_booking(session, booking_id)
                if booking.payment_status != PaymentStatus.PENDING:
                    raise ConflictError(f"booking is already {booking.payment_status.value}")
                booking_id, amount = booking.id, booking.total_amount

            try:
                remote = self.gateway.create_order(amount, receipt=f"booking_rcpt_{booking_id}",
                                                   notes={"booking_id": str(booking_id)})
            except PaymentGatewayError:
                self._record(booking_id, amount, LedgerStatus.FAILED)
                raise

            self._record(booking_id, amount, LedgerStatus.CREATED, gateway_order_id=remote["id"])
            logger.info(f"Booking {booking_id} checkout opened as gateway order {remote['id']}")
            return True, {
                "booking_id": booking_id,
                "order_id": remote["id"],
                "amount": float(amount),
                "currency": self.gateway.currency,
                "key_id": self.gateway.key_id,
            }
        except ServiceError as e:
            return False, e.to_result()
        except SQLAlchemyError as e:
            logger.error(f"Create booking payment error: {e}")
            return False, failure("internal", "could not start payment")

    def verify_booking_payment(self, booking_id, gateway_order_id, gateway_payment_id,
                               signature) -> Tuple[bool, Dict]:
        """Settle a booking from the signature the gateway returned to the client.

        A valid signature marks the booking successful. Anything else marks it
        failed and releases its seats for other customers.
        """
        try:
            if self.gateway is None:
                raise GatewayUnavailableError("payment gateway is not configured")
            for name, value in (("razorpay_order_id", gateway_order_id),
                                ("razorpay_payment_id", gateway_payment_id),
                                ("razorpay_signature", signature)):
                if not isinstance(value, str) or not value.strip():
                    raise DataConstraintError(f"{name} must be a non-empty string")

            with self.db.get_session() as session:
                booking = _load_booking(session, booking_id)
                if booking.payment_status != PaymentStatus.PENDING:
                    raise ConflictError(f"booking is already {booking.payment_status.value}")

                opened = session.query(Payment).filter(
                    Payment.booking_id == booking.id,
                    Payment.gateway_order_id == gateway_order_id
                ).first()
                if opened is None:
                    raise NotFoundError("no checkout was opened for this order id")

                verified = self.gateway.verify_payment(gateway_order_id, gateway_payment_id, signature)
                status = LedgerStatus.SUCCESS if verified else LedgerStatus.FAILED
                session.add(Payment(
                    booking_id=booking.id,
                    gateway_order_id=gateway_order_id,
                    gateway_payment_id=gateway_payment_id,
                    amount=booking.total_amount,
                    currency=opened.currency,
                    status=status
                ))

                if verified:
                    booking.payment_status = PaymentStatus.SUCCESS
                else:
                    booking.payment_status = PaymentStatus.FAILED
                    session.query(BookingSeat).filter(
                        BookingSeat.booking_id == booking.id
                    ).update({BookingSeat.released: True}, synchronize_session=False)
                booking_id = booking.id

            if not verified:
                logger.warning(f"Booking {booking_id} payment failed verification; seats released")
                raise PaymentFailedError("payment could not be verified")

            logger.info(f"Booking {booking_id} paid via {gateway_payment_id}")
            return True, {"booking_id": booking_id, "payment_status": PaymentStatus.SUCCESS.value}
        except ServiceError as e:
            return False, e.to_result()
        except SQLAlchemyError as e:
            logger.error(f"Verify booking payment error: {e}")
            return False, failure("internal", "could not verify payment")

    def _record(self, booking_id: int, amount, status: LedgerStatus,
                gateway_order_id: Optional[str] = None):
        with self.db.get_session() as session:
            session.add(Payment(booking_id=booking_id, gateway_order_id=gateway_order_id,
                                amount=amount, currency=self.gateway.currency, status=status))
