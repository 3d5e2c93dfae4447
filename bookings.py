"""Seat availability and multi-seat bookings."""

from decimal import Decimal, InvalidOperation
from typing import Dict, List, Tuple
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from database_manager import DatabaseManager
from errors import (DataConstraintError, InvalidReferenceError, NotFoundError,
                    SeatUnavailableError, ServiceError, failure, parse_id)
from models import Booking, BookingSeat, Movie, PaymentStatus, Showtime, User
from seating import available_seats, unknown_seats
from showtimes import parse_show_date

logger = logging.getLogger(__name__)


def _parse_date(value):
    try:
        return parse_show_date(value)
    except (AttributeError, TypeError, ValueError):
        raise DataConstraintError("date must be an ISO date (YYYY-MM-DD)")


def _parse_amount(value) -> Decimal:
    if isinstance(value, bool):
        raise DataConstraintError("total_amount must be a number")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise DataConstraintError("total_amount must be a number")
    if not amount.is_finite() or amount < 0:
        raise DataConstraintError("total_amount must be zero or more")
    return amount


def taken_seats(session, movie_id: int, show_date, time_slot_id: int) -> List[str]:
    """Seat labels held by live bookings for one show."""
    rows = session.query(BookingSeat.seat_no).filter(
        BookingSeat.movie_id == movie_id,
        BookingSeat.date == show_date,
        BookingSeat.time_slot_id == time_slot_id,
        BookingSeat.released.is_(False)
    ).all()
    return [row.seat_no for row in rows]


class BookingService:
    """Seat availability and bookings against a fixed seat chart."""

    def __init__(self, db: DatabaseManager, seat_universe: List[str]):
        self.db = db
        self.seat_universe = list(seat_universe)

    def compute_available_seats(self, movie_id, show_date, time_slot_id) -> Tuple[bool, Dict]:
        """Return the seating chart minus every seat already booked for the show."""
        try:
            movie_id = parse_id("movie_id", movie_id)
            time_slot_id = parse_id("time_slot_id", time_slot_id)
            day = _parse_date(show_date)

            with self.db.get_session() as session:
                taken = taken_seats(session, movie_id, day, time_slot_id)

            return True, {"available": available_seats(self.seat_universe, taken)}
        except ServiceError as e:
            return False, e.to_result()
        except SQLAlchemyError as e:
            logger.error(f"Available seats error: {e}")
            return False, failure("internal", "could not compute available seats")

    def create_booking(self, user_id, movie_id, show_date, time_slot_id,
                       seats: List[str], total_amount) -> Tuple[bool, Dict]:
        """Insert a booking and all of its seats in one transaction."""
        try:
            user_id = parse_id("user_id", user_id)
            movie_id = parse_id("movie_id", movie_id)
            time_slot_id = parse_id("time_slot_id", time_slot_id)
            day = _parse_date(show_date)
            amount = _parse_amount(total_amount)

            if not seats:
                raise DataConstraintError("at least one seat is required")
            if len(set(seats)) != len(seats):
                raise DataConstraintError("seats must not contain duplicates")
            invalid = unknown_seats(self.seat_universe, seats)
            if invalid:
                raise DataConstraintError("unknown seat label(s)", details={"invalid_seats": invalid})

            with self.db.get_session() as session:
                missing = [name for name, model, key in (
                    ("user_id", User, user_id),
                    ("movie_id", Movie, movie_id),
                    ("time_slot_id", Showtime, time_slot_id),
                ) if session.get(model, key) is None]
                if missing:
                    raise InvalidReferenceError("referenced record does not exist",
                                                details={"missing": missing})

                clashing = sorted(set(seats) & set(taken_seats(session, movie_id, day, time_slot_id)))
                if clashing:
                    raise SeatUnavailableError("seats already booked",
                                               details={"unavailable_seats": clashing})

                booking = Booking(
                    user_id=user_id,
                    movie_id=movie_id,
                    date=day,
                    time_slot_id=time_slot_id,
                    total_amount=amount,
                    payment_status=PaymentStatus.PENDING
                )
                booking.seats = [
                    BookingSeat(seat_no=seat, movie_id=movie_id, date=day, time_slot_id=time_slot_id)
                    for seat in seats
                ]
                session.add(booking)
                session.flush()
                result = {
                    "booking_id": booking.id,
                    "seats": list(seats),
                    "payment_status": booking.payment_status.value,
                }

            logger.info(f"Booking {result['booking_id']} created: movie={movie_id} date={day} "
                        f"slot={time_slot_id} seats={seats}")
            return True, result
        except ServiceError as e:
            return False, e.to_result()
        except IntegrityError as e:
            # Another booking claimed one of the seats between our check and commit
            logger.warning(f"Booking rejected by seat index: {e.orig}")
            return False, SeatUnavailableError("seats already booked").to_result()
        except SQLAlchemyError as e:
            logger.error(f"Create booking error: {e}")
            return False, failure("internal", "could not create booking")

    def get_booking(self, booking_id) -> Tuple[bool, Dict]:
        """Fetch a booking with its seats and payment ledger."""
        try:
            booking_id = parse_id("booking_id", booking_id)
            with self.db.get_session() as session:
                booking = session.get(Booking, booking_id)
                if booking is None:
                    raise NotFoundError("booking not found")
                return True, booking.to_dict()
        except ServiceError as e:
            return False, e.to_result()
        except SQLAlchemyError as e:
            logger.error(f"Get booking error: {e}")
            return False, failure("internal", "could not load booking")
