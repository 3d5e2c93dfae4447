"""ORM model definitions describing the booking schema."""

from sqlalchemy import (Boolean, Column, Date, DateTime, Enum, ForeignKey, Index, Integer,
                        Numeric, String, false)
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime, timezone
import enum

Base = declarative_base()


def _utcnow():
    return datetime.now(timezone.utc)


def _money(value):
    return float(value) if value is not None else None


def _timestamp(value):
    return value.isoformat() if value is not None else None


class PaymentStatus(str, enum.Enum):
    """Payment state of a booking."""
    PENDING = 'pending'
    SUCCESS = 'success'
    FAILED = 'failed'


class LedgerStatus(str, enum.Enum):
    """State recorded on a payments ledger row."""
    CREATED = 'created'
    SUCCESS = 'success'
    FAILED = 'failed'


class OrderStatus(str, enum.Enum):
    PENDING = 'pending'
    CREATED = 'created'
    FAILED = 'failed'


class User(Base):
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    name = Column(String(100))
    email = Column(String(100), unique=True, nullable=False)
    phone = Column(String(20))

    def to_dict(self):
        return {"id": self.id, "name": self.name, "email": self.email, "phone": self.phone}


class Movie(Base):
    __tablename__ = 'movies'

    id = Column(Integer, primary_key=True)
    screen_no = Column(Integer, nullable=False)
    movie_name = Column(String(100), nullable=False)
    poster_url = Column(String(255))
    trailer_url = Column(String(255))

    def to_dict(self):
        return {
            "id": self.id,
            "screen_no": self.screen_no,
            "movie_name": self.movie_name,
            "poster_url": self.poster_url,
            "trailer_url": self.trailer_url,
        }


class Showtime(Base):
    __tablename__ = 'showtimes'

    id = Column(Integer, primary_key=True)
    time_slot = Column(String(20), nullable=False)

    def to_dict(self):
        return {"id": self.id, "time_slot": self.time_slot}


class Booking(Base):
    __tablename__ = 'bookings'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    movie_id = Column(Integer, ForeignKey('movies.id'), nullable=False)
    date = Column(Date, nullable=False)
    time_slot_id = Column(Integer, ForeignKey('showtimes.id'), nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False, default=0)
    payment_status = Column(Enum(PaymentStatus, name='payment_status_enum',
                                 values_callable=lambda e: [m.value for m in e]),
                            default=PaymentStatus.PENDING, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    seats = relationship('BookingSeat', back_populates='booking', order_by='BookingSeat.id')
    payments = relationship('Payment', back_populates='booking', order_by='Payment.id')

    __table_args__ = (
        Index('idx_bookings_show', 'movie_id', 'date', 'time_slot_id'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "movie_id": self.movie_id,
            "date": self.date.isoformat(),
            "time_slot_id": self.time_slot_id,
            "total_amount": _money(self.total_amount),
            "payment_status": self.payment_status.value,
            "seats": [seat.seat_no for seat in self.seats],
            "payments": [payment.to_dict() for payment in self.payments],
            "created_at": _timestamp(self.created_at),
        }


class BookingSeat(Base):
    __tablename__ = 'booking_seats'

    id = Column(Integer, primary_key=True)
    booking_id = Column(Integer, ForeignKey('bookings.id'), nullable=False)
    seat_no = Column(String(10), nullable=False)
    # Copied from the booking so the active-seat index can cover the whole show
    movie_id = Column(Integer, nullable=False)
    date = Column(Date, nullable=False)
    time_slot_id = Column(Integer, nullable=False)
    released = Column(Boolean, nullable=False, default=False)

    booking = relationship('Booking', back_populates='seats')

    __table_args__ = (
        # A seat can be held by at most one live booking per show
        Index('uq_booking_seats_active', 'movie_id', 'date', 'time_slot_id', 'seat_no',
              unique=True,
              postgresql_where=released == false(),
              sqlite_where=released == false()),
        Index('idx_booking_seats_booking', 'booking_id'),
    )


class Payment(Base):
    __tablename__ = 'payments'

    id = Column(Integer, primary_key=True)
    booking_id = Column(Integer, ForeignKey('bookings.id'), nullable=False)
    gateway_order_id = Column(String(100))
    gateway_payment_id = Column(String(100))
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(10), nullable=False, default='INR')
    status = Column(Enum(LedgerStatus, name='ledger_status_enum',
                         values_callable=lambda e: [m.value for m in e]),
                    default=LedgerStatus.CREATED, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    booking = relationship('Booking', back_populates='payments')

    def to_dict(self):
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "gateway_order_id": self.gateway_order_id,
            "gateway_payment_id": self.gateway_payment_id,
            "amount": _money(self.amount),
            "currency": self.currency,
            "status": self.status.value,
            "created_at": _timestamp(self.created_at),
        }


class Order(Base):
    __tablename__ = 'orders'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    order_item = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(Enum(OrderStatus, name='order_status_enum',
                         values_callable=lambda e: [m.value for m in e]),
                    default=OrderStatus.PENDING, nullable=False)
    gateway_order_id = Column(String(100))
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "order_item": self.order_item,
            "quantity": self.quantity,
            "amount": _money(self.amount),
            "status": self.status.value,
            "gateway_order_id": self.gateway_order_id,
            "created_at": _timestamp(self.created_at),
        }
