"""HTTP entrypoint for the movie booking backend."""

from flask import Blueprint, Flask, current_app, request, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
import click
import logging
import os
from datetime import timedelta
from typing import Any, Dict, List, Mapping, Optional, Tuple

from bookings import BookingService
from catalog import CatalogService
from config import load_config
from database_manager import DatabaseManager
from orders import OrderService
from payment_gateway import create_gateway
from payments import PaymentService
from seating import build_seat_universe

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    "validation": 400,
    "invalid_reference": 400,
    "payment_failed": 402,
    "not_found": 404,
    "conflict": 409,
    "seat_unavailable": 409,
    "gateway_error": 502,
    "gateway_unavailable": 503,
    "internal": 500,
}

api = Blueprint("api", __name__)


class Services:
    """Everything a request handler needs, built once per application."""

    def __init__(self, db: DatabaseManager, config: Mapping[str, Any], gateway=None):
        self.db = db
        self.gateway = gateway
        self.seat_universe = build_seat_universe(config["SEAT_ROWS"], config["SEAT_COLUMNS"])
        self.catalog = CatalogService(db, timedelta(minutes=config["SHOW_DURATION_MINUTES"]))
        self.bookings = BookingService(db, self.seat_universe)
        self.orders = OrderService(db, gateway)
        self.payments = PaymentService(db, gateway)


def services() -> Services:
    return current_app.extensions["booking_services"]


def error_response(message: str, status: int = 500, *, details: Optional[Dict[str, Any]] = None):
    """Return the uniform error envelope used by every endpoint."""
    payload: Dict[str, Any] = {"status": "error", "message": message}
    if details:
        payload["details"] = details
    return jsonify(payload), status


def bad_request(message: str, *, details: Optional[Dict[str, Any]] = None):
    return error_response(message, 400, details=details)


def failure_response(result: Dict[str, Any]):
    """Translate a service failure result into the error envelope."""
    status = ERROR_STATUS.get(result.get("kind"), 500)
    return error_response(result.get("message", "request failed"), status, details=result.get("details"))


def require_json_object() -> Tuple[Optional[Dict[str, Any]], Optional[Tuple[Any, int]]]:
    """Ensure the request body is a JSON object before proceeding."""
    if not request.is_json:
        return None, bad_request("request body must be a JSON object")

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None, bad_request("request body must be a JSON object")

    return data, None


def require_fields(data: Dict[str, Any], *names: str):
    """Return a 400 response naming the absent fields, or None when all are present."""
    missing = [name for name in names if data.get(name) in (None, "")]
    if missing:
        return bad_request("missing required field(s)", details={"missing": missing})
    return None


def validate_seats(data: Dict[str, Any]) -> Tuple[Optional[List[str]], Optional[Tuple[Any, int]]]:
    """Accept either a seats array or the single-seat seat_no form."""
    seats = data.get('seats')
    if seats is None and data.get('seat_no') is not None:
        seats = [data.get('seat_no')]

    if not isinstance(seats, list):
        return None, bad_request("seats must be provided as a non-empty JSON array")

    if len(seats) == 0:
        return None, bad_request("seats must contain at least one seat")

    normalized: List[str] = []
    for index, seat in enumerate(seats):
        if not isinstance(seat, str):
            return None, bad_request("each seat must be a string", details={"index": index})
        trimmed = seat.strip().upper()
        if not trimmed:
            return None, bad_request("seats must not contain empty strings", details={"index": index})
        normalized.append(trimmed)

    if len(set(normalized)) != len(normalized):
        return None, bad_request("seats must not contain duplicates")

    return normalized, None


# API Endpoints

@api.route('/movies', methods=['GET'])
def list_movies():
    ok, result = services().catalog.list_movies()
    if not ok:
        return failure_response(result)
    return jsonify(result)


@api.route('/showtimes', methods=['GET', 'POST'])
def list_showtimes():
    """Showtimes in clock order, hiding today's finished shows."""
    show_date = current_time = None
    if request.method == 'POST':
        data, error = require_json_object()
        if error:
            return error
        show_date = data.get('date')
        current_time = data.get('current_time')
        for name, value in (('date', show_date), ('current_time', current_time)):
            if value is not None and not isinstance(value, str):
                return bad_request(f"{name} must be a string")

    ok, result = services().catalog.list_showtimes(show_date, current_time)
    if not ok:
        return failure_response(result)
    return jsonify(result)


@api.route('/add-movie', methods=['POST'])
def add_movie():
    data, error = require_json_object()
    if error:
        return error
    missing = require_fields(data, 'screen_no', 'movie_name')
    if missing:
        return missing

    ok, result = services().catalog.add_movie(
        data.get('screen_no'), data.get('movie_name'), data.get('poster_url'), data.get('trailer_url')
    )
    if not ok:
        return failure_response(result)
    return jsonify({"status": "success", "movie": result}), 201


@api.route('/add-showtime', methods=['POST'])
def add_showtime():
    data, error = require_json_object()
    if error:
        return error
    missing = require_fields(data, 'time_slot')
    if missing:
        return missing

    ok, result = services().catalog.add_showtime(data.get('time_slot'))
    if not ok:
        return failure_response(result)
    return jsonify({"status": "success", "showtime": result}), 201


@api.route('/register', methods=['POST'])
def register():
    """Create the user, or return the existing row for a known email."""
    data, error = require_json_object()
    if error:
        return error
    missing = require_fields(data, 'name', 'email')
    if missing:
        return missing

    ok, result = services().orders.upsert_user_by_email(data.get('name'), data.get('email'), data.get('phone'))
    if not ok:
        return failure_response(result)
    return jsonify(result["user"]), 201 if result["created"] else 200


@api.route('/book', methods=['POST'])
def book_seats():
    """Book one or more seats for a movie, date and showtime."""
    data, error = require_json_object()
    if error:
        return error
    missing = require_fields(data, 'user_id', 'movie_id', 'date', 'time_slot_id', 'total_amount')
    if missing:
        return missing

    seats, seat_error = validate_seats(data)
    if seat_error:
        return seat_error

    ok, result = services().bookings.create_booking(
        data.get('user_id'),
        data.get('movie_id'),
        data.get('date'),
        data.get('time_slot_id'),
        seats,
        data.get('total_amount')
    )
    if not ok:
        return failure_response(result)
    return jsonify({"status": "success", **result}), 201


@api.route('/bookings/<int:booking_id>', methods=['GET'])
def get_booking(booking_id):
    ok, result = services().bookings.get_booking(booking_id)
    if not ok:
        return failure_response(result)
    return jsonify(result)


@api.route('/available-seats', methods=['POST'])
def available_seats():
    data, error = require_json_object()
    if error:
        return error
    missing = require_fields(data, 'movie_id', 'date', 'time_slot_id')
    if missing:
        return missing

    ok, result = services().bookings.compute_available_seats(
        data.get('movie_id'), data.get('date'), data.get('time_slot_id')
    )
    if not ok:
        return failure_response(result)
    return jsonify(result)


@api.route('/payments/create-order', methods=['POST'])
def create_payment_order():
    """Open a gateway checkout for a pending booking."""
    data, error = require_json_object()
    if error:
        return error
    missing = require_fields(data, 'booking_id')
    if missing:
        return missing

    ok, result = services().payments.create_booking_payment(data.get('booking_id'))
    if not ok:
        return failure_response(result)
    return jsonify({"status": "success", **result}), 201


@api.route('/payments/verify', methods=['POST'])
def verify_payment():
    data, error = require_json_object()
    if error:
        return error
    missing = require_fields(data, 'booking_id', 'razorpay_order_id', 'razorpay_payment_id', 'razorpay_signature')
    if missing:
        return missing

    ok, result = services().payments.verify_booking_payment(
        data.get('booking_id'),
        data.get('razorpay_order_id'),
        data.get('razorpay_payment_id'),
        data.get('razorpay_signature')
    )
    if not ok:
        return failure_response(result)
    return jsonify({"status": "success", **result})


@api.route('/api/saveOrder', methods=['POST'])
def save_order():
    """Record a single-item order and create its gateway order."""
    data, error = require_json_object()
    if error:
        return error
    missing = require_fields(data, 'name', 'email', 'order_item', 'quantity', 'amount')
    if missing:
        return missing

    ok, result = services().orders.save_order(
        data.get('name'),
        data.get('email'),
        data.get('phone'),
        data.get('order_item'),
        data.get('quantity'),
        data.get('amount')
    )
    if not ok:
        return failure_response(result)
    return jsonify({"status": "success", **result})


@api.route('/api/orders/<int:order_id>', methods=['GET'])
def get_order(order_id):
    ok, result = services().orders.get_order(order_id)
    if not ok:
        return failure_response(result)
    return jsonify(result)


@api.route('/sample', methods=['GET'])
def sample():
    return jsonify({"status": "success"})


@api.route('/health', methods=['GET'])
def health_check():
    """Expose the database connectivity and row counts."""
    report = services().db.health_check()
    return jsonify(report), 200 if report["status"] == "healthy" else 503


def handle_unexpected_error(error):
    if isinstance(error, HTTPException):
        return error_response(error.description or error.name, error.code or 500)
    logger.exception(f"Unhandled error on {request.method} {request.path}: {error}")
    return error_response("internal server error", 500)


def handle_not_found(error):
    return error_response("resource not found", 404)


def handle_method_not_allowed(error):
    return error_response("method not allowed", 405)


def register_cli(app: Flask):
    @app.cli.command('init-db')
    def init_db_command():
        """Create any missing tables."""
        services().db.create_schema()
        click.echo("Database schema is up to date.")

    @app.cli.command('seed-catalog')
    @click.option('--reset', is_flag=True, help="Delete and reinsert the seed movies and showtimes.")
    def seed_catalog_command(reset):
        """Insert the seed movies and showtimes."""
        ok, result = services().db.seed_catalog(reset=reset)
        if not ok:
            raise click.ClickException(result["message"])
        click.echo(f"Seeded {result['movies_added']} movies and {result['showtimes_added']} showtimes.")


def create_app(overrides: Optional[Mapping[str, Any]] = None,
               db: Optional[DatabaseManager] = None,
               gateway=None) -> Flask:
    """Build the application.

    ``db`` and ``gateway`` may be handed in (tests do); otherwise they are built
    from configuration. Tables are created on startup and the seed catalog is
    inserted only into empty tables.
    """
    config = load_config(overrides)

    app = Flask(__name__)
    app.config.update(config)
    CORS(app)

    if db is None:
        db = DatabaseManager(config["DATABASE_URL"])
    if gateway is None:
        gateway = create_gateway(config)

    db.create_schema()
    if config["SEED_CATALOG"]:
        ok, result = db.seed_catalog()
        if ok and (result["movies_added"] or result["showtimes_added"]):
            logger.info(f"✅ Seeded catalog: {result['movies_added']} movies, "
                        f"{result['showtimes_added']} showtimes")
        elif not ok:
            logger.error(f"❌ Failed to seed catalog: {result['message']}")

    app.extensions["booking_services"] = Services(db, config, gateway)
    app.register_blueprint(api)
    app.register_error_handler(404, handle_not_found)
    app.register_error_handler(405, handle_method_not_allowed)
    app.register_error_handler(Exception, handle_unexpected_error)
    register_cli(app)

    @app.teardown_appcontext
    def remove_session(exception=None):
        db.session_factory.remove()

    return app


if __name__ == '__main__':
    application = create_app()

    universe = application.extensions["booking_services"].seat_universe
    logger.info(f"Movie booking backend starting: {len(universe)} seats per show ({universe[0]}-{universe[-1]}), "
                f"payments {'enabled' if application.extensions['booking_services'].gateway else 'disabled'}")

    port = int(os.environ.get("PORT", 5000))
    application.run(host="0.0.0.0", port=port, debug=False, threaded=True)
