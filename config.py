"""Environment-driven settings for the booking backend."""

import os
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv
from sqlalchemy.engine import URL

load_dotenv()

DEFAULT_SEAT_ROWS = 5
DEFAULT_SEAT_COLUMNS = 6
# Screening length plus cleaning buffer
DEFAULT_SHOW_DURATION_MINUTES = 135


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def database_url_from_env() -> Optional[str]:
    """Prefer DATABASE_URL, otherwise assemble a PostgreSQL URL from the PG* variables."""
    url = os.getenv('DATABASE_URL')
    if url:
        return url

    if not os.getenv('PGDATABASE'):
        return None

    return URL.create(
        "postgresql+psycopg2",
        username=os.getenv('PGUSER'),
        password=os.getenv('PGPASSWORD'),
        host=os.getenv('PGHOST', 'localhost'),
        port=_env_int('PGPORT', 5432),
        database=os.getenv('PGDATABASE'),
    ).render_as_string(hide_password=False)


def load_config(overrides: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    config: Dict[str, Any] = {
        "DATABASE_URL": database_url_from_env(),
        "RAZORPAY_KEY_ID": os.getenv('RAZORPAY_KEY_ID'),
        "RAZORPAY_KEY_SECRET": os.getenv('RAZORPAY_KEY_SECRET'),
        "PAYMENT_CURRENCY": os.getenv('PAYMENT_CURRENCY', 'INR'),
        "SEAT_ROWS": _env_int('SEAT_ROWS', DEFAULT_SEAT_ROWS),
        "SEAT_COLUMNS": _env_int('SEAT_COLUMNS', DEFAULT_SEAT_COLUMNS),
        "SHOW_DURATION_MINUTES": _env_int('SHOW_DURATION_MINUTES', DEFAULT_SHOW_DURATION_MINUTES),
        "SEED_CATALOG": _env_flag('SEED_CATALOG', True),
    }
    if overrides:
        config.update(overrides)
    return config
