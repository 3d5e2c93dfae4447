"""Database coordination layer: engine, transactional scopes, schema and seed data."""

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, scoped_session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from contextlib import contextmanager
from typing import Dict, Tuple
import logging

from errors import ServiceError
from models import Base, Movie, Showtime, Booking

logger = logging.getLogger(__name__)

SEED_MOVIES = [
    {"screen_no": 1, "movie_name": "Mask", "poster_url": "poster1.jpg", "trailer_url": "trailer1"},
    {"screen_no": 2, "movie_name": "Movie Two", "poster_url": "poster2.jpg", "trailer_url": "trailer2"},
]

SEED_SHOWTIMES = ["10:00 AM", "01:00 PM", "04:00 PM", "10:00 PM"]


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class DatabaseManager:
    """Owns the connection pool; every service gets one of these injected."""

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("a database URL is required (set DATABASE_URL or the PG* variables)")

        url = make_url(database_url)
        if url.get_backend_name() == 'sqlite':
            self.engine = create_engine(url, echo=False)
            event.listen(self.engine, 'connect', _enable_sqlite_foreign_keys)
        else:
            self.engine = create_engine(
                url,
                pool_size=20,
                max_overflow=40,
                pool_pre_ping=True,  # Reconnect if connection lost
                pool_recycle=3600,   # Recycle connections after 1 hour
                echo=False
            )
        self.session_factory = scoped_session(sessionmaker(bind=self.engine))

    def create_schema(self):
        """Create any missing tables; existing tables are left alone."""
        Base.metadata.create_all(self.engine)

    @contextmanager
    def get_session(self):
        """Provide a transactional scope, committing on success and rolling back otherwise."""
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except ServiceError:
            session.rollback()
            raise
        except Exception as e:
            session.rollback()
            logger.error(f"Database error: {e}")
            raise
        finally:
            session.close()

    def seed_catalog(self, reset: bool = False) -> Tuple[bool, Dict]:
        """Insert the seed movies and showtimes.

        Without ``reset`` each table is only filled when it is empty, so this is
        safe on every start. With ``reset`` the catalog is deleted and
        reinserted; the foreign keys from bookings make that fail (and change
        nothing) while any booking still points at a catalog row.
        """
        try:
            with self.get_session() as session:
                if reset:
                    if session.query(Booking.id).first() is not None:
                        logger.warning("Catalog reseed requested while bookings exist")
                    session.query(Movie).delete(synchronize_session=False)
                    session.query(Showtime).delete(synchronize_session=False)
                    session.flush()

                movies_added = 0
                if session.query(Movie.id).first() is None:
                    session.add_all(Movie(**movie) for movie in SEED_MOVIES)
                    movies_added = len(SEED_MOVIES)

                showtimes_added = 0
                if session.query(Showtime.id).first() is None:
                    session.add_all(Showtime(time_slot=slot) for slot in SEED_SHOWTIMES)
                    showtimes_added = len(SEED_SHOWTIMES)

                return True, {"movies_added": movies_added, "showtimes_added": showtimes_added}
        except IntegrityError as e:
            logger.error(f"Catalog reseed blocked by existing references: {e.orig}")
            return False, {"kind": "conflict",
                           "message": "catalog rows are still referenced by bookings"}
        except SQLAlchemyError as e:
            logger.error(f"Seed catalog error: {e}")
            return False, {"kind": "internal", "message": "could not seed catalog"}

    def health_check(self) -> Dict:
        """Report database connectivity and row counts; used by the /health endpoint."""
        try:
            with self.get_session() as session:
                session.execute(text("SELECT 1"))

                movie_count = session.query(Movie).count()
                booking_count = session.query(Booking).count()

                return {
                    "status": "healthy",
                    "database": "connected",
                    "movies": movie_count,
                    "bookings": booking_count,
                }
        except SQLAlchemyError as e:
            logger.error(f"Health check failed: {e}")
            return {
                "status": "unhealthy",
                "database": "disconnected",
            }

    def dispose(self):
        self.session_factory.remove()
        self.engine.dispose()
