"""Read side of the catalog plus the two admin inserts."""

from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple, Union
import logging

from sqlalchemy.exc import SQLAlchemyError

from database_manager import DatabaseManager
from errors import DataConstraintError, ServiceError, failure
from models import Movie, Showtime
from showtimes import parse_show_date, parse_time_slot, upcoming_showtimes

logger = logging.getLogger(__name__)


class CatalogService:
    """Movies and their showtimes."""

    def __init__(self, db: DatabaseManager, show_duration: timedelta,
                 clock: Callable[[], datetime] = datetime.now):
        self.db = db
        self.show_duration = show_duration
        self.clock = clock

    def list_movies(self) -> Tuple[bool, Union[List[Dict], Dict]]:
        """List every movie in the catalog."""
        try:
            with self.db.get_session() as session:
                movies = session.query(Movie).order_by(Movie.id).all()
                return True, [movie.to_dict() for movie in movies]
        except SQLAlchemyError as e:
            logger.error(f"List movies error: {e}")
            return False, failure("internal", "could not load movies")

    def list_showtimes(self, show_date: Optional[str] = None,
                       current_time: Optional[str] = None) -> Tuple[bool, Union[List[Dict], Dict]]:
        """Showtimes in clock order; for today, only those not yet over.

        ``show_date`` is an ISO date and ``current_time`` a clock string such as
        "11:00 AM". Both default to the server clock.
        """
        now = self.clock()
        try:
            day = parse_show_date(show_date) if show_date else now.date()
            if current_time:
                now = datetime.combine(now.date(), parse_time_slot(current_time))
        except ValueError as e:
            return False, failure("validation", str(e))

        try:
            with self.db.get_session() as session:
                slots = session.query(Showtime).all()
                return True, [slot.to_dict() for slot in
                              upcoming_showtimes(slots, day, now, self.show_duration)]
        except SQLAlchemyError as e:
            logger.error(f"List showtimes error: {e}")
            return False, failure("internal", "could not load showtimes")

    def add_movie(self, screen_no, movie_name, poster_url=None, trailer_url=None) -> Tuple[bool, Dict]:
        """Add a movie to a screen."""
        try:
            if screen_no is None or not movie_name:
                raise DataConstraintError("screen_no and movie_name are required")
            try:
                screen_no = int(screen_no)
            except (TypeError, ValueError):
                raise DataConstraintError("screen_no must be an integer")

            with self.db.get_session() as session:
                movie = Movie(screen_no=screen_no, movie_name=movie_name,
                              poster_url=poster_url, trailer_url=trailer_url)
                session.add(movie)
                session.flush()
                created = movie.to_dict()

            logger.info(f"Movie added: {created['id']} {movie_name!r} on screen {screen_no}")
            return True, created
        except ServiceError as e:
            return False, e.to_result()
        except SQLAlchemyError as e:
            logger.error(f"Add movie error: {e}")
            return False, failure("internal", "could not add movie")

    def add_showtime(self, time_slot) -> Tuple[bool, Dict]:
        try:
            if not isinstance(time_slot, str) or not time_slot.strip():
                raise DataConstraintError("time_slot is required")
            try:
                parse_time_slot(time_slot)
            except ValueError:
                raise DataConstraintError("time_slot must look like '10:00 AM'")

            with self.db.get_session() as session:
                showtime = Showtime(time_slot=time_slot.strip())
                session.add(showtime)
                session.flush()
                created = showtime.to_dict()

            logger.info(f"Showtime added: {created['id']} {created['time_slot']}")
            return True, created
        except ServiceError as e:
            return False, e.to_result()
        except SQLAlchemyError as e:
            logger.error(f"Add showtime error: {e}")
            return False, failure("internal", "could not add showtime")
