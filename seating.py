"""The fixed seating chart shared by every screen."""

import string
from typing import Iterable, List


def build_seat_universe(rows: int, columns: int) -> List[str]:
    """Return every seat label in canonical order, e.g. A1..A6, B1..B6, ..."""
    if not 1 <= rows <= len(string.ascii_uppercase):
        raise ValueError(f"seat rows must be between 1 and {len(string.ascii_uppercase)}")
    if columns < 1:
        raise ValueError("seat columns must be positive")

    return [f"{row}{num}" for row in string.ascii_uppercase[:rows] for num in range(1, columns + 1)]


def available_seats(universe: List[str], taken: Iterable[str]) -> List[str]:
    taken_set = set(taken)
    return [seat for seat in universe if seat not in taken_set]


def unknown_seats(universe: List[str], seats: Iterable[str]) -> List[str]:
    valid = set(universe)
    return [seat for seat in seats if seat not in valid]
