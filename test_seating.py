import pytest

from seating import available_seats, build_seat_universe, unknown_seats


def test_default_chart_has_thirty_seats_in_row_order():
    universe = build_seat_universe(5, 6)
    assert len(universe) == 30
    assert universe[:7] == ["A1", "A2", "A3", "A4", "A5", "A6", "B1"]
    assert universe[-1] == "E6"


def test_chart_size_follows_configuration():
    assert build_seat_universe(2, 3) == ["A1", "A2", "A3", "B1", "B2", "B3"]


@pytest.mark.parametrize("rows, columns", [(0, 6), (27, 6), (5, 0)])
def test_chart_rejects_impossible_sizes(rows, columns):
    with pytest.raises(ValueError):
        build_seat_universe(rows, columns)


def test_available_is_set_difference_in_canonical_order():
    universe = build_seat_universe(5, 6)
    free = available_seats(universe, ["C4", "A1", "Z9"])
    assert "A1" not in free and "C4" not in free
    assert len(free) == 28
    assert free == [seat for seat in universe if seat not in ("A1", "C4")]


def test_unknown_seats_reports_labels_outside_chart():
    universe = build_seat_universe(5, 6)
    assert unknown_seats(universe, ["A1", "F1", "A7"]) == ["F1", "A7"]
