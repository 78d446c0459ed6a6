from datetime import date

from gsc_mcp.dates import is_valid_date_string, parse_date_range

TODAY = date(2024, 3, 10)


def test_default_range_is_28_days_back():
    assert parse_date_range(today=TODAY) == ("2024-02-11", "2024-03-10")


def test_days_sets_the_start():
    assert parse_date_range(days=7, today=TODAY) == ("2024-03-03", "2024-03-10")


def test_explicit_start_beats_days():
    assert parse_date_range("2024-01-01", None, 7, today=TODAY) == ("2024-01-01", "2024-03-10")


def test_explicit_end_is_kept():
    assert parse_date_range(None, "2024-03-01", 1, today=TODAY) == ("2024-03-09", "2024-03-01")


def test_date_string_validation():
    assert is_valid_date_string("2024-02-29")
    assert not is_valid_date_string("2023-02-29")
    assert not is_valid_date_string("2024-2-1")
