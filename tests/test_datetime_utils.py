from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path
import sys

sys.path.append(str(Path(__file__).resolve().parents[1]))

from helpers.datetime_utils import (
    combine_end,
    parse_date_input,
    parse_time_input,
    snap_minutes,
)
from utils.datetime_utils import day_bounds, minutes_between, month_window, to_local_naive


def test_parse_date_input_iso_and_dotted():
    assert parse_date_input("2023-12-01").isoformat() == "2023-12-01"
    assert parse_date_input("01.12.2023").isoformat() == "2023-12-01"
    assert parse_date_input("  ") is None
    assert parse_date_input("12/01/2023") is None


def test_parse_time_input_relative_now():
    before = datetime.now()
    result = parse_time_input("now+30")
    assert result is not None
    minutes_expected = ((before + timedelta(minutes=30)).hour * 60 + (before + timedelta(minutes=30)).minute) % (24 * 60)
    minutes_actual = result.hour * 60 + result.minute
    # allow a 1-minute drift due to processing time
    assert abs(minutes_actual - minutes_expected) <= 1 or abs(minutes_actual - minutes_expected + 24 * 60) <= 1


def test_parse_time_input_formats():
    assert parse_time_input("09:30") == time(9, 30)
    assert parse_time_input("9.05") == time(9, 5)
    assert parse_time_input("930") == time(9, 30)
    assert parse_time_input("now", allow_relative=False) is None
    assert parse_time_input("25:00") is None


def test_combine_end_maps_24_to_next_midnight():
    day = date(2024, 3, 11)
    assert combine_end(day, time(22, 0), "24:00") == datetime(2024, 3, 12)
    assert combine_end(day, time(22, 0), "00:00") == datetime(2024, 3, 12)
    assert combine_end(day, time(9, 0), "10:15") == datetime(2024, 3, 11, 10, 15)
    assert combine_end(day, time(9, 0), "later") is None


def test_snap_minutes_rounding():
    assert snap_minutes(17, step=15, direction="nearest") == 15
    assert snap_minutes(8, step=15, direction="forward") == 15
    assert snap_minutes(22, step=15, direction="backward") == 15


def test_snap_minutes_nearest_rounds_halves_up():
    assert snap_minutes(7.5, step=15, direction="nearest") == 15
    assert snap_minutes(7, step=15, direction="nearest") == 0
    assert snap_minutes(-7.5, step=15, direction="nearest") == 0
    assert snap_minutes(-8, step=15, direction="nearest") == -15


def test_to_local_naive_converts_aware_values():
    aware = datetime(2024, 3, 11, 23, 30, tzinfo=timezone.utc)
    assert to_local_naive(aware, "Europe/Berlin") == datetime(2024, 3, 12, 0, 30)
    naive = datetime(2024, 3, 11, 9, 0)
    assert to_local_naive(naive, "Europe/Berlin") is naive
    assert to_local_naive(None) is None


def test_day_bounds_and_minutes():
    start, end = day_bounds(date(2024, 3, 11))
    assert start == datetime(2024, 3, 11)
    assert end == datetime(2024, 3, 12)
    assert minutes_between(start, end) == 24 * 60


def test_month_window_crosses_year():
    assert month_window(date(2024, 1, 15), back=1, forward=2) == (date(2023, 12, 1), date(2024, 3, 31))
