from datetime import date

import pytest

from conftest import DAY, at
from core.errors import InvalidTimeRangeError, MidnightCrossingError, ValidationError
from services.validation import derive_timing, validate_segment_times


def test_missing_times_name_the_field():
    with pytest.raises(ValidationError) as info:
        validate_segment_times(None, at(10))
    assert (info.value.field, info.value.code) == ("start_time", "required")
    with pytest.raises(ValidationError) as info:
        validate_segment_times(at(9), None)
    assert info.value.field == "end_time"


def test_range_and_midnight_rules():
    with pytest.raises(InvalidTimeRangeError):
        validate_segment_times(at(10), at(10))
    with pytest.raises(MidnightCrossingError):
        validate_segment_times(at(23), at(0, 30, day=date(2024, 3, 12)))
    assert validate_segment_times(at(23), at(0, day=date(2024, 3, 12)))[1] == at(0, day=date(2024, 3, 12))


def test_short_segments_are_not_rejected():
    start, end = validate_segment_times(at(9), at(9, 1))
    assert derive_timing(start, end) == (DAY, 1)
