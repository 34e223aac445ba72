import pytest

from tuition_scheduler.common.exceptions import InvalidTimeFormat, ValidationError
from tuition_scheduler.common.time_utils import (
    intervals_overlap,
    to_minutes,
    to_time_string,
    validate_time_range,
)


class TestToMinutes:

    @pytest.mark.parametrize("value, expected", [
        ("00:00", 0),
        ("09:30", 570),
        ("12:00", 720),
        ("23:59", 1439),
    ])
    def test_valid_times(self, value, expected):
        assert to_minutes(value) == expected

    @pytest.mark.parametrize("value", ["9:30", "09:3", "24:00", "12:60", "ab:cd", "", "09:30:00", None])
    def test_invalid_times_raise(self, value):
        with pytest.raises(InvalidTimeFormat):
            to_minutes(value)

    def test_invalid_time_is_a_validation_error(self):
        """Callers that only handle ValidationError still see bad time strings."""
        with pytest.raises(ValidationError):
            to_minutes("25:00")


class TestToTimeString:

    @pytest.mark.parametrize("minutes, expected", [(0, "00:00"), (570, "09:30"), (1439, "23:59")])
    def test_formats_with_zero_padding(self, minutes, expected):
        assert to_time_string(minutes) == expected

    def test_inverse_of_to_minutes(self):
        for minutes in range(0, 24 * 60, 7):
            assert to_minutes(to_time_string(minutes)) == minutes


class TestValidateTimeRange:

    def test_returns_minute_offsets(self):
        assert validate_time_range("10:00", "11:30") == (600, 690)

    @pytest.mark.parametrize("start, end", [("11:00", "10:00"), ("10:00", "10:00")])
    def test_start_not_before_end_raises(self, start, end):
        with pytest.raises(ValidationError) as e:
            validate_time_range(start, end)
        assert "after start time" in e.value.message


class TestIntervalsOverlap:

    @pytest.mark.parametrize("a, b, expected", [
        ((600, 660), (630, 690), True),     # partial
        ((600, 720), (630, 660), True),     # containment
        ((600, 660), (600, 660), True),     # identical
        ((600, 660), (660, 720), False),    # touching
        ((600, 660), (700, 760), False),    # disjoint
    ])
    def test_overlap_is_strict_and_symmetric(self, a, b, expected):
        assert intervals_overlap(*a, *b) is expected
        assert intervals_overlap(*b, *a) is expected
