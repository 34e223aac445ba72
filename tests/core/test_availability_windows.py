import datetime
import pytest

from tuition_scheduler.common.exceptions import ValidationError
from tuition_scheduler.core.availability import CandidateWindow, expand_block, window_fits_block
from tests.database.factories import WeeklyBlockFactory

MONDAY = datetime.date(2024, 1, 1)


class TestExpandBlock:

    def test_back_to_back_windows_from_block_start(self):
        block = WeeklyBlockFactory.build(start_time="09:00", end_time="12:00")
        windows = list(expand_block(block, MONDAY, 60))

        print(f"\n--- Expanded windows: {windows} ---")
        assert [(w.start_time, w.end_time) for w in windows] == [
            ("09:00", "10:00"), ("10:00", "11:00"), ("11:00", "12:00")
        ]
        assert all(w.date == MONDAY for w in windows)
        assert windows[0] == CandidateWindow(MONDAY, "09:00", "10:00", 540, 600)

    def test_trailing_remainder_is_dropped(self):
        block = WeeklyBlockFactory.build(start_time="09:00", end_time="10:40")
        windows = list(expand_block(block, MONDAY, 45))
        assert [(w.start_time, w.end_time) for w in windows] == [("09:00", "09:45"), ("09:45", "10:30")]

    @pytest.mark.parametrize("start, end, duration", [
        ("09:00", "12:00", 60),
        ("09:00", "12:00", 45),
        ("08:15", "17:50", 30),
        ("14:00", "14:20", 30),
    ])
    def test_window_count_is_floor_of_block_over_duration(self, start, end, duration):
        block = WeeklyBlockFactory.build(start_time=start, end_time=end)
        windows = list(expand_block(block, MONDAY, duration))
        assert len(windows) == (block.end_minutes - block.start_minutes) // duration
        for window in windows:
            assert window.end_minutes - window.start_minutes == duration
            assert block.start_minutes <= window.start_minutes
            assert window.end_minutes <= block.end_minutes

    def test_expansion_is_lazy(self):
        block = WeeklyBlockFactory.build(start_time="00:00", end_time="23:59")
        windows = expand_block(block, MONDAY, 1)
        assert next(windows).start_time == "00:00"

    @pytest.mark.parametrize("duration", [0, -30])
    def test_non_positive_duration_raises(self, duration):
        block = WeeklyBlockFactory.build()
        with pytest.raises(ValidationError):
            list(expand_block(block, MONDAY, duration))


class TestWindowFitsBlock:

    def test_inside_and_edges(self):
        block = WeeklyBlockFactory.build(start_time="09:00", end_time="12:00")
        assert window_fits_block(block, 540, 600)
        assert window_fits_block(block, 660, 720)
        assert not window_fits_block(block, 510, 570)
        assert not window_fits_block(block, 690, 750)
