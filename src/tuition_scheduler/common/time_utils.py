'''
Time-of-day arithmetic shared by every component that reasons about intervals.
Times are "HH:MM" strings on the wire and minute offsets from midnight internally.
'''
import re

from .exceptions import InvalidTimeFormat, ValidationError

_TIME_PATTERN = re.compile(r"^\d{2}:\d{2}$")


def to_minutes(time_string: str) -> int:
    """
    Converts an "HH:MM" string into minutes since midnight.
    Raises InvalidTimeFormat for anything that is not a valid 24h clock time.
    """
    if not isinstance(time_string, str) or not _TIME_PATTERN.match(time_string):
        raise InvalidTimeFormat(f"Invalid time string format: {time_string}. Expected HH:MM.")

    hours, minutes = (int(part) for part in time_string.split(":"))
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise InvalidTimeFormat(f"Invalid time value: {time_string}.")
    return hours * 60 + minutes


def to_time_string(minutes: int) -> str:
    """Inverse of to_minutes for non-negative offsets."""
    hours, mins = divmod(minutes, 60)
    return f"{hours:02d}:{mins:02d}"


def validate_time_range(start_time: str, end_time: str) -> tuple[int, int]:
    """Returns (start_minutes, end_minutes), requiring start < end."""
    start_minutes = to_minutes(start_time)
    end_minutes = to_minutes(end_time)
    if start_minutes >= end_minutes:
        raise ValidationError(
            "Slot end time must be after start time.",
            details={"start_time": start_time, "end_time": end_time}
        )
    return start_minutes, end_minutes


def intervals_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Strict half-open overlap; touching intervals do not overlap."""
    return a_start < b_end and b_start < a_end
