'''
Expands a weekly availability block into bookable candidate windows.
'''
import datetime
from typing import Iterator, NamedTuple, Protocol

from ..common.exceptions import ValidationError
from ..common.time_utils import to_time_string


class MinuteRange(Protocol):
    start_minutes: int
    end_minutes: int


class CandidateWindow(NamedTuple):
    date: datetime.date
    start_time: str
    end_time: str
    start_minutes: int
    end_minutes: int


def expand_block(block: MinuteRange, on_date: datetime.date, duration_minutes: int) -> Iterator[CandidateWindow]:
    """
    Yields back-to-back windows of `duration_minutes` starting at the block's
    own start. A trailing remainder shorter than the duration is dropped, so a
    block of D minutes yields exactly D // duration windows.
    """
    if duration_minutes <= 0:
        raise ValidationError("Invalid duration. Must be a positive number of minutes.",
                              details={"duration_minutes": duration_minutes})

    current = block.start_minutes
    while current + duration_minutes <= block.end_minutes:
        end = current + duration_minutes
        yield CandidateWindow(
            date=on_date,
            start_time=to_time_string(current),
            end_time=to_time_string(end),
            start_minutes=current,
            end_minutes=end
        )
        current = end


def window_fits_block(block: MinuteRange, start_minutes: int, end_minutes: int) -> bool:
    """True if [start, end) lies entirely inside the block."""
    return block.start_minutes <= start_minutes and end_minutes <= block.end_minutes
