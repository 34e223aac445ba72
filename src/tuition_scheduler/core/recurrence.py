'''
Expansion of a fixed weekly recurrence (weekday + time of day) into concrete dates.

Dates are generated from the first matching weekday on/after the enrollment
start, one week apart. Past dates are skipped, and generation stops once a
date passes either the enrollment end or the rolling booking-window cap.
Anything beyond the cap is materialized later by extending the pattern.
'''
import datetime
from typing import Optional

from dateutil.relativedelta import relativedelta

from ..database.db_enums import Weekday

ONE_WEEK = datetime.timedelta(days=7)


def first_occurrence(weekday: Weekday, start_date: datetime.date) -> datetime.date:
    """The first `weekday` on or after `start_date` (start_date itself if it matches)."""
    days_ahead = (weekday.index - start_date.weekday()) % 7
    return start_date + datetime.timedelta(days=days_ahead)


def resolve_enrollment_end(
    end_date: Optional[datetime.date],
    today: datetime.date,
    horizon_years: int = 1
) -> datetime.date:
    """Open-ended enrollments get a synthetic horizon of `horizon_years` from today."""
    if end_date is not None:
        return end_date
    return today + relativedelta(years=horizon_years)


def booking_window_cap(today: datetime.date, months: int) -> datetime.date:
    """The last date recurring slots are pre-materialized for."""
    return today + relativedelta(months=months)


def expand_pattern_dates(
    weekday: Weekday,
    start_date: datetime.date,
    end_date: datetime.date,
    today: datetime.date,
    window_cap: datetime.date
) -> list[datetime.date]:
    """
    Returns the ordered weekly occurrences of `weekday` between start_date and
    min(end_date, window_cap), excluding dates before today.
    """
    limit = min(end_date, window_cap)
    dates = []
    current = first_occurrence(weekday, start_date)
    while current <= limit:
        if current >= today:
            dates.append(current)
        current += ONE_WEEK
    return dates
