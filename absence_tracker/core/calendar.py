"""Working-day counting and date-range overlap. Dates are tenant-local calendar days."""

from datetime import date, timedelta

SATURDAY = 5
SUNDAY = 6


class InvalidDateRange(ValueError):
    """start is after end."""

    def __init__(self, start: date, end: date) -> None:
        super().__init__(f"start date {start.isoformat()} is after end date {end.isoformat()}")
        self.start = start
        self.end = end


def is_working_day(day: date) -> bool:
    return day.weekday() not in (SATURDAY, SUNDAY)


def working_days(start: date, end: date) -> int:
    """Count days in [start, end] inclusive, excluding Saturday and Sunday."""
    if start > end:
        raise InvalidDateRange(start, end)
    total = (end - start).days + 1
    full_weeks, remainder = divmod(total, 7)
    count = full_weeks * 5
    for offset in range(remainder):
        if is_working_day(start + timedelta(days=full_weeks * 7 + offset)):
            count += 1
    return count


def overlaps(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """True iff the closed intervals [a_start, a_end] and [b_start, b_end] intersect."""
    return a_start <= b_end and a_end >= b_start
