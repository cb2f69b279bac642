"""
Day expansion: turn a requested date range into the individual working days it covers
"""
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Iterator, List, Optional

from app.core.exceptions import InvalidRangeError
from app.models.leave import DayType
from app.services.calendar_service import CalendarService

DAY_WEIGHTS = {
    DayType.FULL: Decimal("1"),
    DayType.FIRST_HALF: Decimal("0.5"),
    DayType.SECOND_HALF: Decimal("0.5"),
}


@dataclass(frozen=True)
class DayDraft:
    leave_date: date
    day_type: DayType

    @property
    def weight(self) -> Decimal:
        return day_weight(self.day_type)

    @property
    def is_half(self) -> bool:
        return self.day_type != DayType.FULL


def day_weight(day_type: DayType) -> Decimal:
    return DAY_WEIGHTS[DayType(day_type)]


def total_days(drafts: Iterable[DayDraft]) -> Decimal:
    """Sum of day weights (half day = 0.5)."""
    return sum((d.weight for d in drafts), Decimal("0"))


def _date_range(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def expand_days(
    start_date: date,
    start_day_type: DayType,
    end_date: date,
    end_day_type: DayType,
    calendar: CalendarService,
    role: Optional[str] = None,
) -> List[DayDraft]:
    """
    Expand [start_date, end_date] into chronologically ordered working-day drafts.

    Weekends and holidays (per calendar and role) are skipped. A single-date range
    uses start_day_type. Otherwise the first working day gets start_day_type, the
    last working day gets end_day_type and every day in between is a full day.
    If only one working day survives a multi-date range it keeps start_day_type.

    Raises:
        InvalidRangeError: end_date before start_date, or no working day in range
    """
    if end_date < start_date:
        raise InvalidRangeError(
            "end_date cannot be before start_date",
            start_date=start_date,
            end_date=end_date,
        )

    working = [d for d in _date_range(start_date, end_date) if not calendar.is_non_working_day(d, role)]
    if not working:
        raise InvalidRangeError(
            "Selected range contains no working days",
            start_date=start_date,
            end_date=end_date,
        )

    start_day_type = DayType(start_day_type)
    end_day_type = DayType(end_day_type)

    if len(working) == 1:
        return [DayDraft(working[0], start_day_type)]

    drafts = [DayDraft(working[0], start_day_type)]
    drafts.extend(DayDraft(d, DayType.FULL) for d in working[1:-1])
    drafts.append(DayDraft(working[-1], end_day_type))
    return drafts
