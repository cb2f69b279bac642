"""
Calendar lookups: is a date a weekend or a configured holiday.

Holiday storage is owned elsewhere; the leave engine only needs the
CalendarService interface below. DatabaseCalendar reads the holidays table.
"""
from datetime import date
from typing import Dict, Iterable, Optional, Protocol, Set

from sqlalchemy import extract
from sqlalchemy.orm import Session

from app.models.employee import Role
from app.models.holiday import Holiday
from app.utils.roles import role_name


class CalendarService(Protocol):
    def is_non_working_day(self, day: date, role: Optional[str] = None) -> bool:
        ...


def is_weekend(day: date, role: Optional[str] = None) -> bool:
    """Saturday and Sunday are off; interns work Saturdays, so only Sunday is off for them."""
    if role is not None and role_name(role) == Role.INTERN.value:
        return day.weekday() == 6
    return day.weekday() >= 5


class StaticCalendar:
    """Calendar over a fixed holiday set (scripts, tests)."""

    def __init__(self, holidays: Iterable[date] = ()):
        self.holidays: Set[date] = set(holidays)

    def is_holiday(self, day: date) -> bool:
        return day in self.holidays

    def is_non_working_day(self, day: date, role: Optional[str] = None) -> bool:
        return is_weekend(day, role) or self.is_holiday(day)


class DatabaseCalendar:
    """Calendar backed by active rows of the holidays table, cached per year for one request."""

    def __init__(self, db: Session):
        self.db = db
        self._by_year: Dict[int, Set[date]] = {}

    def holidays_in_year(self, year: int) -> Set[date]:
        if year not in self._by_year:
            rows = (
                self.db.query(Holiday.holiday_date)
                .filter(
                    Holiday.is_active == True,  # noqa: E712
                    extract("year", Holiday.holiday_date) == year,
                )
                .all()
            )
            self._by_year[year] = {r[0] for r in rows}
        return self._by_year[year]

    def is_holiday(self, day: date) -> bool:
        return day in self.holidays_in_year(day.year)

    def is_non_working_day(self, day: date, role: Optional[str] = None) -> bool:
        return is_weekend(day, role) or self.is_holiday(day)

