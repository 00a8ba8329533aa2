"""Mapping between calendar dates and plan addresses."""

import calendar
from dataclasses import dataclass
from datetime import date

DAYS_PER_YEAR = 365.25


@dataclass(frozen=True)
class PlanAddress:
    year: int
    month: int
    week: int


def week_of_month(day: date) -> int:
    """Week number within the month, with weeks starting on Monday."""
    first = day.replace(day=1)
    # Days of the first partial week before the first Monday count as week 1
    offset = first.weekday()
    return max(1, (day.day + offset - 1) // 7 + 1)


def map_calendar_to_plan(day: date, plan_start: date, plan_years: int | None = None) -> PlanAddress:
    """
    Map a calendar date onto the plan's (year, month, week) address.

    The plan year counts 365.25-day periods from the plan start, starting at 1
    and capped at `plan_years`. Month is the calendar month.
    """
    elapsed = (day - plan_start).days
    plan_year = max(1, int(elapsed // DAYS_PER_YEAR) + 1)
    if plan_years:
        plan_year = min(plan_year, plan_years)
    return PlanAddress(year=plan_year, month=day.month, week=week_of_month(day))


def month_name(month: int) -> str:
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be between 1 and 12, got {month}")
    return calendar.month_name[month]


def month_bounds(day: date) -> tuple[date, date]:
    """First and last day of the calendar month containing `day`."""
    first = day.replace(day=1)
    last = first.replace(day=calendar.monthrange(day.year, day.month)[1])
    return first, last
