"""Timesheet, budget and performance summaries for the current month."""

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models import Budget, Timesheet
from app.services.plan_calendar import month_bounds

RECENT_TIMESHEET_LIMIT = 10
PERFORMANCE_TIMESHEET_LIMIT = 5


@dataclass
class TimesheetTotals:
    name: str
    start_date: date
    hours: float
    hourly_rate: float


@dataclass
class BudgetTotals:
    name: str
    amount: float
    spent: float


def format_timesheet_summary(timesheets: list[TimesheetTotals], month_start: date) -> str | None:
    """Summary of the month's timesheets; `timesheets` is newest first."""
    if not timesheets:
        return None

    total_hours = sum(t.hours for t in timesheets)
    earnings = sum(t.hours * (t.hourly_rate or 0) for t in timesheets)
    return (
        f"Recent Timesheets ({month_start:%B %Y}):\n"
        f"- Total timesheets: {len(timesheets)}\n"
        f"- Total hours logged: {total_hours:.1f} hours\n"
        f"- Estimated earnings: ${earnings:.2f}\n"
        f'- Latest timesheet: "{timesheets[0].name or "N/A"}"'
    )


def format_budget_summary(budgets: list[BudgetTotals], month_start: date) -> str | None:
    if not budgets:
        return None

    total = sum(b.amount for b in budgets)
    spent = sum(b.spent for b in budgets)
    used = (spent / total) * 100 if total > 0 else 0.0
    return (
        f"Budget Status ({month_start:%B %Y}):\n"
        f"- Active budgets: {len(budgets)}\n"
        f"- Total budget: ${total:.2f}\n"
        f"- Total spent: ${spent:.2f}\n"
        f"- Remaining: ${total - spent:.2f}\n"
        f"- Usage: {used:.1f}%"
    )


def format_performance_summary(timesheets: list[TimesheetTotals]) -> str | None:
    if not timesheets:
        return None

    average = sum(t.hours for t in timesheets) / len(timesheets)
    latest = timesheets[0].start_date
    return (
        "Performance Summary:\n"
        f"- Recent timesheets: {len(timesheets)}\n"
        f"- Average hours per week: {average:.1f} hours\n"
        f"- Latest activity: {latest:%b} {latest.day}, {latest.year}"
    )


def _timesheet_scope(user_id: UUID, organization_id: UUID | None):
    if organization_id:
        return Timesheet.organization_id == organization_id
    return Timesheet.user_id == user_id


def _totals(timesheet: Timesheet) -> TimesheetTotals:
    return TimesheetTotals(
        name=timesheet.name,
        start_date=timesheet.start_date,
        hours=sum(entry.hours for entry in timesheet.entries),
        hourly_rate=timesheet.hourly_rate or 0.0,
    )


async def fetch_timesheet_summary(
    session: AsyncSession,
    user_id: UUID,
    organization_id: UUID | None,
    today: date | None = None,
) -> str | None:
    first, last = month_bounds(today or date.today())
    result = await session.execute(
        select(Timesheet)
        .options(selectinload(Timesheet.entries))
        .where(
            _timesheet_scope(user_id, organization_id),
            Timesheet.start_date >= first,
            Timesheet.start_date <= last,
        )
        .order_by(Timesheet.start_date.desc())
        .limit(RECENT_TIMESHEET_LIMIT)
    )
    return format_timesheet_summary([_totals(t) for t in result.scalars().all()], first)


async def fetch_budget_summary(
    session: AsyncSession,
    user_id: UUID,
    organization_id: UUID | None,
    today: date | None = None,
) -> str | None:
    first, last = month_bounds(today or date.today())
    scope = (
        Budget.organization_id == organization_id if organization_id else Budget.user_id == user_id
    )
    result = await session.execute(
        select(Budget)
        .options(selectinload(Budget.expenses))
        .where(
            scope,
            Budget.start_date <= last,
            or_(Budget.end_date.is_(None), Budget.end_date >= first),
        )
    )
    budgets = [
        BudgetTotals(
            name=b.name,
            amount=float(b.amount),
            spent=sum(float(e.amount) for e in b.expenses),
        )
        for b in result.scalars().all()
    ]
    return format_budget_summary(budgets, first)


async def fetch_performance_summary(
    session: AsyncSession,
    user_id: UUID,
    organization_id: UUID | None,
    today: date | None = None,
) -> str | None:
    first, _ = month_bounds(today or date.today())
    result = await session.execute(
        select(Timesheet)
        .options(selectinload(Timesheet.entries))
        .where(_timesheet_scope(user_id, organization_id), Timesheet.start_date >= first)
        .order_by(Timesheet.start_date.desc())
        .limit(PERFORMANCE_TIMESHEET_LIMIT)
    )
    return format_performance_summary([_totals(t) for t in result.scalars().all()])
