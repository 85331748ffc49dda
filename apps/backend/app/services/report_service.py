from __future__ import annotations

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import NamedTuple

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session, joinedload

from app import models
from app.recurrence import (
    OccurrenceDay,
    RecurrenceRule,
    TransactionDateError,
    YearMonth,
    project_month,
    sunday_first_weekday,
)

UNCATEGORIZED = "Uncategorized"
DEFAULT_COLOR = "#7C3AED"


class CategoryCalendarReport(NamedTuple):
    category: models.Category
    month: YearMonth
    days: list[OccurrenceDay]
    total: Decimal
    errors: list[TransactionDateError]

    @property
    def start_offset(self) -> int:
        return self.month.start_offset


class BreakdownItem(NamedTuple):
    category_id: int | None
    name: str
    color: str
    amount: Decimal
    percentage: float
    budget_limit: Decimal | None


class SpendingBreakdown(NamedTuple):
    start: datetime
    end: datetime
    total: Decimal
    expenses: list[models.Expense]
    items: list[BreakdownItem]

    @property
    def count(self) -> int:
        return len(self.expenses)

    @property
    def highest_category(self) -> str:
        return self.items[0].name if self.items else "None"


def month_bounds(month: YearMonth) -> tuple[datetime, datetime]:
    """[start, end) datetimes covering a calendar month."""
    start = datetime.combine(month.first_day, time.min)
    end = datetime.combine(month.last_day + timedelta(days=1), time.min)
    return start, end


def report_period(user: models.User, now: datetime) -> tuple[datetime, datetime]:
    if user.report_frequency == models.ReportFrequency.WEEKLY:
        return now - timedelta(days=7), now
    return now - relativedelta(months=1), now


class ReportService:
    """Aggregations behind the calendar, the dashboard and the emailed reports."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def expenses_between(
        self,
        user_id: int,
        start: datetime,
        end: datetime,
        *,
        category_id: int | None = None,
        only_email_enabled: bool = False,
        end_inclusive: bool = False,
    ) -> list[models.Expense]:
        q = (
            self.db.query(models.Expense)
            .options(joinedload(models.Expense.category))
            .filter(models.Expense.user_id == user_id, models.Expense.date >= start)
        )
        q = q.filter(models.Expense.date <= end) if end_inclusive else q.filter(models.Expense.date < end)
        if category_id is not None:
            q = q.filter(models.Expense.category_id == category_id)
        if only_email_enabled:
            q = q.join(models.Category, models.Expense.category_id == models.Category.id).filter(
                models.Category.is_email_enabled.is_(True)
            )
        return q.order_by(models.Expense.date.asc(), models.Expense.id.asc()).all()

    def category_calendar(
        self,
        category: models.Category,
        month: YearMonth,
        now: date | datetime,
    ) -> CategoryCalendarReport:
        start, end = month_bounds(month)
        expenses = self.expenses_between(category.user_id, start, end, category_id=category.id)
        errors: list[TransactionDateError] = []
        rule = RecurrenceRule.from_category(category)
        days = project_month(rule, expenses, month, now, errors, tz=models.LOCAL_ZONE)
        total = sum((Decimal(str(e.amount)) for e in expenses), Decimal("0"))
        return CategoryCalendarReport(category=category, month=month, days=days, total=total, errors=errors)

    def breakdown(
        self,
        user_id: int,
        start: datetime,
        end: datetime,
        *,
        only_email_enabled: bool = False,
        end_inclusive: bool = False,
    ) -> SpendingBreakdown:
        expenses = self.expenses_between(
            user_id,
            start,
            end,
            only_email_enabled=only_email_enabled,
            end_inclusive=end_inclusive,
        )
        total = Decimal("0")
        grouped: dict[int | None, dict] = {}
        for e in expenses:
            amount = Decimal(str(e.amount))
            total += amount
            cat = e.category
            bucket = grouped.setdefault(
                e.category_id,
                {
                    "name": cat.name if cat else UNCATEGORIZED,
                    "color": cat.color if cat else DEFAULT_COLOR,
                    "budget_limit": cat.budget_limit if cat else None,
                    "amount": Decimal("0"),
                },
            )
            bucket["amount"] += amount

        items = [
            BreakdownItem(
                category_id=cat_id,
                name=data["name"],
                color=data["color"],
                amount=data["amount"],
                percentage=float(data["amount"] / total * 100) if total > 0 else 0.0,
                budget_limit=data["budget_limit"],
            )
            for cat_id, data in grouped.items()
        ]
        items.sort(key=lambda item: (-item.amount, item.name))
        return SpendingBreakdown(start=start, end=end, total=total, expenses=expenses, items=items)

    def monthly_breakdown(self, user_id: int, month: YearMonth) -> SpendingBreakdown:
        start, end = month_bounds(month)
        return self.breakdown(user_id, start, end)

    def users_due(self, now: datetime) -> list[models.User]:
        """Users whose report day is today (weekly: 0=Sun..6=Sat, monthly: day of month)."""
        return (
            self.db.query(models.User)
            .filter(
                (
                    (models.User.report_frequency == models.ReportFrequency.WEEKLY)
                    & (models.User.report_day == sunday_first_weekday(now))
                )
                | (
                    (models.User.report_frequency == models.ReportFrequency.MONTHLY)
                    & (models.User.report_day == now.day)
                )
            )
            .order_by(models.User.id)
            .all()
        )
