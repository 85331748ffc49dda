"""Recurrence rules and per-day occurrence classification.

A category's recurrence rule predicts on which calendar days an expense is
expected. ``project_month`` merges those predictions with the recorded
expenses of a month and classifies every day as ORDERED, SKIPPED, PLANNED or
NONE. Both the interactive calendar and the emailed reports go through this
module; nothing here touches the database or the system clock.
"""

from __future__ import annotations

import calendar
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, NamedTuple

from dateutil.parser import isoparse
from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)


class Frequency(str, Enum):
    DAILY = "DAILY"
    WEEKDAYS = "WEEKDAYS"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    CUSTOM = "CUSTOM"


class OccurrenceLabel(str, Enum):
    ORDERED = "ORDERED"
    SKIPPED = "SKIPPED"
    PLANNED = "PLANNED"
    NONE = "NONE"


class RecurrenceRuleError(ValueError):
    """Raised when a recurrence rule cannot be built or evaluated."""


WEEKDAY_INDICES = frozenset(range(7))  # 0=Sun .. 6=Sat


def sunday_first_weekday(value: date) -> int:
    """Weekday index with Sunday as 0 and Saturday as 6."""
    return value.isoweekday() % 7


def as_calendar_day(value: date | datetime, tz: tzinfo | None = None) -> date:
    """Drop the time component; aware datetimes are moved into ``tz`` first."""
    if isinstance(value, datetime):
        if tz is not None and value.tzinfo is not None:
            value = value.astimezone(tz)
        return value.date()
    return value


def weeks_between(later: date, earlier: date) -> int:
    """Signed number of ISO week boundaries between two days."""
    later_monday = later - timedelta(days=later.weekday())
    earlier_monday = earlier - timedelta(days=earlier.weekday())
    return (later_monday - earlier_monday).days // 7


def months_between(later: date, earlier: date) -> int:
    """Signed number of whole calendar months elapsed between two days."""
    delta = relativedelta(later, earlier)
    return delta.years * 12 + delta.months


@dataclass(frozen=True)
class RecurrenceRule:
    frequency: Frequency
    anchor_date: date
    interval_count: int = 1
    specific_days: frozenset[int] = field(default_factory=frozenset)
    fixed_amount: Decimal | None = None

    def __post_init__(self) -> None:
        try:
            frequency = Frequency(self.frequency)
        except ValueError:
            raise RecurrenceRuleError(f"Unknown frequency: {self.frequency!r}") from None
        object.__setattr__(self, "frequency", frequency)

        if self.anchor_date is None:
            raise RecurrenceRuleError("anchor_date is required")
        if not isinstance(self.anchor_date, date):
            raise RecurrenceRuleError("anchor_date must be a date")
        object.__setattr__(self, "anchor_date", as_calendar_day(self.anchor_date))

        if isinstance(self.interval_count, bool) or not isinstance(self.interval_count, int):
            raise RecurrenceRuleError("interval_count must be an integer")
        if self.interval_count < 1:
            raise RecurrenceRuleError("interval_count must be at least 1")

        days = frozenset(self.specific_days or ())
        invalid = sorted(d for d in days if d not in WEEKDAY_INDICES)
        if invalid:
            raise RecurrenceRuleError(f"specific_days must be between 0 (Sun) and 6 (Sat), got {invalid}")
        if frequency == Frequency.CUSTOM and not days:
            raise RecurrenceRuleError("CUSTOM frequency requires at least one specific day")
        object.__setattr__(self, "specific_days", days)

        if self.fixed_amount is not None:
            try:
                amount = Decimal(str(self.fixed_amount))
            except InvalidOperation:
                raise RecurrenceRuleError(f"fixed_amount is not a number: {self.fixed_amount!r}") from None
            object.__setattr__(self, "fixed_amount", amount)

    @property
    def effective_interval(self) -> int:
        if self.frequency in (Frequency.DAILY, Frequency.WEEKDAYS):
            return 1
        return self.interval_count

    @classmethod
    def from_category(cls, category: Any) -> "RecurrenceRule":
        """Build a rule from a persisted category (its creation time is the anchor)."""
        return cls(
            frequency=category.frequency,
            anchor_date=category.created_at,
            interval_count=category.interval_count if category.interval_count is not None else 1,
            specific_days=frozenset(category.specific_days or ()),
            fixed_amount=category.fixed_amount,
        )


def is_expected_occurrence(rule: RecurrenceRule, candidate: date | datetime) -> bool:
    day = as_calendar_day(candidate)
    anchor = rule.anchor_date
    interval = rule.effective_interval

    if rule.frequency == Frequency.DAILY:
        return True

    if rule.frequency == Frequency.WEEKDAYS:
        return 1 <= sunday_first_weekday(day) <= 5

    if rule.frequency == Frequency.WEEKLY:
        # abs(): days before the anchor line up too (kept as observed behaviour)
        weeks_diff = abs(weeks_between(day, anchor))
        return day.weekday() == anchor.weekday() and weeks_diff % interval == 0

    if rule.frequency == Frequency.MONTHLY:
        months_diff = abs(months_between(day, anchor))
        return day.day == anchor.day and months_diff % interval == 0

    if rule.frequency == Frequency.CUSTOM:
        months_diff = abs(months_between(day, anchor))
        return sunday_first_weekday(day) in rule.specific_days and months_diff % interval == 0

    raise RecurrenceRuleError(f"Unsupported frequency: {rule.frequency!r}")


class YearMonth(NamedTuple):
    year: int
    month: int

    @classmethod
    def parse(cls, value: str) -> "YearMonth":
        """Parse ``YYYY-MM``."""
        try:
            year_part, month_part = value.strip().split("-")
            result = cls(int(year_part), int(month_part))
        except (AttributeError, ValueError):
            raise ValueError(f"month must look like YYYY-MM, got {value!r}") from None
        result.validate()
        return result

    @classmethod
    def of(cls, value: date) -> "YearMonth":
        return cls(value.year, value.month)

    def validate(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"month out of range: {self.month}")
        if not 1 <= self.year <= 9999:
            raise ValueError(f"year out of range: {self.year}")

    @property
    def days_in_month(self) -> int:
        return calendar.monthrange(self.year, self.month)[1]

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def last_day(self) -> date:
        return date(self.year, self.month, self.days_in_month)

    @property
    def start_offset(self) -> int:
        """Blank cells before day 1 in a Sunday-first calendar grid."""
        return sunday_first_weekday(self.first_day)

    def days(self) -> list[date]:
        return [date(self.year, self.month, d) for d in range(1, self.days_in_month + 1)]

    def shift(self, months: int) -> "YearMonth":
        moved = self.first_day + relativedelta(months=months)
        return YearMonth(moved.year, moved.month)

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


class OccurrenceDay(NamedTuple):
    day: date
    expected: bool
    recorded: bool
    is_future: bool

    @property
    def label(self) -> OccurrenceLabel:
        if self.recorded:
            return OccurrenceLabel.ORDERED
        if self.expected and not self.is_future:
            return OccurrenceLabel.SKIPPED
        if self.expected:
            return OccurrenceLabel.PLANNED
        return OccurrenceLabel.NONE


class TransactionDateError(NamedTuple):
    transaction: Any
    value: Any
    reason: str


def _raw_transaction_date(transaction: Any) -> Any:
    if isinstance(transaction, Mapping):
        return transaction.get("date")
    if isinstance(transaction, (date, datetime, str)):
        return transaction
    return getattr(transaction, "date", None)


def _coerce_transaction_day(value: Any, tz: tzinfo | None) -> date:
    if isinstance(value, (date, datetime)):
        return as_calendar_day(value, tz)
    if isinstance(value, str) and value.strip():
        return as_calendar_day(isoparse(value.strip()), tz)
    raise ValueError(f"unsupported date value {value!r}")


def recorded_days(
    transactions: Iterable[Any],
    *,
    tz: tzinfo | None = None,
    errors: list[TransactionDateError] | None = None,
) -> set[date]:
    """Calendar days that carry at least one transaction.

    Transactions whose date cannot be read are left out and reported through
    ``errors`` when a list is supplied.
    """
    found: set[date] = set()
    for txn in transactions:
        raw = _raw_transaction_date(txn)
        try:
            found.add(_coerce_transaction_day(raw, tz))
        except (ValueError, OverflowError) as exc:
            logger.warning("Skipping transaction with unreadable date %r: %s", raw, exc)
            if errors is not None:
                errors.append(TransactionDateError(txn, raw, str(exc)))
    return found


def project_month(
    rule: RecurrenceRule,
    transactions: Iterable[Any],
    month: YearMonth,
    now: date | datetime,
    errors: list[TransactionDateError] | None = None,
    *,
    tz: tzinfo | None = None,
) -> list[OccurrenceDay]:
    """Classify every day of ``month`` against ``rule`` and the recorded transactions."""
    today = as_calendar_day(now, tz)
    recorded = recorded_days(transactions, tz=tz, errors=errors)
    return [
        OccurrenceDay(
            day=day,
            expected=is_expected_occurrence(rule, day),
            recorded=day in recorded,
            is_future=day > today,
        )
        for day in month.days()
    ]
