from __future__ import annotations

import math
import re
from datetime import datetime
import datetime as dt
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    field_validator,
    model_validator,
)

from .models import ReportFrequency
from .recurrence import Frequency, OccurrenceLabel


_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}([0-9A-Fa-f]{2})?$")


def _positive_amount(v: float | None) -> float | None:
    if v is None:
        return v
    if not math.isfinite(v):
        raise ValueError("amount must be finite")
    if v <= 0:
        raise ValueError("amount must be positive")
    return v


def _normalize_days(v: list[int] | None) -> list[int] | None:
    if v is None:
        return v
    for d in v:
        if not (0 <= d <= 6):
            raise ValueError("specific_days must be between 0 (Sun) and 6 (Sat)")
    return sorted(set(v))


# User settings
class UserSettingsOut(BaseModel):
    id: int
    email: EmailStr
    display_name: Optional[str] = None
    report_frequency: ReportFrequency
    report_day: int

    model_config = ConfigDict(from_attributes=True)


class UserSettingsUpdate(BaseModel):
    report_frequency: ReportFrequency
    report_day: int
    display_name: Optional[str] = Field(default=None, max_length=100)

    @model_validator(mode="after")
    def validate_day_for_frequency(self):
        if self.report_frequency == ReportFrequency.WEEKLY and not (0 <= self.report_day <= 6):
            raise ValueError("report_day must be between 0 (Sun) and 6 (Sat) for weekly reports")
        if self.report_frequency == ReportFrequency.MONTHLY and not (1 <= self.report_day <= 31):
            raise ValueError("report_day must be between 1 and 31 for monthly reports")
        return self


# Category Schemas
class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    icon: Optional[str] = Field(default=None, max_length=16)
    color: Optional[str] = None
    frequency: Frequency = Frequency.MONTHLY
    interval_count: int = 1
    specific_days: list[int] = Field(default_factory=list)
    fixed_amount: Optional[float] = None
    budget_limit: Optional[float] = None
    is_email_enabled: bool = True

    @field_validator("name")
    def strip_name(cls, v: str):
        v = v.strip()
        if not v:
            raise ValueError("name must not be empty")
        return v

    @field_validator("color")
    def valid_color(cls, v: str | None):
        if v is not None and not _COLOR_RE.match(v):
            raise ValueError("color must be a hex value like #8B5CF6")
        return v

    @field_validator("interval_count")
    def interval_positive(cls, v: int):
        if v < 1:
            raise ValueError("interval_count must be at least 1")
        return v

    @field_validator("specific_days")
    def days_range(cls, v: list[int]):
        return _normalize_days(v)

    @field_validator("fixed_amount", "budget_limit")
    def amounts_positive(cls, v: float | None):
        return _positive_amount(v)

    @model_validator(mode="after")
    def custom_requires_days(self):
        if self.frequency == Frequency.CUSTOM and not self.specific_days:
            raise ValueError("CUSTOM frequency requires at least one specific day")
        if self.frequency != Frequency.CUSTOM:
            self.specific_days = []
        return self


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    icon: Optional[str] = Field(default=None, max_length=16)
    color: Optional[str] = None
    frequency: Optional[Frequency] = None
    interval_count: Optional[int] = None
    specific_days: Optional[list[int]] = None
    fixed_amount: Optional[float] = None
    budget_limit: Optional[float] = None
    is_email_enabled: Optional[bool] = None

    @field_validator("name")
    def strip_name(cls, v: str | None):
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("name must not be empty")
        return v

    @field_validator("color")
    def valid_color(cls, v: str | None):
        if v is not None and not _COLOR_RE.match(v):
            raise ValueError("color must be a hex value like #8B5CF6")
        return v

    @field_validator("interval_count")
    def interval_positive(cls, v: int | None):
        if v is not None and v < 1:
            raise ValueError("interval_count must be at least 1")
        return v

    @field_validator("specific_days")
    def days_range(cls, v: list[int] | None):
        return _normalize_days(v)

    @field_validator("fixed_amount", "budget_limit")
    def amounts_positive(cls, v: float | None):
        return _positive_amount(v)


class CategoryOut(BaseModel):
    id: int
    user_id: int
    name: str
    icon: Optional[str]
    color: str
    sort_order: int
    frequency: Frequency
    interval_count: int
    specific_days: list[int]
    fixed_amount: Optional[float]
    budget_limit: Optional[float]
    is_email_enabled: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CategoryReorderRequest(BaseModel):
    ids: list[int] = Field(..., min_length=1)

    @field_validator("ids")
    def unique_ids(cls, v: list[int]):
        if len(set(v)) != len(v):
            raise ValueError("ids must not contain duplicates")
        return v


# Expense Schemas
class ExpenseCreate(BaseModel):
    category_id: Optional[int] = None
    amount: float
    description: Optional[str] = Field(default=None, max_length=500)
    date: Optional[dt.datetime] = None

    @field_validator("amount")
    def amount_positive(cls, v: float):
        return _positive_amount(v)


class ExpenseUpdate(BaseModel):
    category_id: Optional[int] = None
    amount: Optional[float] = None
    description: Optional[str] = Field(default=None, max_length=500)
    date: Optional[dt.datetime] = None

    @field_validator("amount")
    def amount_positive(cls, v: float | None):
        return _positive_amount(v)


class ExpenseOut(BaseModel):
    id: int
    user_id: int
    category_id: Optional[int]
    amount: float
    description: Optional[str]
    date: dt.datetime
    is_auto_generated: bool

    model_config = ConfigDict(from_attributes=True)


class ExpenseToggleRequest(BaseModel):
    date: dt.date
    amount: Optional[float] = None

    @field_validator("amount")
    def amount_positive(cls, v: float | None):
        return _positive_amount(v)


class ExpenseToggleResult(BaseModel):
    category_id: int
    date: dt.date
    recorded: bool
    removed: int = 0
    expense: Optional[ExpenseOut] = None


# Calendar / occurrence schemas
class OccurrenceDayOut(BaseModel):
    day: int
    date: dt.date
    expected: bool
    recorded: bool
    is_future: bool
    label: OccurrenceLabel


class OccurrenceErrorOut(BaseModel):
    expense_id: Optional[int] = None
    value: Optional[str] = None
    reason: str


class CategoryCalendarOut(BaseModel):
    category_id: int
    category_name: str
    month: str
    start_offset: int
    fixed_amount: Optional[float]
    total: float
    days: list[OccurrenceDayOut]
    errors: list[OccurrenceErrorOut] = Field(default_factory=list)


# Dashboard
class CategorySpendItem(BaseModel):
    category_id: Optional[int]
    name: str
    color: Optional[str] = None
    spent: float
    percentage: float
    budget_limit: Optional[float] = None
    budget_used_pct: Optional[float] = None
    over_budget: bool = False


class DashboardSummaryOut(BaseModel):
    month: str
    total: float
    count: int
    highest_category: str
    categories: list[CategorySpendItem]


# Reports
class CategoryReportRequest(BaseModel):
    category_id: int
    month: str = Field(..., pattern=r"^\d{4}-\d{2}$")


class MonthlyReportRequest(BaseModel):
    month: str = Field(..., pattern=r"^\d{4}-\d{2}$")


class ReportSendResult(BaseModel):
    success: bool
    sent_to: str


class CronReportResult(BaseModel):
    success: bool
    sent_to: list[str]
    failed: list[str] = Field(default_factory=list)

