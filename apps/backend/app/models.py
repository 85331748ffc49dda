from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from zoneinfo import ZoneInfo
from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .core.config import settings
from .core.database import Base
from .recurrence import Frequency


try:
    LOCAL_ZONE = ZoneInfo(getattr(settings, "TIMEZONE", "Asia/Kolkata"))
except Exception:
    LOCAL_ZONE = ZoneInfo("Asia/Kolkata")


def now_local_naive() -> datetime:
    """Return naive datetime normalized to configured local timezone."""
    return datetime.now(LOCAL_ZONE).replace(tzinfo=None)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, onupdate=now_local_naive, nullable=False)


class ReportFrequency(str, Enum):
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class User(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # id issued by the hosted identity provider
    external_id: Mapped[str | None] = mapped_column(String(128), unique=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(100))
    report_frequency: Mapped[ReportFrequency] = mapped_column(
        SAEnum(ReportFrequency, name="report_frequency"),
        nullable=False,
        default=ReportFrequency.MONTHLY,
    )
    report_day: Mapped[int] = mapped_column(Integer, nullable=False, default=1)  # WEEKLY: 0=Sun..6=Sat, MONTHLY: 1~31

    categories: Mapped[list["Category"]] = relationship(back_populates="user", cascade="all, delete-orphan")

    @property
    def greeting_name(self) -> str:
        return self.display_name or self.email.split("@")[0]


class Category(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    icon: Mapped[str | None] = mapped_column(String(16))
    color: Mapped[str] = mapped_column(String(9), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    frequency: Mapped[Frequency] = mapped_column(
        SAEnum(Frequency, name="category_frequency"),
        nullable=False,
        default=Frequency.MONTHLY,
    )
    interval_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    specific_days: Mapped[list[int]] = mapped_column(JSON, default=list, nullable=False)  # 0=Sun..6=Sat, CUSTOM only
    fixed_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2))
    budget_limit: Mapped[Decimal | None] = mapped_column(Numeric(18, 2))
    is_email_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    user: Mapped[User] = relationship(back_populates="categories")
    expenses: Mapped[list["Expense"]] = relationship(
        back_populates="category",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_category_user_name"),
        CheckConstraint("interval_count >= 1", name="ck_category_interval_positive"),
        Index("ix_category_user_sort", "user_id", "sort_order"),
    )


class Expense(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    category_id: Mapped[int | None] = mapped_column(ForeignKey("category.id", ondelete="CASCADE"))
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    # stored with a time component; matching against the calendar is by day
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=now_local_naive)
    is_auto_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    category: Mapped["Category | None"] = relationship(back_populates="expenses")

    __table_args__ = (
        Index("ix_expense_user_date", "user_id", "date"),
        Index("ix_expense_category_date", "category_id", "date"),
    )
