from __future__ import annotations

from decimal import Decimal

from sqlalchemy.orm import Session

from .core.database import SessionLocal
from .models import Category, ReportFrequency, User
from .recurrence import Frequency

DEMO_CATEGORIES = (
    # name, icon, color, frequency, interval, days, fixed amount, budget
    ("Milk", "🥛", "#06B6D4", Frequency.DAILY, 1, [], Decimal("60"), Decimal("2000")),
    ("Maid", "🧹", "#10B981", Frequency.WEEKDAYS, 1, [], Decimal("300"), None),
    ("Gym", "🏋️", "#F43F5E", Frequency.CUSTOM, 1, [1, 3, 5], None, None),
    ("Groceries", "🛒", "#F59E0B", Frequency.WEEKLY, 1, [], None, Decimal("6000")),
    ("Rent", "🏠", "#8B5CF6", Frequency.MONTHLY, 1, [], Decimal("25000"), None),
)


def seed() -> None:
    db: Session = SessionLocal()
    try:
        user = db.query(User).filter_by(email="demo@example.com").first()
        if not user:
            user = User(
                email="demo@example.com",
                external_id="demo",
                display_name="Demo",
                report_frequency=ReportFrequency.MONTHLY,
                report_day=1,
            )
            db.add(user)
            db.flush()

        for position, (name, icon, color, freq, interval, days, fixed, budget) in enumerate(DEMO_CATEGORIES):
            if db.query(Category).filter_by(user_id=user.id, name=name).first():
                continue
            db.add(
                Category(
                    user_id=user.id,
                    name=name,
                    icon=icon,
                    color=color,
                    sort_order=position,
                    frequency=freq,
                    interval_count=interval,
                    specific_days=days,
                    fixed_amount=fixed,
                    budget_limit=budget,
                )
            )

        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed()
