from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from .core.database import get_db
from .core.deps import get_current_user, get_now
from . import models
from .recurrence import RecurrenceRule, RecurrenceRuleError, YearMonth
from .schemas import (
    CategoryCalendarOut,
    CategoryCreate,
    CategoryOut,
    CategoryReorderRequest,
    CategorySpendItem,
    CategoryUpdate,
    DashboardSummaryOut,
    ExpenseCreate,
    ExpenseOut,
    ExpenseToggleRequest,
    ExpenseToggleResult,
    ExpenseUpdate,
    OccurrenceDayOut,
    OccurrenceErrorOut,
    UserSettingsOut,
    UserSettingsUpdate,
)
from .services import ReportService
from .utils import normalize_category_name, pick_palette_color

logger = logging.getLogger(__name__)

router = APIRouter()

CATEGORY_PALETTE = (
    "#8B5CF6",
    "#06B6D4",
    "#10B981",
    "#F43F5E",
    "#F59E0B",
    "#EC4899",
    "#3B82F6",
    "#6366F1",
)


def _to_decimal(value: float | None) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))


def _to_local_naive(value: datetime) -> datetime:
    """Stored datetimes are naive local time; aware input is converted first."""
    if value.tzinfo is not None:
        value = value.astimezone(models.LOCAL_ZONE)
    return value.replace(tzinfo=None)


def parse_month_param(value: str | None, *, default: date | None = None) -> YearMonth:
    if value is None:
        if default is None:
            raise HTTPException(status_code=400, detail="month is required")
        return YearMonth.of(default)
    try:
        return YearMonth.parse(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def get_owned_category(db: Session, user: models.User, category_id: int) -> models.Category:
    cat = (
        db.query(models.Category)
        .filter(models.Category.id == category_id, models.Category.user_id == user.id)
        .first()
    )
    if not cat:
        raise HTTPException(status_code=404, detail="Category not found")
    return cat


def _get_owned_expense(db: Session, user: models.User, expense_id: int) -> models.Expense:
    item = (
        db.query(models.Expense)
        .filter(models.Expense.id == expense_id, models.Expense.user_id == user.id)
        .first()
    )
    if not item:
        raise HTTPException(status_code=404, detail="Expense not found")
    return item


def _ensure_unique_name(db: Session, user: models.User, name: str, *, exclude_id: int | None = None) -> None:
    wanted = normalize_category_name(name)
    q = db.query(models.Category).filter(models.Category.user_id == user.id)
    if exclude_id is not None:
        q = q.filter(models.Category.id != exclude_id)
    for other in q.all():
        if normalize_category_name(other.name) == wanted:
            raise HTTPException(status_code=409, detail="Category with same name already exists")


def _validate_rule(frequency, interval_count: int, specific_days, anchor: datetime) -> None:
    try:
        RecurrenceRule(
            frequency=frequency,
            anchor_date=anchor,
            interval_count=interval_count,
            specific_days=frozenset(specific_days or ()),
        )
    except RecurrenceRuleError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


# --- categories -----------------------------------------------------------------


@router.get("/categories", response_model=list[CategoryOut])
def list_categories(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    return (
        db.query(models.Category)
        .filter(models.Category.user_id == current_user.id)
        .order_by(models.Category.sort_order.asc(), models.Category.created_at.desc(), models.Category.id.desc())
        .all()
    )


@router.post("/categories", response_model=CategoryOut, status_code=201)
def create_category(
    payload: CategoryCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    _ensure_unique_name(db, current_user, payload.name)
    created_at = models.now_local_naive()
    _validate_rule(payload.frequency, payload.interval_count, payload.specific_days, created_at)

    existing_count = db.query(models.Category).filter(models.Category.user_id == current_user.id).count()
    item = models.Category(
        user_id=current_user.id,
        name=payload.name,
        icon=payload.icon,
        color=payload.color or pick_palette_color(CATEGORY_PALETTE, existing_count),
        sort_order=existing_count,
        frequency=payload.frequency,
        interval_count=payload.interval_count,
        specific_days=list(payload.specific_days),
        fixed_amount=_to_decimal(payload.fixed_amount),
        budget_limit=_to_decimal(payload.budget_limit),
        is_email_enabled=payload.is_email_enabled,
        created_at=created_at,
        updated_at=created_at,
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    logger.info("Category %s created for user %s (%s)", item.id, current_user.id, item.frequency.value)
    return item


@router.patch("/categories/{category_id}", response_model=CategoryOut)
def update_category(
    category_id: int,
    payload: CategoryUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    cat = get_owned_category(db, current_user, category_id)
    data = payload.model_dump(exclude_unset=True)
    if not data:
        return cat

    if data.get("name") is not None:
        _ensure_unique_name(db, current_user, data["name"], exclude_id=cat.id)

    # validate the rule as it will look after the update
    frequency = data.get("frequency") or cat.frequency
    interval_count = data.get("interval_count") or cat.interval_count
    specific_days = data["specific_days"] if data.get("specific_days") is not None else cat.specific_days
    if frequency != models.Frequency.CUSTOM:
        specific_days = []
    _validate_rule(frequency, interval_count, specific_days, cat.created_at)

    for key in ("name", "color", "is_email_enabled"):
        if data.get(key) is not None:
            setattr(cat, key, data[key])
    if "icon" in data:
        cat.icon = data["icon"]
    for key in ("fixed_amount", "budget_limit"):
        if key in data:
            setattr(cat, key, _to_decimal(data[key]))
    cat.frequency = frequency
    cat.interval_count = interval_count
    cat.specific_days = list(specific_days)
    db.commit()
    db.refresh(cat)
    return cat


@router.delete("/categories/{category_id}", status_code=204)
def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    cat = get_owned_category(db, current_user, category_id)
    db.delete(cat)
    db.commit()
    return None


@router.post("/categories/reorder", response_model=list[CategoryOut])
def reorder_categories(
    payload: CategoryReorderRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    rows = (
        db.query(models.Category)
        .filter(models.Category.user_id == current_user.id, models.Category.id.in_(payload.ids))
        .all()
    )
    by_id = {row.id: row for row in rows}
    missing = [cid for cid in payload.ids if cid not in by_id]
    if missing:
        raise HTTPException(status_code=404, detail=f"Category not found: {missing}")
    for index, cid in enumerate(payload.ids):
        by_id[cid].sort_order = index
    db.commit()
    return list_categories(db=db, current_user=current_user)


@router.get("/categories/{category_id}/calendar", response_model=CategoryCalendarOut)
def get_category_calendar(
    category_id: int,
    month: str | None = Query(None, description="YYYY-MM, defaults to the current month"),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
    now: datetime = Depends(get_now),
):
    cat = get_owned_category(db, current_user, category_id)
    ym = parse_month_param(month, default=now.date())
    report = ReportService(db).category_calendar(cat, ym, now)
    return CategoryCalendarOut(
        category_id=cat.id,
        category_name=cat.name,
        month=str(ym),
        start_offset=report.start_offset,
        fixed_amount=float(cat.fixed_amount) if cat.fixed_amount is not None else None,
        total=float(report.total),
        days=[
            OccurrenceDayOut(
                day=d.day.day,
                date=d.day,
                expected=d.expected,
                recorded=d.recorded,
                is_future=d.is_future,
                label=d.label,
            )
            for d in report.days
        ],
        errors=[
            OccurrenceErrorOut(
                expense_id=getattr(err.transaction, "id", None),
                value=None if err.value is None else str(err.value),
                reason=err.reason,
            )
            for err in report.errors
        ],
    )


@router.post("/categories/{category_id}/toggle", response_model=ExpenseToggleResult)
def toggle_category_expense(
    category_id: int,
    payload: ExpenseToggleRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    cat = get_owned_category(db, current_user, category_id)
    start, end = _day_bounds(payload.date)
    existing = (
        db.query(models.Expense)
        .filter(
            models.Expense.user_id == current_user.id,
            models.Expense.category_id == cat.id,
            models.Expense.date >= start,
            models.Expense.date < end,
        )
        .all()
    )
    if existing:
        for row in existing:
            db.delete(row)
        db.commit()
        return ExpenseToggleResult(category_id=cat.id, date=payload.date, recorded=False, removed=len(existing))

    amount = _to_decimal(payload.amount) if payload.amount is not None else cat.fixed_amount
    if amount is None:
        raise HTTPException(status_code=400, detail="amount is required when the category has no fixed amount")
    item = models.Expense(
        user_id=current_user.id,
        category_id=cat.id,
        amount=amount,
        date=start,
        is_auto_generated=True,
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    return ExpenseToggleResult(
        category_id=cat.id,
        date=payload.date,
        recorded=True,
        expense=ExpenseOut.model_validate(item, from_attributes=True),
    )


# --- expenses -------------------------------------------------------------------


@router.get("/expenses", response_model=list[ExpenseOut])
def list_expenses(
    response: Response,
    month: str | None = Query(None, description="YYYY-MM"),
    category_id: int | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(200, ge=1, le=2000),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    q = db.query(models.Expense).filter(models.Expense.user_id == current_user.id)
    if month is not None:
        ym = parse_month_param(month)
        start, _ = _day_bounds(ym.first_day)
        _, end = _day_bounds(ym.last_day)
        q = q.filter(models.Expense.date >= start, models.Expense.date < end)
    if category_id is not None:
        q = q.filter(models.Expense.category_id == category_id)
    total = q.count()
    response.headers["X-Total-Count"] = str(total)
    return (
        q.order_by(models.Expense.date.desc(), models.Expense.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )


@router.post("/expenses", response_model=ExpenseOut, status_code=201)
def create_expense(
    payload: ExpenseCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    if payload.category_id is not None:
        cat = (
            db.query(models.Category)
            .filter(models.Category.id == payload.category_id, models.Category.user_id == current_user.id)
            .first()
        )
        if not cat:
            raise HTTPException(status_code=400, detail="Invalid category_id")
    item = models.Expense(
        user_id=current_user.id,
        category_id=payload.category_id,
        amount=_to_decimal(payload.amount),
        description=payload.description,
        date=_to_local_naive(payload.date) if payload.date else models.now_local_naive(),
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


@router.patch("/expenses/{expense_id}", response_model=ExpenseOut)
def update_expense(
    expense_id: int,
    payload: ExpenseUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    item = _get_owned_expense(db, current_user, expense_id)
    data = payload.model_dump(exclude_unset=True)
    if "category_id" in data and data["category_id"] is not None:
        get_owned_category(db, current_user, data["category_id"])
    if "amount" in data:
        if data["amount"] is None:
            raise HTTPException(status_code=400, detail="amount cannot be cleared")
        item.amount = _to_decimal(data["amount"])
    if "date" in data:
        if data["date"] is None:
            raise HTTPException(status_code=400, detail="date cannot be cleared")
        item.date = _to_local_naive(data["date"])
    if "category_id" in data:
        item.category_id = data["category_id"]
    if "description" in data:
        item.description = data["description"]
    db.commit()
    db.refresh(item)
    return item


@router.delete("/expenses/{expense_id}", status_code=204)
def delete_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    item = _get_owned_expense(db, current_user, expense_id)
    db.delete(item)
    db.commit()
    return None


# --- dashboard ------------------------------------------------------------------


@router.get("/dashboard/summary", response_model=DashboardSummaryOut)
def dashboard_summary(
    month: str | None = Query(None, description="YYYY-MM, defaults to the current month"),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
    now: datetime = Depends(get_now),
):
    ym = parse_month_param(month, default=now.date())
    breakdown = ReportService(db).monthly_breakdown(current_user.id, ym)

    items: list[CategorySpendItem] = []
    seen: set[int | None] = set()
    for item in breakdown.items:
        seen.add(item.category_id)
        limit = item.budget_limit
        used = float(item.amount / limit * 100) if limit else None
        items.append(
            CategorySpendItem(
                category_id=item.category_id,
                name=item.name,
                color=item.color,
                spent=float(item.amount),
                percentage=round(item.percentage, 2),
                budget_limit=float(limit) if limit is not None else None,
                budget_used_pct=round(used, 2) if used is not None else None,
                over_budget=bool(limit) and item.amount > limit,
            )
        )
    # budgeted categories without spending still show up on the dashboard
    budgeted = (
        db.query(models.Category)
        .filter(models.Category.user_id == current_user.id, models.Category.budget_limit.isnot(None))
        .order_by(models.Category.sort_order)
        .all()
    )
    for cat in budgeted:
        if cat.id in seen:
            continue
        items.append(
            CategorySpendItem(
                category_id=cat.id,
                name=cat.name,
                color=cat.color,
                spent=0.0,
                percentage=0.0,
                budget_limit=float(cat.budget_limit),
                budget_used_pct=0.0,
                over_budget=False,
            )
        )
    return DashboardSummaryOut(
        month=str(ym),
        total=float(breakdown.total),
        count=breakdown.count,
        highest_category=breakdown.highest_category,
        categories=items,
    )


# --- settings -------------------------------------------------------------------


@router.get("/settings", response_model=UserSettingsOut)
def get_user_settings(current_user: models.User = Depends(get_current_user)):
    return current_user


@router.put("/settings", response_model=UserSettingsOut)
def update_user_settings(
    payload: UserSettingsUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    current_user.report_frequency = payload.report_frequency
    current_user.report_day = payload.report_day
    if payload.display_name is not None:
        current_user.display_name = payload.display_name
    db.commit()
    db.refresh(current_user)
    return current_user


@router.post("/users/sync", response_model=UserSettingsOut)
def sync_current_user(current_user: models.User = Depends(get_current_user)):
    """Called by the client after sign-in; creates the user on first sight."""
    return current_user
