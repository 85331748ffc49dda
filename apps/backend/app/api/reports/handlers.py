"""Report handlers: emailed calendar and analysis reports, PDF download, cron fan-out."""

from __future__ import annotations

import logging
from datetime import datetime
from urllib.parse import urlencode

from fastapi import Depends, Header, HTTPException, Query, Response
from sqlalchemy.orm import Session

from app import models
from app.core.config import settings
from app.core.database import get_db
from app.core.deps import get_current_user, get_now
from app.routers import get_owned_category, parse_month_param
from app.schemas import CategoryReportRequest, CronReportResult, MonthlyReportRequest, ReportSendResult
from app.services import EmailDeliveryError, EmailService, PdfReportService, ReportService, get_email_service
from app.services.report_service import report_period

logger = logging.getLogger(__name__)


def _deliver(emails: EmailService, to: str, subject: str, html: str) -> None:
    try:
        emails.send(to, subject, html)
    except EmailDeliveryError as exc:
        raise HTTPException(status_code=502, detail=str(exc))


def send_category_report(
    payload: CategoryReportRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
    now: datetime = Depends(get_now),
    emails: EmailService = Depends(get_email_service),
) -> ReportSendResult:
    cat = get_owned_category(db, current_user, payload.category_id)
    month = parse_month_param(payload.month)
    report = ReportService(db).category_calendar(cat, month, now)
    html = emails.render_category_calendar_html(user_name=current_user.greeting_name, report=report)
    subject = f"SpendWise Category Report: {cat.name} ({month.first_day.strftime('%b %Y')})"
    _deliver(emails, current_user.email, subject, html)
    return ReportSendResult(success=True, sent_to=current_user.email)


def send_monthly_report(
    payload: MonthlyReportRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
    emails: EmailService = Depends(get_email_service),
) -> ReportSendResult:
    month = parse_month_param(payload.month)
    breakdown = ReportService(db).monthly_breakdown(current_user.id, month)
    query = {"month": str(month)}
    if current_user.external_id:
        query["user_id"] = current_user.external_id
    download_url = f"{settings.APP_URL.rstrip('/')}/api/reports/download?{urlencode(query)}"
    month_name = month.first_day.strftime("%B %Y")
    html = emails.render_monthly_analysis_html(
        user_name=current_user.greeting_name,
        month_name=month_name,
        breakdown=breakdown,
        download_url=download_url,
    )
    _deliver(emails, current_user.email, f"Analysis Hub: {month_name} Report", html)
    return ReportSendResult(success=True, sent_to=current_user.email)


def download_monthly_report(
    month: str = Query(..., description="YYYY-MM"),
    user_id: str | None = Query(None, description="External user id, used by emailed download links"),
    x_user_id: str | None = Header(None, alias="X-User-Id"),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> Response:
    ym = parse_month_param(month)
    user = current_user
    if x_user_id:
        # a signed-in caller only ever gets their own statement
        if user_id and user_id != current_user.external_id:
            raise HTTPException(status_code=403, detail="Cannot download another user's report")
    elif user_id:
        user = db.query(models.User).filter(models.User.external_id == user_id).first()
        if not user:
            raise HTTPException(status_code=404, detail="User not found")
    breakdown = ReportService(db).monthly_breakdown(user.id, ym)
    pdf = PdfReportService()
    content = pdf.render_monthly(user_name=user.greeting_name, month=ym, breakdown=breakdown)
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{pdf.filename(ym)}"'},
    )


def run_scheduled_reports(
    authorization: str | None = Header(None),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    emails: EmailService = Depends(get_email_service),
) -> CronReportResult:
    if settings.ENV == "production" and authorization != f"Bearer {settings.CRON_SECRET}":
        raise HTTPException(status_code=401, detail="Unauthorized")

    service = ReportService(db)
    sent_to: list[str] = []
    failed: list[str] = []
    for user in service.users_due(now):
        start, end = report_period(user, now)
        breakdown = service.breakdown(user.id, start, end, only_email_enabled=True, end_inclusive=True)
        if not breakdown.expenses:
            continue
        duration = "Weekly" if user.report_frequency == models.ReportFrequency.WEEKLY else "Monthly"
        html = emails.render_summary_html(user_name=user.greeting_name, duration=duration, breakdown=breakdown)
        try:
            emails.send(user.email, f"Your SpendWise {user.report_frequency.value} Report", html)
        except EmailDeliveryError:
            # already logged by the email service
            failed.append(user.email)
            continue
        sent_to.append(user.email)

    logger.info("Scheduled reports: %d sent, %d failed", len(sent_to), len(failed))
    return CronReportResult(success=not failed, sent_to=sent_to, failed=failed)
