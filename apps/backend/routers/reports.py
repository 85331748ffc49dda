"""Reports router exposing the emailed report and PDF handlers."""

from fastapi import APIRouter, Response

from app.api.reports import handlers
from app.schemas import CronReportResult, ReportSendResult

router = APIRouter(tags=["reports"])

router.add_api_route(
    "/reports/category",
    handlers.send_category_report,
    methods=["POST"],
    response_model=ReportSendResult,
)

router.add_api_route(
    "/reports/monthly",
    handlers.send_monthly_report,
    methods=["POST"],
    response_model=ReportSendResult,
)

router.add_api_route(
    "/reports/download",
    handlers.download_monthly_report,
    methods=["GET"],
    response_class=Response,
)

router.add_api_route(
    "/cron/reports",
    handlers.run_scheduled_reports,
    methods=["GET"],
    response_model=CronReportResult,
)
