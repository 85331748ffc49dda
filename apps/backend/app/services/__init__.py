"""
Services package

Business logic behind the calendar, dashboard and report endpoints.
"""

from .report_service import ReportService
from .email_service import EmailService, EmailDeliveryError, SmtpEmailSender, get_email_service
from .pdf_service import PdfReportService

__all__ = [
    "ReportService",
    "EmailService",
    "EmailDeliveryError",
    "SmtpEmailSender",
    "get_email_service",
    "PdfReportService",
]
