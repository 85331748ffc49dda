"""Report e-mails: HTML rendering and SMTP delivery."""

from __future__ import annotations

import logging
import smtplib
from decimal import Decimal
from email.message import EmailMessage
from email.utils import make_msgid
from html import escape
from typing import Protocol

from app.core.config import Settings, settings as default_settings
from app.recurrence import OccurrenceDay, OccurrenceLabel
from app.services.report_service import CategoryCalendarReport, SpendingBreakdown

logger = logging.getLogger(__name__)

WEEKDAY_HEADERS = ("S", "M", "T", "W", "T", "F", "S")

# (cell background, text, border, badge background)
LABEL_STYLES: dict[OccurrenceLabel, tuple[str, str, str, str]] = {
    OccurrenceLabel.ORDERED: ("#dcfce7", "#166534", "1px solid #166534", "#166534"),
    OccurrenceLabel.SKIPPED: ("#fee2e2", "#991b1b", "1px solid #991b1b", "#991b1b"),
    OccurrenceLabel.PLANNED: ("#e0f2fe", "#0369a1", "1px solid #0369a1", "#0369a1"),
    OccurrenceLabel.NONE: ("#f3f4f6", "#6b7280", "1px solid transparent", "#f3f4f6"),
}
LEGEND = (
    (OccurrenceLabel.ORDERED, "Ordered"),
    (OccurrenceLabel.SKIPPED, "Skipped"),
    (OccurrenceLabel.PLANNED, "Planned"),
    (OccurrenceLabel.NONE, "No Plan"),
)


class EmailDeliveryError(RuntimeError):
    """Raised when the mail transport refuses or fails to send a message."""


class EmailSender(Protocol):
    def send(self, message: EmailMessage) -> None: ...


class SmtpEmailSender:
    def __init__(self, config: Settings | None = None) -> None:
        self.config = config or default_settings

    def send(self, message: EmailMessage) -> None:
        cfg = self.config
        with smtplib.SMTP(cfg.SMTP_HOST, cfg.SMTP_PORT, timeout=30) as smtp:
            if cfg.SMTP_USE_TLS:
                smtp.starttls()
            if cfg.SMTP_USERNAME and cfg.SMTP_PASSWORD:
                smtp.login(cfg.SMTP_USERNAME, cfg.SMTP_PASSWORD)
            smtp.send_message(message)


def format_money(value: Decimal | float | int, symbol: str, places: int = 2) -> str:
    return f"{symbol} {Decimal(str(value)):,.{places}f}"


class EmailService:
    def __init__(self, sender: EmailSender | None = None, config: Settings | None = None) -> None:
        self.config = config or default_settings
        self.sender = sender or SmtpEmailSender(self.config)

    def send(self, to: str, subject: str, html: str) -> str:
        message = EmailMessage()
        message["From"] = self.config.EMAIL_FROM
        message["To"] = to
        message["Subject"] = subject
        message["Message-ID"] = make_msgid(domain="spendwise.local")
        message.set_content("This report is best viewed in an HTML capable mail client.")
        message.add_alternative(html, subtype="html")
        try:
            self.sender.send(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.exception("Failed to send %r to %s", subject, to)
            raise EmailDeliveryError(f"Could not deliver report to {to}") from exc
        logger.info("Email sent: %s to %s", message["Message-ID"], to)
        return message["Message-ID"]

    def _money(self, value: Decimal | float | int, places: int = 2) -> str:
        return format_money(value, self.config.CURRENCY_SYMBOL, places)

    # --- summary report (cron) ------------------------------------------------

    def render_summary_html(self, *, user_name: str, duration: str, breakdown: SpendingBreakdown) -> str:
        rows = "".join(
            f"""
    <tr>
      <td style="padding: 12px; border-bottom: 1px solid #eee;">{escape(item.name)}</td>
      <td style="padding: 12px; border-bottom: 1px solid #eee; text-align: right;">{self._money(item.amount)}</td>
      <td style="padding: 12px; border-bottom: 1px solid #eee; text-align: right;">{item.percentage:.1f}%</td>
    </tr>"""
            for item in breakdown.items
        )
        return f"""
    <div style="font-family: 'Inter', sans-serif; max-width: 600px; margin: 0 auto; padding: 20px; color: #333;">
      <h1 style="color: #8B5CF6; border-bottom: 2px solid #8B5CF6; padding-bottom: 10px;">SpendWise {escape(duration)} Report</h1>
      <p>Hello {escape(user_name)}, here is your expense summary.</p>
      <div style="background: #f9fafb; padding: 20px; border-radius: 12px; margin: 20px 0;">
        <h2 style="margin-top: 0; font-size: 16px; color: #6b7280;">TOTAL SPENT</h2>
        <p style="font-size: 32px; font-weight: bold; margin: 0; color: #111827;">{self._money(breakdown.total)}</p>
      </div>
      <h3>Category Breakdown</h3>
      <table style="width: 100%; border-collapse: collapse;">
        <thead>
          <tr style="background: #f3f4f6;">
            <th style="padding: 12px; text-align: left;">Category</th>
            <th style="padding: 12px; text-align: right;">Amount</th>
            <th style="padding: 12px; text-align: right;">%</th>
          </tr>
        </thead>
        <tbody>{rows}
        </tbody>
      </table>
      <div style="margin-top: 20px; padding: 15px; background: #e0f2fe; border-radius: 8px;">
        <strong>Highest Spending Category:</strong> {escape(breakdown.highest_category)}
      </div>
      <p style="text-align: center; color: #9ca3af; font-size: 12px; margin-top: 40px;">
        Sent by SpendWise. You can manage your report settings in the app.
      </p>
    </div>
  """

    # --- monthly analysis (on demand) -----------------------------------------

    def render_monthly_analysis_html(
        self,
        *,
        user_name: str,
        month_name: str,
        breakdown: SpendingBreakdown,
        download_url: str,
    ) -> str:
        bars = "".join(
            f"""
          <div style="margin-bottom: 15px;">
            <div style="font-size: 14px; font-weight: 700; margin-bottom: 6px;">
              <span>{escape(item.name)}</span>
              <span style="color: #64748b; float: right;">{self._money(item.amount)} ({item.percentage:.1f}%)</span>
            </div>
            <div style="height: 8px; background-color: #e2e8f0; border-radius: 10px; overflow: hidden;">
              <div style="width: {item.percentage:.1f}%; height: 100%; background-color: #7c3aed; border-radius: 10px;"></div>
            </div>
          </div>"""
            for item in breakdown.items
        )
        return f"""
    <div style="font-family: 'Segoe UI', Tahoma, sans-serif; max-width: 600px; margin: 0 auto; background-color: #ffffff; color: #1a1a1a; border: 1px solid #e2e8f0; border-radius: 24px; overflow: hidden;">
      <div style="background: linear-gradient(135deg, #7c3aed 0%, #db2777 100%); padding: 40px 20px; text-align: center; color: white;">
        <h1 style="margin: 0; font-size: 28px; font-weight: 800;">Monthly Analysis Hub</h1>
        <p style="margin: 10px 0 0; opacity: 0.9; font-size: 16px;">{escape(month_name)} Financial Insights</p>
      </div>
      <div style="padding: 30px;">
        <p style="font-size: 16px; line-height: 1.6;">Hello {escape(user_name)},</p>
        <p style="font-size: 16px; line-height: 1.6; color: #4a5568;">Your spending summary for the month is ready.</p>
        <div style="background-color: #f8fafc; border: 1px solid #e2e8f0; border-radius: 20px; padding: 25px; margin: 30px 0; text-align: center;">
          <span style="font-size: 12px; font-weight: 800; color: #7c3aed; text-transform: uppercase; display: block; margin-bottom: 8px;">Total Spent</span>
          <span style="font-size: 42px; font-weight: 900; color: #0f172a; display: block;">{self._money(breakdown.total)}</span>
          <span style="font-size: 14px; color: #64748b; display: block; margin-top: 8px;">Across {breakdown.count} transactions</span>
        </div>
        <h3 style="font-size: 18px; font-weight: 800; color: #0f172a; border-left: 4px solid #7c3aed; padding-left: 15px;">Category Breakdown</h3>
        <div style="margin-bottom: 30px;">{bars}
        </div>
        <div style="background-color: #fff1f2; border-radius: 16px; padding: 20px; margin-bottom: 30px;">
          <span style="display: block; font-size: 12px; font-weight: 800; color: #e11d48; text-transform: uppercase;">Peak Spend Area</span>
          <span style="display: block; font-size: 16px; font-weight: 700; color: #881337;">{escape(breakdown.highest_category)}</span>
        </div>
        <div style="text-align: center; margin-top: 40px;">
          <a href="{escape(download_url, quote=True)}" style="background: #7c3aed; color: white; padding: 18px 35px; border-radius: 16px; text-decoration: none; font-weight: 800; display: inline-block;">Download PDF Report</a>
        </div>
      </div>
      <div style="background-color: #f8fafc; padding: 30px; text-align: center; font-size: 13px; color: #64748b; border-top: 1px solid #e2e8f0;">
        SpendWise &bull; Digital Expense Companion<br>
        Manage your profile in the app Settings.
      </div>
    </div>
  """

    # --- category calendar ----------------------------------------------------

    def _calendar_cell(self, day: OccurrenceDay, fixed_amount: Decimal | None) -> str:
        label = day.label
        background, text, border, badge_background = LABEL_STYLES[label]
        badge = ""
        if fixed_amount and (day.recorded or day.expected):
            badge = (
                f'<div style="position: absolute; top: -5px; right: -5px; background: {badge_background}; '
                f'color: #ffffff; font-size: 7px; padding: 1px 3px; border-radius: 4px; line-height: 1; '
                f'font-weight: bold;">{Decimal(str(fixed_amount)).normalize():f}</div>'
            )
        return f"""
      <td style="padding: 8px; text-align: center;" data-label="{label.value}">
        <div style="position: relative; width: 32px; height: 32px; margin: 0 auto;">
          <div style="width: 32px; height: 32px; line-height: 32px; border-radius: 8px; background: {background}; color: {text}; border: {border}; font-size: 12px; font-weight: bold;">{day.day.day}</div>{badge}
        </div>
      </td>"""

    def render_category_calendar_html(self, *, user_name: str, report: CategoryCalendarReport) -> str:
        fixed_amount = report.category.fixed_amount
        cells = ["<td></td>"] * report.start_offset
        cells += [self._calendar_cell(day, fixed_amount) for day in report.days]
        cells += ["<td></td>"] * (-len(cells) % 7)
        rows = "".join("<tr>" + "".join(cells[i:i + 7]) + "</tr>" for i in range(0, len(cells), 7))
        header = "".join(
            f'<th style="padding: 10px; text-align: center; font-size: 12px; color: #6b7280;">{d}</th>'
            for d in WEEKDAY_HEADERS
        )
        legend = "".join(
            f'<span style="display: inline-block; margin-right: 15px;">'
            f'<span style="display: inline-block; width: 12px; height: 12px; background: {LABEL_STYLES[label][0]}; '
            f'border: {LABEL_STYLES[label][2]}; border-radius: 3px;"></span> {text}</span>'
            for label, text in LEGEND
        )
        month_name = report.month.first_day.strftime("%B %Y")
        return f"""
    <div style="font-family: 'Inter', sans-serif; max-width: 500px; margin: 0 auto; padding: 20px; color: #333; border: 1px solid #eee; border-radius: 16px;">
      <p>Hello {escape(user_name)},</p>
      <h2 style="color: #8B5CF6; margin-bottom: 5px;">{escape(report.category.name)}</h2>
      <p style="color: #6b7280; font-size: 14px; margin-top: 0;">Monthly Report: {month_name}</p>
      <div style="margin: 20px 0; background: #fafafa; border-radius: 12px; padding: 15px; text-align: center; border: 1px dashed #ddd;">
        <span style="display: block; font-size: 12px; color: #6b7280; text-transform: uppercase;">Total Amount</span>
        <span style="font-size: 28px; font-weight: bold; color: #111827;">{self._money(report.total, 0)}</span>
      </div>
      <table style="width: 100%; border-collapse: collapse;">
        <thead><tr>{header}</tr></thead>
        <tbody>{rows}</tbody>
      </table>
      <div style="margin-top: 25px; font-size: 11px;">{legend}</div>
      <p style="text-align: center; color: #9ca3af; font-size: 10px; margin-top: 30px;">
        Generated by SpendWise. Your digital expense companion.
      </p>
    </div>
  """


def get_email_service() -> EmailService:
    return EmailService()
