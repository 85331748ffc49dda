from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import pytest

from app import models
from app.core.config import settings
from app.recurrence import YearMonth
from app.services import EmailService, PdfReportService, ReportService
from app.services.report_service import month_bounds, report_period

# same instant as the get_now override in conftest.py (a Friday)
FIXED_NOW = datetime(2024, 3, 15, 10, 30)


def _html(message) -> str:
    return message.get_body(preferencelist=("html",)).get_content()


@pytest.fixture()
def march_data(make_category, make_expense, other_user):
    milk = make_category("Milk", fixed_amount=Decimal("60"), color="#06B6D4")
    rent = make_category(
        "Rent",
        frequency=models.Frequency.MONTHLY,
        fixed_amount=Decimal("25000"),
        is_email_enabled=False,
    )
    make_expense(Decimal("60"), datetime(2024, 3, 1, 7, 0), category=milk)
    make_expense(Decimal("60"), datetime(2024, 3, 12, 7, 0), category=milk)
    make_expense(Decimal("25000"), datetime(2024, 3, 1, 9, 0), category=rent, description="March rent")
    make_expense(Decimal("80"), datetime(2024, 3, 14, 20, 0), description="Snacks & <tea>")
    make_expense(Decimal("5"), datetime(2024, 3, 14, 20, 0), user=other_user)
    return milk, rent


class TestReportService:
    def test_monthly_breakdown(self, db_session, demo_user, march_data):
        breakdown = ReportService(db_session).monthly_breakdown(demo_user.id, YearMonth(2024, 3))
        assert breakdown.total == Decimal("25200")
        assert breakdown.count == 4
        assert [i.name for i in breakdown.items] == ["Rent", "Milk", "Uncategorized"]
        assert breakdown.highest_category == "Rent"
        assert breakdown.items[1].amount == Decimal("120")
        assert sum(i.percentage for i in breakdown.items) == pytest.approx(100)

    def test_email_enabled_only(self, db_session, demo_user, march_data):
        start, end = month_bounds(YearMonth(2024, 3))
        breakdown = ReportService(db_session).breakdown(demo_user.id, start, end, only_email_enabled=True)
        assert [i.name for i in breakdown.items] == ["Milk"]
        assert breakdown.total == Decimal("120")

    def test_empty_breakdown(self, db_session, demo_user):
        breakdown = ReportService(db_session).monthly_breakdown(demo_user.id, YearMonth(2024, 3))
        assert breakdown.total == 0
        assert breakdown.items == []
        assert breakdown.highest_category == "None"

    def test_users_due(self, db_session, demo_user, other_user):
        # FIXED_NOW is Friday the 15th
        demo_user.report_frequency = models.ReportFrequency.WEEKLY
        demo_user.report_day = 5
        other_user.report_frequency = models.ReportFrequency.MONTHLY
        other_user.report_day = 15
        db_session.commit()
        due = ReportService(db_session).users_due(FIXED_NOW)
        assert [u.external_id for u in due] == ["demo", "other"]

        other_user.report_day = 14
        db_session.commit()
        assert [u.external_id for u in ReportService(db_session).users_due(FIXED_NOW)] == ["demo"]

    def test_report_period(self, demo_user):
        demo_user.report_frequency = models.ReportFrequency.WEEKLY
        assert report_period(demo_user, FIXED_NOW) == (datetime(2024, 3, 8, 10, 30), FIXED_NOW)
        demo_user.report_frequency = models.ReportFrequency.MONTHLY
        assert report_period(demo_user, FIXED_NOW)[0] == datetime(2024, 2, 15, 10, 30)


class TestRendering:
    def test_category_calendar_html(self, db_session, march_data):
        milk, _ = march_data
        report = ReportService(db_session).category_calendar(milk, YearMonth(2024, 3), FIXED_NOW)
        html = EmailService(sender=object()).render_category_calendar_html(user_name="Demo", report=report)
        assert html.count('data-label="ORDERED"') == 2
        assert html.count('data-label="SKIPPED"') == 13
        assert html.count('data-label="PLANNED"') == 16
        assert ">60</div>" in html
        assert "Milk" in html
        assert "March 2024" in html
        for legend in ("Ordered", "Skipped", "Planned", "No Plan"):
            assert legend in html

    def test_summary_html_escapes(self, db_session, demo_user, make_category, make_expense):
        cat = make_category("<b>Chai</b>")
        make_expense(Decimal("10"), datetime(2024, 3, 2, 8, 0), category=cat)
        breakdown = ReportService(db_session).monthly_breakdown(demo_user.id, YearMonth(2024, 3))
        html = EmailService(sender=object()).render_summary_html(
            user_name="Demo", duration="Weekly", breakdown=breakdown
        )
        assert "SpendWise Weekly Report" in html
        assert "&lt;b&gt;Chai&lt;/b&gt;" in html
        assert "<b>Chai</b>" not in html
        assert "TOTAL SPENT" in html

    def test_pdf(self, db_session, demo_user, march_data):
        breakdown = ReportService(db_session).monthly_breakdown(demo_user.id, YearMonth(2024, 3))
        content = PdfReportService().render_monthly(user_name="Demo", month=YearMonth(2024, 3), breakdown=breakdown)
        assert content.startswith(b"%PDF")
        assert PdfReportService.filename(YearMonth(2024, 3)) == "SpendWise-Report-2024-03.pdf"


class TestReportRoutes:
    def test_send_category_report(self, client, sender, march_data):
        milk, _ = march_data
        res = client.post("/api/reports/category", json={"category_id": milk.id, "month": "2024-03"})
        assert res.status_code == 200, res.text
        assert res.json() == {"success": True, "sent_to": "demo@example.com"}

        assert len(sender.messages) == 1
        message = sender.messages[0]
        assert message["To"] == "demo@example.com"
        assert message["Subject"] == "SpendWise Category Report: Milk (Mar 2024)"
        assert 'data-label="ORDERED"' in _html(message)

    def test_send_category_report_foreign_category(self, client, sender, make_category, other_user):
        theirs = make_category("Theirs", user=other_user)
        res = client.post("/api/reports/category", json={"category_id": theirs.id, "month": "2024-03"})
        assert res.status_code == 404
        assert sender.messages == []

    def test_send_category_report_bad_month(self, client, march_data):
        milk, _ = march_data
        res = client.post("/api/reports/category", json={"category_id": milk.id, "month": "2024-13"})
        assert res.status_code == 400

    def test_send_monthly_report(self, client, sender, march_data):
        res = client.post("/api/reports/monthly", json={"month": "2024-03"})
        assert res.status_code == 200
        message = sender.messages[0]
        assert message["Subject"] == "Analysis Hub: March 2024 Report"
        html = _html(message)
        assert "Monthly Analysis Hub" in html
        assert "Across 4 transactions" in html
        assert "Download PDF Report" in html
        assert "/api/reports/download?month=2024-03" in html
        assert "user_id=demo" in html

    def test_delivery_failure_is_bad_gateway(self, client, sender, march_data):
        sender.fail_for.add("demo@example.com")
        res = client.post("/api/reports/monthly", json={"month": "2024-03"})
        assert res.status_code == 502

    def test_download(self, client, march_data):
        res = client.get("/api/reports/download", params={"month": "2024-03"})
        assert res.status_code == 200
        assert res.headers["content-type"] == "application/pdf"
        assert 'filename="SpendWise-Report-2024-03.pdf"' in res.headers["content-disposition"]
        assert res.content.startswith(b"%PDF")

    def test_download_by_link_user(self, client, march_data):
        res = client.get("/api/reports/download", params={"month": "2024-03", "user_id": "other"})
        assert res.status_code == 200
        missing = client.get("/api/reports/download", params={"month": "2024-03", "user_id": "ghost"})
        assert missing.status_code == 404

    def test_download_link_cannot_override_signed_in_user(self, client, march_data):
        res = client.get(
            "/api/reports/download",
            params={"month": "2024-03", "user_id": "demo"},
            headers={"X-User-Id": "other"},
        )
        assert res.status_code == 403

    def test_download_signed_in_user_gets_own_statement(self, client, march_data):
        res = client.get(
            "/api/reports/download",
            params={"month": "2024-03", "user_id": "other"},
            headers={"X-User-Id": "other"},
        )
        assert res.status_code == 200
        assert res.content.startswith(b"%PDF")

    def test_download_with_markup_in_display_name(self, client, march_data):
        res = client.put(
            "/api/settings",
            json={"report_frequency": "MONTHLY", "report_day": 1, "display_name": "Tom <b Jerry & co"},
        )
        assert res.status_code == 200
        res = client.get("/api/reports/download", params={"month": "2024-03"})
        assert res.status_code == 200
        assert res.content.startswith(b"%PDF")

    def test_download_bad_month(self, client):
        assert client.get("/api/reports/download", params={"month": "03-2024"}).status_code == 400


class TestCron:
    @pytest.fixture()
    def weekly_demo(self, db_session, demo_user):
        demo_user.report_frequency = models.ReportFrequency.WEEKLY
        demo_user.report_day = 5  # Friday
        db_session.commit()
        return demo_user

    def test_sends_to_due_users_with_expenses(self, client, sender, weekly_demo, march_data, other_user, db_session):
        # due today but has nothing in an email-enabled category
        other_user.report_frequency = models.ReportFrequency.MONTHLY
        other_user.report_day = 15
        db_session.commit()

        res = client.get("/api/cron/reports")
        assert res.status_code == 200
        assert res.json() == {"success": True, "sent_to": ["demo@example.com"], "failed": []}

        demo_message = sender.messages[0]
        assert demo_message["Subject"] == "Your SpendWise WEEKLY Report"
        html = _html(demo_message)
        assert "SpendWise Weekly Report" in html
        # only the Mar 12 milk falls in the last seven days; rent is not email-enabled
        assert "INR 60.00" in html
        assert "Rent" not in html

    def test_skips_users_without_expenses(self, client, sender, weekly_demo):
        res = client.get("/api/cron/reports")
        assert res.json() == {"success": True, "sent_to": [], "failed": []}
        assert sender.messages == []

    def test_not_due_today(self, client, sender, march_data, demo_user):
        # demo user defaults to MONTHLY on the 1st
        res = client.get("/api/cron/reports")
        assert res.json()["sent_to"] == []

    def test_one_failure_does_not_stop_the_run(
        self, client, sender, weekly_demo, march_data, make_category, make_expense, other_user, db_session
    ):
        other_user.report_frequency = models.ReportFrequency.MONTHLY
        other_user.report_day = 15
        db_session.commit()
        cat = make_category("Fuel", user=other_user)
        make_expense(Decimal("40"), datetime(2024, 3, 1, 9, 0), category=cat, user=other_user)
        sender.fail_for.add("demo@example.com")

        body = client.get("/api/cron/reports").json()
        assert body == {"success": False, "sent_to": ["other@example.com"], "failed": ["demo@example.com"]}

    def test_secret_checked_in_production(self, client, monkeypatch):
        monkeypatch.setattr(settings, "ENV", "production")
        monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")
        assert client.get("/api/cron/reports").status_code == 401
        assert client.get("/api/cron/reports", headers={"Authorization": "Bearer nope"}).status_code == 401
        ok = client.get("/api/cron/reports", headers={"Authorization": "Bearer s3cret"})
        assert ok.status_code == 200

    def test_secret_not_needed_outside_production(self, client):
        assert client.get("/api/cron/reports").status_code == 200
