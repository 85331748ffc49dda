from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from app import models


def _labels(body):
    return {d["day"]: d["label"] for d in body["days"]}


def test_monthly_calendar_with_fixed_amount(client, make_category, make_expense):
    rent = make_category(
        "Rent",
        frequency=models.Frequency.MONTHLY,
        fixed_amount=Decimal("500"),
        created_at=datetime(2024, 1, 1, 9, 0),
    )
    make_expense(Decimal("500"), datetime(2024, 3, 1, 18, 45), category=rent)

    res = client.get(f"/api/categories/{rent.id}/calendar", params={"month": "2024-03"})
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["month"] == "2024-03"
    assert body["category_name"] == "Rent"
    assert body["start_offset"] == 5
    assert body["fixed_amount"] == 500
    assert body["total"] == 500
    assert body["errors"] == []
    assert len(body["days"]) == 31

    first = body["days"][0]
    assert first["date"] == "2024-03-01"
    assert first["expected"] is True and first["recorded"] is True
    assert first["label"] == "ORDERED"
    assert all(d["label"] == "NONE" for d in body["days"][1:])


def test_calendar_defaults_to_current_month(client, make_category):
    milk = make_category("Milk")
    body = client.get(f"/api/categories/{milk.id}/calendar").json()
    assert body["month"] == "2024-03"
    labels = _labels(body)
    # fixed "now" is 2024-03-15 10:30
    assert labels[14] == "SKIPPED"
    assert labels[15] == "SKIPPED"
    assert labels[16] == "PLANNED"
    assert body["days"][14]["is_future"] is False
    assert body["days"][15]["is_future"] is True


def test_calendar_leap_february(client, make_category):
    milk = make_category("Milk")
    body = client.get(f"/api/categories/{milk.id}/calendar", params={"month": "2024-02"}).json()
    assert len(body["days"]) == 29
    assert body["start_offset"] == 4


def test_custom_calendar(client, make_category, make_expense):
    gym = make_category(
        "Gym",
        frequency=models.Frequency.CUSTOM,
        specific_days=[1, 3],
        created_at=datetime(2024, 2, 20, 6, 0),
    )
    make_expense(Decimal("200"), datetime(2024, 3, 4, 6, 30), category=gym)
    make_expense(Decimal("200"), datetime(2024, 3, 9, 6, 30), category=gym)

    body = client.get(f"/api/categories/{gym.id}/calendar", params={"month": "2024-03"}).json()
    labels = _labels(body)
    assert labels[4] == "ORDERED"
    assert labels[6] == "SKIPPED"
    assert labels[9] == "ORDERED"  # recorded outside the plan
    assert labels[18] == "PLANNED"
    assert labels[5] == "NONE"
    assert body["total"] == 400


def test_weekly_calendar_only_counts_own_category(client, make_category, make_expense):
    laundry = make_category(
        "Laundry",
        frequency=models.Frequency.WEEKLY,
        created_at=datetime(2024, 2, 25, 12, 0),  # Sunday
    )
    other = make_category("Other")
    make_expense(Decimal("50"), datetime(2024, 3, 3, 12, 0), category=other)

    body = client.get(f"/api/categories/{laundry.id}/calendar", params={"month": "2024-03"}).json()
    expected = {d["day"]: d["label"] for d in body["days"] if d["expected"]}
    assert expected == {3: "SKIPPED", 10: "SKIPPED", 17: "PLANNED", 24: "PLANNED", 31: "PLANNED"}
    assert body["total"] == 0


def test_calendar_bad_month(client, make_category):
    milk = make_category("Milk")
    res = client.get(f"/api/categories/{milk.id}/calendar", params={"month": "2024-3x"})
    assert res.status_code == 400


def test_missing_category(client):
    assert client.get("/api/categories/9999/calendar").status_code == 404


class TestDashboard:
    def test_summary(self, client, make_category, make_expense):
        food = make_category("Food", budget_limit=Decimal("200"))
        travel = make_category("Travel", budget_limit=Decimal("1000"))
        make_expense(Decimal("300"), datetime(2024, 3, 2, 12, 0), category=food)
        make_expense(Decimal("100"), datetime(2024, 3, 3, 12, 0))
        make_expense(Decimal("999"), datetime(2024, 2, 28, 12, 0), category=food)

        body = client.get("/api/dashboard/summary", params={"month": "2024-03"}).json()
        assert body["month"] == "2024-03"
        assert body["total"] == 400
        assert body["count"] == 2
        assert body["highest_category"] == "Food"

        by_name = {c["name"]: c for c in body["categories"]}
        assert by_name["Food"]["spent"] == 300
        assert by_name["Food"]["percentage"] == 75
        assert by_name["Food"]["budget_used_pct"] == 150
        assert by_name["Food"]["over_budget"] is True
        assert by_name["Uncategorized"]["category_id"] is None
        assert by_name["Uncategorized"]["budget_limit"] is None
        assert by_name["Travel"]["spent"] == 0
        assert by_name["Travel"]["category_id"] == travel.id
        assert by_name["Travel"]["over_budget"] is False

    def test_empty_month(self, client):
        body = client.get("/api/dashboard/summary").json()
        assert body["month"] == "2024-03"
        assert body["total"] == 0
        assert body["count"] == 0
        assert body["highest_category"] == "None"
        assert body["categories"] == []


class TestSettings:
    def test_defaults(self, client):
        body = client.get("/api/settings").json()
        assert body["email"] == "demo@example.com"
        assert body["report_frequency"] == "MONTHLY"
        assert body["report_day"] == 1

    def test_update_weekly(self, client):
        res = client.put("/api/settings", json={"report_frequency": "WEEKLY", "report_day": 0})
        assert res.status_code == 200
        assert res.json()["report_frequency"] == "WEEKLY"
        assert res.json()["report_day"] == 0
        assert client.get("/api/settings").json()["report_day"] == 0

    def test_day_range_depends_on_frequency(self, client):
        assert client.put("/api/settings", json={"report_frequency": "WEEKLY", "report_day": 7}).status_code == 422
        assert client.put("/api/settings", json={"report_frequency": "MONTHLY", "report_day": 0}).status_code == 422
        assert client.put("/api/settings", json={"report_frequency": "MONTHLY", "report_day": 31}).status_code == 200

    def test_settings_are_per_user(self, client):
        client.put("/api/settings", json={"report_frequency": "WEEKLY", "report_day": 3}, headers={"X-User-Id": "other"})
        assert client.get("/api/settings").json()["report_frequency"] == "MONTHLY"
