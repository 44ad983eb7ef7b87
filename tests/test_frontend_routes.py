"""
Tests for the Jinja2 dashboard pages in api/routes/frontend.py

    GET /                      dashboard with cards, funder table, budget tables
    GET /budgets/{id}/print    printable single-budget page

budget_view() is also tested directly since it shapes the nested tables.
"""
from datetime import date

import pytest

from api.routes.frontend import budget_view
from budget.fiscal import current_fiscal_year_start


@pytest.fixture()
def data(factory):
    funder = factory.funder()
    budget = factory.budget(funder_id=funder["id"], fringe_benefits_amount=1200)
    emp = factory.employee()
    factory.allocation(emp["id"], budget["id"], monthly_allocations={"2020-10": 2000})
    factory.expense(budget["id"], category="TELEPHONE", amount=600)
    factory.expense(budget["id"], category="DIRECT CASH", amount=300,
                    monthly_allocations={"2020-11": 100})
    return budget


# ── Dashboard ─────────────────────────────────────────────────────────────────

class TestDashboard:
    def test_empty_database(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        assert "text/html" in resp.headers["content-type"]
        assert "ECDC Budget Dashboard" in resp.text
        assert "No budgets" in resp.text

    def test_budget_tables(self, client, data):
        html = client.get("/").text
        assert f'id="budget-{data["id"]}"' in html
        assert "ORR-2021-30" in html
        assert "Office of Refugee Resettlement" in html
        assert "Ana Lopez" in html
        assert "TELEPHONE" in html
        assert "Direct Cash" in html
        assert 'data-kind="allocations"' in html
        assert 'data-kind="expenses"' in html
        assert 'data-month="2020-10"' in html
        assert f'/budgets/{data["id"]}/print' in html

    def test_cards(self, client, data):
        html = client.get("/").text
        assert "$120,000.00" in html
        assert 'Budgets</div><div class="value">1</div>' in html

    def test_fiscal_year_options(self, client, data):
        html = client.get("/", params={"fiscal_year": "2020-10-01"}).text
        assert "FY20-21" in html
        assert 'value="2020-10-01" selected' in html

    def test_fiscal_year_filter_hides_other_years(self, client, factory, data):
        factory.budget(budget_number="LATER-30", fiscal_year_start="2021-10-01",
                       fiscal_year_end="2022-09-30")
        html = client.get("/", params={"fiscal_year": "2020-10-01"}).text
        assert "LATER-30" not in html.split("<h2>Budgets</h2>")[1]

    def test_location_filter(self, client, factory, data):
        html = client.get("/", params={"location_id": factory.location_id("NC")}).text
        assert "ORR-2021-30" not in html.split("<h2>Budgets</h2>")[1]

    def test_defaults_to_current_fiscal_year(self, client, factory, data):
        start = current_fiscal_year_start()
        factory.budget(budget_number="CUR-30", name="Current Year",
                       fiscal_year_start=start.isoformat(),
                       fiscal_year_end=date(start.year + 1, 9, 30).isoformat())
        html = client.get("/").text
        assert f'value="{start.isoformat()}" selected' in html
        tables = html.split("<h2>Budgets</h2>")[1]
        assert "CUR-30" in tables
        assert "ORR-2021-30" not in tables
        tables = client.get("/", params={"fiscal_year": ""}).text.split("<h2>Budgets</h2>")[1]
        assert "CUR-30" in tables
        assert "ORR-2021-30" in tables


# ── Print view ────────────────────────────────────────────────────────────────

class TestPrintView:
    def test_renders(self, client, data):
        resp = client.get(f"/budgets/{data['id']}/print")
        assert resp.status_code == 200
        html = resp.text
        assert "ORR-2021-30 - Refugee Resettlement" in html
        assert "printed " in html
        assert "Virginia" in html
        assert 'class="month"' not in html

    def test_unknown_budget(self, client):
        resp = client.get("/budgets/999/print")
        assert resp.status_code == 404
        assert resp.json()["error"] == "Budget not found"


# ── budget_view ───────────────────────────────────────────────────────────────

class TestBudgetView:
    @pytest.fixture()
    def view(self):
        budget = {
            "id": 1, "budget_number": "A-30", "name": "A",
            "fiscal_year_start": "2025-10-01", "fiscal_year_end": "2026-09-30",
            "total_budget": 50000, "fringe_benefits_amount": 1200, "indirect_cost": 600,
            "monthly_fringe_allocations": {"2025-10": 300},
        }
        allocations = [
            {"id": 7, "employee_id": 3, "budget_id": 1, "allocated_amount": 12000,
             "monthly_allocations": {"2025-10": 1000, "2025-12": 1000}},
            {"id": 8, "employee_id": 4, "budget_id": 2, "allocated_amount": 5},
        ]
        expenses = [
            {"id": 1, "budget_id": 1, "category": "RENT", "amount": 2400,
             "monthly_allocations": {"2025-11": 200}},
            {"id": 2, "budget_id": 1, "category": "HOUSING", "amount": 500,
             "monthly_allocations": {}},
        ]
        employees = {3: {"first_name": "Ana", "last_name": "Lopez"}}
        return budget_view(budget, allocations, expenses, employees, today=date(2025, 11, 3))

    def test_allocation_rows(self, view):
        assert len(view["allocations"]) == 1
        row = view["allocations"][0]
        assert row["label"] == "Ana Lopez"
        assert row["kind"] == "allocations"
        assert row["cells"][:3] == [1000.0, None, 1000.0]
        assert row["ytd"] == 1000
        assert row["balance"] == 10000

    def test_fringe_override_and_split(self, view):
        assert view["fringe"]["cells"][0] == 300
        assert view["fringe"]["cells"][1] == 100
        assert view["fringe"]["ytd"] == 400
        assert view["indirect"]["ytd"] == 100

    def test_other_and_dca(self, view):
        assert [r["label"] for r in view["other"]] == ["RENT"]
        assert [r["label"] for r in view["dca"]] == ["Housing"]
        assert view["other"][0]["ytd"] == 200
        assert view["dca"][0]["kind"] == "expenses"

    def test_dca_rows_follow_category_order(self):
        budget = {"id": 1, "fiscal_year_start": "2025-10-01", "fiscal_year_end": "2026-09-30",
                  "total_budget": 1000}
        expenses = [
            {"id": 1, "budget_id": 1, "category": "FOOD", "amount": 10},
            {"id": 2, "budget_id": 1, "category": "HOUSING", "amount": 20},
            {"id": 3, "budget_id": 1, "category": "direct  cash", "amount": 30},
            {"id": 4, "budget_id": 1, "category": "RECOGNITION CEREMONY", "amount": 40},
        ]
        view = budget_view(budget, [], expenses, {}, today=date(2025, 11, 3))
        assert [(r["label"], r["id"]) for r in view["dca"]] == [
            ("Recognition Ceremony", 4), ("Direct Cash", 3), ("Housing", 2), ("Food", 1),
        ]
        assert view["other"] == []

    def test_summary_and_cost(self, view):
        assert view["summary"].allocated == 12000 + 1200 + 2900 + 600
        assert len(view["months"]) == 12
        assert view["program_cost"]["current_month"] == "2025-11"
