"""
Tests for import_budget_workbook.py

Workbooks are built with openpyxl in tmp_path and imported into an
in-memory database carrying the real schema.
"""
import sqlite3
from datetime import datetime

import pytest

openpyxl = pytest.importorskip("openpyxl")

from import_budget_workbook import ImportReport, import_budgets, main, read_budget_rows  # noqa: E402
from utils.database import create_schema, init_pragmas, seed_reference_data  # noqa: E402

HEADER = ["Budget Number", "Name", "Location", "Funder",
          "Fiscal Year Start", "Fiscal Year End", "Total Budget", "Notes"]
ROW = ["ORR-2021-30", "Refugee Resettlement", "VA", "ORR",
       "2020-10-01", "2021-09-30", 120000, "Year one"]


def _write_workbook(path, rows, header=HEADER, title="Budgets"):
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = title
    ws.append(header)
    for row in rows:
        ws.append(row)
    wb.save(str(path))
    return path


def _with(**changes):
    row = list(ROW)
    for name, value in changes.items():
        row[HEADER.index(name.replace("_", " ").title())] = value
    return row


@pytest.fixture()
def conn():
    c = sqlite3.connect(":memory:")
    c.row_factory = sqlite3.Row
    init_pragmas(c)
    create_schema(c)
    seed_reference_data(c)
    c.execute("INSERT INTO funders (code, name) VALUES ('ORR', 'Office of Refugee Resettlement')")
    c.commit()
    yield c
    c.close()


def _budgets(conn):
    return [dict(r) for r in conn.execute("SELECT * FROM budgets ORDER BY budget_number")]


# ── read_budget_rows ──────────────────────────────────────────────────────────

class TestReadBudgetRows:
    def test_reads_rows_with_numbers(self, tmp_path):
        path = _write_workbook(tmp_path / "b.xlsx", [ROW, _with(budget_number="B-30")])
        rows = read_budget_rows(path)
        assert [n for n, _ in rows] == [2, 3]
        fields = rows[0][1]
        assert fields["budget_number"] == "ORR-2021-30"
        assert fields["location"] == "VA"
        assert fields["total_budget"] == 120000
        assert fields["notes"] == "Year one"

    def test_skips_blank_rows(self, tmp_path):
        path = _write_workbook(tmp_path / "b.xlsx",
                               [ROW, [None] * len(HEADER), ["  "] + [None] * 7,
                                _with(budget_number="B-30")])
        assert [n for n, _ in read_budget_rows(path)] == [2, 5]

    def test_headers_case_insensitive_and_aliases(self, tmp_path):
        header = ["  contract   NUMBER ", "budget name", "LOCATION", "Unrelated"]
        path = _write_workbook(tmp_path / "b.xlsx", [["X-30", "X", "VA", "ignored"]],
                               header=header)
        (_, fields), = read_budget_rows(path)
        assert fields == {"budget_number": "X-30", "name": "X", "location": "VA"}

    def test_falls_back_to_first_sheet(self, tmp_path):
        path = _write_workbook(tmp_path / "b.xlsx", [ROW], title="FY21")
        assert len(read_budget_rows(path)) == 1

    def test_named_sheet(self, tmp_path):
        path = tmp_path / "b.xlsx"
        wb = openpyxl.Workbook()
        wb.active.title = "Cover"
        wb.active.append(["nothing here"])
        ws = wb.create_sheet("Budgets")
        ws.append(HEADER)
        ws.append(ROW)
        wb.save(str(path))
        assert len(read_budget_rows(path)) == 1

    def test_missing_budget_number_column(self, tmp_path):
        path = _write_workbook(tmp_path / "b.xlsx", [["x"]], header=["Name"])
        with pytest.raises(ValueError, match="No 'Budget Number' column in sheet 'Budgets'"):
            read_budget_rows(path)


# ── import_budgets ────────────────────────────────────────────────────────────

class TestImportBudgets:
    def test_insert(self, conn):
        report = import_budgets(conn, [(2, dict(zip(
            ["budget_number", "name", "location", "funder", "fiscal_year_start",
             "fiscal_year_end", "total_budget", "notes"], ROW)))])
        assert (report.inserted, report.updated, report.skipped) == (1, 0, [])
        (b,) = _budgets(conn)
        assert b["budget_number"] == "ORR-2021-30"
        assert b["location_id"] == 1
        assert b["funder_id"] == 1
        assert b["total_budget"] == 120000
        assert b["fringe_benefits_amount"] == 0
        assert b["fiscal_year_end"] == "2021-09-30"

    def test_lookup_by_name(self, conn, tmp_path):
        path = _write_workbook(tmp_path / "b.xlsx", [
            _with(location="north carolina", funder="office of refugee resettlement",
                  budget_number="NC-2021-33"),
        ])
        report = import_budgets(conn, read_budget_rows(path))
        assert report.inserted == 1
        assert _budgets(conn)[0]["location_id"] == 2

    def test_update_by_number_keeps_blank_cells(self, conn, tmp_path):
        import_budgets(conn, read_budget_rows(_write_workbook(tmp_path / "a.xlsx", [ROW])))
        path = _write_workbook(tmp_path / "b.xlsx", [
            _with(total_budget=150000, notes=None, funder=None, name="Renamed"),
        ])
        report = import_budgets(conn, read_budget_rows(path))
        assert (report.inserted, report.updated) == (0, 1)
        (b,) = _budgets(conn)
        assert b["total_budget"] == 150000
        assert b["name"] == "Renamed"
        assert b["notes"] == "Year one"
        assert b["funder_id"] == 1

    def test_datetime_cells(self, conn, tmp_path):
        path = _write_workbook(tmp_path / "b.xlsx", [
            _with(fiscal_year_start=datetime(2020, 10, 1), fiscal_year_end=datetime(2021, 9, 30)),
        ])
        import_budgets(conn, read_budget_rows(path))
        assert _budgets(conn)[0]["fiscal_year_start"] == "2020-10-01"

    def test_fiscal_year_override(self, conn, tmp_path):
        path = _write_workbook(tmp_path / "b.xlsx", [_with(fiscal_year_start=None,
                                                           fiscal_year_end=None)])
        report = import_budgets(conn, read_budget_rows(path),
                                fiscal_year_start="2021-10-01", fiscal_year_end="2022-09-30")
        assert report.inserted == 1
        b = _budgets(conn)[0]
        assert (b["fiscal_year_start"], b["fiscal_year_end"]) == ("2021-10-01", "2022-09-30")

    @pytest.mark.parametrize("changes,reason", [
        ({"name": None}, "Budget name is required"),
        ({"location": None}, "Location is required"),
        ({"location": "MD"}, "Unknown location 'MD'"),
        ({"budget_number": "ORR-2021-33"}, "Contract code must end with -30 for VA location"),
        ({"funder": "NOPE"}, "Unknown funder 'NOPE'"),
        ({"fiscal_year_start": "soon"}, "Invalid fiscal year start date"),
        ({"fiscal_year_end": None}, "Invalid fiscal year end date"),
        ({"fiscal_year_end": "2020-10-01"}, "Fiscal year end date must be after start date"),
        ({"total_budget": -5}, "Total budget must be a positive number"),
        ({"total_budget": "lots"}, "Total budget must be a positive number"),
        ({"total_budget": None}, "Total budget must be a positive number"),
    ])
    def test_skip_reasons(self, conn, tmp_path, changes, reason):
        path = _write_workbook(tmp_path / "b.xlsx", [_with(**changes)])
        report = import_budgets(conn, read_budget_rows(path))
        assert report.skipped == [(2, reason)]
        assert report.inserted == 0
        assert _budgets(conn) == []

    def test_missing_budget_number(self, conn):
        report = import_budgets(conn, [(7, {"name": "No number"})])
        assert report.skipped == [(7, "Budget number is required")]

    def test_bad_rows_do_not_stop_the_import(self, conn, tmp_path):
        path = _write_workbook(tmp_path / "b.xlsx", [
            _with(location="MD"), ROW, _with(budget_number="B-30"),
        ])
        report = import_budgets(conn, read_budget_rows(path))
        assert report.inserted == 2
        assert [n for n, _ in report.skipped] == [2]


class TestImportReport:
    def test_to_string(self):
        report = ImportReport(inserted=3, updated=1, skipped=[(4, "Location is required")])
        text = report.to_string()
        assert text.splitlines()[:3] == ["Inserted: 3", "Updated:  1", "Skipped:  1"]
        assert "Location is required" in text
        assert "Reason" in text

    def test_no_table_without_skips(self):
        assert ImportReport(inserted=1).to_string() == "Inserted: 1\nUpdated:  0\nSkipped:  0"


# ── main ──────────────────────────────────────────────────────────────────────

class TestMain:
    def _db(self, tmp_path):
        return tmp_path / "ecdc.sqlite"

    def _count(self, db):
        conn = sqlite3.connect(str(db))
        try:
            return conn.execute("SELECT COUNT(*) FROM budgets").fetchone()[0]
        finally:
            conn.close()

    def test_imports_and_prints_report(self, tmp_path, capsys):
        path = _write_workbook(tmp_path / "b.xlsx", [_with(funder=None),
                                                     _with(budget_number="B-33")])
        db = self._db(tmp_path)
        assert main([str(path), "--db", str(db)]) == 0
        out = capsys.readouterr().out
        assert "Inserted: 1" in out
        assert "Skipped:  1" in out
        assert "Contract code must end with -30 for VA location" in out
        assert self._count(db) == 1

    def test_dry_run_saves_nothing(self, tmp_path, capsys):
        path = _write_workbook(tmp_path / "b.xlsx", [_with(funder=None)])
        db = self._db(tmp_path)
        assert main([str(path), "--db", str(db), "--dry-run"]) == 0
        assert "Inserted: 1" in capsys.readouterr().out
        assert self._count(db) == 0

    def test_sheet_option(self, tmp_path):
        path = _write_workbook(tmp_path / "b.xlsx", [_with(funder=None)], title="FY21")
        assert main([str(path), "--db", str(self._db(tmp_path)), "--sheet", "FY21"]) == 0

    def test_missing_workbook(self, tmp_path, capsys):
        assert main([str(tmp_path / "nope.xlsx"), "--db", str(self._db(tmp_path))]) == 1
        assert "workbook not found" in capsys.readouterr().out

    def test_missing_header(self, tmp_path, capsys):
        path = _write_workbook(tmp_path / "b.xlsx", [["x"]], header=["Name"])
        assert main([str(path), "--db", str(self._db(tmp_path))]) == 1
        assert "No 'Budget Number' column" in capsys.readouterr().out

    def test_not_a_workbook(self, tmp_path, capsys):
        path = tmp_path / "b.xlsx"
        path.write_text("Budget Number,Name\nORR-2021-30,Refugee Resettlement\n")
        assert main([str(path), "--db", str(self._db(tmp_path))]) == 1
        assert "ERROR: " in capsys.readouterr().out
        assert not self._db(tmp_path).exists()

    def test_unsupported_extension(self, tmp_path, capsys):
        path = tmp_path / "budgets.csv"
        path.write_text("Budget Number\n")
        assert main([str(path), "--db", str(self._db(tmp_path))]) == 1
        assert "ERROR: " in capsys.readouterr().out

    def test_bad_date_flag(self, tmp_path, capsys):
        path = _write_workbook(tmp_path / "b.xlsx", [ROW])
        rc = main([str(path), "--db", str(self._db(tmp_path)), "--fiscal-year-start", "October"])
        assert rc == 2
        assert "--fiscal-year-start must be a YYYY-MM-DD date" in capsys.readouterr().out
