"""
Tests for utils/database.py

Schema creation, location seeding, monthly-map JSON columns and row
conversion.
"""
import sqlite3

import pytest

from utils.database import (
    CORE_TABLES,
    create_schema,
    decode_json_map,
    encode_json_map,
    get_table_count,
    init_pragmas,
    query_to_dicts,
    rows_to_dicts,
    seed_reference_data,
    table_exists,
)


@pytest.fixture()
def conn():
    c = sqlite3.connect(":memory:")
    c.row_factory = sqlite3.Row
    init_pragmas(c)
    create_schema(c)
    yield c
    c.close()


class TestSchema:
    def test_all_core_tables(self, conn):
        assert len(CORE_TABLES) == 9
        for table in CORE_TABLES:
            assert table_exists(conn, table), table

    def test_idempotent(self, conn):
        create_schema(conn)
        assert table_exists(conn, "budgets")

    def test_missing_table(self, conn):
        assert not table_exists(conn, "no_such_table")

    def test_foreign_keys_enabled(self, conn):
        assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1

    def test_budget_number_unique(self, conn):
        conn.execute(
            "INSERT INTO budgets (budget_number, name, fiscal_year_start, fiscal_year_end) "
            "VALUES ('A-30', 'A', '2025-10-01', '2026-09-30')"
        )
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                "INSERT INTO budgets (budget_number, name, fiscal_year_start, fiscal_year_end) "
                "VALUES ('A-30', 'B', '2025-10-01', '2026-09-30')"
            )

    def test_allocations_cascade(self, conn):
        conn.execute(
            "INSERT INTO budgets (id, budget_number, name, fiscal_year_start, fiscal_year_end) "
            "VALUES (1, 'A-30', 'A', '2025-10-01', '2026-09-30')"
        )
        conn.execute("INSERT INTO employees (id, first_name, last_name) VALUES (1, 'A', 'B')")
        conn.execute(
            "INSERT INTO employee_allocations (employee_id, budget_id, allocated_amount) "
            "VALUES (1, 1, 100)"
        )
        conn.execute("DELETE FROM budgets WHERE id = 1")
        assert get_table_count(conn, "employee_allocations") == 0


class TestSeed:
    def test_seeds_locations_once(self, conn):
        assert seed_reference_data(conn) == 2
        assert seed_reference_data(conn) == 0
        codes = [r["code"] for r in conn.execute("SELECT code FROM locations ORDER BY code")]
        assert codes == ["NC", "VA"]


class TestJsonMap:
    def test_decode_string(self):
        assert decode_json_map('{"2025-10": 1500, "2025-11": "250.5"}') == {
            "2025-10": 1500.0, "2025-11": 250.5,
        }

    def test_decode_dict(self):
        assert decode_json_map({"2025-10": 1}) == {"2025-10": 1.0}

    @pytest.mark.parametrize("raw", [None, "", "not json", "[1, 2]", "42"])
    def test_decode_empty_or_malformed(self, raw):
        assert decode_json_map(raw) == {}

    def test_decode_drops_null_and_zeroes_garbage(self):
        assert decode_json_map('{"2025-10": null, "2025-11": "abc"}') == {"2025-11": 0.0}

    def test_encode(self):
        assert encode_json_map({"2025-11": 2, "2025-10": 1}) == '{"2025-10": 1, "2025-11": 2}'
        assert encode_json_map(None) is None
        assert encode_json_map({}) == "{}"


class TestRowConversion:
    def test_rows_to_dicts_decodes_json_columns(self, conn):
        conn.execute(
            "INSERT INTO budgets (budget_number, name, fiscal_year_start, fiscal_year_end, "
            "monthly_fringe_allocations) VALUES ('A-30', 'A', '2025-10-01', '2026-09-30', ?)",
            ('{"2025-10": 10}',),
        )
        rows = conn.execute("SELECT * FROM budgets").fetchall()
        result = rows_to_dicts(rows, ("monthly_fringe_allocations", "monthly_indirect_allocations"))
        assert result[0]["monthly_fringe_allocations"] == {"2025-10": 10.0}
        assert result[0]["monthly_indirect_allocations"] == {}

    def test_query_to_dicts(self, conn):
        seed_reference_data(conn)
        rows = query_to_dicts(conn, "SELECT code, name FROM locations WHERE code = ?", ("VA",))
        assert rows == [{"code": "VA", "name": "Virginia"}]
