"""Tests for schema creation and its constraints."""

import sqlite3

import pytest

from workshop_ops.database.schema import SCHEMA_VERSION, initialize_database


def _tables(db) -> set[str]:
    rows = db.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
    return {r["name"] for r in rows}


class TestInitializeDatabase:
    def test_creates_all_tables(self, db):
        assert {
            "departments", "employees", "suppliers", "inventory_items",
            "job_cards", "purchase_queue", "activity_log", "schema_version",
        } <= _tables(db)

    def test_records_schema_version(self, db):
        rows = db.execute("SELECT MAX(version) AS v FROM schema_version")
        assert rows[0]["v"] == SCHEMA_VERSION

    def test_is_idempotent(self, db):
        initialize_database(db)
        initialize_database(db)
        rows = db.execute("SELECT COUNT(*) AS n FROM departments")
        assert rows[0]["n"] == 3

    def test_seeds_departments(self, db):
        names = {r["name"] for r in db.execute("SELECT name FROM departments")}
        assert "Quality Control" in names


class TestConstraints:
    def test_rejects_unknown_category(self, db):
        with pytest.raises(sqlite3.IntegrityError):
            db.execute(
                "INSERT INTO inventory_items (name, category) VALUES ('x', 'Gadget')"
            )

    def test_rejects_negative_stock(self, db):
        with pytest.raises(sqlite3.IntegrityError):
            db.execute(
                "INSERT INTO inventory_items (name, category, current_stock) "
                "VALUES ('x', 'Component', -1)"
            )

    def test_rejects_unknown_job_status(self, db):
        with pytest.raises(sqlite3.IntegrityError):
            db.execute(
                "INSERT INTO job_cards (job_code, part_name, status) "
                "VALUES ('J-1', 'Bracket', 'Done')"
            )

    def test_one_active_queue_entry_per_item(self, db):
        db.execute(
            "INSERT INTO purchase_queue (item_id, status, queued_at) "
            "VALUES (1, 'pending', '2026-01-01')"
        )
        with pytest.raises(sqlite3.IntegrityError):
            db.execute(
                "INSERT INTO purchase_queue (item_id, status, queued_at) "
                "VALUES (1, 'ordered', '2026-01-02')"
            )

    def test_completed_entries_do_not_block_new_requests(self, db):
        db.execute(
            "INSERT INTO purchase_queue (item_id, status, queued_at) "
            "VALUES (1, 'completed', '2026-01-01')"
        )
        db.execute(
            "INSERT INTO purchase_queue (item_id, status, queued_at) "
            "VALUES (1, 'pending', '2026-01-02')"
        )
        rows = db.execute("SELECT COUNT(*) AS n FROM purchase_queue")
        assert rows[0]["n"] == 2

    def test_queue_entry_has_no_item_foreign_key(self, db):
        # Entries may outlive their inventory item
        db.execute(
            "INSERT INTO purchase_queue (item_id, status, queued_at) "
            "VALUES (999, 'pending', '2026-01-01')"
        )

    def test_item_codes_unique_when_set(self, db):
        db.execute(
            "INSERT INTO inventory_items (item_code, name, category) "
            "VALUES ('', 'a', 'Component')"
        )
        db.execute(
            "INSERT INTO inventory_items (item_code, name, category) "
            "VALUES ('', 'b', 'Component')"
        )
        db.execute(
            "INSERT INTO inventory_items (item_code, name, category) "
            "VALUES ('C-1', 'c', 'Component')"
        )
        with pytest.raises(sqlite3.IntegrityError):
            db.execute(
                "INSERT INTO inventory_items (item_code, name, category) "
                "VALUES ('C-1', 'd', 'Product')"
            )

    def test_pause_accumulator_cannot_go_negative(self, db):
        with pytest.raises(sqlite3.IntegrityError):
            db.execute(
                "INSERT INTO job_cards (job_code, part_name, "
                "total_paused_milliseconds) VALUES ('J-2', 'Bracket', -5)"
            )
