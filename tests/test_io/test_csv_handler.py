"""Tests for CSV import/export."""

import csv
import json

from workshop_ops.io.csv_handler import (
    JOB_CSV_COLUMNS,
    export_inventory_csv,
    export_jobs_csv,
    import_inventory_csv,
)


class TestCSVExport:
    def test_export_inventory(self, repo, make_item, tmp_path):
        make_item(item_code="EXP-001", name="Export test item",
                  current_stock=5, price=9.99)

        outfile = tmp_path / "export.csv"
        count = export_inventory_csv(repo, outfile)
        assert count == 1
        assert outfile.exists()

        with open(outfile, encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        assert len(rows) == 1
        assert rows[0]["item_code"] == "EXP-001"
        assert rows[0]["category"] == "Component"
        assert rows[0]["current_stock"] == "5"

    def test_export_jobs_uses_reporting_names(
        self, repo, make_job, make_item, tmp_path
    ):
        item = make_item()
        make_job([{"item_id": item.id, "quantity": 2}], part_name="Gate Hinge")

        outfile = tmp_path / "sub" / "jobs.csv"
        assert export_jobs_csv(repo, outfile) == 1

        with open(outfile, encoding="utf-8") as f:
            reader = csv.DictReader(f)
            rows = list(reader)
        assert reader.fieldnames == JOB_CSV_COLUMNS
        assert rows[0]["partName"] == "Gate Hinge"
        assert rows[0]["totalPausedMilliseconds"] == "0"
        consumables = json.loads(rows[0]["processedConsumables"])
        assert consumables[0]["itemId"] == item.id


class TestCSVImport:
    def test_import_new_items(self, ledger, tmp_path):
        csv_file = tmp_path / "import.csv"
        csv_file.write_text(
            "item_code,name,category,current_stock,reorder_level,price\n"
            "IMP-001,Imported Item,Component,10,2,5.99\n"
            "IMP-002,Sheet 2mm,raw material,20,5,12.50\n",
            encoding="utf-8",
        )

        results = import_inventory_csv(ledger, csv_file)
        assert results["imported"] == 2
        assert results["skipped"] == 0
        assert not results["errors"]

        item = ledger.find_by_code("IMP-002")
        assert item.category == "Raw Material"
        assert item.current_stock == 20

    def test_skip_duplicates(self, ledger, make_item, tmp_path):
        make_item(item_code="DUP-001", name="Existing", current_stock=1)

        csv_file = tmp_path / "dup.csv"
        csv_file.write_text(
            "item_code,name,category,current_stock\n"
            "DUP-001,Updated,Component,50\n",
            encoding="utf-8",
        )

        results = import_inventory_csv(ledger, csv_file)
        assert results["skipped"] == 1
        assert ledger.find_by_code("DUP-001").name == "Existing"

    def test_update_existing_keeps_stock(self, ledger, make_item, tmp_path):
        make_item(item_code="UPD-001", name="Old Name", current_stock=4)

        csv_file = tmp_path / "upd.csv"
        csv_file.write_text(
            "item_code,name,category,current_stock,price\n"
            "UPD-001,New Name,Component,999,3.50\n",
            encoding="utf-8",
        )

        results = import_inventory_csv(ledger, csv_file, update_existing=True)
        assert results["updated"] == 1
        item = ledger.find_by_code("UPD-001")
        assert item.name == "New Name"
        assert item.price == 3.5
        assert item.current_stock == 4

    def test_invalid_rows_reported(self, ledger, tmp_path):
        csv_file = tmp_path / "bad.csv"
        csv_file.write_text(
            "item_code,name,category,current_stock\n"
            ",No Code,Component,1\n"
            "OK-1,Fine,Component,1\n"
            "BAD-2,Bad Stock,Component,-4\n",
            encoding="utf-8",
        )

        results = import_inventory_csv(ledger, csv_file)
        assert results["imported"] == 1
        assert results["skipped"] == 2
        assert any(e.startswith("Row 2:") for e in results["errors"])
        assert any(e.startswith("Row 4:") for e in results["errors"])

    def test_unknown_supplier_is_row_error(self, ledger, tmp_path):
        csv_file = tmp_path / "sup.csv"
        csv_file.write_text(
            "item_code,name,category,supplier_id\n"
            "SUP-1,Orphan,Component,77\n",
            encoding="utf-8",
        )

        results = import_inventory_csv(ledger, csv_file)
        assert results["imported"] == 0
        assert results["skipped"] == 1
        assert "Row 2:" in results["errors"][0]

    def test_missing_file(self, ledger, tmp_path):
        results = import_inventory_csv(ledger, tmp_path / "nope.csv")
        assert results["imported"] == 0
        assert results["errors"][0].startswith("File error:")
