"""Tests for job card QR label generation."""

import os

import pytest

from workshop_ops.config import Config
from workshop_ops.database.models import JobCard
from workshop_ops.utils.qr_generator import (
    _make_qr_image,
    _truncate,
    build_scan_data,
    generate_job_card_labels,
    parse_scan_data,
)


def _sample_jobs(count: int = 1) -> list[JobCard]:
    """Build a list of sample job cards for testing."""
    return [
        JobCard(
            id=i,
            job_code=f"JOB-2026-{i:03d}",
            part_name=f"Steel Bracket {i}",
            quantity=i,
            scheduled_date="2026-03-10T08:00:00+00:00" if i % 2 else None,
        )
        for i in range(1, count + 1)
    ]


class TestScanData:
    """Label text written into and read back from the QR code."""

    def test_build(self):
        assert build_scan_data("JOB-2026-001") == "JC:JOB-2026-001"

    def test_parse(self):
        assert parse_scan_data("JC:JOB-2026-001") == "JOB-2026-001"

    def test_parse_strips_whitespace(self):
        assert parse_scan_data("  JC: JOB-2026-001 \n") == "JOB-2026-001"

    @pytest.mark.parametrize("data", ["", None, "JC:", "WP:PN-1", "JOB-2026-001"])
    def test_parse_rejects_other_labels(self, data):
        assert parse_scan_data(data) is None


class TestQRImage:
    def test_returns_png_buffer(self):
        buf = _make_qr_image("JC:JOB-2026-001")
        assert buf.read(8) == b"\x89PNG\r\n\x1a\n"


class TestTruncate:
    def test_short_text_unchanged(self):
        assert _truncate("Hinge", 10) == "Hinge"

    def test_long_text_gets_ellipsis(self):
        result = _truncate("A" * 30, 10)
        assert len(result) == 10
        assert result.endswith("…")

    def test_none_becomes_empty(self):
        assert _truncate(None, 5) == ""


class TestGenerateLabels:
    def test_creates_pdf(self, tmp_path):
        out = tmp_path / "labels.pdf"
        path = generate_job_card_labels(_sample_jobs(3), str(out))
        assert path == str(out)
        with open(path, "rb") as f:
            assert f.read(5) == b"%PDF-"

    def test_spills_onto_second_page(self, tmp_path):
        out = tmp_path / "many.pdf"
        generate_job_card_labels(_sample_jobs(31), str(out))
        assert out.stat().st_size > 0

    def test_default_output_directory(self, tmp_path, monkeypatch):
        monkeypatch.setattr(Config, "LABEL_OUTPUT_DIRECTORY", str(tmp_path / "labels"))
        path = generate_job_card_labels(_sample_jobs(1))
        assert os.path.basename(path) == "job_card_labels.pdf"
        assert os.path.exists(path)
