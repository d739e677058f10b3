"""Generate printable QR labels for job cards.

Creates label-style PDF pages (Avery 5160 compatible) that travel with the
work on the floor. Each label contains:
  - QR code (left) encoding ``JC:<job_code>`` for the job card scanner
  - Text block (right): Job code, Part, Quantity, Scheduled date

Usage::

    from workshop_ops.utils.qr_generator import generate_job_card_labels

    pdf_path = generate_job_card_labels(repo.get_all_job_cards("Pending"))
"""

import io
import os

import qrcode
from reportlab.lib.pagesizes import LETTER
from reportlab.lib.units import inch
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from workshop_ops.config import Config
from workshop_ops.database.models import JobCard
from workshop_ops.utils.constants import JOB_CARD_QR_PREFIX

# ── Label grid constants (Avery 5160 compatible) ─────────────
PAGE_WIDTH, PAGE_HEIGHT = LETTER
COLS = 3
ROWS_PER_PAGE = 10
LABEL_WIDTH = 2.625 * inch
LABEL_HEIGHT = 1.0 * inch
LEFT_MARGIN = 0.1875 * inch
TOP_MARGIN = 0.5 * inch
COL_GAP = 0.125 * inch

QR_SIZE = 0.85 * inch
TEXT_LEFT_OFFSET = 0.95 * inch
FONT_NAME = "Helvetica"
FONT_SIZE_TITLE = 7
FONT_SIZE_DETAIL = 5.5


def generate_job_card_labels(
    jobs: list[JobCard],
    output_path: str | None = None,
) -> str:
    """Generate a PDF with one QR label per job card.

    Args:
        jobs: Job cards to label; each needs a ``job_code``.
        output_path: Optional output PDF path. Defaults to
            ``job_card_labels.pdf`` in ``Config.LABEL_OUTPUT_DIRECTORY``.

    Returns:
        Path to the generated PDF file.
    """
    if not output_path:
        os.makedirs(Config.LABEL_OUTPUT_DIRECTORY, exist_ok=True)
        output_path = os.path.join(
            Config.LABEL_OUTPUT_DIRECTORY, "job_card_labels.pdf"
        )

    c = canvas.Canvas(output_path, pagesize=LETTER)
    c.setTitle("Job Card Labels")

    for idx, job in enumerate(jobs):
        col = idx % COLS
        row_on_page = (idx // COLS) % ROWS_PER_PAGE

        if idx > 0 and col == 0 and row_on_page == 0:
            c.showPage()

        x = LEFT_MARGIN + col * (LABEL_WIDTH + COL_GAP)
        y = PAGE_HEIGHT - TOP_MARGIN - (row_on_page + 1) * LABEL_HEIGHT

        c.drawImage(
            ImageReader(_make_qr_image(build_scan_data(job.job_code))),
            x + 0.05 * inch,
            y + 0.075 * inch,
            width=QR_SIZE,
            height=QR_SIZE,
        )

        text_x = x + TEXT_LEFT_OFFSET
        text_y = y + LABEL_HEIGHT - 0.15 * inch

        c.setFont(FONT_NAME + "-Bold", FONT_SIZE_TITLE)
        c.drawString(text_x, text_y, _truncate(job.job_code, 22))

        c.setFont(FONT_NAME, FONT_SIZE_DETAIL)
        text_y -= 0.12 * inch
        c.drawString(text_x, text_y, _truncate(job.part_name, 28))

        text_y -= 0.1 * inch
        c.drawString(text_x, text_y, f"Qty: {job.quantity}")

        if job.scheduled_date:
            text_y -= 0.1 * inch
            c.drawString(text_x, text_y, f"Due: {job.scheduled_date[:10]}")

    c.save()
    return output_path


def build_scan_data(job_code: str) -> str:
    return f"{JOB_CARD_QR_PREFIX}{job_code}"


def parse_scan_data(data: str) -> str | None:
    """Return the job code from scanned label text, or None if not a job card."""
    text = (data or "").strip()
    if not text.startswith(JOB_CARD_QR_PREFIX):
        return None
    code = text[len(JOB_CARD_QR_PREFIX):].strip()
    return code or None


def _make_qr_image(data: str) -> io.BytesIO:
    """Generate a QR code image and return as a BytesIO buffer."""
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=1,
    )
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    buf.seek(0)
    return buf


def _truncate(text: str, max_len: int) -> str:
    """Truncate text with ellipsis if too long."""
    text = text or ""
    if len(text) > max_len:
        return text[: max_len - 1] + "…"
    return text
