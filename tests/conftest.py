import io

import pytest
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

TENDER_TITLE = "Tender 2024-17: Road resurfacing, Budget: $500,000"
SCOPE_SECTION = "Section 1: Scope of works"
EVALUATION_SECTION = "Section 2: Evaluation criteria"


def _render(*pages: list[str]) -> bytes:
    buf = io.BytesIO()
    pdf = canvas.Canvas(buf, pagesize=A4)
    for lines in pages:
        y = 780
        for line in lines:
            pdf.drawString(60, y, line)
            y -= 18
        pdf.showPage()
    pdf.save()
    return buf.getvalue()


@pytest.fixture()
def tender_pdf_bytes() -> bytes:
    """Single-page tender notice."""
    return _render([TENDER_TITLE, "Deadline: 2024-09-30"])


@pytest.fixture()
def sectioned_tender_pdf_bytes() -> bytes:
    """Tender with one section per page."""
    return _render([SCOPE_SECTION], [EVALUATION_SECTION])


@pytest.fixture()
def blank_pdf_bytes() -> bytes:
    """Valid PDF whose only page carries no text."""
    return _render([])
