import io

import pdfplumber

from docproc.pdf.base import BasePdfExtractor
from docproc.pdf.exceptions import PdfExtractionError


class PdfPlumberAdapter(BasePdfExtractor):
    """Extracts text with pdfplumber. Pages without a text layer yield nothing."""

    def extract(self, pdf_bytes: bytes) -> str:
        try:
            with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
                texts = [page.extract_text() or "" for page in pdf.pages]
        except Exception as exc:
            raise PdfExtractionError(f"pdfplumber could not read document: {exc}") from exc
        return self.PAGE_SEPARATOR.join(texts).strip()
