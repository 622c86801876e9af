import pymupdf

from docproc.pdf.base import BasePdfExtractor
from docproc.pdf.exceptions import PdfExtractionError


class PyMuPdfAdapter(BasePdfExtractor):
    """Extracts text with PyMuPDF; faster on large documents."""

    def extract(self, pdf_bytes: bytes) -> str:
        try:
            with pymupdf.open(stream=pdf_bytes, filetype="pdf") as doc:  # type: ignore[no-untyped-call]
                texts = [page.get_text() for page in doc]
        except Exception as exc:
            raise PdfExtractionError(f"pymupdf could not read document: {exc}") from exc
        return self.PAGE_SEPARATOR.join(texts).strip()
