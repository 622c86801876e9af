from typing import ClassVar

from docproc.config.settings import Settings
from docproc.pdf.base import BasePdfExtractor
from docproc.pdf.pdfplumber_adapter import PdfPlumberAdapter
from docproc.pdf.pymupdf_adapter import PyMuPdfAdapter


class PdfExtractorFactory:
    """Picks the PDF engine named by ``Settings.pdf_engine``."""

    ADAPTERS: ClassVar[dict[str, type[BasePdfExtractor]]] = {
        "pdfplumber": PdfPlumberAdapter,
        "pymupdf": PyMuPdfAdapter,
    }

    @classmethod
    def create(cls, settings: Settings) -> BasePdfExtractor:
        engine = settings.pdf_engine.strip().lower()
        if engine not in cls.ADAPTERS:
            raise ValueError(f"Unknown PDF engine '{engine}'. Choose from: {sorted(cls.ADAPTERS)}")
        return cls.ADAPTERS[engine]()
