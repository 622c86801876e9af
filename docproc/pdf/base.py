from abc import ABC, abstractmethod


class BasePdfExtractor(ABC):
    """Contract for PDF-to-text engines used when fetching documents."""

    PAGE_SEPARATOR = "\n"

    @abstractmethod
    def extract(self, pdf_bytes: bytes) -> str:
        """Return the text of all pages joined by ``PAGE_SEPARATOR``.

        Raises:
            PdfExtractionError: if the engine cannot read the document.
        """
