import httpx

from docproc.database.models import DocumentRef
from docproc.documents.exceptions import DocumentUnavailableError
from docproc.documents.file_loader import FileLoader
from docproc.logging.logger import Log
from docproc.pdf.base import BasePdfExtractor
from docproc.pdf.exceptions import PdfExtractionError

PDF_MAGIC = b"%PDF"
PDF_MIME_TYPES = frozenset({"application/pdf", "pdf"})


class DocumentFetcher:
    """Turns a document reference into plain text.

    ``http(s)`` URLs are downloaded; anything else is read through the
    FileLoader. PDFs are converted with the configured extractor, other
    content must be UTF-8 text.
    """

    def __init__(
        self,
        file_loader: FileLoader,
        pdf_extractor: BasePdfExtractor,
        *,
        timeout_seconds: int = 30,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._file_loader = file_loader
        self._pdf_extractor = pdf_extractor
        self._timeout_seconds = timeout_seconds
        self._http = http_client or httpx.Client(timeout=timeout_seconds, follow_redirects=True)

    def fetch_content(self, document: DocumentRef) -> str:
        """Return the document text.

        Raises:
            DocumentUnavailableError: download/read failure, unreadable PDF,
                undecodable bytes or empty text.
        """
        if document.url.startswith(("http://", "https://")):
            data, content_type = self._download(document.url)
        else:
            data, content_type = self._file_loader.load(document.url), None

        if self._is_pdf(document, data, content_type):
            try:
                text = self._pdf_extractor.extract(data)
            except PdfExtractionError as exc:
                raise DocumentUnavailableError(str(exc)) from exc
        else:
            try:
                text = data.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise DocumentUnavailableError(
                    f"Document {document.id} is neither PDF nor UTF-8 text"
                ) from exc

        if not text.strip():
            raise DocumentUnavailableError(f"Document {document.id} has no text content")
        Log.debug(f"Fetched {len(text)} chars for document {document.id}")
        return text

    def _download(self, url: str) -> tuple[bytes, str | None]:
        try:
            response = self._http.get(url, timeout=self._timeout_seconds)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise DocumentUnavailableError(
                f"Document download failed with status {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise DocumentUnavailableError(f"Document download failed: {exc}") from exc
        content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
        return response.content, content_type or None

    @staticmethod
    def _is_pdf(document: DocumentRef, data: bytes, content_type: str | None) -> bool:
        declared = (document.type or "").lower()
        return (
            data.startswith(PDF_MAGIC)
            or declared in PDF_MIME_TYPES
            or content_type in PDF_MIME_TYPES
        )
