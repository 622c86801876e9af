from pathlib import Path
from unittest.mock import MagicMock

import httpx
import pytest

from docproc.database.models import DocumentRef
from docproc.documents.exceptions import DocumentUnavailableError
from docproc.documents.fetcher import DocumentFetcher
from docproc.documents.file_loader import FileLoader
from docproc.pdf.exceptions import PdfExtractionError
from docproc.pdf.pdfplumber_adapter import PdfPlumberAdapter


def _make_fetcher(
    handler=None,  # type: ignore[no-untyped-def]
    *,
    files_root: Path | None = None,
    pdf_extractor=None,  # type: ignore[no-untyped-def]
) -> DocumentFetcher:
    http_client = httpx.Client(transport=httpx.MockTransport(handler)) if handler else None
    return DocumentFetcher(
        FileLoader(files_root or Path("/nonexistent")),
        pdf_extractor or PdfPlumberAdapter(),
        http_client=http_client,
    )


def _doc(url: str, type: str | None = None) -> DocumentRef:
    return DocumentRef(id=7, url=url, name="doc", type=type)


class TestLocalDocuments:
    def test_reads_utf8_text(self, tmp_path: Path) -> None:
        (tmp_path / "tender.txt").write_text("Budget: $500", encoding="utf-8")
        fetcher = _make_fetcher(files_root=tmp_path)

        assert fetcher.fetch_content(_doc("tender.txt")) == "Budget: $500"

    def test_extracts_pdf_by_magic_bytes(self, tmp_path: Path, tender_pdf_bytes: bytes) -> None:
        (tmp_path / "tender.bin").write_bytes(tender_pdf_bytes)
        fetcher = _make_fetcher(files_root=tmp_path)

        assert "Tender 2024-17" in fetcher.fetch_content(_doc("tender.bin"))

    def test_rejects_undecodable_bytes(self, tmp_path: Path) -> None:
        (tmp_path / "blob.bin").write_bytes(b"\xff\xfe\x00binary")
        fetcher = _make_fetcher(files_root=tmp_path)

        with pytest.raises(DocumentUnavailableError, match="neither PDF nor UTF-8"):
            fetcher.fetch_content(_doc("blob.bin"))

    def test_rejects_empty_text(self, tmp_path: Path, blank_pdf_bytes: bytes) -> None:
        (tmp_path / "blank.pdf").write_bytes(blank_pdf_bytes)
        fetcher = _make_fetcher(files_root=tmp_path)

        with pytest.raises(DocumentUnavailableError, match="no text content"):
            fetcher.fetch_content(_doc("blank.pdf"))

    def test_wraps_pdf_extraction_errors(self, tmp_path: Path) -> None:
        (tmp_path / "broken.pdf").write_bytes(b"%PDF-broken")
        extractor = MagicMock()
        extractor.extract.side_effect = PdfExtractionError("cannot parse")
        fetcher = _make_fetcher(files_root=tmp_path, pdf_extractor=extractor)

        with pytest.raises(DocumentUnavailableError, match="cannot parse"):
            fetcher.fetch_content(_doc("broken.pdf"))


class TestRemoteDocuments:
    def test_downloads_text(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert str(request.url) == "https://files.example.com/a.txt"
            return httpx.Response(200, text="remote text", headers={"content-type": "text/plain"})

        fetcher = _make_fetcher(handler)

        assert fetcher.fetch_content(_doc("https://files.example.com/a.txt")) == "remote text"

    def test_uses_content_type_for_pdf(self) -> None:
        extractor = MagicMock()
        extractor.extract.return_value = "pdf text"

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, content=b"binary", headers={"content-type": "application/pdf; qs=1"}
            )

        fetcher = _make_fetcher(handler, pdf_extractor=extractor)

        assert fetcher.fetch_content(_doc("https://files.example.com/a")) == "pdf text"
        extractor.extract.assert_called_once_with(b"binary")

    def test_http_error_status(self) -> None:
        fetcher = _make_fetcher(lambda request: httpx.Response(404))

        with pytest.raises(DocumentUnavailableError, match="status 404"):
            fetcher.fetch_content(_doc("https://files.example.com/missing"))

    def test_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        fetcher = _make_fetcher(handler)

        with pytest.raises(DocumentUnavailableError, match="download failed"):
            fetcher.fetch_content(_doc("https://files.example.com/a.txt"))
