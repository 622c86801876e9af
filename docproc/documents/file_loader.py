from pathlib import Path

from docproc.documents.exceptions import DocumentUnavailableError


class FileLoader:
    """Reads document bytes from local storage rooted at ``files_root``.

    Relative references resolve under the root; absolute ones must already
    point inside it. Anything escaping the root is rejected.
    """

    FILES_ROOT = Path("/app/files")

    def __init__(self, files_root: Path | None = None) -> None:
        self._files_root = (files_root if files_root is not None else self.FILES_ROOT).resolve()

    def resolve(self, reference: str) -> Path:
        if reference.startswith("file://"):
            reference = reference[len("file://"):]
        candidate = Path(reference)
        if not candidate.is_absolute():
            candidate = self._files_root / candidate
        path = candidate.resolve()
        if not path.is_relative_to(self._files_root):
            raise DocumentUnavailableError(f"Path escapes files root: {reference}")
        return path

    def load(self, reference: str) -> bytes:
        path = self.resolve(reference)
        if not path.is_file():
            raise DocumentUnavailableError(f"File not found: {path}")
        try:
            return path.read_bytes()
        except OSError as exc:
            raise DocumentUnavailableError(f"Cannot read {path}: {exc}") from exc
