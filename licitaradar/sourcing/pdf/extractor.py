"""PDF text extraction, normalization and chunking for attachments."""

import re
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional

import pdfplumber

from licitaradar.core.logging import get_logger

logger = get_logger("sourcing.pdf")

# Constants for limits
MAX_PDF_PAGES = 200
DEFAULT_CHUNK_SIZE = 1000
DEFAULT_CHUNK_OVERLAP = 100

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class ScratchSpace:
    """Temporary directory plus the files written into it.

    Both are removed on exit, whatever the exit path:

        with ScratchSpace() as scratch:
            path = scratch.write("edital.pdf", data)
    """

    def __init__(self, prefix: str = "licitaradar-"):
        self._prefix = prefix
        self._directory: Optional[Path] = None
        self._files: List[Path] = []

    def __enter__(self) -> "ScratchSpace":
        self._directory = Path(tempfile.mkdtemp(prefix=self._prefix))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()

    @property
    def directory(self) -> Path:
        if self._directory is None:
            raise RuntimeError("ScratchSpace not acquired")
        return self._directory

    @property
    def files(self) -> List[Path]:
        return list(self._files)

    def write(self, name: str, data: bytes) -> Path:
        """Write ``data`` to a new tracked file in the scratch directory."""
        safe_name = _UNSAFE_NAME_CHARS.sub("_", name).strip("._") or "arquivo"
        path = self.directory / f"{len(self._files):03d}_{safe_name}"
        path.write_bytes(data)
        self._files.append(path)
        return path

    def release(self) -> None:
        for path in self._files:
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Arquivo temporário não removido: %s (%s)", path, e)
        self._files.clear()
        if self._directory is not None:
            shutil.rmtree(self._directory, ignore_errors=True)
            self._directory = None


def extract_pdf_text(path: Path, max_pages: int = MAX_PDF_PAGES) -> str:
    """Extract text content from a PDF file, pages in order.

    Args:
        path: PDF file
        max_pages: Maximum pages to process

    Returns:
        Extracted text ("" for PDFs without a text layer)

    Raises:
        Exception: pdfplumber/pdfminer errors for unreadable files
    """
    text_parts = []
    with pdfplumber.open(path) as pdf:
        total_pages = len(pdf.pages)
        if total_pages > max_pages:
            logger.warning(
                "PDF com %d páginas, processando apenas as primeiras %d",
                total_pages,
                max_pages,
            )

        for i, page in enumerate(pdf.pages[:max_pages]):
            try:
                text_parts.append(page.extract_text() or "")
            except Exception as e:
                logger.debug("Erro ao extrair página %d: %s", i + 1, e)
                continue

    text = "\n".join(text_parts)
    logger.debug("Extraídos %d caracteres de %d páginas", len(text), min(total_pages, max_pages))
    return text


def normalize_text(text: str) -> str:
    """Collapse every whitespace run to a single space and trim."""
    if not text:
        return ""
    return re.sub(r"\s+", " ", text).strip()


def chunk_text(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> List[str]:
    """Split normalized text into overlapping fixed-size windows.

    Window ``i`` starts at ``i * (chunk_size - overlap)``; the last window
    ends at the end of the text. Dropping the first ``overlap`` characters
    of every chunk but the first and concatenating gives back the
    normalized text.

    Args:
        text: Source text (normalized here)
        chunk_size: Window length in characters
        overlap: Characters shared by consecutive windows

    Returns:
        List of chunks (empty for blank text)
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if overlap < 0 or overlap >= chunk_size:
        raise ValueError("overlap must be >= 0 and smaller than chunk_size")

    cleaned = normalize_text(text)
    chunks = []
    step = chunk_size - overlap
    start = 0
    while start < len(cleaned):
        end = min(start + chunk_size, len(cleaned))
        chunks.append(cleaned[start:end])
        if end == len(cleaned):
            break
        start += step
    return chunks
