"""Raw text extraction for rollout plan documents."""
from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from bs4 import BeautifulSoup
from docx import Document
from docx.document import Document as DocxDocument
from docx.oxml.table import CT_Tbl
from docx.oxml.text.paragraph import CT_P
from docx.table import Table, _Cell
from docx.text.paragraph import Paragraph

logger = logging.getLogger(__name__)

DEFAULT_PDF_BACKENDS = [
    "pypdf",
    "pdfminer",
    "pikepdf+pypdf",
    "pikepdf+pdfminer",
]

DEFAULT_MIN_PDF_CHARS = 200

TEXT_EXTENSIONS = {".md", ".markdown", ".txt"}
HTML_EXTENSIONS = {".html", ".htm"}
SUPPORTED_EXTENSIONS = TEXT_EXTENSIONS | HTML_EXTENSIONS | {".docx", ".pdf"}


class UnsupportedFormatError(ValueError):
    """Raised for a file extension no extractor handles."""

    def __init__(self, extension: str) -> None:
        self.extension = extension or "(none)"
        super().__init__(f"unsupported rollout plan format: {self.extension}")


@dataclass
class ExtractedText:
    text: str
    source_format: str
    pdf_meta: dict[str, Any] | None = None


def resolve_backend_order(prefer_backends: Iterable[str] | None) -> list[str]:
    if prefer_backends:
        order = [backend.strip() for backend in prefer_backends if backend and backend.strip()]
    else:
        env_value = os.environ.get("ROLLOUT_PDF_BACKENDS")
        if env_value:
            order = [backend.strip() for backend in env_value.split(",") if backend.strip()]
        else:
            order = list(DEFAULT_PDF_BACKENDS)
    return _dedupe(order) or list(DEFAULT_PDF_BACKENDS)


def resolve_min_pdf_chars(value: int | None) -> int:
    if value is not None:
        return max(value, 0)
    env_value = os.environ.get("ROLLOUT_MIN_PDF_CHARS")
    if env_value:
        try:
            return max(int(env_value), 0)
        except ValueError:
            logger.debug("Invalid ROLLOUT_MIN_PDF_CHARS value: %s", env_value)
    return DEFAULT_MIN_PDF_CHARS


def _dedupe(sequence: Iterable[str]) -> list[str]:
    seen = set()
    result: list[str] = []
    for item in sequence:
        if item and item not in seen:
            result.append(item)
            seen.add(item)
    return result


def extract_text(
    path: str | Path,
    *,
    min_pdf_chars: int | None = None,
    pdf_backends: Iterable[str] | None = None,
) -> ExtractedText:
    """Return the plain text of ``path``, dispatching on its extension.

    Missing files raise :class:`FileNotFoundError`, unknown extensions raise
    :class:`UnsupportedFormatError`, and failures inside the DOCX/PDF
    libraries propagate as raised by those libraries.
    """

    file_path = Path(path)
    suffix = file_path.suffix.lower()
    if suffix not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFormatError(suffix)
    if not file_path.is_file():
        raise FileNotFoundError(f"rollout plan not found: {file_path}")
    if suffix in TEXT_EXTENSIONS:
        return ExtractedText(file_path.read_text(encoding="utf-8"), "markdown")
    if suffix in HTML_EXTENSIONS:
        return ExtractedText(extract_html_text(file_path), "html")
    if suffix == ".docx":
        return ExtractedText(extract_docx_text(file_path), "docx")
    text, meta = extract_pdf_text(
        file_path,
        min_chars=resolve_min_pdf_chars(min_pdf_chars),
        prefer_backends=pdf_backends,
    )
    return ExtractedText(text, "pdf", meta)


def extract_html_text(path: Path) -> str:
    soup = BeautifulSoup(path.read_text(encoding="utf-8"), "lxml")
    return soup.get_text("\n")


def extract_docx_text(path: Path) -> str:
    document = Document(str(path))
    return "\n".join(_iter_docx_lines(document))


def _iter_block_items(parent: DocxDocument | _Cell) -> Iterator[Paragraph | Table]:
    if isinstance(parent, DocxDocument):
        parent_elm = parent.element.body
    else:
        parent_elm = parent._tc
    for child in parent_elm.iterchildren():
        if isinstance(child, CT_P):
            yield Paragraph(child, parent)
        elif isinstance(child, CT_Tbl):
            yield Table(child, parent)


def _iter_docx_lines(parent: DocxDocument | _Cell) -> Iterator[str]:
    for block in _iter_block_items(parent):
        if isinstance(block, Paragraph):
            yield block.text
            continue
        for row in block.rows:
            seen_cells = set()
            for cell in row.cells:
                # merged cells repeat across the row
                if id(cell._tc) in seen_cells:
                    continue
                seen_cells.add(id(cell._tc))
                yield from _iter_docx_lines(cell)


def extract_pdf_text(
    path: str | Path,
    *,
    min_chars: int = DEFAULT_MIN_PDF_CHARS,
    prefer_backends: Iterable[str] | None = None,
) -> tuple[str, dict[str, Any]]:
    """Extract text from a PDF using a cascading set of backends.

    The first backend yielding ``min_chars`` characters wins; otherwise the
    longest text seen is returned. When no backend produced any text and at
    least one of them raised, the last library exception is re-raised.
    """

    pdf_path = Path(path)
    try:
        byte_size = pdf_path.stat().st_size
    except OSError:
        byte_size = 0

    backend_order = resolve_backend_order(prefer_backends)
    best_text = ""
    best_backend = "none"
    best_repaired = False
    all_warnings: list[str] = []
    last_exc: Exception | None = None

    with tempfile.TemporaryDirectory(prefix="rollout_pdf_") as tmp_dir:
        repaired_path: Path | None = None
        repair_exc: Exception | None = None

        for backend_name in backend_order:
            use_repair = backend_name.startswith("pikepdf+")
            base_backend = backend_name.split("+", 1)[-1] if use_repair else backend_name
            target_path = pdf_path

            if use_repair:
                if repaired_path is None and repair_exc is None:
                    try:
                        repaired_path = _repair_pdf_with_pikepdf(pdf_path, Path(tmp_dir))
                    except Exception as exc:  # pragma: no cover - depends on document
                        repair_exc = exc
                        logger.debug("pikepdf repair failed for %s: %s", pdf_path, exc)
                if repaired_path is None:
                    all_warnings.append(f"{backend_name}: pikepdf repair failed: {repair_exc}")
                    last_exc = repair_exc
                    continue
                target_path = repaired_path

            try:
                text, backend_warnings = _extract_with_backend(base_backend, target_path)
            except Exception as exc:
                logger.debug("PDF backend %s failed for %s: %s", base_backend, pdf_path, exc)
                all_warnings.append(f"{backend_name}: {exc}")
                last_exc = exc
                continue

            all_warnings.extend(f"{backend_name}: {warning}" for warning in backend_warnings)
            if not text.strip():
                all_warnings.append(f"{backend_name}: extracted text empty")
                continue
            if len(text) > len(best_text):
                best_text = text
                best_backend = backend_name
                best_repaired = use_repair
            if len(text) >= min_chars:
                break
            all_warnings.append(
                f"{backend_name}: extracted text shorter than min_chars ({len(text)} < {min_chars})"
            )

    if not best_text and last_exc is not None:
        raise last_exc
    meta = {
        "backend": best_backend,
        "bytes": byte_size,
        "chars": len(best_text),
        "warnings": _dedupe(all_warnings),
        "repaired": best_repaired,
        "error": str(last_exc) if last_exc is not None else None,
    }
    return best_text, meta


def _extract_with_backend(backend: str, path: Path) -> tuple[str, list[str]]:
    if backend == "pypdf":
        return _extract_with_pypdf(path)
    if backend == "pdfminer":
        return _extract_with_pdfminer(path)
    raise ValueError(f"unknown PDF backend: {backend}")


def _extract_with_pypdf(path: Path) -> tuple[str, list[str]]:
    from pypdf import PdfReader

    warnings: list[str] = []
    reader = PdfReader(str(path))
    text_chunks: list[str] = []
    for page_number, page in enumerate(reader.pages, start=1):
        try:
            text = page.extract_text() or ""
        except Exception as exc:  # pragma: no cover - depends on document
            warnings.append(f"page {page_number}: {exc}")
            text = ""
        text_chunks.append(text)
    return "\n".join(text_chunks), warnings


def _extract_with_pdfminer(path: Path) -> tuple[str, list[str]]:
    from pdfminer.high_level import extract_text as pdfminer_extract_text

    return pdfminer_extract_text(str(path)) or "", []


def _repair_pdf_with_pikepdf(source: Path, temp_dir: Path) -> Path:
    from pikepdf import Pdf

    repaired_path = temp_dir / "repaired.pdf"
    with Pdf.open(str(source)) as pdf:
        pdf.save(str(repaired_path))
    return repaired_path
