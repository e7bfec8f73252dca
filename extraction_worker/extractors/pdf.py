from __future__ import annotations

import io
import logging
import os
import re
from collections.abc import Callable
from dataclasses import dataclass

import fitz  # PyMuPDF
from pypdf import PdfReader

from extraction_worker.errors import ExtractionError, InvalidPdfError
from extraction_worker.extractors.base import Extractor, normalize_text
from extraction_worker.extractors.sniff import HEADER_WINDOW, PDF_MAGIC, DocKind
from extraction_worker.ocr.pdf_ocr import PdfOcr
from extraction_worker.types import ExtractionOutcome, ExtractionStrategy

logger = logging.getLogger(__name__)

# Raw-byte markers that suggest page content is drawn from images
_IMAGE_MARKERS = re.compile(rb"/Image\b|/XObject\b|/Device(?:RGB|Gray|CMYK)\b")


@dataclass(frozen=True)
class PdfInspection:
    file_size: int
    header_present: bool
    encryption_suspected: bool
    has_image_markers: bool
    pages: int | None = None
    error: str | None = None

    @property
    def valid(self) -> bool:
        return self.error is None

    def describe(self) -> str:
        return (
            f"file size: {self.file_size} bytes, "
            f"header present: {'yes' if self.header_present else 'no'}, "
            f"encryption suspected: {'yes' if self.encryption_suspected else 'no'}"
        )


def inspect_pdf(data: bytes) -> PdfInspection:
    header_present = PDF_MAGIC in data[:HEADER_WINDOW]
    facts = dict(
        file_size=len(data),
        header_present=header_present,
        encryption_suspected=b"/Encrypt" in data,
        has_image_markers=_IMAGE_MARKERS.search(data) is not None,
    )
    if not header_present:
        return PdfInspection(**facts, error="PDF header missing")

    try:
        reader = PdfReader(io.BytesIO(data))
        if reader.is_encrypted and not reader.decrypt(""):
            return PdfInspection(**facts, error="PDF is encrypted and requires a password")
        pages = len(reader.pages)
    except Exception as e:
        return PdfInspection(**facts, error=f"PDF could not be parsed: {e}")

    if pages == 0:
        return PdfInspection(**facts, pages=0, error="PDF has no pages")
    return PdfInspection(**facts, pages=pages)


def looks_scanned(text: str, inspection: PdfInspection, *, min_chars: int, min_ratio: float) -> bool:
    """Sparse text layer on a file that carries image objects."""
    n = len(text)
    sparse = n < min_chars or (inspection.file_size > 0 and n / inspection.file_size < min_ratio)
    return sparse and inspection.has_image_markers


def pypdf_text(data: bytes) -> str:
    r = PdfReader(io.BytesIO(data))
    parts: list[str] = []
    for p in r.pages:
        t = p.extract_text() or ""
        if t.strip():
            parts.append(t)
    return "\n".join(parts)


def pymupdf_text(path: str) -> str:
    with fitz.open(path) as doc:
        return "\n".join(page.get_text("text") or "" for page in doc)


class PdfExtractor(Extractor):
    def __init__(
        self,
        *,
        min_text_chars: int = 100,
        min_text_ratio: float = 0.001,
        ocr: PdfOcr | None = None,
    ) -> None:
        self._min_chars = max(0, int(min_text_chars))
        self._min_ratio = float(min_text_ratio)
        self._ocr = ocr

    def can_handle(self, kind: DocKind) -> bool:
        return kind == DocKind.PDF

    def _usable(self, text: str, inspection: PdfInspection) -> bool:
        if not text:
            return False
        return not looks_scanned(text, inspection, min_chars=self._min_chars, min_ratio=self._min_ratio)

    def _attempt(self, name: str, fn: Callable[[], str], failures: dict[str, str]) -> str:
        try:
            return normalize_text(fn())
        except Exception as e:
            logger.warning("PDF %s extraction failed: %s", name, e)
            failures[name] = f"{type(e).__name__}: {e}"
            return ""

    def extract(self, path: str) -> ExtractionOutcome:
        with open(path, "rb") as f:
            data = f.read()

        insp = inspect_pdf(data)
        if not insp.valid:
            # Structural problems are terminal; no text layer or OCR attempt
            raise InvalidPdfError(f"{insp.error} ({insp.describe()})", attempted=("validate",))

        attempted: list[str] = []
        failures: dict[str, str] = {}
        candidates: list[tuple[ExtractionStrategy, str]] = []

        for strategy, fn in (
            (ExtractionStrategy.PYPDF, lambda: pypdf_text(data)),
            (ExtractionStrategy.PYMUPDF, lambda: pymupdf_text(path)),
        ):
            attempted.append(strategy.value)
            text = self._attempt(strategy.value, fn, failures)
            if self._usable(text, insp):
                return ExtractionOutcome(text=text, strategy=strategy, pages=insp.pages)
            if text:
                candidates.append((strategy, text))
            logger.info(
                "PDF %s text insufficient (chars=%d, size=%d, image markers=%s)",
                strategy,
                len(text),
                insp.file_size,
                insp.has_image_markers,
            )

        if self._ocr is None:
            attempted.append("ocr (disabled)")
        else:
            attempted.append(ExtractionStrategy.OCR.value)
            try:
                result = self._ocr.run(path)
            except Exception as e:
                logger.warning("PDF OCR failed: %s", e)
                failures["ocr"] = f"{type(e).__name__}: {e}"
            else:
                text = normalize_text(result.text)
                if text:
                    diagnostic = f"OCR over {result.pages_ocred} of {result.total_pages} page(s)"
                    if result.failed_pages:
                        diagnostic += f"; failed pages: {sorted(result.failed_pages)}"
                    return ExtractionOutcome(
                        text=text,
                        strategy=ExtractionStrategy.OCR,
                        diagnostic=diagnostic,
                        pages=insp.pages,
                    )
                if result.failed_pages:
                    failures["ocr"] = "; ".join(f"page {n}: {err}" for n, err in sorted(result.failed_pages.items()))

        if candidates:
            # A thin text layer beats nothing when OCR could not improve on it
            strategy, text = max(candidates, key=lambda c: len(c[1]))
            return ExtractionOutcome(
                text=text,
                strategy=strategy,
                diagnostic="sparse text layer kept; OCR produced no text",
                pages=insp.pages,
            )

        detail = "; ".join(f"{k}: {v}" for k, v in failures.items())
        raise ExtractionError(
            f"No text could be extracted from PDF {os.path.basename(path)} "
            f"(attempted: {', '.join(attempted)}; {insp.describe()}"
            + (f"; {detail}" if detail else "")
            + ")",
            attempted=attempted,
        )
