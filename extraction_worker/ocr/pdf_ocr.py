"""OCR for scanned PDFs: rasterise pages with PyMuPDF, recognise in small batches."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import fitz  # PyMuPDF

from extraction_worker.ocr.document_ai import OcrEngine

logger = logging.getLogger(__name__)


def page_marker(page_number: int) -> str:
    return f"--- Page {page_number} ---"


@dataclass(frozen=True)
class OcrResult:
    text: str
    pages_ocred: int
    total_pages: int
    failed_pages: dict[int, str] = field(default_factory=dict)

    @property
    def truncated(self) -> bool:
        return self.pages_ocred < self.total_pages


class PdfOcr:
    def __init__(
        self,
        *,
        engine: OcrEngine,
        max_pages: int = 20,
        batch_size: int = 3,
        dpi: int = 200,
        temp_dir: str | None = None,
    ) -> None:
        self._engine = engine
        self._max_pages = max(1, int(max_pages))
        self._batch = max(1, int(batch_size))
        self._dpi = int(dpi)
        self._temp_dir = temp_dir

    def rasterize(self, pdf_path: str, out_dir: str) -> tuple[list[str], int]:
        """Render up to ``max_pages`` pages to PNG; returns (image paths in page order, total pages)."""
        images: list[str] = []
        with fitz.open(pdf_path) as doc:
            total = doc.page_count
            for i in range(min(total, self._max_pages)):
                pix = doc[i].get_pixmap(dpi=self._dpi, alpha=False)
                out = os.path.join(out_dir, f"page-{i + 1:04d}.png")
                pix.save(out)
                images.append(out)
        return images, total

    def _recognize_file(self, image_path: str) -> str:
        with open(image_path, "rb") as f:
            return self._engine.recognize(f.read(), "image/png")

    def run(self, pdf_path: str) -> OcrResult:
        if self._temp_dir:
            os.makedirs(self._temp_dir, exist_ok=True)
        work_dir = tempfile.mkdtemp(prefix="ocr-", dir=self._temp_dir)
        try:
            images, total = self.rasterize(pdf_path, work_dir)
            texts: list[str] = [""] * len(images)
            failed: dict[int, str] = {}

            with ThreadPoolExecutor(max_workers=self._batch) as pool:
                for start in range(0, len(images), self._batch):
                    batch = images[start : start + self._batch]
                    futures = [pool.submit(self._recognize_file, p) for p in batch]
                    for offset, fut in enumerate(futures):
                        idx = start + offset
                        try:
                            texts[idx] = fut.result() or ""
                        except Exception as e:
                            logger.warning("OCR failed on page %d of %s: %s", idx + 1, pdf_path, e)
                            failed[idx + 1] = f"{type(e).__name__}: {e}"

            parts = [f"{page_marker(n)}\n{t.strip()}" for n, t in enumerate(texts, start=1) if t.strip()]
            logger.info(
                "OCR finished pages=%d/%d failed=%d chars=%d",
                len(images),
                total,
                len(failed),
                sum(len(t) for t in texts),
            )
            return OcrResult(
                text="\n\n".join(parts),
                pages_ocred=len(images),
                total_pages=total,
                failed_pages=failed,
            )
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)
