from __future__ import annotations

import logging
import os

from extraction_worker.extractors.base import Extractor, normalize_text
from extraction_worker.extractors.sniff import DocKind
from extraction_worker.types import ExtractionOutcome, ExtractionStrategy

logger = logging.getLogger(__name__)


def truncation_note(shown: int, total: int) -> str:
    return f"[Truncated: showing first {shown} of {total} bytes]"


class TextExtractor(Extractor):
    """Plain text files, with a lossy decode for files that are not UTF-8."""

    def __init__(self, *, max_bytes: int) -> None:
        self._max = max(1, int(max_bytes))

    def can_handle(self, kind: DocKind) -> bool:
        return kind == DocKind.TEXT

    def extract(self, path: str) -> ExtractionOutcome:
        try:
            with open(path, encoding="utf-8") as f:
                text = f.read()
            return ExtractionOutcome(text=normalize_text(text), strategy=ExtractionStrategy.TEXT)
        except UnicodeDecodeError as e:
            logger.info("Text file is not valid UTF-8 (%s), decoding with replacement", e.reason)

        return self.extract_lossy(path)

    def extract_lossy(self, path: str) -> ExtractionOutcome:
        total = os.path.getsize(path)
        with open(path, "rb") as f:
            data = f.read(self._max)

        text = normalize_text(data.decode("utf-8", errors="replace"))
        diagnostic = "decoded with replacement characters (invalid UTF-8)"
        if total > len(data):
            note = truncation_note(len(data), total)
            text = f"{text}\n\n{note}" if text else note
            diagnostic = f"{diagnostic}; {note}"
        return ExtractionOutcome(
            text=text,
            strategy=ExtractionStrategy.TEXT_BINARY_FALLBACK,
            diagnostic=diagnostic,
        )
