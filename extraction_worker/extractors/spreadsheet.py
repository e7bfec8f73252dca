from __future__ import annotations

import os

from extraction_worker.extractors.base import Extractor
from extraction_worker.extractors.sniff import DocKind
from extraction_worker.types import ExtractionOutcome, ExtractionStrategy


class SpreadsheetExtractor(Extractor):
    """Spreadsheets are acknowledged but not parsed; a stub description is stored."""

    def can_handle(self, kind: DocKind) -> bool:
        return kind == DocKind.SPREADSHEET

    def extract(self, path: str) -> ExtractionOutcome:
        name = os.path.basename(path)
        size = os.path.getsize(path)
        text = (
            f"Spreadsheet document: {name} ({size} bytes).\n"
            "Spreadsheet content extraction is not supported; cell data was not extracted."
        )
        return ExtractionOutcome(
            text=text,
            strategy=ExtractionStrategy.SPREADSHEET_STUB,
            diagnostic="spreadsheet content not parsed",
        )
