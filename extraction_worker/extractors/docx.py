from __future__ import annotations

from zipfile import BadZipFile

import docx  # python-docx
from docx.opc.exceptions import PackageNotFoundError

from extraction_worker.errors import ExtractionError
from extraction_worker.extractors.base import Extractor, file_diagnostics, normalize_text
from extraction_worker.extractors.sniff import DocKind
from extraction_worker.types import ExtractionOutcome, ExtractionStrategy


class DocxExtractor(Extractor):
    def can_handle(self, kind: DocKind) -> bool:
        return kind == DocKind.WORD

    def extract(self, path: str) -> ExtractionOutcome:
        try:
            d = docx.Document(path)
        except (PackageNotFoundError, BadZipFile, KeyError, ValueError, OSError) as e:
            # Legacy .doc (OLE2) and corrupt archives land here
            raise ExtractionError(
                f"Could not open Word document: {e} ({file_diagnostics(path)})",
                attempted=("docx",),
            ) from e

        parts: list[str] = []
        for p in d.paragraphs:
            if p.text and p.text.strip():
                parts.append(p.text)
        for table in d.tables:
            for row in table.rows:
                cells = [c.text.strip() for c in row.cells if c.text and c.text.strip()]
                if cells:
                    parts.append(" | ".join(cells))

        return ExtractionOutcome(text=normalize_text("\n".join(parts)), strategy=ExtractionStrategy.DOCX)
