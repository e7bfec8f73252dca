from __future__ import annotations

import codecs
import logging
import os
import string
from collections.abc import Sequence

from extraction_worker.errors import ExtractionError
from extraction_worker.extractors.base import Extractor, file_diagnostics, normalize_text
from extraction_worker.extractors.sniff import OLE_MAGIC, PDF_MAGIC, ZIP_MAGIC, DocKind, sniff_kind
from extraction_worker.extractors.text import truncation_note
from extraction_worker.types import ExtractionOutcome, ExtractionStrategy

logger = logging.getLogger(__name__)

_PRINTABLE = set(string.printable)


def _mostly_printable(text: str, threshold: float = 0.9) -> bool:
    sample = text[:4096]
    if not sample:
        return False
    ok = sum(1 for ch in sample if ch in _PRINTABLE or ch.isprintable())
    return ok / len(sample) >= threshold


def _embedded_signatures(path: str, limit: int) -> list[str]:
    with open(path, "rb") as f:
        data = f.read(limit)
    found = []
    for label, magic in (("PDF", PDF_MAGIC), ("ZIP/Office", ZIP_MAGIC), ("OLE2/legacy Office", OLE_MAGIC)):
        pos = data.find(magic)
        if pos != -1:
            found.append(f"{label} signature at offset {pos}")
    return found


class DocumentExtractor:
    """Routes a downloaded file to the extractor for its sniffed kind."""

    def __init__(self, extractors: Sequence[Extractor], *, max_text_bytes: int = 5 * 1024 * 1024) -> None:
        self._extractors = list(extractors)
        self._max_text_bytes = max(1, int(max_text_bytes))

    def _for_kind(self, kind: DocKind) -> Extractor | None:
        for ex in self._extractors:
            if ex.can_handle(kind):
                return ex
        return None

    def extract(self, path: str, *, filename: str | None = None) -> ExtractionOutcome:
        name = filename or os.path.basename(path)
        kind = sniff_kind(path, name)
        logger.info("Extracting %s as %s (%d bytes)", name, kind, os.path.getsize(path))

        extractor = self._for_kind(kind) if kind != DocKind.UNKNOWN else None
        if extractor is None:
            outcome = self._extract_unknown(path, name)
        else:
            outcome = extractor.extract(path)

        if not outcome.text.strip():
            raise ExtractionError(
                f"Extraction produced empty text for {name} (strategy: {outcome.strategy}; {file_diagnostics(path)})",
                attempted=(outcome.strategy.value,),
            )
        return outcome

    def _extract_unknown(self, path: str, name: str) -> ExtractionOutcome:
        total = os.path.getsize(path)
        with open(path, "rb") as f:
            data = f.read(self._max_text_bytes)
        truncated = total > len(data)
        try:
            # A cut may split a multi-byte sequence; the decoder holds it back
            text = codecs.getincrementaldecoder("utf-8")().decode(data, final=not truncated)
        except UnicodeDecodeError:
            text = ""
        text = normalize_text(text)
        if text and _mostly_printable(text):
            diagnostic = "unrecognised file type read as UTF-8 text"
            if truncated:
                note = truncation_note(len(data), total)
                text = f"{text}\n\n{note}"
                diagnostic = f"{diagnostic}; {note}"
            return ExtractionOutcome(
                text=text,
                strategy=ExtractionStrategy.UNKNOWN_TEXT,
                diagnostic=diagnostic,
            )

        found = _embedded_signatures(path, self._max_text_bytes)
        hint = "; ".join(found) if found else "no known document signature found"
        raise ExtractionError(
            f"Unsupported or undecodable file type: {name} ({hint}; {file_diagnostics(path)})",
            attempted=("sniff", "utf-8"),
        )
