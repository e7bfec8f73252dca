from __future__ import annotations

import os
import re
from abc import ABC, abstractmethod

from extraction_worker.extractors.sniff import DocKind
from extraction_worker.types import ExtractionOutcome

_WS_RE = re.compile(r"\s+")


class Extractor(ABC):
    @abstractmethod
    def can_handle(self, kind: DocKind) -> bool: ...

    @abstractmethod
    def extract(self, path: str) -> ExtractionOutcome: ...


def normalize_text(text: str) -> str:
    if not text:
        return ""
    # Remove null bytes, normalize whitespace a bit
    text = text.replace("\x00", "")
    # Collapse very long runs of blank lines
    while "\n\n\n\n" in text:
        text = text.replace("\n\n\n\n", "\n\n\n")
    return text.strip()


def collapse_whitespace(text: str) -> str:
    return _WS_RE.sub(" ", text or "").strip()


def file_diagnostics(path: str, *, head_bytes: int = 8) -> str:
    """Short human-readable description of a file for error messages."""
    try:
        size = os.path.getsize(path)
        with open(path, "rb") as f:
            head = f.read(head_bytes)
    except OSError as e:
        return f"file unreadable: {e}"
    return f"file size: {size} bytes, signature: {head.hex() or 'empty'}"
