"""Decide which extractor a downloaded file goes to.

Content signatures win over the filename extension: uploads are frequently
mislabelled, and a PDF saved as ``.txt`` should still be parsed as a PDF.
A ``%PDF-`` marker that is not at offset 0 only counts when it follows
non-text junk, or when the extension does not claim another format; a text
file that merely mentions the marker stays text. The extension is consulted
when the signature is inconclusive.
"""

from __future__ import annotations

import os
import zipfile
from enum import StrEnum

PDF_MAGIC = b"%PDF-"
ZIP_MAGIC = b"PK\x03\x04"
OLE_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"

# The PDF header may legally be preceded by junk within the first 1KB
HEADER_WINDOW = 1024


class DocKind(StrEnum):
    PDF = "pdf"
    WORD = "word"
    TEXT = "text"
    SPREADSHEET = "spreadsheet"
    UNKNOWN = "unknown"


_EXT_KIND: dict[str, DocKind] = {
    ".pdf": DocKind.PDF,
    ".docx": DocKind.WORD,
    ".doc": DocKind.WORD,
    ".docm": DocKind.WORD,
    ".txt": DocKind.TEXT,
    ".text": DocKind.TEXT,
    ".md": DocKind.TEXT,
    ".markdown": DocKind.TEXT,
    ".csv": DocKind.TEXT,
    ".tsv": DocKind.TEXT,
    ".json": DocKind.TEXT,
    ".xml": DocKind.TEXT,
    ".html": DocKind.TEXT,
    ".htm": DocKind.TEXT,
    ".log": DocKind.TEXT,
    ".rtf": DocKind.TEXT,
    ".xlsx": DocKind.SPREADSHEET,
    ".xlsm": DocKind.SPREADSHEET,
    ".xls": DocKind.SPREADSHEET,
    ".ods": DocKind.SPREADSHEET,
    ".numbers": DocKind.SPREADSHEET,
}


def kind_from_extension(filename: str | None) -> DocKind:
    if not filename:
        return DocKind.UNKNOWN
    ext = os.path.splitext(filename.split("?", 1)[0])[1].lower()
    return _EXT_KIND.get(ext, DocKind.UNKNOWN)


def _zip_kind(path: str) -> DocKind | None:
    try:
        with zipfile.ZipFile(path) as zf:
            names = zf.namelist()
            mimetype = zf.read("mimetype").decode("ascii", "ignore") if "mimetype" in names else ""
    except (zipfile.BadZipFile, OSError, KeyError):
        return None
    if any(n.startswith("word/") for n in names):
        return DocKind.WORD
    if any(n.startswith("xl/") for n in names):
        return DocKind.SPREADSHEET
    if "opendocument.spreadsheet" in mimetype:
        return DocKind.SPREADSHEET
    return None


def _is_text(data: bytes) -> bool:
    try:
        decoded = data.decode("utf-8")
    except UnicodeDecodeError:
        return False
    return all(ch.isprintable() or ch.isspace() for ch in decoded)


def _pdf_marker_counts(head: bytes, filename: str | None) -> bool:
    pos = head.find(PDF_MAGIC)
    if pos == -1:
        return False
    prefix = head[:pos]
    if not prefix.strip():
        return True
    if kind_from_extension(filename) in (DocKind.PDF, DocKind.UNKNOWN):
        return True
    return not _is_text(prefix)


def kind_from_signature(path: str, filename: str | None = None) -> DocKind | None:
    """Kind implied by the file's leading bytes, or None if inconclusive."""
    with open(path, "rb") as f:
        head = f.read(HEADER_WINDOW)
    if _pdf_marker_counts(head, filename or path):
        return DocKind.PDF
    if head.startswith(ZIP_MAGIC):
        return _zip_kind(path)
    # OLE2 covers both legacy .doc and .xls; the extension decides which
    return None


def sniff_kind(path: str, filename: str | None = None) -> DocKind:
    kind = kind_from_signature(path, filename)
    if kind is not None:
        return kind
    return kind_from_extension(filename or path)
