from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class SourceType(StrEnum):
    VIDEO = "video"
    WEBSITE = "website"
    DOCUMENT = "document"


class ProcessingStatus(StrEnum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    TRANSCRIBED = "transcribed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessingStatus.COMPLETED, ProcessingStatus.TRANSCRIBED, ProcessingStatus.ERROR)


class ExtractionStrategy(StrEnum):
    PYPDF = "pypdf"
    PYMUPDF = "pymupdf"
    OCR = "ocr"
    DOCX = "docx"
    TEXT = "text"
    TEXT_BINARY_FALLBACK = "text_binary_fallback"
    SPREADSHEET_STUB = "spreadsheet_stub"
    UNKNOWN_TEXT = "unknown_text"
    CAPTIONS = "captions"
    PLACEHOLDER = "placeholder"
    SCRAPE = "scrape"
    AI_SELECTION = "ai_selection"


class SummaryType(StrEnum):
    SHORT = "short"
    LONG = "long"


@dataclass(frozen=True)
class ProcessingOptions:
    generate_short_form: bool = False
    generate_long_form: bool = False
    generate_audio: bool = True
    collection_id: str | None = None
    ai_content_extraction: bool = True
    # producer keys this worker does not interpret, passed downstream as-is
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def to_wire(self) -> dict[str, Any]:
        """Producer options forwarded to downstream summarization.

        Keys the worker does not interpret pass through untouched; the flags it
        does understand are written under their camelCase names.
        """
        out: dict[str, Any] = dict(self.raw)
        out.update({
            "generateShortForm": self.generate_short_form,
            "generateLongForm": self.generate_long_form,
            "generateAudio": self.generate_audio,
            "aiContentExtraction": self.ai_content_extraction,
        })
        if self.collection_id:
            out["collectionId"] = self.collection_id
        return out


@dataclass(frozen=True)
class Job:
    source_type: SourceType
    source_id: str  # video id | url | document id
    user_id: str
    document_id: str | None
    queue_message_id: int
    collection_id: str | None = None
    source_url: str | None = None
    # None when the message carried no options at all (both summaries scheduled)
    processing_options: ProcessingOptions | None = None
    # pgmq delivery count; above 1 the message is a redelivery of an earlier read
    read_ct: int = 1

    @property
    def is_redelivery(self) -> bool:
        return self.read_ct > 1

    @property
    def ai_content_extraction(self) -> bool:
        return self.processing_options is None or self.processing_options.ai_content_extraction


@dataclass(frozen=True)
class ExtractionOutcome:
    text: str
    strategy: ExtractionStrategy
    diagnostic: str | None = None
    pages: int | None = None

    @property
    def used_ocr(self) -> bool:
        return self.strategy == ExtractionStrategy.OCR


@dataclass(frozen=True)
class SummaryRequest:
    user_id: str
    document_id: str
    text: str
    summary_type: SummaryType
    processing_options: ProcessingOptions | None = None
    source_type: SourceType = SourceType.DOCUMENT


@dataclass(frozen=True)
class ScheduleOutcome:
    summary_type: SummaryType
    scheduled: bool
    skipped_reason: str | None = None
    error: str | None = None
    message_id: int | None = None


@dataclass(frozen=True)
class StatusResult:
    applied: bool
    error: str | None = None


@dataclass(frozen=True)
class ProcessResult:
    document_id: str | None
    status: ProcessingStatus | None
    strategy: ExtractionStrategy | None = None
    diagnostic: str | None = None
    schedules: tuple[ScheduleOutcome, ...] = ()
    # True when a duplicate delivery found the document already finished
    skipped: bool = False
