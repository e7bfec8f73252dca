from __future__ import annotations

import os
from dataclasses import dataclass


def _get_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "t", "yes", "y", "on")


def _get_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None:
        return default
    return int(v)


def _get_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None:
        return default
    return float(v)


def _get_csv(name: str, default: str) -> tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class WorkerConfig:
    # Queues (pgmq)
    video_queue: str
    website_queue: str
    document_queue: str
    summary_queue: str
    visibility_timeout_s: int

    # Loop timing
    poll_interval_s: float
    error_backoff_s: float

    # Object storage
    documents_bucket: str
    raw_media_bucket: str
    temp_dir: str

    # PDF heuristics
    pdf_min_text_chars: int
    pdf_min_text_ratio: float

    # OCR / Document AI
    ocr_enabled: bool
    ocr_max_pages: int
    ocr_batch_size: int
    ocr_dpi: int
    docai_project: str | None
    docai_location: str | None
    docai_processor_id: str | None

    # Text / web limits
    max_text_bytes: int
    fetch_timeout_s: float
    max_page_bytes: int

    # Content selection (Gemini)
    content_selection_enabled: bool
    content_selection_model: str

    # Video
    caption_language: str
    downloader_order: tuple[str, ...]
    proxy_url: str | None

    @classmethod
    def from_env(cls) -> WorkerConfig:
        documents_bucket = os.getenv("WORKER_DOCUMENTS_BUCKET")
        if not documents_bucket:
            raise ValueError("WORKER_DOCUMENTS_BUCKET is required")
        raw_media_bucket = os.getenv("WORKER_RAW_MEDIA_BUCKET")
        if not raw_media_bucket:
            raise ValueError("WORKER_RAW_MEDIA_BUCKET is required")

        return cls(
            video_queue=os.getenv("WORKER_VIDEO_QUEUE", "video_processing_queue"),
            website_queue=os.getenv("WORKER_WEBSITE_QUEUE", "website_processing_queue"),
            document_queue=os.getenv("WORKER_DOCUMENT_QUEUE", "document_processing_queue"),
            summary_queue=os.getenv("WORKER_SUMMARY_QUEUE", "summary_generation_queue"),
            visibility_timeout_s=_get_int("WORKER_VISIBILITY_TIMEOUT_S", 300),
            poll_interval_s=_get_float("WORKER_POLL_INTERVAL_S", 1.0),
            error_backoff_s=_get_float("WORKER_ERROR_BACKOFF_S", 5.0),
            documents_bucket=documents_bucket,
            raw_media_bucket=raw_media_bucket,
            temp_dir=os.getenv("WORKER_TEMP_DIR", os.path.join(os.getcwd(), "temp")),
            pdf_min_text_chars=_get_int("PDF_MIN_TEXT_CHARS", 100),
            pdf_min_text_ratio=_get_float("PDF_MIN_TEXT_RATIO", 0.001),
            ocr_enabled=_get_bool("WORKER_OCR_ENABLED", True),
            ocr_max_pages=_get_int("WORKER_OCR_MAX_PAGES", 20),
            ocr_batch_size=_get_int("WORKER_OCR_BATCH_SIZE", 3),
            ocr_dpi=_get_int("WORKER_OCR_DPI", 200),
            docai_project=os.getenv("RAG_DOC_AI_PROJECT"),
            docai_location=os.getenv("RAG_DOC_AI_LOCATION"),
            docai_processor_id=os.getenv("RAG_DOC_AI_PROCESSOR_ID"),
            max_text_bytes=_get_int("WORKER_MAX_TEXT_BYTES", 5 * 1024 * 1024),
            fetch_timeout_s=_get_float("WORKER_FETCH_TIMEOUT_S", 30.0),
            max_page_bytes=_get_int("WORKER_MAX_PAGE_BYTES", 10 * 1024 * 1024),
            content_selection_enabled=_get_bool("WORKER_CONTENT_SELECTION_ENABLED", True),
            content_selection_model=os.getenv("WORKER_CONTENT_SELECTION_MODEL", "gemini-2.5-flash"),
            caption_language=os.getenv("WORKER_CAPTION_LANGUAGE", "en"),
            downloader_order=_get_csv("WORKER_DOWNLOADERS", "yt-dlp-audio,yt-dlp-fallback"),
            proxy_url=os.getenv("WORKER_PROXY_URL") or None,
        )

    def validate(self) -> None:
        if self.ocr_enabled:
            missing = [
                k
                for k, v in {
                    "RAG_DOC_AI_PROJECT": self.docai_project,
                    "RAG_DOC_AI_LOCATION": self.docai_location,
                    "RAG_DOC_AI_PROCESSOR_ID": self.docai_processor_id,
                }.items()
                if not v
            ]
            if missing:
                raise ValueError(f"OCR enabled but missing DocAI config: {', '.join(missing)}")

        if self.visibility_timeout_s < 1:
            raise ValueError("WORKER_VISIBILITY_TIMEOUT_S must be >= 1")
        if self.poll_interval_s < 0 or self.error_backoff_s < 0:
            raise ValueError("WORKER_POLL_INTERVAL_S and WORKER_ERROR_BACKOFF_S must be >= 0")
        if self.ocr_max_pages < 1:
            raise ValueError("WORKER_OCR_MAX_PAGES must be >= 1")
        if self.ocr_batch_size < 1:
            raise ValueError("WORKER_OCR_BATCH_SIZE must be >= 1")
        if not 0 <= self.pdf_min_text_ratio < 1:
            raise ValueError("PDF_MIN_TEXT_RATIO must be in [0, 1)")
        if not self.downloader_order:
            raise ValueError("WORKER_DOWNLOADERS was set but parsed as empty")
