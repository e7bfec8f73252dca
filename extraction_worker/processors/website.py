from __future__ import annotations

import asyncio
import json
import logging
import re
from datetime import UTC, date, datetime
from urllib.parse import urlsplit

from extraction_worker.errors import ExtractionError
from extraction_worker.extractors.website import WebsiteExtractor, validate_url
from extraction_worker.processors.base import finish, mark_processing
from extraction_worker.scheduling import SummaryScheduler
from extraction_worker.storage import ObjectStorage
from extraction_worker.stores.document_store import DocumentStatusStore
from extraction_worker.types import ExtractionStrategy, Job, ProcessingStatus, ProcessResult, SourceType

logger = logging.getLogger(__name__)

_HOST_UNSAFE = re.compile(r"[^a-zA-Z0-9-]")


def artifact_key(user_id: str, document_id: str, url: str, day: date | None = None) -> str:
    day = day or datetime.now(UTC).date()
    host = _HOST_UNSAFE.sub("-", urlsplit(url).hostname or "site").lower()
    return f"websites/{user_id}/{day.isoformat()}-{document_id}-{host}.json"


class WebsiteProcessor:
    source_type = SourceType.WEBSITE

    def __init__(
        self,
        *,
        extractor: WebsiteExtractor,
        storage: ObjectStorage,
        store: DocumentStatusStore,
        scheduler: SummaryScheduler,
        documents_bucket: str,
    ) -> None:
        self._extractor = extractor
        self._storage = storage
        self._store = store
        self._scheduler = scheduler
        self._bucket = documents_bucket

    async def process(self, job: Job) -> ProcessResult:
        document_id = job.document_id
        if not document_id:
            raise ExtractionError(f"Website job {job.queue_message_id} has no document id")
        url = validate_url(job.source_id)

        if not await mark_processing(self._store, document_id, reopen=not job.is_redelivery):
            return ProcessResult(document_id=document_id, status=None, skipped=True)

        use_ai = job.ai_content_extraction
        page = await self._extractor.extract(url, use_ai=use_ai)
        text = page.best_text() if use_ai else page.content
        if not text:
            raise ExtractionError(f"No readable content found at {url}", attempted=("scrape",))

        self._storage.set_bucket(self._bucket)
        artifact_url = await asyncio.to_thread(
            self._storage.upload_string,
            json.dumps(page.to_artifact(), indent=2, ensure_ascii=False),
            artifact_key(job.user_id, document_id, url),
            "application/json",
        )

        await finish(
            self._store,
            document_id,
            ProcessingStatus.COMPLETED,
            {
                "title": page.title,
                "original_content": artifact_url,
                "transcription": text,
            },
        )

        schedules = await self._scheduler.schedule_summaries(
            user_id=job.user_id,
            document_id=document_id,
            text=text,
            processing_options=job.processing_options,
            source_type=self.source_type,
        )
        strategy = ExtractionStrategy.AI_SELECTION if use_ai and page.ai_content else ExtractionStrategy.SCRAPE
        return ProcessResult(
            document_id=document_id,
            status=ProcessingStatus.COMPLETED,
            strategy=strategy,
            schedules=tuple(schedules),
        )
