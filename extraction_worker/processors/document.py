from __future__ import annotations

import asyncio
import logging
import os

from extraction_worker.errors import ValidationError
from extraction_worker.extractors.document import DocumentExtractor
from extraction_worker.processors.base import finish, mark_processing
from extraction_worker.scheduling import SummaryScheduler
from extraction_worker.storage import ObjectStorage, object_key_from_uri
from extraction_worker.stores.document_store import DocumentStatusStore
from extraction_worker.types import Job, ProcessingStatus, ProcessResult, SourceType

logger = logging.getLogger(__name__)


class DocumentProcessor:
    source_type = SourceType.DOCUMENT

    def __init__(
        self,
        *,
        extractor: DocumentExtractor,
        storage: ObjectStorage,
        store: DocumentStatusStore,
        scheduler: SummaryScheduler,
        documents_bucket: str,
        temp_dir: str,
    ) -> None:
        self._extractor = extractor
        self._storage = storage
        self._store = store
        self._scheduler = scheduler
        self._bucket = documents_bucket
        self._temp_dir = temp_dir

    async def process(self, job: Job) -> ProcessResult:
        document_id = job.document_id or job.source_id
        if not job.source_url:
            raise ValidationError(f"Document {document_id} has no source_url to download")

        if not await mark_processing(self._store, document_id, reopen=not job.is_redelivery):
            return ProcessResult(document_id=document_id, status=None, skipped=True)

        self._storage.set_bucket(self._bucket)
        key = object_key_from_uri(job.source_url, self._bucket)
        filename = os.path.basename(key)
        local_path = os.path.join(self._temp_dir, f"{document_id}-{filename}")

        try:
            await asyncio.to_thread(self._storage.download, key, local_path)
            outcome = await asyncio.to_thread(self._extractor.extract, local_path, filename=filename)
        finally:
            if os.path.exists(local_path):
                os.remove(local_path)

        logger.info(
            "Document %s extracted strategy=%s chars=%d ocr=%s%s",
            document_id,
            outcome.strategy,
            len(outcome.text),
            outcome.used_ocr,
            f" ({outcome.diagnostic})" if outcome.diagnostic else "",
        )
        await finish(self._store, document_id, ProcessingStatus.COMPLETED, {"transcription": outcome.text})

        schedules = await self._scheduler.schedule_summaries(
            user_id=job.user_id,
            document_id=document_id,
            text=outcome.text,
            processing_options=job.processing_options,
            source_type=self.source_type,
        )
        return ProcessResult(
            document_id=document_id,
            status=ProcessingStatus.COMPLETED,
            strategy=outcome.strategy,
            diagnostic=outcome.diagnostic,
            schedules=tuple(schedules),
        )
