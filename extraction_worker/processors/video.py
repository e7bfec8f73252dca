from __future__ import annotations

import asyncio
import logging
import os
import shutil

from extraction_worker.processors.base import finish, mark_processing
from extraction_worker.scheduling import SummaryScheduler
from extraction_worker.storage import ObjectStorage
from extraction_worker.stores.document_store import DocumentStatusStore
from extraction_worker.types import ExtractionStrategy, Job, ProcessingStatus, ProcessResult, SourceType
from extraction_worker.video.captions import CaptionFetcher, VideoMetadata, watch_url
from extraction_worker.video.downloaders import MediaDownloaderChain

logger = logging.getLogger(__name__)

PLACEHOLDER_NOTICE = (
    "This is a placeholder transcription as the automatic transcription process "
    "was unable to extract the speech content."
)


def placeholder_transcript(meta: VideoMetadata) -> str:
    # Metadata only; no speech-to-text is performed on downloaded media
    return f"Title: {meta.title}\nChannel: {meta.author}\n\n{PLACEHOLDER_NOTICE}"


def media_key(user_id: str, video_id: str, ext: str = ".mp4") -> str:
    return f"raw-media/{user_id}/{video_id}{ext or '.mp4'}"


class VideoProcessor:
    source_type = SourceType.VIDEO

    def __init__(
        self,
        *,
        captions: CaptionFetcher,
        downloaders: MediaDownloaderChain,
        storage: ObjectStorage,
        store: DocumentStatusStore,
        scheduler: SummaryScheduler,
        raw_media_bucket: str,
        temp_dir: str,
    ) -> None:
        self._captions = captions
        self._downloaders = downloaders
        self._storage = storage
        self._store = store
        self._scheduler = scheduler
        self._bucket = raw_media_bucket
        self._temp_dir = temp_dir

    async def _store_media(self, job: Job, video_id: str) -> str:
        out_dir = os.path.join(self._temp_dir, "media", f"{job.user_id}-{video_id}")
        try:
            result = await asyncio.to_thread(self._downloaders.download, video_id, out_dir)
            key = media_key(job.user_id, video_id, os.path.splitext(result.path)[1])
            self._storage.set_bucket(self._bucket)
            return await asyncio.to_thread(self._storage.upload_file, result.path, key)
        finally:
            shutil.rmtree(out_dir, ignore_errors=True)

    async def process(self, job: Job) -> ProcessResult:
        video_id = job.source_id
        document_id = job.document_id

        if document_id and not await mark_processing(self._store, document_id, reopen=not job.is_redelivery):
            return ProcessResult(document_id=document_id, status=None, skipped=True)

        meta, captions = await asyncio.to_thread(self._captions.fetch, video_id)
        logger.info("Video %s: title=%r author=%r captions=%s", video_id, meta.title, meta.author, bool(captions))

        if captions:
            transcript = captions
            original_content = captions
            strategy = ExtractionStrategy.CAPTIONS
        else:
            original_content = await self._store_media(job, video_id)
            transcript = placeholder_transcript(meta)
            strategy = ExtractionStrategy.PLACEHOLDER

        patch = {"transcription": transcript, "original_content": original_content}
        if document_id:
            await finish(self._store, document_id, ProcessingStatus.TRANSCRIBED, patch)
        else:
            document_id = await self._store.create_document(
                {
                    **patch,
                    "title": meta.title or f"YouTube Video: {video_id}",
                    "content_type": "youtube",
                    "source_url": watch_url(video_id),
                    "user_id": job.user_id,
                    "collection_id": job.collection_id,
                    "processing_status": ProcessingStatus.TRANSCRIBED,
                }
            )

        schedules = await self._scheduler.schedule_summaries(
            user_id=job.user_id,
            document_id=document_id,
            text=transcript,
            processing_options=job.processing_options,
            source_type=self.source_type,
        )
        return ProcessResult(
            document_id=document_id,
            status=ProcessingStatus.TRANSCRIBED,
            strategy=strategy,
            schedules=tuple(schedules),
        )
