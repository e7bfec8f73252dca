from __future__ import annotations

import asyncio
import logging
import os
import signal

from google.cloud.storage import Client

from extraction_worker.cli import build_parser
from extraction_worker.config import WorkerConfig
from extraction_worker.content_selection import ContentSelector, build_gemini_client
from extraction_worker.db import check_db_connection, close_pool
from extraction_worker.extractors.docx import DocxExtractor
from extraction_worker.extractors.document import DocumentExtractor
from extraction_worker.extractors.pdf import PdfExtractor
from extraction_worker.extractors.spreadsheet import SpreadsheetExtractor
from extraction_worker.extractors.text import TextExtractor
from extraction_worker.extractors.website import WebsiteExtractor
from extraction_worker.logging_config import setup_logging
from extraction_worker.ocr.document_ai import DocAIConfig, DocumentAIClient
from extraction_worker.ocr.pdf_ocr import PdfOcr
from extraction_worker.processors.base import Processor
from extraction_worker.processors.document import DocumentProcessor
from extraction_worker.processors.video import VideoProcessor
from extraction_worker.processors.website import WebsiteProcessor
from extraction_worker.queue import PgmqQueue
from extraction_worker.scheduling import SummaryScheduler
from extraction_worker.storage import ObjectStorage
from extraction_worker.stores.document_store import DocumentStatusStore
from extraction_worker.types import SourceType
from extraction_worker.video.captions import CaptionFetcher
from extraction_worker.video.downloaders import MediaDownloaderChain, default_downloaders
from extraction_worker.worker import Worker

logger = logging.getLogger("extraction_worker")


def build_document_extractor(cfg: WorkerConfig) -> DocumentExtractor:
    ocr = None
    if cfg.ocr_enabled:
        docai = DocumentAIClient(
            cfg=DocAIConfig(
                project=cfg.docai_project or "",
                location=cfg.docai_location or "",
                processor_id=cfg.docai_processor_id or "",
            )
        )
        ocr = PdfOcr(
            engine=docai,
            max_pages=cfg.ocr_max_pages,
            batch_size=cfg.ocr_batch_size,
            dpi=cfg.ocr_dpi,
            temp_dir=cfg.temp_dir,
        )
    return DocumentExtractor(
        [
            PdfExtractor(min_text_chars=cfg.pdf_min_text_chars, min_text_ratio=cfg.pdf_min_text_ratio, ocr=ocr),
            DocxExtractor(),
            TextExtractor(max_bytes=cfg.max_text_bytes),
            SpreadsheetExtractor(),
        ],
        max_text_bytes=cfg.max_text_bytes,
    )


def build_content_selector(cfg: WorkerConfig) -> ContentSelector | None:
    if not cfg.content_selection_enabled:
        return None
    try:
        client = build_gemini_client()
    except ValueError as e:
        logger.warning("Content selection disabled: %s", e)
        return None
    return ContentSelector(client=client, model=cfg.content_selection_model)


def build_processors(
    cfg: WorkerConfig,
    *,
    storage: ObjectStorage,
    store: DocumentStatusStore,
    scheduler: SummaryScheduler,
) -> dict[SourceType, Processor]:
    return {
        SourceType.VIDEO: VideoProcessor(
            captions=CaptionFetcher(
                language=cfg.caption_language,
                proxy_url=cfg.proxy_url,
                timeout_s=cfg.fetch_timeout_s,
            ),
            downloaders=MediaDownloaderChain(default_downloaders(cfg.proxy_url), cfg.downloader_order),
            storage=storage,
            store=store,
            scheduler=scheduler,
            raw_media_bucket=cfg.raw_media_bucket,
            temp_dir=cfg.temp_dir,
        ),
        SourceType.WEBSITE: WebsiteProcessor(
            extractor=WebsiteExtractor(
                timeout_s=cfg.fetch_timeout_s,
                max_bytes=cfg.max_page_bytes,
                selector=build_content_selector(cfg),
            ),
            storage=storage,
            store=store,
            scheduler=scheduler,
            documents_bucket=cfg.documents_bucket,
        ),
        SourceType.DOCUMENT: DocumentProcessor(
            extractor=build_document_extractor(cfg),
            storage=storage,
            store=store,
            scheduler=scheduler,
            documents_bucket=cfg.documents_bucket,
            temp_dir=cfg.temp_dir,
        ),
    }


async def _amain() -> int:
    parser = build_parser()
    args = parser.parse_args()

    setup_logging(level=args.log_level.upper())

    cfg = WorkerConfig.from_env()
    cfg.validate()
    os.makedirs(cfg.temp_dir, exist_ok=True)

    if not await check_db_connection():
        logger.error("Database is not reachable. Exiting.")
        return 1

    queue = PgmqQueue(visibility_timeout_s=cfg.visibility_timeout_s)
    store = DocumentStatusStore()
    scheduler = SummaryScheduler(queue=queue, queue_name=cfg.summary_queue)
    storage = ObjectStorage(Client())

    queue_names = {
        SourceType.VIDEO: cfg.video_queue,
        SourceType.WEBSITE: cfg.website_queue,
        SourceType.DOCUMENT: cfg.document_queue,
    }
    worker = Worker(
        queue=queue,
        store=store,
        processors=build_processors(cfg, storage=storage, store=store, scheduler=scheduler),
        queues={st: queue_names[st] for st in args.queues},
        poll_interval_s=cfg.poll_interval_s,
        error_backoff_s=cfg.error_backoff_s,
    )

    try:
        if args.once:
            handled = await worker.run_once()
            logger.info("DONE handled=%d", handled)
            return 0

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, worker.stop)

        await worker.start()
        await worker.wait()
        return 0
    finally:
        await close_pool()


def main() -> None:
    raise SystemExit(asyncio.run(_amain()))


if __name__ == "__main__":
    main()
