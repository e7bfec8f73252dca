from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Protocol

from extraction_worker.errors import StatusUpdateError
from extraction_worker.stores.document_store import DocumentStatusStore
from extraction_worker.types import Job, ProcessingStatus, ProcessResult, SourceType

logger = logging.getLogger(__name__)


class Processor(Protocol):
    source_type: SourceType

    async def process(self, job: Job) -> ProcessResult: ...


async def mark_processing(store: DocumentStatusStore, document_id: str, *, reopen: bool = False) -> bool:
    """False when the document is already finished and must not be reprocessed.

    With ``reopen`` a finished document is restarted; callers pass it for a
    first delivery so a deliberate re-enqueue is honoured while redeliveries
    of the same message are still skipped.
    """
    res = await store.update_status(document_id, ProcessingStatus.PROCESSING, reopen=reopen)
    if res.error:
        raise StatusUpdateError(f"Could not mark document {document_id} as processing: {res.error}")
    if not res.applied:
        logger.info("Document %s already finished; skipping duplicate delivery", document_id)
    return res.applied


async def finish(
    store: DocumentStatusStore,
    document_id: str,
    status: ProcessingStatus,
    patch: Mapping[str, Any],
) -> None:
    res = await store.update_status(document_id, status, patch)
    if res.error:
        raise StatusUpdateError(f"Could not mark document {document_id} as {status}: {res.error}")
    if not res.applied:
        logger.warning("Document %s was not moved to %s (already finished)", document_id, status)
