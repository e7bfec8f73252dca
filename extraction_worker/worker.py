"""Queue-polling dispatcher.

One pass receives at most one message from each queue (video, website,
document, in that order) and hands it to the processor for its source type.
Jobs run strictly one at a time. Every received message is deleted exactly
once after its single attempt, whether the processor succeeded or raised;
failed jobs are not retried through redelivery.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping

from extraction_worker.errors import WorkerError
from extraction_worker.jobs import parse_job, peek_document_id
from extraction_worker.logging_config import job_context
from extraction_worker.processors.base import Processor
from extraction_worker.queue import PgmqQueue, QueueMessage
from extraction_worker.stores.document_store import DocumentStatusStore
from extraction_worker.types import ProcessingStatus, SourceType

logger = logging.getLogger(__name__)

MAX_ERROR_MESSAGE_CHARS = 4000


def error_message(exc: BaseException) -> str:
    msg = str(exc).strip() or type(exc).__name__
    if len(msg) > MAX_ERROR_MESSAGE_CHARS:
        msg = msg[: MAX_ERROR_MESSAGE_CHARS - 3] + "..."
    return msg


class Worker:
    def __init__(
        self,
        *,
        queue: PgmqQueue,
        store: DocumentStatusStore,
        processors: Mapping[SourceType, Processor],
        queues: Mapping[SourceType, str],
        poll_interval_s: float = 1.0,
        error_backoff_s: float = 5.0,
    ) -> None:
        missing = [st.value for st in queues if st not in processors]
        if missing:
            raise ValueError(f"No processor configured for: {', '.join(missing)}")
        self._queue = queue
        self._store = store
        self._processors = dict(processors)
        self._queues = dict(queues)
        self._poll = poll_interval_s
        self._backoff = error_backoff_s
        self._running = False
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        if self._task is not None and not self._task.done():
            # stop() only flips the flag; the old loop is still mid-pass and
            # simply keeps going, so no second loop is spawned
            logger.info("Worker resumed")
            return
        self._task = asyncio.create_task(self._loop(), name="extraction-worker")
        logger.info("Worker started queues=%s", ", ".join(self._queues.values()))

    def stop(self) -> None:
        if self._running:
            logger.info("Worker stopping after the current pass")
        self._running = False

    async def wait(self) -> None:
        if self._task is not None:
            await self._task

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
            except Exception:
                logger.exception("Worker pass failed; backing off %.1fs", self._backoff)
                await asyncio.sleep(self._backoff)
                continue
            await asyncio.sleep(self._poll)
        logger.info("Worker stopped")

    async def run_once(self) -> int:
        """One pass over all queues. Returns the number of messages handled."""
        handled = 0
        for source_type, queue_name in self._queues.items():
            try:
                msg = await self._queue.receive(queue_name)
            except Exception as e:
                logger.error("Receive failed queue=%s: %s", queue_name, e)
                continue
            if msg is None:
                continue
            handled += 1
            await self._handle(source_type, msg)
        return handled

    async def _handle(self, source_type: SourceType, msg: QueueMessage) -> None:
        with job_context(queue=msg.queue, msg_id=msg.msg_id):
            await self._handle_message(source_type, msg)

    async def _handle_message(self, source_type: SourceType, msg: QueueMessage) -> None:
        logger.info("Received queue=%s msg_id=%s read_ct=%s", msg.queue, msg.msg_id, msg.read_ct)
        document_id: str | None = None
        try:
            job = parse_job(source_type, msg.msg_id, msg.body, read_ct=msg.read_ct)
            document_id = job.document_id
            logger.info(
                "Routing msg_id=%s to %s processor (source=%s document=%s)",
                msg.msg_id,
                source_type,
                job.source_id,
                document_id,
            )
            result = await self._processors[source_type].process(job)
            logger.info(
                "Job done queue=%s msg_id=%s document=%s status=%s strategy=%s skipped=%s",
                msg.queue,
                msg.msg_id,
                result.document_id,
                result.status,
                result.strategy,
                result.skipped,
            )
        except Exception as e:
            if isinstance(e, WorkerError):
                logger.warning("Job failed queue=%s msg_id=%s: %s", msg.queue, msg.msg_id, e)
            else:
                logger.exception("Job crashed queue=%s msg_id=%s", msg.queue, msg.msg_id)
            await self._record_failure(document_id or peek_document_id(msg.body), e)
        finally:
            await self._delete(msg)

    async def _record_failure(self, document_id: str | None, exc: Exception) -> None:
        if not document_id:
            logger.warning("Failed job carries no document id; no status to update")
            return
        try:
            res = await self._store.update_status(
                document_id, ProcessingStatus.ERROR, {"error_message": error_message(exc)}
            )
        except Exception:
            logger.exception("Could not record error status for document %s", document_id)
            return
        if res.error:
            logger.error("Could not record error status for document %s: %s", document_id, res.error)

    async def _delete(self, msg: QueueMessage) -> None:
        try:
            await self._queue.delete(msg.queue, msg.msg_id)
            logger.info("Deleted queue=%s msg_id=%s", msg.queue, msg.msg_id)
        except Exception as e:
            # The message reappears after the visibility timeout
            logger.error("Delete failed queue=%s msg_id=%s: %s", msg.queue, msg.msg_id, e)
