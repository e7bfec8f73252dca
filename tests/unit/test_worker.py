"""Dispatcher loop: routing, single delete, error status, restart semantics."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from extraction_worker.errors import ExtractionError, VideoNotFoundError
from extraction_worker.queue import QueueMessage
from extraction_worker.types import ProcessingStatus, ProcessResult, SourceType
from extraction_worker.worker import MAX_ERROR_MESSAGE_CHARS, Worker, error_message

QUEUES = {
    SourceType.VIDEO: "video_processing_queue",
    SourceType.WEBSITE: "website_processing_queue",
    SourceType.DOCUMENT: "document_processing_queue",
}


def _msg(queue: str, msg_id: int, body, read_ct: int = 1) -> QueueMessage:
    return QueueMessage(queue=queue, msg_id=msg_id, read_ct=read_ct, enqueued_at=None, body=body)


def _queue_with(*messages: QueueMessage) -> AsyncMock:
    """Each queue hands out its messages once, then reports empty."""
    pending = {m.queue: [] for m in messages}
    for m in messages:
        pending[m.queue].append(m)

    async def _receive(queue: str):
        items = pending.get(queue) or []
        return items.pop(0) if items else None

    q = AsyncMock()
    q.receive.side_effect = _receive
    q.delete.return_value = True
    return q


def _processor(source_type: SourceType, *, error: Exception | None = None) -> AsyncMock:
    p = AsyncMock()
    p.source_type = source_type
    if error is not None:
        p.process.side_effect = error
    else:
        p.process.side_effect = lambda job: ProcessResult(
            document_id=job.document_id, status=ProcessingStatus.COMPLETED
        )
    return p


def _processors(**overrides) -> dict[SourceType, AsyncMock]:
    procs = {st: _processor(st) for st in SourceType}
    procs.update({SourceType(k): v for k, v in overrides.items()})
    return procs


VIDEO_BODY = {"videoId": "vid123", "userId": "user-123", "documentId": "doc-v"}
WEBSITE_BODY = {"url": "https://example.com", "userId": "user-123", "documentId": "doc-w"}
DOCUMENT_BODY = {"documentId": "doc-d", "userId": "user-123", "sourceUrl": "gs://docs/user-123/a.pdf"}


# ===========================================================================
# error_message
# ===========================================================================


class TestErrorMessage:
    def test_truncates(self):
        msg = error_message(ExtractionError("x" * 10_000))
        assert len(msg) == MAX_ERROR_MESSAGE_CHARS
        assert msg.endswith("...")

    def test_empty_message_uses_type_name(self):
        assert error_message(RuntimeError()) == "RuntimeError"


# ===========================================================================
# run_once
# ===========================================================================


class TestRunOnce:
    async def test_routes_each_queue_and_deletes(self, status_store):
        queue = _queue_with(
            _msg(QUEUES[SourceType.VIDEO], 1, VIDEO_BODY),
            _msg(QUEUES[SourceType.WEBSITE], 2, WEBSITE_BODY),
            _msg(QUEUES[SourceType.DOCUMENT], 3, DOCUMENT_BODY),
        )
        procs = _processors()
        worker = Worker(queue=queue, store=status_store, processors=procs, queues=QUEUES)

        assert await worker.run_once() == 3

        assert procs[SourceType.VIDEO].process.call_args.args[0].source_id == "vid123"
        assert procs[SourceType.WEBSITE].process.call_args.args[0].source_id == "https://example.com"
        assert procs[SourceType.DOCUMENT].process.call_args.args[0].source_url == "gs://docs/user-123/a.pdf"
        deleted = [c.args for c in queue.delete.call_args_list]
        assert deleted == [(QUEUES[SourceType.VIDEO], 1), (QUEUES[SourceType.WEBSITE], 2), (QUEUES[SourceType.DOCUMENT], 3)]
        status_store.update_status.assert_not_awaited()

    async def test_delivery_count_reaches_job(self, status_store):
        queue = _queue_with(
            _msg(QUEUES[SourceType.VIDEO], 4, VIDEO_BODY, read_ct=2),
            _msg(QUEUES[SourceType.WEBSITE], 5, WEBSITE_BODY),
        )
        procs = _processors()
        worker = Worker(queue=queue, store=status_store, processors=procs, queues=QUEUES)

        await worker.run_once()

        assert procs[SourceType.VIDEO].process.call_args.args[0].is_redelivery is True
        assert procs[SourceType.WEBSITE].process.call_args.args[0].is_redelivery is False

    async def test_empty_queues(self, status_store):
        worker = Worker(queue=_queue_with(), store=status_store, processors=_processors(), queues=QUEUES)
        assert await worker.run_once() == 0

    async def test_failure_sets_error_and_deletes_once(self, status_store):
        queue = _queue_with(_msg(QUEUES[SourceType.VIDEO], 7, VIDEO_BODY))
        procs = _processors(video=_processor(SourceType.VIDEO, error=VideoNotFoundError("vid123", "private")))
        worker = Worker(queue=queue, store=status_store, processors=procs, queues=QUEUES)

        await worker.run_once()

        doc_id, status, patch = status_store.update_status.call_args.args
        assert (doc_id, status) == ("doc-v", ProcessingStatus.ERROR)
        assert "not found" in patch["error_message"]
        queue.delete.assert_awaited_once_with(QUEUES[SourceType.VIDEO], 7)

    async def test_unexpected_exception_is_contained(self, status_store):
        queue = _queue_with(_msg(QUEUES[SourceType.DOCUMENT], 8, DOCUMENT_BODY))
        procs = _processors(document=_processor(SourceType.DOCUMENT, error=KeyError("boom")))
        worker = Worker(queue=queue, store=status_store, processors=procs, queues=QUEUES)

        assert await worker.run_once() == 1

        assert status_store.update_status.call_args.args[1] == ProcessingStatus.ERROR
        queue.delete.assert_awaited_once()

    async def test_parse_error_uses_peeked_document_id(self, status_store):
        queue = _queue_with(_msg(QUEUES[SourceType.WEBSITE], 9, {"documentId": "doc-w"}))
        procs = _processors()
        worker = Worker(queue=queue, store=status_store, processors=procs, queues=QUEUES)

        await worker.run_once()

        procs[SourceType.WEBSITE].process.assert_not_awaited()
        doc_id, status, patch = status_store.update_status.call_args.args
        assert (doc_id, status) == ("doc-w", ProcessingStatus.ERROR)
        assert "missing" in patch["error_message"]
        queue.delete.assert_awaited_once_with(QUEUES[SourceType.WEBSITE], 9)

    async def test_unparseable_body_without_document_id(self, status_store):
        queue = _queue_with(_msg(QUEUES[SourceType.VIDEO], 10, "not json"))
        worker = Worker(queue=queue, store=status_store, processors=_processors(), queues=QUEUES)

        await worker.run_once()

        status_store.update_status.assert_not_awaited()
        queue.delete.assert_awaited_once_with(QUEUES[SourceType.VIDEO], 10)

    async def test_receive_error_skips_queue(self, status_store):
        queue = _queue_with(_msg(QUEUES[SourceType.DOCUMENT], 11, DOCUMENT_BODY))
        inner = queue.receive.side_effect

        async def _receive(name: str):
            if name == QUEUES[SourceType.VIDEO]:
                raise ConnectionError("pool closed")
            return await inner(name)

        queue.receive.side_effect = _receive
        procs = _processors()
        worker = Worker(queue=queue, store=status_store, processors=procs, queues=QUEUES)

        assert await worker.run_once() == 1
        procs[SourceType.DOCUMENT].process.assert_awaited_once()

    async def test_delete_failure_is_logged_not_raised(self, status_store):
        queue = _queue_with(_msg(QUEUES[SourceType.VIDEO], 12, VIDEO_BODY))
        queue.delete.side_effect = ConnectionError("gone")
        worker = Worker(queue=queue, store=status_store, processors=_processors(), queues=QUEUES)

        assert await worker.run_once() == 1

    def test_missing_processor_rejected(self, status_store):
        with pytest.raises(ValueError, match="document"):
            Worker(
                queue=AsyncMock(),
                store=status_store,
                processors={SourceType.VIDEO: _processor(SourceType.VIDEO)},
                queues={SourceType.VIDEO: "v", SourceType.DOCUMENT: "d"},
            )


# ===========================================================================
# Lifecycle
# ===========================================================================


class TestLifecycle:
    async def test_restart_while_in_flight_does_not_double_process(self, status_store):
        release = asyncio.Event()
        entered = asyncio.Event()

        async def _slow(job):
            entered.set()
            await release.wait()
            return ProcessResult(document_id=job.document_id, status=ProcessingStatus.TRANSCRIBED)

        video = _processor(SourceType.VIDEO)
        video.process.side_effect = _slow
        queue = _queue_with(_msg(QUEUES[SourceType.VIDEO], 1, VIDEO_BODY))
        worker = Worker(
            queue=queue, store=status_store, processors=_processors(video=video), queues=QUEUES, poll_interval_s=0
        )

        await worker.start()
        await asyncio.wait_for(entered.wait(), timeout=2)
        first_task = worker._task

        worker.stop()
        assert not worker.is_running
        await worker.start()
        assert worker.is_running
        assert worker._task is first_task

        release.set()
        await asyncio.sleep(0)
        worker.stop()
        await asyncio.wait_for(worker.wait(), timeout=2)

        video.process.assert_awaited_once()
        queue.delete.assert_awaited_once_with(QUEUES[SourceType.VIDEO], 1)

    async def test_start_is_idempotent(self, status_store):
        worker = Worker(
            queue=_queue_with(), store=status_store, processors=_processors(), queues=QUEUES, poll_interval_s=0
        )

        await worker.start()
        task = worker._task
        await worker.start()

        assert worker._task is task
        worker.stop()
        await asyncio.wait_for(worker.wait(), timeout=2)
        assert task.done()

    async def test_pass_failure_backs_off_and_continues(self, status_store):
        worker = Worker(
            queue=_queue_with(),
            store=status_store,
            processors=_processors(),
            queues=QUEUES,
            poll_interval_s=0,
            error_backoff_s=0,
        )
        calls = 0

        async def _flaky():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("transient")
            worker.stop()
            return 0

        worker.run_once = _flaky  # type: ignore[method-assign]
        await worker.start()
        await asyncio.wait_for(worker.wait(), timeout=2)

        assert calls == 2
