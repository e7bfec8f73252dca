"""Best-effort summary scheduling."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from extraction_worker.scheduling import DETAIL_TYPE, SummaryScheduler, build_event
from extraction_worker.types import ProcessingOptions, SourceType, SummaryRequest, SummaryType


@pytest.fixture
def queue() -> AsyncMock:
    q = AsyncMock()
    q.send.return_value = 42
    return q


@pytest.fixture
def sched(queue) -> SummaryScheduler:
    return SummaryScheduler(queue=queue, queue_name="summary_generation_queue")


def _req(summary_type=SummaryType.SHORT, options=None, text="some transcript") -> SummaryRequest:
    return SummaryRequest(
        user_id="u1",
        document_id="d1",
        text=text,
        summary_type=summary_type,
        processing_options=options,
        source_type=SourceType.VIDEO,
    )


class TestBuildEvent:
    def test_payload_shape(self):
        event = build_event(_req(options=ProcessingOptions(generate_short_form=True, generate_audio=False)))

        assert event["detail_type"] == DETAIL_TYPE
        detail = event["detail"]
        assert detail["user_id"] == "u1"
        assert detail["document_id"] == "d1"
        assert detail["source_type"] == "video"
        assert detail["transcript_text"] == "some transcript"
        assert detail["summary_type"] == "short"
        assert detail["processing_options"]["generateAudio"] is False

    def test_generate_audio_defaults_true(self):
        event = build_event(_req())
        assert event["detail"]["processing_options"] == {"generateAudio": True}

    def test_producer_option_keys_forwarded(self):
        opts = ProcessingOptions(generate_long_form=True, raw={"customKey": "kept"}, ai_content_extraction=False)

        options = build_event(_req(options=opts))["detail"]["processing_options"]

        assert options["customKey"] == "kept"
        assert options["aiContentExtraction"] is False
        assert options["generateLongForm"] is True


class TestScheduleSummary:
    async def test_scheduled_when_no_options(self, sched, queue):
        outcome = await sched.schedule_summary(_req())

        assert outcome.scheduled is True
        assert outcome.message_id == 42
        queue.send.assert_awaited_once()
        assert queue.send.call_args.kwargs["delay_s"] == 0

    async def test_skipped_when_not_enabled(self, sched, queue):
        outcome = await sched.schedule_summary(_req(SummaryType.LONG, ProcessingOptions(generate_short_form=True)))

        assert outcome.scheduled is False
        assert "long" in outcome.skipped_reason
        queue.send.assert_not_awaited()

    async def test_empty_text_skipped(self, sched, queue):
        outcome = await sched.schedule_summary(_req(text="   "))

        assert outcome.scheduled is False
        queue.send.assert_not_awaited()

    async def test_send_failure_is_swallowed(self, sched, queue):
        queue.send.side_effect = OSError("connection reset")

        outcome = await sched.schedule_summary(_req())

        assert outcome.scheduled is False
        assert "connection reset" in outcome.error

    async def test_delay_in_seconds(self, sched, queue):
        await sched.schedule_summary(_req(), delay_minutes=1)
        assert queue.send.call_args.kwargs["delay_s"] == 60


class TestScheduleSummaries:
    async def test_short_then_long_with_delay(self, sched, queue):
        outcomes = await sched.schedule_summaries(
            user_id="u1",
            document_id="d1",
            text="transcript",
            processing_options=ProcessingOptions(generate_short_form=True, generate_long_form=True),
            source_type=SourceType.DOCUMENT,
        )

        assert [o.summary_type for o in outcomes] == [SummaryType.SHORT, SummaryType.LONG]
        assert all(o.scheduled for o in outcomes)
        delays = [c.kwargs["delay_s"] for c in queue.send.call_args_list]
        assert delays == [0, 60]

    async def test_short_failure_does_not_block_long(self, sched, queue):
        queue.send.side_effect = [RuntimeError("down"), 7]

        outcomes = await sched.schedule_summaries(
            user_id="u1",
            document_id="d1",
            text="transcript",
            processing_options=None,
            source_type=SourceType.WEBSITE,
        )

        assert outcomes[0].scheduled is False
        assert outcomes[1].scheduled is True
        assert outcomes[1].message_id == 7
