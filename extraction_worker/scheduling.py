"""Best-effort scheduling of downstream summary generation.

Summaries are requested by enqueueing a ``SummaryGenerationRequest`` onto the
summary pgmq queue, delayed via pgmq's send delay. Scheduling never raises:
every call returns a ``ScheduleOutcome`` that is logged on its own channel
and never folded into the job's success or failure.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from extraction_worker.queue import PgmqQueue
from extraction_worker.types import (
    ProcessingOptions,
    ScheduleOutcome,
    SourceType,
    SummaryRequest,
    SummaryType,
)

logger = logging.getLogger(__name__)
outcome_logger = logging.getLogger("extraction_worker.scheduling.outcomes")

DETAIL_TYPE = "SummaryGenerationRequest"
EVENT_SOURCE = "custom.transcription"
LONG_SUMMARY_DELAY_MINUTES = 1


def _skip_reason(summary_type: SummaryType, options: ProcessingOptions | None) -> str | None:
    # No options at all means "generate everything"
    if options is None:
        return None
    if summary_type == SummaryType.SHORT and not options.generate_short_form:
        return "short form summary not enabled"
    if summary_type == SummaryType.LONG and not options.generate_long_form:
        return "long form summary not enabled"
    return None


def build_event(req: SummaryRequest, *, delay_minutes: int = 0) -> dict[str, Any]:
    options = req.processing_options.to_wire() if req.processing_options else {}
    options.setdefault("generateAudio", True)
    event_time = datetime.now(UTC) + timedelta(minutes=delay_minutes)
    return {
        "detail_type": DETAIL_TYPE,
        "source": EVENT_SOURCE,
        "time": event_time.isoformat(),
        "detail": {
            "user_id": req.user_id,
            "document_id": req.document_id,
            "source_type": req.source_type.value,
            "transcript_text": req.text,
            "summary_type": req.summary_type.value,
            "processing_options": options,
        },
    }


class SummaryScheduler:
    def __init__(self, *, queue: PgmqQueue, queue_name: str) -> None:
        self._queue = queue
        self._queue_name = queue_name

    async def schedule_summary(self, req: SummaryRequest, delay_minutes: int = 0) -> ScheduleOutcome:
        reason = _skip_reason(req.summary_type, req.processing_options)
        if reason is None and not req.text.strip():
            reason = "no text to summarize"
        if reason is not None:
            outcome = ScheduleOutcome(summary_type=req.summary_type, scheduled=False, skipped_reason=reason)
            outcome_logger.info(
                "Skipped %s summary for document %s: %s", req.summary_type, req.document_id, reason
            )
            return outcome

        try:
            msg_id = await self._queue.send(
                self._queue_name,
                build_event(req, delay_minutes=delay_minutes),
                delay_s=max(0, delay_minutes) * 60,
            )
        except Exception as e:
            outcome_logger.error(
                "Failed to schedule %s summary for document %s: %s", req.summary_type, req.document_id, e
            )
            return ScheduleOutcome(summary_type=req.summary_type, scheduled=False, error=f"{type(e).__name__}: {e}")

        outcome_logger.info(
            "Scheduled %s summary for document %s (msg_id=%s, delay=%dm)",
            req.summary_type,
            req.document_id,
            msg_id,
            delay_minutes,
        )
        return ScheduleOutcome(summary_type=req.summary_type, scheduled=True, message_id=msg_id)

    async def schedule_summaries(
        self,
        *,
        user_id: str,
        document_id: str,
        text: str,
        processing_options: ProcessingOptions | None,
        source_type: SourceType,
    ) -> list[ScheduleOutcome]:
        """Short summary immediately, long summary after a short delay."""
        outcomes: list[ScheduleOutcome] = []
        for summary_type, delay in (
            (SummaryType.SHORT, 0),
            (SummaryType.LONG, LONG_SUMMARY_DELAY_MINUTES),
        ):
            req = SummaryRequest(
                user_id=user_id,
                document_id=document_id,
                text=text,
                summary_type=summary_type,
                processing_options=processing_options,
                source_type=source_type,
            )
            outcomes.append(await self.schedule_summary(req, delay_minutes=delay))
        return outcomes
