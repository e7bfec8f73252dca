"""Status repository for the ``documents`` table.

Every write is patch-by-id (never patch-by-delta), so duplicate delivery of a
job rewrites the same values instead of compounding them. Status transitions
are guarded in SQL: a redelivered message never pushes a finished document
back to ``processing`` and a finished document is never overwritten by a late
``error`` from a duplicate attempt. A freshly enqueued job (``reopen``) may
restart a finished document.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from contextlib import AbstractAsyncContextManager
from typing import Any

import asyncpg

from extraction_worker.db import connection
from extraction_worker.types import ProcessingStatus, StatusResult

logger = logging.getLogger(__name__)

ConnectFn = Callable[[], AbstractAsyncContextManager[asyncpg.Connection]]

# Columns a status patch may touch. Anything else is rejected, which also keeps
# caller-supplied keys out of the SQL text.
PATCHABLE_COLUMNS = frozenset(
    {
        "title",
        "original_content",
        "content_type",
        "source_url",
        "transcription",
        "error_message",
        "collection_id",
    }
)

_INSERTABLE_COLUMNS = PATCHABLE_COLUMNS | {"user_id", "processing_status"}

_S = ProcessingStatus
# target status -> statuses it may be written from (NULL counts as queued)
_ALLOWED_FROM: dict[ProcessingStatus, frozenset[str]] = {
    _S.QUEUED: frozenset({_S.QUEUED, _S.ERROR}),
    _S.PROCESSING: frozenset({_S.QUEUED, _S.PROCESSING, _S.ERROR}),
    _S.TRANSCRIBED: frozenset({_S.QUEUED, _S.PROCESSING, _S.ERROR, _S.TRANSCRIBED}),
    _S.COMPLETED: frozenset({_S.QUEUED, _S.PROCESSING, _S.ERROR, _S.COMPLETED}),
    _S.ERROR: frozenset({_S.QUEUED, _S.PROCESSING, _S.ERROR}),
}
_REOPENABLE = frozenset({_S.COMPLETED, _S.TRANSCRIBED})


def _check_columns(keys: Any, allowed: frozenset[str]) -> list[str]:
    cols = sorted(keys)
    bad = [c for c in cols if c not in allowed]
    if bad:
        raise ValueError(f"Unsupported document column(s): {', '.join(bad)}")
    return cols


class DocumentStatusStore:
    def __init__(self, *, connect: ConnectFn = connection) -> None:
        self._connect = connect

    async def update_status(
        self,
        document_id: str,
        status: ProcessingStatus,
        patch: Mapping[str, Any] | None = None,
        *,
        reopen: bool = False,
    ) -> StatusResult:
        """Set ``processing_status`` plus patch columns on one document.

        Returns ``StatusResult(applied=False, error=None)`` when the transition
        was refused (e.g. a duplicate attempt trying to regress a finished
        document) and ``error`` set when the row is missing or the write failed.

        ``reopen`` lets a move to ``processing`` start from a finished state;
        it is ignored for every other target status.
        """
        status = ProcessingStatus(status)
        patch = dict(patch or {})
        patch.pop("processing_status", None)
        cols = _check_columns(patch.keys(), PATCHABLE_COLUMNS)

        assignments = ["processing_status = $2", "updated_at = NOW()"]
        allowed = _ALLOWED_FROM[status]
        if reopen and status == ProcessingStatus.PROCESSING:
            allowed = allowed | _REOPENABLE
        args: list[Any] = [document_id, status.value, sorted(allowed)]
        for col in cols:
            args.append(patch[col])
            assignments.append(f"{col} = ${len(args)}")

        sql = (
            f"UPDATE documents SET {', '.join(assignments)} "
            "WHERE id = $1::uuid AND COALESCE(processing_status, 'queued') = ANY($3::text[]) "
            "RETURNING id"
        )

        try:
            async with self._connect() as conn:
                row = await conn.fetchrow(sql, *args)
                if row is not None:
                    return StatusResult(applied=True)
                existing = await conn.fetchrow(
                    "SELECT processing_status FROM documents WHERE id = $1::uuid", document_id
                )
        except (asyncpg.PostgresError, OSError) as e:
            logger.error("Status update failed doc=%s status=%s: %s", document_id, status, e)
            return StatusResult(applied=False, error=f"{type(e).__name__}: {e}")

        if existing is None:
            return StatusResult(applied=False, error=f"Document {document_id} not found")

        logger.warning(
            "Refused status transition doc=%s %s -> %s",
            document_id,
            existing["processing_status"],
            status.value,
        )
        return StatusResult(applied=False)

    async def create_document(self, fields: Mapping[str, Any]) -> str:
        if not fields.get("user_id"):
            raise ValueError("user_id is required to create a document")
        data = dict(fields)
        data.setdefault("processing_status", ProcessingStatus.QUEUED.value)
        cols = _check_columns(data.keys(), _INSERTABLE_COLUMNS)
        placeholders = ", ".join(f"${i}" for i in range(1, len(cols) + 1))

        async with self._connect() as conn:
            doc_id = await conn.fetchval(
                f"INSERT INTO documents ({', '.join(cols)}) VALUES ({placeholders}) RETURNING id",
                *[str(data[c]) if isinstance(data[c], ProcessingStatus) else data[c] for c in cols],
            )
        logger.info("Created document %s", doc_id)
        return str(doc_id)

