"""pgmq queue client.

Thin wrapper over the pgmq SQL API. ``pgmq.read`` hides a message for the
visibility timeout; the message reappears to other consumers only if it is
not deleted within that window.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import asyncpg

from extraction_worker.db import connection

logger = logging.getLogger(__name__)

ConnectFn = Callable[[], AbstractAsyncContextManager[asyncpg.Connection]]


@dataclass(frozen=True)
class QueueMessage:
    queue: str
    msg_id: int
    read_ct: int
    enqueued_at: datetime | None
    body: dict[str, Any] | str


class PgmqQueue:
    def __init__(self, *, visibility_timeout_s: int = 300, connect: ConnectFn = connection) -> None:
        self._vt = int(visibility_timeout_s)
        self._connect = connect

    async def receive(self, queue: str) -> QueueMessage | None:
        """Read at most one message, hiding it for the visibility timeout."""
        async with self._connect() as conn:
            row = await conn.fetchrow(
                "SELECT msg_id, read_ct, enqueued_at, message FROM pgmq.read($1, $2, 1)",
                queue,
                self._vt,
            )
        if row is None:
            return None
        body = row["message"]
        if isinstance(body, str | bytes):
            # jsonb comes back as text unless a codec is registered
            try:
                body = json.loads(body)
            except ValueError:
                body = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
        return QueueMessage(
            queue=queue,
            msg_id=int(row["msg_id"]),
            read_ct=int(row["read_ct"] or 0),
            enqueued_at=row["enqueued_at"],
            body=body,
        )

    async def delete(self, queue: str, msg_id: int) -> bool:
        async with self._connect() as conn:
            deleted = await conn.fetchval("SELECT pgmq.delete($1, $2::bigint)", queue, int(msg_id))
        if not deleted:
            logger.warning("pgmq.delete found no message queue=%s msg_id=%s", queue, msg_id)
        return bool(deleted)

    async def send(self, queue: str, message: dict[str, Any], *, delay_s: int = 0) -> int:
        async with self._connect() as conn:
            msg_id = await conn.fetchval(
                "SELECT pgmq.send($1, $2::jsonb, $3)",
                queue,
                json.dumps(message),
                int(delay_s),
            )
        return int(msg_id)
