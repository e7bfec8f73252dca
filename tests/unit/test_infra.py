"""Connection settings, logging setup and Gemini content selection."""

from __future__ import annotations

import json
import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from extraction_worker import db
from extraction_worker.content_selection import ContentSelector, build_gemini_client
from extraction_worker.logging_config import GCPJsonFormatter, JobContextFilter, job_context, setup_logging

# ===========================================================================
# db
# ===========================================================================


class TestDatabaseConfig:
    def test_database_url_wins(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db:5432/app")
        assert db.DatabaseConfig.get_connection_string() == "postgresql://u:p@db:5432/app"

    def test_discrete_settings(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.delenv("DB_PORT", raising=False)
        monkeypatch.setenv("DB_HOST", "pg")
        monkeypatch.setenv("DB_NAME", "content")
        monkeypatch.setenv("DB_SSLMODE", "require")

        dsn = db.DatabaseConfig.get_connection_string()

        assert dsn.startswith("postgresql://")
        assert "@pg:5432/content?sslmode=require" in dsn

    async def test_pool_created_once_with_application_name(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db/app")
        monkeypatch.setattr(db, "_pool", None)
        pool = MagicMock()
        pool.close = AsyncMock()
        create = AsyncMock(return_value=pool)

        with patch("extraction_worker.db.asyncpg.create_pool", create):
            assert await db.get_pool() is pool
            assert await db.get_pool() is pool
            await db.close_pool()

        create.assert_awaited_once()
        assert create.call_args.kwargs["server_settings"] == {"application_name": "extraction-worker"}
        pool.close.assert_awaited_once()
        assert db._pool is None


# ===========================================================================
# logging
# ===========================================================================


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestLogging:
    def test_json_when_requested(self, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "json")
        setup_logging(level="debug")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, GCPJsonFormatter)
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_severity_field(self):
        fmt = GCPJsonFormatter(fmt="%(message)s %(levelname)s")
        record = logging.LogRecord("w", logging.WARNING, __file__, 1, "slow %s", ("queue",), None)

        out = json.loads(fmt.format(record))

        assert out["severity"] == "WARNING"
        assert out["message"] == "slow queue"
        assert "levelname" not in out

    def test_job_context_fields(self):
        filt = JobContextFilter()
        inside = logging.LogRecord("w", logging.INFO, __file__, 1, "routing", (), None)
        outside = logging.LogRecord("w", logging.INFO, __file__, 1, "idle", (), None)

        with job_context(queue="video_processing_queue", msg_id=42):
            assert filt.filter(inside)
        assert filt.filter(outside)

        assert (inside.queue, inside.msg_id) == ("video_processing_queue", 42)
        assert not hasattr(outside, "msg_id")

    def test_plain_text_locally(self, monkeypatch):
        for name in ("LOG_FORMAT", "K_SERVICE", "CLOUD_RUN_JOB"):
            monkeypatch.delenv(name, raising=False)
        setup_logging()

        assert not isinstance(logging.getLogger().handlers[0].formatter, GCPJsonFormatter)


# ===========================================================================
# content selection
# ===========================================================================


class TestContentSelector:
    async def test_prompt_and_config(self):
        client = MagicMock()
        client.aio.models.generate_content = AsyncMock(return_value=MagicMock(text="  main body  "))
        selector = ContentSelector(client=client, model="gemini-2.5-flash", max_input_chars=10)

        out = await selector.select(content="0123456789ABCDEF", title="T", url="https://e.com")

        assert out == "main body"
        kwargs = client.aio.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-2.5-flash"
        assert "WEBPAGE URL: https://e.com" in kwargs["contents"]
        assert "0123456789" in kwargs["contents"]
        assert "ABCDEF" not in kwargs["contents"]
        assert kwargs["config"].temperature == 0.3

    async def test_empty_response_is_error(self):
        client = MagicMock()
        client.aio.models.generate_content = AsyncMock(return_value=MagicMock(text=None))

        with pytest.raises(RuntimeError, match="empty"):
            await ContentSelector(client=client, model="m").select(content="x", title="t", url="u")

    def test_client_requires_credentials(self, monkeypatch):
        for name in ("K_SERVICE", "GOOGLE_APPLICATION_CREDENTIALS", "GEMINI_API_KEY"):
            monkeypatch.delenv(name, raising=False)

        with pytest.raises(ValueError, match="GEMINI_API_KEY"):
            build_gemini_client()
