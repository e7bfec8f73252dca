"""Unit test conftest: no database, bucket or network required."""

from __future__ import annotations

import io
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from extraction_worker.types import ScheduleOutcome, StatusResult, SummaryType


@pytest.fixture
def mock_conn() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def fake_connect(mock_conn: AsyncMock):
    """Stand-in for ``db.connection`` yielding ``mock_conn``."""

    @asynccontextmanager
    async def _connect() -> AsyncIterator[AsyncMock]:
        yield mock_conn

    return _connect


@pytest.fixture
def status_store() -> AsyncMock:
    store = AsyncMock()
    store.update_status.return_value = StatusResult(applied=True)
    store.create_document.return_value = "new-doc-id"
    return store


@pytest.fixture
def scheduler() -> AsyncMock:
    sched = AsyncMock()
    sched.schedule_summaries.return_value = [
        ScheduleOutcome(summary_type=SummaryType.SHORT, scheduled=True, message_id=1),
        ScheduleOutcome(summary_type=SummaryType.LONG, scheduled=True, message_id=2),
    ]
    return sched


@pytest.fixture
def object_storage() -> MagicMock:
    storage = MagicMock()
    storage.upload_file.side_effect = lambda path, key, content_type=None: f"gs://bucket/{key}"
    storage.upload_string.side_effect = lambda data, key, content_type="text/plain": f"gs://bucket/{key}"
    return storage


@pytest.fixture
def ample_text() -> str:
    return (
        "The quarterly report covers revenue, operating costs and the hiring plan. "
        "Revenue grew in every region, led by strong subscription renewals. "
        "Operating costs stayed flat while headcount rose modestly."
    )


@pytest.fixture
def sample_docx_bytes() -> bytes:
    """Generate a 3-paragraph DOCX with a table in memory."""
    docx = pytest.importorskip("docx")
    doc = docx.Document()
    doc.add_paragraph("First paragraph of the document.")
    doc.add_paragraph("Second paragraph with more detail.")
    doc.add_paragraph("Third and final paragraph.")
    table = doc.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "Region"
    table.rows[0].cells[1].text = "EMEA"
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


@pytest.fixture
def sample_pdf_bytes(ample_text: str) -> bytes:
    """Generate a 1-page PDF whose text layer is well above the scanned floor."""
    fpdf = pytest.importorskip("fpdf")
    pdf = fpdf.FPDF()
    pdf.add_page()
    pdf.set_font("Helvetica", size=12)
    pdf.multi_cell(w=0, text=ample_text)
    return bytes(pdf.output())


@pytest.fixture
def empty_pdf_bytes() -> bytes:
    """Generate a 1-page PDF with no text content."""
    fpdf = pytest.importorskip("fpdf")
    pdf = fpdf.FPDF()
    pdf.add_page()
    return bytes(pdf.output())


@pytest.fixture
def write_file(tmp_path: Path):
    def _write(name: str, data: bytes | str) -> str:
        p = tmp_path / name
        if isinstance(data, str):
            p.write_text(data, encoding="utf-8")
        else:
            p.write_bytes(data)
        return str(p)

    return _write
