"""Worker exceptions.

Everything a processor raises is caught at the dispatcher boundary and turned
into a document ``error`` status, so ``str(exc)`` must read well to a user.
"""

from __future__ import annotations

from collections.abc import Sequence


class WorkerError(Exception):
    """Base class for all worker failures."""


class JobParseError(WorkerError):
    """Raised when a queue message cannot be turned into a Job."""


class ValidationError(WorkerError):
    """Bad input: malformed URL, structurally invalid file, etc. Never retried."""


class ExtractionError(WorkerError):
    """Raised when no extraction strategy produced usable text."""

    def __init__(self, diagnostic: str, *, attempted: Sequence[str] = ()) -> None:
        self.diagnostic = diagnostic
        self.attempted = list(attempted)
        super().__init__(diagnostic)


class InvalidPdfError(ExtractionError, ValidationError):
    """Structurally invalid PDF (corrupt, encrypted, missing header)."""


class VideoNotFoundError(WorkerError):
    def __init__(self, video_id: str, reason: str) -> None:
        self.video_id = video_id
        super().__init__(f"Video {video_id} not found or unavailable: {reason}")


class DownloadError(WorkerError):
    """Raised when every media download strategy failed."""

    def __init__(self, video_id: str, failures: dict[str, str]) -> None:
        self.video_id = video_id
        self.failures = failures
        detail = "; ".join(f"{name}: {err}" for name, err in failures.items()) or "no strategies configured"
        super().__init__(f"Failed to download media for video {video_id} ({detail})")


class StorageError(WorkerError):
    pass


class StatusUpdateError(WorkerError):
    pass
