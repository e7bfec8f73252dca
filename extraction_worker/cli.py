from __future__ import annotations

import argparse

from extraction_worker.types import SourceType

ALL_QUEUES = tuple(st.value for st in SourceType)


def _queue_list(raw: str) -> list[SourceType]:
    names = [n.strip().lower() for n in raw.split(",") if n.strip()]
    bad = [n for n in names if n not in ALL_QUEUES]
    if bad or not names:
        raise argparse.ArgumentTypeError(
            f"expected a comma-separated subset of {', '.join(ALL_QUEUES)}, got {raw!r}"
        )
    # Keep the canonical video -> website -> document polling order
    return [st for st in SourceType if st.value in names]


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="extraction-worker",
        description="Poll the video, website and document queues and extract text into documents",
    )
    p.add_argument("--once", action="store_true", help="Run a single pass over the queues and exit")
    p.add_argument(
        "--queues",
        type=_queue_list,
        default=list(SourceType),
        help="Comma-separated subset of queues to poll (default: video,website,document)",
    )
    p.add_argument("--log-level", default="INFO", help="Python logging level (INFO, DEBUG, ...)")
    return p
