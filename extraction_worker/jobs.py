"""Queue message -> Job normalization.

Producers have written both snake_case and camelCase field names over time.
This is the only place that knows about either spelling; everything
downstream sees a canonical ``Job``.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from extraction_worker.errors import JobParseError
from extraction_worker.types import Job, ProcessingOptions, SourceType

# canonical name -> accepted spellings, first match wins
_ALIASES: dict[str, tuple[str, ...]] = {
    "video_id": ("video_id", "videoId"),
    "url": ("url", "source_url", "sourceUrl"),
    "document_id": ("document_id", "documentId"),
    "user_id": ("user_id", "userId"),
    "source_url": ("source_url", "sourceUrl"),
    "collection_id": ("collection_id", "collectionId"),
    "processing_options": ("processingOptions", "processing_options"),
}

_OPTION_ALIASES: dict[str, tuple[str, ...]] = {
    "generate_short_form": ("generateShortForm", "generate_short_form"),
    "generate_long_form": ("generateLongForm", "generate_long_form"),
    "generate_audio": ("generateAudio", "generate_audio"),
    "collection_id": ("collectionId", "collection_id"),
    "ai_content_extraction": ("ai_content_extraction", "aiContentExtraction"),
}
_KNOWN_OPTION_KEYS = frozenset(k for spellings in _OPTION_ALIASES.values() for k in spellings)

# Which canonical field identifies the source for each queue
_SOURCE_FIELD = {
    SourceType.VIDEO: "video_id",
    SourceType.WEBSITE: "url",
    SourceType.DOCUMENT: "document_id",
}


def _pick(body: Mapping[str, Any], aliases: tuple[str, ...]) -> Any:
    for key in aliases:
        v = body.get(key)
        if v is not None and v != "":
            return v
    return None


def _as_str(v: Any) -> str | None:
    return None if v is None else str(v)


def _as_bool(v: Any, default: bool) -> bool:
    if v is None:
        return default
    if isinstance(v, str):
        return v.strip().lower() in ("1", "true", "t", "yes", "y", "on")
    return bool(v)


def parse_processing_options(raw: Any) -> ProcessingOptions | None:
    if raw is None:
        return None
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise JobParseError(f"processingOptions is not valid JSON: {e}") from e
    if not isinstance(raw, Mapping):
        raise JobParseError(f"processingOptions must be an object, got {type(raw).__name__}")
    return ProcessingOptions(
        generate_short_form=_as_bool(_pick(raw, _OPTION_ALIASES["generate_short_form"]), False),
        generate_long_form=_as_bool(_pick(raw, _OPTION_ALIASES["generate_long_form"]), False),
        generate_audio=_as_bool(_pick(raw, _OPTION_ALIASES["generate_audio"]), True),
        collection_id=_as_str(_pick(raw, _OPTION_ALIASES["collection_id"])),
        ai_content_extraction=_as_bool(_pick(raw, _OPTION_ALIASES["ai_content_extraction"]), True),
        raw={k: v for k, v in raw.items() if k not in _KNOWN_OPTION_KEYS},
    )


def decode_body(body: Mapping[str, Any] | str | bytes) -> dict[str, Any]:
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    if isinstance(body, str):
        try:
            body = json.loads(body)
        except ValueError as e:
            raise JobParseError(f"Message body is not valid JSON: {e}") from e
        # Some producers double-encode the payload
        if isinstance(body, str):
            return decode_body(body)
    if not isinstance(body, Mapping):
        raise JobParseError(f"Message body must be a JSON object, got {type(body).__name__}")
    return dict(body)


def parse_job(
    source_type: SourceType,
    msg_id: int,
    body: Mapping[str, Any] | str | bytes,
    *,
    read_ct: int = 1,
) -> Job:
    data = decode_body(body)

    source_field = _SOURCE_FIELD[source_type]
    source_id = _as_str(_pick(data, _ALIASES[source_field]))
    user_id = _as_str(_pick(data, _ALIASES["user_id"]))
    document_id = _as_str(_pick(data, _ALIASES["document_id"]))

    missing = [name for name, v in ((source_field, source_id), ("user_id", user_id)) if not v]
    if source_type == SourceType.WEBSITE and not document_id:
        missing.append("document_id")
    if missing:
        raise JobParseError(f"{source_type.value} message {msg_id} is missing: {', '.join(missing)}")

    options = parse_processing_options(_pick(data, _ALIASES["processing_options"]))
    collection_id = _as_str(_pick(data, _ALIASES["collection_id"]))
    if collection_id is None and options is not None:
        collection_id = options.collection_id

    return Job(
        source_type=source_type,
        source_id=source_id,  # type: ignore[arg-type]
        user_id=user_id,  # type: ignore[arg-type]
        document_id=document_id,
        queue_message_id=int(msg_id),
        collection_id=collection_id,
        source_url=_as_str(_pick(data, _ALIASES["source_url"])),
        processing_options=options,
        read_ct=int(read_ct),
    )


def peek_document_id(body: Mapping[str, Any] | str | bytes) -> str | None:
    """Best-effort document id from a message that failed to parse."""
    try:
        data = decode_body(body)
    except JobParseError:
        return None
    return _as_str(_pick(data, _ALIASES["document_id"]))
