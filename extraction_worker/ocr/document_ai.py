from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from google.api_core.client_options import ClientOptions
from google.cloud import documentai_v1 as documentai

logger = logging.getLogger(__name__)


class OcrEngine(Protocol):
    def recognize(self, content: bytes, mime_type: str) -> str: ...


@dataclass(frozen=True)
class DocAIConfig:
    project: str
    location: str
    processor_id: str
    timeout_s: float = 120.0

    @property
    def processor_name(self) -> str:
        return f"projects/{self.project}/locations/{self.location}/processors/{self.processor_id}"

    @property
    def api_endpoint(self) -> str:
        return f"{self.location}-documentai.googleapis.com"


class DocumentAIClient:
    """Online Document AI OCR, one rasterised page image per request."""

    def __init__(self, *, cfg: DocAIConfig, doc_client: Any | None = None) -> None:
        self._cfg = cfg
        self._doc_client = doc_client or documentai.DocumentProcessorServiceClient(
            client_options=ClientOptions(api_endpoint=cfg.api_endpoint)
        )

    def recognize(self, content: bytes, mime_type: str) -> str:
        req = documentai.ProcessRequest(
            name=self._cfg.processor_name,
            raw_document=documentai.RawDocument(content=content, mime_type=mime_type),
            skip_human_review=True,
        )
        resp = self._doc_client.process_document(request=req, timeout=self._cfg.timeout_s)
        doc = resp.document
        logger.debug("Document AI recognised %d chars over %d page(s)", len(doc.text or ""), len(doc.pages or ()))
        return doc.text or ""
