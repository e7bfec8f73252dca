"""AI-assisted main-content selection for scraped web pages (Gemini)."""

from __future__ import annotations

import logging
import os

from google import genai
from google.genai import types

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = (
    "You are a content extraction expert that identifies and extracts only the most "
    "valuable content from webpages."
)

PROMPT_TEMPLATE = """You are a content extraction expert. Your task is to extract only the most valuable content from this webpage.

WEBPAGE TITLE: {title}
WEBPAGE URL: {url}

INSTRUCTIONS:
1. Focus ONLY on the main content of the page.
2. EXCLUDE navigation menus, headers, footers, sidebars, ads, and other non-essential elements.
3. Preserve the actual factual content in its original wording.
4. Organize the content in a clean, readable format.
5. If the text appears to be a blog post or article, focus on the article body.
6. If it's a product page, focus on the product description, features, and specifications.
7. Maintain all relevant facts, figures, and data from the original content.
8. DO NOT summarize or paraphrase the content - extract it intact.

WEBPAGE CONTENT:
{content}

EXTRACTED VALUABLE CONTENT:
"""


def build_gemini_client() -> genai.Client:
    """Vertex AI on GCP (ADC), API key for local dev."""
    if os.getenv("K_SERVICE") or os.getenv("GOOGLE_APPLICATION_CREDENTIALS"):
        return genai.Client(
            vertexai=True,
            project=os.getenv("VERTEX_PROJECT"),
            location=os.getenv("VERTEX_LOCATION", "us-central1"),
        )
    api_key = os.getenv("GEMINI_API_KEY")
    if not api_key:
        raise ValueError("GEMINI_API_KEY not set. Set it for local dev or run on GCP for ADC.")
    return genai.Client(api_key=api_key)


class ContentSelector:
    def __init__(self, *, client: genai.Client, model: str, max_input_chars: int = 200_000) -> None:
        self._client = client
        self._model = model
        self._max_input_chars = max_input_chars

    async def select(self, *, content: str, title: str, url: str) -> str:
        prompt = PROMPT_TEMPLATE.format(title=title, url=url, content=content[: self._max_input_chars])
        response = await self._client.aio.models.generate_content(
            model=self._model,
            contents=prompt,
            config=types.GenerateContentConfig(
                system_instruction=SYSTEM_INSTRUCTION,
                temperature=0.3,
            ),
        )
        text = (response.text or "").strip()
        if not text:
            raise RuntimeError("Content selection returned empty content")
        logger.info("Content selection for %s kept %d of %d chars", url, len(text), len(content))
        return text
