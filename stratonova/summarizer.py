from __future__ import annotations

import logging
from typing import Any

import openai

from .config import Settings
from .exceptions import SummaryGenerationFailed


logger = logging.getLogger(__name__)


class Summarizer:
    """Single-shot chat completion: one user message in, one summary out."""

    def __init__(self, settings: Settings, client: Any | None = None):
        self.model = settings.openai_model
        self.client = client or openai.OpenAI(
            api_key=settings.openai_api_key,
            timeout=settings.request_timeout,
            max_retries=0,
        )

    def complete(self, prompt: str) -> str:
        logger.info("Requesting summary from %s (%s prompt chars).", self.model, len(prompt))
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
            )
        except openai.OpenAIError as exc:
            raise SummaryGenerationFailed(
                SummaryGenerationFailed.TRANSPORT_ERROR,
                f"OpenAI API error: {exc}",
            ) from exc

        choices = getattr(response, "choices", None) or []
        if not choices:
            raise SummaryGenerationFailed(
                SummaryGenerationFailed.EMPTY_RESPONSE,
                "No response received from the summarizer.",
            )
        content = choices[0].message.content
        summary = content.strip() if isinstance(content, str) else ""
        if not summary:
            raise SummaryGenerationFailed(
                SummaryGenerationFailed.EMPTY_RESPONSE,
                "Summarizer returned an empty message.",
            )
        return summary
