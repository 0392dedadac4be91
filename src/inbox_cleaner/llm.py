"""Anthropic text-completion collaborator for sender classification."""

from __future__ import annotations

import logging

from anthropic import Anthropic, APIError

from .constants import AI_MAX_TOKENS, DEFAULT_AI_MODEL
from .errors import ClassificationError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You classify email senders. Respond with a single JSON object only."


class AnthropicCompletion:
    """Callable ``prompt -> response text`` backed by the Messages API."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_AI_MODEL,
        max_tokens: int = AI_MAX_TOKENS,
        client: Anthropic | None = None,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self._client = client or Anthropic(api_key=api_key)

    def __call__(self, prompt: str) -> str:
        try:
            response = self._client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=0,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
            )
        except APIError as exc:
            raise ClassificationError(f"Classification request failed: {exc}") from exc

        for block in getattr(response, "content", []):
            if getattr(block, "type", None) == "text":
                return getattr(block, "text", "")
        raise ClassificationError("Classification response did not contain text content")
