"""Chat-completion client for OpenRouter."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://openrouter.ai/api/v1/chat/completions"
DEFAULT_MODEL = "openai/gpt-oss-20b:free"


class LLMError(Exception):
    """Raised when the LLM service fails or returns an unusable envelope."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class LLMResponse:
    """Text returned by the model and the tokens it cost."""

    content: str | None
    tokens_used: int = 0


def extract_error_message(body: str) -> str:
    """Pull a readable message out of an error response body.

    OpenRouter wraps failures as ``{"error": {"message": ..., "code": ...}}``.
    Anything else is returned as-is, cut to 200 characters.
    """
    if not body or not body.strip():
        return "No error details available"

    try:
        data = json.loads(body)
    except ValueError:
        data = None

    if isinstance(data, dict) and isinstance(data.get("error"), dict):
        error = data["error"]
        message = error.get("message")
        if message:
            code = error.get("code")
            return f"[{code}] {message}" if code is not None else str(message)

    return body[:200] + "..." if len(body) > 200 else body


class LLMClient:
    """Sends single-turn prompts to an OpenAI-compatible chat endpoint."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        api_url: str | None = None,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: OpenRouter API key (falls back to OPENROUTER_API_KEY).
            model: Model identifier (falls back to OPENROUTER_MODEL).
            api_url: Endpoint URL (falls back to OPENROUTER_API_URL).
            timeout: HTTP timeout in seconds.
            client: Optional httpx client.
        """
        self.api_key = api_key or os.environ.get("OPENROUTER_API_KEY", "")
        self.model = model or os.environ.get("OPENROUTER_MODEL") or DEFAULT_MODEL
        self.api_url = api_url or os.environ.get("OPENROUTER_API_URL") or DEFAULT_API_URL
        self.timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create an HTTP client."""
        if self._client is not None:
            return self._client
        return httpx.AsyncClient(timeout=self.timeout)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "HTTP-Referer": "https://github.com/repomaint/repomaint",
            "X-Title": "Repository Maintainability Index",
        }

    async def complete(self, prompt: str) -> LLMResponse:
        """Run one chat completion.

        Args:
            prompt: The user message.

        Returns:
            The model's reply and total token usage.

        Raises:
            LLMError: On transport failure, non-2xx status, or a malformed
                response envelope.
        """
        logger.info(f"Sending LLM request to model: {self.model}")
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": 0.3,
            "max_tokens": 2000,
        }

        client = await self._get_client()
        try:
            response = await client.post(self.api_url, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            raise LLMError(f"LLM request failed: {e}") from e
        finally:
            if self._client is None:
                await client.aclose()

        if not response.is_success:
            message = extract_error_message(response.text)
            logger.warning(
                f"LLM API request failed for model '{self.model}': HTTP {response.status_code} - {message}"
            )
            raise LLMError(
                f"LLM API request failed: {response.status_code} (model: {self.model}) - {message}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LLMError(f"Malformed LLM response envelope: {e}") from e

        usage = data.get("usage") or {}
        return LLMResponse(content=content, tokens_used=int(usage.get("total_tokens") or 0))
