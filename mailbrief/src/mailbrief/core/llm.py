"""Single-shot completion client for the Gemini ``generateContent`` API.

What:
  Define the :class:`LLMClient` contract used by the summarizer and ranker and
  ship :class:`GeminiClient`, an ``httpx`` implementation of it.

Why:
  Both callers degrade locally when the model is unavailable, so they only
  need one call with a typed failure surface: :class:`TransportError` for
  anything network or status related (including a missing key) and
  :class:`ParseError` when the body does not carry a text candidate.

How:
  POST a one-part ``contents`` payload with ``generationConfig`` to
  ``{endpoint}/models/{model}:generateContent`` and read
  ``candidates[0].content.parts[0].text`` from the JSON response.

Interfaces:
  :class:`LLMClient`, :class:`GeminiClient`.

Invariants & Safety:
  - The API key travels in the ``x-goog-api-key`` header, never in the URL, so
    transport errors never echo it.
  - Response bodies are logged by size only.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Protocol

import httpx

from ..errors import MissingApiKeyError, ParseError, TransportError
from ..utils.logging import JsonLogger, get_logger


class LLMClient(Protocol):
    """Completes one prompt and returns the model text."""

    def complete(self, prompt: str, *, temperature: float, max_tokens: Optional[int] = None) -> str: ...


class GeminiClient:
    """:class:`LLMClient` backed by the Gemini REST API."""

    def __init__(
        self,
        *,
        endpoint: str,
        model: str,
        api_key: Callable[[], Optional[str]] | Optional[str],
        timeout_s: float = 30.0,
        client: Optional[httpx.Client] = None,
        logger: Optional[JsonLogger] = None,
    ) -> None:
        self._url = f"{endpoint.rstrip('/')}/models/{model}:generateContent"
        self._api_key = api_key
        self._timeout = timeout_s
        self._client = client
        self._logger = logger or get_logger("mailbrief.llm")

    def _resolve_key(self) -> str:
        key = self._api_key() if callable(self._api_key) else self._api_key
        if not key:
            raise MissingApiKeyError("LLM API key is not configured")
        return key

    def _post(self, payload: Dict[str, Any], key: str) -> httpx.Response:
        headers = {"x-goog-api-key": key, "Content-Type": "application/json"}
        if self._client is not None:
            return self._client.post(self._url, json=payload, headers=headers, timeout=self._timeout)
        with httpx.Client(timeout=self._timeout) as client:
            return client.post(self._url, json=payload, headers=headers)

    def complete(self, prompt: str, *, temperature: float, max_tokens: Optional[int] = None) -> str:
        """Return the first candidate text for ``prompt``.

        Raises:
          MissingApiKeyError: No API key is configured.
          TransportError: The request failed or returned a non-2xx status.
          ParseError: The response carried no usable text.
        """

        key = self._resolve_key()
        generation: Dict[str, Any] = {"temperature": temperature}
        if max_tokens is not None:
            generation["maxOutputTokens"] = max_tokens
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": generation,
        }
        try:
            response = self._post(payload, key)
        except httpx.HTTPError as exc:
            raise TransportError(f"LLM request failed: {exc}") from exc
        if not response.is_success:
            self._logger.error(
                "llm_http_error",
                status=response.status_code,
                response_bytes=len(response.content),
            )
            raise TransportError(
                f"LLM API returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return _extract_text(response)


def _extract_text(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError as exc:
        raise ParseError("LLM response is not valid JSON") from exc
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ParseError("LLM response carries no text candidate") from exc
    if not isinstance(text, str) or not text.strip():
        raise ParseError("LLM response text is empty")
    return text.strip()
