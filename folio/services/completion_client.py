"""
Thin async client for an OpenAI-compatible chat-completions endpoint.

Pure transport: one request per call, no retries, no parsing of the model's
answer beyond pulling the message text out of the envelope.  Every failure is
raised as ``CompletionError`` so the controllers above can decide what a
failed round means.

Public API
----------
CompletionClient.complete(messages, temperature, max_tokens) -> str
CompletionClient.is_configured                             -> bool
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from folio.config import settings
from folio.services.errors import CompletionError

logger = logging.getLogger(__name__)

Message = Dict[str, str]


class CompletionClient:
    """Stateless wrapper around ``POST {base_url}/v1/chat/completions``."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url if base_url is not None else settings.LLM_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.LLM_API_KEY
        self.model = model or settings.LLM_MODEL
        self.timeout_seconds = float(timeout or settings.LLM_TIMEOUT)
        self.timeout = httpx.Timeout(self.timeout_seconds, connect=10.0)
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    async def complete(
        self,
        messages: List[Message],
        temperature: float = 0.25,
        max_tokens: int = 1600,
    ) -> str:
        """
        Send *messages* and return the first choice's message content.

        Raises ``CompletionError`` on missing configuration, timeouts,
        connection failures, non-200 responses and malformed envelopes.
        """
        if not self.is_configured:
            raise CompletionError("completion service is not configured (LLM_API_KEY missing)")

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stream": False,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(
                    f"{self.base_url}/v1/chat/completions",
                    json=payload,
                    headers=headers,
                )
        except httpx.TimeoutException as exc:
            logger.error("complete: request timed out after %.0f s", self.timeout_seconds)
            raise CompletionError(f"completion request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            logger.error("complete: transport error: %s", exc)
            raise CompletionError(f"completion transport error: {exc}") from exc

        if resp.status_code != 200:
            logger.error(
                "complete: endpoint returned HTTP %d: %s",
                resp.status_code,
                resp.text[:300],
            )
            raise CompletionError(
                f"completion endpoint returned HTTP {resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise CompletionError(f"malformed completion response: {exc}") from exc

        return content or ""
