"""
Linear retry loop for schema-bound (JSON) sections.

The same structured prompt is issued up to ``1 + json_retries`` times.  After
a failed parse the next attempt appends a strict "JSON only" instruction and
lowers the temperature by a fixed step.  The first response that yields a JSON
object wins; if none does the caller gets ``None`` and substitutes fallback
content.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from folio.config import GenerationConfig
from folio.models.document import RawAttempt
from folio.services import prompts
from folio.services.completion_client import Message
from folio.services.errors import CompletionError
from folio.services.structured_extractor import extract_object

logger = logging.getLogger(__name__)


class SchemaRetryController:
    """Issue a structured prompt until the reply parses as a JSON object."""

    def __init__(
        self,
        client,
        config: Optional[GenerationConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.config = config or GenerationConfig()
        self._sleep = sleep

    def _strict_messages(self, messages: List[Message], lang: str) -> List[Message]:
        """Copy of *messages* with the strict JSON instruction appended to the last user turn."""
        out = [dict(m) for m in messages]
        suffix = prompts.strict_json_suffix(lang)
        for message in reversed(out):
            if message.get("role") == "user":
                message["content"] = f"{message['content']}\n\n{suffix}"
                break
        else:
            out.append({"role": "user", "content": suffix})
        return out

    async def run(self, key: str, messages: List[Message], lang: str = "fr") -> Optional[Dict[str, Any]]:
        """
        Return the parsed object for section *key*, or ``None`` when every
        attempt failed to parse.

        Transport failures count as failed attempts.  ``CompletionError`` is
        re-raised only when no attempt reached the model at all.
        """
        attempts = 1 + max(0, self.config.json_retries)
        temperature = self.config.temperature
        strict = self._strict_messages(messages, lang)
        failures = 0
        last_error: Optional[CompletionError] = None

        for index in range(attempts):
            if index > 0:
                await self._sleep(self.config.retry_delay)
                temperature = max(0.0, temperature - self.config.temperature_step)

            current = messages if index == 0 else strict
            try:
                text = await self.client.complete(
                    current,
                    temperature=temperature,
                    max_tokens=self.config.max_tokens,
                )
            except CompletionError as exc:
                failures += 1
                last_error = exc
                logger.warning(
                    "schema_retry[%s]: attempt %d/%d transport failure: %s",
                    key, index + 1, attempts, exc,
                )
                continue

            attempt = RawAttempt(text=text or "", attempt_index=index)
            parsed = extract_object(attempt.text)
            if parsed is not None:
                if index > 0:
                    logger.info("schema_retry[%s]: JSON parsed on attempt %d", key, index + 1)
                return parsed

            logger.warning(
                "schema_retry[%s]: JSON parse failed on attempt %d/%d",
                key, index + 1, attempts,
            )

        if failures == attempts and last_error is not None:
            logger.error("schema_retry[%s]: all %d attempts failed at transport level", key, attempts)
            raise last_error

        logger.error("schema_retry[%s]: all %d JSON parse attempts failed", key, attempts)
        return None
