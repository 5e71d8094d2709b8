"""
Anti-truncation controller for free-text sections.

A long section rarely fits in one completion: the model stops at its token
limit mid-sentence.  Each section is therefore asked to finish with a
per-section end sentinel, and the controller keeps asking for more (anchored on
the tail of what it already has) until the accumulated text is judged
complete or the round budget runs out.

States
------
DRAFTING    first request in flight
CONTINUING  at least one continuation request issued
COMPLETE    acceptance rule satisfied
EXHAUSTED   budget spent; best accumulated text returned (not an error)

Public API
----------
sentinel_for(key)                            -> str
strip_sentinels(text)                        -> str
is_likely_truncated(text)                    -> bool
is_severely_truncated(text)                  -> bool
ContinuationController.run(key, messages, continuation_builder) -> ContinuationResult
"""
from __future__ import annotations

import asyncio
import dataclasses
import enum
import logging
import re
from typing import Awaitable, Callable, List, Optional

from folio.config import GenerationConfig
from folio.services.completion_client import Message
from folio.services.errors import CompletionError

logger = logging.getLogger(__name__)

_SENTINEL_RE = re.compile(r"\[\[END_SECTION:[^\]]*\]\]")
_TERMINAL_CHARS = frozenset(".!?…”\"»")
_TRAILING_SEPARATOR_RE = re.compile(r"[:,;\-–—]\s*$")
_MID_WORD_RE = re.compile(r"\w$")

# Texts shorter than these are always treated as truncated
LIKELY_TRUNCATED_FLOOR = 200
SEVERELY_TRUNCATED_FLOOR = 350


# ---------------------------------------------------------------------------
# Sentinel and heuristics
# ---------------------------------------------------------------------------

def sentinel_for(key: str) -> str:
    return f"[[END_SECTION:{key}]]"


def strip_sentinels(text: str) -> str:
    """Remove every end sentinel (any key) and surrounding blank space."""
    return _SENTINEL_RE.sub("", text or "").strip()


def is_likely_truncated(text: str, floor: int = LIKELY_TRUNCATED_FLOOR) -> bool:
    """
    True when *text* looks cut off: it is short, or its last character is not
    terminal punctuation (so it also covers texts ending mid-word, on a colon
    or on a dash).  Empty text is not "truncated", it is simply missing.
    """
    t = (text or "").strip()
    if not t:
        return False
    if len(t) < floor:
        return True
    return t[-1] not in _TERMINAL_CHARS


def is_severely_truncated(text: str, floor: int = SEVERELY_TRUNCATED_FLOOR) -> bool:
    """
    Very short, or likely truncated and stopping on a separator (``: , ; -``)
    or in the middle of a word.
    """
    t = (text or "").strip()
    if len(t) < floor:
        return True
    return is_likely_truncated(t) and bool(_TRAILING_SEPARATOR_RE.search(t) or _MID_WORD_RE.search(t))


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------

class ContinuationState(str, enum.Enum):
    DRAFTING = "drafting"
    CONTINUING = "continuing"
    COMPLETE = "complete"
    EXHAUSTED = "exhausted"


@dataclasses.dataclass(frozen=True)
class ContinuationResult:
    text: str
    state: ContinuationState
    rounds: int
    transport_failures: int = 0

    @property
    def complete(self) -> bool:
        return self.state == ContinuationState.COMPLETE


CompleteFn = Callable[..., Awaitable[str]]
ContinuationBuilder = Callable[[str, str], List[Message]]


class ContinuationController:
    """
    Drive one text section to completion.

    ``client`` only needs an async ``complete(messages, temperature, max_tokens)``.
    ``sleep`` is injectable so tests do not wait on the inter-round delay.
    """

    def __init__(
        self,
        client,
        config: Optional[GenerationConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.config = config or GenerationConfig()
        self._sleep = sleep

    def is_acceptable(self, has_sentinel: bool, cleaned: str) -> bool:
        """Acceptance rule applied after every round."""
        length = len(cleaned)
        long_enough = length >= self.config.long_enough_chars
        if has_sentinel:
            return long_enough or (
                not is_likely_truncated(cleaned) and length >= self.config.min_chars
            )
        return long_enough and not is_severely_truncated(cleaned)

    async def run(
        self,
        key: str,
        messages: List[Message],
        continuation_builder: ContinuationBuilder,
    ) -> ContinuationResult:
        """
        Generate section *key* starting from *messages*.

        *continuation_builder(tail, sentinel)* returns the messages for a
        follow-up round; it only ever sees the last ``tail_chars`` characters
        of the accumulated text.

        Raises ``CompletionError`` only when every round failed at transport
        level, so there is nothing at all to return.
        """
        sentinel = sentinel_for(key)
        budget = max(1, self.config.continuation_rounds)
        accumulated = ""
        state = ContinuationState.DRAFTING
        failures = 0
        last_error: Optional[CompletionError] = None
        current = messages

        for round_index in range(budget):
            if round_index > 0:
                state = ContinuationState.CONTINUING
                await self._sleep(self.config.retry_delay)

            try:
                chunk = await self.client.complete(
                    current,
                    temperature=self.config.temperature,
                    max_tokens=self.config.max_tokens,
                )
            except CompletionError as exc:
                failures += 1
                last_error = exc
                chunk = ""
                logger.warning(
                    "continuation[%s]: %s round %d/%d transport failure: %s",
                    key, state.value, round_index + 1, budget, exc,
                )

            chunk = (chunk or "").strip()
            if chunk:
                accumulated = f"{accumulated}\n\n{chunk}" if accumulated else chunk

            has_sentinel = sentinel in accumulated
            cleaned = strip_sentinels(accumulated)

            if cleaned and self.is_acceptable(has_sentinel, cleaned):
                logger.info(
                    "continuation[%s]: complete after %d round(s), %d chars",
                    key, round_index + 1, len(cleaned),
                )
                return ContinuationResult(cleaned, ContinuationState.COMPLETE, round_index + 1, failures)

            if cleaned:
                current = continuation_builder(cleaned[-self.config.tail_chars:], sentinel)
            # Nothing accumulated yet: reissue the original prompt

        if failures == budget and last_error is not None:
            logger.error("continuation[%s]: all %d rounds failed at transport level", key, budget)
            raise last_error

        cleaned = strip_sentinels(accumulated)
        logger.warning(
            "continuation[%s]: budget exhausted after %d round(s), returning %d chars",
            key, budget, len(cleaned),
        )
        return ContinuationResult(cleaned, ContinuationState.EXHAUSTED, budget, failures)
