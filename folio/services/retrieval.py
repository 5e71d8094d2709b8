"""
Optional retrieval adapter used to ground text sections in source passages.

Talks to a search proxy (``RETRIEVAL_PROXY_URL``) that already embeds the
query.  Retrieval is best-effort: with no proxy configured, or on any failure,
``search`` returns an empty result and generation carries on without sources.

Public API
----------
RetrievalClient.search(query, limit, filter, score_threshold) -> RetrievalResult
dedupe_passages(passages)                                      -> List[Passage]
format_passages_for_prompt(passages, max_passages)             -> str
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Any, Dict, List, Optional

import httpx

from folio.config import settings

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class Passage:
    title: str
    text: str
    ref: str = ""
    score: float = 0.0


@dataclasses.dataclass(frozen=True)
class RetrievalResult:
    sources: List[Dict[str, Any]] = dataclasses.field(default_factory=list)
    passages: List[Passage] = dataclasses.field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.passages


def _to_passage(item: Any) -> Optional[Passage]:
    if not isinstance(item, dict):
        return None
    text = str(item.get("text") or item.get("chunk") or "").strip()
    if not text:
        return None
    try:
        score = float(item.get("score") or 0.0)
    except (TypeError, ValueError):
        score = 0.0
    return Passage(
        title=str(item.get("title") or item.get("source") or "Source").strip(),
        text=text,
        ref=str(item.get("ref") or item.get("id") or "").strip(),
        score=score,
    )


class RetrievalClient:
    """POST ``{query, limit, filter, score_threshold}`` to the search proxy."""

    def __init__(
        self,
        proxy_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.proxy_url = proxy_url if proxy_url is not None else settings.RETRIEVAL_PROXY_URL
        self.timeout = httpx.Timeout(float(timeout or settings.RETRIEVAL_TIMEOUT), connect=5.0)
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.proxy_url)

    async def search(
        self,
        query: str,
        limit: int = 6,
        filter: Optional[Dict[str, Any]] = None,
        score_threshold: Optional[float] = None,
    ) -> RetrievalResult:
        if not self.is_configured or not query.strip():
            return RetrievalResult()

        payload: Dict[str, Any] = {"query": query, "limit": limit}
        if filter:
            payload["filter"] = filter
        if score_threshold is not None:
            payload["score_threshold"] = score_threshold

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(self.proxy_url, json=payload)
            if resp.status_code != 200:
                logger.warning("search: proxy returned HTTP %d", resp.status_code)
                return RetrievalResult()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("search: retrieval unavailable: %s", exc)
            return RetrievalResult()

        if not isinstance(data, dict):
            return RetrievalResult()
        sources = [s for s in data.get("sources") or [] if isinstance(s, dict)]
        passages = [p for p in (_to_passage(i) for i in data.get("passages") or []) if p is not None]
        if score_threshold is not None:
            passages = [p for p in passages if p.score == 0.0 or p.score >= score_threshold]
        return RetrievalResult(sources=sources, passages=passages)


def dedupe_passages(passages: List[Passage]) -> List[Passage]:
    """Keep the first passage per (ref, text prefix)."""
    seen = set()
    out: List[Passage] = []
    for p in passages:
        key = (p.ref, p.text[:200])
        if key in seen:
            continue
        seen.add(key)
        out.append(p)
    return out


def format_passages_for_prompt(passages: List[Passage], max_passages: int = 10) -> str:
    """Render passages as ``(i) title [ref]`` followed by the passage text."""
    blocks = []
    for i, p in enumerate(passages[:max_passages], start=1):
        ref = f" [{p.ref}]" if p.ref else ""
        blocks.append(f"({i}) {p.title}{ref}\n{p.text}")
    return "\n\n".join(blocks)
