"""
Shared fixtures for Folio backend tests.

No network is used anywhere: the completion service is replaced by
``ScriptedClient`` and the retrieval proxy is left unconfigured.  Each test
that needs HTTP gets its own application built with ``create_app`` so job
stores and generation slots never leak between tests.
"""
from __future__ import annotations

import re
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional, Sequence, Union

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from folio.config import GenerationConfig, Settings
from folio.main import create_app
from folio.services.retrieval import RetrievalClient

_SENTINEL_RE = re.compile(r"\[\[END_SECTION:[^\]]+\]\]")

Reply = Union[str, Exception]


class ScriptedClient:
    """
    Stand-in for ``CompletionClient``.

    Replies come from *responder(messages)* when given, otherwise from the
    *replies* queue, then *default*.  An ``Exception`` reply is raised.
    """

    def __init__(
        self,
        replies: Sequence[Reply] = (),
        default: Reply = "",
        responder: Optional[Callable[[List[Dict[str, str]]], Reply]] = None,
    ) -> None:
        self.replies = list(replies)
        self.default = default
        self.responder = responder
        self.calls: List[Dict[str, Any]] = []

    @property
    def is_configured(self) -> bool:
        return True

    async def complete(self, messages, temperature=0.25, max_tokens=1600) -> str:
        self.calls.append({"messages": messages, "temperature": temperature, "max_tokens": max_tokens})
        if self.responder is not None:
            reply = self.responder(messages)
        elif self.replies:
            reply = self.replies.pop(0)
        else:
            reply = self.default
        if isinstance(reply, Exception):
            raise reply
        return reply

    def user_message(self, call_index: int) -> str:
        return self.calls[call_index]["messages"][-1]["content"]


def long_paragraph(sentences: int = 40, topic: str = "the project") -> str:
    return " ".join(f"Sentence {i} describes {topic} in practical terms." for i in range(sentences))


def well_behaved_responder(messages: List[Dict[str, str]]) -> str:
    """Text prompts get a complete answer with the right sentinel; structured prompts get ``{}``."""
    prompt = messages[-1]["content"]
    match = _SENTINEL_RE.search(prompt)
    if match:
        return f"{long_paragraph(60)}\n{match.group(0)}"
    return "{}"


async def no_sleep(_seconds: float) -> None:
    return None


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def gen_config() -> GenerationConfig:
    return GenerationConfig(retry_delay=0.0)


@pytest.fixture
def scripted_client() -> ScriptedClient:
    return ScriptedClient(responder=well_behaved_responder)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        LLM_API_KEY="test-key",
        RETRIEVAL_PROXY_URL="",
        MAX_CONCURRENT_GENERATIONS=1,
        PDF_MAX_PAGES=36,
        JOB_SWEEP_INTERVAL_SECONDS=3600.0,
    )


@pytest.fixture
def app(test_settings: Settings, scripted_client: ScriptedClient, gen_config: GenerationConfig):
    return create_app(
        test_settings,
        completion_client=scripted_client,
        retrieval_client=RetrievalClient(proxy_url=""),
        generation_config=gen_config,
        sleep=no_sleep,
    )


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient wired to a per-test FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    await app.state.job_runner.shutdown()
