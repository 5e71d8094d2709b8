"""Tests for the anti-truncation controller and its heuristics."""
import pytest

from folio.config import GenerationConfig
from folio.services import prompts
from folio.services.continuation import (
    ContinuationController,
    ContinuationState,
    is_likely_truncated,
    is_severely_truncated,
    sentinel_for,
    strip_sentinels,
)
from folio.services.errors import CompletionError
from tests.conftest import ScriptedClient, long_paragraph, no_sleep

KEY = "market_analysis"
SENTINEL = sentinel_for(KEY)


def _builder(tail, sentinel):
    return prompts.continuation_messages("business_plan", "en", tail, sentinel)


def _controller(client, **overrides):
    config = GenerationConfig(retry_delay=0.0, **overrides)
    return ContinuationController(client, config, sleep=no_sleep)


def _first_messages():
    return prompts.text_section_messages(
        "business_plan", "en", "Market Analysis", {"sector": "dairy"}, sentinel=SENTINEL
    )


# ---------------------------------------------------------------------------
# Heuristics
# ---------------------------------------------------------------------------

def test_sentinel_is_unique_per_key():
    assert sentinel_for("a") != sentinel_for("b")
    assert strip_sentinels(f"Body text.\n{sentinel_for('a')}") == "Body text."


def test_strip_removes_every_sentinel():
    text = f"One. {sentinel_for('x')} Two. {sentinel_for('y')}"
    assert "END_SECTION" not in strip_sentinels(text)


def test_likely_truncated():
    complete = long_paragraph(10)
    assert not is_likely_truncated(complete)
    assert is_likely_truncated(complete + " and then")
    assert is_likely_truncated(complete + " as follows:")
    assert is_likely_truncated("Short.")
    assert not is_likely_truncated("")


def test_severely_truncated():
    complete = long_paragraph(20)
    assert not is_severely_truncated(complete)
    assert is_severely_truncated("Way too short.")
    assert is_severely_truncated(complete + " the main drivers are:")
    assert is_severely_truncated(complete + " approvals are still pending ne")


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_complete_on_first_round_with_sentinel():
    body = long_paragraph(40)
    client = ScriptedClient([f"{body}\n{SENTINEL}"])
    result = await _controller(client).run(KEY, _first_messages(), _builder)

    assert result.state == ContinuationState.COMPLETE
    assert result.rounds == 1
    assert result.text == body
    assert len(client.calls) == 1


@pytest.mark.asyncio
async def test_short_draft_ending_mid_word_triggers_continuation():
    first = "The dairy market in the region grows steadily and approvals are still pending ne"
    assert is_severely_truncated(first)
    rest = "eded for the second site. " + long_paragraph(25) + f"\n{SENTINEL}"
    client = ScriptedClient([first, rest])

    result = await _controller(client).run(KEY, _first_messages(), _builder)

    assert len(client.calls) == 2
    follow_up = client.user_message(1)
    assert f'"""{first}"""' in follow_up
    assert SENTINEL in follow_up
    assert result.state == ContinuationState.COMPLETE
    assert result.rounds == 2
    assert SENTINEL not in result.text


@pytest.mark.asyncio
async def test_continuation_anchor_is_last_900_characters():
    first = "".join(f"Sentence number {i} about the market. " for i in range(60)) + "and the pending ne"
    assert len(first) > 900
    assert is_severely_truncated(first)
    client = ScriptedClient([first, "eded permits arrive next quarter. " + long_paragraph(5) + f"\n{SENTINEL}"])

    await _controller(client).run(KEY, _first_messages(), _builder)

    follow_up = client.user_message(1)
    assert first[-900:] in follow_up
    assert first[:40] not in follow_up


@pytest.mark.asyncio
async def test_exhausted_budget_returns_best_text_without_sentinel():
    client = ScriptedClient(default="A partial draft that never finishes and keeps going")
    result = await _controller(client, continuation_rounds=3).run(KEY, _first_messages(), _builder)

    assert result.state == ContinuationState.EXHAUSTED
    assert not result.complete
    assert result.rounds == 3
    assert len(client.calls) == 3
    assert result.text
    assert "END_SECTION" not in result.text


@pytest.mark.asyncio
async def test_long_text_without_sentinel_is_accepted():
    body = long_paragraph(80)
    assert len(body) >= 2200
    client = ScriptedClient([body])
    result = await _controller(client).run(KEY, _first_messages(), _builder)

    assert result.state == ContinuationState.COMPLETE
    assert result.text == body


@pytest.mark.asyncio
async def test_sentinel_with_too_little_text_keeps_going():
    client = ScriptedClient([f"Too short.\n{SENTINEL}", long_paragraph(30) + f"\n{SENTINEL}"])
    result = await _controller(client).run(KEY, _first_messages(), _builder)

    assert result.rounds == 2
    assert result.complete
    assert result.text.startswith("Too short.")
    assert "END_SECTION" not in result.text


@pytest.mark.asyncio
async def test_transport_failure_counts_as_empty_round():
    body = long_paragraph(40)
    client = ScriptedClient([CompletionError("boom", 503), f"{body}\n{SENTINEL}"])
    result = await _controller(client).run(KEY, _first_messages(), _builder)

    assert result.complete
    assert result.transport_failures == 1
    # Nothing was accumulated, so the original prompt is reissued
    assert client.calls[1]["messages"] == client.calls[0]["messages"]


@pytest.mark.asyncio
async def test_all_rounds_failing_raises():
    client = ScriptedClient(default=CompletionError("down", 502))
    with pytest.raises(CompletionError):
        await _controller(client).run(KEY, _first_messages(), _builder)
