from __future__ import annotations

import asyncio

import pytest

from clawde.session.events import ResultEvent, TextEvent, ThinkingEvent, ToolUseEvent
from clawde.transcript import (
    WORKING_PLACEHOLDER,
    TranscriptPart,
    TranscriptReconciler,
    render_parts,
)
from tests.utils import FakeChannel


def test_render_keeps_emission_order() -> None:
    parts = [
        TranscriptPart("text", "Let me "),
        TranscriptPart("text", "check."),
        TranscriptPart("tool", "-# 📖 Read /a.py"),
        TranscriptPart("tool", "-# ⚡ ls"),
        TranscriptPart("text", "Done."),
    ]
    assert render_parts(parts) == "Let me check.\n\n-# 📖 Read /a.py\n\n-# ⚡ ls\n\nDone."


def test_render_placeholder_when_empty() -> None:
    assert render_parts([]) == WORKING_PLACEHOLDER


@pytest.mark.asyncio
async def test_first_event_renders_immediately() -> None:
    channel = FakeChannel()
    reconciler = TranscriptReconciler(channel, min_interval=5.0)
    reconciler.on_event(TextEvent("hi"))
    await asyncio.sleep(0.05)
    assert channel.texts() == ["hi"]
    await reconciler.discard()


@pytest.mark.asyncio
async def test_non_transcript_events_are_ignored() -> None:
    channel = FakeChannel()
    reconciler = TranscriptReconciler(channel, min_interval=0)
    reconciler.on_event(ThinkingEvent("hmm"))
    reconciler.on_event(ResultEvent(subtype="success"))
    await reconciler.finalize()
    assert reconciler.parts == []
    assert channel.sent == []


@pytest.mark.asyncio
async def test_bursts_are_coalesced() -> None:
    channel = FakeChannel()
    interval = 0.1
    reconciler = TranscriptReconciler(channel, min_interval=interval)
    loop = asyncio.get_running_loop()
    started = loop.time()

    for i in range(60):
        reconciler.on_event(TextEvent(f"{i} "))
        await asyncio.sleep(0.005)
    await reconciler.finalize()
    elapsed = loop.time() - started

    operations = len(channel.sent) + channel.edit_count
    assert operations <= elapsed / interval + 1
    assert operations < 60
    assert channel.sent[0].content == "".join(f"{i} " for i in range(60))


@pytest.mark.asyncio
async def test_tool_lines_show_up_between_text() -> None:
    channel = FakeChannel()
    reconciler = TranscriptReconciler(channel, min_interval=0)
    reconciler.on_event(TextEvent("Looking"))
    reconciler.on_event(ToolUseEvent("-# 🔍 Search files: *.py", tool_name="Glob"))
    reconciler.on_event(TextEvent("Found it"))
    await reconciler.finalize()
    assert channel.sent[0].content == "Looking\n\n-# 🔍 Search files: *.py\n\nFound it"


@pytest.mark.asyncio
async def test_long_render_spills_into_more_messages() -> None:
    channel = FakeChannel()
    reconciler = TranscriptReconciler(channel, min_interval=0, max_chunk=20)
    reconciler.on_event(TextEvent("x" * 15))
    await asyncio.sleep(0.01)
    reconciler.on_event(TextEvent("y" * 30))
    await reconciler.finalize()
    assert len(channel.sent) == 3
    assert "".join(m.content for m in channel.sent) == reconciler.render()
    assert all(len(m.content) <= 20 for m in channel.sent)


@pytest.mark.asyncio
async def test_apply_deletes_trailing_messages() -> None:
    channel = FakeChannel()
    reconciler = TranscriptReconciler(channel, min_interval=0)
    await reconciler._apply(["one", "two", "three"])
    await reconciler._apply(["uno"])
    assert [m.content for m in channel.live] == ["uno"]
    assert [m.deleted for m in channel.sent] == [False, True, True]


@pytest.mark.asyncio
async def test_unchanged_chunks_are_not_edited() -> None:
    channel = FakeChannel()
    reconciler = TranscriptReconciler(channel, min_interval=0)
    await reconciler._apply(["same", "a"])
    await reconciler._apply(["same", "b"])
    assert channel.edit_count == 1
    assert channel.sent[1].content == "b"


@pytest.mark.asyncio
async def test_edit_failures_are_swallowed() -> None:
    channel = FakeChannel()
    reconciler = TranscriptReconciler(channel, min_interval=0)
    reconciler.on_event(TextEvent("a"))
    await asyncio.sleep(0.01)
    channel.sent[0].fail_edits = True
    reconciler.on_event(TextEvent("b"))
    await reconciler.finalize()
    assert channel.sent[0].content == "a"


@pytest.mark.asyncio
async def test_discard_deletes_every_message_and_stops() -> None:
    channel = FakeChannel()
    reconciler = TranscriptReconciler(channel, min_interval=0, max_chunk=5)
    reconciler.on_event(TextEvent("abcdefghijkl"))
    await asyncio.sleep(0.01)
    assert len(channel.live) == 3

    await reconciler.discard()
    assert channel.live == []
    reconciler.on_event(TextEvent("more"))
    await asyncio.sleep(0.01)
    assert channel.live == []
    assert reconciler.closed


@pytest.mark.asyncio
async def test_discard_before_first_render_sends_nothing() -> None:
    channel = FakeChannel()
    reconciler = TranscriptReconciler(channel, min_interval=0)
    reconciler.on_event(TextEvent("a"))
    await reconciler.discard()
    await asyncio.sleep(0.01)
    assert channel.live == []


@pytest.mark.asyncio
async def test_cancelled_flag_blocks_updates() -> None:
    channel = FakeChannel()
    cancelled = False
    reconciler = TranscriptReconciler(channel, min_interval=0, is_cancelled=lambda: cancelled)
    reconciler.on_event(TextEvent("a"))
    await asyncio.sleep(0.01)
    cancelled = True
    reconciler.on_event(TextEvent("b"))
    await asyncio.sleep(0.01)
    assert channel.texts() == ["a"]
    assert [p.content for p in reconciler.parts] == ["a"]
