"""Split long text into chat-message-sized pieces."""

from __future__ import annotations

import re

MESSAGE_LIMIT = 2000
RENDER_CHUNK_LIMIT = 1900

_FENCE = "```"
_FENCE_CLOSE = "\n```"
_FENCE_REOPEN = "```\n"
_FENCE_PATTERN = re.compile(r"```\n?")


def split_render_chunks(text: str, limit: int = RENDER_CHUNK_LIMIT) -> list[str]:
    """Cut a live transcript render into chunks of at most `limit` characters.

    Cuts prefer the last newline inside the window, unless that would leave a
    chunk shorter than half the limit. Nothing is trimmed, so joining the
    chunks gives back `text` exactly.
    """

    if limit <= 0:
        raise ValueError("limit must be positive")
    if len(text) <= limit:
        return [text]

    chunks: list[str] = []
    remaining = text
    while len(remaining) > limit:
        cut = remaining.rfind("\n", 0, limit + 1)
        if cut < limit // 2 or cut <= 0:
            cut = limit
        chunks.append(remaining[:cut])
        remaining = remaining[cut:]
    if remaining:
        chunks.append(remaining)
    return chunks


def _last_fence_end(text: str, limit: int) -> int:
    in_block = False
    last_end = -1
    for match in _FENCE_PATTERN.finditer(text):
        if match.start() >= limit:
            break
        if in_block:
            last_end = match.end()
        in_block = not in_block
    return last_end


def split_message(content: str, limit: int = MESSAGE_LIMIT) -> list[str]:
    """Split a final reply for sending, keeping code fences balanced per chunk.

    Break points are tried in order: just after a closing fence, the last
    newline, the last space, then a hard cut. A chunk that ends inside a code
    block is closed with a fence and the next chunk reopens it.
    """

    if len(content) <= limit:
        return [content]

    budget = limit - len(_FENCE_CLOSE)
    floor = budget * 0.3
    chunks: list[str] = []
    remaining = content
    while remaining:
        if len(remaining) <= limit:
            chunks.append(remaining)
            break

        split_at = _last_fence_end(remaining, budget)
        if split_at <= floor or split_at > budget:
            split_at = remaining.rfind("\n", 0, budget)
            if split_at < floor:
                split_at = remaining.rfind(" ", 0, budget)
            if split_at < floor:
                split_at = budget

        chunk = remaining[:split_at]
        remaining = remaining[split_at:].lstrip()
        if chunk.count(_FENCE) % 2:
            chunk += _FENCE_CLOSE
            remaining = _FENCE_REOPEN + remaining
        chunks.append(chunk)
    return chunks


__all__ = ["MESSAGE_LIMIT", "RENDER_CHUNK_LIMIT", "split_message", "split_render_chunks"]
