"""Incremental decoders for streamed completion payloads.

Both decoders consume an async iterable of raw network chunks (``bytes`` or
``str``) and lazily yield the text fragments that a caller-supplied
``extract`` function pulls out of each JSON record. Lines split across chunk
boundaries are reassembled, CRLF line endings are accepted and a trailing
line without a newline is flushed when the source ends.
"""

import codecs
import json
from typing import Any, AsyncIterable, AsyncIterator, Callable

Extractor = Callable[[Any], str | None]

SSE_DONE_SENTINEL = "[DONE]"

# Extractors usually index into nested payloads; a record of the wrong shape
# is skipped like an unparseable one.
_EXTRACT_ERRORS = (KeyError, IndexError, TypeError, AttributeError, ValueError)


async def _iter_lines(source: AsyncIterable[bytes | str]) -> AsyncIterator[str]:
    """Yield complete lines from a chunked source, flushing the tail at EOF."""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    async for chunk in source:
        if isinstance(chunk, (bytes, bytearray)):
            buffer += decoder.decode(bytes(chunk))
        else:
            buffer += str(chunk)
        while "\n" in buffer:
            line, buffer = buffer.split("\n", 1)
            yield line.rstrip("\r")
    buffer += decoder.decode(b"", final=True)
    if buffer:
        yield buffer.rstrip("\r")


def _extract(payload: str, extract: Extractor) -> str | None:
    try:
        record = json.loads(payload)
    except json.JSONDecodeError:
        return None
    try:
        fragment = extract(record)
    except _EXTRACT_ERRORS:
        return None
    return fragment or None


async def iter_sse(
    source: AsyncIterable[bytes | str],
    extract: Extractor,
) -> AsyncIterator[str]:
    """Decode an event-stream body into text fragments.

    Only ``data:`` lines are considered; comments (``:``), ``event:``/``id:``
    metadata and blank lines are ignored. Decoding stops at ``[DONE]``.
    """
    async for line in _iter_lines(source):
        stripped = line.strip()
        if not stripped.startswith("data:"):
            continue
        payload = stripped[len("data:"):].strip()
        if not payload:
            continue
        if payload == SSE_DONE_SENTINEL:
            return
        fragment = _extract(payload, extract)
        if fragment is not None:
            yield fragment


async def iter_ndjson(
    source: AsyncIterable[bytes | str],
    extract: Extractor,
) -> AsyncIterator[str]:
    """Decode a newline-delimited JSON body into text fragments."""
    async for line in _iter_lines(source):
        stripped = line.strip()
        if not stripped:
            continue
        fragment = _extract(stripped, extract)
        if fragment is not None:
            yield fragment
