import pytest

from deskpilot.llm.streaming import iter_ndjson, iter_sse


async def _chunks(*parts):
    for part in parts:
        yield part


async def _collect(gen) -> list[str]:
    return [fragment async for fragment in gen]


def _openai_delta(record):
    return record["choices"][0]["delta"].get("content")


def _ollama_message(record):
    return record["message"]["content"]


@pytest.mark.asyncio
async def test_sse_reassembles_lines_split_across_chunks():
    source = _chunks(
        b'data: {"choices":[{"delta":{"content":"Hel',
        b'lo"}}]}\n\ndata: {"choices":[{"delta":{"content":" world"}}]}\n',
    )

    assert await _collect(iter_sse(source, _openai_delta)) == ["Hello", " world"]


SSE_BODY = (
    ": ping\r\n"
    'data: {"choices":[{"delta":{"content":"Grüße"}}]}\r\n\r\n'
    'data: {"choices":[{"delta":{"content":" from"}}]}\n'
    "data: {broken\n"
    'data: {"choices":[{"delta":{"content":" the desk"}}]}'
).encode("utf-8")

NDJSON_BODY = (
    '{"message":{"content":"ça"}}\r\n'
    "\n"
    '{"message":{"content":" va"}}\n'
    '{"message":{"content":"?"}}'
).encode("utf-8")


@pytest.mark.asyncio
async def test_sse_output_is_independent_of_chunking():
    expected = await _collect(iter_sse(_chunks(SSE_BODY), _openai_delta))
    assert expected == ["Grüße", " from", " the desk"]

    for cut in range(1, len(SSE_BODY)):
        split = _chunks(SSE_BODY[:cut], SSE_BODY[cut:])
        assert await _collect(iter_sse(split, _openai_delta)) == expected, cut

    byte_by_byte = _chunks(*(SSE_BODY[i : i + 1] for i in range(len(SSE_BODY))))
    assert await _collect(iter_sse(byte_by_byte, _openai_delta)) == expected


@pytest.mark.asyncio
async def test_ndjson_output_is_independent_of_chunking():
    expected = await _collect(iter_ndjson(_chunks(NDJSON_BODY), _ollama_message))
    assert expected == ["ça", " va", "?"]

    for cut in range(1, len(NDJSON_BODY)):
        split = _chunks(NDJSON_BODY[:cut], NDJSON_BODY[cut:])
        assert await _collect(iter_ndjson(split, _ollama_message)) == expected, cut

    byte_by_byte = _chunks(*(NDJSON_BODY[i : i + 1] for i in range(len(NDJSON_BODY))))
    assert await _collect(iter_ndjson(byte_by_byte, _ollama_message)) == expected


@pytest.mark.asyncio
async def test_sse_accepts_crlf_and_ignores_comments_and_events():
    source = _chunks(
        ": keep-alive\r\n",
        "event: message\r\n",
        'data: {"choices":[{"delta":{"content":"a"}}]}\r\n',
        "\r\n",
        'data: {"choices":[{"delta":{"content":"b"}}]}\r\n',
    )

    assert await _collect(iter_sse(source, _openai_delta)) == ["a", "b"]


@pytest.mark.asyncio
async def test_sse_stops_at_done_sentinel():
    source = _chunks(
        'data: {"choices":[{"delta":{"content":"a"}}]}\n',
        "data: [DONE]\n",
        'data: {"choices":[{"delta":{"content":"never"}}]}\n',
    )

    assert await _collect(iter_sse(source, _openai_delta)) == ["a"]


@pytest.mark.asyncio
async def test_sse_skips_malformed_and_wrong_shape_records():
    source = _chunks(
        "data: {not json\n",
        'data: {"choices":[]}\n',
        'data: {"choices":[{"delta":{}}]}\n',
        'data: {"choices":[{"delta":{"content":""}}]}\n',
        'data: {"choices":[{"delta":{"content":"ok"}}]}\n',
    )

    assert await _collect(iter_sse(source, _openai_delta)) == ["ok"]


@pytest.mark.asyncio
async def test_sse_flushes_unterminated_final_line():
    source = _chunks('data: {"choices":[{"delta":{"content":"tail"}}]}')

    assert await _collect(iter_sse(source, _openai_delta)) == ["tail"]


@pytest.mark.asyncio
async def test_multibyte_character_split_between_chunks():
    encoded = 'data: {"choices":[{"delta":{"content":"héllo"}}]}\n'.encode("utf-8")
    split_at = encoded.index("é".encode("utf-8")) + 1

    source = _chunks(encoded[:split_at], encoded[split_at:])

    assert await _collect(iter_sse(source, _openai_delta)) == ["héllo"]


@pytest.mark.asyncio
async def test_ndjson_yields_each_record_and_flushes_tail():
    source = _chunks(
        b'{"message":{"content":"one"}}\n{"message":{"con',
        b'tent":"two"}}\n\n',
        b'{"message":{"content":"three"}}',
    )

    assert await _collect(iter_ndjson(source, _ollama_message)) == ["one", "two", "three"]


@pytest.mark.asyncio
async def test_ndjson_skips_garbage_lines():
    source = _chunks('garbage\n{"done":true}\n{"message":{"content":"x"}}\n')

    assert await _collect(iter_ndjson(source, _ollama_message)) == ["x"]
