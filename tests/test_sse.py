import pytest

from chatrelay.sse import UpstreamChunk, is_done, iter_lines, parse_line


async def _collect(chunks):
    async def source():
        for chunk in chunks:
            yield chunk

    return [line async for line in iter_lines(source())]


@pytest.mark.asyncio
async def test_lines_split_across_chunks():
    lines = await _collect([b"data: a", b"bc\ndata:", b" def\n\n", b"data: g\n"])
    assert lines == ["data: abc\n", "data: def\n", "\n", "data: g\n"]


@pytest.mark.asyncio
async def test_multibyte_character_split_across_chunks():
    encoded = "data: héllo\n".encode()
    split = encoded.index(b"\xc3") + 1
    lines = await _collect([encoded[:split], encoded[split:]])
    assert lines == ["data: héllo\n"]


@pytest.mark.asyncio
async def test_unterminated_trailing_record_is_dropped():
    lines = await _collect([b"data: one\n", b"data: two"])
    assert lines == ["data: one\n"]


@pytest.mark.asyncio
async def test_empty_stream():
    assert await _collect([]) == []


def test_parse_line_extracts_first_choice():
    line = 'data: {"choices":[{"delta":{"content":"x"}},{"delta":{"content":"y"}}]}\n'
    assert parse_line(line) == "x"


def test_parse_line_without_prefix():
    assert parse_line('{"choices":[{"delta":{"content":"raw"}}]}') == "raw"


@pytest.mark.parametrize(
    "line",
    [
        "",
        "  \r\n",
        "data: [DONE]",
        "data: {oops",
        'data: {"choices":[]}',
        'data: {"choices":[{"delta":{}}]}',
        'data: {"choices":[{"delta":{"content":""}}]}',
        "data: []",
        "event: ping",
    ],
)
def test_parse_line_yields_nothing(line):
    assert parse_line(line) is None


def test_is_done():
    assert is_done("data: [DONE]\n")
    assert is_done("  data: [DONE]  ")
    assert not is_done("data: [DONE]x")
    assert not is_done('data: {"choices":[]}')


def test_chunk_ignores_extra_fields():
    chunk = UpstreamChunk.model_validate_json(
        '{"id":"c1","object":"chat.completion.chunk",'
        '"choices":[{"index":0,"delta":{"content":"hi"},"finish_reason":null}]}'
    )
    assert chunk.content == "hi"


@pytest.mark.asyncio
async def test_many_lines_in_one_chunk():
    body = "".join(f"data: {i}\n" for i in range(5000)).encode() + b"data: tail"
    lines = await _collect([body])
    assert len(lines) == 5000
    assert lines[0] == "data: 0\n"
    assert lines[-1] == "data: 4999\n"
