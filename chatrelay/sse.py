"""Event-stream parsing for chat-completion responses.

The upstream sends one ``data: <json>`` record per line and ends the stream
with ``data: [DONE]``. Nothing here knows about HTTP, so both helpers can be
fed literal bytes in tests.
"""

import codecs
import logging
from typing import AsyncIterable, AsyncIterator, Optional

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "data: [DONE]"


class Delta(BaseModel):
    content: Optional[str] = None


class Choice(BaseModel):
    delta: Delta = Delta()


class UpstreamChunk(BaseModel):
    choices: list[Choice] = []

    @property
    def content(self) -> str:
        """Content of the first choice's delta, or "" when there is none."""
        if not self.choices:
            return ""
        return self.choices[0].delta.content or ""


async def iter_lines(chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Yield newline-terminated lines from a stream of byte chunks.

    Bytes after the final newline are dropped when the stream ends.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    async for chunk in chunks:
        buffer += decoder.decode(chunk)
        *lines, buffer = buffer.split("\n")
        for line in lines:
            yield line + "\n"
    buffer += decoder.decode(b"", final=True)
    if buffer.strip():
        logger.debug("Discarding unterminated trailing record (%d chars)", len(buffer))


def is_done(line: str) -> bool:
    return line.strip() == DONE_SENTINEL


def parse_line(line: str) -> Optional[str]:
    """Return the non-empty content fragment carried by one line, if any."""
    line = line.strip()
    if not line or line == DONE_SENTINEL:
        return None
    if line.startswith(DATA_PREFIX):
        line = line[len(DATA_PREFIX):]
    try:
        chunk = UpstreamChunk.model_validate_json(line)
    except ValidationError:
        # keep-alives and partial records are routine
        logger.debug("Skipping unparseable line: %.80s", line)
        return None
    return chunk.content or None
