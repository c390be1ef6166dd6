"""Stream relay: forwards one chat message to the completion API and streams tokens back."""

import logging
from typing import Protocol

import httpx
from starlette.websockets import WebSocketDisconnect

from chatrelay.config import Settings
from chatrelay.sse import is_done, iter_lines, parse_line

logger = logging.getLogger(__name__)

FIRST_TOKEN_PREFIX = "AI: "


class FrameSink(Protocol):
    closed: bool

    async def send_frame(self, text: str) -> None: ...


def build_payload(text: str, model: str) -> dict:
    return {
        "model": model,
        "messages": [{"role": "user", "content": text}],
        "stream": True,
    }


def build_request(client: httpx.AsyncClient, text: str, settings: Settings) -> httpx.Request:
    return client.build_request(
        "POST",
        settings.api_url,
        json=build_payload(text, settings.model),
        headers={
            "Authorization": f"Bearer {settings.api_key}",
            "Content-Type": "application/json",
        },
    )


async def stream_response(
    text: str,
    conn: FrameSink,
    client: httpx.AsyncClient,
    settings: Settings,
) -> int:
    """
    Relay one message upstream and write each content fragment to ``conn``.

    The first fragment is prefixed with "AI: ". Every failure ends the relay
    quietly: the client simply stops receiving tokens.

    Returns the number of fragments written.
    """
    request = build_request(client, text, settings)
    try:
        response = await client.send(request, stream=True)
    except httpx.HTTPError as exc:
        logger.error("Error calling completion API: %s", exc)
        return 0

    sent = 0
    try:
        if response.is_error:
            logger.warning(
                "Completion API returned HTTP %d for %s", response.status_code, request.url
            )
            return 0

        async for line in iter_lines(response.aiter_bytes()):
            if is_done(line):
                break
            content = parse_line(line)
            if content is None:
                continue
            if conn.closed:
                logger.debug("Connection closed mid-stream; stopping relay")
                break
            frame = FIRST_TOKEN_PREFIX + content if sent == 0 else content
            try:
                await conn.send_frame(frame)
            except (WebSocketDisconnect, RuntimeError, OSError) as exc:
                logger.debug("Connection went away mid-stream (%s); stopping relay", exc)
                break
            sent += 1
    except httpx.HTTPError as exc:
        logger.error("Error reading stream: %s", exc)
    finally:
        await response.aclose()

    logger.debug("Relay finished after %d fragment(s)", sent)
    return sent
