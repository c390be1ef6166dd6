"""FastAPI app: websocket chat relay in front of a streaming completion API."""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Optional

import httpx
import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse, HTMLResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ValidationError, field_validator, model_validator

from chatrelay.config import ConfigError, Settings
from chatrelay.registry import Connection, ConnectionRegistry, RelayTasks
from chatrelay.relay import stream_response

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class ChatMessage(BaseModel):
    text: str = ""

    @model_validator(mode="before")
    @classmethod
    def _null_body(cls, data: Any) -> Any:
        return {} if data is None else data

    @field_validator("text", mode="before")
    @classmethod
    def _null_text(cls, value: Any) -> Any:
        return "" if value is None else value


def _decode_message(message: dict) -> ChatMessage:
    raw = message.get("text")
    if raw is None:
        raw = message.get("bytes") or b""
    return ChatMessage.model_validate_json(raw)


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(settings: Settings, http_client: Optional[httpx.AsyncClient] = None) -> FastAPI:
    """Build the relay app. An injected ``http_client`` is left open on shutdown."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_client = http_client is None
        app.state.http_client = httpx.AsyncClient(timeout=None) if owns_client else http_client
        try:
            yield
        finally:
            await app.state.relay_tasks.cancel_all()
            if owns_client:
                await app.state.http_client.aclose()

    app = FastAPI(title="Chat Relay", lifespan=lifespan)
    app.state.settings = settings
    app.state.registry = ConnectionRegistry()
    app.state.relay_tasks = RelayTasks()

    index_path = settings.static_dir / "index.html"

    @app.get("/")
    async def serve_frontend():
        if index_path.exists():
            return FileResponse(str(index_path))
        return HTMLResponse("<h1>Frontend not found. Put index.html in the static directory.</h1>")

    @app.websocket("/ws")
    async def chat_socket(websocket: WebSocket):
        await websocket.accept()
        conn = Connection(websocket)
        registry: ConnectionRegistry = app.state.registry
        registry.register(conn)
        logger.info("Client %d connected (%d open)", conn.id, len(registry))
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                try:
                    chat = _decode_message(message)
                except ValidationError as exc:
                    logger.info("Client %d sent an undecodable frame: %s", conn.id, exc.errors()[0]["msg"])
                    await websocket.close(code=1003)
                    break
                app.state.relay_tasks.spawn(
                    stream_response(chat.text, conn, app.state.http_client, settings),
                    name=f"relay-{conn.id}",
                )
        except WebSocketDisconnect:
            pass
        finally:
            conn.mark_closed()
            registry.unregister(conn)
            logger.info("Client %d disconnected (%d open)", conn.id, len(registry))

    # Mounted last so the routes above take precedence
    if settings.static_dir.is_dir():
        app.mount("/", StaticFiles(directory=str(settings.static_dir)), name="static")

    return app


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    load_dotenv(Path.cwd() / ".env")
    try:
        settings = Settings.from_env()
    except ConfigError as exc:
        print(exc, file=sys.stderr)
        sys.exit(1)

    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    logger.info("Server starting on %s:%d (model %s)", settings.host, settings.port, settings.model)
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
