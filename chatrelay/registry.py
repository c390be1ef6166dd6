"""Bookkeeping for open websocket connections and in-flight relay tasks."""

import asyncio
import itertools
import logging
import threading
from typing import Coroutine, Optional

from fastapi import WebSocket
from pydantic import BaseModel

logger = logging.getLogger(__name__)

_ids = itertools.count(1)


class OutboundFrame(BaseModel):
    text: str


class Connection:
    """One accepted websocket. Writes from concurrent relay tasks are serialized."""

    def __init__(self, websocket: WebSocket):
        self.id = next(_ids)
        self.websocket = websocket
        self.closed = False
        self._send_lock = asyncio.Lock()

    async def send_frame(self, text: str) -> None:
        frame = OutboundFrame(text=text)
        async with self._send_lock:
            await self.websocket.send_json(frame.model_dump())

    def mark_closed(self) -> None:
        self.closed = True

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<Connection #{self.id} {state}>"


class ConnectionRegistry:
    """Set of currently open connections."""

    def __init__(self):
        self._connections: set[Connection] = set()
        self._lock = threading.Lock()

    def register(self, conn: Connection) -> None:
        with self._lock:
            self._connections.add(conn)

    def unregister(self, conn: Connection) -> None:
        with self._lock:
            self._connections.discard(conn)

    def __contains__(self, conn: object) -> bool:
        with self._lock:
            return conn in self._connections

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)


class RelayTasks:
    """Fire-and-forget relay tasks, held until they finish.

    Tasks are never awaited by the code that spawns them and are not tied to
    their connection's lifetime. ``cancel_all`` is only called at shutdown.
    """

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine, name: Optional[str] = None) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Relay task %s failed", task.get_name(), exc_info=exc)

    async def cancel_all(self) -> None:
        pending = list(self._tasks)
        if not pending:
            return
        logger.info("Cancelling %d in-flight relay task(s)", len(pending))
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    def __len__(self) -> int:
        return len(self._tasks)
