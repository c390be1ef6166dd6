"""Test configuration and fixtures."""
import json

import httpx
import pytest

from chatrelay.config import Settings


class FakeUpstream:
    """Scripted stand-in for the completion API, served through httpx.MockTransport."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.lines: list[str] = []
        self.status_code = 200
        self.unreachable: set[str] = set()

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        content = json.loads(request.content)["messages"][0]["content"]
        if content in self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)
        body = "".join(line + "\n" for line in self.lines).encode()
        return httpx.Response(self.status_code, content=body)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


class FakeConnection:
    def __init__(self):
        self.frames: list[str] = []
        self.closed = False

    async def send_frame(self, text: str) -> None:
        self.frames.append(text)


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def conn():
    return FakeConnection()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        api_key="sk-test",
        api_url="https://llm.test/v1/chat/completions",
        static_dir=tmp_path,
    )
