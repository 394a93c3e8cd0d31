"""
tests/conftest.py

Configuration for pytest.
"""

import asyncio
from typing import Any
from unittest.mock import MagicMock

import pytest


class FakeEventSource:
    """
    In-memory stand-in for AsyncCDPSession.
    Replays CDP event messages to registered listeners and answers Page.getResourceTree.
    """

    def __init__(self, resource_urls: list[str] | None = None, frame_url: str = "http://127.0.0.1/page") -> None:
        self.listeners: dict[str, list] = {}
        self.commands: list[tuple[str, dict | None]] = []
        self.navigated_urls: list[str] = []
        self.command_error: Exception | None = None
        self.frame_url = frame_url
        self.resource_urls: list[str] = list(resource_urls or [])

    # CDPEventSource interface

    def add_listener(self, method: str, listener_fn) -> None:
        self.listeners.setdefault(method, []).append(listener_fn)

    def remove_listener(self, method: str, listener_fn) -> None:
        listeners = self.listeners.get(method, [])
        if listener_fn in listeners:
            listeners.remove(listener_fn)

    async def send_and_wait(self, method: str, params: dict | None = None, timeout: float = 10.0) -> dict | None:
        self.commands.append((method, params))
        if self.command_error is not None:
            raise self.command_error
        if method == "Page.getResourceTree":
            return {
                "frameTree": {
                    "frame": {"id": "F1", "url": self.frame_url},
                    "resources": [{"url": url, "type": "Script"} for url in self.resource_urls],
                }
            }
        return {}

    async def navigate(self, url: str, timeout: float = 10.0) -> dict | None:
        self.navigated_urls.append(url)
        return {"frameId": "F1", "loaderId": "L1"}

    # helpers

    def listener_count(self) -> int:
        return sum(len(listeners) for listeners in self.listeners.values())

    async def emit(self, method: str, params: dict[str, Any] | None = None) -> None:
        for listener_fn in list(self.listeners.get(method, [])):
            await listener_fn({"method": method, "params": params or {}})

    async def request_will_be_sent(
        self, request_id: str, url: str, method: str = "GET", timestamp: float = 1.0
    ) -> None:
        await self.emit("Network.requestWillBeSent", {
            "requestId": request_id,
            "request": {"url": url, "method": method, "headers": {}},
            "timestamp": timestamp,
            "type": "Script",
        })

    async def response_received(
        self,
        request_id: str,
        url: str,
        status: int = 200,
        resource_type: str = "Script",
        mime_type: str = "application/javascript",
        timestamp: float = 1.1,
    ) -> None:
        await self.emit("Network.responseReceived", {
            "requestId": request_id,
            "type": resource_type,
            "timestamp": timestamp,
            "response": {"url": url, "status": status, "mimeType": mime_type, "fromDiskCache": False},
        })

    async def loading_finished(self, request_id: str, timestamp: float = 1.2) -> None:
        await self.emit("Network.loadingFinished", {"requestId": request_id, "timestamp": timestamp})

    async def loading_failed(self, request_id: str, timestamp: float = 1.2) -> None:
        await self.emit("Network.loadingFailed", {
            "requestId": request_id,
            "timestamp": timestamp,
            "errorText": "net::ERR_FAILED",
        })

    async def dom_content_event_fired(self) -> None:
        await self.emit("Page.domContentEventFired", {"timestamp": 2.0})


class CompletionRecorder:
    """Async completion callback that records every (error, snapshot) call."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self._called = asyncio.Event()

    async def __call__(self, error, snapshot) -> None:
        self.calls.append((error, snapshot))
        self._called.set()

    async def wait(self, timeout: float = 2.0) -> tuple:
        await asyncio.wait_for(self._called.wait(), timeout=timeout)
        return self.calls[0]


@pytest.fixture
def event_source() -> FakeEventSource:
    """
    Fake CDP event source with an empty resource tree.
    Returns:
        A FakeEventSource.
    """
    return FakeEventSource()


@pytest.fixture
def completion() -> CompletionRecorder:
    """
    Recording completion callback.
    Returns:
        A CompletionRecorder.
    """
    return CompletionRecorder()


@pytest.fixture
def mock_on_maybe_settled() -> MagicMock:
    """
    Payload-less settlement notification for ResourceRegistry.
    Returns:
        A MagicMock.
    """
    return MagicMock()


@pytest.fixture
def make_event_source() -> type[FakeEventSource]:
    """
    Factory for fake CDP event sources with a custom resource tree.
    Returns:
        The FakeEventSource class.
    """
    return FakeEventSource
