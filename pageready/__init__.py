"""
pageready - decide when a page navigation in an automated Chromium session is fully loaded.

Usage:
    from pageready import AsyncCDPSession, navigate_and_wait

    session = AsyncCDPSession(ws_url=ws_url)
    run_task = asyncio.create_task(session.run())
    await session.wait_until_ready()
    resources = await navigate_and_wait(session, "https://example.com")
"""

__version__ = "0.1.0"

from .cdp.async_cdp_session import AsyncCDPSession
from .cdp.connection import get_browser_websocket_url
from .cdp.monitors.async_page_load_monitor import (
    AsyncPageLoadMonitor,
    navigate_and_wait,
    track_page_load,
    wait_for_page_load,
)
from .cdp.resource_registry import ResourceRegistry
from .data_models.resources import ResourceSnapshot
from .utils.exceptions import (
    BrowserConnectionError,
    DOMReadyTimeoutError,
    NoSessionIdError,
    PageReadyError,
    RegistryFlushedError,
)

__all__ = [
    # CDP
    "AsyncCDPSession",
    "get_browser_websocket_url",
    # Page load tracking
    "AsyncPageLoadMonitor",
    "ResourceRegistry",
    "navigate_and_wait",
    "track_page_load",
    "wait_for_page_load",
    # Data models
    "ResourceSnapshot",
    # Exceptions
    "BrowserConnectionError",
    "DOMReadyTimeoutError",
    "NoSessionIdError",
    "PageReadyError",
    "RegistryFlushedError",
]
