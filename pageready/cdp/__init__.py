"""
pageready/cdp/__init__.py

CDP (Chrome DevTools Protocol) session and page load tracking.

Primary classes:
- AsyncCDPSession: Async CDP session delivering events to listeners
- ResourceRegistry: Per-navigation resource bookkeeping
"""

from pageready.cdp.async_cdp_session import AsyncCDPSession
from pageready.cdp.resource_registry import ResourceRegistry, ResourceTimer, TrackedResource

__all__ = [
    "AsyncCDPSession",
    "ResourceRegistry",
    "ResourceTimer",
    "TrackedResource",
]
