"""
pageready/cdp/monitors/__init__.py

Async CDP monitors.
"""

from pageready.cdp.monitors.async_page_load_monitor import (
    AsyncPageLoadMonitor,
    navigate_and_wait,
    track_page_load,
    wait_for_page_load,
)

__all__ = [
    "AsyncPageLoadMonitor",
    "navigate_and_wait",
    "track_page_load",
    "wait_for_page_load",
]
