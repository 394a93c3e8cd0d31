"""
pageready/cdp/connection.py

CDP connection helpers.
"""

from urllib.parse import urlparse, urlunparse

import requests

from pageready.utils.exceptions import BrowserConnectionError
from pageready.utils.logger import get_logger

logger = get_logger(name=__name__)


def get_browser_websocket_url(remote_debugging_address: str, timeout: float = 5.0) -> str:
    """Get the normalized WebSocket URL for browser connection.

    Args:
        remote_debugging_address: The Chrome debugging server address (e.g., 'http://127.0.0.1:9222').
        timeout: HTTP timeout in seconds.

    Returns:
        The WebSocket URL for connecting to the browser.

    Raises:
        BrowserConnectionError: If unable to get the WebSocket URL from the browser.
    """
    base = remote_debugging_address.rstrip("/")
    try:
        ver = requests.get(f"{base}/json/version", timeout=timeout)
        ver.raise_for_status()
        raw_ws = ver.json().get("webSocketDebuggerUrl")
    except (requests.RequestException, ValueError) as e:
        raise BrowserConnectionError(f"Failed to get browser WebSocket URL: {e}") from e

    if not raw_ws:
        raise BrowserConnectionError("/json/version missing webSocketDebuggerUrl")

    # Chrome reports its own bind address; rewrite it to the address we reached it on
    parsed = urlparse(raw_ws)
    base_parsed = urlparse(base)
    fixed_netloc = f"{base_parsed.hostname}:{base_parsed.port}" if base_parsed.port else base_parsed.hostname
    ws_url = urlunparse(parsed._replace(netloc=fixed_netloc))

    logger.debug("Raw WebSocket URL: %s", raw_ws)
    logger.debug("Normalized WebSocket URL: %s", ws_url)

    return ws_url
