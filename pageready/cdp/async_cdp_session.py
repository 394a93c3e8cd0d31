"""
pageready/cdp/async_cdp_session.py

Asynchronous CDP session: WebSocket transport, command/reply matching and event fan-out to listeners.
"""

import asyncio
import json
from typing import Any

from websockets.asyncio.client import connect, ClientConnection

from pageready.data_models.cdp import CDPEventListener
from pageready.utils.exceptions import BrowserConnectionError, NoSessionIdError
from pageready.utils.logger import get_logger

logger = get_logger(name=__name__)


class AsyncCDPSession:
    """
    Asynchronous CDP session attached to the first page target of a browser.
    Handles WebSocket, CDP commands and event delivery to registered listeners.
    Events are delivered one at a time, in the order the browser sent them.
    """

    # Class attributes _____________________________________________________________________________________________________

    # page-level domains need sessionId; browser-level domains (Target, Browser) do not
    PAGE_LEVEL_DOMAINS = {"Page", "Runtime", "Network", "DOM"}


    # Magic methods ________________________________________________________________________________________________________

    def __init__(self, ws_url: str) -> None:
        """
        Initialize AsyncCDPSession.
        Args:
            ws_url: Browser-level WebSocket URL (see `get_browser_websocket_url`).
        NOTE:
            The CDP sessionId will be obtained automatically in run() after connecting.
            CDP sessionIds are only valid for the specific WebSocket connection where Target.attachToTarget was called.
        """
        logger.info("🔧 Initializing AsyncCDPSession")

        self.ws_url = ws_url
        self.ws: ClientConnection | None = None
        self.seq = 0  # sequence ID for CDP commands

        # response tracking for CDP commands
        self.pending_responses: dict[int, asyncio.Future] = {}  # command ID -> future

        # track enabled CDP domains to avoid duplicate enables
        self._enabled_domains: set[str] = set()  # e.g., {"Page", "Network"}

        # event listeners, in registration order
        self._listeners: dict[str, list[CDPEventListener]] = {}  # CDP method -> listeners

        # page-level session ID, obtained in run() after connecting to the WebSocket
        self.page_session_id: str | None = None
        self._session_id_event = asyncio.Event()  # set when sessionId is captured
        self._ready_event = asyncio.Event()  # set when setup_cdp() completed


    # Private methods ______________________________________________________________________________________________________

    async def _get_ws_cdp_session_id(self) -> None:
        """
        Get CDP sessionId from the current WebSocket connection.
        Must be called after connecting and starting the message receiver.
        """
        logger.info("🔍 Getting CDP session ID from current WebSocket connection...")

        # Step 1: Get targets to find the page targetId
        targets_result = await self.send_and_wait(method="Target.getTargets", timeout=5.0)
        cdp_target_id: str | None = None
        if targets_result and "targetInfos" in targets_result:
            for target_info in targets_result["targetInfos"]:
                if target_info.get("type") == "page":
                    cdp_target_id = target_info.get("targetId")
                    logger.info("✅ Found page targetId: %s (url: %s)", cdp_target_id, target_info.get("url", "unknown"))
                    break

        if not cdp_target_id:
            logger.error("❌ No page target found in Target.getTargets result")
            raise BrowserConnectionError("No page target found")

        # Step 2: Attach to the page target to get the CDP sessionId
        attach_result = await self.send_and_wait(
            method="Target.attachToTarget",
            params={"targetId": cdp_target_id, "flatten": True},
            timeout=5.0
        )
        if attach_result and "sessionId" in attach_result:
            self.page_session_id = attach_result["sessionId"]
            self._session_id_event.set()
            logger.debug("✅ Got CDP sessionId from current connection: %s", self.page_session_id)
        else:
            logger.error("❌ No sessionId in Target.attachToTarget response")
            raise BrowserConnectionError("No sessionId in Target.attachToTarget response")

    async def _handle_command_reply(self, msg: dict) -> None:
        """Resolve the future waiting on a CDP command reply."""
        cmd_id = msg.get("id")

        if cmd_id is not None and cmd_id in self.pending_responses:
            future = self.pending_responses.pop(cmd_id)
            if future.done():
                return

            if "result" in msg:
                future.set_result(msg["result"])
            elif "error" in msg:
                logger.error("📥 Setting error: %s", json.dumps(msg["error"], indent=2))
                future.set_exception(Exception(f"CDP error: {msg['error']}"))
            else:
                future.set_result(None)
            return

        logger.debug("📥 Command reply not handled: id=%s", cmd_id)

    def _fail_pending_responses(self, reason: str) -> None:
        for future in self.pending_responses.values():
            if not future.done():
                future.set_exception(BrowserConnectionError(reason))
        self.pending_responses.clear()

    def _build_command(self, method: str, params: dict | None = None) -> dict[str, Any]:
        """Reserve the next sequence ID and build the CDP command message."""
        if not self.ws:
            raise BrowserConnectionError("WebSocket not connected")

        self.seq += 1

        domain_name = method.split(".")[0] if "." in method else None
        if domain_name in self.PAGE_LEVEL_DOMAINS and not self.page_session_id:
            logger.warning(
                "⚠️ Sending page-level command %s without sessionId (may fail). "
                "SessionId should be obtained via Target.attachToTarget first.",
                method
            )

        msg = {
            "id": self.seq,
            "method": method,
            "params": params or {},
        }
        if self.page_session_id:
            msg["sessionId"] = self.page_session_id
        return msg


    # Public methods _______________________________________________________________________________________________________

    def add_listener(self, method: str, listener_fn: CDPEventListener) -> None:
        """
        Register an async listener for a CDP event.
        Args:
            method: CDP event method, e.g. "Network.loadingFinished".
            listener_fn: Awaited with the full CDP message for every matching event.
        """
        self._listeners.setdefault(method, []).append(listener_fn)

    def remove_listener(self, method: str, listener_fn: CDPEventListener) -> None:
        """Unregister a listener. Removing an unknown listener is a no-op."""
        listeners = self._listeners.get(method)
        if not listeners or listener_fn not in listeners:
            return
        listeners.remove(listener_fn)
        if not listeners:
            del self._listeners[method]

    def listener_count(self, method: str | None = None) -> int:
        """Number of listeners registered for `method`, or for all methods when omitted."""
        if method is not None:
            return len(self._listeners.get(method, []))
        return sum(len(listeners) for listeners in self._listeners.values())

    async def enable_domain(
        self,
        domain: str,
        params: dict | None = None,
        timeout: float = 2.0,
        wait_for_response: bool = True,
    ) -> None:
        """
        Enable a CDP domain idempotently (skip if already enabled).
        Args:
            domain: The CDP domain name (e.g., "Page", "Network").
            params: Optional parameters for the enable command.
            timeout: Timeout in seconds (only used if wait_for_response=True).
            wait_for_response: If True, wait for response. If False, fire-and-forget.
        """
        if domain in self._enabled_domains:
            logger.debug("⏭️ Domain %s already enabled, skipping", domain)
            return

        method = f"{domain}.enable"
        try:
            if wait_for_response:
                await self.send_and_wait(method=method, params=params, timeout=timeout)
            else:
                await self.send(method=method, params=params)

            self._enabled_domains.add(domain)
            logger.debug("✅ Domain %s enabled", domain)
        except Exception as e:
            logger.warning("⚠️ Failed to enable domain %s: %s", domain, e)

    async def wait_for_page_session_id(self, timeout: float = 5.0) -> str | None:
        """
        Wait for page sessionId to be captured.
        Args:
            timeout: Maximum time to wait in seconds.
        Returns:
            The page sessionId if captured, None if timeout.
        """
        if self.page_session_id:
            return self.page_session_id
        try:
            await asyncio.wait_for(fut=self._session_id_event.wait(), timeout=timeout)
            return self.page_session_id
        except asyncio.TimeoutError:
            logger.warning("⏱️ Timeout waiting for page sessionId after %s seconds", timeout)
            return None

    async def wait_until_ready(self, timeout: float = 10.0) -> bool:
        """
        Wait until setup_cdp() completed inside run().
        Returns:
            True if the session is ready, False on timeout.
        """
        try:
            await asyncio.wait_for(fut=self._ready_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning("⏱️ CDP session not ready after %s seconds", timeout)
            return False

    async def send(self, method: str, params: dict | None = None) -> int:
        """
        Send CDP command and return sequence ID.
        Args:
            method (str): The CDP method to send. For example, "Page.navigate".
            params (dict | None): The parameters to send with the command.
        Returns:
            int: The sequence ID of the command.
        """
        msg = self._build_command(method, params)
        await self.ws.send(json.dumps(msg))
        return msg["id"]

    async def send_and_wait(
        self,
        method: str,
        params: dict | None = None,
        timeout: float = 10.0,
    ) -> dict | None:
        """
        Send CDP command and wait for response asynchronously.
        Args:
            method: The CDP method to send.
            params: The parameters to send with the command.
            timeout: Timeout in seconds.
        Returns:
            The result from the CDP command.
        """
        msg = self._build_command(method, params)
        cmd_id = msg["id"]

        # registered before writing: the reply may be handled while ws.send is still draining
        future = asyncio.get_running_loop().create_future()
        self.pending_responses[cmd_id] = future
        try:
            await self.ws.send(json.dumps(msg))
            return await asyncio.wait_for(fut=future, timeout=timeout)
        except asyncio.TimeoutError:
            self.pending_responses.pop(cmd_id, None)
            raise TimeoutError(f"CDP command {method} timed out after {timeout} seconds")
        except Exception:
            self.pending_responses.pop(cmd_id, None)
            raise

    async def setup_cdp(self) -> None:
        """Attach to the page target and enable the domains page load tracking listens to."""
        logger.info("🔧 Setting up CDP domains...")

        # sets self.page_session_id
        await self._get_ws_cdp_session_id()

        await self.enable_domain("Page")
        await self.enable_domain("Network")
        logger.info("✅ CDP domain setup complete")

    async def navigate(self, url: str, timeout: float = 10.0) -> dict | None:
        """
        Navigate the attached page.
        Returns:
            The Page.navigate result (frameId, loaderId, and errorText on failure).
        Raises:
            NoSessionIdError: If no page target is attached yet.
        """
        if not self.page_session_id:
            raise NoSessionIdError("Page.navigate requires an attached page session")

        logger.info("🧭 Navigating to %s", url[:150])
        result = await self.send_and_wait(method="Page.navigate", params={"url": url}, timeout=timeout)
        if result and result.get("errorText"):
            logger.warning("⚠️ Page.navigate reported %s for %s", result["errorText"], url[:150])
        return result

    async def handle_message(self, msg: dict[str, Any]) -> None:
        """Handle incoming CDP message."""
        method = msg.get("method")

        # capture sessionId from Target.attachedToTarget
        if method == "Target.attachedToTarget":
            params = msg.get("params", {})
            captured_session_id = params.get("sessionId")
            target_type = params.get("targetInfo", {}).get("type", "unknown")
            if captured_session_id and target_type == "page" and not self.page_session_id:
                self.page_session_id = captured_session_id
                self._session_id_event.set()
                logger.info("🎯 Captured page sessionId: %s", self.page_session_id)
            return

        # handle command replies
        if "id" in msg:
            await self._handle_command_reply(msg)
            return

        if not method:
            return

        # only the primary page is tracked
        msg_session_id = msg.get("sessionId")
        if msg_session_id and self.page_session_id and msg_session_id != self.page_session_id:
            return

        # copy: listeners may detach themselves while being notified
        for listener_fn in list(self._listeners.get(method, [])):
            await listener_fn(msg)

    async def run(self) -> None:
        """Main message processing loop."""
        logger.info("🔌 Connecting to CDP: %s", self.ws_url)
        async with connect(uri=self.ws_url, max_size=None) as ws:
            self.ws = ws
            logger.info("✅ WebSocket connected")

            message_count = 0

            async def message_receiver() -> None:
                """Receive and process WebSocket messages."""
                nonlocal message_count
                try:
                    async for message in ws:
                        message_count += 1
                        if message_count % 500 == 0:
                            logger.info("📊 Processed %d messages total", message_count)
                        try:
                            msg = json.loads(message)
                            await self.handle_message(msg)
                        except Exception as e:
                            logger.error("❌ Error handling message #%d: %s", message_count, e, exc_info=True)
                            logger.error("❌ Message was: %s", message[:250])
                except asyncio.CancelledError:
                    logger.info("🛑 Message receiver cancelled (processed %d messages)", message_count)
                    raise
                except Exception as e:
                    logger.error("❌ Error in message receiver: %s", e, exc_info=True)
                finally:
                    self._fail_pending_responses("WebSocket connection closed")

            # start message receiver BEFORE setup_cdp so responses can be received
            receiver_task = asyncio.create_task(coro=message_receiver())
            await asyncio.sleep(0.1)

            try:
                await self.setup_cdp()
            except Exception:
                receiver_task.cancel()
                raise
            self._ready_event.set()
            logger.info("✅ CDP setup complete, message loop running")

            try:
                await receiver_task
            except asyncio.CancelledError:
                logger.info("🛑 Session cancelled (processed %d messages)", message_count)
                receiver_task.cancel()
                try:
                    await receiver_task
                except asyncio.CancelledError:
                    pass
                raise
            finally:
                self.ws = None

    async def close(self) -> None:
        """Close the WebSocket, which ends run()."""
        if self.ws is not None:
            await self.ws.close()
