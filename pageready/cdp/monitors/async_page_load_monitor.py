"""
pageready/cdp/monitors/async_page_load_monitor.py

Async page load monitor for CDP.
Decides when a navigation can be considered fully loaded.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from pageready.cdp.resource_registry import ResourceRegistry
from pageready.config import Config
from pageready.data_models.cdp import CDPEventListener, CDPEventMethod, CDPEventSource, ResourceEvent
from pageready.data_models.resources import ResourceSnapshot
from pageready.utils.exceptions import DOMReadyTimeoutError, PageReadyError
from pageready.utils.logger import get_logger

if TYPE_CHECKING:  # avoid circular import
    from pageready.cdp.async_cdp_session import AsyncCDPSession

logger = get_logger(name=__name__)

ResourceSnapshots = dict[str, ResourceSnapshot]
CompletionCallback = Callable[[PageReadyError | None, ResourceSnapshots | None], Awaitable[None]]


class AsyncPageLoadMonitor:
    """
    Async page load monitor for CDP.
    Feeds Network.* events into a ResourceRegistry and calls the completion callback exactly once:
    with the resource snapshot after DOM content is ready and every resource settled,
    or with a DOMReadyTimeoutError when DOM content never becomes ready.
    """

    # Magic methods ________________________________________________________________________________________________________

    def __init__(
        self,
        event_source: CDPEventSource,
        completion_callback_fn: CompletionCallback,
        resource_timeout_ms: float | None = None,
        post_timeout_ms: float | None = None,
        dom_ready_timeout_ms: float | None = None,
        resource_tree_timeout_s: float | None = None,
    ) -> None:
        """
        Initialize AsyncPageLoadMonitor.
        Args:
            event_source: The CDP session (or any CDPEventSource) delivering events.
            completion_callback_fn: Async callback taking (error, snapshot). Called exactly once.
            resource_timeout_ms: Grace period of each resource.
            post_timeout_ms: Grace period of POST requests.
            dom_ready_timeout_ms: Deadline for Page.domContentEventFired.
            resource_tree_timeout_s: Timeout of the Page.getResourceTree query.
        """
        self.event_source = event_source
        self.completion_callback_fn = completion_callback_fn
        self.dom_ready_timeout_ms = (
            dom_ready_timeout_ms if dom_ready_timeout_ms is not None else Config.PAGEREADY_DOM_READY_TIMEOUT_MS
        )
        self.resource_tree_timeout_s = (
            resource_tree_timeout_s if resource_tree_timeout_s is not None
            else Config.PAGEREADY_RESOURCE_TREE_TIMEOUT_S
        )

        self.registry = ResourceRegistry(
            on_maybe_settled=self._on_maybe_settled,
            resource_timeout_ms=resource_timeout_ms,
            post_timeout_ms=post_timeout_ms,
        )

        # completion state
        self.started: bool = False
        self.dom_ready: bool = False
        self.finalized: bool = False

        self._listeners: dict[str, CDPEventListener] = {
            CDPEventMethod.REQUEST_WILL_BE_SENT: self._on_request_will_be_sent,
            CDPEventMethod.RESPONSE_RECEIVED: self._on_response_received,
            CDPEventMethod.REQUEST_SERVED_FROM_MEMORY_CACHE: self._on_request_served_from_memory_cache,
            CDPEventMethod.REQUEST_SERVED_FROM_CACHE: self._on_request_served_from_cache,
            CDPEventMethod.LOADING_FINISHED: self._on_loading_finished,
            CDPEventMethod.LOADING_FAILED: self._on_loading_failed,
            CDPEventMethod.DOM_CONTENT_EVENT_FIRED: self._on_dom_content_event_fired,
        }
        self._dom_ready_deadline_task: asyncio.Task | None = None

        # settlement checks run one at a time; requests arriving meanwhile trigger one more pass
        self._check_task: asyncio.Task | None = None
        self._recheck_requested: bool = False


    # Static methods _______________________________________________________________________________________________________

    @staticmethod
    def _extract_resource_urls(resource_tree: dict[str, Any] | None) -> list[str]:
        """
        Extract the resource URLs of the main frame from a Page.getResourceTree result.
        Child frames are not tracked.
        """
        if not isinstance(resource_tree, dict):
            return []
        frame_tree = resource_tree.get("frameTree")
        if not isinstance(frame_tree, dict):
            return []

        urls: list[str] = []
        for resource in frame_tree.get("resources") or []:
            url = resource.get("url") if isinstance(resource, dict) else None
            if isinstance(url, str) and url:
                urls.append(url)
        return urls


    # Private methods ______________________________________________________________________________________________________

    async def _on_request_will_be_sent(self, msg: dict) -> None:
        """Handle Network.requestWillBeSent event."""
        if self.finalized:
            return
        self.registry.request(ResourceEvent.from_cdp_params(msg.get("params")))

    async def _on_response_received(self, msg: dict) -> None:
        """Handle Network.responseReceived event."""
        if self.finalized:
            return
        self.registry.received(ResourceEvent.from_cdp_params(msg.get("params")))

    async def _on_request_served_from_memory_cache(self, msg: dict) -> None:
        """Handle Network.requestServedFromMemoryCache event, treated as a response."""
        if self.finalized:
            return
        self.registry.received(ResourceEvent.from_memory_cache_params(msg.get("params")))

    async def _on_request_served_from_cache(self, msg: dict) -> None:
        """Handle Network.requestServedFromCache event, treated as finished loading."""
        if self.finalized:
            return
        self.registry.loaded(ResourceEvent.from_cdp_params(msg.get("params")))

    async def _on_loading_finished(self, msg: dict) -> None:
        """Handle Network.loadingFinished event."""
        if self.finalized:
            return
        self.registry.loaded(ResourceEvent.from_cdp_params(msg.get("params")))

    async def _on_loading_failed(self, msg: dict) -> None:
        """Handle Network.loadingFailed event."""
        if self.finalized:
            return
        params = msg.get("params") or {}
        logger.debug("❌ Network.loadingFailed: request_id=%s, error=%s", params.get("requestId"), params.get("errorText"))
        self.registry.failed(ResourceEvent.from_cdp_params(params))

    async def _on_dom_content_event_fired(self, msg: dict) -> None:
        """Handle Page.domContentEventFired event. Only the first one counts."""
        if self.finalized or self.dom_ready:
            return

        self._cancel_dom_ready_deadline()
        self.dom_ready = True
        logger.info("📄 DOM content ready, %d resources tracked", len(self.registry))

        self._request_check()

    def _on_maybe_settled(self) -> None:
        """Registry notification: a resource may have been the last one pending."""
        if not self.dom_ready or self.finalized:
            return
        self._request_check()

    def _request_check(self) -> None:
        # checks await a CDP reply, so they must run outside the message handler (deadlock)
        if self._check_task is not None and not self._check_task.done():
            self._recheck_requested = True
            return
        self._recheck_requested = True
        self._check_task = asyncio.create_task(self._run_checks())

    async def _run_checks(self) -> None:
        while self._recheck_requested and not self.finalized:
            self._recheck_requested = False
            await self._check_if_done()

    async def _check_if_done(self) -> None:
        """
        Finalize if DOM content is ready and every resource settled, after cross-checking the
        document's resource tree for resources never seen through network events.
        """
        if not self.dom_ready or self.finalized:
            return
        if not self.registry.all_settled():
            return

        resource_urls = await self._get_resource_tree_urls()

        # finalized while waiting for the resource tree
        if self.finalized:
            return

        for url in resource_urls:
            self.registry.schedule(url)

        if self.registry.all_settled():
            await self._finalize(error=None)
        else:
            logger.debug(
                "⏳ Waiting for resources found in the resource tree: %s",
                self.registry.get_registry_summary(),
            )

    async def _get_resource_tree_urls(self) -> list[str]:
        try:
            resource_tree = await self.event_source.send_and_wait(
                method="Page.getResourceTree",
                timeout=self.resource_tree_timeout_s,
            )
        except Exception as e:
            logger.warning("⚠️ Page.getResourceTree failed, relying on observed network events: %s", e)
            return []
        return self._extract_resource_urls(resource_tree)

    async def _dom_ready_deadline(self) -> None:
        await asyncio.sleep(self.dom_ready_timeout_ms / 1000)
        if self.dom_ready or self.finalized:
            return

        # the DOM is unreachable, report an error instead of a snapshot
        error = DOMReadyTimeoutError(timeout_s=self.dom_ready_timeout_ms / 1000)
        logger.error("❌ %s", error)
        await self._finalize(error=error)

    def _cancel_dom_ready_deadline(self) -> None:
        task = self._dom_ready_deadline_task
        self._dom_ready_deadline_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    def _detach_listeners(self) -> None:
        for method, listener_fn in self._listeners.items():
            self.event_source.remove_listener(method, listener_fn)

    async def _finalize(self, error: PageReadyError | None) -> None:
        """Export, flush and detach, then call the completion callback. Runs at most once."""
        if self.finalized:
            return
        self.finalized = True

        summary = self.registry.get_registry_summary()
        snapshot = self.registry.export_data() if error is None else None

        self.registry.flush()
        self._detach_listeners()
        self._cancel_dom_ready_deadline()

        if error is None:
            logger.info(
                "✅ Page loaded: %d resources (%d timed out, %d failed)",
                summary["resources_tracked"], summary["timed_out"], summary["failed"],
            )

        try:
            await self.completion_callback_fn(error, snapshot)
        except Exception as e:
            logger.error("❌ Error calling completion callback: %s", e, exc_info=True)


    # Public methods _______________________________________________________________________________________________________

    def start(self) -> None:
        """
        Start listening to the event source and arm the DOM-ready deadline.
        Must be called from within a running event loop. Calling it again is a no-op.
        """
        if self.started:
            return
        self.started = True

        for method, listener_fn in self._listeners.items():
            self.event_source.add_listener(method, listener_fn)
        self._dom_ready_deadline_task = asyncio.create_task(self._dom_ready_deadline())
        logger.debug("🔧 Page load monitor started (DOM-ready deadline %sms)", self.dom_ready_timeout_ms)

    def abandon(self) -> None:
        """
        Stop tracking without calling the completion callback.
        Used when the caller stops waiting; a no-op once finalized.
        """
        if self.finalized:
            return
        self.finalized = True

        self.registry.flush()
        self._detach_listeners()
        self._cancel_dom_ready_deadline()
        logger.debug("🛑 Page load monitor abandoned")

    def get_page_load_summary(self) -> dict[str, Any]:
        """
        Get summary of page load monitoring state.
        Returns:
            Dictionary with completion flags and registry counts.
        """
        return {
            "dom_ready": self.dom_ready,
            "finalized": self.finalized,
            **self.registry.get_registry_summary(),
        }


def track_page_load(
    event_source: CDPEventSource,
    completion_callback_fn: CompletionCallback,
    **monitor_kwargs: Any,
) -> AsyncPageLoadMonitor:
    """
    Start tracking the current navigation of `event_source`.
    Args:
        event_source: The CDP session delivering events.
        completion_callback_fn: Async callback taking (error, snapshot), called exactly once.
        **monitor_kwargs: Timeout overrides forwarded to AsyncPageLoadMonitor.
    Returns:
        The started monitor.
    """
    monitor = AsyncPageLoadMonitor(
        event_source=event_source,
        completion_callback_fn=completion_callback_fn,
        **monitor_kwargs,
    )
    monitor.start()
    return monitor


def _future_completion_callback(result_future: asyncio.Future) -> CompletionCallback:
    async def on_complete(error: PageReadyError | None, snapshot: ResourceSnapshots | None) -> None:
        if result_future.done():
            return
        if error is not None:
            result_future.set_exception(error)
        else:
            result_future.set_result(snapshot)
    return on_complete


async def wait_for_page_load(event_source: CDPEventSource, **monitor_kwargs: Any) -> ResourceSnapshots:
    """
    Wait until the current navigation of `event_source` is fully loaded.
    Returns:
        Mapping of resource identifier to ResourceSnapshot.
    Raises:
        DOMReadyTimeoutError: If DOM content never became ready.
    """
    result_future = asyncio.get_running_loop().create_future()
    monitor = track_page_load(event_source, _future_completion_callback(result_future), **monitor_kwargs)
    try:
        return await result_future
    finally:
        monitor.abandon()


async def navigate_and_wait(
    cdp_session: AsyncCDPSession,
    url: str,
    navigate_timeout_s: float = 10.0,
    **monitor_kwargs: Any,
) -> ResourceSnapshots:
    """
    Navigate the page of `cdp_session` to `url` and wait until it is fully loaded.
    Tracking starts before the navigation command is sent, so no event of the navigation is missed.
    Returns:
        Mapping of resource identifier to ResourceSnapshot.
    Raises:
        DOMReadyTimeoutError: If DOM content never became ready.
    """
    result_future = asyncio.get_running_loop().create_future()
    monitor = track_page_load(cdp_session, _future_completion_callback(result_future), **monitor_kwargs)
    try:
        await cdp_session.navigate(url, timeout=navigate_timeout_s)
        return await result_future
    finally:
        monitor.abandon()
