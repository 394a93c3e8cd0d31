"""
pageready/cdp/resource_registry.py

Bookkeeping for every network resource observed or anticipated during one navigation.

Contains:
- ResourceTimer: Grace period timer owned by one resource
- TrackedResource: Mutable lifecycle record of one resource
- ResourceRegistry: Identifier/URL keyed map of tracked resources
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable

from pageready.config import Config
from pageready.data_models.cdp import ResourceEvent
from pageready.data_models.resources import EntryKind, RegistryState, ResourceSnapshot, ResourceTimestamps
from pageready.utils.exceptions import RegistryFlushedError
from pageready.utils.logger import get_logger

logger = get_logger(name=__name__)


class ResourceTimer:
    """
    Grace period timer owned by a single resource.
    At most one expiry is pending at any time.
    """

    def __init__(self, callback_fn: Callable[[], None]) -> None:
        self.callback_fn = callback_fn
        self.delay_ms: float | None = None
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        """True while an expiry is scheduled and has neither fired nor been cancelled."""
        return self._handle is not None

    def _fire(self) -> None:
        self._handle = None
        self.callback_fn()

    def schedule(self, delay_ms: float) -> None:
        """
        Cancel any pending expiry, then schedule a new one `delay_ms` from now.
        Must be called from within a running event loop.
        """
        self.cancel()
        self.delay_ms = delay_ms
        self._handle = asyncio.get_running_loop().call_later(delay_ms / 1000, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


@dataclass
class TrackedResource:
    """
    Lifecycle record of one network fetch.
    The four status flags only ever go from False to True.
    """
    identifier: str
    kind: EntryKind
    url: str | None = None

    # request status
    received: bool = False
    timed_out: bool = False
    loaded: bool = False
    failed: bool = False

    # metadata, populated opportunistically as events arrive
    resource_type: str | None = None
    mime_type: str | None = None
    from_cache: bool | None = None
    method: str | None = None
    status_code: int | None = None
    timestamps: ResourceTimestamps = field(default_factory=ResourceTimestamps)

    timer: ResourceTimer | None = field(default=None, repr=False)

    @property
    def settled(self) -> bool:
        return self.received or self.timed_out or self.loaded or self.failed

    @property
    def terminal(self) -> bool:
        return self.timed_out or self.loaded or self.failed

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()

    def to_snapshot(self) -> ResourceSnapshot:
        return ResourceSnapshot(
            url=self.url,
            received=self.received,
            timed_out=self.timed_out,
            loaded=self.loaded,
            failed=self.failed,
            resource_type=self.resource_type,
            time=self.timestamps.elapsed_ms(),
            mime_type=self.mime_type,
            from_cache=self.from_cache,
            method=self.method,
            status_code=self.status_code,
        )


class ResourceRegistry:
    """
    Authoritative state for every resource of one navigation.

    Resources are normally keyed by their CDP request ID (confirmed entries). Resources only known
    from the document's resource tree are keyed by URL (provisional entries) until an event with a
    real request ID for the same URL supersedes them.

    Every mutation that could complete the page calls `on_maybe_settled` with no arguments.
    After `flush()` the registry is retired: mutations are no-ops and `export_data()` raises.
    """

    # Magic methods ________________________________________________________________________________________________________

    def __init__(
        self,
        on_maybe_settled: Callable[[], None],
        resource_timeout_ms: float | None = None,
        post_timeout_ms: float | None = None,
    ) -> None:
        """
        Initialize ResourceRegistry.
        Args:
            on_maybe_settled: Called (without payload) whenever the registry may have become settled.
            resource_timeout_ms: Grace period of every resource. Defaults to Config.PAGEREADY_RESOURCE_TIMEOUT_MS.
            post_timeout_ms: Extended grace period of POST requests. Defaults to Config.PAGEREADY_POST_TIMEOUT_MS.
        """
        self.on_maybe_settled = on_maybe_settled
        self.resource_timeout_ms = (
            resource_timeout_ms if resource_timeout_ms is not None else Config.PAGEREADY_RESOURCE_TIMEOUT_MS
        )
        self.post_timeout_ms = post_timeout_ms if post_timeout_ms is not None else Config.PAGEREADY_POST_TIMEOUT_MS

        self.state = RegistryState.ACTIVE
        self.resources: dict[str, TrackedResource] = {}  # identifier -> resource

        # URLs already seen, so a resource tree entry never duplicates a request-keyed entry
        self.announced_urls: list[str] = []

    def __len__(self) -> int:
        return len(self.resources)


    # Private methods ______________________________________________________________________________________________________

    @property
    def _active(self) -> bool:
        return self.state is RegistryState.ACTIVE

    def _announce(self, url: str) -> None:
        if url not in self.announced_urls:
            self.announced_urls.append(url)

    def _create_entry(self, identifier: str, kind: EntryKind, url: str | None) -> TrackedResource:
        resource = TrackedResource(identifier=identifier, kind=kind, url=url)
        resource.timer = ResourceTimer(callback_fn=lambda: self.timeout(resource))
        resource.timer.schedule(self.resource_timeout_ms)
        self.resources[identifier] = resource
        return resource

    def _is_tracking(self, request_id: str) -> bool:
        resource = self.resources.get(request_id)
        return resource is not None and resource.kind is EntryKind.CONFIRMED

    def _find_by_url(self, url: str) -> TrackedResource | None:
        for resource in self.resources.values():
            if resource.kind is EntryKind.CONFIRMED and resource.url == url:
                return resource
        provisional = self.resources.get(url)
        if provisional is not None and provisional.kind is EntryKind.PROVISIONAL:
            return provisional
        return None

    def _resolve(self, event: ResourceEvent) -> TrackedResource | None:
        """
        Find the resource an event refers to: request ID first, URL second.
        Unknown resources are registered on the fly.
        """
        if event.request_id is not None:
            if self._is_tracking(event.request_id):
                return self.resources[event.request_id]
            return self.add(event)

        if event.url:
            resource = self._find_by_url(event.url)
            if resource is None:
                self._announce(event.url)
                resource = self._create_entry(identifier=event.url, kind=EntryKind.PROVISIONAL, url=event.url)
            return resource

        logger.debug("⏭️ Event carries neither requestId nor url, ignoring")
        return None

    def _notify(self) -> None:
        self.on_maybe_settled()


    # Public methods _______________________________________________________________________________________________________

    def add(self, event: ResourceEvent) -> TrackedResource | None:
        """
        Register the resource an event refers to, keyed by its request ID.
        A provisional entry for the same URL is retired and its URL carried over.
        No-op if the request ID is already tracked.
        Returns:
            The tracked resource, or None when the registry is flushed or the event cannot be keyed.
        """
        if not self._active:
            return None

        if event.request_id is None:
            return self._resolve(event)

        if self._is_tracking(event.request_id):
            return self.resources[event.request_id]

        if event.url:
            self.progress(event.url)

        # a provisional entry whose URL equals this request ID would otherwise leak its timer
        stale = self.resources.get(event.request_id)
        if stale is not None:
            stale.cancel_timer()

        return self._create_entry(identifier=event.request_id, kind=EntryKind.CONFIRMED, url=event.url)

    def schedule(self, url: str) -> None:
        """
        Track a resource known only by URL (e.g. from the document's resource tree).
        No-op if the URL was already announced.
        """
        if not self._active:
            return

        if url in self.announced_urls:
            return

        self._announce(url)
        self._create_entry(identifier=url, kind=EntryKind.PROVISIONAL, url=url)
        logger.debug("🗓️ Scheduled resource from resource tree: %s", url[:150])

    def progress(self, url: str) -> None:
        """
        Announce a URL and retire its provisional entry, if any.
        Called when a request-keyed entry supersedes the URL-keyed one.
        """
        if not self._active:
            return

        self._announce(url)

        provisional = self.resources.get(url)
        if provisional is not None and provisional.kind is EntryKind.PROVISIONAL:
            provisional.cancel_timer()
            del self.resources[url]

    def request(self, event: ResourceEvent) -> None:
        """
        Record request metadata. POST requests that are not yet settled get the longer grace period,
        since writes can not be expected to be answered quickly.
        """
        if not self._active:
            return

        resource = self._resolve(event)
        if resource is None:
            return

        if event.method is not None:
            resource.method = event.method
        if event.timestamp_ms is not None:
            resource.timestamps.request = event.timestamp_ms

        if resource.method != "POST":
            return

        if resource.settled:
            return

        resource.timer.schedule(self.post_timeout_ms)
        logger.debug("⏳ POST request, grace period extended to %sms (id=%s)", self.post_timeout_ms, resource.identifier)

    def received(self, event: ResourceEvent) -> None:
        """
        Record a response. Repeated calls for the same resource are ignored.
        The resource may still be waiting for loadingFinished/loadingFailed afterwards.
        """
        if not self._active:
            return

        resource = self._resolve(event)
        if resource is None:
            return

        # a resource that timed out and is received later keeps both flags
        if resource.received:
            return
        resource.received = True

        # the response may be the first event to carry the URL
        if event.url:
            resource.url = event.url
            if resource.kind is EntryKind.CONFIRMED:
                self.progress(event.url)
            else:
                self._announce(event.url)

        if event.resource_type is not None:
            resource.resource_type = event.resource_type
        if event.timestamp_ms is not None:
            resource.timestamps.response = event.timestamp_ms
        if event.from_disk_cache is not None:
            resource.from_cache = event.from_disk_cache
        if event.status is not None:
            resource.status_code = event.status
        if event.mime_type is not None:
            resource.mime_type = event.mime_type

        resource.cancel_timer()
        self._notify()

    def loaded(self, event: ResourceEvent) -> None:
        """Mark a resource as finished loading. Idempotent."""
        if not self._active:
            return

        resource = self._resolve(event)
        if resource is None:
            return

        if resource.loaded:
            return
        resource.loaded = True
        if event.timestamp_ms is not None:
            resource.timestamps.loaded = event.timestamp_ms

        resource.cancel_timer()
        self._notify()

    def failed(self, event: ResourceEvent) -> None:
        """Mark a resource as failed. Idempotent."""
        if not self._active:
            return

        resource = self._resolve(event)
        if resource is None:
            return

        if resource.failed:
            return
        resource.failed = True
        if event.timestamp_ms is not None:
            resource.timestamps.failed = event.timestamp_ms

        resource.cancel_timer()
        self._notify()

    def timeout(self, resource: TrackedResource) -> None:
        """
        Grace period expiry of a resource.
        Ignored when the resource was retired or already reached a received or terminal state.
        """
        if not self._active:
            return

        if self.resources.get(resource.identifier) is not resource:
            return

        if resource.received or resource.terminal:
            return
        resource.timed_out = True
        logger.info("⏱️ Resource timed out after %sms: %s", resource.timer.delay_ms, (resource.url or "")[:150])

        self._notify()

    def flush(self) -> None:
        """Cancel every timer and discard all state. Further mutations become no-ops."""
        if not self._active:
            return

        for resource in self.resources.values():
            resource.cancel_timer()

        self.resources = {}
        self.announced_urls = []
        self.state = RegistryState.FLUSHED

    def export_data(self) -> dict[str, ResourceSnapshot]:
        """
        Snapshot every tracked resource.
        Returns:
            Mapping of identifier to ResourceSnapshot.
        Raises:
            RegistryFlushedError: If the registry has already been flushed.
        """
        if not self._active:
            raise RegistryFlushedError("data flushed")

        return {
            identifier: resource.to_snapshot()
            for identifier, resource in self.resources.items()
        }

    def all_settled(self) -> bool:
        """True if flushed, or if every tracked resource has received, timed out, loaded or failed."""
        if not self._active:
            return True

        return all(resource.settled for resource in self.resources.values())

    def get_registry_summary(self) -> dict[str, Any]:
        """
        Get summary of the registry state.
        Returns:
            Dictionary with resource counts.
        """
        resources = list(self.resources.values())
        return {
            "state": self.state.value,
            "resources_tracked": len(resources),
            "provisional": sum(1 for r in resources if r.kind is EntryKind.PROVISIONAL),
            "settled": sum(1 for r in resources if r.settled),
            "pending": sum(1 for r in resources if not r.settled),
            "timed_out": sum(1 for r in resources if r.timed_out),
            "failed": sum(1 for r in resources if r.failed),
        }
