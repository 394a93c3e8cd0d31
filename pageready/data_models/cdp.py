"""
pageready/data_models/cdp.py

Data models for the CDP events consumed while tracking a page load.
"""

from enum import StrEnum
from typing import Any, Awaitable, Callable, Protocol

from pydantic import BaseModel, ConfigDict, Field


CDPEventListener = Callable[[dict[str, Any]], Awaitable[None]]


class CDPEventMethod(StrEnum):
    """CDP events the page load monitor listens to."""

    REQUEST_WILL_BE_SENT = "Network.requestWillBeSent"
    RESPONSE_RECEIVED = "Network.responseReceived"
    REQUEST_SERVED_FROM_MEMORY_CACHE = "Network.requestServedFromMemoryCache"
    REQUEST_SERVED_FROM_CACHE = "Network.requestServedFromCache"
    LOADING_FINISHED = "Network.loadingFinished"
    LOADING_FAILED = "Network.loadingFailed"
    DOM_CONTENT_EVENT_FIRED = "Page.domContentEventFired"


class CDPEventSource(Protocol):
    """
    The part of a CDP session the page load monitor depends on.
    AsyncCDPSession implements it; tests substitute a fake that replays messages.
    """

    def add_listener(self, method: str, listener_fn: CDPEventListener) -> None:
        ...

    def remove_listener(self, method: str, listener_fn: CDPEventListener) -> None:
        ...

    async def send_and_wait(
        self,
        method: str,
        params: dict | None = None,
        timeout: float = 10.0,
    ) -> dict | None:
        ...


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


class ResourceEvent(BaseModel):
    """
    Normalized view of a Network.* event.
    Every field is optional: CDP frequently omits metadata and a missing field is never an error.
    """
    model_config = ConfigDict(extra='ignore')

    request_id: str | None = Field(
        default=None,
        description="CDP request identifier",
        examples=["1000.1", "15BF081D76D2923D4AA7E645C41FB876"],
    )
    url: str | None = Field(
        default=None,
        description="Request URL, taken from the request object first and the response object second",
    )
    method: str | None = Field(
        default=None,
        description="HTTP method of the request",
        examples=["GET", "POST"],
    )
    resource_type: str | None = Field(
        default=None,
        description="Lower-cased CDP resource type",
        examples=["document", "script", "xhr"],
    )
    timestamp: float | None = Field(
        default=None,
        description="CDP monotonic timestamp in seconds",
    )
    status: int | None = Field(
        default=None,
        description="HTTP response status code",
        examples=[200, 304, 404],
    )
    mime_type: str | None = Field(
        default=None,
        description="MIME type of the response",
    )
    from_disk_cache: bool | None = Field(
        default=None,
        description="Whether the response was served from the disk cache",
    )

    @property
    def timestamp_ms(self) -> float | None:
        """The event timestamp converted to milliseconds."""
        if self.timestamp is None:
            return None
        return self.timestamp * 1000

    @classmethod
    def from_cdp_params(cls, params: dict[str, Any] | None) -> "ResourceEvent":
        """
        Build a ResourceEvent from the `params` of a Network.* CDP event.
        Args:
            params: Raw event params (may be None or partial).
        Returns:
            The normalized event.
        """
        params = _as_dict(params)
        request = _as_dict(params.get("request"))
        response = _as_dict(params.get("response"))

        resource_type = params.get("type")
        timestamp = params.get("timestamp")

        return cls(
            request_id=params.get("requestId"),
            url=request.get("url") or response.get("url"),
            method=request.get("method"),
            resource_type=resource_type.lower() if isinstance(resource_type, str) else None,
            timestamp=timestamp if isinstance(timestamp, (int, float)) else None,
            status=response.get("status"),
            mime_type=response.get("mimeType"),
            from_disk_cache=response.get("fromDiskCache"),
        )

    @classmethod
    def from_memory_cache_params(cls, params: dict[str, Any] | None) -> "ResourceEvent":
        """
        Build a ResourceEvent from Network.requestServedFromMemoryCache params.
        The cached `resource` object is lifted into the shape of a Network.responseReceived event,
        then the request-level fields of the event are layered on top.
        """
        params = _as_dict(params)
        resource = _as_dict(params.get("resource"))

        merged = dict(resource)
        for key in ("requestId", "frameId", "loaderId", "documentURL", "timestamp", "initiator"):
            merged[key] = params.get(key)
        merged.setdefault("response", {"url": resource.get("url"), "mimeType": resource.get("mimeType")})

        return cls.from_cdp_params(merged)
