"""
pageready/data_models/resources.py

Data models for tracked resources and their exported snapshots.
"""

from enum import StrEnum

from pydantic import BaseModel, Field


class EntryKind(StrEnum):
    """How a registry entry is keyed."""

    PROVISIONAL = "provisional"  # keyed by URL, request ID not yet known
    CONFIRMED = "confirmed"  # keyed by CDP request ID


class RegistryState(StrEnum):
    """Lifecycle state of a ResourceRegistry."""

    ACTIVE = "active"
    FLUSHED = "flushed"


class ResourceTimestamps(BaseModel):
    """
    Named instants of a resource lifecycle, in milliseconds.
    """
    request: float | None = None
    response: float | None = None
    loaded: float | None = None
    failed: float | None = None

    def elapsed_ms(self) -> float | None:
        """
        Time from the request to the latest of loaded, response and failed.
        Returns:
            The elapsed time, or None when the request instant or every later instant is unknown.
        """
        if self.request is None:
            return None

        latest = max(
            self.loaded if self.loaded is not None else -1,
            self.response if self.response is not None else -1,
            self.failed if self.failed is not None else -1,
        )
        # a timestamp can not be negative
        if latest < 0:
            return None

        return latest - self.request


class ResourceSnapshot(BaseModel):
    """
    Exported state of one tracked resource at the moment the page was declared loaded.
    """
    url: str | None = Field(
        default=None,
        description="Resource URL, unset when no event carried one",
    )

    # request status
    received: bool = Field(default=False, description="A response was received")
    timed_out: bool = Field(default=False, description="The grace period expired before a terminal event")
    loaded: bool = Field(default=False, description="Loading finished or the resource was served from cache")
    failed: bool = Field(default=False, description="Loading failed")

    # metadata, populated when the resource is received
    resource_type: str | None = Field(default=None, examples=["document", "script", "xhr"])
    time: float | None = Field(default=None, description="Elapsed milliseconds from request to completion")
    mime_type: str | None = Field(default=None, examples=["text/html", "application/javascript"])
    from_cache: bool | None = Field(default=None, description="Served from the disk cache")
    method: str | None = Field(default=None, examples=["GET", "POST"])
    status_code: int | None = Field(default=None, examples=[200, 404])

    @property
    def settled(self) -> bool:
        """True once any of the four status flags is set."""
        return self.received or self.timed_out or self.loaded or self.failed
