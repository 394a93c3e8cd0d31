"""
pageready/data_models/__init__.py

Pydantic models for CDP events and resource snapshots.
"""

from pageready.data_models.cdp import CDPEventMethod, CDPEventSource, ResourceEvent
from pageready.data_models.resources import EntryKind, RegistryState, ResourceSnapshot, ResourceTimestamps

__all__ = [
    "CDPEventMethod",
    "CDPEventSource",
    "EntryKind",
    "RegistryState",
    "ResourceEvent",
    "ResourceSnapshot",
    "ResourceTimestamps",
]
