"""Data models for pyder."""

from pyder.models.resource import FlowState, PublishedProperties, ResourceState
from pyder.models.signal import PublisherState, RemotePublisher, SignalSample

__all__ = [
    "FlowState",
    "PublishedProperties",
    "PublisherState",
    "RemotePublisher",
    "ResourceState",
    "SignalSample",
]
