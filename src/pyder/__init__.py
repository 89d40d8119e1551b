"""pyder - Distributed energy resource with price/time signal subscriptions."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyder")
except PackageNotFoundError:
    __version__ = "0+local"
from pyder.client import DerClient
from pyder.config import DerConfig
from pyder.controller import ResourceController
from pyder.exceptions import (
    DerConfigError,
    DerDecodeError,
    DerDeltaFormatError,
    DerError,
    DerInputError,
    DerTransportError,
)
from pyder.models import (
    FlowState,
    PublishedProperties,
    PublisherState,
    RemotePublisher,
    ResourceState,
    SignalSample,
)
from pyder.scheduler import ResourceLoop
from pyder.state.store import SignalStore

__all__ = [
    "__version__",
    "DerClient",
    "DerConfig",
    "DerConfigError",
    "DerDecodeError",
    "DerDeltaFormatError",
    "DerError",
    "DerInputError",
    "DerTransportError",
    "FlowState",
    "PublishedProperties",
    "PublisherState",
    "RemotePublisher",
    "ResourceController",
    "ResourceLoop",
    "ResourceState",
    "SignalSample",
    "SignalStore",
]
