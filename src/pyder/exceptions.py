"""Custom exception hierarchy for pyder."""

from __future__ import annotations

from typing import Any


class DerError(Exception):
    """Base exception for all pyder errors."""


class DerConfigError(DerError):
    """Invalid or missing configuration."""


class DerInputError(DerError, ValueError):
    """A command value was rejected (e.g. a non-numeric or negative setpoint)."""

    def __init__(self, message: str, *, value: Any = None) -> None:
        self.value = value
        super().__init__(message)


class DerDecodeError(DerError):
    """A single property entry could not be decoded into a signal update."""

    def __init__(self, message: str, *, name: str = "", value: Any = None) -> None:
        self.name = name
        self.value = value
        super().__init__(message)


class DerDeltaFormatError(DerDecodeError):
    """A property-change notification is not a sequence of named entries.

    The whole notification is dropped when this is raised; per-entry
    problems use :class:`DerDecodeError` instead.
    """


class DerTransportError(DerError):
    """Message-bus call failed (subscribe, unsubscribe, notify, connect)."""

    def __init__(
        self,
        message: str,
        *,
        operation: str = "",
        address: str = "",
    ) -> None:
        self.operation = operation
        self.address = address
        super().__init__(message)
