"""Signal publisher models."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pyder._constants import INT32_MAX, INT32_MIN, UINT32_MAX


class PublisherState(StrEnum):
    """Lifecycle of a remote signal publisher."""

    DISCOVERED = "discovered"
    SUBSCRIBED = "subscribed"
    LOST = "lost"


class SignalSample(BaseModel):
    """Latest known time/price pair for one publisher.

    Mutated in place by the signal store; each field is last-write-wins
    and a change set may update only one of them.

    Parameters
    ----------
    time : int
        Publisher tick count (unsigned 32-bit).
    price : int
        Publisher price signal (signed 32-bit).
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    time: int = Field(default=0, ge=0, le=UINT32_MAX)
    price: int = Field(default=0, ge=INT32_MIN, le=INT32_MAX)


class RemotePublisher(BaseModel):
    """A remote device advertising time/price signals on the bus."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    address: str = Field(..., description="Opaque unique bus address")
    state: PublisherState = PublisherState.DISCOVERED
    discovered_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    lost_at: datetime | None = None

    @field_validator("address")
    @classmethod
    def _normalize_address(cls, value: str) -> str:
        address = value.strip()
        if not address:
            raise ValueError("address must be non-empty")
        return address
