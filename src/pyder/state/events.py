"""Decoded signal updates.

Every property-change entry is decoded into exactly one of these variants.
Only the state/store layer is allowed to apply them.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictInt

from pyder._constants import INT32_MAX, INT32_MIN, UINT32_MAX


class PriceUpdate(BaseModel):
    """New price signal (signed 32-bit)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["price"] = "price"
    price: StrictInt = Field(..., ge=INT32_MIN, le=INT32_MAX)


class TimeUpdate(BaseModel):
    """New publisher tick count (unsigned 32-bit)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["time"] = "time"
    time: StrictInt = Field(..., ge=0, le=UINT32_MAX)


class UnknownProperty(BaseModel):
    """A property name with no signal mapping; applying it is a no-op."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["unknown"] = "unknown"
    name: str


SignalUpdate = Annotated[PriceUpdate | TimeUpdate | UnknownProperty, Field(discriminator="kind")]
