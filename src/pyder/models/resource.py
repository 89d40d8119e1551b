"""Energy resource models."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from pyder._constants import (
    PROP_DEVICE_NAME,
    PROP_EXPORT_ENERGY,
    PROP_EXPORT_POWER,
    PROP_IMPORT_ENERGY,
    PROP_IMPORT_POWER,
    PROP_PATH,
)


class FlowState(StrEnum):
    """Power flow derived from which setpoints are non-zero."""

    NO_FLOW = "no_flow"
    IMPORTING = "importing"
    EXPORTING = "exporting"
    BOTH = "both"


class ResourceState(BaseModel):
    """Consistent snapshot of the resource setpoints and accumulators.

    Parameters
    ----------
    import_watts : int
        Commanded import power.
    export_watts : int
        Commanded export power.
    import_energy_wh : float
        Energy imported since start-up.
    export_energy_wh : float
        Energy exported since start-up.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    import_watts: int = Field(default=0, ge=0)
    export_watts: int = Field(default=0, ge=0)
    import_energy_wh: float = Field(default=0.0, ge=0.0)
    export_energy_wh: float = Field(default=0.0, ge=0.0)

    @property
    def flow_state(self) -> FlowState:
        if self.import_watts and self.export_watts:
            return FlowState.BOTH
        if self.import_watts:
            return FlowState.IMPORTING
        if self.export_watts:
            return FlowState.EXPORTING
        return FlowState.NO_FLOW


class PublishedProperties(BaseModel):
    """Local property set visible to remote observers.

    Field aliases are the property names used on the bus.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    device_name: str = Field(..., alias=PROP_DEVICE_NAME)
    path: str = Field(..., alias=PROP_PATH)
    import_power: int = Field(..., alias=PROP_IMPORT_POWER)
    export_power: int = Field(..., alias=PROP_EXPORT_POWER)
    import_energy: float = Field(..., alias=PROP_IMPORT_ENERGY)
    export_energy: float = Field(..., alias=PROP_EXPORT_ENERGY)

    @classmethod
    def from_state(cls, *, device_name: str, path: str, state: ResourceState) -> PublishedProperties:
        return cls(
            device_name=device_name,
            path=path,
            import_power=state.import_watts,
            export_power=state.export_watts,
            import_energy=state.import_energy_wh,
            export_energy=state.export_energy_wh,
        )

    def to_bus(self) -> dict[str, Any]:
        """Property dict keyed by bus property names."""
        return self.model_dump(by_alias=True)
