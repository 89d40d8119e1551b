"""Distributed energy resource controller.

Owns the import/export power setpoints and the energy accumulators. The
accumulators are integrated by :meth:`ResourceController.tick`, which the
:class:`pyder.scheduler.ResourceLoop` calls on a real-time cadence.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from pyder._constants import MS_PER_HOUR
from pyder.ingestion.normalize import parse_elapsed_ms, parse_watts
from pyder.models.resource import FlowState, ResourceState

_logger = logging.getLogger(__name__)


class ResourceController:
    """Thread-safe setpoint holder and energy integrator.

    Every read and write goes through one lock, so a :meth:`tick` running on
    the timer context can never interleave with a setpoint change or a
    :meth:`snapshot` from the control-input context.

    The setpoint in force when :meth:`tick` is called applies to the whole
    elapsed interval; changes made mid-interval are not split out.
    """

    def __init__(self, *, import_watts: int = 0, export_watts: int = 0) -> None:
        self._lock = threading.Lock()
        self._import_watts = parse_watts(import_watts)
        self._export_watts = parse_watts(export_watts)
        self._import_energy_wh = 0.0
        self._export_energy_wh = 0.0

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def set_import_watts(self, value: Any) -> int:
        """Set the import setpoint.

        Raises :class:`pyder.exceptions.DerInputError` and keeps the previous
        setpoint when *value* is not a non-negative integer.
        """
        watts = parse_watts(value)
        with self._lock:
            self._import_watts = watts
        _logger.debug("Import setpoint set to %d W", watts)
        return watts

    def set_export_watts(self, value: Any) -> int:
        """Set the export setpoint. Same validation as :meth:`set_import_watts`."""
        watts = parse_watts(value)
        with self._lock:
            self._export_watts = watts
        _logger.debug("Export setpoint set to %d W", watts)
        return watts

    def tick(self, elapsed_ms: float) -> None:
        """Integrate energy over *elapsed_ms* at the current setpoints."""
        elapsed = parse_elapsed_ms(elapsed_ms)
        if elapsed == 0:
            return
        with self._lock:
            self._import_energy_wh += self._import_watts * elapsed / MS_PER_HOUR
            self._export_energy_wh += self._export_watts * elapsed / MS_PER_HOUR

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def snapshot(self) -> ResourceState:
        with self._lock:
            return ResourceState(
                import_watts=self._import_watts,
                export_watts=self._export_watts,
                import_energy_wh=self._import_energy_wh,
                export_energy_wh=self._export_energy_wh,
            )

    @property
    def flow_state(self) -> FlowState:
        return self.snapshot().flow_state

    @property
    def import_power(self) -> int:
        with self._lock:
            return self._import_watts

    @property
    def export_power(self) -> int:
        with self._lock:
            return self._export_watts

    @property
    def import_energy(self) -> float:
        with self._lock:
            return self._import_energy_wh

    @property
    def export_energy(self) -> float:
        with self._lock:
            return self._export_energy_wh
