# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Incremental maneuver execution.

A maneuver is applied a slice at a time, limited by thrust-to-weight,
and paid for from the orbiter's maintenance reserve. It completes when
the remaining delta-V falls to 0.01 and aborts when the reserve cannot
pay for the next slice or when it has run for twice its planned
duration. Aborted maneuvers are never retried here.
"""
import enum
import logging

import numpy as np

from orbitkeep.domain.maneuver_planning import OrbitalManeuver
from orbitkeep.domain.orbital_mechanics import OrbitalConstants, unit_vector
from orbitkeep.domain.orbiter import Orbiter
from orbitkeep.domain.station_keeping import StationKeepingConfig

logger = logging.getLogger(__name__)

COMPLETION_TOLERANCE = 0.01
TIMEOUT_FACTOR = 2.0
_FUEL_EPSILON = 1e-9


class ExecutionEvent(enum.Enum):
    IDLE = "idle"
    STARTED = "started"
    PROGRESSED = "progressed"
    COMPLETED = "completed"
    ABORTED_NO_FUEL = "aborted_no_fuel"
    ABORTED_TIMEOUT = "aborted_timeout"
    ABORTED_MANUAL = "aborted_manual"


MAX_BURN_FACTOR = 2.0


def validate_maneuver(
    maneuver: OrbitalManeuver, orbiter: Orbiter, config: StationKeepingConfig,
) -> bool:
    """Whether a planned maneuver may start on this orbiter.

    Rejects maneuvers on non-operational orbiters, maneuvers whose fuel
    cost exceeds the maintenance reserve, and burns larger than twice
    the configured max_single_burn.
    """
    if not orbiter.is_operational:
        return False
    if maneuver.fuel_cost > orbiter.maintenance_fuel_reserve + _FUEL_EPSILON:
        return False
    return maneuver.delta_v <= config.max_single_burn * MAX_BURN_FACTOR


class ManeuverExecutor:
    """Drives at most one maneuver at a time for a single orbiter."""

    def __init__(self) -> None:
        self.active: OrbitalManeuver | None = None
        self.time_since_last_correction = 0.0
        self.total_fuel_consumed = 0.0
        self.total_delta_v = 0.0
        self.corrections_performed = 0
        self.last_event = ExecutionEvent.IDLE

    @property
    def average_correction_size(self) -> float:
        if self.corrections_performed == 0:
            return 0.0
        return self.total_delta_v / self.corrections_performed

    @property
    def is_busy(self) -> bool:
        return self.active is not None

    def ready_for_next(self, config: StationKeepingConfig) -> bool:
        """True when idle and the post-correction cooldown has elapsed."""
        return self.active is None and (
            self.time_since_last_correction >= config.correction_delay
        )

    def start(
        self, maneuver: OrbitalManeuver, config: StationKeepingConfig,
        bypass_delay: bool = False,
    ) -> bool:
        """Begin executing maneuver. Returns False if the executor is not ready."""
        if self.active is not None:
            return False
        if not bypass_delay and not self.ready_for_next(config):
            return False
        maneuver.start()
        self.active = maneuver
        self.last_event = ExecutionEvent.STARTED
        logger.info(
            "starting %s maneuver, delta-V %.3f%s",
            maneuver.maneuver_type.value, maneuver.delta_v,
            " (emergency)" if maneuver.is_emergency else "",
        )
        return True

    def advance_clock(self, dt: float) -> None:
        self.time_since_last_correction += dt

    def step(self, orbiter: Orbiter, config: StationKeepingConfig, dt: float) -> ExecutionEvent:
        """
        Apply one tick of the active maneuver to orbiter.

        Args:
            orbiter: The orbiter this executor belongs to.
            config: Effective station-keeping config.
            dt: Tick length in seconds.

        Returns:
            ExecutionEvent describing what happened this tick.
        """
        maneuver = self.active
        if maneuver is None:
            self.last_event = ExecutionEvent.IDLE
            return self.last_event

        maneuver.elapsed += dt
        max_delta_v = config.thrust_to_weight * OrbitalConstants.G0 * dt
        delta_v = min(max_delta_v, maneuver.remaining_delta_v)
        fuel_needed = delta_v / config.fuel_efficiency

        if fuel_needed > orbiter.maintenance_fuel_reserve + _FUEL_EPSILON:
            logger.warning(
                "maneuver aborted for %s: reserve %.3f cannot pay %.3f",
                orbiter.name, orbiter.maintenance_fuel_reserve, fuel_needed,
            )
            return self._finish_aborted(ExecutionEvent.ABORTED_NO_FUEL)

        if delta_v > 0.0:
            change = maneuver.direction * delta_v
            orbiter.apply_delta_v(change)
            orbiter.consume_maintenance_fuel(fuel_needed)
            maneuver.executed_burn = maneuver.executed_burn + change
            maneuver.remaining_delta_v -= delta_v
            self.total_fuel_consumed += fuel_needed
            self.total_delta_v += delta_v

        if maneuver.remaining_delta_v <= COMPLETION_TOLERANCE:
            maneuver.complete()
            self.active = None
            self.corrections_performed += 1
            self.time_since_last_correction = 0.0
            self.last_event = ExecutionEvent.COMPLETED
            logger.info(
                "completed %s maneuver for %s, delta-V %.3f",
                maneuver.maneuver_type.value, orbiter.name, maneuver.delta_v,
            )
            return self.last_event

        if maneuver.elapsed > maneuver.duration * TIMEOUT_FACTOR:
            logger.warning(
                "maneuver timed out for %s after %.1f s", orbiter.name, maneuver.elapsed,
            )
            return self._finish_aborted(ExecutionEvent.ABORTED_TIMEOUT)

        self.last_event = ExecutionEvent.PROGRESSED
        return self.last_event

    def abort_active(self) -> bool:
        if self.active is None:
            return False
        logger.info("aborting active %s maneuver", self.active.maneuver_type.value)
        self._finish_aborted(ExecutionEvent.ABORTED_MANUAL)
        return True

    def execute_immediate(
        self, orbiter: Orbiter, delta_v: float, direction: np.ndarray,
        config: StationKeepingConfig,
    ) -> float:
        """Apply an impulsive burn at once, sized to what the reserve can pay.

        Returns:
            The delta-V actually applied.
        """
        direction = unit_vector(direction)
        if delta_v <= 0.0 or not direction.any():
            return 0.0
        affordable = orbiter.maintenance_fuel_reserve * config.fuel_efficiency
        applied = min(delta_v, affordable)
        if applied <= 0.0:
            return 0.0
        fuel = applied / config.fuel_efficiency
        orbiter.apply_delta_v(direction * applied)
        orbiter.consume_maintenance_fuel(fuel)
        self.total_fuel_consumed += fuel
        self.total_delta_v += applied
        self.corrections_performed += 1
        self.time_since_last_correction = 0.0
        return applied

    def _finish_aborted(self, event: ExecutionEvent) -> ExecutionEvent:
        self.active.abort()
        self.active = None
        self.last_event = event
        return event
