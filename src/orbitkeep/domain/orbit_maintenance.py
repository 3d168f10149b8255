# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Per-orbiter orbit maintenance.

Owns one orbiter's station-keeping lifecycle: periodic drift checks,
planning, driving the executor every tick, the low-fuel policy, the
out-of-band emergency correction and the running statistics.
"""
import logging
import math
from dataclasses import dataclass, replace
from typing import Sequence

import numpy as np

from orbitkeep.domain.bodies import PrimaryBody
from orbitkeep.domain.drift_analysis import (
    DriftAnalysis,
    analyze_drift,
    orbit_accuracy,
    select_primary_body,
)
from orbitkeep.domain.maneuver_execution import (
    ExecutionEvent,
    ManeuverExecutor,
    validate_maneuver,
)
from orbitkeep.domain.maneuver_planning import (
    ManeuverType,
    OrbitalManeuver,
    burn_direction,
    plan_corrections,
    plan_manual_correction,
)
from orbitkeep.domain.orbital_mechanics import OrbitalElements, state_to_elements
from orbitkeep.domain.orbiter import COLLISION_MARGIN, Orbiter
from orbitkeep.domain.station_keeping import (
    FuelPolicy,
    StationKeepingConfig,
    adaptive_config,
    decay_minimizing,
    effective_config,
    with_aggressiveness,
    with_priority,
)

logger = logging.getLogger(__name__)

STALE_PLAN_SEVERITY = 0.5
PREDICTION_STEPS = 3600
PREDICTION_STEP = 1.0
DEORBIT_DELTA_V = 5.0
_DEGENERATE_ORBIT = OrbitalElements(semi_major_axis=math.inf, eccentricity=0.0)


@dataclass(frozen=True)
class MaintenanceStats:
    """Running station-keeping statistics for one orbiter."""
    total_fuel_consumed: float
    total_delta_v: float
    corrections_performed: int
    average_correction_size: float
    fuel_efficiency: float
    orbit_accuracy: float


class OrbitMaintenance:
    """Station-keeping controller bound to a single orbiter."""

    def __init__(
        self,
        orbiter: Orbiter,
        config: StationKeepingConfig | None = None,
        bodies: Sequence[PrimaryBody] = (),
    ) -> None:
        self.orbiter = orbiter
        self.base_config = config or StationKeepingConfig()
        self.config, self.policy = effective_config(self.base_config, orbiter.fuel_fraction)
        self.bodies: list[PrimaryBody] = list(bodies)
        self.primary: PrimaryBody | None = None
        self.planned: list[OrbitalManeuver] = []
        self.executor = ManeuverExecutor()
        self.drift: DriftAnalysis | None = None
        self.time_since_last_check = 0.0

        self.refresh_orbit()
        if orbiter.target_orbit is None and orbiter.last_known_orbit is not None:
            orbiter.target_orbit = orbiter.last_known_orbit

    # ── Orbit state ──

    def set_bodies(self, bodies: Sequence[PrimaryBody]) -> None:
        self.bodies = list(bodies)

    def refresh_orbit(self) -> OrbitalElements | None:
        """Recompute last_known_orbit relative to the dominant body."""
        self.primary = select_primary_body(self.orbiter.position, self.bodies)
        if self.primary is None:
            return None
        self.orbiter.primary_body = self.primary.name
        rel_pos, rel_vel = self._relative_state()
        try:
            elements = state_to_elements(rel_pos, rel_vel, self.primary.mu)
        except ValueError:
            logger.warning("degenerate orbit for %s", self.orbiter.name)
            elements = _DEGENERATE_ORBIT
        self.orbiter.last_known_orbit = elements
        return elements

    def set_target_from_current(self) -> None:
        current = self.refresh_orbit()
        if current is not None:
            self.orbiter.target_orbit = current

    def _relative_state(self) -> tuple[np.ndarray, np.ndarray]:
        return (
            self.orbiter.position - self.primary.position,
            self.orbiter.velocity - self.primary.velocity,
        )

    # ── Tick ──

    def update(self, dt: float) -> ExecutionEvent:
        """Run one maintenance tick: check on cadence, then drive the executor."""
        if not self.orbiter.maintenance_enabled or not self.orbiter.is_operational:
            return ExecutionEvent.IDLE

        self.time_since_last_check += dt
        self.executor.advance_clock(dt)

        if self.time_since_last_check >= self.config.check_interval:
            self.perform_check()
            self.time_since_last_check = 0.0

        if self.planned and self.executor.ready_for_next(self.config):
            maneuver = self.planned.pop(0)
            if validate_maneuver(maneuver, self.orbiter, self.config):
                self.executor.start(maneuver, self.config)
            else:
                logger.warning(
                    "dropped %s maneuver for %s: delta-V %.3f, fuel %.3f, reserve %.3f",
                    maneuver.maneuver_type.value, self.orbiter.name,
                    maneuver.delta_v, maneuver.fuel_cost,
                    self.orbiter.maintenance_fuel_reserve,
                )

        event = self.executor.step(self.orbiter, self.config, dt)
        self.orbiter.needs_correction = self.executor.is_busy or bool(self.planned)
        return event

    def perform_check(self) -> DriftAnalysis | None:
        """Analyse drift and re-plan; may trigger an emergency correction."""
        self._apply_fuel_policy()
        current = self.refresh_orbit()
        if current is None:
            return None
        if self.orbiter.target_orbit is None:
            self.orbiter.target_orbit = current
        target = self.orbiter.target_orbit

        rel_pos, rel_vel = self._relative_state()
        drift = analyze_drift(
            current, target, self.config, self.primary.mu,
            time_since_correction=self.executor.time_since_last_correction,
            position=self.orbiter.position,
            primary=self.primary,
            bodies=self.bodies,
        )
        self.drift = drift
        self.orbiter.orbit_accuracy = orbit_accuracy(drift.severity)

        if drift.severity > STALE_PLAN_SEVERITY:
            self.planned.clear()
        if drift.requires_action:
            self.planned = plan_corrections(
                drift, current, target, rel_pos, rel_vel, self.primary.mu, self.config,
            )
        if drift.requires_immediate_action:
            self.perform_emergency_correction()

        logger.debug(
            "maintenance check for %s: severity %.3f, %d planned",
            self.orbiter.name, drift.severity, len(self.planned),
        )
        return drift

    def _apply_fuel_policy(self) -> None:
        config, policy = effective_config(self.base_config, self.orbiter.fuel_fraction)
        if self.drift is not None:
            adapted = adaptive_config(
                config,
                self.executor.corrections_performed,
                self.fuel_efficiency,
                self.orbit_accuracy,
                self.drift.eccentricity_drift,
                self.drift.radius_drift,
            )
            if adapted is not config:
                logger.debug(
                    "adapted station keeping for %s: tolerance %.1f, interval %.1f",
                    self.orbiter.name, adapted.orbit_tolerance_radius, adapted.check_interval,
                )
            config = adapted
        if policy is not self.policy:
            if policy is FuelPolicy.CONSERVATION:
                logger.info("%s entering fuel conservation mode", self.orbiter.name)
            else:
                logger.info("%s maintenance policy now %s", self.orbiter.name, policy.value)
        self.config, self.policy = config, policy

    # ── Emergency handling ──

    def perform_emergency_correction(self) -> bool:
        """Start an emergency burn now, bypassing sequencing and the delay.

        Uses the head emergency maneuver when the planner produced one,
        otherwise a direct burn along the most critical drift component.
        The burn is shrunk to what the maintenance reserve can pay for.
        """
        drift = self.drift
        if drift is None or not drift.requires_immediate_action:
            return False
        active = self.executor.active
        if active is not None and active.is_emergency:
            return False

        if self.planned and self.planned[0].is_emergency:
            maneuver = self.planned.pop(0)
        elif drift.severity > 1.0:
            maneuver = self._direct_emergency_burn(drift)
        else:
            return False

        affordable = self.orbiter.maintenance_fuel_reserve * self.config.fuel_efficiency
        if maneuver.delta_v > affordable:
            maneuver.resize(affordable, self.config)
        if maneuver.delta_v <= 0.0:
            logger.warning(
                "no maintenance reserve left for emergency correction of %s",
                self.orbiter.name,
            )
            return False

        if active is not None:
            self.executor.abort_active()
        self.executor.start(maneuver, self.config, bypass_delay=True)
        logger.warning(
            "emergency correction for %s: severity %.2f, delta-V %.3f",
            self.orbiter.name, drift.severity, maneuver.delta_v,
        )
        return True

    def _direct_emergency_burn(self, drift: DriftAnalysis) -> OrbitalManeuver:
        if drift.most_critical == "radius":
            kind = ManeuverType.RETROGRADE if drift.radius_drift > 0 else ManeuverType.PROGRADE
        elif drift.most_critical == "eccentricity":
            kind = ManeuverType.CIRCULARIZE
        else:
            kind = ManeuverType.ANTI_NORMAL if drift.inclination_drift > 0 else ManeuverType.NORMAL
        rel_pos, rel_vel = self._relative_state()
        delta_v = min(self.config.max_single_burn, drift.severity * 2.0)
        maneuver = plan_manual_correction(kind, delta_v, rel_pos, rel_vel, self.config)
        maneuver.urgency = drift.severity
        maneuver.is_emergency = True
        return maneuver

    def minimize_orbit_decay(self) -> None:
        """Last resort when fuel is nearly gone.

        Drops every plan, makes at most one small corrective burn against
        severe radial drift and loosens tolerances for the rest of the
        mission.
        """
        self.clear_planned_maneuvers()
        self.abort_active_maneuver()
        drift = self.drift
        if drift is not None and drift.severity > 2.0 and drift.most_critical == "radius":
            kind = ManeuverType.RETROGRADE if drift.radius_drift > 0 else ManeuverType.PROGRADE
            rel_pos, rel_vel = self._relative_state()
            self.executor.execute_immediate(
                self.orbiter,
                min(1.0, self.config.max_single_burn * 0.1),
                burn_direction(kind, rel_pos, rel_vel),
                self.config,
            )
        self.base_config = decay_minimizing(self.base_config)
        self._apply_fuel_policy()
        logger.warning("orbit decay minimisation active for %s", self.orbiter.name)

    def prepare_controlled_deorbit(self) -> bool:
        """Cancel maintenance and fire a fixed retrograde burn if affordable."""
        self.clear_planned_maneuvers()
        self.abort_active_maneuver()
        if self.primary is None:
            return False
        cost = DEORBIT_DELTA_V / self.config.fuel_efficiency
        if self.orbiter.maintenance_fuel_reserve < cost:
            logger.warning("insufficient fuel for controlled deorbit of %s", self.orbiter.name)
            return False
        rel_pos, rel_vel = self._relative_state()
        self.executor.execute_immediate(
            self.orbiter, DEORBIT_DELTA_V,
            burn_direction(ManeuverType.RETROGRADE, rel_pos, rel_vel), self.config,
        )
        self.orbiter.maintenance_enabled = False
        logger.info("controlled deorbit initiated for %s", self.orbiter.name)
        return True

    # ── Commands ──

    def plan_manual_correction(self, maneuver_type: ManeuverType, magnitude: float) -> OrbitalManeuver:
        """Queue an operator burn ahead of everything already planned."""
        if self.primary is None:
            rel_pos, rel_vel = self.orbiter.position, self.orbiter.velocity
        else:
            rel_pos, rel_vel = self._relative_state()
        maneuver = plan_manual_correction(
            maneuver_type, magnitude, rel_pos, rel_vel, self.config,
        )
        self.planned.insert(0, maneuver)
        return maneuver

    def abort_active_maneuver(self) -> bool:
        return self.executor.abort_active()

    def clear_planned_maneuvers(self) -> None:
        self.planned.clear()

    def set_maintenance_priority(self, priority: float) -> None:
        self.base_config = with_priority(self.base_config, priority)
        self._apply_fuel_policy()

    def set_maintenance_aggressiveness(self, level: float) -> None:
        self.base_config = with_aggressiveness(self.base_config, level)
        self._apply_fuel_policy()

    def enable_adaptive_maintenance(self, enable: bool) -> None:
        """Switch history-based tuning of tolerances and check interval."""
        self.base_config = replace(self.base_config, enable_predictive_corrections=enable)
        self._apply_fuel_policy()
        logger.info(
            "adaptive maintenance %s for %s",
            "enabled" if enable else "disabled", self.orbiter.name,
        )

    # ── Statistics and prediction ──

    @property
    def orbit_accuracy(self) -> float:
        if self.drift is None:
            return 100.0
        return orbit_accuracy(self.drift.severity)

    @property
    def fuel_efficiency(self) -> float:
        """Orbit accuracy maintained per unit of fuel consumed."""
        if self.executor.total_fuel_consumed <= 0.0:
            return 0.0
        return self.orbit_accuracy / self.executor.total_fuel_consumed

    def statistics(self) -> MaintenanceStats:
        return MaintenanceStats(
            total_fuel_consumed=self.executor.total_fuel_consumed,
            total_delta_v=self.executor.total_delta_v,
            corrections_performed=self.executor.corrections_performed,
            average_correction_size=self.executor.average_correction_size,
            fuel_efficiency=self.fuel_efficiency,
            orbit_accuracy=self.orbit_accuracy,
        )

    def predict_fuel_requirement(self, time_ahead: float) -> float:
        """Fuel needed over time_ahead seconds assuming linear drift.

        One full-size correction per unit of severity accrued per hour.
        """
        severity = self.drift.severity if self.drift else 0.0
        if not math.isfinite(severity):
            return math.inf
        corrections = math.ceil(severity * time_ahead / 3600.0)
        return corrections * self.config.max_single_burn / self.config.fuel_efficiency

    def predict_orbit_decay(self, time_ahead: float) -> bool:
        if self.drift is None or self.drift.time_to_decay is None:
            return False
        return self.drift.time_to_decay <= time_ahead

    def recommended_fuel_reserve(self) -> float:
        """Fuel for three full corrections, scaled up by current severity."""
        severity = self.drift.severity if self.drift else 0.0
        base = self.config.max_single_burn / self.config.fuel_efficiency
        return base * (1.0 + severity) * 3.0

    def predict_path(
        self, steps: int = PREDICTION_STEPS, step: float = PREDICTION_STEP,
    ) -> np.ndarray:
        """Ballistic positions over the next steps*step seconds, shape (steps, 2)."""
        position = self.orbiter.position.copy()
        velocity = self.orbiter.velocity.copy()
        path = np.empty((steps, 2))
        for i in range(steps):
            path[i] = position
            accel = np.zeros(2)
            for body in self.bodies:
                dist = float(np.linalg.norm(body.position - position))
                if dist > body.radius + COLLISION_MARGIN:
                    accel += body.gravity_acceleration(position)
            velocity = velocity + accel * step
            position = position + velocity * step
        return path

    def validate_orbit_integrity(self) -> bool:
        """True for a bound ellipse that keeps the orbiter outside every body."""
        orbit = self.orbiter.last_known_orbit
        if orbit is None or not orbit.is_bound:
            return False
        if not 0.0 <= orbit.eccentricity < 1.0:
            return False
        for body in self.bodies:
            if float(np.linalg.norm(self.orbiter.position - body.position)) <= body.radius:
                return False
        return True

    def maintenance_report(self) -> list[str]:
        orbit = self.orbiter.last_known_orbit
        stats = self.statistics()
        lines = [
            "=== ORBITAL MAINTENANCE REPORT ===",
            f"Orbiter: {self.orbiter.name}",
        ]
        if orbit is not None:
            lines.append(f"Semi-major axis: {orbit.semi_major_axis:.1f}")
            lines.append(f"Eccentricity: {orbit.eccentricity:.4f}")
        lines.append(f"Orbit accuracy: {stats.orbit_accuracy:.1f}%")
        lines.append(f"Fuel policy: {self.policy.value}")

        drift = self.drift
        lines += ["", "--- DRIFT ANALYSIS ---"]
        if drift is None:
            lines.append("No maintenance check performed yet")
        else:
            lines.append(f"Overall severity: {drift.severity * 100.0:.1f}%")
            lines.append(f"Radius drift: {drift.radius_drift:.2f}")
            lines.append(f"Eccentricity drift: {drift.eccentricity_drift:.4f}")
            if drift.period_out_of_tolerance:
                lines.append(f"Period drift: {drift.period_drift:.1f} s (out of tolerance)")
            if drift.time_to_decay is not None and drift.time_to_decay > 0:
                lines.append(f"Time to decay: {drift.time_to_decay / 3600.0:.0f} hours")

        lines += [
            "", "--- PERFORMANCE METRICS ---",
            f"Corrections performed: {stats.corrections_performed}",
            f"Total fuel consumed: {stats.total_fuel_consumed:.2f}",
            f"Fuel efficiency: {stats.fuel_efficiency:.1f}",
            f"Average correction size: {stats.average_correction_size:.3f}",
            "", "--- STATUS & RECOMMENDATIONS ---",
        ]
        if drift is not None and drift.requires_immediate_action and drift.requires_action:
            lines.append("CRITICAL: Immediate correction required!")
        elif drift is not None and drift.requires_action:
            lines.append("WARNING: Orbital correction needed")
        else:
            lines.append("STATUS: Orbit stable")
        if drift is not None and drift.gravitational_perturbation:
            lines.append("Note: Gravitational perturbations detected")
        if drift is not None and drift.resonance:
            lines.append("Note: Orbital resonance effects detected")
        lines.append("=" * 37)
        return lines
