# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Correction maneuver planning.

Turns a drift analysis into impulsive correction burns: circularisation
at apoapsis, prograde/retrograde radius corrections via vis-viva, and
planar "inclination" burns along the in-plane normal. Large corrections
are decomposed into successive steps when small frequent burns are
preferred; the resulting queue is sorted and adjacent compatible burns
are merged.

No external dependencies — only stdlib math and numpy.
"""
import enum
import math
from dataclasses import dataclass, field

import numpy as np

from orbitkeep.domain.drift_analysis import DriftAnalysis
from orbitkeep.domain.errors import ManeuverStateError
from orbitkeep.domain.orbital_mechanics import (
    OrbitalConstants,
    OrbitalElements,
    as_vector,
    circular_velocity,
    unit_vector,
    vis_viva_speed,
)
from orbitkeep.domain.station_keeping import StationKeepingConfig

# Burns at or below this delta-V are not worth scheduling.
MIN_BURN_DELTA_V = 0.1
_CIRCULAR_E = 0.001
_MIN_INCLINATION_CHANGE = 0.001


class ManeuverType(enum.Enum):
    PROGRADE = "prograde"
    RETROGRADE = "retrograde"
    NORMAL = "normal"
    ANTI_NORMAL = "anti_normal"
    RADIAL_IN = "radial_in"
    RADIAL_OUT = "radial_out"
    CIRCULARIZE = "circularize"
    PLANE_CHANGE = "plane_change"


class ManeuverState(enum.Enum):
    PLANNED = "planned"
    EXECUTING = "executing"
    COMPLETE = "complete"
    ABORTED = "aborted"


@dataclass
class OrbitalManeuver:
    """One correction burn and its execution progress."""
    maneuver_type: ManeuverType
    burn_vector: np.ndarray
    delta_v: float
    fuel_cost: float
    duration: float
    urgency: float = 0.0
    is_emergency: bool = False
    remaining_delta_v: float | None = None
    executed_burn: np.ndarray = field(default_factory=lambda: np.zeros(2))
    elapsed: float = 0.0
    state: ManeuverState = ManeuverState.PLANNED

    def __post_init__(self) -> None:
        self.burn_vector = as_vector(self.burn_vector)
        if self.delta_v < 0:
            raise ValueError(f"delta_v must be non-negative, got {self.delta_v}")
        if self.remaining_delta_v is None:
            self.remaining_delta_v = self.delta_v

    @property
    def direction(self) -> np.ndarray:
        return unit_vector(self.burn_vector)

    @property
    def is_finished(self) -> bool:
        return self.state in (ManeuverState.COMPLETE, ManeuverState.ABORTED)

    def start(self) -> None:
        if self.state is not ManeuverState.PLANNED:
            raise ManeuverStateError(f"cannot start a {self.state.value} maneuver")
        self.state = ManeuverState.EXECUTING
        self.remaining_delta_v = self.delta_v
        self.elapsed = 0.0

    def complete(self) -> None:
        if self.state is not ManeuverState.EXECUTING:
            raise ManeuverStateError(f"cannot complete a {self.state.value} maneuver")
        self.state = ManeuverState.COMPLETE

    def abort(self) -> None:
        if self.is_finished:
            raise ManeuverStateError(f"cannot abort a {self.state.value} maneuver")
        self.state = ManeuverState.ABORTED

    def resize(self, delta_v: float, config: StationKeepingConfig) -> None:
        """Change the total delta-V of a maneuver that has not started."""
        if self.state is not ManeuverState.PLANNED:
            raise ManeuverStateError(f"cannot resize a {self.state.value} maneuver")
        self.delta_v = max(0.0, delta_v)
        self.remaining_delta_v = self.delta_v
        self.burn_vector = self.direction * self.delta_v
        self.fuel_cost = fuel_cost(self.delta_v, config)
        self.duration = burn_duration(self.delta_v, config)


# ── Sizing helpers ──

def fuel_cost(delta_v: float, config: StationKeepingConfig) -> float:
    return delta_v / config.fuel_efficiency


def burn_duration(delta_v: float, config: StationKeepingConfig) -> float:
    """Time to deliver delta_v at the configured thrust-to-weight ratio."""
    return delta_v / (config.thrust_to_weight * OrbitalConstants.G0)


def burn_direction(
    maneuver_type: ManeuverType, position: np.ndarray, velocity: np.ndarray,
) -> np.ndarray:
    """Unit burn direction for a maneuver type at the given relative state.

    The normal direction of the planar model is the in-plane
    perpendicular of the velocity.
    """
    prograde = unit_vector(velocity)
    normal = np.array([-prograde[1], prograde[0]])
    radial = unit_vector(position)
    directions = {
        ManeuverType.PROGRADE: prograde,
        ManeuverType.RETROGRADE: -prograde,
        ManeuverType.CIRCULARIZE: prograde,
        ManeuverType.NORMAL: normal,
        ManeuverType.ANTI_NORMAL: -normal,
        ManeuverType.PLANE_CHANGE: normal,
        ManeuverType.RADIAL_OUT: radial,
        ManeuverType.RADIAL_IN: -radial,
    }
    return directions[maneuver_type]


def _make_maneuver(
    maneuver_type: ManeuverType,
    delta_v: float,
    direction: np.ndarray,
    config: StationKeepingConfig,
) -> OrbitalManeuver:
    delta_v = min(delta_v, config.max_single_burn)
    return OrbitalManeuver(
        maneuver_type=maneuver_type,
        burn_vector=direction * delta_v,
        delta_v=delta_v,
        fuel_cost=fuel_cost(delta_v, config),
        duration=burn_duration(delta_v, config),
    )


# ── Single corrections ──

def plan_radius_correction(
    semi_major_axis: float,
    target_semi_major_axis: float,
    radius: float,
    mu: float,
    velocity: np.ndarray,
    config: StationKeepingConfig,
) -> OrbitalManeuver:
    """
    Prograde/retrograde burn moving the semi-major axis towards a target.

    Delta-V is |v_target - v_current| at the current radius, with both
    speeds from vis-viva. An unbound current orbit uses the escape speed.

    Args:
        semi_major_axis: Current semi-major axis (may be +inf).
        target_semi_major_axis: Desired semi-major axis.
        radius: Current distance from the primary.
        mu: Gravitational parameter of the primary.
        velocity: Velocity relative to the primary.
        config: Effective station-keeping config.

    Returns:
        OrbitalManeuver, capped at config.max_single_burn.
    """
    v_current = vis_viva_speed(radius, semi_major_axis, mu)
    v_target = vis_viva_speed(radius, target_semi_major_axis, mu)
    raising = target_semi_major_axis > semi_major_axis
    maneuver_type = ManeuverType.PROGRADE if raising else ManeuverType.RETROGRADE
    direction = burn_direction(maneuver_type, np.zeros(2), velocity)
    return _make_maneuver(maneuver_type, abs(v_target - v_current), direction, config)


def plan_circularization(
    current: OrbitalElements,
    mu: float,
    velocity: np.ndarray,
    config: StationKeepingConfig,
) -> OrbitalManeuver | None:
    """Prograde burn at apoapsis raising the speed to circular.

    Returns None for orbits that are already circular or unbound.
    """
    if not current.is_bound or current.eccentricity <= _CIRCULAR_E:
        return None
    apoapsis = current.apoapsis
    v_apoapsis = vis_viva_speed(apoapsis, current.semi_major_axis, mu)
    v_circular = circular_velocity(apoapsis, mu)
    direction = burn_direction(ManeuverType.CIRCULARIZE, np.zeros(2), velocity)
    return _make_maneuver(
        ManeuverType.CIRCULARIZE, abs(v_circular - v_apoapsis), direction, config,
    )


def plan_inclination_correction(
    current: OrbitalElements,
    target_inclination: float,
    mu: float,
    velocity: np.ndarray,
    config: StationKeepingConfig,
) -> OrbitalManeuver | None:
    """Plane correction: delta-V = 2 v sin(di / 2) along the orbit normal."""
    change = abs(target_inclination - current.inclination)
    if change <= _MIN_INCLINATION_CHANGE or not current.is_bound:
        return None
    speed = circular_velocity(current.semi_major_axis, mu)
    maneuver_type = (
        ManeuverType.NORMAL if target_inclination > current.inclination
        else ManeuverType.ANTI_NORMAL
    )
    direction = burn_direction(maneuver_type, np.zeros(2), velocity)
    delta_v = 2.0 * speed * math.sin(change / 2.0)
    return _make_maneuver(maneuver_type, delta_v, direction, config)


# ── Queue planning ──

def _standard_plan(
    drift: DriftAnalysis,
    current: OrbitalElements,
    target: OrbitalElements,
    radius: float,
    mu: float,
    velocity: np.ndarray,
    config: StationKeepingConfig,
) -> list[OrbitalManeuver]:
    plan: list[OrbitalManeuver | None] = []
    if (config.prioritize_circular_orbit
            and abs(drift.eccentricity_drift) > config.eccentricity_tolerance):
        plan.append(plan_circularization(current, mu, velocity, config))
    if abs(drift.radius_drift) > config.orbit_tolerance_radius:
        plan.append(plan_radius_correction(
            current.semi_major_axis, target.semi_major_axis,
            radius, mu, velocity, config,
        ))
    if (config.prioritize_inclination
            and abs(drift.inclination_drift) > config.inclination_tolerance):
        plan.append(plan_inclination_correction(
            current, target.inclination, mu, velocity, config,
        ))
    return [m for m in plan if m is not None]


def plan_multi_step(
    drift: DriftAnalysis,
    current: OrbitalElements,
    target: OrbitalElements,
    radius: float,
    mu: float,
    velocity: np.ndarray,
    config: StationKeepingConfig,
) -> list[OrbitalManeuver]:
    """Split a large correction into up to three burns.

    Half the radius correction, then circularisation, then the rest of
    the radius correction.
    """
    steps: list[OrbitalManeuver | None] = []
    a_now = current.semi_major_axis
    a_target = target.semi_major_axis
    halfway = a_now - drift.radius_drift * 0.5 if math.isfinite(a_now) else a_target

    if abs(drift.radius_drift) > config.orbit_tolerance_radius * 2.0:
        steps.append(plan_radius_correction(
            a_now, halfway, radius, mu, velocity, config,
        ))
    else:
        halfway = a_now
    if drift.eccentricity_drift > config.eccentricity_tolerance * 2.0:
        steps.append(plan_circularization(current, mu, velocity, config))
    if abs(drift.radius_drift) > config.orbit_tolerance_radius and halfway != a_target:
        steps.append(plan_radius_correction(
            halfway, a_target, radius, mu, velocity, config,
        ))
    return [m for m in steps if m is not None]


def optimize_sequence(
    maneuvers: list[OrbitalManeuver], config: StationKeepingConfig,
) -> list[OrbitalManeuver]:
    """Sort emergency-first, then by fuel cost per delta-V; merge neighbours.

    Adjacent maneuvers of the same type merge when their combined delta-V
    still fits under the burn cap.
    """
    ordered = sorted(
        maneuvers,
        key=lambda m: (not m.is_emergency, m.fuel_cost / m.delta_v if m.delta_v > 0 else math.inf),
    )
    merged: list[OrbitalManeuver] = []
    for maneuver in ordered:
        if merged and merged[-1].maneuver_type is maneuver.maneuver_type:
            previous = merged[-1]
            combined = previous.delta_v + maneuver.delta_v
            if combined <= config.max_single_burn:
                previous.burn_vector = previous.burn_vector + maneuver.burn_vector
                previous.delta_v = combined
                previous.remaining_delta_v = combined
                previous.fuel_cost = fuel_cost(combined, config)
                previous.duration = burn_duration(combined, config)
                previous.is_emergency = previous.is_emergency or maneuver.is_emergency
                continue
        merged.append(maneuver)
    return merged


def plan_corrections(
    drift: DriftAnalysis,
    current: OrbitalElements,
    target: OrbitalElements,
    position: np.ndarray,
    velocity: np.ndarray,
    mu: float,
    config: StationKeepingConfig,
) -> list[OrbitalManeuver]:
    """
    Plan the correction queue for a drift analysis.

    Args:
        drift: Result of analyze_drift.
        current: Current elements.
        target: Target elements.
        position: Position relative to the primary.
        velocity: Velocity relative to the primary.
        mu: Gravitational parameter of the primary.
        config: Effective station-keeping config.

    Returns:
        Ordered list of planned maneuvers, possibly empty.
    """
    radius = float(np.linalg.norm(position))
    if radius <= 0.0:
        return []

    maneuvers: list[OrbitalManeuver] = []
    if config.prefer_small_frequent_burns and drift.severity > config.multi_step_threshold:
        maneuvers = plan_multi_step(
            drift, current, target, radius, mu, velocity, config,
        )
    if not maneuvers:
        maneuvers = _standard_plan(
            drift, current, target, radius, mu, velocity, config,
        )

    maneuvers = [m for m in maneuvers if m.delta_v > MIN_BURN_DELTA_V]
    for maneuver in maneuvers:
        maneuver.urgency = drift.severity
        maneuver.is_emergency = drift.requires_immediate_action
        maneuver.fuel_cost = fuel_cost(maneuver.delta_v, config)
    if len(maneuvers) > 1:
        maneuvers = optimize_sequence(maneuvers, config)
    return maneuvers


def plan_manual_correction(
    maneuver_type: ManeuverType,
    magnitude: float,
    position: np.ndarray,
    velocity: np.ndarray,
    config: StationKeepingConfig,
) -> OrbitalManeuver:
    """Operator-requested burn of a given type, capped at the burn limit.

    Raises:
        ValueError: If magnitude is not positive.
    """
    if magnitude <= 0:
        raise ValueError(f"magnitude must be positive, got {magnitude}")
    direction = burn_direction(maneuver_type, position, velocity)
    maneuver = _make_maneuver(maneuver_type, magnitude, direction, config)
    maneuver.urgency = 1.0
    return maneuver
