# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Orbit drift analysis.

Compares an orbiter's current elements against its target, scores the
drift against configured tolerances and flags likely causes. The
period, perturbation and resonance flags are diagnostic only; nothing
in the planner reads them.

No external dependencies — only stdlib math and numpy.
"""
import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from orbitkeep.domain.bodies import PrimaryBody
from orbitkeep.domain.orbital_mechanics import OrbitalElements, orbital_period
from orbitkeep.domain.station_keeping import StationKeepingConfig

# Low-order period ratios checked for resonance (1:2 ... 2:1).
RESONANCE_RATIOS = (0.5, 2.0 / 3.0, 0.75, 1.0, 4.0 / 3.0, 1.5, 2.0)
RESONANCE_TOLERANCE = 0.05
PERTURBATION_FRACTION = 0.1


@dataclass(frozen=True)
class DriftAnalysis:
    """Drift of the current orbit from its target."""
    radius_drift: float
    eccentricity_drift: float
    inclination_drift: float
    radius_drift_rate: float
    eccentricity_drift_rate: float
    inclination_drift_rate: float
    period_drift: float
    apoapsis_drift: float
    periapsis_drift: float
    severity: float
    requires_action: bool
    requires_immediate_action: bool
    time_to_decay: float | None       # None: no decay predicted
    most_critical: str                # "radius", "eccentricity" or "inclination"
    gravitational_perturbation: bool = False
    resonance: bool = False
    period_out_of_tolerance: bool = False


def drift_severity(
    radius_drift: float,
    eccentricity_drift: float,
    inclination_drift: float,
    config: StationKeepingConfig,
) -> tuple[float, str]:
    """Largest tolerance-normalised drift and the component that set it.

    1.0 sits exactly on the tolerance boundary.
    """
    normalised = {
        "radius": abs(radius_drift) / config.orbit_tolerance_radius,
        "eccentricity": abs(eccentricity_drift) / config.eccentricity_tolerance,
        "inclination": abs(inclination_drift) / config.inclination_tolerance,
    }
    component = max(normalised, key=normalised.get)
    return normalised[component], component


def orbit_accuracy(severity: float) -> float:
    """Accuracy percentage: 100 on target, 0 at or beyond 1.0 severity."""
    if severity <= 0.0:
        return 100.0
    return max(0.0, min(100.0, 100.0 - severity * 100.0))


def predict_time_to_decay(
    semi_major_axis: float, radius_drift_rate: float, safe_altitude: float,
) -> float | None:
    """Seconds until the orbit shrinks to safe_altitude at the current rate."""
    if radius_drift_rate >= 0.0 or not math.isfinite(radius_drift_rate):
        return None
    if semi_major_axis <= safe_altitude:
        return 0.0
    return (semi_major_axis - safe_altitude) / abs(radius_drift_rate)


def select_primary_body(
    position: np.ndarray, bodies: Sequence[PrimaryBody],
) -> PrimaryBody | None:
    """Body with the smallest distance/mass ratio, i.e. the dominant one."""
    best = None
    best_ratio = math.inf
    for body in bodies:
        ratio = float(np.linalg.norm(position - body.position)) / body.mass
        if ratio < best_ratio:
            best_ratio = ratio
            best = body
    return best


def detect_perturbation(
    position: np.ndarray, primary: PrimaryBody, bodies: Sequence[PrimaryBody],
) -> bool:
    """True when non-primary pull exceeds 10% of the primary's."""
    others = [b for b in bodies if b is not primary]
    if not others:
        return False
    primary_pull = float(np.linalg.norm(primary.gravity_acceleration(position)))
    total = np.zeros(2)
    for body in others:
        total += body.gravity_acceleration(position)
    return float(np.linalg.norm(total)) > PERTURBATION_FRACTION * primary_pull


def detect_resonance(
    period: float, primary: PrimaryBody, bodies: Sequence[PrimaryBody],
) -> bool:
    """True when period sits near a low-order ratio of another body's."""
    if not math.isfinite(period):
        return False
    for body in bodies:
        if body is primary:
            continue
        distance = float(np.linalg.norm(body.position - primary.position))
        other_period = orbital_period(distance, primary.mu)
        if distance <= 0.0 or not math.isfinite(other_period):
            continue
        ratio = period / other_period
        if any(abs(ratio - r) < RESONANCE_TOLERANCE for r in RESONANCE_RATIOS):
            return True
    return False


def analyze_drift(
    current: OrbitalElements,
    target: OrbitalElements,
    config: StationKeepingConfig,
    mu: float,
    time_since_correction: float = 0.0,
    position: np.ndarray | None = None,
    primary: PrimaryBody | None = None,
    bodies: Sequence[PrimaryBody] = (),
) -> DriftAnalysis:
    """
    Score the drift of current from target.

    An unbound current orbit (infinite semi-major axis) yields infinite
    radius drift and therefore always requires action.

    Args:
        current: Latest measured elements.
        target: Assigned elements.
        config: Effective station-keeping config (tolerances, thresholds).
        mu: Gravitational parameter of the primary.
        time_since_correction: Seconds since the last completed correction.
        position: Absolute orbiter position, for the diagnostic flags.
        primary: The dominant body, for the diagnostic flags.
        bodies: All nearby bodies, for the diagnostic flags.

    Returns:
        DriftAnalysis.
    """
    if current.is_bound:
        radius_drift = current.semi_major_axis - target.semi_major_axis
        apoapsis_drift = current.apoapsis - target.apoapsis
        periapsis_drift = current.periapsis - target.periapsis
    else:
        radius_drift = math.inf
        apoapsis_drift = math.inf
        periapsis_drift = math.inf
    eccentricity_drift = current.eccentricity - target.eccentricity
    inclination_drift = current.inclination - target.inclination

    elapsed = max(1.0, time_since_correction)
    radius_rate = radius_drift / elapsed
    current_period = current.period(mu)
    period_drift = current_period - target.period(mu) if current.is_bound else math.inf

    severity, component = drift_severity(
        radius_drift, eccentricity_drift, inclination_drift, config,
    )

    perturbed = False
    resonant = False
    if position is not None and primary is not None:
        perturbed = detect_perturbation(position, primary, bodies)
        resonant = detect_resonance(current_period, primary, bodies)

    return DriftAnalysis(
        radius_drift=radius_drift,
        eccentricity_drift=eccentricity_drift,
        inclination_drift=inclination_drift,
        radius_drift_rate=radius_rate,
        eccentricity_drift_rate=eccentricity_drift / elapsed,
        inclination_drift_rate=inclination_drift / elapsed,
        period_drift=period_drift,
        apoapsis_drift=apoapsis_drift,
        periapsis_drift=periapsis_drift,
        severity=severity,
        requires_action=severity > 1.0,
        requires_immediate_action=severity > config.emergency_threshold,
        time_to_decay=predict_time_to_decay(
            current.semi_major_axis, radius_rate, config.safe_altitude,
        ),
        most_critical=component,
        gravitational_perturbation=perturbed,
        resonance=resonant,
        period_out_of_tolerance=abs(period_drift) > config.period_tolerance,
    )
