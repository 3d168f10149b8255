# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Orbital mechanics functions.

Pure conversions between planar state vectors and classical orbital
elements, plus the vis-viva helpers the station-keeping loop relies on.
No external dependencies — only stdlib math and numpy.
"""
import math
from dataclasses import dataclass

import numpy as np


# The simulation is two-dimensional: every orbit lies in one plane and
# the converter reports inclination 0.
PLANAR_MODEL = True


@dataclass(frozen=True)
class _OrbitalConstants:
    """Simulation constants (host simulation units, not SI)."""
    G: float = 100.0                  # gravitational constant
    G0: float = 9.81                  # standard gravity for thrust-to-weight
    CIRCULAR_E_THRESHOLD: float = 0.001  # below this, orbit treated as circular


OrbitalConstants: _OrbitalConstants = _OrbitalConstants()


@dataclass(frozen=True)
class OrbitalElements:
    """Classical orbital elements of a planar orbit.

    A semi-major axis of +inf marks an unbound (escape) or degenerate
    trajectory; callers treat it as "requires correction".
    """
    semi_major_axis: float
    eccentricity: float
    inclination: float = 0.0
    true_anomaly: float = 0.0

    @property
    def is_bound(self) -> bool:
        return math.isfinite(self.semi_major_axis) and self.semi_major_axis > 0

    @property
    def apoapsis(self) -> float:
        return self.semi_major_axis * (1.0 + self.eccentricity)

    @property
    def periapsis(self) -> float:
        return self.semi_major_axis * (1.0 - self.eccentricity)

    def period(self, mu: float) -> float:
        """Orbital period for gravitational parameter mu."""
        return orbital_period(self.semi_major_axis, mu)


def gravitational_parameter(mass: float) -> float:
    """mu = G * M in simulation units."""
    return OrbitalConstants.G * mass


def as_vector(values) -> np.ndarray:
    """Coerce a 2-sequence to a float numpy vector."""
    vec = np.asarray(values, dtype=float)
    if vec.shape != (2,):
        raise ValueError(f"expected a planar 2-vector, got shape {vec.shape}")
    return vec


def unit_vector(vec: np.ndarray) -> np.ndarray:
    """Normalized copy of vec; the zero vector maps to itself."""
    norm = float(np.linalg.norm(vec))
    if norm <= 0.0:
        return np.zeros(2)
    return vec / norm


def orbital_period(semi_major_axis: float, mu: float) -> float:
    """T = 2π √(a³/μ). Unbound orbits have infinite period."""
    if not math.isfinite(semi_major_axis) or semi_major_axis <= 0:
        return math.inf
    return 2.0 * math.pi * math.sqrt(semi_major_axis ** 3 / mu)


def circular_velocity(radius: float, mu: float) -> float:
    """Circular orbit speed v = √(μ/r)."""
    return math.sqrt(mu / radius)


def escape_velocity(radius: float, mu: float) -> float:
    """Escape speed v = √(2μ/r)."""
    return math.sqrt(2.0 * mu / radius)


def vis_viva_speed(radius: float, semi_major_axis: float, mu: float) -> float:
    """Orbital speed from the vis-viva equation v = √(μ(2/r − 1/a)).

    Negative radicands (radius beyond apoapsis of the requested orbit)
    clamp to zero.
    """
    inv_a = 0.0 if not math.isfinite(semi_major_axis) else 1.0 / semi_major_axis
    return math.sqrt(max(0.0, mu * (2.0 / radius - inv_a)))


def state_to_elements(position, velocity, mu: float) -> OrbitalElements:
    """
    Convert a planar state vector relative to a primary into orbital elements.

    Args:
        position: Position relative to the primary [x, y].
        velocity: Velocity relative to the primary [vx, vy].
        mu: Gravitational parameter of the primary (G * M).

    Returns:
        OrbitalElements. Escape trajectories (specific energy >= 0) carry a
        semi-major axis of +inf.

    Raises:
        ValueError: If the position coincides with the primary (r = 0) or
            mu is not positive.
    """
    r_vec = as_vector(position)
    v_vec = as_vector(velocity)
    r = float(np.linalg.norm(r_vec))
    if r <= 0.0:
        raise ValueError("position must not coincide with the primary (r = 0)")
    if mu <= 0.0:
        raise ValueError(f"mu must be positive, got {mu}")

    v_sq = float(v_vec @ v_vec)
    energy = 0.5 * v_sq - mu / r
    if energy < 0.0:
        a = -mu / (2.0 * energy)
    else:
        a = math.inf

    r_dot_v = float(r_vec @ v_vec)
    e_vec = (v_sq * r_vec - r_dot_v * v_vec) / mu - r_vec / r
    e = float(np.linalg.norm(e_vec))

    if e > OrbitalConstants.CIRCULAR_E_THRESHOLD:
        cos_nu = float(e_vec @ r_vec) / (e * r)
        nu = math.acos(min(1.0, max(-1.0, cos_nu)))
        if r_dot_v < 0.0:
            nu = 2.0 * math.pi - nu
    else:
        # No periapsis direction for a circle: measure from +x.
        nu = math.atan2(float(r_vec[1]), float(r_vec[0])) % (2.0 * math.pi)

    return OrbitalElements(
        semi_major_axis=a,
        eccentricity=e,
        inclination=0.0,
        true_anomaly=nu,
    )


def elements_to_state(
    elements: OrbitalElements, mu: float,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Convert orbital elements back to a planar state in the perifocal frame.

    Periapsis lies along +x; motion is counter-clockwise.

    Args:
        elements: Bound orbital elements.
        mu: Gravitational parameter of the primary.

    Returns:
        (position, velocity) as numpy 2-vectors.

    Raises:
        ValueError: If the orbit is unbound.
    """
    if not elements.is_bound or elements.eccentricity >= 1.0:
        raise ValueError("cannot build a state vector for an unbound orbit")

    a = elements.semi_major_axis
    e = elements.eccentricity
    nu = elements.true_anomaly
    p = a * (1.0 - e ** 2)

    radius = p / (1.0 + e * math.cos(nu))
    position = np.array([radius * math.cos(nu), radius * math.sin(nu)])

    h_factor = math.sqrt(mu / p)
    velocity = np.array([
        -h_factor * math.sin(nu),
        h_factor * (e + math.cos(nu)),
    ])
    return position, velocity
