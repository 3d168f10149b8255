# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Station-keeping configuration and fuel-availability policy.

The configuration is immutable. Adjustments (low-fuel policy, priority,
decay minimisation, adaptive tuning) always derive a new config from a
base one, so they never compound across maintenance checks.

No external dependencies — only stdlib dataclasses.
"""
import enum
from dataclasses import dataclass, fields, replace
from typing import Any


@dataclass(frozen=True)
class StationKeepingConfig:
    """Tunables for one orbiter's maintenance loop."""
    orbit_tolerance_radius: float = 50.0
    eccentricity_tolerance: float = 0.01
    inclination_tolerance: float = 0.017   # ~1 degree in radians
    period_tolerance: float = 10.0         # seconds, diagnostic only
    max_single_burn: float = 5.0
    fuel_efficiency: float = 1.0           # delta-V per unit fuel
    thrust_to_weight: float = 0.1
    check_interval: float = 30.0           # seconds
    correction_delay: float = 5.0          # seconds
    emergency_threshold: float = 0.8
    multi_step_threshold: float = 2.0
    safe_altitude: float = 100.0
    prefer_small_frequent_burns: bool = True   # split large corrections
    prioritize_circular_orbit: bool = True
    prioritize_inclination: bool = False
    enable_predictive_corrections: bool = True  # gates adaptive_config

    def __post_init__(self) -> None:
        for name in (
            "orbit_tolerance_radius", "eccentricity_tolerance",
            "inclination_tolerance", "max_single_burn", "fuel_efficiency",
            "thrust_to_weight", "check_interval",
        ):
            value = getattr(self, name)
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")
        if self.correction_delay < 0:
            raise ValueError(
                f"correction_delay must be non-negative, got {self.correction_delay}"
            )
        if self.emergency_threshold <= 0:
            raise ValueError(
                f"emergency_threshold must be positive, got {self.emergency_threshold}"
            )


class FuelPolicy(enum.Enum):
    """Maintenance posture chosen from the current fuel fraction."""
    CONSERVATION = "conservation"
    NOMINAL = "nominal"
    PRECISION = "precision"


_CONSERVATION_BELOW = 0.2
_PRECISION_ABOVE = 0.8


def fuel_policy(fuel_fraction: float) -> FuelPolicy:
    if fuel_fraction < _CONSERVATION_BELOW:
        return FuelPolicy.CONSERVATION
    if fuel_fraction > _PRECISION_ABOVE:
        return FuelPolicy.PRECISION
    return FuelPolicy.NOMINAL


def effective_config(
    base: StationKeepingConfig, fuel_fraction: float,
) -> tuple[StationKeepingConfig, FuelPolicy]:
    """Derive the config to use at a given fuel fraction.

    Below 20% of capacity tolerances and check interval double and the
    burn cap halves; above 80% tolerances and check interval tighten to
    0.8x. Always computed from base.

    Args:
        base: The configured (unadjusted) settings.
        fuel_fraction: current_fuel / max_fuel in [0, 1].

    Returns:
        (config, policy) tuple.
    """
    policy = fuel_policy(fuel_fraction)
    if policy is FuelPolicy.CONSERVATION:
        config = replace(
            base,
            orbit_tolerance_radius=base.orbit_tolerance_radius * 2.0,
            eccentricity_tolerance=base.eccentricity_tolerance * 2.0,
            check_interval=base.check_interval * 2.0,
            max_single_burn=base.max_single_burn * 0.5,
            prefer_small_frequent_burns=True,
        )
    elif policy is FuelPolicy.PRECISION:
        config = replace(
            base,
            orbit_tolerance_radius=base.orbit_tolerance_radius * 0.8,
            eccentricity_tolerance=base.eccentricity_tolerance * 0.8,
            check_interval=base.check_interval * 0.8,
            prefer_small_frequent_burns=False,
        )
    else:
        config = base
    return config, policy


def with_priority(base: StationKeepingConfig, priority: float) -> StationKeepingConfig:
    """Scale tolerances and check interval by a priority in [0.1, 1].

    Higher priority means tighter tolerances and more frequent checks.
    """
    priority = min(max(priority, 0.1), 1.0)
    defaults = StationKeepingConfig()
    return replace(
        base,
        orbit_tolerance_radius=defaults.orbit_tolerance_radius / priority,
        eccentricity_tolerance=defaults.eccentricity_tolerance / priority,
        check_interval=defaults.check_interval / priority,
    )


def with_aggressiveness(base: StationKeepingConfig, level: float) -> StationKeepingConfig:
    """Like with_priority, but the level may exceed 1 (clamped to [0.1, 2])."""
    level = min(max(level, 0.1), 2.0)
    defaults = StationKeepingConfig()
    return replace(
        base,
        orbit_tolerance_radius=defaults.orbit_tolerance_radius / level,
        eccentricity_tolerance=defaults.eccentricity_tolerance / level,
        check_interval=defaults.check_interval / level,
    )


def decay_minimizing(base: StationKeepingConfig) -> StationKeepingConfig:
    """Last-resort settings: tolerances x3, check interval x5."""
    return replace(
        base,
        orbit_tolerance_radius=base.orbit_tolerance_radius * 3.0,
        eccentricity_tolerance=base.eccentricity_tolerance * 3.0,
        inclination_tolerance=base.inclination_tolerance * 3.0,
        check_interval=base.check_interval * 5.0,
    )


ADAPTIVE_MIN_CORRECTIONS = 5
_LOW_EFFICIENCY = 10.0
_HIGH_EFFICIENCY = 20.0
_HIGH_ACCURACY = 95.0


def adaptive_config(
    config: StationKeepingConfig,
    corrections: int,
    fuel_efficiency: float,
    accuracy: float,
    eccentricity_drift: float,
    radius_drift: float,
) -> StationKeepingConfig:
    """Tune a config from the orbiter's correction history.

    Only active with enable_predictive_corrections and after more than
    ADAPTIVE_MIN_CORRECTIONS completed corrections. Poor fuel efficiency
    (accuracy per unit fuel below 10) loosens tolerances by 1.1x and the
    check interval by 1.2x; high accuracy (>95%) at good efficiency (>20)
    tightens them to 0.9x and 0.8x. Circularisation is prioritised while
    eccentricity is the larger tolerance-normalised drift.

    Args:
        config: Config after the fuel policy has been applied.
        corrections: Completed corrections so far.
        fuel_efficiency: Orbit accuracy per unit of fuel consumed.
        accuracy: Current orbit accuracy in percent.
        eccentricity_drift: Latest eccentricity drift.
        radius_drift: Latest semi-major axis drift.

    Returns:
        New StationKeepingConfig, or config itself when not adapting.
    """
    if not config.enable_predictive_corrections or corrections <= ADAPTIVE_MIN_CORRECTIONS:
        return config

    if fuel_efficiency < _LOW_EFFICIENCY:
        tolerance_scale, interval_scale = 1.1, 1.2
    elif accuracy > _HIGH_ACCURACY and fuel_efficiency > _HIGH_EFFICIENCY:
        tolerance_scale, interval_scale = 0.9, 0.8
    else:
        tolerance_scale, interval_scale = 1.0, 1.0

    eccentricity_weight = abs(eccentricity_drift) / config.eccentricity_tolerance
    radius_weight = abs(radius_drift) / config.orbit_tolerance_radius
    return replace(
        config,
        orbit_tolerance_radius=config.orbit_tolerance_radius * tolerance_scale,
        eccentricity_tolerance=config.eccentricity_tolerance * tolerance_scale,
        check_interval=config.check_interval * interval_scale,
        prioritize_circular_orbit=eccentricity_weight > radius_weight,
    )


def config_from_dict(cls: type, data: dict[str, Any] | None):
    """Build a frozen config dataclass from a plain dict.

    Raises:
        ValueError: If data carries keys the dataclass does not define.
    """
    data = dict(data or {})
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"unknown {cls.__name__} keys: {', '.join(unknown)}")
    return cls(**data)


def config_to_dict(config) -> dict[str, Any]:
    return {f.name: getattr(config, f.name) for f in fields(config)}


def station_keeping_config_from_dict(data: dict[str, Any] | None) -> StationKeepingConfig:
    return config_from_dict(StationKeepingConfig, data)
