# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Plain-data conversion for persistence and replication.

Every entity converts to and from a dict of JSON-compatible values.
Vectors become two-element lists, enums their values and capability
flags a sorted list of member names. The replication snapshot is the
flat subset a remote peer needs to mirror an orbiter.

No external dependencies — only stdlib and numpy.
"""
import math
from dataclasses import dataclass
from typing import Any

import numpy as np

from orbitkeep.domain.bodies import Capability, PrimaryBody, Vehicle
from orbitkeep.domain.orbital_mechanics import OrbitalElements, as_vector
from orbitkeep.domain.orbiter import Orbiter, OrbiterStatus


def _vector(values: Any, name: str) -> np.ndarray:
    try:
        return as_vector(values)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a pair of numbers, got {values!r}") from exc


def _require(data: dict[str, Any], key: str, kind: str) -> Any:
    if key not in data:
        raise ValueError(f"{kind} is missing required key '{key}'")
    return data[key]


# ── Capabilities ──

def capabilities_to_list(capabilities: Capability) -> list[str]:
    return sorted(
        member.name for member in Capability
        if member is not Capability.NONE and member in capabilities
    )


def capabilities_from_list(names: list[str]) -> Capability:
    result = Capability.NONE
    for name in names:
        try:
            result |= Capability[name]
        except KeyError:
            raise ValueError(f"unknown capability '{name}'") from None
    return result


# ── Orbital elements ──

def elements_to_dict(elements: OrbitalElements) -> dict[str, Any]:
    # JSON has no infinity; an unbound orbit is written as null.
    a = elements.semi_major_axis
    return {
        "semi_major_axis": a if math.isfinite(a) else None,
        "eccentricity": elements.eccentricity,
        "inclination": elements.inclination,
        "true_anomaly": elements.true_anomaly,
    }


def elements_from_dict(data: dict[str, Any]) -> OrbitalElements:
    a = _require(data, "semi_major_axis", "orbital elements")
    return OrbitalElements(
        semi_major_axis=math.inf if a is None else float(a),
        eccentricity=float(_require(data, "eccentricity", "orbital elements")),
        inclination=float(data.get("inclination", 0.0)),
        true_anomaly=float(data.get("true_anomaly", 0.0)),
    )


# ── Orbiters ──

def orbiter_to_dict(orbiter: Orbiter) -> dict[str, Any]:
    return {
        "orbiter_id": orbiter.orbiter_id,
        "name": orbiter.name,
        "position": orbiter.position.tolist(),
        "velocity": orbiter.velocity.tolist(),
        "current_fuel": orbiter.current_fuel,
        "maintenance_fuel_reserve": orbiter.maintenance_fuel_reserve,
        "base_mass": orbiter.base_mass,
        "max_mass": orbiter.max_mass,
        "max_fuel": orbiter.max_fuel,
        "maintenance_fraction": orbiter.maintenance_fraction,
        "reserve_cap": orbiter.reserve_cap,
        "status": orbiter.status.value,
        "owner_id": orbiter.owner_id,
        "maintenance_enabled": orbiter.maintenance_enabled,
        "orbit_accuracy": orbiter.orbit_accuracy,
        "target_orbit": (
            elements_to_dict(orbiter.target_orbit) if orbiter.target_orbit else None
        ),
        "last_known_orbit": (
            elements_to_dict(orbiter.last_known_orbit) if orbiter.last_known_orbit else None
        ),
    }


def orbiter_from_dict(data: dict[str, Any]) -> Orbiter:
    """Rebuild an orbiter. Raises ValueError on missing or malformed fields."""
    orbiter_id = int(_require(data, "orbiter_id", "orbiter"))
    try:
        status = OrbiterStatus(data.get("status", OrbiterStatus.ACTIVE.value))
    except ValueError:
        raise ValueError(f"unknown orbiter status {data.get('status')!r}") from None
    target = data.get("target_orbit")
    last = data.get("last_known_orbit")
    return Orbiter(
        orbiter_id=orbiter_id,
        name=data.get("name", f"SAT-{orbiter_id:03d}"),
        position=_vector(_require(data, "position", "orbiter"), "position"),
        velocity=_vector(_require(data, "velocity", "orbiter"), "velocity"),
        current_fuel=float(data.get("current_fuel", 60.0)),
        maintenance_fuel_reserve=data.get("maintenance_fuel_reserve"),
        base_mass=float(data.get("base_mass", 0.8)),
        max_mass=float(data.get("max_mass", 80.0)),
        max_fuel=float(data.get("max_fuel", 80.0)),
        maintenance_fraction=float(data.get("maintenance_fraction", 0.2)),
        reserve_cap=float(data.get("reserve_cap", 5.0)),
        status=status,
        owner_id=int(data.get("owner_id", 0)),
        maintenance_enabled=bool(data.get("maintenance_enabled", True)),
        orbit_accuracy=float(data.get("orbit_accuracy", 100.0)),
        target_orbit=elements_from_dict(target) if target else None,
        last_known_orbit=elements_from_dict(last) if last else None,
    )


# ── Bodies and vehicles ──

def body_to_dict(body: PrimaryBody) -> dict[str, Any]:
    return {
        "name": body.name,
        "position": body.position.tolist(),
        "velocity": body.velocity.tolist(),
        "mass": body.mass,
        "radius": body.radius,
        "collection_range": body.collection_range,
        "min_collectable_mass": body.min_collectable_mass,
        "capabilities": capabilities_to_list(body.capabilities),
    }


def body_from_dict(data: dict[str, Any]) -> PrimaryBody:
    kwargs = {}
    if "capabilities" in data:
        kwargs["capabilities"] = capabilities_from_list(data["capabilities"])
    return PrimaryBody(
        name=str(_require(data, "name", "body")),
        position=_vector(_require(data, "position", "body"), "position"),
        velocity=_vector(data.get("velocity", (0.0, 0.0)), "velocity"),
        mass=float(_require(data, "mass", "body")),
        radius=float(_require(data, "radius", "body")),
        collection_range=float(data.get("collection_range", 250.0)),
        min_collectable_mass=float(data.get("min_collectable_mass", 50.0)),
        **kwargs,
    )


def vehicle_to_dict(vehicle: Vehicle) -> dict[str, Any]:
    return {
        "vehicle_id": vehicle.vehicle_id,
        "position": vehicle.position.tolist(),
        "current_fuel": vehicle.current_fuel,
        "max_fuel": vehicle.max_fuel,
    }


def vehicle_from_dict(data: dict[str, Any]) -> Vehicle:
    return Vehicle(
        vehicle_id=int(_require(data, "vehicle_id", "vehicle")),
        position=_vector(_require(data, "position", "vehicle"), "position"),
        current_fuel=float(data.get("current_fuel", 0.0)),
        max_fuel=float(_require(data, "max_fuel", "vehicle")),
    )


# ── Replication ──

@dataclass(frozen=True)
class OrbiterSnapshot:
    """Flat replicated view of one orbiter."""
    orbiter_id: int
    position: tuple[float, float]
    velocity: tuple[float, float]
    current_fuel: float
    maintenance_fuel_reserve: float
    orbit_accuracy: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "orbiter_id": self.orbiter_id,
            "position": list(self.position),
            "velocity": list(self.velocity),
            "current_fuel": self.current_fuel,
            "maintenance_fuel_reserve": self.maintenance_fuel_reserve,
            "orbit_accuracy": self.orbit_accuracy,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrbiterSnapshot":
        position = _vector(_require(data, "position", "snapshot"), "position")
        velocity = _vector(_require(data, "velocity", "snapshot"), "velocity")
        return cls(
            orbiter_id=int(_require(data, "orbiter_id", "snapshot")),
            position=(float(position[0]), float(position[1])),
            velocity=(float(velocity[0]), float(velocity[1])),
            current_fuel=float(_require(data, "current_fuel", "snapshot")),
            maintenance_fuel_reserve=float(data.get("maintenance_fuel_reserve", 0.0)),
            orbit_accuracy=float(data.get("orbit_accuracy", 100.0)),
        )


def snapshot(orbiter: Orbiter) -> OrbiterSnapshot:
    return OrbiterSnapshot(
        orbiter_id=orbiter.orbiter_id,
        position=(float(orbiter.position[0]), float(orbiter.position[1])),
        velocity=(float(orbiter.velocity[0]), float(orbiter.velocity[1])),
        current_fuel=orbiter.current_fuel,
        maintenance_fuel_reserve=orbiter.maintenance_fuel_reserve,
        orbit_accuracy=orbiter.orbit_accuracy,
    )


def apply_snapshot(orbiter: Orbiter, snap: OrbiterSnapshot) -> None:
    """Overwrite orbiter's replicated state. The reserve never exceeds the fuel."""
    if snap.orbiter_id != orbiter.orbiter_id:
        raise ValueError(
            f"snapshot for orbiter {snap.orbiter_id} applied to orbiter {orbiter.orbiter_id}"
        )
    orbiter.position = as_vector(snap.position)
    orbiter.velocity = as_vector(snap.velocity)
    orbiter.set_fuel(snap.current_fuel, snap.maintenance_fuel_reserve)
    orbiter.orbit_accuracy = snap.orbit_accuracy
