# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Primary bodies and piloted vehicles seen by the fleet.

Both are external collaborators: the host simulation owns them and hands
fresh references in each tick. Each kind advertises a capability set so
the transfer network only asks what an endpoint can do, never what it is.
"""
import enum
from dataclasses import dataclass, field

import numpy as np

from orbitkeep.domain.orbital_mechanics import as_vector, gravitational_parameter


class Capability(enum.Flag):
    """What a participant in the fuel economy can do."""
    NONE = 0
    FUEL_SOURCE = enum.auto()
    FUEL_SINK = enum.auto()
    GRAVITY_SOURCE = enum.auto()


@dataclass
class PrimaryBody:
    """A massive body orbiters circle and collect fuel from."""
    name: str
    position: np.ndarray
    velocity: np.ndarray
    mass: float
    radius: float
    collection_range: float = 250.0      # surface distance for fuel collection
    min_collectable_mass: float = 50.0   # mass floor fuel collection stops at
    capabilities: Capability = field(
        default=Capability.GRAVITY_SOURCE | Capability.FUEL_SOURCE,
    )

    def __post_init__(self) -> None:
        self.position = as_vector(self.position)
        self.velocity = as_vector(self.velocity)
        if self.mass <= 0:
            raise ValueError(f"mass must be positive, got {self.mass}")
        if self.radius < 0:
            raise ValueError(f"radius must be non-negative, got {self.radius}")

    @property
    def mu(self) -> float:
        return gravitational_parameter(self.mass)

    @property
    def collectable_fuel(self) -> float:
        if not self.capabilities & Capability.FUEL_SOURCE:
            return 0.0
        return max(0.0, self.mass - self.min_collectable_mass)

    def surface_distance(self, point: np.ndarray) -> float:
        return float(np.linalg.norm(point - self.position)) - self.radius

    def in_collection_range(self, point: np.ndarray) -> bool:
        return self.surface_distance(point) <= self.collection_range

    def gravity_acceleration(self, point: np.ndarray) -> np.ndarray:
        """Acceleration this body imparts at point; zero at its centre."""
        offset = self.position - point
        dist = float(np.linalg.norm(offset))
        if dist <= 0.0:
            return np.zeros(2)
        return offset / dist * (self.mu / dist ** 2)

    def donate(self, amount: float) -> float:
        """Give up to amount of mass as fuel. Returns what was given."""
        given = min(max(0.0, amount), self.collectable_fuel)
        self.mass -= given
        return given


@dataclass
class Vehicle:
    """A piloted vehicle that can receive fuel from the fleet."""
    vehicle_id: int
    position: np.ndarray
    current_fuel: float
    max_fuel: float
    capabilities: Capability = field(default=Capability.FUEL_SINK)

    def __post_init__(self) -> None:
        self.position = as_vector(self.position)
        if self.max_fuel <= 0:
            raise ValueError(f"max_fuel must be positive, got {self.max_fuel}")
        self.current_fuel = min(max(0.0, self.current_fuel), self.max_fuel)

    @property
    def capacity(self) -> float:
        return self.max_fuel - self.current_fuel

    def add_fuel(self, amount: float) -> float:
        """Accept up to amount. Returns what was accepted."""
        accepted = min(max(0.0, amount), self.capacity)
        self.current_fuel += accepted
        return accepted
