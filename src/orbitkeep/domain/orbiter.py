# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Orbiter entity and its fuel ledger.

An orbiter splits its tank into a maintenance reserve, spent only on
station-keeping burns, and the remainder that the transfer network may
move. The reserve is stored rather than recomputed so that transfers can
never eat into it: withdrawals draw only on the transferable part, and
incoming fuel tops the reserve back up towards its target first.

No external dependencies — only stdlib math and numpy.
"""
import enum
import logging
from dataclasses import dataclass, field

import numpy as np

from orbitkeep.domain.bodies import PrimaryBody
from orbitkeep.domain.orbital_mechanics import OrbitalElements, as_vector

logger = logging.getLogger(__name__)

# Gravity is ignored this close to a body's surface.
COLLISION_MARGIN = 10.0


class OrbiterStatus(enum.Enum):
    ACTIVE = "active"
    LOW_FUEL = "low_fuel"
    CRITICAL_FUEL = "critical_fuel"
    DEPLETED = "depleted"
    MAINTENANCE_MODE = "maintenance_mode"
    TRANSFER_MODE = "transfer_mode"


@dataclass
class Orbiter:
    """An autonomous orbital platform."""
    orbiter_id: int
    name: str
    position: np.ndarray
    velocity: np.ndarray
    current_fuel: float = 60.0
    base_mass: float = 0.8
    max_mass: float = 80.0
    max_fuel: float = 80.0
    maintenance_fraction: float = 0.2
    reserve_cap: float = 5.0
    maintenance_fuel_reserve: float | None = None
    target_orbit: OrbitalElements | None = None
    last_known_orbit: OrbitalElements | None = None
    status: OrbiterStatus = OrbiterStatus.ACTIVE
    owner_id: int = 0
    maintenance_enabled: bool = True
    orbit_accuracy: float = 100.0
    primary_body: str | None = None
    is_collecting: bool = False
    is_transferring: bool = False
    needs_correction: bool = False
    collected_total: float = field(default=0.0, repr=False)

    def __post_init__(self) -> None:
        self.position = as_vector(self.position)
        self.velocity = as_vector(self.velocity)
        if self.max_fuel <= 0:
            raise ValueError(f"max_fuel must be positive, got {self.max_fuel}")
        if self.base_mass <= 0:
            raise ValueError(f"base_mass must be positive, got {self.base_mass}")
        if not 0.0 <= self.maintenance_fraction <= 1.0:
            raise ValueError(
                f"maintenance_fraction must be in [0, 1], got {self.maintenance_fraction}"
            )
        self.current_fuel = min(max(0.0, self.current_fuel), self.max_fuel)
        if self.maintenance_fuel_reserve is None:
            self.maintenance_fuel_reserve = min(
                self.current_fuel * self.maintenance_fraction, self.reserve_target,
            )
        self.maintenance_fuel_reserve = min(
            max(0.0, self.maintenance_fuel_reserve), self.current_fuel,
        )

    # ── Derived quantities ──

    @property
    def mass(self) -> float:
        return min(self.base_mass + self.current_fuel, self.max_mass)

    @property
    def reserve_target(self) -> float:
        """Reserve level the orbiter refills towards."""
        return min(self.max_fuel * self.maintenance_fraction, self.reserve_cap)

    @property
    def available_for_transfer(self) -> float:
        return max(0.0, self.current_fuel - self.maintenance_fuel_reserve)

    @property
    def capacity(self) -> float:
        return self.max_fuel - self.current_fuel

    @property
    def fuel_fraction(self) -> float:
        return self.current_fuel / self.max_fuel

    @property
    def is_operational(self) -> bool:
        return self.status is not OrbiterStatus.DEPLETED

    @property
    def can_perform_maintenance(self) -> bool:
        return self.maintenance_fuel_reserve > 0.0 and self.is_operational

    # ── Fuel ledger ──

    def add_fuel(self, amount: float) -> float:
        """Accept up to amount. Incoming fuel refills the reserve first.

        Returns:
            Fuel actually accepted.
        """
        accepted = min(max(0.0, amount), self.capacity)
        self.current_fuel += accepted
        refilled = min(
            self.reserve_target,
            self.maintenance_fuel_reserve + accepted,
            self.current_fuel,
        )
        self.maintenance_fuel_reserve = max(self.maintenance_fuel_reserve, refilled)
        return accepted

    def withdraw_transferable(self, amount: float) -> float:
        """Remove up to amount from the transferable part of the tank."""
        given = min(max(0.0, amount), self.available_for_transfer)
        self.current_fuel -= given
        return given

    def consume_maintenance_fuel(self, amount: float) -> float:
        """Burn up to amount from the maintenance reserve."""
        used = min(max(0.0, amount), self.maintenance_fuel_reserve)
        self.maintenance_fuel_reserve -= used
        self.current_fuel = max(0.0, self.current_fuel - used)
        return used

    def set_fuel(self, fuel: float, reserve: float | None = None) -> None:
        """Overwrite the tank (replication or load). Keeps reserve <= fuel."""
        self.current_fuel = min(max(0.0, fuel), self.max_fuel)
        if reserve is not None:
            self.maintenance_fuel_reserve = max(0.0, reserve)
        self.maintenance_fuel_reserve = min(
            self.maintenance_fuel_reserve, self.current_fuel,
        )

    def refresh_status(
        self, low_fraction: float = 0.1, critical_fraction: float = 0.05,
    ) -> OrbiterStatus:
        """Recompute status from fuel level and activity flags."""
        previous = self.status
        fraction = self.fuel_fraction
        if self.current_fuel <= 0.0:
            self.status = OrbiterStatus.DEPLETED
        elif fraction <= critical_fraction:
            self.status = OrbiterStatus.CRITICAL_FUEL
        elif fraction <= low_fraction:
            self.status = OrbiterStatus.LOW_FUEL
        elif self.needs_correction:
            self.status = OrbiterStatus.MAINTENANCE_MODE
        elif self.is_collecting or self.is_transferring:
            self.status = OrbiterStatus.TRANSFER_MODE
        else:
            self.status = OrbiterStatus.ACTIVE
        if self.status is not previous:
            logger.debug(
                "orbiter %d status %s -> %s",
                self.orbiter_id, previous.value, self.status.value,
            )
        return self.status

    # ── Motion ──

    def apply_delta_v(self, delta_v: np.ndarray) -> None:
        self.velocity = self.velocity + as_vector(delta_v)

    def propagate(self, bodies: list[PrimaryBody], dt: float) -> None:
        """Advance one semi-implicit Euler step under body gravity."""
        accel = np.zeros(2)
        for body in bodies:
            dist = float(np.linalg.norm(body.position - self.position))
            if dist > body.radius + COLLISION_MARGIN:
                accel += body.gravity_acceleration(self.position)
        self.velocity = self.velocity + accel * dt
        self.position = self.position + self.velocity * dt
