# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Fleet coordinator.

Owns the orbiter arena (integer id -> Orbiter), one maintenance
coordinator per orbiter and the fuel transfer network, and drives them
all from a single update(dt). Bodies and vehicles belong to the host
simulation and are handed in fresh each tick.

Per tick: propagate, station-keep, collect from bodies, supply docked
vehicles, refresh statuses, then run the network over the operational
orbiters and raise emergency requests for critically low ones.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Iterable

import numpy as np

from orbitkeep.domain.bodies import PrimaryBody, Vehicle
from orbitkeep.domain.fuel_network import (
    EndpointKind,
    FuelTransferNetwork,
    NetworkConfig,
    OptimizationMode,
    TransferOutcome,
)
from orbitkeep.domain.orbit_maintenance import OrbitMaintenance
from orbitkeep.domain.orbital_mechanics import OrbitalElements, as_vector, elements_to_state
from orbitkeep.domain.orbiter import Orbiter, OrbiterStatus
from orbitkeep.domain.serialization import (
    OrbiterSnapshot,
    apply_snapshot,
    orbiter_from_dict,
    orbiter_to_dict,
    snapshot,
)
from orbitkeep.domain.station_keeping import (
    StationKeepingConfig,
    config_from_dict,
    config_to_dict,
)

logger = logging.getLogger(__name__)

MIN_VEHICLE_TRANSFER = 0.1
SHUTDOWN_MIN_SPARE = 5.0
SHUTDOWN_DONATION_FRACTION = 0.8
EMERGENCY_REQUEST_FRACTION = 0.3


@dataclass(frozen=True)
class FleetConfig:
    """Fleet-level settings plus the nested maintenance and network configs."""
    station_keeping: StationKeepingConfig = field(default_factory=StationKeepingConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    initial_fuel: float = 60.0
    max_fuel: float = 80.0
    base_mass: float = 0.8
    max_mass: float = 80.0
    auto_maintenance: bool = True
    auto_collection: bool = True
    auto_vehicle_supply: bool = True
    auto_optimization: bool = True
    optimization_mode: OptimizationMode = OptimizationMode.BALANCED
    optimization_interval: float = 2.0
    shutdown_distance: float = 1000.0
    stats_interval: float = 1.0

    def __post_init__(self) -> None:
        if self.max_fuel <= 0:
            raise ValueError(f"max_fuel must be positive, got {self.max_fuel}")
        if not 0.0 <= self.initial_fuel <= self.max_fuel:
            raise ValueError(
                f"initial_fuel must be in [0, {self.max_fuel}], got {self.initial_fuel}"
            )
        if self.optimization_interval <= 0 or self.stats_interval <= 0:
            raise ValueError("optimization_interval and stats_interval must be positive")


def fleet_config_from_dict(data: dict[str, Any] | None) -> FleetConfig:
    """Build a FleetConfig from plain data with nested config sections.

    Raises:
        ValueError: On unknown keys at any level or an unknown optimization mode.
    """
    data = dict(data or {})
    if "station_keeping" in data:
        data["station_keeping"] = config_from_dict(
            StationKeepingConfig, data["station_keeping"],
        )
    if "network" in data:
        data["network"] = config_from_dict(NetworkConfig, data["network"])
    if "optimization_mode" in data:
        try:
            data["optimization_mode"] = OptimizationMode(data["optimization_mode"])
        except ValueError:
            raise ValueError(
                f"unknown optimization mode {data['optimization_mode']!r}"
            ) from None
    return config_from_dict(FleetConfig, data)


def fleet_config_to_dict(config: FleetConfig) -> dict[str, Any]:
    data = config_to_dict(config)
    data["station_keeping"] = config_to_dict(config.station_keeping)
    data["network"] = config_to_dict(config.network)
    data["optimization_mode"] = config.optimization_mode.value
    return data


@dataclass(frozen=True)
class FleetStats:
    """Fleet-wide aggregates for one stats window."""
    total_orbiters: int = 0
    active: int = 0
    low_fuel: int = 0
    critical_fuel: int = 0
    depleted: int = 0
    maintenance_mode: int = 0
    transfer_mode: int = 0
    total_fuel: float = 0.0
    total_reserved: float = 0.0
    total_available: float = 0.0
    average_orbit_accuracy: float = 0.0
    collection_rate: float = 0.0
    consumption_rate: float = 0.0
    transfer_rate: float = 0.0


def compute_fleet_stats(
    orbiters: Iterable[Orbiter],
    collected: float,
    consumed: float,
    transferred: float,
    window: float,
) -> FleetStats:
    orbiters = list(orbiters)
    counts = {status: 0 for status in OrbiterStatus}
    for orbiter in orbiters:
        counts[orbiter.status] += 1
    window = max(window, 1e-9)
    return FleetStats(
        total_orbiters=len(orbiters),
        active=counts[OrbiterStatus.ACTIVE],
        low_fuel=counts[OrbiterStatus.LOW_FUEL],
        critical_fuel=counts[OrbiterStatus.CRITICAL_FUEL],
        depleted=counts[OrbiterStatus.DEPLETED],
        maintenance_mode=counts[OrbiterStatus.MAINTENANCE_MODE],
        transfer_mode=counts[OrbiterStatus.TRANSFER_MODE],
        total_fuel=sum(o.current_fuel for o in orbiters),
        total_reserved=sum(o.maintenance_fuel_reserve for o in orbiters),
        total_available=sum(o.available_for_transfer for o in orbiters),
        average_orbit_accuracy=(
            sum(o.orbit_accuracy for o in orbiters) / len(orbiters) if orbiters else 0.0
        ),
        collection_rate=collected / window,
        consumption_rate=consumed / window,
        transfer_rate=transferred / window,
    )


class FleetCoordinator:
    """Owns every orbiter and drives maintenance and fuel logistics per tick."""

    def __init__(self, config: FleetConfig | None = None) -> None:
        self.config = config or FleetConfig()
        self.orbiters: dict[int, Orbiter] = {}
        self.maintenance: dict[int, OrbitMaintenance] = {}
        self.network = FuelTransferNetwork(self.config.network, self.config.optimization_mode)
        self.bodies: list[PrimaryBody] = []
        self.vehicles: list[Vehicle] = []
        self.stats = FleetStats()
        self.elapsed = 0.0
        self._next_id = 1
        self._time_since_stats = 0.0
        self._time_since_optimization = 0.0
        self._collected = 0.0
        self._consumed = 0.0
        self._transferred_mark = 0.0

    # ── Arena ──

    def create_orbiter(
        self,
        position,
        velocity,
        fuel: float | None = None,
        owner_id: int = 0,
        name: str | None = None,
    ) -> Orbiter:
        """Deploy a new orbiter; its current orbit becomes the target orbit."""
        cfg = self.config
        orbiter_id = self._next_id
        self._next_id += 1
        orbiter = Orbiter(
            orbiter_id=orbiter_id,
            name=name or f"SAT-{orbiter_id:03d}",
            position=as_vector(position),
            velocity=as_vector(velocity),
            current_fuel=cfg.initial_fuel if fuel is None else fuel,
            base_mass=cfg.base_mass,
            max_mass=cfg.max_mass,
            max_fuel=cfg.max_fuel,
            owner_id=owner_id,
        )
        self._register(orbiter)
        self.maintenance[orbiter_id].set_target_from_current()
        logger.info("deployed %s at (%.1f, %.1f)", orbiter.name, *orbiter.position)
        return orbiter

    def deploy_in_orbit(
        self,
        body: PrimaryBody,
        elements: OrbitalElements,
        fuel: float | None = None,
        owner_id: int = 0,
    ) -> Orbiter:
        """Deploy an orbiter on the given orbit around body.

        Raises:
            ValueError: If the orbit is unbound.
        """
        rel_pos, rel_vel = elements_to_state(elements, body.mu)
        if all(b is not body for b in self.bodies):
            self.bodies.append(body)
        return self.create_orbiter(
            body.position + rel_pos, body.velocity + rel_vel, fuel=fuel, owner_id=owner_id,
        )

    def add_orbiter(self, orbiter: Orbiter) -> None:
        """Adopt an existing orbiter (e.g. one loaded from disk)."""
        if orbiter.orbiter_id in self.orbiters:
            raise ValueError(f"orbiter id {orbiter.orbiter_id} already in use")
        self._register(orbiter)
        self._next_id = max(self._next_id, orbiter.orbiter_id + 1)

    def _register(self, orbiter: Orbiter) -> None:
        self.orbiters[orbiter.orbiter_id] = orbiter
        self.maintenance[orbiter.orbiter_id] = OrbitMaintenance(
            orbiter, self.config.station_keeping, self.bodies,
        )
        self._refresh_status(orbiter)

    def remove_orbiter(self, orbiter_id: int) -> bool:
        orbiter = self.orbiters.pop(orbiter_id, None)
        if orbiter is None:
            return False
        self.maintenance.pop(orbiter_id, None)
        self.network.remove_orbiter(orbiter_id)
        logger.info("removed %s", orbiter.name)
        return True

    def get_orbiter(self, orbiter_id: int) -> Orbiter | None:
        return self.orbiters.get(orbiter_id)

    def orbiters_in_range(self, position, radius: float) -> list[Orbiter]:
        point = as_vector(position)
        return [
            o for o in self.orbiters.values()
            if float(np.linalg.norm(o.position - point)) <= radius
        ]

    def orbiters_by_status(self, status: OrbiterStatus) -> list[Orbiter]:
        return [o for o in self.orbiters.values() if o.status is status]

    def orbiters_by_owner(self, owner_id: int) -> list[Orbiter]:
        return [o for o in self.orbiters.values() if o.owner_id == owner_id]

    def operational_orbiters(self) -> dict[int, Orbiter]:
        return {oid: o for oid, o in self.orbiters.items() if o.is_operational}

    # ── Tick ──

    def update(
        self,
        dt: float,
        bodies: Iterable[PrimaryBody] | None = None,
        vehicles: Iterable[Vehicle] | None = None,
    ) -> None:
        """Advance the whole fleet by dt seconds."""
        if dt <= 0.0:
            return
        if bodies is not None:
            self.bodies = list(bodies)
        if vehicles is not None:
            self.vehicles = list(vehicles)
        cfg = self.config
        self.elapsed += dt

        for orbiter in self.orbiters.values():
            orbiter.propagate(self.bodies, dt)

        if cfg.auto_maintenance:
            for maintenance in self.maintenance.values():
                maintenance.set_bodies(self.bodies)
                before = maintenance.executor.total_fuel_consumed
                maintenance.update(dt)
                self._consumed += maintenance.executor.total_fuel_consumed - before

        if cfg.auto_collection:
            self.collect_fuel(dt)
        if cfg.auto_vehicle_supply:
            self.supply_vehicles(dt)

        for orbiter in self.orbiters.values():
            self._refresh_status(orbiter)

        self.network.update(dt, self.operational_orbiters(), self.bodies, self.vehicles)
        self._mark_transferring()

        if cfg.auto_optimization:
            self._time_since_optimization += dt
            if self._time_since_optimization >= cfg.optimization_interval:
                self.network.optimize()
                self._time_since_optimization = 0.0

        for orbiter in self.orbiters_by_status(OrbiterStatus.CRITICAL_FUEL):
            self.network.request_emergency_transfer(
                orbiter.orbiter_id, orbiter.max_fuel * EMERGENCY_REQUEST_FRACTION,
            )

        self._time_since_stats += dt
        if self._time_since_stats >= cfg.stats_interval:
            self.refresh_stats()

    def _refresh_status(self, orbiter: Orbiter) -> OrbiterStatus:
        net = self.config.network
        return orbiter.refresh_status(net.emergency_fuel_fraction, net.critical_fuel_fraction)

    def _mark_transferring(self) -> None:
        busy = set()
        for request in self.network.active:
            for endpoint in (request.source, request.destination):
                if endpoint.kind is EndpointKind.ORBITER:
                    busy.add(endpoint.key)
        for oid, orbiter in self.orbiters.items():
            orbiter.is_transferring = oid in busy

    # ── Fuel logistics ──

    def collect_fuel(self, dt: float) -> float:
        """Let each orbiter draw fuel from the first body in collection range."""
        rate = self.config.network.collection_rate
        total = 0.0
        for orbiter in self.orbiters.values():
            orbiter.is_collecting = False
            if not orbiter.is_operational or orbiter.capacity <= 0.0:
                continue
            for body in self.bodies:
                if body.collectable_fuel <= 0.0 or not body.in_collection_range(orbiter.position):
                    continue
                amount = min(rate * dt, orbiter.capacity, body.collectable_fuel)
                accepted = orbiter.add_fuel(body.donate(amount))
                orbiter.collected_total += accepted
                orbiter.is_collecting = accepted > 0.0
                total += accepted
                break
        if total > 0.0:
            self._collected += total
            self.network.record_flow("body", total)
        return total

    def supply_vehicles(self, dt: float) -> float:
        """Hand spare fuel to vehicles in docking range, split by their demand."""
        net = self.config.network
        total = 0.0
        for orbiter in self.orbiters.values():
            if not orbiter.is_operational or orbiter.available_for_transfer < MIN_VEHICLE_TRANSFER:
                continue
            docked = [
                v for v in self.vehicles
                if v.capacity > 0.0
                and float(np.linalg.norm(v.position - orbiter.position)) <= net.docking_range
            ]
            if not docked:
                continue
            demand = sum(v.capacity for v in docked)
            budget = min(net.vehicle_transfer_rate * dt, orbiter.available_for_transfer)
            for vehicle in docked:
                share = min(budget * vehicle.capacity / demand, vehicle.capacity)
                if share < MIN_VEHICLE_TRANSFER:
                    continue
                given = orbiter.withdraw_transferable(share)
                total += vehicle.add_fuel(given)
        if total > 0.0:
            self.network.record_flow("vehicle", total)
        return total

    def request_transfer(
        self, source_id: int, destination_id: int, amount: float, priority: int = 5,
    ) -> TransferOutcome:
        """Queue an orbiter-to-orbiter transfer on the network."""
        return self.network.request_transfer(source_id, destination_id, amount, priority)

    def request_emergency_fuel(self, orbiter_id: int, amount: float | None = None) -> TransferOutcome:
        orbiter = self.orbiters.get(orbiter_id)
        if orbiter is None:
            return TransferOutcome.INVALID_REQUEST
        if amount is None:
            amount = orbiter.max_fuel * EMERGENCY_REQUEST_FRACTION
        return self.network.request_emergency_transfer(orbiter_id, amount)

    def direct_transfer(self, source_id: int, destination_id: int, amount: float) -> float:
        """Move fuel between two orbiters at once, bypassing the queue.

        Both must be within transfer range. Only the source's spare fuel is
        touched; whatever the destination cannot hold stays with the source.

        Returns:
            Fuel actually received by the destination.
        """
        source = self.orbiters.get(source_id)
        destination = self.orbiters.get(destination_id)
        if source is None or destination is None or source is destination or amount <= 0.0:
            return 0.0
        distance = float(np.linalg.norm(source.position - destination.position))
        if distance > self.config.network.max_transfer_range:
            return 0.0
        given = source.withdraw_transferable(min(amount, destination.capacity))
        received = destination.add_fuel(given)
        if received > 0.0:
            logger.info(
                "direct transfer %.2f from %s to %s", received, source.name, destination.name,
            )
        return received

    def shutdown_non_essential_orbiters(self) -> list[int]:
        """Suspend station-keeping on active orbiters far from every body.

        Each one hands 80% of its spare fuel to the first critically low
        orbiter, if it has more than a small margin to give.

        Returns:
            Ids of the orbiters shut down.
        """
        if not self.bodies:
            return []
        shut_down = []
        for orbiter in list(self.orbiters.values()):
            if orbiter.status is not OrbiterStatus.ACTIVE:
                continue
            nearest = self.nearest_body_distance(orbiter.orbiter_id)
            if nearest <= self.config.shutdown_distance:
                continue
            if orbiter.available_for_transfer > SHUTDOWN_MIN_SPARE:
                recipient = next(
                    (o for o in self.orbiters_by_status(OrbiterStatus.CRITICAL_FUEL)
                     if o is not orbiter),
                    None,
                )
                if recipient is not None:
                    given = orbiter.withdraw_transferable(
                        min(orbiter.available_for_transfer * SHUTDOWN_DONATION_FRACTION,
                            recipient.capacity),
                    )
                    recipient.add_fuel(given)
                    logger.info(
                        "%s donated %.2f to %s before shutdown",
                        orbiter.name, given, recipient.name,
                    )
            maintenance = self.maintenance.get(orbiter.orbiter_id)
            if maintenance is not None:
                maintenance.abort_active_maneuver()
                maintenance.clear_planned_maneuvers()
            orbiter.maintenance_enabled = False
            shut_down.append(orbiter.orbiter_id)
            logger.warning(
                "%s shut down: %.0f from nearest body", orbiter.name, nearest,
            )
        return shut_down

    def restart_operations(self) -> None:
        for orbiter in self.orbiters.values():
            orbiter.maintenance_enabled = True
        logger.info("fleet operations restarted")

    def set_optimization_mode(self, mode: OptimizationMode) -> None:
        self.network.mode = mode

    # ── Statistics and reporting ──

    def refresh_stats(self) -> FleetStats:
        self.stats = compute_fleet_stats(
            self.orbiters.values(),
            collected=self._collected,
            consumed=self._consumed,
            transferred=self._network_transferred() - self._transferred_mark,
            window=self._time_since_stats,
        )
        self._collected = 0.0
        self._consumed = 0.0
        self._transferred_mark = self._network_transferred()
        self._time_since_stats = 0.0
        return self.stats

    def _network_transferred(self) -> float:
        moved = self.network.total_moved
        return moved.get("orbiter", 0.0) + moved.get("vehicle", 0.0)

    def is_healthy(self) -> bool:
        return self.network.is_healthy()

    def average_fuel_level(self) -> float:
        return self.network.average_fuel_level()

    def underperforming_orbiters(self) -> list[int]:
        return self.network.underperforming_orbiters()

    def status_report(self) -> list[str]:
        stats = self.stats
        net = self.network.stats
        lines = [
            "=== FLEET STATUS ===",
            f"Elapsed: {self.elapsed:.1f} s",
            f"Orbiters: {len(self.orbiters)} "
            f"(active {stats.active}, low {stats.low_fuel}, "
            f"critical {stats.critical_fuel}, depleted {stats.depleted})",
            f"Fuel: total {stats.total_fuel:.1f}, reserved {stats.total_reserved:.1f}, "
            f"available {stats.total_available:.1f}",
            f"Average orbit accuracy: {stats.average_orbit_accuracy:.1f}%",
            f"Collection rate: {stats.collection_rate:.2f}/s",
            f"Consumption rate: {stats.consumption_rate:.2f}/s",
            "",
            "--- NETWORK ---",
            f"Mode: {self.network.mode.value}",
            f"Active connections: {net.active_connections}",
            f"Average link efficiency: {net.average_efficiency * 100.0:.1f}%",
            f"Transfers: {len(self.network.active)} active, "
            f"{len(self.network.queue)} queued, "
            f"{self.network.completed_count} completed, "
            f"{self.network.failed_count} failed",
            f"Healthy: {'yes' if self.is_healthy() else 'no'}",
        ]
        weak = self.underperforming_orbiters()
        if weak:
            names = ", ".join(self.orbiters[oid].name for oid in weak if oid in self.orbiters)
            lines.append(f"Underperforming: {names}")
        return lines

    # ── Replication and persistence ──

    def snapshots(self) -> list[OrbiterSnapshot]:
        return [snapshot(o) for _, o in sorted(self.orbiters.items())]

    def apply_snapshot(self, snap: OrbiterSnapshot) -> bool:
        orbiter = self.orbiters.get(snap.orbiter_id)
        if orbiter is None:
            logger.debug("snapshot for unknown orbiter %d ignored", snap.orbiter_id)
            return False
        apply_snapshot(orbiter, snap)
        self._refresh_status(orbiter)
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "elapsed": self.elapsed,
            "orbiters": [orbiter_to_dict(o) for _, o in sorted(self.orbiters.items())],
        }

    def load_orbiters(self, records: Iterable[dict[str, Any]]) -> None:
        for record in records:
            self.add_orbiter(orbiter_from_dict(record))

    def nearest_body_distance(self, orbiter_id: int) -> float:
        orbiter = self.orbiters.get(orbiter_id)
        if orbiter is None or not self.bodies:
            return math.inf
        return min(
            float(np.linalg.norm(orbiter.position - body.position)) for body in self.bodies
        )
