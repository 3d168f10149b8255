# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Fuel transfer network.

A proximity graph over the operational orbiters, rebuilt every tick from
the live orbiter mapping, plus a FIFO queue of transfer requests with
emergency requests spliced onto the front. The network only stores ids
and resolves them against the mapping it is handed each tick; it moves
fuel but never touches orbital state.

Endpoints are described by capability, not by class: a primary body is a
fuel source, a vehicle a fuel sink, an orbiter both.
"""
import enum
import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import Iterable, Mapping

import numpy as np

from orbitkeep.domain.bodies import Capability, PrimaryBody, Vehicle
from orbitkeep.domain.errors import TransferStateError
from orbitkeep.domain.orbiter import Orbiter, OrbiterStatus

logger = logging.getLogger(__name__)

COMPLETION_FRACTION = 0.99


# ── Configuration ──

@dataclass(frozen=True)
class NetworkConfig:
    """Deployment tunables for the transfer network."""
    max_transfer_range: float = 500.0
    base_transfer_rate: float = 5.0          # fuel units per second
    efficiency_floor: float = 0.8            # distance efficiency at max range
    alignment_floor: float = 0.3
    min_active_efficiency: float = 0.1
    max_simultaneous_transfers: int = 5
    emergency_fuel_fraction: float = 0.1
    critical_fuel_fraction: float = 0.05
    emergency_donor_min_fuel: float = 10.0
    balance_threshold: float = 5.0
    stats_interval: float = 1.0
    docking_range: float = 210.0
    collection_rate: float = 18.0            # body -> orbiter, units per second
    vehicle_transfer_rate: float = 25.0      # orbiter -> vehicle, units per second
    history_limit: int = 100

    def __post_init__(self) -> None:
        if self.max_transfer_range <= 0:
            raise ValueError(
                f"max_transfer_range must be positive, got {self.max_transfer_range}"
            )
        if self.base_transfer_rate <= 0:
            raise ValueError(
                f"base_transfer_rate must be positive, got {self.base_transfer_rate}"
            )
        if not 0.0 <= self.efficiency_floor <= 1.0:
            raise ValueError(
                f"efficiency_floor must be in [0, 1], got {self.efficiency_floor}"
            )
        if self.max_simultaneous_transfers < 1:
            raise ValueError(
                "max_simultaneous_transfers must be at least 1, "
                f"got {self.max_simultaneous_transfers}"
            )
        if not 0.0 <= self.critical_fuel_fraction <= self.emergency_fuel_fraction <= 1.0:
            raise ValueError(
                "fuel fractions must satisfy 0 <= critical <= emergency <= 1"
            )


class OptimizationMode(enum.Enum):
    BALANCED = "balanced"
    MAINTENANCE_FIRST = "maintenance_first"
    EMERGENCY_ONLY = "emergency_only"


# ── Endpoints and requests ──

class EndpointKind(enum.Enum):
    ORBITER = "orbiter"
    BODY = "body"
    VEHICLE = "vehicle"


_ENDPOINT_CAPABILITIES = {
    EndpointKind.ORBITER: Capability.FUEL_SOURCE | Capability.FUEL_SINK,
    EndpointKind.BODY: Capability.FUEL_SOURCE,
    EndpointKind.VEHICLE: Capability.FUEL_SINK,
}


@dataclass(frozen=True)
class Endpoint:
    """One end of a transfer: an orbiter id, a body name or a vehicle id."""
    kind: EndpointKind
    key: int | str

    @classmethod
    def orbiter(cls, orbiter_id: int) -> "Endpoint":
        return cls(EndpointKind.ORBITER, orbiter_id)

    @classmethod
    def body(cls, name: str) -> "Endpoint":
        return cls(EndpointKind.BODY, name)

    @classmethod
    def vehicle(cls, vehicle_id: int) -> "Endpoint":
        return cls(EndpointKind.VEHICLE, vehicle_id)

    @property
    def capabilities(self) -> Capability:
        return _ENDPOINT_CAPABILITIES[self.kind]

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.key}"


class TransferState(enum.Enum):
    QUEUED = "queued"
    ACTIVE = "active"
    COMPLETE = "complete"
    ABORTED = "aborted"


class TransferOutcome(enum.Enum):
    QUEUED = "queued"
    INVALID_REQUEST = "invalid_request"
    DUPLICATE = "duplicate"
    NO_DONOR = "no_donor"


class FailureReason(enum.Enum):
    UNREACHABLE = "unreachable"
    INSUFFICIENT_RESOURCE = "insufficient_resource"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    ENDPOINT_REMOVED = "endpoint_removed"


@dataclass
class FuelTransferRequest:
    """A queued or in-flight movement of fuel between two endpoints."""
    source: Endpoint
    destination: Endpoint
    requested_amount: float
    max_rate: float = 10.0
    priority: int = 5                 # 1 = emergency ... 10 = low
    time_limit: float | None = None   # seconds, None = unlimited
    is_emergency: bool = False
    transferred: float = 0.0
    elapsed: float = 0.0
    state: TransferState = TransferState.QUEUED
    failure: FailureReason | None = None
    request_id: int = 0

    @property
    def remaining(self) -> float:
        return max(0.0, self.requested_amount - self.transferred)

    @property
    def is_finished(self) -> bool:
        return self.state in (TransferState.COMPLETE, TransferState.ABORTED)

    def involves(self, endpoint: Endpoint) -> bool:
        return self.source == endpoint or self.destination == endpoint

    def activate(self) -> None:
        if self.state is not TransferState.QUEUED:
            raise TransferStateError(f"cannot activate a {self.state.value} transfer")
        self.state = TransferState.ACTIVE

    def complete(self) -> None:
        if self.state is not TransferState.ACTIVE:
            raise TransferStateError(f"cannot complete a {self.state.value} transfer")
        self.state = TransferState.COMPLETE

    def abort(self, reason: FailureReason) -> None:
        if self.is_finished:
            raise TransferStateError(f"cannot abort a {self.state.value} transfer")
        self.state = TransferState.ABORTED
        self.failure = reason


# ── Graph ──

@dataclass(frozen=True)
class SatelliteConnection:
    """Undirected link between two orbiters, valid for a single tick."""
    orbiter_a: int
    orbiter_b: int
    distance: float
    transfer_efficiency: float
    max_transfer_rate: float
    is_active: bool

    def other(self, orbiter_id: int) -> int:
        return self.orbiter_b if orbiter_id == self.orbiter_a else self.orbiter_a


def distance_efficiency(distance: float, max_range: float, floor: float) -> float:
    """1.0 at zero distance, falling linearly to floor at max_range."""
    if distance <= 0.0:
        return 1.0
    if distance > max_range:
        return 0.0
    return 1.0 - (distance / max_range) * (1.0 - floor)


def alignment_efficiency(relative_speed: float, floor: float = 0.3) -> float:
    """Lower relative speed transfers better; clamped to [floor, 1]."""
    factor = 1.0 / (1.0 + relative_speed * 0.01)
    return min(1.0, max(floor, factor))


def build_connections(
    orbiters: Mapping[int, Orbiter], config: NetworkConfig,
) -> dict[tuple[int, int], SatelliteConnection]:
    """All orbiter pairs within range, keyed by (lower id, higher id)."""
    connections: dict[tuple[int, int], SatelliteConnection] = {}
    ids = sorted(orbiters)
    for i, id_a in enumerate(ids):
        a = orbiters[id_a]
        for id_b in ids[i + 1:]:
            b = orbiters[id_b]
            dist = float(np.linalg.norm(a.position - b.position))
            if dist > config.max_transfer_range:
                continue
            rel_speed = float(np.linalg.norm(a.velocity - b.velocity))
            efficiency = (
                distance_efficiency(dist, config.max_transfer_range, config.efficiency_floor)
                * alignment_efficiency(rel_speed, config.alignment_floor)
            )
            connections[(id_a, id_b)] = SatelliteConnection(
                orbiter_a=id_a,
                orbiter_b=id_b,
                distance=dist,
                transfer_efficiency=efficiency,
                max_transfer_rate=config.base_transfer_rate * efficiency,
                is_active=efficiency > config.min_active_efficiency,
            )
    return connections


def _pair(id_a: int, id_b: int) -> tuple[int, int]:
    return (id_a, id_b) if id_a <= id_b else (id_b, id_a)


# ── Statistics ──

@dataclass(frozen=True)
class NetworkFlowStats:
    """Fleet-wide fuel aggregates for one stats window."""
    total_fuel: float = 0.0
    total_reserved: float = 0.0
    total_available: float = 0.0
    body_to_orbiter_flow: float = 0.0
    orbiter_to_orbiter_flow: float = 0.0
    orbiter_to_vehicle_flow: float = 0.0
    average_efficiency: float = 0.0
    active_connections: int = 0
    active_transfers: int = 0
    queued_transfers: int = 0
    completed_transfers: int = 0
    failed_transfers: int = 0
    emergency_orbiters: int = 0


def compute_flow_stats(
    orbiters: Iterable[Orbiter],
    connections: Iterable[SatelliteConnection],
    moved: Mapping[str, float],
    window: float,
    active: int,
    queued: int,
    completed: int,
    failed: int,
    emergency: int,
) -> NetworkFlowStats:
    """Recompute the aggregates from scratch for the current snapshot."""
    orbiters = list(orbiters)
    live_links = [c for c in connections if c.is_active]
    window = max(window, 1e-9)
    average = (
        sum(c.transfer_efficiency for c in live_links) / len(live_links)
        if live_links else 0.0
    )
    return NetworkFlowStats(
        total_fuel=sum(o.current_fuel for o in orbiters),
        total_reserved=sum(o.maintenance_fuel_reserve for o in orbiters),
        total_available=sum(o.available_for_transfer for o in orbiters),
        body_to_orbiter_flow=moved.get("body", 0.0) / window,
        orbiter_to_orbiter_flow=moved.get("orbiter", 0.0) / window,
        orbiter_to_vehicle_flow=moved.get("vehicle", 0.0) / window,
        average_efficiency=average,
        active_connections=len(live_links),
        active_transfers=active,
        queued_transfers=queued,
        completed_transfers=completed,
        failed_transfers=failed,
        emergency_orbiters=emergency,
    )


# ── Network ──

class FuelTransferNetwork:
    """Queued, capacity-limited fuel transfers over a per-tick proximity graph."""

    def __init__(
        self,
        config: NetworkConfig | None = None,
        mode: OptimizationMode = OptimizationMode.BALANCED,
    ) -> None:
        self.config = config or NetworkConfig()
        self.mode = mode
        self.connections: dict[tuple[int, int], SatelliteConnection] = {}
        self.queue: deque[FuelTransferRequest] = deque()
        self.active: list[FuelTransferRequest] = []
        self.history: deque[FuelTransferRequest] = deque(maxlen=self.config.history_limit)
        self.completed_count = 0
        self.failed_count = 0
        self.emergency_orbiters: list[int] = []
        self._stranded: set[int] = set()   # warned: no emergency donor
        self.stats = NetworkFlowStats()
        self._orbiters: dict[int, Orbiter] = {}
        self._bodies: dict[str, PrimaryBody] = {}
        self._vehicles: dict[int, Vehicle] = {}
        self.total_moved: dict[str, float] = {}
        self._moved: dict[str, float] = {}
        self._time_since_stats = 0.0
        self._next_request_id = 1

    # ── Graph maintenance ──

    def rebuild(
        self,
        orbiters: Mapping[int, Orbiter],
        bodies: Iterable[PrimaryBody] = (),
        vehicles: Iterable[Vehicle] = (),
    ) -> None:
        """Rebuild the graph from live references and drop dead transfers."""
        self._orbiters = dict(orbiters)
        self._bodies = {b.name: b for b in bodies}
        self._vehicles = {v.vehicle_id: v for v in vehicles}
        self.connections = build_connections(self._orbiters, self.config)

        for request in list(self.active):
            if not self._endpoints_exist(request):
                self._finish(request, FailureReason.ENDPOINT_REMOVED)
            elif not self._reachable(request):
                self._finish(request, FailureReason.UNREACHABLE)

    def connection(self, id_a: int, id_b: int) -> SatelliteConnection | None:
        return self.connections.get(_pair(id_a, id_b))

    def are_connected(self, id_a: int, id_b: int) -> bool:
        conn = self.connection(id_a, id_b)
        return conn is not None and conn.is_active

    def connection_efficiency(self, id_a: int, id_b: int) -> float:
        conn = self.connection(id_a, id_b)
        return conn.transfer_efficiency if conn is not None else 0.0

    def connection_distance(self, id_a: int, id_b: int) -> float:
        conn = self.connection(id_a, id_b)
        return conn.distance if conn is not None else math.inf

    def connected_orbiters(self, orbiter_id: int) -> list[int]:
        return sorted(
            conn.other(orbiter_id)
            for key, conn in self.connections.items()
            if orbiter_id in key and conn.is_active
        )

    def vehicles_in_range(self, orbiter_id: int) -> list[Vehicle]:
        orbiter = self._orbiters.get(orbiter_id)
        if orbiter is None:
            return []
        return [
            v for v in self._vehicles.values()
            if float(np.linalg.norm(v.position - orbiter.position)) <= self.config.docking_range
        ]

    # ── Requests ──

    def submit(self, request: FuelTransferRequest) -> TransferOutcome:
        """Validate and enqueue a request. Emergencies go to the front."""
        if not self._is_valid(request):
            logger.debug("rejected transfer %s -> %s", request.source, request.destination)
            return TransferOutcome.INVALID_REQUEST
        request.request_id = self._next_request_id
        self._next_request_id += 1
        if request.is_emergency:
            self.queue.appendleft(request)
        else:
            self.queue.append(request)
        logger.debug(
            "queued transfer #%d: %.2f from %s to %s",
            request.request_id, request.requested_amount,
            request.source, request.destination,
        )
        return TransferOutcome.QUEUED

    def request_transfer(
        self, source_id: int, destination_id: int, amount: float, priority: int = 5,
    ) -> TransferOutcome:
        return self.submit(FuelTransferRequest(
            source=Endpoint.orbiter(source_id),
            destination=Endpoint.orbiter(destination_id),
            requested_amount=amount,
            max_rate=self.config.base_transfer_rate,
            priority=priority,
        ))

    def transfer_from_body(
        self, body_name: str, destination_id: int, amount: float,
    ) -> TransferOutcome:
        return self.submit(FuelTransferRequest(
            source=Endpoint.body(body_name),
            destination=Endpoint.orbiter(destination_id),
            requested_amount=amount,
            max_rate=self.config.collection_rate,
        ))

    def transfer_to_vehicle(
        self, source_id: int, vehicle_id: int, amount: float,
    ) -> TransferOutcome:
        return self.submit(FuelTransferRequest(
            source=Endpoint.orbiter(source_id),
            destination=Endpoint.vehicle(vehicle_id),
            requested_amount=amount,
            max_rate=self.config.vehicle_transfer_rate,
        ))

    def request_emergency_transfer(self, destination_id: int, amount: float) -> TransferOutcome:
        """Ask the network to find fuel for an orbiter, at triple the base rate.

        The best connected orbiter donor is used; failing that, a body
        whose collection range covers the orbiter.
        """
        destination = Endpoint.orbiter(destination_id)
        if self._has_pending_emergency(destination):
            return TransferOutcome.DUPLICATE
        recipient = self._orbiters.get(destination_id)
        if recipient is None or amount <= 0:
            return TransferOutcome.INVALID_REQUEST

        donor = self._best_donor(destination_id, min_available=0.0)
        if donor is not None:
            source = Endpoint.orbiter(donor.orbiter_id)
        else:
            body = next(
                (b for b in self._bodies.values()
                 if b.collectable_fuel > 0 and b.in_collection_range(recipient.position)),
                None,
            )
            if body is None:
                if destination_id in self._stranded:
                    logger.debug("still no donor for %s", recipient.name)
                else:
                    logger.warning("no donor available for emergency fuel to %s", recipient.name)
                    self._stranded.add(destination_id)
                return TransferOutcome.NO_DONOR
            source = Endpoint.body(body.name)

        self._stranded.discard(destination_id)
        return self.submit(FuelTransferRequest(
            source=source,
            destination=destination,
            requested_amount=amount,
            max_rate=self.config.base_transfer_rate * 3.0,
            priority=1,
            is_emergency=True,
        ))

    def cancel_transfer(self, source: Endpoint, destination: Endpoint) -> bool:
        """Drop queued and abort active transfers between two endpoints."""
        found = False
        kept: deque[FuelTransferRequest] = deque()
        for request in self.queue:
            if request.source == source and request.destination == destination:
                found = True
            else:
                kept.append(request)
        self.queue = kept
        for request in list(self.active):
            if request.source == source and request.destination == destination:
                self._finish(request, FailureReason.CANCELLED)
                found = True
        return found

    def clear_queue(self) -> None:
        """Drop everything queued and abort everything in flight."""
        self.queue.clear()
        for request in list(self.active):
            self._finish(request, FailureReason.CANCELLED)
        logger.info("fuel transfer queue cleared")

    def remove_orbiter(self, orbiter_id: int) -> None:
        endpoint = Endpoint.orbiter(orbiter_id)
        self.queue = deque(r for r in self.queue if not r.involves(endpoint))
        for request in list(self.active):
            if request.involves(endpoint):
                self._finish(request, FailureReason.ENDPOINT_REMOVED)
        self._orbiters.pop(orbiter_id, None)
        self.connections = {
            key: conn for key, conn in self.connections.items() if orbiter_id not in key
        }
        if orbiter_id in self.emergency_orbiters:
            self.emergency_orbiters.remove(orbiter_id)

    def queued_transfers(self) -> list[FuelTransferRequest]:
        return list(self.queue)

    # ── Tick ──

    def update(
        self,
        dt: float,
        orbiters: Mapping[int, Orbiter],
        bodies: Iterable[PrimaryBody] = (),
        vehicles: Iterable[Vehicle] = (),
    ) -> None:
        """
        Advance the network one tick.

        Order: rebuild the graph (aborting transfers whose link vanished),
        scan for emergencies (injected at the queue head), advance active
        transfers, then fill free slots from the queue.
        """
        self.rebuild(orbiters, bodies, vehicles)
        self.scan_emergencies()
        for request in list(self.active):
            self._advance(request, dt)
        self.activate_queued()

        self._time_since_stats += dt
        if self._time_since_stats >= self.config.stats_interval:
            self.refresh_stats()

    def scan_emergencies(self) -> list[FuelTransferRequest]:
        """Flag critically low orbiters and queue emergency fuel for them.

        The donor with the best efficiency x spare fuel among connected
        orbiters holding at least emergency_donor_min_fuel spare gives
        min(50% of its spare, 30% of the recipient's tank).
        """
        cfg = self.config
        self.emergency_orbiters = [
            oid for oid, o in sorted(self._orbiters.items())
            if o.fuel_fraction <= cfg.critical_fuel_fraction
        ]
        self._stranded.intersection_update(self.emergency_orbiters)
        created = []
        for oid in self.emergency_orbiters:
            destination = Endpoint.orbiter(oid)
            if self._has_pending_emergency(destination):
                continue
            donor = self._best_donor(oid, cfg.emergency_donor_min_fuel)
            if donor is None:
                continue
            recipient = self._orbiters[oid]
            amount = min(donor.available_for_transfer * 0.5, recipient.max_fuel * 0.3)
            request = FuelTransferRequest(
                source=Endpoint.orbiter(donor.orbiter_id),
                destination=destination,
                requested_amount=amount,
                max_rate=cfg.base_transfer_rate * 2.0,
                priority=1,
                is_emergency=True,
            )
            if self.submit(request) is TransferOutcome.QUEUED:
                logger.warning(
                    "emergency fuel for %s: %.2f from %s",
                    recipient.name, amount, donor.name,
                )
                created.append(request)
        return created

    def activate_queued(self) -> None:
        """Move queued requests to active while slots are free."""
        while self.queue and len(self.active) < self.config.max_simultaneous_transfers:
            request = self.queue.popleft()
            if not self._endpoints_exist(request):
                self._finish(request, FailureReason.ENDPOINT_REMOVED)
                continue
            if not self._reachable(request):
                self._finish(request, FailureReason.UNREACHABLE)
                continue
            supply = self._supply(request.source)
            request.requested_amount = min(request.requested_amount, supply)
            if request.requested_amount <= 0.0:
                self._finish(request, FailureReason.INSUFFICIENT_RESOURCE)
                continue
            request.activate()
            self.active.append(request)

    def _advance(self, request: FuelTransferRequest, dt: float) -> None:
        efficiency = self._efficiency(request)
        amount = min(request.max_rate * efficiency * dt, request.remaining)
        movable = min(amount, self._supply(request.source), self._demand(request.destination))

        if amount > 0.0 and movable <= 0.0:
            self._finish(request, FailureReason.INSUFFICIENT_RESOURCE)
            return
        if movable > 0.0:
            given = self._withdraw(request.source, movable)
            accepted = self._deposit(request.destination, given)
            request.transferred += accepted
            self._tally(request, accepted)

        request.elapsed += dt
        if request.transferred >= request.requested_amount * COMPLETION_FRACTION:
            request.complete()
            self._retire(request)
            return
        if request.time_limit is not None and request.elapsed >= request.time_limit:
            self._finish(request, FailureReason.TIMEOUT)

    # ── Optimisation passes ──

    def optimize(self) -> int:
        """Run the pass selected by the current mode. Returns requests created."""
        if self.mode is OptimizationMode.BALANCED:
            return self.balance_fuel_distribution()
        if self.mode is OptimizationMode.MAINTENANCE_FIRST:
            return self.prioritize_maintenance_fuel()
        return 0

    def balance_fuel_distribution(self) -> int:
        """Move spare fuel from orbiters above the mean to those below it."""
        operational = [o for o in self._orbiters.values() if o.is_operational]
        if len(operational) < 2:
            return 0
        mean = sum(o.available_for_transfer for o in operational) / len(operational)
        threshold = self.config.balance_threshold
        excess = [
            (o, o.available_for_transfer - mean) for o in operational
            if o.available_for_transfer - mean > threshold
        ]
        deficit = [
            (o, mean - o.available_for_transfer) for o in operational
            if mean - o.available_for_transfer > threshold
        ]
        created = 0
        for donor, surplus in excess:
            for recipient, shortfall in deficit:
                if not self.are_connected(donor.orbiter_id, recipient.orbiter_id):
                    continue
                amount = min(surplus * 0.5, shortfall * 0.5)
                if amount <= 1.0 or self._has_pending(donor.orbiter_id, recipient.orbiter_id):
                    continue
                if self.request_transfer(
                    donor.orbiter_id, recipient.orbiter_id, amount, priority=5,
                ) is TransferOutcome.QUEUED:
                    created += 1
        return created

    def prioritize_maintenance_fuel(self) -> int:
        """Top up reserves below 80% of target from a well-stocked neighbour."""
        created = 0
        for orbiter in self._orbiters.values():
            if not orbiter.is_operational:
                continue
            target = orbiter.reserve_target
            if orbiter.maintenance_fuel_reserve >= target * 0.8:
                continue
            needed = target - orbiter.maintenance_fuel_reserve
            for donor in self._orbiters.values():
                if donor is orbiter or donor.available_for_transfer < needed * 1.5:
                    continue
                if not self.are_connected(donor.orbiter_id, orbiter.orbiter_id):
                    continue
                if self._has_pending(donor.orbiter_id, orbiter.orbiter_id):
                    break
                outcome = self.submit(FuelTransferRequest(
                    source=Endpoint.orbiter(donor.orbiter_id),
                    destination=Endpoint.orbiter(orbiter.orbiter_id),
                    requested_amount=needed,
                    max_rate=self.config.base_transfer_rate,
                    priority=2,
                    is_emergency=True,
                ))
                if outcome is TransferOutcome.QUEUED:
                    created += 1
                break
        return created

    # ── Health queries ──

    def refresh_stats(self) -> NetworkFlowStats:
        self.stats = compute_flow_stats(
            self._orbiters.values(),
            self.connections.values(),
            self._moved,
            self._time_since_stats,
            active=len(self.active),
            queued=len(self.queue),
            completed=self.completed_count,
            failed=self.failed_count,
            emergency=len(self.emergency_orbiters),
        )
        self._moved = {}
        self._time_since_stats = 0.0
        return self.stats

    def is_healthy(self) -> bool:
        """At least 80% of orbiters operational with more than 20% fuel."""
        if not self._orbiters:
            return True
        healthy = sum(
            1 for o in self._orbiters.values()
            if o.is_operational and o.fuel_fraction > 0.2
        )
        return healthy / len(self._orbiters) >= 0.8

    def network_efficiency(self) -> float:
        return self.stats.average_efficiency

    def average_fuel_level(self) -> float:
        """Mean fuel percentage across the network."""
        if not self._orbiters:
            return 0.0
        return 100.0 * sum(o.fuel_fraction for o in self._orbiters.values()) / len(self._orbiters)

    def underperforming_orbiters(self) -> list[int]:
        return sorted(
            oid for oid, o in self._orbiters.items()
            if o.fuel_fraction < 0.3
            or o.orbit_accuracy < 70.0
            or o.status is OrbiterStatus.CRITICAL_FUEL
        )

    # ── Internals ──

    def _is_valid(self, request: FuelTransferRequest) -> bool:
        if not request.requested_amount > 0.0 or request.max_rate <= 0.0:
            return False
        if not request.source.capabilities & Capability.FUEL_SOURCE:
            return False
        if not request.destination.capabilities & Capability.FUEL_SINK:
            return False
        # every supported route has an orbiter on at least one end
        if EndpointKind.ORBITER not in (request.source.kind, request.destination.kind):
            return False
        if request.source == request.destination:
            return False
        return self._endpoints_exist(request)

    def _endpoints_exist(self, request: FuelTransferRequest) -> bool:
        return self._resolve(request.source) is not None and (
            self._resolve(request.destination) is not None
        )

    def _resolve(self, endpoint: Endpoint):
        if endpoint.kind is EndpointKind.ORBITER:
            return self._orbiters.get(endpoint.key)
        if endpoint.kind is EndpointKind.BODY:
            return self._bodies.get(endpoint.key)
        return self._vehicles.get(endpoint.key)

    def _reachable(self, request: FuelTransferRequest) -> bool:
        return self._efficiency(request) > 0.0

    def _efficiency(self, request: FuelTransferRequest) -> float:
        """Link efficiency for a request's endpoint pair; 0 when unreachable."""
        src, dst = request.source, request.destination
        cfg = self.config
        if src.kind is EndpointKind.ORBITER and dst.kind is EndpointKind.ORBITER:
            conn = self.connection(src.key, dst.key)
            if conn is None or not conn.is_active:
                return 0.0
            return conn.transfer_efficiency
        if src.kind is EndpointKind.BODY and dst.kind is EndpointKind.ORBITER:
            body = self._bodies.get(src.key)
            orbiter = self._orbiters.get(dst.key)
            if body is None or orbiter is None or not body.in_collection_range(orbiter.position):
                return 0.0
            surface = max(0.0, body.surface_distance(orbiter.position))
            return distance_efficiency(surface, body.collection_range, cfg.efficiency_floor)
        if src.kind is EndpointKind.ORBITER and dst.kind is EndpointKind.VEHICLE:
            orbiter = self._orbiters.get(src.key)
            vehicle = self._vehicles.get(dst.key)
            if orbiter is None or vehicle is None:
                return 0.0
            dist = float(np.linalg.norm(vehicle.position - orbiter.position))
            if dist > cfg.docking_range:
                return 0.0
            return distance_efficiency(dist, cfg.docking_range, cfg.efficiency_floor)
        return 0.0

    def _supply(self, endpoint: Endpoint) -> float:
        target = self._resolve(endpoint)
        if target is None:
            return 0.0
        if endpoint.kind is EndpointKind.BODY:
            return target.collectable_fuel
        return target.available_for_transfer

    def _demand(self, endpoint: Endpoint) -> float:
        target = self._resolve(endpoint)
        return 0.0 if target is None else max(0.0, target.capacity)

    def _withdraw(self, endpoint: Endpoint, amount: float) -> float:
        target = self._resolve(endpoint)
        if endpoint.kind is EndpointKind.BODY:
            return target.donate(amount)
        return target.withdraw_transferable(amount)

    def _deposit(self, endpoint: Endpoint, amount: float) -> float:
        return self._resolve(endpoint).add_fuel(amount)

    def _tally(self, request: FuelTransferRequest, amount: float) -> None:
        if request.source.kind is EndpointKind.BODY:
            key = "body"
        elif request.destination.kind is EndpointKind.VEHICLE:
            key = "vehicle"
        else:
            key = "orbiter"
        self._moved[key] = self._moved.get(key, 0.0) + amount
        self.total_moved[key] = self.total_moved.get(key, 0.0) + amount

    def record_flow(self, key: str, amount: float) -> None:
        """Count fuel moved outside the queue (collection, docking) in the window."""
        self._moved[key] = self._moved.get(key, 0.0) + amount
        self.total_moved[key] = self.total_moved.get(key, 0.0) + amount

    def _best_donor(self, recipient_id: int, min_available: float) -> Orbiter | None:
        best = None
        best_score = 0.0
        for oid, donor in self._orbiters.items():
            if oid == recipient_id or not donor.is_operational:
                continue
            if donor.available_for_transfer < min_available:
                continue
            if not self.are_connected(oid, recipient_id):
                continue
            score = self.connection_efficiency(oid, recipient_id) * donor.available_for_transfer
            if score > best_score:
                best_score = score
                best = donor
        return best

    def _pending(self) -> Iterable[FuelTransferRequest]:
        yield from self.queue
        yield from self.active

    def _has_pending_emergency(self, destination: Endpoint) -> bool:
        return any(r.is_emergency and r.destination == destination for r in self._pending())

    def _has_pending(self, source_id: int, destination_id: int) -> bool:
        source = Endpoint.orbiter(source_id)
        destination = Endpoint.orbiter(destination_id)
        return any(
            r.source == source and r.destination == destination for r in self._pending()
        )

    def _finish(self, request: FuelTransferRequest, reason: FailureReason) -> None:
        request.abort(reason)
        if reason is FailureReason.TIMEOUT:
            logger.warning(
                "transfer #%d timed out after %.1f s", request.request_id, request.elapsed,
            )
        else:
            logger.info(
                "transfer #%d %s -> %s aborted: %s",
                request.request_id, request.source, request.destination, reason.value,
            )
        self._retire(request)

    def _retire(self, request: FuelTransferRequest) -> None:
        self.active = [r for r in self.active if r is not request]
        if request.state is TransferState.COMPLETE:
            self.completed_count += 1
        else:
            self.failed_count += 1
        self.history.append(request)
