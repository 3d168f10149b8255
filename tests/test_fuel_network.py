# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""Tests for the fuel transfer network: graph, queue, transfers, optimisation."""
import numpy as np
import pytest


# ── Helpers ──────────────────────────────────────────────────────────

def _orbiter(oid, x, y=0.0, fuel=60.0, **kwargs):
    from orbitkeep.domain.orbiter import Orbiter

    return Orbiter(
        orbiter_id=oid, name=f"SAT-{oid:03d}", position=(x, y), velocity=(0.0, 10.0),
        current_fuel=fuel, **kwargs,
    )


def _fleet(*orbiters):
    return {o.orbiter_id: o for o in orbiters}


def _network(**kwargs):
    from orbitkeep.domain.fuel_network import FuelTransferNetwork, NetworkConfig

    return FuelTransferNetwork(NetworkConfig(**kwargs))


def _body(mass=1000.0):
    from orbitkeep.domain.bodies import PrimaryBody

    return PrimaryBody(name="Earth", position=(0.0, 0.0), velocity=(0.0, 0.0), mass=mass, radius=100.0)


# ── Config ───────────────────────────────────────────────────────────

class TestNetworkConfig:

    def test_defaults(self):
        """Defaults match the deployed tuning."""
        from orbitkeep.domain.fuel_network import NetworkConfig

        cfg = NetworkConfig()
        assert cfg.max_transfer_range == 500.0
        assert cfg.base_transfer_rate == 5.0
        assert cfg.max_simultaneous_transfers == 5

    def test_fraction_order_enforced(self):
        """Critical threshold may not exceed the low-fuel threshold."""
        from orbitkeep.domain.fuel_network import NetworkConfig

        with pytest.raises(ValueError, match="critical"):
            NetworkConfig(critical_fuel_fraction=0.2, emergency_fuel_fraction=0.1)

    def test_slots_positive(self):
        """At least one transfer slot is required."""
        from orbitkeep.domain.fuel_network import NetworkConfig

        with pytest.raises(ValueError, match="max_simultaneous_transfers"):
            NetworkConfig(max_simultaneous_transfers=0)


# ── Graph ────────────────────────────────────────────────────────────

class TestGraph:

    def test_efficiency_at_300(self):
        """Two co-moving orbiters 300 apart link at efficiency 0.88."""
        net = _network()
        net.rebuild(_fleet(_orbiter(1, 0.0), _orbiter(2, 300.0)))
        assert net.are_connected(1, 2)
        assert net.are_connected(2, 1)
        assert net.connection_efficiency(1, 2) == pytest.approx(0.88)
        assert net.connection(1, 2).max_transfer_rate == pytest.approx(4.4)
        assert net.connection_distance(2, 1) == pytest.approx(300.0)

    def test_out_of_range_not_connected(self):
        """Beyond max range there is no edge."""
        net = _network()
        net.rebuild(_fleet(_orbiter(1, 0.0), _orbiter(2, 600.0)))
        assert not net.are_connected(1, 2)
        assert net.connection_efficiency(1, 2) == 0.0
        assert net.connection_distance(1, 2) == float("inf")

    def test_relative_speed_lowers_efficiency(self):
        """Fast relative motion degrades the link."""
        from orbitkeep.domain.fuel_network import alignment_efficiency

        assert alignment_efficiency(0.0) == 1.0
        assert alignment_efficiency(100.0) == pytest.approx(0.5)
        assert alignment_efficiency(10000.0) == pytest.approx(0.3)

    def test_connected_orbiters(self):
        """Neighbour lists only include live links."""
        net = _network()
        net.rebuild(_fleet(_orbiter(1, 0.0), _orbiter(2, 300.0), _orbiter(3, 900.0)))
        assert net.connected_orbiters(2) == [1]
        assert net.connected_orbiters(3) == []

    def test_distance_efficiency_floor(self):
        """Distance efficiency falls to the floor at max range."""
        from orbitkeep.domain.fuel_network import distance_efficiency

        assert distance_efficiency(0.0, 500.0, 0.8) == 1.0
        assert distance_efficiency(500.0, 500.0, 0.8) == pytest.approx(0.8)
        assert distance_efficiency(501.0, 500.0, 0.8) == 0.0


# ── Requests and validation ──────────────────────────────────────────

class TestRequests:

    def test_invalid_requests(self):
        """Bad amounts, self transfers and unknown ids are rejected."""
        from orbitkeep.domain.fuel_network import TransferOutcome

        net = _network()
        net.rebuild(_fleet(_orbiter(1, 0.0), _orbiter(2, 300.0)))
        assert net.request_transfer(1, 2, 0.0) is TransferOutcome.INVALID_REQUEST
        assert net.request_transfer(1, 1, 5.0) is TransferOutcome.INVALID_REQUEST
        assert net.request_transfer(1, 9, 5.0) is TransferOutcome.INVALID_REQUEST
        assert net.queued_transfers() == []

    def test_capabilities_enforced(self):
        """A vehicle cannot give and a body cannot receive."""
        from orbitkeep.domain.bodies import Vehicle
        from orbitkeep.domain.fuel_network import Endpoint, FuelTransferRequest, TransferOutcome

        net = _network()
        vehicle = Vehicle(vehicle_id=7, position=(0.0, 0.0), current_fuel=0.0, max_fuel=50.0)
        net.rebuild(_fleet(_orbiter(1, 200.0)), [_body()], [vehicle])
        from_vehicle = FuelTransferRequest(Endpoint.vehicle(7), Endpoint.orbiter(1), 5.0)
        to_body = FuelTransferRequest(Endpoint.orbiter(1), Endpoint.body("Earth"), 5.0)
        assert net.submit(from_vehicle) is TransferOutcome.INVALID_REQUEST
        assert net.submit(to_body) is TransferOutcome.INVALID_REQUEST

    def test_body_to_vehicle_rejected(self):
        """Bodies cannot feed vehicles directly, even when ids collide with an orbiter."""
        from orbitkeep.domain.bodies import Vehicle
        from orbitkeep.domain.fuel_network import Endpoint, FuelTransferRequest, TransferOutcome

        orb = _orbiter(7, 200.0)
        vehicle = Vehicle(vehicle_id=7, position=(90000.0, 0.0), current_fuel=0.0, max_fuel=50.0)
        fleet = _fleet(orb)
        net = _network()
        net.rebuild(fleet, [_body()], [vehicle])
        request = FuelTransferRequest(Endpoint.body("Earth"), Endpoint.vehicle(7), 10.0)
        assert net.submit(request) is TransferOutcome.INVALID_REQUEST
        for _ in range(20):
            net.update(0.1, fleet, [_body()], [vehicle])
        assert vehicle.current_fuel == 0.0

    def test_fifo_order(self):
        """Ordinary requests keep submission order."""
        net = _network()
        net.rebuild(_fleet(_orbiter(1, 0.0), _orbiter(2, 300.0), _orbiter(3, 100.0)))
        net.request_transfer(1, 2, 5.0)
        net.request_transfer(1, 3, 5.0)
        queued = net.queued_transfers()
        assert [r.destination.key for r in queued] == [2, 3]
        assert queued[0].request_id < queued[1].request_id

    def test_request_lifecycle_guarded(self):
        """Completing a queued request is an illegal transition."""
        from orbitkeep.domain.errors import TransferStateError
        from orbitkeep.domain.fuel_network import (
            Endpoint, FailureReason, FuelTransferRequest,
        )

        request = FuelTransferRequest(Endpoint.orbiter(1), Endpoint.orbiter(2), 5.0)
        with pytest.raises(TransferStateError):
            request.complete()
        request.abort(FailureReason.CANCELLED)
        with pytest.raises(TransferStateError):
            request.activate()


# ── Transfers ────────────────────────────────────────────────────────

class TestTransfers:

    def test_rate_and_link_loss(self):
        """Transfer runs at rate x efficiency and aborts when the link vanishes."""
        from orbitkeep.domain.fuel_network import FailureReason, TransferState

        a, b = _orbiter(1, 0.0), _orbiter(2, 300.0, fuel=10.0)
        fleet = _fleet(a, b)
        net = _network()
        net.rebuild(fleet)
        net.request_transfer(1, 2, 20.0)

        net.update(1.0, fleet)
        request = net.active[0]
        assert request.state is TransferState.ACTIVE
        assert request.transferred == 0.0

        net.update(1.0, fleet)
        assert request.transferred == pytest.approx(4.4)
        assert b.current_fuel == pytest.approx(14.4)

        b.position = np.array([600.0, 0.0])
        net.update(1.0, fleet)
        assert request.state is TransferState.ABORTED
        assert request.failure is FailureReason.UNREACHABLE
        assert net.active == []
        assert net.failed_count == 1
        assert b.current_fuel == pytest.approx(14.4)

    def test_fuel_conserved_between_orbiters(self):
        """Orbiter-to-orbiter transfers neither create nor destroy fuel."""
        a, b = _orbiter(1, 0.0), _orbiter(2, 300.0, fuel=10.0)
        fleet = _fleet(a, b)
        net = _network()
        net.rebuild(fleet)
        net.request_transfer(1, 2, 30.0)
        before = a.current_fuel + b.current_fuel
        for _ in range(10):
            net.update(0.5, fleet)
            assert a.current_fuel + b.current_fuel == pytest.approx(before)

    def test_capped_at_available_reserve_untouched(self):
        """Asking for more than the spare moves only the spare."""
        a, b = _orbiter(1, 0.0), _orbiter(2, 300.0, fuel=10.0)
        fleet = _fleet(a, b)
        net = _network()
        net.rebuild(fleet)
        net.request_transfer(1, 2, 100.0)
        net.update(1.0, fleet)
        assert net.active[0].requested_amount == pytest.approx(55.0)
        for _ in range(20):
            net.update(1.0, fleet)
        assert net.completed_count == 1
        assert a.current_fuel == pytest.approx(5.0)
        assert a.maintenance_fuel_reserve == pytest.approx(5.0)
        assert b.current_fuel == pytest.approx(65.0)

    def test_slots_limit_active(self):
        """No more than max_simultaneous_transfers run at once."""
        net = _network(max_simultaneous_transfers=2)
        fleet = _fleet(_orbiter(1, 0.0), _orbiter(2, 300.0, fuel=10.0))
        net.rebuild(fleet)
        for _ in range(4):
            net.request_transfer(1, 2, 1.0)
        net.update(0.1, fleet)
        assert len(net.active) == 2
        assert len(net.queued_transfers()) == 2

    def test_timeout(self):
        """A request past its time limit aborts and keeps what moved."""
        from orbitkeep.domain.fuel_network import (
            Endpoint, FailureReason, FuelTransferRequest,
        )

        a, b = _orbiter(1, 0.0), _orbiter(2, 300.0, fuel=10.0)
        fleet = _fleet(a, b)
        net = _network()
        net.rebuild(fleet)
        request = FuelTransferRequest(
            Endpoint.orbiter(1), Endpoint.orbiter(2), 50.0, max_rate=5.0, time_limit=1.0,
        )
        net.submit(request)
        net.update(1.0, fleet)
        net.update(1.0, fleet)
        assert request.failure is FailureReason.TIMEOUT
        assert request.transferred == pytest.approx(4.4)
        assert net.history[-1] is request

    def test_empty_donor_is_insufficient(self):
        """A donor with nothing spare fails on activation."""
        from orbitkeep.domain.fuel_network import FailureReason

        a = _orbiter(1, 0.0, fuel=5.0, maintenance_fuel_reserve=5.0)
        fleet = _fleet(a, _orbiter(2, 300.0, fuel=10.0))
        net = _network()
        net.rebuild(fleet)
        net.request_transfer(1, 2, 5.0)
        net.update(1.0, fleet)
        assert net.history[-1].failure is FailureReason.INSUFFICIENT_RESOURCE

    def test_full_recipient_is_insufficient(self):
        """A recipient with no room fails the transfer."""
        from orbitkeep.domain.fuel_network import FailureReason

        fleet = _fleet(_orbiter(1, 0.0), _orbiter(2, 300.0, fuel=80.0))
        net = _network()
        net.rebuild(fleet)
        net.request_transfer(1, 2, 5.0)
        net.update(1.0, fleet)
        net.update(1.0, fleet)
        assert net.history[-1].failure is FailureReason.INSUFFICIENT_RESOURCE


# ── Bodies and vehicles ──────────────────────────────────────────────

class TestBodyAndVehicle:

    def test_body_to_orbiter(self):
        """Bodies supply fuel within collection range and lose mass for it."""
        body = _body()
        orb = _orbiter(1, 300.0, fuel=20.0)
        fleet = _fleet(orb)
        net = _network()
        net.rebuild(fleet, [body])
        net.transfer_from_body("Earth", 1, 10.0)
        net.update(1.0, fleet, [body])
        net.update(1.0, fleet, [body])
        assert net.completed_count == 1
        assert orb.current_fuel == pytest.approx(30.0)
        assert body.mass == pytest.approx(990.0)
        assert net.total_moved["body"] == pytest.approx(10.0)

    def test_orbiter_to_vehicle(self):
        """Orbiters refuel docked vehicles."""
        from orbitkeep.domain.bodies import Vehicle

        orb = _orbiter(1, 0.0)
        vehicle = Vehicle(vehicle_id=7, position=(100.0, 0.0), current_fuel=0.0, max_fuel=50.0)
        fleet = _fleet(orb)
        net = _network()
        net.rebuild(fleet, vehicles=[vehicle])
        assert net.vehicles_in_range(1) == [vehicle]
        net.transfer_to_vehicle(1, 7, 10.0)
        net.update(1.0, fleet, vehicles=[vehicle])
        net.update(1.0, fleet, vehicles=[vehicle])
        assert vehicle.current_fuel == pytest.approx(10.0)
        assert orb.current_fuel == pytest.approx(50.0)
        assert net.total_moved["vehicle"] == pytest.approx(10.0)


# ── Emergencies ──────────────────────────────────────────────────────

class TestEmergencies:

    def test_emergency_jumps_queue(self):
        """An emergency behind ordinary requests is served next."""
        net = _network(max_simultaneous_transfers=1)
        fleet = _fleet(
            _orbiter(1, 0.0), _orbiter(2, 300.0, fuel=10.0), _orbiter(3, 100.0, fuel=20.0),
        )
        net.rebuild(fleet)
        for _ in range(3):
            net.request_transfer(1, 2, 2.0)
        net.request_emergency_transfer(3, 5.0)
        net.update(1.0, fleet)
        assert net.active[0].is_emergency
        assert net.active[0].destination.key == 3
        assert net.active[0].max_rate == pytest.approx(15.0)

    def test_critical_scan_injects_at_head(self):
        """A critically low orbiter gets min(50% donor spare, 30% tank) first."""
        net = _network()
        fleet = _fleet(_orbiter(1, 0.0), _orbiter(2, 300.0, fuel=3.2), _orbiter(3, 100.0, fuel=20.0))
        net.rebuild(fleet)
        net.request_transfer(1, 3, 2.0)
        net.update(1.0, fleet)
        assert net.emergency_orbiters == [2]
        head = net.active[0]
        assert head.is_emergency
        assert head.destination.key == 2
        assert head.source.key == 1
        assert head.requested_amount == pytest.approx(24.0)
        assert head.max_rate == pytest.approx(10.0)

    def test_scan_not_repeated_while_pending(self):
        """A pending emergency suppresses further ones for the same orbiter."""
        net = _network()
        fleet = _fleet(_orbiter(1, 0.0), _orbiter(2, 300.0, fuel=3.2))
        net.rebuild(fleet)
        first = net.scan_emergencies()
        second = net.scan_emergencies()
        assert len(first) == 1
        assert second == []

    def test_manual_emergency_duplicate_and_no_donor(self):
        """Repeat emergencies are duplicates; isolated orbiters have no donor."""
        from orbitkeep.domain.fuel_network import TransferOutcome

        net = _network()
        net.rebuild(_fleet(_orbiter(1, 0.0), _orbiter(2, 300.0), _orbiter(3, 5000.0)))
        assert net.request_emergency_transfer(2, 5.0) is TransferOutcome.QUEUED
        assert net.request_emergency_transfer(2, 5.0) is TransferOutcome.DUPLICATE
        assert net.request_emergency_transfer(3, 5.0) is TransferOutcome.NO_DONOR

    def test_body_as_emergency_donor(self):
        """With no orbiter in reach a body in collection range donates."""
        from orbitkeep.domain.fuel_network import EndpointKind, TransferOutcome

        net = _network()
        net.rebuild(_fleet(_orbiter(1, 300.0)), [_body()])
        assert net.request_emergency_transfer(1, 5.0) is TransferOutcome.QUEUED
        assert net.queued_transfers()[0].source.kind is EndpointKind.BODY

    def test_no_donor_warned_once(self, caplog):
        """A stranded orbiter is warned about once until it recovers."""
        import logging

        from orbitkeep.domain.fuel_network import TransferOutcome

        caplog.set_level(logging.DEBUG, logger="orbitkeep.domain.fuel_network")
        orb = _orbiter(1, 0.0, fuel=3.2)
        net = _network()
        net.rebuild(_fleet(orb))
        for _ in range(10):
            assert net.request_emergency_transfer(1, 24.0) is TransferOutcome.NO_DONOR

        def warnings():
            return [
                r for r in caplog.records
                if r.levelno == logging.WARNING and "no donor" in r.getMessage()
            ]

        assert len(warnings()) == 1
        orb.current_fuel = 40.0
        net.scan_emergencies()
        orb.current_fuel = 3.2
        net.request_emergency_transfer(1, 24.0)
        assert len(warnings()) == 2


# ── Optimisation passes ──────────────────────────────────────────────

class TestOptimization:

    def test_balance_moves_excess_to_deficit(self):
        """The rich orbiter feeds both poor ones; repeating adds nothing."""
        net = _network()
        net.rebuild(_fleet(
            _orbiter(1, 0.0, fuel=80.0), _orbiter(2, 300.0, fuel=10.0),
            _orbiter(3, 100.0, fuel=10.0),
        ))
        assert net.balance_fuel_distribution() == 2
        amounts = [r.requested_amount for r in net.queued_transfers()]
        assert amounts == pytest.approx([11.1667, 11.1667], rel=1e-3)
        assert net.balance_fuel_distribution() == 0

    def test_balance_needs_two(self):
        """A single orbiter has nothing to balance."""
        net = _network()
        net.rebuild(_fleet(_orbiter(1, 0.0)))
        assert net.balance_fuel_distribution() == 0

    def test_maintenance_first_tops_up_reserve(self):
        """Depleted reserves are refilled from a well-stocked neighbour."""
        from orbitkeep.domain.fuel_network import OptimizationMode

        net = _network()
        net.mode = OptimizationMode.MAINTENANCE_FIRST
        net.rebuild(_fleet(
            _orbiter(1, 0.0), _orbiter(2, 300.0, fuel=10.0, maintenance_fuel_reserve=1.0),
        ))
        assert net.optimize() == 1
        request = net.queued_transfers()[0]
        assert request.requested_amount == pytest.approx(4.0)
        assert request.priority == 2
        assert request.is_emergency

    def test_emergency_only_mode_is_passive(self):
        """EMERGENCY_ONLY creates no optimisation requests."""
        from orbitkeep.domain.fuel_network import OptimizationMode

        net = _network()
        net.mode = OptimizationMode.EMERGENCY_ONLY
        net.rebuild(_fleet(_orbiter(1, 0.0, fuel=80.0), _orbiter(2, 300.0, fuel=10.0)))
        assert net.optimize() == 0


# ── Cancellation and removal ─────────────────────────────────────────

class TestCancellation:

    def test_cancel_queued_and_active(self):
        """Cancel drops queued requests and aborts active ones for a pair."""
        from orbitkeep.domain.fuel_network import Endpoint, FailureReason

        fleet = _fleet(_orbiter(1, 0.0), _orbiter(2, 300.0, fuel=10.0))
        net = _network()
        net.rebuild(fleet)
        net.request_transfer(1, 2, 10.0)
        net.update(1.0, fleet)
        net.request_transfer(1, 2, 10.0)
        assert net.cancel_transfer(Endpoint.orbiter(1), Endpoint.orbiter(2))
        assert net.active == []
        assert net.queued_transfers() == []
        assert net.history[-1].failure is FailureReason.CANCELLED
        assert not net.cancel_transfer(Endpoint.orbiter(1), Endpoint.orbiter(2))

    def test_clear_queue(self):
        """clear_queue empties the queue and aborts in-flight transfers."""
        fleet = _fleet(_orbiter(1, 0.0), _orbiter(2, 300.0, fuel=10.0))
        net = _network()
        net.rebuild(fleet)
        net.request_transfer(1, 2, 10.0)
        net.update(1.0, fleet)
        net.request_transfer(1, 2, 5.0)
        net.clear_queue()
        assert net.active == [] and net.queued_transfers() == []
        assert net.failed_count == 1

    def test_remove_orbiter(self):
        """Removing an orbiter aborts its transfers and drops its edges."""
        from orbitkeep.domain.fuel_network import FailureReason

        fleet = _fleet(_orbiter(1, 0.0), _orbiter(2, 300.0, fuel=10.0))
        net = _network()
        net.rebuild(fleet)
        net.request_transfer(1, 2, 10.0)
        net.update(1.0, fleet)
        net.remove_orbiter(2)
        assert net.history[-1].failure is FailureReason.ENDPOINT_REMOVED
        assert not net.are_connected(1, 2)

    def test_vanished_orbiter_aborts_on_rebuild(self):
        """A transfer whose orbiter left the mapping aborts on the next tick."""
        from orbitkeep.domain.fuel_network import FailureReason

        a, b = _orbiter(1, 0.0), _orbiter(2, 300.0, fuel=10.0)
        net = _network()
        net.rebuild(_fleet(a, b))
        net.request_transfer(1, 2, 10.0)
        net.update(1.0, _fleet(a, b))
        net.update(1.0, _fleet(a))
        assert net.history[-1].failure is FailureReason.ENDPOINT_REMOVED


# ── Health queries ───────────────────────────────────────────────────

class TestHealth:

    def test_healthy_fleet(self):
        """Well-fuelled orbiters make a healthy network."""
        net = _network()
        net.rebuild(_fleet(_orbiter(1, 0.0), _orbiter(2, 300.0)))
        assert net.is_healthy()
        assert net.average_fuel_level() == pytest.approx(75.0)
        assert net.underperforming_orbiters() == []

    def test_unhealthy_fleet(self):
        """Half the fleet below 20% fuel is unhealthy."""
        net = _network()
        net.rebuild(_fleet(_orbiter(1, 0.0), _orbiter(2, 300.0, fuel=10.0)))
        assert not net.is_healthy()
        assert net.underperforming_orbiters() == [2]

    def test_stats_refresh(self):
        """Flow stats report totals, links and window flows."""
        fleet = _fleet(_orbiter(1, 0.0), _orbiter(2, 300.0, fuel=10.0))
        net = _network()
        net.rebuild(fleet)
        net.request_transfer(1, 2, 10.0)
        net.update(0.5, fleet)
        net.update(0.5, fleet)
        stats = net.stats
        assert stats.total_fuel == pytest.approx(70.0)
        assert stats.active_connections == 1
        assert stats.average_efficiency == pytest.approx(0.88)
        assert stats.orbiter_to_orbiter_flow == pytest.approx(2.2)
        assert net.network_efficiency() == pytest.approx(0.88)
