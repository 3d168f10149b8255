# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""Tests for incremental maneuver execution."""
import numpy as np
import pytest


# ── Helpers ──────────────────────────────────────────────────────────

def _orbiter(**kwargs):
    from orbitkeep.domain.orbiter import Orbiter

    defaults = dict(orbiter_id=1, name="SAT-001", position=(1000.0, 0.0), velocity=(0.0, 10.0))
    defaults.update(kwargs)
    return Orbiter(**defaults)


def _prograde(delta_v, config):
    from orbitkeep.domain.maneuver_planning import ManeuverType, plan_manual_correction

    return plan_manual_correction(
        ManeuverType.PROGRADE, delta_v, np.array([1000.0, 0.0]), np.array([0.0, 10.0]), config,
    )


# ── Starting ─────────────────────────────────────────────────────────

class TestStart:

    def test_delay_blocks_start(self):
        """A fresh executor waits out the correction delay."""
        from orbitkeep.domain.maneuver_execution import ManeuverExecutor
        from orbitkeep.domain.station_keeping import StationKeepingConfig

        cfg = StationKeepingConfig()
        ex = ManeuverExecutor()
        assert not ex.start(_prograde(1.0, cfg), cfg)
        ex.advance_clock(5.0)
        assert ex.start(_prograde(1.0, cfg), cfg)

    def test_bypass_delay(self):
        """Emergency starts bypass the delay."""
        from orbitkeep.domain.maneuver_execution import ExecutionEvent, ManeuverExecutor
        from orbitkeep.domain.station_keeping import StationKeepingConfig

        cfg = StationKeepingConfig()
        ex = ManeuverExecutor()
        assert ex.start(_prograde(1.0, cfg), cfg, bypass_delay=True)
        assert ex.last_event is ExecutionEvent.STARTED

    def test_one_at_a_time(self):
        """A busy executor refuses a second maneuver."""
        from orbitkeep.domain.maneuver_execution import ManeuverExecutor
        from orbitkeep.domain.station_keeping import StationKeepingConfig

        cfg = StationKeepingConfig()
        ex = ManeuverExecutor()
        ex.start(_prograde(1.0, cfg), cfg, bypass_delay=True)
        assert not ex.start(_prograde(1.0, cfg), cfg, bypass_delay=True)


# ── Stepping ─────────────────────────────────────────────────────────

class TestStep:

    def test_completes_in_thrust_limited_slices(self):
        """2.0 delta-V at 0.981 per second takes three one-second ticks."""
        from orbitkeep.domain.maneuver_execution import ExecutionEvent, ManeuverExecutor
        from orbitkeep.domain.maneuver_planning import ManeuverState
        from orbitkeep.domain.station_keeping import StationKeepingConfig

        cfg = StationKeepingConfig()
        orb = _orbiter(current_fuel=60.0)
        ex = ManeuverExecutor()
        maneuver = _prograde(2.0, cfg)
        ex.start(maneuver, cfg, bypass_delay=True)

        events = [ex.step(orb, cfg, 1.0) for _ in range(3)]
        assert events == [
            ExecutionEvent.PROGRESSED, ExecutionEvent.PROGRESSED, ExecutionEvent.COMPLETED,
        ]
        assert maneuver.state is ManeuverState.COMPLETE
        assert orb.velocity[1] == pytest.approx(12.0)
        assert orb.maintenance_fuel_reserve == pytest.approx(3.0)
        assert orb.current_fuel == pytest.approx(58.0)
        assert ex.corrections_performed == 1
        assert ex.total_delta_v == pytest.approx(2.0)
        assert not ex.is_busy

    def test_aborts_when_reserve_short(self):
        """A slice the reserve cannot pay for aborts the maneuver."""
        from orbitkeep.domain.maneuver_execution import ExecutionEvent, ManeuverExecutor
        from orbitkeep.domain.maneuver_planning import ManeuverState
        from orbitkeep.domain.station_keeping import StationKeepingConfig

        cfg = StationKeepingConfig()
        orb = _orbiter(current_fuel=10.0, maintenance_fuel_reserve=0.5)
        ex = ManeuverExecutor()
        maneuver = _prograde(2.0, cfg)
        ex.start(maneuver, cfg, bypass_delay=True)
        assert ex.step(orb, cfg, 1.0) is ExecutionEvent.ABORTED_NO_FUEL
        assert maneuver.state is ManeuverState.ABORTED
        assert orb.maintenance_fuel_reserve == pytest.approx(0.5)
        assert orb.velocity[1] == pytest.approx(10.0)

    def test_timeout(self):
        """Running past twice the planned duration aborts."""
        from orbitkeep.domain.maneuver_execution import ExecutionEvent, ManeuverExecutor
        from orbitkeep.domain.maneuver_planning import ManeuverType, OrbitalManeuver
        from orbitkeep.domain.station_keeping import StationKeepingConfig

        cfg = StationKeepingConfig()
        orb = _orbiter(current_fuel=60.0)
        maneuver = OrbitalManeuver(
            maneuver_type=ManeuverType.PROGRADE, burn_vector=np.array([0.0, 3.0]),
            delta_v=3.0, fuel_cost=3.0, duration=0.1,
        )
        ex = ManeuverExecutor()
        ex.start(maneuver, cfg, bypass_delay=True)
        assert ex.step(orb, cfg, 1.0) is ExecutionEvent.ABORTED_TIMEOUT
        assert not ex.is_busy

    def test_idle_step(self):
        """Stepping with nothing active is a no-op."""
        from orbitkeep.domain.maneuver_execution import ExecutionEvent, ManeuverExecutor
        from orbitkeep.domain.station_keeping import StationKeepingConfig

        orb = _orbiter()
        assert ManeuverExecutor().step(orb, StationKeepingConfig(), 1.0) is ExecutionEvent.IDLE

    def test_reserve_never_exceeds_fuel(self):
        """Executing burns keeps reserve ≤ fuel throughout."""
        from orbitkeep.domain.maneuver_execution import ManeuverExecutor
        from orbitkeep.domain.station_keeping import StationKeepingConfig

        cfg = StationKeepingConfig()
        orb = _orbiter(current_fuel=4.0)
        ex = ManeuverExecutor()
        ex.start(_prograde(5.0, cfg), cfg, bypass_delay=True)
        for _ in range(20):
            ex.step(orb, cfg, 0.5)
            assert orb.maintenance_fuel_reserve <= orb.current_fuel + 1e-12


# ── Manual abort and impulsive burns ─────────────────────────────────

class TestAbortAndImmediate:

    def test_abort_active(self):
        """abort_active stops the running maneuver."""
        from orbitkeep.domain.maneuver_execution import ExecutionEvent, ManeuverExecutor
        from orbitkeep.domain.station_keeping import StationKeepingConfig

        cfg = StationKeepingConfig()
        ex = ManeuverExecutor()
        ex.start(_prograde(1.0, cfg), cfg, bypass_delay=True)
        assert ex.abort_active()
        assert ex.last_event is ExecutionEvent.ABORTED_MANUAL
        assert not ex.abort_active()

    def test_execute_immediate_sized_to_reserve(self):
        """Impulsive burns never spend more than the reserve."""
        from orbitkeep.domain.maneuver_execution import ManeuverExecutor
        from orbitkeep.domain.station_keeping import StationKeepingConfig

        orb = _orbiter(current_fuel=60.0)
        applied = ManeuverExecutor().execute_immediate(
            orb, 8.0, np.array([0.0, -1.0]), StationKeepingConfig(),
        )
        assert applied == pytest.approx(5.0)
        assert orb.maintenance_fuel_reserve == pytest.approx(0.0)
        assert orb.velocity[1] == pytest.approx(5.0)


# ── Pre-start validation ─────────────────────────────────────────────

class TestValidateManeuver:

    def test_affordable_burn_passes(self):
        """A burn inside the reserve and the burn limit may start."""
        from orbitkeep.domain.maneuver_execution import validate_maneuver
        from orbitkeep.domain.station_keeping import StationKeepingConfig

        cfg = StationKeepingConfig()
        assert validate_maneuver(_prograde(2.0, cfg), _orbiter(), cfg)

    def test_depleted_orbiter_rejected(self):
        """Non-operational orbiters cannot start burns."""
        from orbitkeep.domain.maneuver_execution import validate_maneuver
        from orbitkeep.domain.orbiter import OrbiterStatus
        from orbitkeep.domain.station_keeping import StationKeepingConfig

        cfg = StationKeepingConfig()
        orb = _orbiter(status=OrbiterStatus.DEPLETED)
        assert not validate_maneuver(_prograde(2.0, cfg), orb, cfg)

    def test_reserve_too_small(self):
        """Fuel cost above the maintenance reserve is rejected."""
        from orbitkeep.domain.maneuver_execution import validate_maneuver
        from orbitkeep.domain.station_keeping import StationKeepingConfig

        cfg = StationKeepingConfig()
        orb = _orbiter(maintenance_fuel_reserve=1.0)
        assert not validate_maneuver(_prograde(2.0, cfg), orb, cfg)

    def test_oversized_burn_rejected(self):
        """Burns above twice max_single_burn are rejected."""
        from orbitkeep.domain.maneuver_execution import validate_maneuver
        from orbitkeep.domain.station_keeping import StationKeepingConfig

        burn = _prograde(5.0, StationKeepingConfig())
        assert not validate_maneuver(burn, _orbiter(), StationKeepingConfig(max_single_burn=2.0))
        assert validate_maneuver(burn, _orbiter(), StationKeepingConfig(max_single_burn=2.5))
