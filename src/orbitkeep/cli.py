# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Command-line scenario runner.

Usage:
    # Run a scenario for two minutes of simulated time and save the result
    orbitkeep -i scenario.json -o state.json --duration 120 --dt 0.1

    # Also print the fleet and per-orbiter maintenance reports
    orbitkeep -i scenario.json -o state.json --report -v

A scenario is a JSON object with optional "config", "bodies", "vehicles",
"orbiters" (saved orbiter state) and "deployments" (orbits to deploy new
orbiters on). The output has the same shape, so it can be run again.
"""
import argparse
import logging
import math
import sys
from dataclasses import asdict
from typing import Any

from orbitkeep.adapters import JsonFleetStateReader, JsonFleetStateWriter
from orbitkeep.domain.fleet import (
    FleetCoordinator,
    fleet_config_from_dict,
    fleet_config_to_dict,
)
from orbitkeep.domain.orbital_mechanics import OrbitalElements
from orbitkeep.domain.serialization import (
    body_from_dict,
    body_to_dict,
    vehicle_from_dict,
    vehicle_to_dict,
)

logger = logging.getLogger(__name__)


def build_fleet(scenario: dict[str, Any]) -> FleetCoordinator:
    """
    Build a fleet, its bodies and vehicles from scenario data.

    Raises:
        ValueError: On malformed entries or a deployment around an unknown body.
    """
    fleet = FleetCoordinator(fleet_config_from_dict(scenario.get("config")))
    fleet.bodies = [body_from_dict(b) for b in scenario.get("bodies", [])]
    fleet.vehicles = [vehicle_from_dict(v) for v in scenario.get("vehicles", [])]
    fleet.elapsed = float(scenario.get("elapsed", 0.0))
    fleet.load_orbiters(scenario.get("orbiters", []))

    bodies = {b.name: b for b in fleet.bodies}
    for deployment in scenario.get("deployments", []):
        name = deployment.get("body")
        if name not in bodies:
            raise ValueError(f"deployment refers to unknown body {name!r}")
        elements = OrbitalElements(
            semi_major_axis=float(deployment["semi_major_axis"]),
            eccentricity=float(deployment.get("eccentricity", 0.0)),
            true_anomaly=math.radians(float(deployment.get("true_anomaly_deg", 0.0))),
        )
        fleet.deploy_in_orbit(
            bodies[name], elements,
            fuel=deployment.get("fuel"),
            owner_id=int(deployment.get("owner_id", 0)),
        )
    return fleet


def fleet_state(fleet: FleetCoordinator) -> dict[str, Any]:
    """Everything needed to resume the run, plus the latest statistics."""
    state = fleet.to_dict()
    state["config"] = fleet_config_to_dict(fleet.config)
    state["bodies"] = [body_to_dict(b) for b in fleet.bodies]
    state["vehicles"] = [vehicle_to_dict(v) for v in fleet.vehicles]
    state["stats"] = {
        "fleet": asdict(fleet.stats),
        "network": asdict(fleet.network.stats),
    }
    return state


def run(
    input_path: str,
    output_path: str,
    duration: float = 120.0,
    dt: float = 0.1,
) -> FleetCoordinator:
    """
    Load a scenario, simulate it for duration seconds and save the result.

    Returns:
        The fleet after the run.
    """
    if dt <= 0:
        raise ValueError(f"dt must be positive, got {dt}")
    if duration < 0:
        raise ValueError(f"duration must be non-negative, got {duration}")

    scenario = JsonFleetStateReader().read_scenario(input_path)
    fleet = build_fleet(scenario)
    logger.info(
        "loaded %d orbiters, %d bodies, %d vehicles",
        len(fleet.orbiters), len(fleet.bodies), len(fleet.vehicles),
    )

    steps = int(round(duration / dt))
    for _ in range(steps):
        fleet.update(dt)
    fleet.refresh_stats()

    JsonFleetStateWriter().write_state(fleet_state(fleet), output_path)
    return fleet


def main():
    parser = argparse.ArgumentParser(
        description="Run an orbital fleet station-keeping and fuel logistics scenario"
    )
    parser.add_argument(
        '--input', '-i', required=True,
        help="Path to scenario JSON (bodies, vehicles, orbiters, deployments)"
    )
    parser.add_argument(
        '--output', '-o', required=True,
        help="Path to write the resulting fleet state JSON"
    )
    parser.add_argument(
        '--duration', type=float, default=120.0,
        help="Simulated seconds to run (default: 120)"
    )
    parser.add_argument(
        '--dt', type=float, default=0.1,
        help="Tick length in seconds (default: 0.1)"
    )
    parser.add_argument(
        '--report', action='store_true', default=False,
        help="Print the fleet status and per-orbiter maintenance reports"
    )
    parser.add_argument(
        '--verbose', '-v', action='store_true', default=False,
        help="Log per-tick detail"
    )

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        fleet = run(
            input_path=args.input,
            output_path=args.output,
            duration=args.duration,
            dt=args.dt,
        )
        print(f"Simulated {args.duration:g} s for {len(fleet.orbiters)} orbiters; "
              f"wrote {args.output}.")

        if args.report:
            print("\n".join(fleet.status_report()))
            for _, maintenance in sorted(fleet.maintenance.items()):
                print()
                print("\n".join(maintenance.maintenance_report()))

    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except (KeyError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
