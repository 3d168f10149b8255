"""
orbitkeep

Autonomous station-keeping for a fleet of orbiters around massive bodies,
plus a fuel transfer network that moves propellant between orbiters,
from bodies to orbiters and from orbiters to piloted vehicles. Includes
drift analysis, burn planning and execution, low-fuel policy, fleet
balancing, emergency refuelling and plain-data replication snapshots.
"""

from orbitkeep.domain.orbital_mechanics import (
    OrbitalConstants,
    OrbitalElements,
    state_to_elements,
    elements_to_state,
    circular_velocity,
)
from orbitkeep.domain.bodies import (
    Capability,
    PrimaryBody,
    Vehicle,
)
from orbitkeep.domain.orbiter import (
    Orbiter,
    OrbiterStatus,
)
from orbitkeep.domain.station_keeping import (
    StationKeepingConfig,
    FuelPolicy,
)
from orbitkeep.domain.drift_analysis import (
    DriftAnalysis,
    analyze_drift,
)
from orbitkeep.domain.maneuver_planning import (
    ManeuverType,
    OrbitalManeuver,
    plan_corrections,
)
from orbitkeep.domain.maneuver_execution import (
    ExecutionEvent,
    ManeuverExecutor,
)
from orbitkeep.domain.orbit_maintenance import OrbitMaintenance
from orbitkeep.domain.fuel_network import (
    Endpoint,
    FailureReason,
    FuelTransferNetwork,
    FuelTransferRequest,
    NetworkConfig,
    OptimizationMode,
    TransferOutcome,
    TransferState,
)
from orbitkeep.domain.fleet import (
    FleetConfig,
    FleetCoordinator,
    FleetStats,
    fleet_config_from_dict,
)
from orbitkeep.domain.serialization import (
    OrbiterSnapshot,
    apply_snapshot,
)

__version__ = "0.1.0"

__all__ = [
    "OrbitalConstants",
    "OrbitalElements",
    "state_to_elements",
    "elements_to_state",
    "circular_velocity",
    "Capability",
    "PrimaryBody",
    "Vehicle",
    "Orbiter",
    "OrbiterStatus",
    "StationKeepingConfig",
    "FuelPolicy",
    "DriftAnalysis",
    "analyze_drift",
    "ManeuverType",
    "OrbitalManeuver",
    "plan_corrections",
    "ExecutionEvent",
    "ManeuverExecutor",
    "OrbitMaintenance",
    "Endpoint",
    "FailureReason",
    "FuelTransferNetwork",
    "FuelTransferRequest",
    "NetworkConfig",
    "OptimizationMode",
    "TransferOutcome",
    "TransferState",
    "FleetConfig",
    "FleetCoordinator",
    "FleetStats",
    "fleet_config_from_dict",
    "OrbiterSnapshot",
    "apply_snapshot",
]
