# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Port interfaces for fleet state I/O.

Adapters implement these to handle different storage formats.
"""
from abc import ABC, abstractmethod
from typing import Any


class FleetStateReader(ABC):
    """Port for reading scenarios and saved fleet state."""

    @abstractmethod
    def read_scenario(self, path: str) -> dict[str, Any]:
        """Read and parse a scenario file."""
        ...


class FleetStateWriter(ABC):
    """Port for writing fleet state."""

    @abstractmethod
    def write_state(self, state: dict[str, Any], path: str) -> None:
        """Write fleet state to an output file."""
        ...
