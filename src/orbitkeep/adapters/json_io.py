# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""JSON implementations of the fleet state ports."""
import json
from typing import Any

from orbitkeep.ports import FleetStateReader, FleetStateWriter


class JsonFleetStateReader(FleetStateReader):
    """Reads scenarios from JSON files."""

    def read_scenario(self, path: str) -> dict[str, Any]:
        with open(path, encoding='utf-8') as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"{path} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a JSON object at the top level")
        return data


class JsonFleetStateWriter(FleetStateWriter):
    """Writes fleet state to JSON files."""

    def write_state(self, state: dict[str, Any], path: str) -> None:
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(state, f, indent=2, ensure_ascii=False)
