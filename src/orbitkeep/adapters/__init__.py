# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""
Adapters for fleet state I/O.

External dependencies (json, file I/O) are confined to this layer.
"""
from orbitkeep.adapters.json_io import JsonFleetStateReader, JsonFleetStateWriter

__all__ = [
    "JsonFleetStateReader",
    "JsonFleetStateWriter",
]
