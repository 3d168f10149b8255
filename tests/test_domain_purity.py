# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""Domain modules stay free of I/O and third-party imports other than numpy."""
import ast
import importlib

import pytest


DOMAIN_MODULES = [
    "orbital_mechanics",
    "bodies",
    "orbiter",
    "errors",
    "station_keeping",
    "drift_analysis",
    "maneuver_planning",
    "maneuver_execution",
    "orbit_maintenance",
    "fuel_network",
    "serialization",
    "fleet",
]

ALLOWED = {
    'math', 'dataclasses', 'typing', 'enum', 'collections', 'logging', 'numpy',
}


def _imported_roots(path):
    with open(path) as f:
        tree = ast.parse(f.read())
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                yield alias.name
        if isinstance(node, ast.ImportFrom) and node.module and node.level == 0:
            yield node.module


class TestDomainPurity:

    @pytest.mark.parametrize("name", DOMAIN_MODULES)
    def test_module_pure(self, name):
        """Domain modules only import stdlib, numpy and orbitkeep.domain."""
        mod = importlib.import_module(f"orbitkeep.domain.{name}")
        for imported in _imported_roots(mod.__file__):
            root = imported.split('.')[0]
            if root == 'orbitkeep':
                assert imported.startswith('orbitkeep.domain'), (
                    f"{name} imports outside the domain: '{imported}'"
                )
            else:
                assert root in ALLOWED, f"{name} has disallowed import '{imported}'"
