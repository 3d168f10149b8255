# Copyright (c) 2026 Jeroen Visser. All rights reserved.
# Licensed under the MIT License — see LICENSE.
"""Exceptions raised for illegal lifecycle transitions."""


class OrbitkeepError(Exception):
    """Base class for orbitkeep errors."""


class ManeuverStateError(OrbitkeepError):
    """A maneuver was asked to make a transition its state does not allow."""


class TransferStateError(OrbitkeepError):
    """A fuel transfer was asked to make a transition its state does not allow."""
