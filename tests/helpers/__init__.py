"""Test helpers for ceremony scheduler tests.

Helpers:
    FakeTimeAuthority: Controllable time authority for deterministic tests
    make_ceremony / make_circuits: Ceremony builders
    open_ceremony / enqueue: Drive a container into a populated state

Usage:
    from tests.helpers import FakeTimeAuthority
"""

from tests.helpers.ceremony_factory import (
    CEREMONY_START,
    COORDINATOR_ID,
    enqueue,
    make_ceremony,
    make_circuits,
    open_ceremony,
)
from tests.helpers.fake_time_authority import FakeTimeAuthority

__all__ = [
    "CEREMONY_START",
    "COORDINATOR_ID",
    "FakeTimeAuthority",
    "enqueue",
    "make_ceremony",
    "make_circuits",
    "open_ceremony",
]
