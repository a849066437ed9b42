"""Ceremony aggregate and its lifecycle state machine.

State transitions:
    SCHEDULED -> OPENED -> CLOSED -> FINALIZED

No transition skips a state. Circuits are independent queues; their
sequence position orders display and finalization, not scheduling.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

from ceremony_scheduler.domain.errors.ceremony import (
    CircuitNotFoundError,
    StateMismatchError,
)

# Fixed policy window and dynamic fallback window.
DEFAULT_TIMEOUT_WINDOW_SECONDS: int = 3600

# Dynamic windows are a multiple of the average contribution time.
DEFAULT_DYNAMIC_MULTIPLIER: float = 2.0

# Minimum wait before a timed-out participant may re-join.
DEFAULT_COOLDOWN_SECONDS: int = 600


class CeremonyState(Enum):
    """Lifecycle state of a ceremony."""

    SCHEDULED = "scheduled"
    OPENED = "opened"
    CLOSED = "closed"
    FINALIZED = "finalized"

    def is_terminal(self) -> bool:
        return self == CeremonyState.FINALIZED


VALID_TRANSITIONS: dict[CeremonyState, frozenset[CeremonyState]] = {
    CeremonyState.SCHEDULED: frozenset({CeremonyState.OPENED}),
    CeremonyState.OPENED: frozenset({CeremonyState.CLOSED}),
    CeremonyState.CLOSED: frozenset({CeremonyState.FINALIZED}),
    CeremonyState.FINALIZED: frozenset(),
}


class TimeoutPolicyType(Enum):
    """How the contribution window of the slot holder is computed."""

    FIXED = "fixed"
    DYNAMIC = "dynamic"


@dataclass(frozen=True, eq=True)
class TimeoutPolicy:
    """Per-ceremony eviction policy.

    Attributes:
        policy_type: FIXED or DYNAMIC.
        fixed_window_seconds: Window used by the FIXED policy.
        dynamic_multiplier: Multiple of the average contribution time used
            by the DYNAMIC policy.
        dynamic_fallback_window_seconds: DYNAMIC window while the circuit has
            no average yet. None leaves the first contributor unbounded.
        cooldown_seconds: Re-join cooldown after an eviction.
    """

    policy_type: TimeoutPolicyType = field(default=TimeoutPolicyType.FIXED)
    fixed_window_seconds: int = field(default=DEFAULT_TIMEOUT_WINDOW_SECONDS)
    dynamic_multiplier: float = field(default=DEFAULT_DYNAMIC_MULTIPLIER)
    dynamic_fallback_window_seconds: int | None = field(
        default=DEFAULT_TIMEOUT_WINDOW_SECONDS
    )
    cooldown_seconds: int = field(default=DEFAULT_COOLDOWN_SECONDS)

    def __post_init__(self) -> None:
        if self.fixed_window_seconds <= 0:
            raise ValueError(
                f"fixed_window_seconds must be positive, got {self.fixed_window_seconds}"
            )
        if self.dynamic_multiplier < 1.0:
            raise ValueError(
                f"dynamic_multiplier must be at least 1.0, got {self.dynamic_multiplier}"
            )
        if (
            self.dynamic_fallback_window_seconds is not None
            and self.dynamic_fallback_window_seconds <= 0
        ):
            raise ValueError("dynamic_fallback_window_seconds must be positive")
        if self.cooldown_seconds < 0:
            raise ValueError(f"cooldown_seconds cannot be negative, got {self.cooldown_seconds}")


@dataclass(frozen=True, eq=True)
class Circuit:
    """A circuit of the ceremony with its own waiting queue.

    Circuit IDs are unique across ceremonies; the ledger keys queues by
    circuit ID alone.

    Attributes:
        circuit_id: Unique circuit identifier.
        sequence_position: 1-based display and finalization order.
        name: Human-readable name.
        expected_contributions: Number of valid contributions after which
            the circuit is complete. None means open-ended.
    """

    circuit_id: str
    sequence_position: int
    name: str = field(default="")
    expected_contributions: int | None = field(default=None)

    def __post_init__(self) -> None:
        if self.sequence_position < 1:
            raise ValueError(
                f"sequence_position must be >= 1, got {self.sequence_position}"
            )
        if self.expected_contributions is not None and self.expected_contributions < 1:
            raise ValueError("expected_contributions must be >= 1 when set")


@dataclass(frozen=True, eq=True)
class Ceremony:
    """A multi-circuit ceremony with a fixed lifecycle.

    Attributes:
        ceremony_id: Unique identifier.
        title: Human-readable title.
        start_date: Instant at which the ceremony opens (timezone-aware).
        end_date: Instant at which the ceremony closes (timezone-aware).
        coordinator_id: Participant ID holding the coordinator capability.
        circuits: Circuits ordered by sequence position.
        timeout_policy: Eviction policy for every circuit.
        state: Current lifecycle state.
        version: Incremented on every state change.
        last_updated: When the state last changed.
    """

    ceremony_id: str
    title: str
    start_date: datetime
    end_date: datetime
    coordinator_id: str
    circuits: tuple[Circuit, ...]
    timeout_policy: TimeoutPolicy = field(default_factory=TimeoutPolicy)
    state: CeremonyState = field(default=CeremonyState.SCHEDULED)
    version: int = field(default=1)
    last_updated: datetime | None = field(default=None)

    def __post_init__(self) -> None:
        """Validate ceremony invariants."""
        if self.start_date.tzinfo is None or self.end_date.tzinfo is None:
            raise ValueError("Ceremony dates must be timezone-aware")
        if self.end_date <= self.start_date:
            raise ValueError("Ceremony end_date must be after start_date")
        if not self.circuits:
            raise ValueError(f"Ceremony {self.ceremony_id} has no circuits")
        ids = [c.circuit_id for c in self.circuits]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Ceremony {self.ceremony_id} has duplicate circuit IDs")
        positions = [c.sequence_position for c in self.circuits]
        if positions != sorted(set(positions)):
            raise ValueError(
                "Circuits must be ordered by unique sequence_position"
            )

    @property
    def is_open(self) -> bool:
        return self.state == CeremonyState.OPENED

    def circuit(self, circuit_id: str) -> Circuit:
        """Look up a circuit of this ceremony.

        Raises:
            CircuitNotFoundError: If the circuit is not part of the ceremony.
        """
        for circuit in self.circuits:
            if circuit.circuit_id == circuit_id:
                return circuit
        raise CircuitNotFoundError(circuit_id, self.ceremony_id)

    def can_transition_to(self, target: CeremonyState) -> bool:
        return target in VALID_TRANSITIONS[self.state]

    def is_start_due(self, now: datetime) -> bool:
        return self.state == CeremonyState.SCHEDULED and now >= self.start_date

    def is_end_due(self, now: datetime) -> bool:
        return self.state == CeremonyState.OPENED and now >= self.end_date

    def with_state(self, target: CeremonyState, now: datetime) -> Ceremony:
        """Create a new ceremony in the target state.

        Args:
            target: The state to transition to.
            now: Transition instant.

        Returns:
            New Ceremony with the state applied and version incremented.

        Raises:
            StateMismatchError: If the transition skips or reverses a state.
        """
        if not self.can_transition_to(target):
            sources = [
                state.value
                for state, targets in VALID_TRANSITIONS.items()
                if target in targets
            ]
            raise StateMismatchError(
                subject=f"ceremony {self.ceremony_id}",
                current_state=self.state.value,
                expected_states=sources,
                operation=f"transition to {target.value}",
            )
        return replace(self, state=target, version=self.version + 1, last_updated=now)
