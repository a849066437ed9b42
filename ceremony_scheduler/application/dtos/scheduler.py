"""Scheduler DTOs for application layer.

This module contains two types of definitions:
1. Dataclass-based DTOs (with DTO suffix) - for internal application layer use
2. Pydantic models - for payloads pushed to participant clients

QueueObservation is what a waiting participant's client renders; it is
serialized and pushed over the notification channel, so it is validated
like any other outbound payload.
"""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field

from ceremony_scheduler.domain.models.ceremony import CeremonyState


@dataclass(frozen=True)
class JoinResultDTO:
    """Result of joining a circuit queue.

    Attributes:
        circuit_id: Circuit that was joined.
        participant_id: The participant that joined.
        position: 1-based position after the join.
        is_current: True if the participant took the slot immediately.
        queue_version: Ledger version the join committed at.
    """

    circuit_id: str
    participant_id: str
    position: int
    is_current: bool
    queue_version: int


@dataclass(frozen=True)
class FinalArtifactsDTO:
    """Final key material of a circuit, supplied by the coordinator."""

    verification_key: bytes
    verifier_contract: bytes


@dataclass(frozen=True)
class LifecycleTransitionDTO:
    """A ceremony state transition applied by the lifecycle driver."""

    ceremony_id: str
    from_state: CeremonyState
    to_state: CeremonyState
    reason: str


class QueueObservation(BaseModel):
    """A participant's view of a circuit queue at one ledger version.

    Attributes:
        circuit_id: The observed circuit.
        participant_id: The observing participant.
        position: 1-based queue position, or None when not queued.
        is_current: True while the participant holds the slot.
        estimated_wait_seconds: Expected wait, or None when unavailable.
        current_contributor: Who holds the slot, if anyone.
        waiting_contributors: Participants queued behind the slot holder.
        completed_contributions: Valid contributions so far.
        failed_contributions: Invalid contributions and evictions so far.
        queue_version: Ledger version the observation was computed from.
    """

    model_config = ConfigDict(frozen=True)

    circuit_id: str = Field(description="Observed circuit")
    participant_id: str = Field(description="Observing participant")
    position: int | None = Field(default=None, ge=1, description="1-based queue position")
    is_current: bool = Field(default=False, description="Participant holds the slot")
    estimated_wait_seconds: int | None = Field(
        default=None,
        ge=0,
        description="Expected wait in seconds, None when no estimate is available",
    )
    current_contributor: str | None = Field(default=None, description="Slot holder")
    waiting_contributors: int = Field(ge=0, description="Queued behind the slot holder")
    completed_contributions: int = Field(ge=0, description="Valid contributions")
    failed_contributions: int = Field(ge=0, description="Failed contributions")
    queue_version: int = Field(ge=0, description="Ledger version of the snapshot")
