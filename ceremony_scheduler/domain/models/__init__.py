"""Domain models for the ceremony scheduler."""

from ceremony_scheduler.domain.models.ceremony import (
    VALID_TRANSITIONS,
    Ceremony,
    CeremonyState,
    Circuit,
    TimeoutPolicy,
    TimeoutPolicyType,
)
from ceremony_scheduler.domain.models.circuit_queue import AvgTimings, CircuitQueue
from ceremony_scheduler.domain.models.contribution import (
    ArtifactReference,
    CircuitFinalization,
    ContributionRecord,
    format_zkey_index,
)
from ceremony_scheduler.domain.models.participant import (
    ContributionStep,
    Participant,
    ParticipantStatus,
)
from ceremony_scheduler.domain.models.timeout_record import TimeoutCause, TimeoutRecord

__all__ = [
    "VALID_TRANSITIONS",
    "ArtifactReference",
    "AvgTimings",
    "Ceremony",
    "CeremonyState",
    "Circuit",
    "CircuitFinalization",
    "CircuitQueue",
    "ContributionRecord",
    "ContributionStep",
    "Participant",
    "ParticipantStatus",
    "TimeoutCause",
    "TimeoutPolicy",
    "TimeoutPolicyType",
    "TimeoutRecord",
    "format_zkey_index",
]
