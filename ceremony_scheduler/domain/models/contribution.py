"""Contribution records and circuit finalization records.

Contribution records are append-only: one per released slot holder that
reported an outcome. Valid records of a circuit carry contiguous zkey
indices starting at 0.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

# Width of the zero-padded zkey index used in artifact names.
ZKEY_INDEX_WIDTH: int = 5


def format_zkey_index(index: int) -> str:
    """Format a zkey index the way artifact names carry it (e.g. 00003)."""
    if index < 0:
        raise ValueError(f"zkey index cannot be negative, got {index}")
    return str(index).zfill(ZKEY_INDEX_WIDTH)


@dataclass(frozen=True, eq=True)
class ArtifactReference:
    """Pointer to an uploaded artifact and its content digest."""

    name: str
    storage_path: str
    digest: str


@dataclass(frozen=True, eq=True)
class ContributionRecord:
    """Immutable record of one reported contribution.

    Attributes:
        record_id: UUIDv7 of the record.
        ceremony_id: Ceremony the contribution belongs to.
        circuit_id: Circuit that was contributed to.
        participant_id: The contributor.
        zkey_index: Completed-contribution count at the time of reporting.
        contribution_time_ms: Reported computation time in milliseconds.
        verification_time_ms: Reported verification time in milliseconds.
        valid: Whether the verifier accepted the contribution.
        artifacts: Uploaded artifacts (zkey, transcript, ...).
        created_at: When the outcome was recorded.
    """

    record_id: UUID
    ceremony_id: str
    circuit_id: str
    participant_id: str
    zkey_index: int
    contribution_time_ms: int
    verification_time_ms: int
    valid: bool
    created_at: datetime
    artifacts: tuple[ArtifactReference, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.zkey_index < 0:
            raise ValueError("zkey_index cannot be negative")
        if self.contribution_time_ms < 0 or self.verification_time_ms < 0:
            raise ValueError("Reported timings cannot be negative")

    @property
    def zkey_label(self) -> str:
        return format_zkey_index(self.zkey_index)


@dataclass(frozen=True, eq=True)
class CircuitFinalization:
    """Digests of a circuit's final key material, computed by the coordinator.

    Attributes:
        ceremony_id: Ceremony the circuit belongs to.
        circuit_id: The finalized circuit.
        coordinator_id: Who performed the finalization.
        final_record_id: The terminal valid contribution record.
        verification_key_hash: BLAKE3 hex digest of the verification key.
        verifier_contract_hash: BLAKE3 hex digest of the verifier contract.
        beacon: Public randomness applied in the final step.
        beacon_hash: SHA-256 hex digest of the beacon.
        finalized_at: When the finalization was recorded.
    """

    ceremony_id: str
    circuit_id: str
    coordinator_id: str
    final_record_id: UUID
    verification_key_hash: str
    verifier_contract_hash: str
    beacon: str
    beacon_hash: str
    finalized_at: datetime
