"""In-memory ceremony repository with compare-and-swap state transitions."""

from __future__ import annotations

import asyncio
from datetime import datetime

from ceremony_scheduler.application.ports.ceremony_repository import (
    CeremonyRepositoryProtocol,
)
from ceremony_scheduler.domain.errors.ceremony import CeremonyNotFoundError
from ceremony_scheduler.domain.errors.concurrent_modification import (
    ConcurrentModificationError,
)
from ceremony_scheduler.domain.models.ceremony import Ceremony, CeremonyState


class CeremonyRepositoryStub(CeremonyRepositoryProtocol):
    """In-memory stub implementation of CeremonyRepositoryProtocol.

    It is NOT suitable for production use.
    """

    def __init__(self) -> None:
        self._ceremonies: dict[str, Ceremony] = {}
        # Lock for simulating atomic CAS operations
        self._cas_lock = asyncio.Lock()

    async def save(self, ceremony: Ceremony) -> None:
        if ceremony.ceremony_id in self._ceremonies:
            raise ValueError(f"Ceremony already exists: {ceremony.ceremony_id}")
        self._ceremonies[ceremony.ceremony_id] = ceremony

    async def get(self, ceremony_id: str) -> Ceremony | None:
        return self._ceremonies.get(ceremony_id)

    async def list_by_state(self, state: CeremonyState) -> list[Ceremony]:
        return [c for c in self._ceremonies.values() if c.state == state]

    async def transition_state_cas(
        self,
        ceremony_id: str,
        expected_state: CeremonyState,
        new_state: CeremonyState,
        now: datetime,
    ) -> Ceremony:
        """Atomic state transition using compare-and-swap.

        Raises:
            CeremonyNotFoundError: If the ceremony does not exist.
            ConcurrentModificationError: If the stored state is not expected_state.
            StateMismatchError: If new_state is not reachable from expected_state.
        """
        async with self._cas_lock:
            ceremony = self._ceremonies.get(ceremony_id)
            if ceremony is None:
                raise CeremonyNotFoundError(ceremony_id)
            if ceremony.state != expected_state:
                raise ConcurrentModificationError(
                    resource_id=f"ceremony {ceremony_id}",
                    expected=expected_state.value,
                    operation=f"transition to {new_state.value}",
                )
            updated = ceremony.with_state(new_state, now)
            self._ceremonies[ceremony_id] = updated
            return updated

    def clear(self) -> None:
        """Clear all stored data (for testing)."""
        self._ceremonies.clear()
