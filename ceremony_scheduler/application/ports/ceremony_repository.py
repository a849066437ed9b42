"""Ceremony repository port."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from ceremony_scheduler.domain.models.ceremony import Ceremony, CeremonyState


class CeremonyRepositoryProtocol(Protocol):
    """Protocol for ceremony storage operations.

    Methods:
        save: Store a new ceremony
        get: Retrieve a ceremony by ID
        list_by_state: List ceremonies in a lifecycle state
        transition_state_cas: Atomically move a ceremony between states
    """

    async def save(self, ceremony: Ceremony) -> None:
        """Save a new ceremony.

        Raises:
            ValueError: If a ceremony with the same ID already exists.
        """
        ...

    async def get(self, ceremony_id: str) -> Ceremony | None:
        ...

    async def list_by_state(self, state: CeremonyState) -> list[Ceremony]:
        ...

    async def transition_state_cas(
        self,
        ceremony_id: str,
        expected_state: CeremonyState,
        new_state: CeremonyState,
        now: datetime,
    ) -> Ceremony:
        """Atomically move a ceremony from expected_state to new_state.

        Two concurrent callers racing on the same transition cannot both
        succeed: the loser observes the new state and fails.

        Returns:
            The updated ceremony.

        Raises:
            CeremonyNotFoundError: If the ceremony does not exist.
            ConcurrentModificationError: If the stored state is not expected_state.
            StateMismatchError: If the transition is not allowed.
        """
        ...
