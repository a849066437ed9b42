"""In-memory stub adapters for development and testing.

These stubs implement the application ports in process memory. They keep
the contracts of a remote ledger (versioned conditional writes, atomic
batches, change notifications) but are not durable.
"""

from ceremony_scheduler.infrastructure.stubs.ceremony_repository_stub import (
    CeremonyRepositoryStub,
)
from ceremony_scheduler.infrastructure.stubs.queue_ledger_stub import QueueLedgerStub
from ceremony_scheduler.infrastructure.stubs.queue_notifier_stub import (
    QueueNotifierStub,
)

__all__ = ["CeremonyRepositoryStub", "QueueLedgerStub", "QueueNotifierStub"]
