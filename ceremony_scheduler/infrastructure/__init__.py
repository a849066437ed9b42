"""Infrastructure adapters: in-memory ledger stubs, observability, monitoring."""
