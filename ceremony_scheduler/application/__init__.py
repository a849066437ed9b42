"""Application layer: ports, DTOs and async services."""
