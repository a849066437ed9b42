"""Observability infrastructure: structured logging and correlation IDs.

Usage:
    from ceremony_scheduler.infrastructure.observability import (
        configure_structlog,
        ensure_correlation_id,
    )

    configure_structlog(environment="production")
    ensure_correlation_id()
"""

from ceremony_scheduler.infrastructure.observability.correlation import (
    correlation_id_processor,
    ensure_correlation_id,
    generate_correlation_id,
    get_correlation_id,
    set_correlation_id,
)
from ceremony_scheduler.infrastructure.observability.logging import configure_structlog

__all__: list[str] = [
    "configure_structlog",
    "correlation_id_processor",
    "ensure_correlation_id",
    "generate_correlation_id",
    "get_correlation_id",
    "set_correlation_id",
]
