"""Shared structured logging for scheduler services.

Every service binds its class name and a component tag once, then
derives an operation-scoped logger per call so that log lines carry the
operation name, the ids it touched and the active correlation ID.

Usage:
    class QueueLedgerService(LoggingMixin):
        def __init__(self, ledger: QueueLedgerProtocol) -> None:
            self._ledger = ledger
            self._init_logger()

        async def join(self, circuit_id: str, participant_id: str) -> None:
            log = self._log_operation("join", circuit_id=circuit_id)
            log.info("participant_joined", participant_id=participant_id)
"""

import structlog

from ceremony_scheduler.infrastructure.observability.correlation import (
    get_correlation_id,
)


class LoggingMixin:
    """Mixin giving a service a bound structlog logger.

    Attributes:
        _log: Logger bound with ``service`` and ``component``.
    """

    _log: structlog.BoundLogger

    def _init_logger(self, component: str = "scheduler") -> None:
        """Bind the service logger. Call from ``__init__``.

        Args:
            component: Tag grouping related services (lifecycle, observer...).
        """
        self._log = structlog.get_logger().bind(
            service=type(self).__name__,
            component=component,
        )

    def _log_operation(self, operation: str, **context: object) -> structlog.BoundLogger:
        """Return a logger scoped to one operation.

        Args:
            operation: Operation name, e.g. ``join`` or ``evict``.
            **context: Ids and values to bind (circuit_id, participant_id...).

        Returns:
            Logger bound with the operation, correlation ID and context.
        """
        return self._log.bind(
            operation=operation,
            correlation_id=get_correlation_id(),
            **context,
        )
