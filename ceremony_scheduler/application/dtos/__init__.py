"""Application DTOs for the ceremony scheduler."""

from ceremony_scheduler.application.dtos.scheduler import (
    FinalArtifactsDTO,
    JoinResultDTO,
    LifecycleTransitionDTO,
    QueueObservation,
)

__all__ = [
    "FinalArtifactsDTO",
    "JoinResultDTO",
    "LifecycleTransitionDTO",
    "QueueObservation",
]
