"""Data models for ctrsnap."""

from .errors import (
    ErrorType,
    OrchestratorException,
    RuntimeConnectionError,
    RuntimeCommandError,
    ResolutionError,
    PartialCheckpointError,
    PartialRestoreError,
    TaskNotFoundError,
    TaskNotRunningError,
    ContainerCleanupFailure,
    CleanupError,
)
from .runtime import (
    TaskStatus,
    CheckpointFacet,
    RestoreFacet,
    REQUIRED_CHECKPOINT_FACETS,
    REQUIRED_RESTORE_FACETS,
    ExitStatus,
    Image,
    CheckpointImage,
    ImageRef,
    ContainerInfo,
    ExitChannel,
)

__all__ = [
    # Error models
    "ErrorType",
    "OrchestratorException",
    "RuntimeConnectionError",
    "RuntimeCommandError",
    "ResolutionError",
    "PartialCheckpointError",
    "PartialRestoreError",
    "TaskNotFoundError",
    "TaskNotRunningError",
    "ContainerCleanupFailure",
    "CleanupError",
    # Runtime models
    "TaskStatus",
    "CheckpointFacet",
    "RestoreFacet",
    "REQUIRED_CHECKPOINT_FACETS",
    "REQUIRED_RESTORE_FACETS",
    "ExitStatus",
    "Image",
    "CheckpointImage",
    "ImageRef",
    "ContainerInfo",
    "ExitChannel",
]
