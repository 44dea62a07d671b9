"""Orchestration services.

- lifecycle.py: start a container and its task
- snapshot.py: checkpoint and export to an archive file
- restore.py: import an archive and restore a container
- cleanup.py: reap every container in the namespace
- orchestrator.py: the full pass and its termination wait
"""

from .lifecycle import LifecycleController, start_task
from .snapshot import SnapshotExporter
from .restore import (
    RestoreImporter,
    ImageSelector,
    select_first_image,
    select_image_by_name,
)
from .cleanup import CleanupReaper
from .orchestrator import (
    Orchestrator,
    OrchestrationResult,
    EXIT_OK,
    EXIT_FATAL,
    EXIT_CLEANUP_FAILED,
)

__all__ = [
    "LifecycleController",
    "start_task",
    "SnapshotExporter",
    "RestoreImporter",
    "ImageSelector",
    "select_first_image",
    "select_image_by_name",
    "CleanupReaper",
    "Orchestrator",
    "OrchestrationResult",
    "EXIT_OK",
    "EXIT_FATAL",
    "EXIT_CLEANUP_FAILED",
]
