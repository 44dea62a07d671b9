"""Runtime data models shared by the orchestration services.

These describe what the orchestrator sees of the Runtime Service. The
handles themselves (containers and tasks) are protocol objects defined in
``ctrsnap.services.runtime.interfaces``; the types here are plain values.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple


class TaskStatus(str, Enum):
    """Task status as reported by the runtime."""

    CREATED = "created"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"
    DELETED = "deleted"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str) -> "TaskStatus":
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.UNKNOWN


class CheckpointFacet(str, Enum):
    """Independently captured aspects of a checkpoint."""

    RUNTIME = "checkpoint-runtime"
    TASK = "checkpoint-task"


class RestoreFacet(str, Enum):
    """Independently restored aspects of a container."""

    IMAGE = "restore-image"
    SPEC = "restore-spec"
    RUNTIME = "restore-runtime"


REQUIRED_CHECKPOINT_FACETS: FrozenSet[CheckpointFacet] = frozenset(CheckpointFacet)
REQUIRED_RESTORE_FACETS: FrozenSet[RestoreFacet] = frozenset(RestoreFacet)


@dataclass(frozen=True)
class ExitStatus:
    """Result of a task's process terminating or being deleted."""

    exit_code: int
    exited_at: datetime
    error: Optional[str] = None

    def result(self) -> Tuple[int, datetime, Optional[str]]:
        return self.exit_code, self.exited_at, self.error


@dataclass(frozen=True)
class Image:
    """An image materialized in the runtime's image store."""

    name: str
    created_at: datetime
    digest: Optional[str] = None
    config: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CheckpointImage:
    """A named, immutable snapshot of a container+task pair."""

    name: str
    created_at: datetime
    container_id: str
    facets: FrozenSet[CheckpointFacet] = frozenset()
    digest: Optional[str] = None

    @property
    def missing_facets(self) -> FrozenSet[CheckpointFacet]:
        return REQUIRED_CHECKPOINT_FACETS - self.facets


@dataclass(frozen=True)
class ImageRef:
    """Reference to an image produced by an archive import."""

    name: str
    digest: Optional[str] = None


@dataclass
class ContainerInfo:
    """Metadata record of a container."""

    id: str
    image: str
    snapshot_key: Optional[str] = None
    snapshotter: Optional[str] = None
    labels: Dict[str, str] = field(default_factory=dict)
    spec: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None


# One-shot exit notification for a task. Resolved exactly once by the
# runtime when the task's process ends.
ExitChannel = asyncio.Future
