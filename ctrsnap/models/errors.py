"""Error models and exception classes for ctrsnap."""

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional, Sequence


class ErrorType(str, Enum):
    """Error type enumeration."""

    CONNECTION = "connection"
    RUNTIME_COMMAND = "runtime_command"
    RESOLUTION = "resolution"
    PARTIAL_CHECKPOINT = "partial_checkpoint"
    PARTIAL_RESTORE = "partial_restore"
    TASK_NOT_FOUND = "task_not_found"
    TASK_NOT_RUNNING = "task_not_running"
    CLEANUP = "cleanup"
    INTERNAL = "internal"


class OrchestratorException(Exception):
    """Base exception for ctrsnap."""

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.INTERNAL,
        container_id: Optional[str] = None,
    ):
        self.message = message
        self.error_type = error_type
        self.container_id = container_id
        super().__init__(message)

    def to_log_fields(self) -> dict:
        """Key/value pairs for structured log events."""
        fields = {"error_type": self.error_type.value, "error": self.message}
        if self.container_id:
            fields["container_id"] = self.container_id
        return fields


class RuntimeConnectionError(OrchestratorException):
    """The Runtime Service cannot be reached."""

    def __init__(self, address: str, message: str = None, **kwargs):
        self.address = address
        super().__init__(
            message=message or f"cannot connect to runtime service at {address}",
            error_type=ErrorType.CONNECTION,
            **kwargs,
        )


class RuntimeCommandError(OrchestratorException):
    """A Runtime Service call failed."""

    def __init__(
        self,
        command: Sequence[str],
        exit_code: Optional[int],
        stderr: str = "",
        **kwargs,
    ):
        self.command = list(command)
        self.exit_code = exit_code
        self.stderr = stderr.strip()
        detail = self.stderr or f"exit code {exit_code}"
        super().__init__(
            message=f"{' '.join(self.command)}: {detail}",
            error_type=ErrorType.RUNTIME_COMMAND,
            **kwargs,
        )

    @property
    def not_found(self) -> bool:
        """Whether the runtime reported a missing object."""
        return "not found" in self.stderr.lower()


class ResolutionError(OrchestratorException):
    """An image could not be pulled, imported or looked up."""

    def __init__(self, reference: str, message: str = None, **kwargs):
        self.reference = reference
        super().__init__(
            message=message or f"failed to resolve image {reference}",
            error_type=ErrorType.RESOLUTION,
            **kwargs,
        )


class PartialCheckpointError(OrchestratorException):
    """A checkpoint is missing one of its required facets."""

    def __init__(self, checkpoint_name: str, missing: Sequence[str], **kwargs):
        self.checkpoint_name = checkpoint_name
        self.missing = list(missing)
        super().__init__(
            message=(
                f"checkpoint {checkpoint_name} is unusable, "
                f"missing facets: {', '.join(self.missing)}"
            ),
            error_type=ErrorType.PARTIAL_CHECKPOINT,
            **kwargs,
        )


class PartialRestoreError(OrchestratorException):
    """A restore did not apply every required facet."""

    def __init__(self, image_name: str, missing: Sequence[str], **kwargs):
        self.image_name = image_name
        self.missing = list(missing)
        super().__init__(
            message=(
                f"restore from {image_name} is incomplete, "
                f"missing facets: {', '.join(self.missing)}"
            ),
            error_type=ErrorType.PARTIAL_RESTORE,
            **kwargs,
        )


class TaskNotFoundError(OrchestratorException):
    """The container has no task to tear down."""

    def __init__(self, container_id: str, **kwargs):
        super().__init__(
            message=f"no task found for container {container_id}",
            error_type=ErrorType.TASK_NOT_FOUND,
            container_id=container_id,
            **kwargs,
        )


class TaskNotRunningError(OrchestratorException):
    """The container's task is not in the running state."""

    def __init__(self, container_id: str, status: str, **kwargs):
        self.status = status
        super().__init__(
            message=f"task for container {container_id} is {status}, not running",
            error_type=ErrorType.TASK_NOT_RUNNING,
            container_id=container_id,
            **kwargs,
        )


@dataclass(frozen=True)
class ContainerCleanupFailure:
    """One container the reaper could not fully remove."""

    container_id: str
    error: BaseException

    def __str__(self) -> str:
        return f"container ({self.container_id}): {self.error}"


class CleanupError(OrchestratorException):
    """Aggregate of per-container cleanup failures.

    Failures are kept as a list and only rendered to text when the
    exception itself is formatted.
    """

    def __init__(self, failures: Sequence[ContainerCleanupFailure]):
        self.failures: List[ContainerCleanupFailure] = list(failures)
        super().__init__(
            message=f"cleanup failed for {len(self.failures)} container(s)",
            error_type=ErrorType.CLEANUP,
        )

    @property
    def count(self) -> int:
        return len(self.failures)

    @property
    def container_ids(self) -> List[str]:
        return [f.container_id for f in self.failures]

    def __len__(self) -> int:
        return len(self.failures)

    def __iter__(self) -> Iterator[ContainerCleanupFailure]:
        return iter(self.failures)

    def __getitem__(self, index: int) -> ContainerCleanupFailure:
        return self.failures[index]

    def __str__(self) -> str:
        return "\n".join(str(failure) for failure in self.failures)
