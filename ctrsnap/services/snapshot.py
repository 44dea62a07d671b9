"""Checkpoint a running container and export it as an archive file.

Checkpoint images are named
``<prefix>/checkpoint/container/<container-id>:<timestamp>`` and archives
``snapshot-<created-at>.tar`` so both sort by creation time.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Callable, Iterable, Optional

import structlog

from ..config.orchestration import OrchestrationConfig
from ..models.errors import PartialCheckpointError, TaskNotRunningError
from ..models.runtime import (
    REQUIRED_CHECKPOINT_FACETS,
    CheckpointFacet,
    CheckpointImage,
    TaskStatus,
)
from .runtime.interfaces import RuntimeContainer, RuntimeService

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SnapshotExporter:
    """Creates checkpoint images and serializes them to disk."""

    def __init__(
        self,
        runtime: RuntimeService,
        config: OrchestrationConfig,
        facets: Iterable[CheckpointFacet] = REQUIRED_CHECKPOINT_FACETS,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._runtime = runtime
        self._config = config
        self._facets = frozenset(facets)
        self._clock = clock or _utcnow

    def checkpoint_name(self, container_id: str, at: datetime) -> str:
        return (
            f"{self._config.checkpoint_prefix}/checkpoint/container/"
            f"{container_id}:{at.strftime(self._config.timestamp_format)}"
        )

    def archive_path(self, image: CheckpointImage) -> Path:
        created_at = image.created_at.strftime(self._config.timestamp_format)
        return Path(self._config.archive_dir) / f"snapshot-{created_at}.tar"

    async def checkpoint(self, container: RuntimeContainer) -> CheckpointImage:
        """Checkpoint the container's runtime and task state.

        Raises:
            TaskNotFoundError: the container has no task
            TaskNotRunningError: the task exists but is not running
            PartialCheckpointError: a required facet was not captured
        """
        task = await container.task()
        status = await task.status()
        if status != TaskStatus.RUNNING:
            raise TaskNotRunningError(container.id, status.value)

        name = self.checkpoint_name(container.id, self._clock())

        missing = REQUIRED_CHECKPOINT_FACETS - self._facets
        if missing:
            raise PartialCheckpointError(
                name, sorted(f.value for f in missing), container_id=container.id
            )

        try:
            image = await container.checkpoint(name, self._facets)
        except Exception as e:
            logger.error(
                "Checkpoint failed",
                container_id=container.id,
                checkpoint=name,
                error=str(e),
            )
            raise PartialCheckpointError(
                name, sorted(f.value for f in self._facets), container_id=container.id
            ) from e

        if image.missing_facets:
            raise PartialCheckpointError(
                image.name,
                sorted(f.value for f in image.missing_facets),
                container_id=container.id,
            )

        logger.info(
            "Created container snapshot",
            container_id=container.id,
            checkpoint=image.name,
        )
        return image

    async def export(self, image: CheckpointImage) -> BinaryIO:
        """Write ``image`` to a fresh archive file.

        Returns:
            The open archive file, positioned at end-of-stream
        """
        path = self.archive_path(image)
        archive_file = open(path, "w+b")
        try:
            await self._runtime.export(archive_file, image.name)
        except BaseException:
            archive_file.close()
            path.unlink(missing_ok=True)
            raise

        logger.info("Exported snapshot", checkpoint=image.name, archive=str(path))
        return archive_file

    async def snapshot(self, container: RuntimeContainer) -> BinaryIO:
        """Checkpoint ``container`` and export the result."""
        image = await self.checkpoint(container)
        return await self.export(image)
