"""Import archive files and restore containers from checkpoint images."""

from typing import BinaryIO, Callable, Iterable, List, Optional, Sequence, Tuple

import structlog

from ..config.orchestration import OrchestrationConfig
from ..models.errors import PartialRestoreError, ResolutionError
from ..models.runtime import (
    REQUIRED_RESTORE_FACETS,
    ExitChannel,
    ImageRef,
    RestoreFacet,
)
from .lifecycle import start_task
from .runtime.interfaces import RuntimeContainer, RuntimeService

logger = structlog.get_logger(__name__)

ImageSelector = Callable[[Sequence[ImageRef]], ImageRef]


def select_first_image(images: Sequence[ImageRef]) -> ImageRef:
    """Pick the first image in archive order."""
    return images[0]


def select_image_by_name(name: str) -> ImageSelector:
    """Build a selector that picks the image called ``name``."""

    def _select(images: Sequence[ImageRef]) -> ImageRef:
        for ref in images:
            if ref.name == name:
                return ref
        raise ResolutionError(name, message=f"image {name} not found in archive")

    return _select


class RestoreImporter:
    """Turns an archive back into a running container."""

    def __init__(
        self,
        runtime: RuntimeService,
        config: OrchestrationConfig,
        selector: Optional[ImageSelector] = None,
        facets: Iterable[RestoreFacet] = REQUIRED_RESTORE_FACETS,
    ):
        self._runtime = runtime
        self._config = config
        if selector is None:
            selector = (
                select_image_by_name(config.restore_image_name)
                if config.restore_image_name
                else select_first_image
            )
        self._selector = selector
        self._facets = frozenset(facets)

    async def import_archive(self, archive_file: BinaryIO) -> List[ImageRef]:
        """Rewind ``archive_file`` and import every image it holds.

        Raises:
            ResolutionError: the archive could not be read or held no images
        """
        archive_name = str(getattr(archive_file, "name", "<archive>"))
        archive_file.seek(0)

        images = await self._runtime.import_archive(archive_file)
        if not images:
            raise ResolutionError(archive_name, message=f"no images found in {archive_name}")

        logger.info(
            "Imported images",
            archive=archive_name,
            images=[ref.name for ref in images],
        )
        return images

    async def restore(
        self, image_ref: ImageRef, container_id: Optional[str] = None
    ) -> Tuple[RuntimeContainer, ExitChannel]:
        """Create and start a new container from a checkpoint image.

        Returns:
            Tuple of (restored container, exit channel)
        """
        container_id = container_id or self._config.restored_container_id

        image = await self._runtime.get_image(image_ref.name)
        logger.info("Found image archive", image=image.name)

        missing = REQUIRED_RESTORE_FACETS - self._facets
        if missing:
            raise PartialRestoreError(
                image.name, sorted(f.value for f in missing), container_id=container_id
            )

        try:
            restored = await self._runtime.restore(container_id, image, self._facets)
        except Exception as e:
            logger.error(
                "Restore failed",
                container_id=container_id,
                image=image.name,
                error=str(e),
            )
            raise PartialRestoreError(
                image.name, sorted(f.value for f in self._facets), container_id=container_id
            ) from e

        logger.info("Restored container", container_id=restored.id, image=image.name)
        return await start_task(restored)

    async def import_and_restore(
        self, archive_file: BinaryIO
    ) -> Tuple[RuntimeContainer, ExitChannel]:
        images = await self.import_archive(archive_file)
        return await self.restore(self._selector(images))
