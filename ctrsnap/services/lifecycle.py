"""Container lifecycle: pull, create and start."""

from typing import Optional, Tuple

import structlog

from ..config.orchestration import OrchestrationConfig
from ..models.runtime import ExitChannel
from .runtime.interfaces import RuntimeContainer, RuntimeService

logger = structlog.get_logger(__name__)


async def start_task(
    container: RuntimeContainer, stdio: bool = True
) -> Tuple[RuntimeContainer, ExitChannel]:
    """Create and start a task for ``container``.

    The exit wait is registered before the task starts so an exit that
    happens immediately after start is still delivered.

    Returns:
        Tuple of (container, exit channel)
    """
    task = await container.new_task(stdio=stdio)
    exit_channel = await task.wait()
    try:
        logger.info("Starting container task", container_id=container.id, task_id=task.id)
        await task.start()
    except BaseException:
        exit_channel.cancel()
        raise
    return container, exit_channel


class LifecycleController:
    """Starts the primary container of an orchestration pass."""

    def __init__(self, runtime: RuntimeService, config: OrchestrationConfig):
        self._runtime = runtime
        self._config = config

    async def start(
        self,
        image_ref: Optional[str] = None,
        container_id: Optional[str] = None,
    ) -> Tuple[RuntimeContainer, ExitChannel]:
        """Pull an image and run a new container from it.

        Errors from the runtime are raised unchanged; nothing is retried.

        Args:
            image_ref: Image reference to pull, defaults to the configured one
            container_id: Container id, defaults to the configured one

        Returns:
            Tuple of (container, exit channel)
        """
        image_ref = image_ref or self._config.image_ref
        container_id = container_id or self._config.container_id

        image = await self._runtime.pull(image_ref)
        logger.info("Pulled image", image=image.name, digest=image.digest)

        container = await self._runtime.new_container(
            container_id, image, snapshot_key=self._config.snapshot_key
        )
        logger.info("Created container", container_id=container.id, image=image.name)

        return await start_task(container)
