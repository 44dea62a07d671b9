"""Reaper that tears down every container known to the runtime.

Each container is removed task-first: kill if running, wait for exit,
delete the task, then its snapshot and finally the container record.
A failure on one container never stops the others; failures are collected
and raised together once the pass is over.
"""

import asyncio
import signal
from typing import List, Optional

import structlog

from ..models.errors import CleanupError, ContainerCleanupFailure
from ..models.runtime import ExitChannel, ExitStatus, TaskStatus
from .runtime.interfaces import RuntimeContainer, RuntimeService

logger = structlog.get_logger(__name__)


class CleanupReaper:
    """Best-effort teardown of all containers in the namespace."""

    def __init__(self, runtime: RuntimeService, wait_timeout: Optional[float] = None):
        """Initialize the reaper.

        Args:
            runtime: Runtime Service to enumerate and remove containers through
            wait_timeout: Seconds to wait for a killed task to exit before
                force-deleting it. None waits indefinitely.
        """
        self._runtime = runtime
        self._wait_timeout = wait_timeout

    async def cleanup(self) -> List[str]:
        """Remove every container the runtime currently knows about.

        Returns:
            Ids of the containers that were removed

        Raises:
            CleanupError: one or more containers could not be removed
        """
        containers = await self._runtime.containers()
        removed: List[str] = []
        failures: List[ContainerCleanupFailure] = []

        for container in containers:
            try:
                await self.remove(container)
                removed.append(container.id)
            except Exception as e:
                logger.error(
                    "Container removal failed",
                    container_id=container.id,
                    error=str(e),
                )
                failures.append(ContainerCleanupFailure(container.id, e))

        if failures:
            raise CleanupError(failures)
        return removed

    async def remove(self, container: RuntimeContainer) -> None:
        log = logger.bind(container_id=container.id)
        log.info("removing")

        task = await container.task()
        status = await task.status()
        if status == TaskStatus.RUNNING:
            await task.kill(signal.SIGKILL)
            log.info("process killed")

        exit_channel = await task.wait()
        exited = await self._await_exit(container.id, exit_channel)

        exit_status = await task.delete(force=exited is None)
        self._log_task_deleted(log, exit_status)

        await container.delete_snapshot()
        await container.delete()
        log.info("container deleted")

    async def _await_exit(
        self, container_id: str, exit_channel: ExitChannel
    ) -> Optional[ExitStatus]:
        if self._wait_timeout is None:
            return await exit_channel
        try:
            return await asyncio.wait_for(exit_channel, timeout=self._wait_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Timed out waiting for task exit, forcing delete",
                container_id=container_id,
                timeout=self._wait_timeout,
            )
            return None

    @staticmethod
    def _log_task_deleted(log, exit_status: ExitStatus) -> None:
        code, exited_at, error = exit_status.result()
        if error:
            log.info(
                "task deleted",
                code=code,
                time=exited_at.isoformat(),
                error=error,
            )
        else:
            log.info("task deleted", code=code)
