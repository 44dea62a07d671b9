"""Orchestrator - one pass of start, snapshot, restore, wait and cleanup.

The pass is a single pipeline; the checkpoint/export/import/restore stage
is optional and controlled by ``snapshot_enabled``.

Usage:
    orchestrator = Orchestrator(runtime=runtime, config=settings.orchestration)
    result = await orchestrator.run(shutdown)
    sys.exit(result.exit_code)
"""

import asyncio
import signal
from dataclasses import dataclass, field
from typing import List, Optional

import structlog

from ..config.orchestration import OrchestrationConfig
from ..models.errors import CleanupError, OrchestratorException
from ..models.runtime import ExitChannel, ExitStatus
from ..utils.shutdown import ShutdownSignal
from .cleanup import CleanupReaper
from .lifecycle import LifecycleController
from .restore import RestoreImporter
from .runtime.interfaces import RuntimeContainer, RuntimeService
from .snapshot import SnapshotExporter

logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_CLEANUP_FAILED = 127


@dataclass
class OrchestrationResult:
    """Outcome of one orchestration pass."""

    container_id: Optional[str] = None
    restored_container_id: Optional[str] = None
    archive_path: Optional[str] = None
    # "signal" or "exit"
    cause: Optional[str] = None
    received_signal: Optional[signal.Signals] = None
    exit_status: Optional[ExitStatus] = None
    error: Optional[BaseException] = None
    snapshot_error: Optional[BaseException] = None
    cleanup_error: Optional[BaseException] = None
    removed_containers: List[str] = field(default_factory=list)
    pending_exits: List[ExitChannel] = field(default_factory=list, repr=False)

    @property
    def exit_code(self) -> int:
        if self.cleanup_error is not None:
            return EXIT_CLEANUP_FAILED
        if self.error is not None:
            return EXIT_FATAL
        return EXIT_OK


class Orchestrator:
    """Coordinates the lifecycle pass.

    Pipeline:
    1. Start the container
    2. Checkpoint, export, import and restore (optional)
    3. Wait for a termination signal or the container's exit
    4. Reap every container (always)
    """

    def __init__(
        self,
        runtime: RuntimeService,
        config: OrchestrationConfig,
        lifecycle: Optional[LifecycleController] = None,
        exporter: Optional[SnapshotExporter] = None,
        importer: Optional[RestoreImporter] = None,
        reaper: Optional[CleanupReaper] = None,
    ):
        self.runtime = runtime
        self.config = config
        self.lifecycle = lifecycle or LifecycleController(runtime, config)
        self.exporter = exporter or SnapshotExporter(runtime, config)
        self.importer = importer or RestoreImporter(runtime, config)
        self.reaper = reaper or CleanupReaper(
            runtime, wait_timeout=config.cleanup_wait_timeout_seconds
        )

    async def run(self, shutdown: ShutdownSignal) -> OrchestrationResult:
        """Run the pass. Cleanup runs however the pipeline ends."""
        result = OrchestrationResult()
        try:
            container, exit_channel = await self.lifecycle.start()
            result.container_id = container.id
            result.pending_exits.append(exit_channel)

            if self.config.snapshot_enabled:
                await self._snapshot_stage(container, result)

            await self.wait_for_termination(shutdown, exit_channel, result)
        except OrchestratorException as e:
            logger.error("Orchestration failed", **e.to_log_fields())
            result.error = e
        except Exception as e:
            logger.exception("Orchestration failed", error=str(e))
            result.error = e
        finally:
            await self._cleanup(result)
            for pending in result.pending_exits:
                if not pending.done():
                    pending.cancel()
        return result

    async def _snapshot_stage(
        self, container: RuntimeContainer, result: OrchestrationResult
    ) -> None:
        """Checkpoint, export, import and restore. Failures are logged, not raised."""
        try:
            archive_file = await self.exporter.snapshot(container)
        except Exception as e:
            logger.error("Snapshot failed", container_id=container.id, error=str(e))
            result.snapshot_error = e
            return

        result.archive_path = str(archive_file.name)
        try:
            with archive_file:
                restored, restored_exit = await self.importer.import_and_restore(archive_file)
        except Exception as e:
            logger.error("Restore failed", archive=result.archive_path, error=str(e))
            result.snapshot_error = e
            return

        result.restored_container_id = restored.id
        result.pending_exits.append(restored_exit)
        logger.info("Started container", container_id=restored.id)

    async def wait_for_termination(
        self,
        shutdown: ShutdownSignal,
        exit_channel: ExitChannel,
        result: Optional[OrchestrationResult] = None,
    ) -> OrchestrationResult:
        """Block until a termination signal arrives or the task exits."""
        result = result or OrchestrationResult()
        signal_waiter = asyncio.ensure_future(shutdown.wait())
        try:
            done, _ = await asyncio.wait(
                {signal_waiter, exit_channel}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            if not signal_waiter.done():
                signal_waiter.cancel()

        if exit_channel in done:
            result.cause = "exit"
            self._log_task_completed(exit_channel, result)
        else:
            result.cause = "signal"
            result.received_signal = signal_waiter.result()
            logger.info("received signal", signal=result.received_signal.name)
        return result

    @staticmethod
    def _log_task_completed(exit_channel: ExitChannel, result: OrchestrationResult) -> None:
        if exit_channel.cancelled():
            logger.warning("task exit notification cancelled")
            return
        error = exit_channel.exception()
        if error is not None:
            logger.error("task exit notification failed", error=str(error))
            return

        status = exit_channel.result()
        result.exit_status = status
        code, exited_at, err = status.result()
        if err:
            logger.info("task completed", code=code, time=exited_at.isoformat(), error=err)
        else:
            logger.info("task completed")

    async def _cleanup(self, result: OrchestrationResult) -> None:
        try:
            result.removed_containers = await self.reaper.cleanup()
        except CleanupError as e:
            logger.error(
                "Cleanup finished with errors",
                failed=e.count,
                containers=e.container_ids,
                errors=str(e),
            )
            result.cleanup_error = e
        except Exception as e:
            logger.error("Cleanup failed", error=str(e))
            result.cleanup_error = e
