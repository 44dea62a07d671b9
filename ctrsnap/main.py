"""Process entry points for an orchestration pass and standalone cleanup."""

from typing import List, Optional, Tuple

import structlog

from .config import Settings
from .dependencies import build_orchestrator, build_reaper, build_runtime_service
from .models.errors import CleanupError, OrchestratorException, TaskNotFoundError
from .services.orchestrator import EXIT_CLEANUP_FAILED, EXIT_FATAL, EXIT_OK
from .services.runtime import RuntimeService
from .utils.shutdown import ShutdownSignal

logger = structlog.get_logger(__name__)


async def _connect(settings: Settings, runtime: Optional[RuntimeService]) -> RuntimeService:
    runtime = runtime or build_runtime_service(settings)
    await runtime.connect()
    return runtime


async def run_orchestration(
    settings: Settings,
    runtime: Optional[RuntimeService] = None,
    shutdown: Optional[ShutdownSignal] = None,
) -> int:
    """Run one full pass and return the process exit code."""
    logger.info(
        "Starting orchestration",
        image=settings.image_ref,
        container_id=settings.container_id,
        snapshot_enabled=settings.snapshot_enabled,
    )
    try:
        runtime = await _connect(settings, runtime)
    except OrchestratorException as e:
        logger.error("Runtime service unavailable", **e.to_log_fields())
        return EXIT_FATAL

    install = shutdown is None
    shutdown = shutdown or ShutdownSignal()
    if install:
        shutdown.install()

    try:
        orchestrator = build_orchestrator(runtime, settings)
        result = await orchestrator.run(shutdown)
    finally:
        if install:
            shutdown.uninstall()
        await runtime.close()

    logger.info(
        "Orchestration finished",
        cause=result.cause,
        removed=result.removed_containers,
        exit_code=result.exit_code,
    )
    return result.exit_code


async def run_cleanup(settings: Settings, runtime: Optional[RuntimeService] = None) -> int:
    """Reap every container and return the process exit code."""
    try:
        runtime = await _connect(settings, runtime)
    except OrchestratorException as e:
        logger.error("Runtime service unavailable", **e.to_log_fields())
        return EXIT_FATAL

    try:
        removed = await build_reaper(runtime, settings).cleanup()
    except CleanupError as e:
        logger.error("Cleanup finished with errors", failed=e.count, errors=str(e))
        return EXIT_CLEANUP_FAILED
    except OrchestratorException as e:
        logger.error("Cleanup failed", **e.to_log_fields())
        return EXIT_CLEANUP_FAILED
    finally:
        await runtime.close()

    logger.info("Cleanup finished", removed=removed)
    return EXIT_OK


async def list_containers(
    settings: Settings, runtime: Optional[RuntimeService] = None
) -> List[Tuple[str, str, str]]:
    """Return (container id, image, task status) for every container."""
    runtime = await _connect(settings, runtime)
    rows = []
    try:
        for container in await runtime.containers():
            info = await container.info()
            try:
                task = await container.task()
                status = (await task.status()).value
            except TaskNotFoundError:
                status = "-"
            rows.append((container.id, info.image, status))
    finally:
        await runtime.close()
    return rows
