"""Service construction for ctrsnap.

The runtime client is built once per process and passed into every
service that needs it.
"""

import structlog

from .config import Settings
from .services import CleanupReaper, Orchestrator
from .services.runtime import CtrRuntimeService, RuntimeService

logger = structlog.get_logger(__name__)


def build_runtime_service(settings: Settings) -> RuntimeService:
    """Create the Runtime Service client."""
    runtime = CtrRuntimeService(settings.runtime)
    logger.debug(
        "Runtime service created",
        address=settings.containerd_address,
        namespace=settings.containerd_namespace,
    )
    return runtime


def build_orchestrator(runtime: RuntimeService, settings: Settings) -> Orchestrator:
    """Create an orchestrator wired to ``runtime``."""
    return Orchestrator(runtime=runtime, config=settings.orchestration)


def build_reaper(runtime: RuntimeService, settings: Settings) -> CleanupReaper:
    return CleanupReaper(runtime, wait_timeout=settings.cleanup_wait_timeout_seconds)
