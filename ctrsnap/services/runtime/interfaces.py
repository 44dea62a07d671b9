"""Runtime Service capability surface consumed by the orchestrator.

Only the methods the orchestration pass needs are described here. Any
runtime client (the bundled ``ctr`` adapter, a gRPC client, a test double)
satisfies these protocols structurally.
"""

from typing import BinaryIO, Iterable, List, Optional, Protocol, runtime_checkable

from ...models.runtime import (
    CheckpointFacet,
    CheckpointImage,
    ContainerInfo,
    ExitChannel,
    ExitStatus,
    Image,
    ImageRef,
    RestoreFacet,
    TaskStatus,
)


@runtime_checkable
class RuntimeTask(Protocol):
    """The running process associated with a container."""

    @property
    def id(self) -> str: ...

    async def wait(self) -> ExitChannel:
        """Register for exit and return a one-shot future of ExitStatus."""
        ...

    async def start(self) -> None: ...

    async def kill(self, sig: int) -> None: ...

    async def status(self) -> TaskStatus: ...

    async def delete(self, force: bool = False) -> ExitStatus: ...


@runtime_checkable
class RuntimeContainer(Protocol):
    """A container record held by the runtime."""

    @property
    def id(self) -> str: ...

    async def info(self) -> ContainerInfo: ...

    async def task(self) -> RuntimeTask:
        """Resolve the container's task; raises TaskNotFoundError."""
        ...

    async def new_task(self, stdio: bool = True) -> RuntimeTask: ...

    async def checkpoint(
        self, name: str, facets: Iterable[CheckpointFacet]
    ) -> CheckpointImage: ...

    async def delete_snapshot(self) -> None: ...

    async def delete(self) -> None: ...


@runtime_checkable
class RuntimeService(Protocol):
    """Client for the container runtime."""

    async def connect(self) -> None:
        """Verify the runtime is reachable; raises RuntimeConnectionError."""
        ...

    async def close(self) -> None: ...

    async def pull(self, ref: str) -> Image: ...

    async def get_image(self, name: str) -> Image: ...

    async def new_container(
        self, container_id: str, image: Image, snapshot_key: Optional[str] = None
    ) -> RuntimeContainer: ...

    async def export(self, writer: BinaryIO, image_name: str) -> None: ...

    async def import_archive(self, reader: BinaryIO) -> List[ImageRef]: ...

    async def restore(
        self, container_id: str, image: Image, facets: Iterable[RestoreFacet]
    ) -> RuntimeContainer: ...

    async def containers(self) -> List[RuntimeContainer]: ...
