"""Pytest configuration and shared fixtures."""

import asyncio
import json
import signal
from datetime import datetime, timezone
from typing import BinaryIO, Dict, Iterable, List, Optional

import pytest

from ctrsnap.config import Settings
from ctrsnap.config.orchestration import OrchestrationConfig
from ctrsnap.models.errors import (
    ResolutionError,
    RuntimeCommandError,
    TaskNotFoundError,
)
from ctrsnap.models.runtime import (
    CheckpointImage,
    ContainerInfo,
    ExitStatus,
    Image,
    ImageRef,
    TaskStatus,
)
from ctrsnap.utils.shutdown import ShutdownSignal

NGINX_SPEC = {
    "process": {"args": ["nginx", "-g", "daemon off;"], "cwd": "/"},
    "root": {"path": "rootfs"},
    "hostname": "nginx",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class FakeTask:
    """In-memory task. Exit futures resolve when the task is killed or exits."""

    def __init__(self, runtime: "FakeRuntime", container_id: str):
        self._runtime = runtime
        self.id = container_id
        self.state = TaskStatus.CREATED
        self.exit_status: Optional[ExitStatus] = None
        self._waiters: List[asyncio.Future] = []

    async def wait(self) -> asyncio.Future:
        self._runtime.record("wait", self.id)
        future = asyncio.get_running_loop().create_future()
        if self.exit_status is not None:
            future.set_result(self.exit_status)
        else:
            self._waiters.append(future)
        return future

    async def start(self) -> None:
        self._runtime.record("start", self.id)
        self._runtime.maybe_fail("start", self.id)
        self.state = TaskStatus.RUNNING
        if self.id in self._runtime.exit_on_start:
            code = self._runtime.exit_on_start[self.id]
            asyncio.get_running_loop().call_soon(self.exit, code)

    async def kill(self, sig: int) -> None:
        self._runtime.record("kill", self.id, sig=int(sig))
        self._runtime.maybe_fail("kill", self.id)
        if self._runtime.ignore_kill:
            return
        self.exit(128 + int(sig))

    def exit(self, code: int, error: Optional[str] = None) -> None:
        self.state = TaskStatus.STOPPED
        self.exit_status = ExitStatus(exit_code=code, exited_at=_now(), error=error)
        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_result(self.exit_status)
        self._waiters.clear()

    async def status(self) -> TaskStatus:
        self._runtime.record("status", self.id)
        return self.state

    async def delete(self, force: bool = False) -> ExitStatus:
        self._runtime.record("delete_task", self.id, force=force)
        self._runtime.maybe_fail("delete_task", self.id)
        if self.exit_status is None:
            if not force:
                raise RuntimeCommandError(
                    ["ctr", "tasks", "delete", self.id], 1, "task must be stopped"
                )
            self.exit(int(128 + signal.SIGKILL))
        self.state = TaskStatus.DELETED
        self._runtime.tasks.pop(self.id, None)
        return self.exit_status


class FakeContainer:
    def __init__(
        self,
        runtime: "FakeRuntime",
        container_id: str,
        image: str,
        spec: dict,
        snapshot_key: Optional[str] = None,
    ):
        self._runtime = runtime
        self.id = container_id
        self.image = image
        self.spec = spec
        self.snapshot_key = snapshot_key or container_id

    async def info(self) -> ContainerInfo:
        return ContainerInfo(
            id=self.id,
            image=self.image,
            snapshot_key=self.snapshot_key,
            snapshotter="overlayfs",
            spec=self.spec,
            created_at=_now(),
        )

    async def task(self) -> FakeTask:
        self._runtime.record("task", self.id)
        if self.id not in self._runtime.tasks:
            raise TaskNotFoundError(self.id)
        return self._runtime.tasks[self.id]

    async def new_task(self, stdio: bool = True) -> FakeTask:
        self._runtime.record("new_task", self.id)
        self._runtime.maybe_fail("new_task", self.id)
        task = FakeTask(self._runtime, self.id)
        self._runtime.tasks[self.id] = task
        return task

    async def checkpoint(self, name: str, facets: Iterable) -> CheckpointImage:
        self._runtime.record("checkpoint", self.id)
        self._runtime.maybe_fail("checkpoint", self.id)
        facets = frozenset(facets) - self._runtime.dropped_facets
        created_at = self._runtime.clock()
        self._runtime.images[name] = Image(
            name=name, created_at=created_at, config={"spec": dict(self.spec)}
        )
        return CheckpointImage(
            name=name, created_at=created_at, container_id=self.id, facets=facets
        )

    async def delete_snapshot(self) -> None:
        self._runtime.record("delete_snapshot", self.id)
        self._runtime.maybe_fail("delete_snapshot", self.id)
        self._runtime.snapshots.discard(self.snapshot_key)

    async def delete(self) -> None:
        self._runtime.record("delete_container", self.id)
        self._runtime.maybe_fail("delete_container", self.id)
        self._runtime.containers_by_id.pop(self.id, None)


class FakeRuntime:
    """In-memory Runtime Service.

    ``calls`` records every operation in order. Failures are injected with
    ``fail(op, container_id, error)``; a container id of None matches any.
    """

    def __init__(self):
        self.calls: List[tuple] = []
        self.images: Dict[str, Image] = {}
        self.containers_by_id: Dict[str, FakeContainer] = {}
        self.tasks: Dict[str, FakeTask] = {}
        self.snapshots = set()
        self.failures: Dict[tuple, Exception] = {}
        self.exit_on_start: Dict[str, int] = {}
        self.dropped_facets = frozenset()
        self.ignore_kill = False
        self.connected = False
        self.closed = False
        self.clock = _now

    def record(self, op: str, *args, **kwargs) -> None:
        self.calls.append((op, *args, *kwargs.values()))

    def ops(self, container_id: Optional[str] = None) -> List[str]:
        return [
            call[0]
            for call in self.calls
            if container_id is None or (len(call) > 1 and call[1] == container_id)
        ]

    def fail(self, op: str, container_id: Optional[str] = None, error: Exception = None) -> None:
        self.failures[(op, container_id)] = error or RuntimeCommandError(
            ["ctr", op], 1, f"{op} failed"
        )

    def maybe_fail(self, op: str, container_id: Optional[str] = None) -> None:
        error = self.failures.get((op, container_id)) or self.failures.get((op, None))
        if error is not None:
            raise error

    def add_container(self, container_id: str, running: bool = True) -> FakeContainer:
        """Seed a container (and optionally a running task) directly."""
        container = FakeContainer(self, container_id, "docker.io/library/busybox:latest", {})
        self.containers_by_id[container_id] = container
        self.snapshots.add(container.snapshot_key)
        if running:
            task = FakeTask(self, container_id)
            task.state = TaskStatus.RUNNING
            self.tasks[container_id] = task
        return container

    async def connect(self) -> None:
        self.record("connect")
        self.maybe_fail("connect")
        self.connected = True

    async def close(self) -> None:
        self.record("close")
        self.closed = True

    async def pull(self, ref: str) -> Image:
        self.record("pull", ref)
        self.maybe_fail("pull")
        image = Image(name=ref, created_at=_now(), config={"spec": dict(NGINX_SPEC)})
        self.images[ref] = image
        return image

    async def get_image(self, name: str) -> Image:
        self.record("get_image", name)
        if name not in self.images:
            raise ResolutionError(name, message=f"image {name} not found")
        return self.images[name]

    async def new_container(
        self, container_id: str, image: Image, snapshot_key: Optional[str] = None
    ) -> FakeContainer:
        self.record("new_container", container_id)
        self.maybe_fail("new_container", container_id)
        if container_id in self.containers_by_id:
            raise RuntimeCommandError(
                ["ctr", "containers", "create"], 1, f"container {container_id}: already exists"
            )
        container = FakeContainer(
            self, container_id, image.name, dict(image.config.get("spec", {})), snapshot_key
        )
        self.containers_by_id[container_id] = container
        self.snapshots.add(container.snapshot_key)
        return container

    async def export(self, writer: BinaryIO, image_name: str) -> None:
        self.record("export", image_name)
        self.maybe_fail("export")
        image = self.images[image_name]
        payload = {"images": [{"name": image.name, "spec": image.config.get("spec", {})}]}
        writer.write(json.dumps(payload).encode("utf-8"))

    async def import_archive(self, reader: BinaryIO) -> List[ImageRef]:
        self.record("import")
        self.maybe_fail("import")
        data = reader.read()
        if not data:
            return []
        refs = []
        for entry in json.loads(data)["images"]:
            self.images[entry["name"]] = Image(
                name=entry["name"], created_at=_now(), config={"spec": entry["spec"]}
            )
            refs.append(ImageRef(name=entry["name"]))
        return refs

    async def restore(self, container_id: str, image: Image, facets: Iterable) -> FakeContainer:
        self.record("restore", container_id)
        self.maybe_fail("restore", container_id)
        container = FakeContainer(
            self, container_id, image.name, dict(image.config.get("spec", {}))
        )
        self.containers_by_id[container_id] = container
        self.snapshots.add(container.snapshot_key)
        return container

    async def containers(self) -> List[FakeContainer]:
        self.record("containers")
        self.maybe_fail("containers")
        return list(self.containers_by_id.values())


@pytest.fixture
def fake_runtime():
    """In-memory runtime with no containers."""
    return FakeRuntime()


@pytest.fixture
def orchestration_config(tmp_path):
    """Orchestration config writing archives under tmp_path."""
    return OrchestrationConfig(archive_dir=str(tmp_path))


@pytest.fixture
def test_settings(tmp_path):
    """Settings isolated from the process environment."""
    return Settings(
        _env_file=None,
        archive_dir=str(tmp_path),
        containerd_namespace="example",
        log_level="DEBUG",
    )


@pytest.fixture
def shutdown():
    return ShutdownSignal()
