"""Runtime Service backed by containerd's ``ctr`` CLI.

Every call spawns a ``ctr`` subprocess against the configured socket and
namespace. Exit notification is delivered by subscribing to ``ctr events``
for ``/tasks/exit`` before the task is started, with a status poll as a
fallback for exits that happened before the subscription was live.
"""

import asyncio
import json
import os
import re
import signal
import tarfile
from datetime import datetime, timezone
from typing import BinaryIO, Dict, Iterable, List, Optional, Tuple

import structlog

from ...config.runtime import RuntimeConfig
from ...models.errors import (
    ResolutionError,
    RuntimeCommandError,
    RuntimeConnectionError,
    TaskNotFoundError,
)
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

logger = structlog.get_logger(__name__)

# containerd's value for an exit code it could not observe
UNKNOWN_EXIT_STATUS = 255

# ctr always includes the runtime facet; the task facet is opt-in
_CHECKPOINT_FLAGS: Dict[CheckpointFacet, Optional[str]] = {
    CheckpointFacet.RUNTIME: None,
    CheckpointFacet.TASK: "--task",
}

_IMAGE_NAME_ANNOTATIONS = (
    "io.containerd.image.name",
    "org.opencontainers.image.ref.name",
)

_EXIT_EVENT_RE = re.compile(r"\s/tasks/exit\s+(?P<payload>\{.*\})\s*$")
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _decode(output: Optional[bytes]) -> str:
    if not output:
        return ""
    return output.decode("utf-8", errors="replace")


def _parse_timestamp(value) -> datetime:
    """Parse an exit timestamp from an event payload."""
    if isinstance(value, dict) and "seconds" in value:
        seconds = int(value.get("seconds", 0)) + int(value.get("nanos", 0)) / 1e9
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, str):
        # Go emits nanoseconds; fromisoformat only takes microseconds
        text = _FRACTION_RE.sub(r"\1", value.replace("Z", "+00:00"))
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            pass
    return _now()


def parse_exit_event(line: str, container_id: str) -> Optional[ExitStatus]:
    """Extract an ExitStatus for ``container_id`` from a ``ctr events`` line."""
    match = _EXIT_EVENT_RE.search(line)
    if not match:
        return None
    try:
        payload = json.loads(match.group("payload"))
    except json.JSONDecodeError:
        return None
    if payload.get("container_id") != container_id:
        return None
    # exit_status is omitted from the payload when it is zero
    return ExitStatus(
        exit_code=int(payload.get("exit_status", 0)),
        exited_at=_parse_timestamp(payload.get("exited_at")),
    )


def parse_table(output: str) -> List[List[str]]:
    """Split ``ctr ... ls`` output into rows, dropping the header."""
    lines = [line for line in output.splitlines() if line.strip()]
    return [line.split() for line in lines[1:]]


def read_archive_image_names(reader: BinaryIO) -> List[ImageRef]:
    """Read image names from an OCI archive's index.json.

    Reads from the reader's current position, so an archive left at
    end-of-stream yields an error rather than a partial list.
    """
    archive_name = getattr(reader, "name", "<archive>")
    try:
        with tarfile.open(fileobj=reader, mode="r:") as tar:
            member = tar.extractfile("index.json")
            if member is None:
                raise KeyError("index.json")
            index = json.load(member)
    except (tarfile.TarError, KeyError, json.JSONDecodeError) as e:
        raise ResolutionError(
            str(archive_name), message=f"unreadable archive {archive_name}: {e}"
        ) from e

    refs = []
    for manifest in index.get("manifests", []):
        annotations = manifest.get("annotations") or {}
        name = next(
            (annotations[key] for key in _IMAGE_NAME_ANNOTATIONS if key in annotations),
            None,
        )
        if name:
            refs.append(ImageRef(name=name, digest=manifest.get("digest")))
    return refs


class CtrRuntimeService:
    """Runtime Service implementation that shells out to ``ctr``."""

    def __init__(self, config: RuntimeConfig, poll_interval: float = 0.5):
        self._config = config
        self.poll_interval = poll_interval

    @property
    def config(self) -> RuntimeConfig:
        return self._config

    def _base_args(self) -> List[str]:
        return [
            self._config.ctr_binary,
            "--address",
            self._config.containerd_address,
            "--namespace",
            self._config.containerd_namespace,
        ]

    async def run(
        self,
        *args: str,
        stdin=None,
        stdout=asyncio.subprocess.PIPE,
        container_id: Optional[str] = None,
    ) -> Tuple[int, str, str]:
        """Run a ctr subcommand.

        Returns:
            Tuple of (exit_code, stdout, stderr)
        """
        command = self._base_args() + list(args)
        timeout = self._config.runtime_command_timeout_seconds
        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdin=stdin,
                stdout=stdout,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise RuntimeConnectionError(
                self._config.containerd_address,
                message=f"ctr binary not found: {self._config.ctr_binary}",
            ) from e

        if timeout is None:
            stdout_bytes, stderr_bytes = await proc.communicate()
            return proc.returncode, _decode(stdout_bytes), _decode(stderr_bytes)

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                proc.communicate(), timeout=timeout
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise RuntimeCommandError(
                ["ctr", *args],
                None,
                f"timed out after {timeout} seconds",
                container_id=container_id,
            )

        return proc.returncode, _decode(stdout_bytes), _decode(stderr_bytes)

    async def check(self, *args: str, **kwargs) -> str:
        """Run a ctr subcommand and raise on a non-zero exit."""
        code, out, err = await self.run(*args, **kwargs)
        if code != 0:
            raise RuntimeCommandError(
                ["ctr", *args], code, err, container_id=kwargs.get("container_id")
            )
        return out

    async def connect(self) -> None:
        code, out, err = await self.run("version")
        if code != 0:
            raise RuntimeConnectionError(
                self._config.containerd_address,
                message=(
                    f"cannot connect to containerd at "
                    f"{self._config.containerd_address}: {err.strip() or code}"
                ),
            )
        logger.debug(
            "Connected to containerd",
            address=self._config.containerd_address,
            namespace=self._config.containerd_namespace,
        )

    async def close(self) -> None:
        """Nothing to release; every call is its own process."""

    async def pull(self, ref: str) -> Image:
        try:
            await self.check("images", "pull", "--snapshotter", self._config.snapshotter, ref)
        except RuntimeCommandError as e:
            raise ResolutionError(ref, message=f"failed to pull {ref}: {e.stderr}") from e
        return await self.get_image(ref)

    async def get_image(self, name: str) -> Image:
        out = await self.check("images", "ls", f"name=={name}")
        for row in parse_table(out):
            if row and row[0] == name:
                digest = row[2] if len(row) > 2 else None
                return Image(name=name, created_at=_now(), digest=digest)
        raise ResolutionError(name, message=f"image {name} not found")

    async def new_container(
        self, container_id: str, image: Image, snapshot_key: Optional[str] = None
    ) -> "CtrContainer":
        # ctr keys the writable snapshot by container id
        await self.check(
            "containers",
            "create",
            "--snapshotter",
            self._config.snapshotter,
            image.name,
            container_id,
            container_id=container_id,
        )
        return CtrContainer(self, container_id)

    async def export(self, writer: BinaryIO, image_name: str) -> None:
        writer.flush()
        await self.check("images", "export", "-", image_name, stdout=writer)

    async def import_archive(self, reader: BinaryIO) -> List[ImageRef]:
        start = reader.tell()
        refs = read_archive_image_names(reader)
        reader.seek(start)
        # ctr reads the descriptor, not the buffered object, so move the OS offset too
        os.lseek(reader.fileno(), start, os.SEEK_SET)
        await self.check("images", "import", "-", stdin=reader)
        return refs

    async def restore(
        self, container_id: str, image: Image, facets: Iterable[RestoreFacet]
    ) -> "CtrContainer":
        # ctr restore always applies image, spec and runtime, then starts a task
        await self.check(
            "containers", "restore", container_id, image.name, container_id=container_id
        )
        return CtrContainer(self, container_id, task_started=True)

    async def containers(self) -> List["CtrContainer"]:
        out = await self.check("containers", "ls", "-q")
        return [CtrContainer(self, line.strip()) for line in out.splitlines() if line.strip()]

    async def list_tasks(self) -> Dict[str, TaskStatus]:
        """Map task id to status."""
        out = await self.check("tasks", "ls")
        return {
            row[0]: TaskStatus.parse(row[2]) for row in parse_table(out) if len(row) >= 3
        }

    async def subscribe_exit_events(self) -> asyncio.subprocess.Process:
        return await asyncio.create_subprocess_exec(
            *self._base_args(),
            "events",
            'topic=="/tasks/exit"',
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )


class CtrContainer:
    """Container handle for the ctr runtime."""

    def __init__(self, runtime: CtrRuntimeService, container_id: str, task_started: bool = False):
        self._runtime = runtime
        self._id = container_id
        self._task_started = task_started

    @property
    def id(self) -> str:
        return self._id

    async def info(self) -> ContainerInfo:
        out = await self._runtime.check("containers", "info", self._id, container_id=self._id)
        data = json.loads(out)
        created_at = data.get("CreatedAt")
        return ContainerInfo(
            id=data.get("ID", self._id),
            image=data.get("Image", ""),
            snapshot_key=data.get("SnapshotKey") or None,
            snapshotter=data.get("Snapshotter") or None,
            labels=data.get("Labels") or {},
            spec=data.get("Spec") or {},
            created_at=_parse_timestamp(created_at) if created_at else None,
        )

    async def task(self) -> "CtrTask":
        tasks = await self._runtime.list_tasks()
        if self._id not in tasks:
            raise TaskNotFoundError(self._id)
        return CtrTask(self._runtime, self._id, started=True)

    async def new_task(self, stdio: bool = True) -> "CtrTask":
        return CtrTask(self._runtime, self._id, started=self._task_started, stdio=stdio)

    async def checkpoint(
        self, name: str, facets: Iterable[CheckpointFacet]
    ) -> CheckpointImage:
        facets = frozenset(facets)
        args = ["containers", "checkpoint"]
        args += [_CHECKPOINT_FLAGS[f] for f in facets if _CHECKPOINT_FLAGS[f]]
        args += [self._id, name]
        await self._runtime.check(*args, container_id=self._id)
        image = await self._runtime.get_image(name)
        return CheckpointImage(
            name=name,
            created_at=image.created_at,
            container_id=self._id,
            facets=facets,
            digest=image.digest,
        )

    async def delete_snapshot(self) -> None:
        info = await self.info()
        if not info.snapshot_key:
            return
        snapshotter = info.snapshotter or self._runtime.config.snapshotter
        code, _, err = await self._runtime.run(
            "snapshots", "--snapshotter", snapshotter, "rm", info.snapshot_key,
            container_id=self._id,
        )
        if code != 0 and "not found" not in err.lower():
            raise RuntimeCommandError(
                ["ctr", "snapshots", "rm", info.snapshot_key], code, err, container_id=self._id
            )

    async def delete(self) -> None:
        await self._runtime.check(
            "containers", "delete", "--keep-snapshot", self._id, container_id=self._id
        )


class CtrTask:
    """Task handle for the ctr runtime. Task ids equal container ids."""

    def __init__(
        self,
        runtime: CtrRuntimeService,
        task_id: str,
        started: bool = False,
        stdio: bool = True,
    ):
        self._runtime = runtime
        self._id = task_id
        self._started = started
        self._stdio = stdio

    @property
    def id(self) -> str:
        return self._id

    async def wait(self) -> ExitChannel:
        events = await self._runtime.subscribe_exit_events()
        return asyncio.ensure_future(self._watch_exit(events))

    async def _watch_exit(self, events: asyncio.subprocess.Process) -> ExitStatus:
        interval = self._runtime.poll_interval
        try:
            while True:
                line = None
                if not events.stdout.at_eof():
                    try:
                        line = await asyncio.wait_for(events.stdout.readline(), timeout=interval)
                    except asyncio.TimeoutError:
                        line = None
                else:
                    await asyncio.sleep(interval)

                if line:
                    status = parse_exit_event(_decode(line), self._id)
                    if status:
                        return status
                    continue

                if await self._has_exited():
                    return ExitStatus(exit_code=UNKNOWN_EXIT_STATUS, exited_at=_now())
        finally:
            if events.returncode is None:
                events.kill()
                await events.wait()

    async def _has_exited(self) -> bool:
        try:
            return await self.status() == TaskStatus.STOPPED
        except TaskNotFoundError:
            return self._started
        except RuntimeCommandError as e:
            logger.warning("Task status poll failed", task_id=self._id, error=str(e))
            return False

    async def start(self) -> None:
        if self._started:
            logger.debug("Task already started by the runtime", task_id=self._id)
            return
        args = ["tasks", "start", "--detach"]
        if not self._stdio:
            args.append("--null-io")
        await self._runtime.check(*args, self._id, container_id=self._id)
        self._started = True

    async def kill(self, sig: int) -> None:
        name = signal.Signals(sig).name
        await self._runtime.check("tasks", "kill", "--signal", name, self._id, container_id=self._id)

    async def status(self) -> TaskStatus:
        tasks = await self._runtime.list_tasks()
        if self._id not in tasks:
            raise TaskNotFoundError(self._id)
        return tasks[self._id]

    async def delete(self, force: bool = False) -> ExitStatus:
        args = ["tasks", "delete"]
        if force:
            args.append("--force")
        code, _, err = await self._runtime.run(*args, self._id, container_id=self._id)
        # ctr exits with the task's own exit code and prints nothing when
        # the process failed; a message on stderr means the delete failed
        if code != 0 and err.strip():
            raise RuntimeCommandError(["ctr", *args, self._id], code, err, container_id=self._id)
        return ExitStatus(exit_code=code, exited_at=_now())
