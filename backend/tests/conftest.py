"""
Shared fixtures: an in-memory container runtime, an isolated sqlite database
and a ``ServerManager`` wired to both.
"""

import io
import itertools
import tempfile
import uuid
import zipfile
from pathlib import Path
from typing import Callable, Optional

import pytest

from mcdeploy.config import DockerSettings
from mcdeploy.db.database import create_engine_and_sessions, init_db
from mcdeploy.deploy import DeployTaskTracker
from mcdeploy.errors import ContainerRuntimeError, RuntimeErrorKind
from mcdeploy.runtime import ContainerSpec
from mcdeploy.servers import ServerManager, ensure_user


class FakeRuntime:
    """In-memory ``ContainerRuntime`` that behaves like the Docker engine."""

    def __init__(self):
        self.containers: dict[str, dict] = {}
        self.images: set[str] = set()
        self.pulled: list[str] = []
        self.commands: dict[str, list[str]] = {}
        self.available = True
        self.pull_fails = False
        self.start_fails = False
        self.on_create: Optional[Callable[[str, ContainerSpec], None]] = None
        self.closed = False

    def _unavailable(self):
        if not self.available:
            raise ContainerRuntimeError(RuntimeErrorKind.UNAVAILABLE, "connection refused")

    def _get(self, container_id: str) -> dict:
        self._unavailable()
        container = self.containers.get(container_id)
        if container is None:
            raise ContainerRuntimeError(
                RuntimeErrorKind.NOT_FOUND, f"No such container: {container_id}"
            )
        return container

    async def ping(self) -> None:
        self._unavailable()

    async def pull_image(self, image: str) -> None:
        self._unavailable()
        if self.pull_fails:
            raise ContainerRuntimeError(RuntimeErrorKind.OTHER, "registry unreachable")
        self.pulled.append(image)
        self.images.add(image)

    async def image_exists(self, image: str) -> bool:
        self._unavailable()
        return image in self.images

    async def create_container(self, spec: ContainerSpec) -> str:
        self._unavailable()
        container_id = uuid.uuid4().hex
        self.containers[container_id] = {"spec": spec, "state": "created"}
        if self.on_create is not None:
            self.on_create(container_id, spec)
        return container_id

    async def start(self, container_id: str) -> None:
        container = self._get(container_id)
        if self.start_fails:
            raise ContainerRuntimeError(RuntimeErrorKind.OTHER, "port is already allocated")
        if container["state"] == "running":
            raise ContainerRuntimeError(RuntimeErrorKind.NOT_MODIFIED, "already started")
        container["state"] = "running"

    async def stop(self, container_id: str) -> None:
        container = self._get(container_id)
        if container["state"] != "running":
            raise ContainerRuntimeError(RuntimeErrorKind.NOT_MODIFIED, "already stopped")
        container["state"] = "exited"

    async def inspect_state(self, container_id: str) -> str | None:
        return self._get(container_id)["state"]

    async def remove(self, container_id: str, force: bool = True) -> None:
        container = self._get(container_id)
        if container["state"] == "running" and not force:
            raise ContainerRuntimeError(RuntimeErrorKind.OTHER, "container is running")
        del self.containers[container_id]

    async def send_command(self, container_id: str, command: str) -> None:
        container = self._get(container_id)
        if container["state"] != "running":
            raise ContainerRuntimeError(RuntimeErrorKind.OTHER, "container is not running")
        self.commands.setdefault(container_id, []).append(command)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_runtime():
    return FakeRuntime()


@pytest.fixture
async def test_database():
    """Create isolated test database and yield its session factory."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    engine, sessions = create_engine_and_sessions(f"sqlite:///{db_path}")
    await init_db(engine)

    yield sessions

    await engine.dispose()
    Path(db_path).unlink(missing_ok=True)


@pytest.fixture
def servers_root():
    with tempfile.TemporaryDirectory(prefix="mcdeploy_servers_test_") as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def tracker():
    tracker = DeployTaskTracker()
    yield tracker
    tracker.close()


@pytest.fixture
def server_manager(fake_runtime, test_database, tracker, servers_root):
    ports = itertools.count(30000)

    def next_port(reserved: set[int]) -> int:
        port = next(ports)
        while port in reserved:
            port = next(ports)
        return port

    return ServerManager(
        fake_runtime,
        test_database,
        tracker,
        servers_path=servers_root,
        docker_settings=DockerSettings(),
        port_allocator=next_port,
    )


@pytest.fixture
async def owner_id(test_database):
    async with test_database() as session:
        user = await ensure_user(session, "steve")
    return user.id


@pytest.fixture
def temp_dir():
    with tempfile.TemporaryDirectory(prefix="mcdeploy_test_") as temp_dir:
        yield Path(temp_dir)


def _zip_bytes(entries: dict[str, bytes | str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in entries.items():
            archive.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture
def make_zip(temp_dir):
    """Factory writing a zip archive with the given entries into ``temp_dir``."""

    def factory(name: str, entries: dict[str, bytes | str]) -> Path:
        path = temp_dir / name
        path.write_bytes(_zip_bytes(entries))
        return path

    return factory


@pytest.fixture
def make_jar():
    """Factory returning the bytes of a mod jar holding the given metadata files."""

    def factory(**metadata: str) -> bytes:
        names = {
            "fabric": "fabric.mod.json",
            "quilt": "quilt.mod.json",
            "forge": "META-INF/mods.toml",
            "neoforge": "META-INF/neoforge.mods.toml",
        }
        return _zip_bytes({names[kind]: text for kind, text in metadata.items()})

    return factory
