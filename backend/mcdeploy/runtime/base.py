from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Protocol


class ContainerState(str, Enum):
    RUNNING = "running"
    CREATED = "created"
    STOPPED = "stopped"
    MISSING = "missing"
    UNKNOWN = "unknown"


def normalize_container_state(state: str | None) -> ContainerState:
    """Collapse a raw engine state string into a ``ContainerState``."""
    if not state:
        return ContainerState.UNKNOWN
    if state in ("running", "restarting", "paused"):
        return ContainerState.RUNNING
    if state == "created":
        return ContainerState.CREATED
    return ContainerState.STOPPED


@dataclass(frozen=True)
class ContainerSpec:
    image: str
    name: str
    data_dir: Path
    host_port: int
    container_port: int = 25565
    environment: dict[str, str] = field(default_factory=dict)


class ContainerRuntime(Protocol):
    """Container engine operations the deployment engine depends on.

    Implementations raise ``ContainerRuntimeError`` with a classified kind for
    every engine side failure.
    """

    async def ping(self) -> None: ...

    async def pull_image(self, image: str) -> None: ...

    async def image_exists(self, image: str) -> bool: ...

    async def create_container(self, spec: ContainerSpec) -> str: ...

    async def start(self, container_id: str) -> None: ...

    async def stop(self, container_id: str) -> None: ...

    async def inspect_state(self, container_id: str) -> str | None:
        """Raw engine state (``running``, ``exited``, ...) of the container."""
        ...

    async def remove(self, container_id: str, force: bool = True) -> None: ...

    async def send_command(self, container_id: str, command: str) -> None:
        """Write ``command`` and a newline to the container's stdin."""
        ...

    async def close(self) -> None: ...
