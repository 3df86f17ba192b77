"""Docker implementation of ``ContainerRuntime`` on top of docker-py's low level client."""

import asyncio
from typing import Any, Callable

import docker
import docker.errors
import requests.exceptions
from asyncer import asyncify
from docker.utils import parse_repository_tag

from ..config import settings
from ..errors import ContainerRuntimeError, RuntimeErrorKind
from ..logger import logger
from .base import ContainerSpec


def classify_docker_error(error: Exception) -> ContainerRuntimeError:
    """Translate a docker-py / transport exception into a classified runtime error."""
    if isinstance(error, ContainerRuntimeError):
        return error
    if isinstance(error, docker.errors.NotFound):
        return ContainerRuntimeError(RuntimeErrorKind.NOT_FOUND, str(error))
    if isinstance(error, docker.errors.APIError):
        if error.status_code == 304:
            return ContainerRuntimeError(RuntimeErrorKind.NOT_MODIFIED, str(error))
        if error.status_code == 404:
            return ContainerRuntimeError(RuntimeErrorKind.NOT_FOUND, str(error))
        return ContainerRuntimeError(RuntimeErrorKind.OTHER, str(error))
    if isinstance(
        error,
        (
            requests.exceptions.ConnectionError,
            requests.exceptions.Timeout,
            ConnectionError,
            FileNotFoundError,
        ),
    ):
        return ContainerRuntimeError(RuntimeErrorKind.UNAVAILABLE, str(error))
    if isinstance(error, docker.errors.DockerException):
        # Raised by the client constructor when the daemon cannot be reached
        return ContainerRuntimeError(RuntimeErrorKind.UNAVAILABLE, str(error))
    return ContainerRuntimeError(RuntimeErrorKind.OTHER, f"{type(error).__name__}: {error}")


class DockerRuntime:
    """Drives a Docker engine. Blocking client calls run in worker threads."""

    def __init__(
        self,
        base_url: str | None = None,
        ping_timeout: float | None = None,
        timeout: int = 120,
    ):
        self._base_url = base_url or settings.docker.base_url
        self._ping_timeout = (
            ping_timeout
            if ping_timeout is not None
            else settings.docker.ping_timeout_seconds
        )
        self._timeout = timeout
        self._api: docker.APIClient | None = None

    def _get_api(self) -> docker.APIClient:
        if self._api is None:
            self._api = docker.APIClient(base_url=self._base_url, timeout=self._timeout)
        return self._api

    async def _call(self, func: Callable[[docker.APIClient], Any]) -> Any:
        def run() -> Any:
            try:
                return func(self._get_api())
            except ContainerRuntimeError:
                raise
            except Exception as e:
                raise classify_docker_error(e) from e

        return await asyncify(run)()

    async def ping(self) -> None:
        def run() -> None:
            client = docker.APIClient(
                base_url=self._base_url, timeout=max(1, int(self._ping_timeout))
            )
            try:
                client.ping()
            finally:
                client.close()

        try:
            await asyncio.wait_for(asyncify(run)(), timeout=self._ping_timeout)
        except asyncio.TimeoutError as e:
            raise ContainerRuntimeError(
                RuntimeErrorKind.UNAVAILABLE,
                f"Docker did not answer within {self._ping_timeout}s",
            ) from e
        except Exception as e:
            error = classify_docker_error(e)
            # Any failure to ping means the engine is not usable
            raise ContainerRuntimeError(RuntimeErrorKind.UNAVAILABLE, str(error)) from e

    async def pull_image(self, image: str) -> None:
        repository, tag = parse_repository_tag(image)

        def run(api: docker.APIClient) -> None:
            for event in api.pull(repository, tag=tag or "latest", stream=True, decode=True):
                if isinstance(event, dict) and event.get("error"):
                    raise ContainerRuntimeError(RuntimeErrorKind.OTHER, event["error"])

        logger.info(f"Pulling image {image}")
        await self._call(run)

    async def image_exists(self, image: str) -> bool:
        try:
            await self._call(lambda api: api.inspect_image(image))
        except ContainerRuntimeError as e:
            if e.kind == RuntimeErrorKind.NOT_FOUND:
                return False
            raise
        return True

    async def create_container(self, spec: ContainerSpec) -> str:
        def run(api: docker.APIClient) -> str:
            host_config = api.create_host_config(
                port_bindings={spec.container_port: spec.host_port},
                binds={str(spec.data_dir): {"bind": "/data", "mode": "rw"}},
            )
            result = api.create_container(
                image=spec.image,
                name=spec.name,
                environment=spec.environment,
                ports=[spec.container_port],
                host_config=host_config,
                tty=True,
                stdin_open=True,
            )
            return result["Id"]

        return await self._call(run)

    async def start(self, container_id: str) -> None:
        await self._call(lambda api: api.start(container_id))

    async def stop(self, container_id: str) -> None:
        await self._call(lambda api: api.stop(container_id))

    async def inspect_state(self, container_id: str) -> str | None:
        info = await self._call(lambda api: api.inspect_container(container_id))
        return (info.get("State") or {}).get("Status")

    async def remove(self, container_id: str, force: bool = True) -> None:
        await self._call(lambda api: api.remove_container(container_id, force=force))

    async def send_command(self, container_id: str, command: str) -> None:
        def run(api: docker.APIClient) -> None:
            sock = api.attach_socket(container_id, params={"stdin": 1, "stream": 1})
            try:
                # SocketIO over the unix socket, a plain socket over TLS
                raw = getattr(sock, "_sock", sock)
                raw.sendall(f"{command}\n".encode("utf-8"))
            finally:
                sock.close()

        await self._call(run)

    async def close(self) -> None:
        if self._api is not None:
            self._api.close()
            self._api = None
