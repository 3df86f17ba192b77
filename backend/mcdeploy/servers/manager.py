"""
Lifecycle of containerized Minecraft servers.

``ServerManager`` provisions a server (directory, port, image, container,
database records, optional modpack), keeps the persisted status in sync with
the container runtime and tears servers down again. Deployments driven with a
task id report their progress through the ``DeployTaskTracker`` and honor
cancellation requests whenever they enter a checkpoint stage.
"""

import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

import httpx
from asyncer import asyncify

from ..config import DockerSettings, settings
from ..db.database import SessionFactory
from ..deploy import DeployProgress, DeployStage, DeployTaskTracker
from ..errors import (
    ContainerRuntimeError,
    DeploymentCancelledError,
    ImageUnavailableError,
    RuntimeErrorKind,
    RuntimeUnavailableError,
    ServerNotFoundError,
    ServerNotRunningError,
    tolerate,
)
from ..logger import logger
from ..modpack import (
    ClientManifestEntry,
    build_client_manifest,
    client_dir_for,
    ensure_server_defaults,
    get_client_file,
    has_client_config,
    install_pack_to_server_data,
    materialize_client_distribution,
    remove_client_only_mods,
)
from ..models import ClientDistribution, PackSource, RuntimeHints, ServerRecord
from ..paths import resolve_within
from ..runtime import (
    ContainerRuntime,
    ContainerSpec,
    ContainerState,
    normalize_container_state,
    resolve_image,
    resolve_java_version,
)
from ..utils.fs import async_rmtree
from . import crud
from .port_utils import allocate_port

PortAllocator = Callable[[set[int]], int]

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_.-]")


def sanitize_name(name: str) -> str:
    """Container and directory safe form of a user supplied server name."""
    return _UNSAFE_NAME_CHARS.sub("", name) or "server"


def build_environment(
    memory: str,
    mc_version: Optional[str],
    java_version: int,
    loader_type: Optional[str] = None,
    loader_version: Optional[str] = None,
) -> dict[str, str]:
    """Environment understood by the itzg/minecraft-server image."""
    env = {"EULA": "TRUE", "MEMORY": memory}
    if mc_version:
        env["VERSION"] = mc_version
    env["JAVA_VERSION"] = str(java_version)
    env["JAVA_VERSION_OVERRIDE"] = str(java_version)

    loader = (loader_type or "").lower()
    if loader and loader != "vanilla":
        env["TYPE"] = loader.upper()
        if loader_version:
            if loader == "fabric":
                env["FABRIC_LOADER_VERSION"] = loader_version
            elif loader == "forge":
                env["FORGE_VERSION"] = loader_version
            elif loader == "neoforge":
                env["NEOFORGE_VERSION"] = loader_version
    return env


@dataclass
class _Deployment:
    """Resources a running deployment has created so far."""

    task_id: Optional[str]
    server_dir: Optional[Path] = None
    container_id: Optional[str] = None
    persisted: bool = False


class ServerManager:
    """Creates, starts, stops, inspects and destroys deployed servers."""

    def __init__(
        self,
        runtime: ContainerRuntime,
        sessions: SessionFactory,
        tracker: DeployTaskTracker,
        servers_path: Optional[Path] = None,
        docker_settings: Optional[DockerSettings] = None,
        port_allocator: Optional[PortAllocator] = None,
        pack_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.runtime = runtime
        self.tracker = tracker
        self._sessions = sessions
        self.servers_path = Path(servers_path or settings.servers_path).absolute()
        self.docker_settings = docker_settings or settings.docker
        self._port_allocator = port_allocator or self._allocate_port
        self._pack_transport = pack_transport

    # Deployment

    async def create_server(
        self,
        owner_id: int,
        name: str,
        version: Optional[str],
        memory: str,
        task_id: Optional[str] = None,
        runtime_hints: Optional[RuntimeHints] = None,
        pack: Optional[PackSource] = None,
    ) -> ServerRecord:
        """Deploy a new server and return its persisted record.

        Args:
            owner_id: Owning user id
            name: Display name
            version: Declared game version
            memory: Memory limit passed to the server JVM, e.g. ``"2G"``
            task_id: Deploy task to report progress on and poll for cancellation
            runtime_hints: Resolved game version and mod loader
            pack: Modpack to install before the first start

        Raises:
            RuntimeUnavailableError: If the container runtime cannot be reached
            ImageUnavailableError: If the image can neither be pulled nor found locally
            DeploymentCancelledError: If the task was cancelled at a checkpoint
            PackFormatError: If the modpack cannot be installed; the server is kept
        """
        hints = runtime_hints or RuntimeHints()
        deployment = _Deployment(task_id=task_id)
        if task_id:
            self.tracker.init(task_id, DeployStage.INIT, "Preparing deployment")

        try:
            await self._ensure_runtime()

            mc_version = hints.mc_version or version
            java_version = resolve_java_version(mc_version)
            image = resolve_image(java_version, self.docker_settings.image_repository)

            await self._enter(deployment, DeployStage.PULLING_IMAGE, f"Pulling {image}")
            await self._obtain_image(image)

            await self._enter(
                deployment, DeployStage.CREATING_CONTAINER, "Creating container"
            )
            safe_name = sanitize_name(name)
            timestamp = int(time.time() * 1000)
            server_dir = resolve_within(self.servers_path, f"{safe_name}_{timestamp}")
            data_dir = server_dir / "data"
            deployment.server_dir = server_dir
            await asyncify(data_dir.mkdir)(parents=True, exist_ok=True)

            port = await self._pick_port()
            spec = ContainerSpec(
                image=image,
                name=f"mc_{safe_name}_{timestamp}",
                data_dir=data_dir,
                host_port=port,
                container_port=self.docker_settings.container_port,
                environment=build_environment(
                    memory,
                    mc_version,
                    java_version,
                    hints.loader_type,
                    hints.loader_version,
                ),
            )
            deployment.container_id = await self._runtime_call(
                self.runtime.create_container(spec)
            )
            logger.info(
                f"Created container {deployment.container_id} for '{name}' "
                f"({image}, port {port})"
            )

            await self._enter(
                deployment,
                DeployStage.WRITING_STATE,
                "Saving server",
                container_id=deployment.container_id,
            )
            async with self._sessions() as session:
                server = await crud.create_server_record(
                    session,
                    user_id=owner_id,
                    container_id=deployment.container_id,
                    name=name,
                    port=port,
                    volume_path=str(data_dir),
                    version=version,
                    loader_type=hints.loader_type,
                    loader_version=hints.loader_version,
                    listing_host=self.docker_settings.public_host,
                )
                record = ServerRecord.model_validate(server)
            deployment.persisted = True

            start_failed = False
            if pack is not None:
                start_failed = not await self._provision_pack(deployment, record, pack)

            await self._enter(
                deployment,
                DeployStage.DONE,
                "Deployment finished",
                error=start_failed,
            )
        except DeploymentCancelledError:
            raise
        except Exception as e:
            await self._fail(deployment, e)
            raise

        return await self.get_server(record.container_id)

    async def install_pack(
        self, container_id: str, pack: PackSource, task_id: Optional[str] = None
    ) -> bool:
        """Install a modpack into an existing server and start it.

        Returns:
            False if the server could not be started afterwards
        """
        record = await self.get_server(container_id)
        deployment = _Deployment(
            task_id=task_id,
            server_dir=Path(record.server_root),
            container_id=container_id,
            persisted=True,
        )
        try:
            return await self._provision_pack(deployment, record, pack)
        except DeploymentCancelledError:
            raise
        except Exception as e:
            await self._fail(deployment, e)
            raise

    async def _provision_pack(
        self, deployment: _Deployment, record: ServerRecord, pack: PackSource
    ) -> bool:
        task_id = deployment.task_id
        data_dir = Path(record.volume_path)

        await self._enter(deployment, DeployStage.INSTALLING_PACK, "Installing modpack")
        await materialize_client_distribution(
            record.server_root, pack.archive_path, pack.filename, pack.client_type
        )
        result = await install_pack_to_server_data(
            pack.archive_path, data_dir, pack.filename, transport=self._pack_transport
        )
        if task_id:
            self.tracker.report(
                task_id,
                message=f"Modpack installed ({result.extracted + result.downloaded} files)",
                percent=85,
            )

        removed = await remove_client_only_mods(data_dir / "mods")
        await ensure_server_defaults(data_dir, record.name)
        if task_id:
            self.tracker.report(
                task_id,
                message=f"Server defaults written, {removed} client-only mods removed",
                percent=90,
            )

        await self._enter(deployment, DeployStage.STARTING_SERVER, "Starting server")
        try:
            await self.start_server(record.container_id)
        except Exception as e:
            logger.warning(f"Server {record.container_id} failed to start: {e}")
            if task_id:
                self.tracker.report(
                    task_id, message=f"Server failed to start: {e}", error=True
                )
            return False
        if task_id:
            self.tracker.report(task_id, message="Server started", percent=99)
        return True

    async def _ensure_runtime(self) -> None:
        try:
            await self.runtime.ping()
        except ContainerRuntimeError as e:
            raise RuntimeUnavailableError(
                "Docker is not running or cannot be reached. Make sure the Docker "
                f"daemon is started and reachable at {self.docker_settings.base_url}. "
                f"({e})"
            ) from e

    async def _obtain_image(self, image: str) -> None:
        try:
            await self.runtime.pull_image(image)
            return
        except ContainerRuntimeError as e:
            pull_error = e
            logger.warning(f"Pulling {image} failed, looking for a local copy: {e}")

        if await self._runtime_call(self.runtime.image_exists(image)):
            logger.info(f"Using locally cached {image}")
            return
        raise ImageUnavailableError(
            f"Cannot obtain server image '{image}': the download failed and no local "
            "copy exists. Check the network connection or configure a registry "
            f"mirror or proxy for Docker. Error: {pull_error}"
        )

    async def _pick_port(self) -> int:
        async with self._sessions() as session:
            reserved = await crud.list_used_ports(session)
        return await asyncify(self._port_allocator)(reserved)

    def _allocate_port(self, reserved: set[int]) -> int:
        return allocate_port(
            reserved,
            self.docker_settings.port_range_start,
            self.docker_settings.port_range_end,
            self.docker_settings.port_allocation_attempts,
        )

    async def _enter(
        self, deployment: _Deployment, stage: DeployStage, message: str, **changes
    ) -> None:
        """Move a deployment into ``stage``, aborting it if a cancel is pending."""
        task_id = deployment.task_id
        if not task_id:
            return
        if stage.cancellable and self.tracker.is_cancelled(task_id):
            await self._abort(deployment)
        self.tracker.report_stage(task_id, stage, message, **changes)

    async def _abort(self, deployment: _Deployment) -> None:
        task_id = deployment.task_id
        assert task_id is not None
        request = self.tracker.cancel_request(task_id)
        delete = request is not None and request.delete_on_cancel

        if deployment.persisted and delete and deployment.container_id:
            await self.delete_server(deployment.container_id)
            message = "Deployment cancelled and server deleted"
        elif deployment.persisted:
            message = "Deployment cancelled"
        else:
            # Nothing was recorded yet, so partial resources would be unreachable
            await self._discard_partial(deployment)
            message = "Deployment cancelled"

        logger.info(f"Deploy task {task_id}: {message}")
        self.tracker.report_stage(
            task_id,
            DeployStage.CANCELLED,
            message,
            container_id=deployment.container_id,
        )
        raise DeploymentCancelledError(message)

    async def _fail(self, deployment: _Deployment, error: Exception) -> None:
        logger.error(f"Deployment of task {deployment.task_id} failed: {error}")
        if not deployment.persisted:
            try:
                await self._discard_partial(deployment)
            except Exception as cleanup_error:
                logger.error(
                    f"Cleanup after failed deployment left resources behind: {cleanup_error}",
                    exc_info=True,
                )
        task_id = deployment.task_id
        if not task_id:
            return
        self.tracker.report_stage(
            task_id,
            DeployStage.ERROR,
            str(error) or type(error).__name__,
            container_id=deployment.container_id,
        )

    async def _discard_partial(self, deployment: _Deployment) -> None:
        if deployment.container_id:
            with tolerate(RuntimeErrorKind.NOT_FOUND):
                await self.runtime.remove(deployment.container_id, force=True)
        if deployment.server_dir is not None:
            await async_rmtree(deployment.server_dir)

    async def cancel_deployment(
        self, task_id: str, delete_on_cancel: bool = False
    ) -> DeployProgress:
        """Request cancellation of a deployment.

        A running deployment honors the request at its next checkpoint. A
        finished one is only affected when deletion is requested, in which case
        its server is deleted right away.
        """
        snapshot = self.tracker.require_snapshot(task_id)
        self.tracker.request_cancel(task_id, delete_on_cancel)

        if not snapshot.done:
            return snapshot
        if delete_on_cancel and snapshot.container_id:
            await self.delete_server(snapshot.container_id)
            return self.tracker.report_stage(
                task_id, DeployStage.CANCELLED, "Deployment cancelled and server deleted"
            )
        return snapshot

    # Lifecycle

    async def _runtime_call(self, awaitable):
        try:
            return await awaitable
        except ContainerRuntimeError as e:
            if e.kind == RuntimeErrorKind.UNAVAILABLE:
                raise RuntimeUnavailableError(f"Docker is unavailable: {e}") from e
            raise

    async def get_status(self, container_id: str) -> ContainerState:
        """Current state of a container as seen by the runtime."""
        try:
            state = await self.runtime.inspect_state(container_id)
        except ContainerRuntimeError as e:
            if e.kind == RuntimeErrorKind.NOT_FOUND:
                return ContainerState.MISSING
            logger.debug(f"Status of {container_id} is inconclusive: {e}")
            return ContainerState.UNKNOWN
        return normalize_container_state(state)

    async def _refresh_status(
        self, container_id: str, cached: Optional[ContainerState]
    ) -> ContainerState:
        status = await self.get_status(container_id)
        # An inconclusive answer keeps the cached status
        if status != ContainerState.UNKNOWN and status != cached:
            async with self._sessions() as session:
                await crud.update_server_status(session, container_id, status)
        return status

    async def get_server(self, container_id: str) -> ServerRecord:
        async with self._sessions() as session:
            server = await crud.get_server_by_container_id(session, container_id)
            if server is None:
                raise ServerNotFoundError(f"Server '{container_id}' not found")
            return ServerRecord.model_validate(server)

    async def get_server_root(self, container_id: str) -> Path:
        """Directory holding ``data/`` and ``ClientForServer/`` of a server."""
        return Path((await self.get_server(container_id)).server_root)

    async def list_servers(self, owner_id: int) -> List[ServerRecord]:
        """Servers of one owner, with their status re-derived from the runtime."""
        async with self._sessions() as session:
            servers = [
                ServerRecord.model_validate(server)
                for server in await crud.list_servers_by_owner(session, owner_id)
            ]

        records = []
        for record in servers:
            status = await self._refresh_status(record.container_id, record.status)
            if status != ContainerState.UNKNOWN:
                record = record.model_copy(update={"status": status})
            records.append(record)
        return records

    async def start_server(self, container_id: str) -> ContainerState:
        """Start a container. Starting a running container is not an error.

        Raises:
            ServerNotFoundError: If the container no longer exists
        """
        return await self._change_state(container_id, self.runtime.start)

    async def stop_server(self, container_id: str) -> ContainerState:
        """Stop a container. Stopping a stopped container is not an error.

        Raises:
            ServerNotFoundError: If the container no longer exists
        """
        return await self._change_state(container_id, self.runtime.stop)

    async def _change_state(self, container_id: str, action) -> ContainerState:
        try:
            with tolerate(RuntimeErrorKind.NOT_MODIFIED):
                await self._runtime_call(action(container_id))
        except ContainerRuntimeError as e:
            if e.kind != RuntimeErrorKind.NOT_FOUND:
                raise
            async with self._sessions() as session:
                await crud.update_server_status(
                    session, container_id, ContainerState.MISSING
                )
            raise ServerNotFoundError(f"Container '{container_id}' not found") from e

        return await self._refresh_status(container_id, None)

    async def send_command(self, container_id: str, command: str) -> None:
        """Write one console command to a running server.

        Raises:
            ServerNotFoundError: If the container no longer exists
            ServerNotRunningError: If the container is not running
        """
        try:
            state = await self._runtime_call(self.runtime.inspect_state(container_id))
            if normalize_container_state(state) != ContainerState.RUNNING:
                raise ServerNotRunningError(f"Server '{container_id}' is not running")
            await self._runtime_call(
                self.runtime.send_command(container_id, command.rstrip("\r\n"))
            )
        except ContainerRuntimeError as e:
            if e.kind != RuntimeErrorKind.NOT_FOUND:
                raise
            raise ServerNotFoundError(f"Container '{container_id}' not found") from e
        logger.info(f"Sent console command to {container_id}")

    async def delete_server(self, container_id: str) -> None:
        """Destroy a server: container, database records and on-disk directory.

        Safe to call for servers that are partially or completely gone.
        """
        async with self._sessions() as session:
            server = await crud.get_server_by_container_id(session, container_id)
            volume_path = server.volume_path if server else None

        with tolerate(RuntimeErrorKind.NOT_FOUND, RuntimeErrorKind.NOT_MODIFIED):
            state = await self._runtime_call(self.runtime.inspect_state(container_id))
            if normalize_container_state(state) == ContainerState.RUNNING:
                await self._runtime_call(self.runtime.stop(container_id))

        with tolerate(RuntimeErrorKind.NOT_FOUND):
            await self._runtime_call(self.runtime.remove(container_id, force=True))

        async with self._sessions() as session:
            await crud.delete_server_records(session, container_id)

        if volume_path:
            await async_rmtree(Path(volume_path).parent)
        logger.info(f"Deleted server {container_id}")

    async def sweep_missing(self) -> List[str]:
        """Delete every server whose container disappeared from the runtime.

        Returns:
            Container ids of the deleted servers
        """
        async with self._sessions() as session:
            container_ids = [s.container_id for s in await crud.list_all_servers(session)]

        removed = []
        for container_id in container_ids:
            if await self.get_status(container_id) == ContainerState.MISSING:
                logger.info(f"Container {container_id} is gone, removing its server")
                await self.delete_server(container_id)
                removed.append(container_id)
        return removed

    # Client distribution

    async def build_client_manifest(self, container_id: str) -> List[ClientManifestEntry]:
        root = await self.get_server_root(container_id)
        return await build_client_manifest(client_dir_for(root))

    async def get_client_file(self, container_id: str, relative: str) -> Path:
        root = await self.get_server_root(container_id)
        return await get_client_file(client_dir_for(root), relative)

    async def has_client_config(self, container_id: str) -> bool:
        try:
            root = await self.get_server_root(container_id)
        except ServerNotFoundError:
            return False
        return await has_client_config(root)

    async def update_client_config(
        self, container_id: str, config_type: Optional[str], value: Optional[str]
    ) -> None:
        async with self._sessions() as session:
            updated = await crud.update_client_config(
                session, container_id, config_type, value
            )
        if not updated:
            raise ServerNotFoundError(f"Server '{container_id}' not found")

    async def get_client_config(self, container_id: str) -> ClientDistribution:
        record = await self.get_server(container_id)
        return ClientDistribution(
            type=record.client_config_type, value=record.client_config_value
        )
