"""Process level wiring of the deployment engine."""

from typing import Optional

from .config import Settings, settings as default_settings
from .db.database import create_engine_and_sessions, init_db
from .deploy import DeployTaskTracker, TaskStore
from .files import Clipboard, FileManager
from .logger import logger
from .runtime import ContainerRuntime, DockerRuntime
from .servers import MissingServerSweeper, ServerManager


class DeployEngine:
    """Owns every long lived collaborator of the engine.

    Nothing is global: tests and embedding applications build their own
    instance, optionally with a fake runtime or another task store, and tear it
    down with ``stop``.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        runtime: Optional[ContainerRuntime] = None,
        task_store: Optional[TaskStore] = None,
    ):
        self.settings = settings or default_settings
        self.db_engine, self.sessions = create_engine_and_sessions(
            self.settings.database_url
        )
        self.runtime: ContainerRuntime = runtime or DockerRuntime(
            base_url=self.settings.docker.base_url,
            ping_timeout=self.settings.docker.ping_timeout_seconds,
        )
        self.tracker = DeployTaskTracker(task_store)
        self.clipboard = Clipboard(ttl=self.settings.maintenance.clipboard_ttl_seconds)
        self.servers = ServerManager(
            self.runtime,
            self.sessions,
            self.tracker,
            servers_path=self.settings.servers_path,
            docker_settings=self.settings.docker,
        )
        self.files = FileManager(self.servers.get_server_root, self.clipboard)
        self.sweeper = MissingServerSweeper(
            self.servers,
            self.settings.maintenance.sweep_interval_seconds,
            self.settings.maintenance.finished_task_ttl_seconds,
        )

    async def start(self, schedule_sweep: bool = True) -> None:
        logger.info("Initializing the database...")
        await init_db(self.db_engine)
        self.servers.servers_path.mkdir(parents=True, exist_ok=True)
        if schedule_sweep:
            await self.sweeper.run_once()
            self.sweeper.start()
        logger.info("Deploy engine started.")

    async def stop(self) -> None:
        self.sweeper.stop()
        self.tracker.close()
        self.clipboard.clear()
        await self.runtime.close()
        await self.db_engine.dispose()
        logger.info("Deploy engine stopped.")
