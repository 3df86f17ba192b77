"""Periodic maintenance: removal of vanished servers and pruning of finished deploy tasks."""

from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..logger import log_exception, logger
from .manager import ServerManager

SWEEP_JOB_ID = "sweep_missing_servers"
PRUNE_JOB_ID = "prune_finished_tasks"


class MissingServerSweeper:
    """Runs ``ServerManager.sweep_missing`` and prunes finished deploy tasks on a fixed interval."""

    def __init__(
        self,
        manager: ServerManager,
        interval_seconds: int,
        finished_task_ttl_seconds: int = 10 * 60,
    ):
        self._manager = manager
        self.interval_seconds = interval_seconds
        self.finished_task_ttl_seconds = finished_task_ttl_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None

    @log_exception("Missing server sweep", default_return=[])
    async def run_once(self) -> list[str]:
        removed = await self._manager.sweep_missing()
        if removed:
            logger.info(f"Sweep removed {len(removed)} servers: {', '.join(removed)}")
        return removed

    @log_exception("Finished task pruning", default_return=[])
    def prune_tasks(self) -> list[str]:
        pruned = self._manager.tracker.prune_finished(self.finished_task_ttl_seconds)
        if pruned:
            logger.debug(f"Pruned {len(pruned)} finished deploy tasks")
        return pruned

    def start(self) -> None:
        if self.is_running():
            logger.warning("Missing server sweeper is already running")
            return

        self._scheduler = AsyncIOScheduler()
        for func, job_id in ((self.run_once, SWEEP_JOB_ID), (self.prune_tasks, PRUNE_JOB_ID)):
            self._scheduler.add_job(
                func,
                IntervalTrigger(seconds=self.interval_seconds),
                id=job_id,
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
        self._scheduler.start()
        logger.info(
            f"Missing server sweeper started, interval {self.interval_seconds}s"
        )

    def stop(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Missing server sweeper stopped")

    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running
