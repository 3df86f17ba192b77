from datetime import datetime

from pydantic import BaseModel, Field


class DeployProgress(BaseModel):
    """Snapshot of one deployment task, published to subscribers on every change."""

    task_id: str
    stage: str = "init"
    message: str = ""
    percent: float = 0
    done: bool = False
    error: bool = False
    container_id: str | None = None
    updated_at: datetime = Field(default_factory=datetime.now)


class CancelRequest(BaseModel):
    """Recorded intent to abort a deployment at its next checkpoint."""

    cancel: bool = True
    delete_on_cancel: bool = False
