from .models import CancelRequest, DeployProgress
from .store import InMemoryTaskStore, TaskStore
from .tracker import DeployTaskTracker
from .types import DeployStage

__all__ = [
    "CancelRequest",
    "DeployProgress",
    "DeployStage",
    "DeployTaskTracker",
    "InMemoryTaskStore",
    "TaskStore",
]
