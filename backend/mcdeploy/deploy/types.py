from enum import Enum


class DeployStage(str, Enum):
    """Named deployment stages.

    Every member declares its nominal progress percentage and whether it is a
    cancellation checkpoint, so a new stage cannot be added without deciding
    whether a pending cancel is honored when the stage is entered.
    """

    INIT = "init"
    PULLING_IMAGE = "pulling-image"
    CREATING_CONTAINER = "creating-container"
    WRITING_STATE = "writing-state"
    INSTALLING_PACK = "installing-pack"
    STARTING_SERVER = "starting-server"
    DONE = "done"
    CANCELLED = "cancelled"
    ERROR = "error"

    @property
    def percent(self) -> int:
        return _STAGE_PERCENT[self]

    @property
    def cancellable(self) -> bool:
        return self in _CHECKPOINTS

    @property
    def terminal(self) -> bool:
        return self in (DeployStage.DONE, DeployStage.CANCELLED, DeployStage.ERROR)


_STAGE_PERCENT: dict[DeployStage, int] = {
    DeployStage.INIT: 5,
    DeployStage.PULLING_IMAGE: 20,
    DeployStage.CREATING_CONTAINER: 55,
    DeployStage.WRITING_STATE: 70,
    DeployStage.INSTALLING_PACK: 80,
    DeployStage.STARTING_SERVER: 95,
    DeployStage.DONE: 100,
    DeployStage.CANCELLED: 100,
    DeployStage.ERROR: 100,
}

_CHECKPOINTS = frozenset(
    {
        DeployStage.PULLING_IMAGE,
        DeployStage.CREATING_CONTAINER,
        DeployStage.WRITING_STATE,
        DeployStage.INSTALLING_PACK,
        DeployStage.STARTING_SERVER,
        DeployStage.DONE,
    }
)
