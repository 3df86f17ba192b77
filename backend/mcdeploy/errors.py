"""
Error taxonomy for the deployment engine.

Errors that can reach a caller subclass ``HTTPException`` so the HTTP adapter
renders them without extra handlers. Container runtime failures are raised as
``ContainerRuntimeError`` and classified by kind; cleanup paths tolerate the
benign kinds explicitly with ``tolerate``.
"""

from contextlib import contextmanager
from enum import Enum
from typing import Iterator

from fastapi import HTTPException

from .logger import logger


class EngineError(HTTPException):
    """Base class for errors surfaced to callers of the engine."""

    status_code_default: int = 500

    def __init__(self, detail: str):
        super().__init__(status_code=self.status_code_default, detail=detail)

    def __str__(self) -> str:
        return str(self.detail)


class RuntimeUnavailableError(EngineError):
    status_code_default = 503


class ImageUnavailableError(EngineError):
    status_code_default = 502


class ServerNotFoundError(EngineError):
    status_code_default = 404


class ServerNotRunningError(EngineError):
    status_code_default = 409


class PathNotFoundError(EngineError):
    status_code_default = 404


class TaskNotFoundError(EngineError):
    status_code_default = 404


class InvalidPathError(EngineError):
    status_code_default = 400


class PathIsDirectoryError(EngineError):
    status_code_default = 400


class PathNotDirectoryError(EngineError):
    status_code_default = 400


class PathExistsError(EngineError):
    status_code_default = 409


class DeploymentCancelledError(EngineError):
    status_code_default = 409


class PackFormatError(EngineError):
    status_code_default = 400


class NoCopiedFileError(EngineError):
    status_code_default = 400


class SourceGoneError(EngineError):
    status_code_default = 410


class RuntimeErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    NOT_MODIFIED = "not_modified"  # already in the requested state
    UNAVAILABLE = "unavailable"
    OTHER = "other"


class ContainerRuntimeError(Exception):
    """A classified failure reported by the container runtime."""

    def __init__(self, kind: RuntimeErrorKind, message: str):
        super().__init__(message)
        self.kind = kind

    def __repr__(self) -> str:
        return f"ContainerRuntimeError(kind={self.kind.value!r}, message={str(self)!r})"


@contextmanager
def tolerate(*kinds: RuntimeErrorKind) -> Iterator[None]:
    """Swallow container runtime errors whose kind is in ``kinds``.

    Any other error, including runtime errors of an unlisted kind, propagates.
    """
    try:
        yield
    except ContainerRuntimeError as e:
        if e.kind not in kinds:
            raise
        logger.debug(f"Tolerated runtime error ({e.kind.value}): {e}", stacklevel=3)
