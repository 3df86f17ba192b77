from .base import (
    ContainerRuntime,
    ContainerSpec,
    ContainerState,
    normalize_container_state,
)
from .docker_runtime import DockerRuntime, classify_docker_error
from .resolver import DEFAULT_JAVA_VERSION, resolve_image, resolve_java_version

__all__ = [
    "ContainerRuntime",
    "ContainerSpec",
    "ContainerState",
    "DEFAULT_JAVA_VERSION",
    "DockerRuntime",
    "classify_docker_error",
    "normalize_container_state",
    "resolve_image",
    "resolve_java_version",
]
