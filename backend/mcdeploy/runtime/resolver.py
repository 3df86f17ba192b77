"""Mapping from a Minecraft version to the Java runtime and image able to run it."""

import re

from ..config import settings

DEFAULT_JAVA_VERSION = 17

_VERSION_PATTERN = re.compile(r"^(\d+)\.(\d+)(?:\.(\d+))?")


def resolve_java_version(mc_version: str | None) -> int:
    """Return the Java major version required by ``mc_version``.

    1.21+ and 1.20.5+ need Java 21, 1.18 to 1.20.4 need Java 17, anything
    older runs on Java 8. A later major release line is assumed to need 21.
    Missing or unparseable versions default to 17.
    """
    if not mc_version:
        return DEFAULT_JAVA_VERSION
    match = _VERSION_PATTERN.match(mc_version.strip())
    if not match:
        return DEFAULT_JAVA_VERSION

    major = int(match.group(1))
    minor = int(match.group(2))
    patch = int(match.group(3) or 0)

    if major > 1:
        return 21
    if minor >= 21 or (minor == 20 and patch >= 5):
        return 21
    if minor >= 18:
        return 17
    return 8


def resolve_image(java_version: int, repository: str | None = None) -> str:
    """Image reference for the server image built for ``java_version``."""
    return f"{repository or settings.docker.image_repository}:java{java_version}"
