"""Resolution of user supplied relative paths against a confining base directory."""

import os
from pathlib import Path

from .errors import InvalidPathError


def normalize_relative(relative: str) -> str:
    """Normalize separators and strip leading ones. Empty or root maps to ``"."``."""
    trimmed = relative.replace("\\", "/").lstrip("/")
    return trimmed or "."


def resolve_within(base: str | Path, relative: str) -> Path:
    """Join ``relative`` onto ``base`` and refuse results outside of ``base``.

    ``.`` and ``..`` segments are collapsed before the check; symlinks are not
    followed. An empty or ``/`` relative path resolves to ``base`` itself.

    Raises:
        InvalidPathError: If the normalized result escapes ``base``
    """
    base_path = os.path.normpath(os.path.abspath(base))
    target = os.path.normpath(os.path.join(base_path, normalize_relative(relative)))

    if os.path.commonpath([base_path, target]) != base_path:
        raise InvalidPathError(f"Invalid path: {relative}")
    return Path(target)


def to_relative(base: str | Path, target: str | Path) -> str:
    """Forward slash path of ``target`` relative to ``base``."""
    return Path(os.path.relpath(target, base)).as_posix()
