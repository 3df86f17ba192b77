"""
Blocking filesystem helpers moved off the event loop.
"""

import shutil
from pathlib import Path

from asyncer import asyncify


def _ignore_missing(function, path, exc: BaseException):
    if isinstance(exc, FileNotFoundError):
        return
    raise exc


@asyncify
def async_rmtree(path: Path):
    """Asynchronously remove a directory tree.

    Entries that disappear while the tree is being removed, including the
    root itself, are ignored so concurrent removals of the same tree succeed.
    """
    shutil.rmtree(path, onexc=_ignore_missing)


@asyncify
def async_copyfile(source: Path, target: Path):
    """Asynchronously copy file contents and permission bits."""
    shutil.copy2(source, target)


@asyncify
def async_copytree(source: Path, target: Path):
    """Asynchronously copy a directory tree, merging into an existing target."""
    shutil.copytree(source, target, dirs_exist_ok=True)
