"""
File operations scoped to a server's directory.

Every user supplied path is resolved below the server root (the parent of the
``data/`` volume) with ``paths.resolve_within`` before it is touched.
"""

import shutil
from pathlib import Path
from typing import Awaitable, Callable, List, Literal

import aiofiles
from aiofiles import os as aioos
from pydantic import BaseModel

from ..errors import (
    InvalidPathError,
    NoCopiedFileError,
    PathExistsError,
    PathIsDirectoryError,
    PathNotDirectoryError,
    PathNotFoundError,
    SourceGoneError,
)
from ..logger import logger
from ..paths import normalize_relative, resolve_within, to_relative
from ..utils.fs import async_copyfile, async_copytree, async_rmtree
from .clipboard import Clipboard

RootResolver = Callable[[str], Awaitable[Path]]


class FileItem(BaseModel):
    name: str
    type: Literal["file", "directory"]
    size: int
    modified_at: float
    path: str


class FileManager:
    """File operations below a server root, including uploads and copy/paste."""

    def __init__(self, resolve_root: RootResolver, clipboard: Clipboard):
        self._resolve_root = resolve_root
        self.clipboard = clipboard

    async def _resolve(self, server_id: str, relative: str) -> tuple[Path, Path]:
        base = await self._resolve_root(server_id)
        return base, resolve_within(base, relative)

    async def list_files(self, server_id: str, relative: str = "/") -> List[FileItem]:
        """Entries of a directory, directories first. Missing directories are empty."""
        base, directory = await self._resolve(server_id, relative)

        if not await aioos.path.isdir(directory):
            if await aioos.path.exists(directory):
                raise PathNotDirectoryError(f"Path is not a directory: {relative}")
            return []

        items = []
        for name in await aioos.listdir(directory):
            item_path = directory / name
            try:
                stat_result = await aioos.stat(item_path)
            except FileNotFoundError:
                # Removed between listdir and stat
                continue

            is_dir = await aioos.path.isdir(item_path)
            items.append(
                FileItem(
                    name=name,
                    type="directory" if is_dir else "file",
                    size=0 if is_dir else stat_result.st_size,
                    modified_at=stat_result.st_mtime,
                    path="/" + to_relative(base, item_path),
                )
            )

        items.sort(key=lambda item: (item.type != "directory", item.name.lower()))
        return items

    async def _require_file(self, target: Path, relative: str) -> None:
        if not await aioos.path.exists(target):
            raise PathNotFoundError(f"File not found: {relative}")
        if await aioos.path.isdir(target):
            raise PathIsDirectoryError(f"Path is a directory: {relative}")

    async def read_file(self, server_id: str, relative: str) -> str:
        _, target = await self._resolve(server_id, relative)
        await self._require_file(target, relative)

        try:
            async with aiofiles.open(target, "r", encoding="utf-8") as f:
                return await f.read()
        except UnicodeDecodeError:
            async with aiofiles.open(target, "r", encoding="latin1") as f:
                return await f.read()

    async def write_file(self, server_id: str, relative: str, content: str) -> None:
        """Overwrite an existing file with ``content``."""
        _, target = await self._resolve(server_id, relative)
        await self._require_file(target, relative)

        async with aiofiles.open(target, "w", encoding="utf-8") as f:
            await f.write(content)

    async def upload(self, server_id: str, relative: str, content: bytes) -> Path:
        """Store uploaded bytes at ``relative``, replacing an existing file.

        Missing parent directories are created.
        """
        base, target = await self._resolve(server_id, relative)
        if await aioos.path.isdir(target):
            raise PathIsDirectoryError(f"Path is a directory: {relative}")

        await aioos.makedirs(target.parent, exist_ok=True)
        async with aiofiles.open(target, "wb") as f:
            await f.write(content)
        logger.info(
            f"Uploaded {len(content)} bytes to {to_relative(base, target)} of server {server_id}"
        )
        return target

    async def delete(self, server_id: str, relative: str) -> bool:
        """Delete a file or directory tree.

        Returns:
            False if nothing existed at ``relative``
        """
        base, target = await self._resolve(server_id, relative)
        if target == resolve_within(base, "."):
            raise InvalidPathError("Refusing to delete the server root")

        if await aioos.path.isdir(target) and not await aioos.path.islink(target):
            await async_rmtree(target)
        elif await aioos.path.exists(target) or await aioos.path.islink(target):
            await aioos.unlink(target)
        else:
            return False

        logger.info(f"Deleted {to_relative(base, target)} of server {server_id}")
        return True

    async def create_folder(self, server_id: str, relative: str) -> Path:
        _, target = await self._resolve(server_id, relative)
        if await aioos.path.exists(target) and not await aioos.path.isdir(target):
            raise PathExistsError(f"A file already exists at {relative}")
        await aioos.makedirs(target, exist_ok=True)
        return target

    async def copy(self, server_id: str, relative: str) -> None:
        """Remember ``relative`` as the source of a later ``paste``."""
        _, source = await self._resolve(server_id, relative)
        if not await aioos.path.exists(source):
            raise PathNotFoundError(f"File not found: {relative}")
        self.clipboard.put(server_id, normalize_relative(relative), source)

    async def paste(
        self, server_id: str, target_relative: str, source_relative: str
    ) -> Path:
        """Copy the remembered ``source_relative`` to ``target_relative``.

        Raises:
            NoCopiedFileError: If ``source_relative`` was not copied or expired
            SourceGoneError: If the copied source no longer exists
        """
        _, target = await self._resolve(server_id, target_relative)

        entry = self.clipboard.pop(server_id, normalize_relative(source_relative))
        if entry is None:
            raise NoCopiedFileError("No copied file found. Please copy a file first.")
        if not await aioos.path.exists(entry.source_path):
            raise SourceGoneError(f"Source no longer exists: {source_relative}")

        await aioos.makedirs(target.parent, exist_ok=True)
        if await aioos.path.isdir(entry.source_path):
            if target.is_relative_to(entry.source_path):
                raise InvalidPathError(
                    f"Cannot paste {source_relative} into itself: {target_relative}"
                )
            await async_copytree(entry.source_path, target)
        else:
            if await aioos.path.isdir(target):
                raise PathIsDirectoryError(f"Path is a directory: {target_relative}")
            try:
                await async_copyfile(entry.source_path, target)
            except shutil.SameFileError as e:
                raise InvalidPathError(
                    f"Cannot paste {source_relative} onto itself: {target_relative}"
                ) from e
        return target
