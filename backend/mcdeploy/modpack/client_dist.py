"""
Client distribution of a server.

The ``ClientForServer/`` directory next to a server's ``data/`` holds what a
player's launcher needs to match the server, either the unpacked client files
or a single modpack file, plus ``client_config.json`` describing which of the
two it is.
"""

import hashlib
import json
import shutil
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from aiofiles import os as aioos
from asyncer import asyncify
from pydantic import BaseModel, ConfigDict, Field

from ..errors import PackFormatError, PathNotFoundError
from ..paths import resolve_within, to_relative

CLIENT_DIR_NAME = "ClientForServer"
CLIENT_CONFIG_NAME = "client_config.json"


class ClientConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str
    main_file: Optional[str] = Field(default=None, alias="mainFile")
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), alias="updatedAt"
    )


class ClientManifestEntry(BaseModel):
    path: str
    size: int
    hash: str


def client_dir_for(server_root: str | Path) -> Path:
    return Path(server_root) / CLIENT_DIR_NAME


def _reset_dir(path: Path) -> None:
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True)


def _extract_all(archive_path: Path, target_dir: Path) -> None:
    try:
        with zipfile.ZipFile(archive_path) as archive:
            for name in archive.namelist():
                target = resolve_within(target_dir, name)
                if name.endswith("/"):
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                with archive.open(name) as source, open(target, "wb") as sink:
                    shutil.copyfileobj(source, sink)
    except (zipfile.BadZipFile, OSError) as e:
        raise PackFormatError(f"Failed to unzip client file: {e}") from e


def _materialize(
    server_root: Path, archive_path: Path, filename: str, client_type: str
) -> ClientConfig:
    name = Path(filename).name
    if not name or name == ".." or filename.endswith(("/", "\\")):
        raise PackFormatError(f"Invalid client file name: {filename!r}")

    client_dir = client_dir_for(server_root)
    _reset_dir(client_dir)

    lowered = filename.lower()
    if lowered.endswith(".zip") and client_type != "modpack":
        _extract_all(archive_path, client_dir)
        config = ClientConfig(type=client_type)
    else:
        main_file = resolve_within(client_dir, name)
        shutil.copyfile(archive_path, main_file)
        config = ClientConfig(
            type="modpack" if client_type == "full" else client_type,
            main_file=main_file.name,
        )

    (client_dir / CLIENT_CONFIG_NAME).write_text(
        config.model_dump_json(by_alias=True, exclude_none=True), encoding="utf-8"
    )
    return config


async def materialize_client_distribution(
    server_root: str | Path,
    archive_path: str | Path,
    filename: str,
    client_type: str = "full",
) -> ClientConfig:
    """Replace the client distribution of a server with an uploaded file.

    A plain ``.zip`` uploaded as anything but ``modpack`` is unpacked as is.
    Anything else (``.mrpack`` files, zips declared as ``modpack``) is kept as
    a single main file.

    Returns:
        The written client configuration
    """
    return await asyncify(_materialize)(
        Path(server_root), Path(archive_path), filename, client_type
    )


def _hash_file(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _walk_manifest(client_dir: Path) -> List[ClientManifestEntry]:
    if not client_dir.is_dir():
        return []

    entries = [
        ClientManifestEntry(
            path=to_relative(client_dir, path),
            size=path.stat().st_size,
            hash=_hash_file(path),
        )
        for path in client_dir.rglob("*")
        if path.is_file()
    ]
    return sorted(entries, key=lambda entry: entry.path)


async def build_client_manifest(client_dir: str | Path) -> List[ClientManifestEntry]:
    """List every file of a client distribution with its size and sha256.

    Always computed from disk. A missing directory yields an empty manifest.
    """
    return await asyncify(_walk_manifest)(Path(client_dir))


async def get_client_file(client_dir: str | Path, relative: str) -> Path:
    """Absolute path of one client distribution file.

    Raises:
        InvalidPathError: If ``relative`` escapes the distribution directory
        PathNotFoundError: If the file does not exist
    """
    target = resolve_within(client_dir, relative)
    if not await aioos.path.isfile(target):
        raise PathNotFoundError(f"Client file not found: {relative}")
    return target


async def has_client_config(server_root: str | Path) -> bool:
    return await aioos.path.exists(client_dir_for(server_root) / CLIENT_CONFIG_NAME)


async def read_client_config(server_root: str | Path) -> Optional[ClientConfig]:
    config_path = client_dir_for(server_root) / CLIENT_CONFIG_NAME
    if not await aioos.path.exists(config_path):
        return None
    raw = await asyncify(config_path.read_text)(encoding="utf-8")
    return ClientConfig.model_validate(json.loads(raw))
