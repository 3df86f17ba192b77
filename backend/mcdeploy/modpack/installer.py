"""
Installation of modpack archives into a server data directory.

Two archive families are supported:

- Modrinth packs (``.mrpack``): a ``modrinth.index.json`` manifest lists remote
  files to download, and override roots inside the archive are copied verbatim.
- Plain ``.zip`` packs: the content root is detected with ``rules.ZIP_RULES``.
"""

import json
import zipfile
from pathlib import Path
from typing import Literal, Optional

import aiofiles
import httpx
from aiofiles import os as aioos
from asyncer import asyncify
from pydantic import BaseModel, Field

from ..errors import PackFormatError
from ..logger import logger
from ..paths import resolve_within
from .rules import MRPACK_RULES, ZIP_RULES, RootRule, plan_extraction

MRPACK_INDEX = "modrinth.index.json"

PackFormat = Literal["mrpack", "zip"]


class PackFile(BaseModel):
    """One downloadable file of a Modrinth index."""

    path: Optional[str] = None
    downloads: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    file_size: Optional[int] = Field(default=None, alias="fileSize")

    @property
    def server_unsupported(self) -> bool:
        return str(self.env.get("server", "")).lower() == "unsupported"


class PackIndex(BaseModel):
    name: Optional[str] = None
    version_id: Optional[str] = Field(default=None, alias="versionId")
    files: list[PackFile] = Field(default_factory=list)
    dependencies: dict[str, str] = Field(default_factory=dict)


class PackInstallResult(BaseModel):
    format: PackFormat
    extracted: int = 0
    downloaded: int = 0
    skipped: int = 0


def detect_pack_format(filename: str) -> PackFormat:
    return "mrpack" if filename.lower().endswith(".mrpack") else "zip"


def _open_archive(archive_path: Path) -> zipfile.ZipFile:
    try:
        return zipfile.ZipFile(archive_path)
    except FileNotFoundError as e:
        raise PackFormatError(f"Pack archive not found: {archive_path.name}") from e
    except (zipfile.BadZipFile, OSError) as e:
        raise PackFormatError(f"Unreadable pack archive {archive_path.name}: {e}") from e


def _extract_entries(
    archive: zipfile.ZipFile, data_dir: Path, rules: tuple[RootRule, ...]
) -> int:
    """Extract every entry accepted by ``rules`` below ``data_dir``."""
    plan = plan_extraction(archive.namelist(), rules)

    # Every target is validated before the first write
    targets = {name: resolve_within(data_dir, relative) for name, relative in plan.items()}

    extracted = 0
    for name, target in targets.items():
        if name.endswith("/"):
            target.mkdir(parents=True, exist_ok=True)
            continue
        target.parent.mkdir(parents=True, exist_ok=True)
        with archive.open(name) as source, open(target, "wb") as sink:
            while chunk := source.read(1024 * 1024):
                sink.write(chunk)
        extracted += 1
    return extracted


def _extract_with_rules(
    archive_path: Path, data_dir: Path, rules: tuple[RootRule, ...]
) -> int:
    with _open_archive(archive_path) as archive:
        try:
            return _extract_entries(archive, data_dir, rules)
        except zipfile.BadZipFile as e:
            raise PackFormatError(f"Corrupted pack archive: {e}") from e


def _read_index(archive_path: Path) -> PackIndex:
    with _open_archive(archive_path) as archive:
        try:
            raw = archive.read(MRPACK_INDEX)
        except KeyError as e:
            raise PackFormatError(f"Missing {MRPACK_INDEX}") from e
    try:
        return PackIndex.model_validate(json.loads(raw.decode("utf-8-sig")))
    except ValueError as e:
        raise PackFormatError(f"Invalid {MRPACK_INDEX}: {e}") from e


async def _download_file(client: httpx.AsyncClient, url: str, target: Path) -> None:
    await aioos.makedirs(target.parent, exist_ok=True)
    async with client.stream("GET", url) as response:
        response.raise_for_status()
        async with aiofiles.open(target, "wb") as f:
            async for chunk in response.aiter_bytes():
                await f.write(chunk)


async def install_index_files(
    index: PackIndex,
    data_dir: Path,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    timeout: float = 60.0,
) -> tuple[int, int]:
    """Download the server side files listed in a Modrinth index.

    Returns:
        (downloaded, skipped) counts
    """
    downloaded = skipped = 0
    async with httpx.AsyncClient(
        timeout=timeout, follow_redirects=True, transport=transport
    ) as client:
        for pack_file in index.files:
            if (
                pack_file.server_unsupported
                or not pack_file.downloads
                or not pack_file.path
            ):
                skipped += 1
                continue

            target = resolve_within(data_dir, pack_file.path)
            url = pack_file.downloads[0]
            try:
                await _download_file(client, url, target)
            except httpx.HTTPError as e:
                raise PackFormatError(
                    f"Failed to download {pack_file.path} from {url}: {e}"
                ) from e
            downloaded += 1
    return downloaded, skipped


async def install_pack_to_server_data(
    archive_path: str | Path,
    data_dir: str | Path,
    filename: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> PackInstallResult:
    """Install a modpack archive into ``data_dir``.

    Args:
        archive_path: Archive on disk
        data_dir: Server data directory, created when missing
        filename: Original upload name, used to detect the archive family
        transport: Optional httpx transport for index downloads

    Returns:
        Counts of extracted, downloaded and skipped files

    Raises:
        PackFormatError: If the archive is unreadable, lacks its index or a
            listed file cannot be downloaded
        InvalidPathError: If an entry would land outside ``data_dir``
    """
    archive_path = Path(archive_path)
    data_dir = Path(data_dir)
    pack_format = detect_pack_format(filename or archive_path.name)
    await aioos.makedirs(data_dir, exist_ok=True)

    if pack_format == "mrpack":
        index = await asyncify(_read_index)(archive_path)
        extracted = await asyncify(_extract_with_rules)(
            archive_path, data_dir, MRPACK_RULES
        )
        downloaded, skipped = await install_index_files(index, data_dir, transport)
        result = PackInstallResult(
            format=pack_format,
            extracted=extracted,
            downloaded=downloaded,
            skipped=skipped,
        )
    else:
        extracted = await asyncify(_extract_with_rules)(archive_path, data_dir, ZIP_RULES)
        result = PackInstallResult(format=pack_format, extracted=extracted)

    logger.info(
        f"Installed {pack_format} pack {archive_path.name} into {data_dir}: "
        f"{result.extracted} extracted, {result.downloaded} downloaded, "
        f"{result.skipped} skipped"
    )
    return result
