"""Detection and removal of client-only mods from a server's mods directory."""

import json
import re
import zipfile
from pathlib import Path

from asyncer import asyncify

from ..logger import logger

CLIENT_ONLY_NAME_HINTS = (
    "sodium",
    "iris",
    "oculus",
    "optifine",
    "embeddium",
    "rubidium",
    "entityculling",
    "entity_culling",
    "litematica",
    "malilib",
    "minihud",
    "xaerominimap",
    "xaeroworldmap",
    "journeymap",
)

FORGE_METADATA_FILES = ("META-INF/mods.toml", "META-INF/neoforge.mods.toml")

_FORGE_CLIENT_ONLY_PATTERNS = (
    re.compile(r"clientSideOnly\s*=\s*true", re.IGNORECASE),
    re.compile(r"clientOnly\s*=\s*true", re.IGNORECASE),
    re.compile(r"side\s*=\s*\"CLIENT\"", re.IGNORECASE),
)


def has_client_only_name(filename: str) -> bool:
    name = filename.lower()
    return any(hint in name for hint in CLIENT_ONLY_NAME_HINTS)


def _environment_of(data: dict, *paths: tuple[str, ...]) -> str:
    for path in paths:
        node = data
        for key in path:
            node = node.get(key) if isinstance(node, dict) else None
        if node:
            return str(node).lower()
    return ""


def _read_metadata_verdict(jar: zipfile.ZipFile) -> bool | None:
    """Client-only verdict from the first loader metadata file present, if any."""
    names = set(jar.namelist())

    if "fabric.mod.json" in names:
        data = json.loads(jar.read("fabric.mod.json").decode("utf-8-sig"))
        return _environment_of(data, ("environment",)) == "client"

    if "quilt.mod.json" in names:
        data = json.loads(jar.read("quilt.mod.json").decode("utf-8-sig"))
        environment = _environment_of(
            data,
            ("environment",),
            ("metadata", "environment"),
            ("quilt_loader", "metadata", "environment"),
        )
        return environment == "client"

    for metadata_file in FORGE_METADATA_FILES:
        if metadata_file in names:
            text = jar.read(metadata_file).decode("utf-8", errors="replace")
            return any(pattern.search(text) for pattern in _FORGE_CLIENT_ONLY_PATTERNS)

    return None


def is_client_only_mod(jar_path: Path) -> bool:
    """Decide whether a mod jar only makes sense on a client.

    A name containing a well known client-only fragment decides immediately.
    Otherwise the loader metadata is consulted in order: Fabric, Quilt, then
    Forge/NeoForge ``mods.toml``. Jars that cannot be read or classified are
    kept.
    """
    if has_client_only_name(jar_path.name):
        return True

    try:
        with zipfile.ZipFile(jar_path) as jar:
            verdict = _read_metadata_verdict(jar)
    except (zipfile.BadZipFile, OSError, ValueError, KeyError) as e:
        logger.debug(f"Could not inspect {jar_path.name}, keeping it: {e}")
        return False

    return bool(verdict)


def _remove_client_only_mods(mods_dir: Path) -> list[str]:
    if not mods_dir.is_dir():
        return []

    removed: list[str] = []
    for entry in sorted(mods_dir.iterdir()):
        if not entry.is_file() or not entry.name.lower().endswith(".jar"):
            continue
        if is_client_only_mod(entry):
            entry.unlink(missing_ok=True)
            removed.append(entry.name)
    return removed


async def remove_client_only_mods(mods_dir: Path) -> int:
    """Delete client-only jars from ``mods_dir``.

    Returns:
        Number of removed files
    """
    removed = await asyncify(_remove_client_only_mods)(Path(mods_dir))
    if removed:
        logger.info(f"Removed {len(removed)} client-only mods: {', '.join(removed)}")
    return len(removed)
