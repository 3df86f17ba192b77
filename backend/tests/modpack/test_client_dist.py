"""
Tests for the client distribution directory of a server.

Tests cover:
- Unpacking plain zips and keeping modpack files whole
- client_config.json contents
- The hashed manifest
- Confined file lookup
"""

import hashlib
import json

import pytest

from mcdeploy.errors import InvalidPathError, PackFormatError, PathNotFoundError
from mcdeploy.modpack import (
    build_client_manifest,
    client_dir_for,
    get_client_file,
    has_client_config,
    materialize_client_distribution,
    read_client_config,
)


@pytest.fixture
def server_root(temp_dir):
    root = temp_dir / "Server_1"
    (root / "data").mkdir(parents=True)
    return root


async def test_zip_is_unpacked(server_root, make_zip):
    archive = make_zip("upload.tmp", {"mods/a.jar": b"abc", "options.txt": "x"})

    config = await materialize_client_distribution(server_root, archive, "Client.ZIP")

    client_dir = client_dir_for(server_root)
    assert config.type == "full"
    assert config.main_file is None
    assert (client_dir / "mods" / "a.jar").read_bytes() == b"abc"
    assert (client_dir / "options.txt").read_text() == "x"

    raw = json.loads((client_dir / "client_config.json").read_text())
    assert raw["type"] == "full"
    assert "updatedAt" in raw
    assert "mainFile" not in raw


async def test_mrpack_is_kept_as_main_file(server_root, make_zip):
    archive = make_zip("upload.tmp", {"modrinth.index.json": "{}"})

    config = await materialize_client_distribution(server_root, archive, "Pack.mrpack")

    assert config.type == "modpack"
    assert config.main_file == "Pack.mrpack"
    assert (client_dir_for(server_root) / "Pack.mrpack").read_bytes() == archive.read_bytes()
    assert await read_client_config(server_root) == config


async def test_zip_declared_as_modpack(server_root, make_zip):
    archive = make_zip("upload.tmp", {"manifest.json": "{}"})

    config = await materialize_client_distribution(
        server_root, archive, "curse.zip", client_type="modpack"
    )

    assert config.type == "modpack"
    assert config.main_file == "curse.zip"


async def test_replaces_previous_distribution(server_root, make_zip):
    first = make_zip("first.zip", {"old.txt": "old"})
    second = make_zip("second.zip", {"new.txt": "new"})

    await materialize_client_distribution(server_root, first, "first.zip")
    await materialize_client_distribution(server_root, second, "second.zip")

    names = sorted(p.name for p in client_dir_for(server_root).iterdir())
    assert names == ["client_config.json", "new.txt"]


async def test_broken_zip(server_root, temp_dir):
    archive = temp_dir / "broken.zip"
    archive.write_bytes(b"nope")

    with pytest.raises(PackFormatError):
        await materialize_client_distribution(server_root, archive, "broken.zip")


@pytest.mark.parametrize("filename", ["", "/", ".", "packs/", "packs\\", ".."])
async def test_rejects_file_names_without_a_file(server_root, make_zip, filename):
    previous = make_zip("previous.zip", {"old.txt": "old"})
    await materialize_client_distribution(server_root, previous, "previous.zip")
    archive = make_zip("upload.tmp", {"modrinth.index.json": "{}"})

    with pytest.raises(PackFormatError):
        await materialize_client_distribution(
            server_root, archive, filename, client_type="modpack"
        )
    assert (client_dir_for(server_root) / "old.txt").read_text() == "old"


async def test_traversal_in_client_zip(server_root, make_zip):
    archive = make_zip("evil.zip", {"../outside.txt": "evil"})

    with pytest.raises(InvalidPathError):
        await materialize_client_distribution(server_root, archive, "evil.zip")
    assert not (server_root / "outside.txt").exists()


async def test_manifest(server_root, make_zip):
    archive = make_zip("c.zip", {"mods/b.jar": b"bbb", "a.txt": b"a"})
    await materialize_client_distribution(server_root, archive, "c.zip")

    manifest = await build_client_manifest(client_dir_for(server_root))

    assert [entry.path for entry in manifest] == [
        "a.txt",
        "client_config.json",
        "mods/b.jar",
    ]
    jar = manifest[-1]
    assert jar.size == 3
    assert jar.hash == hashlib.sha256(b"bbb").hexdigest()


async def test_manifest_without_distribution(server_root):
    assert await build_client_manifest(client_dir_for(server_root)) == []
    assert await has_client_config(server_root) is False
    assert await read_client_config(server_root) is None


async def test_get_client_file(server_root, make_zip):
    archive = make_zip("c.zip", {"mods/b.jar": b"bbb"})
    await materialize_client_distribution(server_root, archive, "c.zip")
    client_dir = client_dir_for(server_root)

    assert (await get_client_file(client_dir, "/mods/b.jar")).read_bytes() == b"bbb"
    with pytest.raises(PathNotFoundError):
        await get_client_file(client_dir, "mods")
    with pytest.raises(InvalidPathError):
        await get_client_file(client_dir, "../data/server.properties")
