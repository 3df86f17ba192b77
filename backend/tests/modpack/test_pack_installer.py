"""
Tests for modpack installation into a server data directory.

Tests cover:
- Archive family detection
- Plain zip packs with root detection
- Modrinth packs with overrides and index downloads
- Malformed archives and path traversal
"""

import json

import httpx
import pytest

from mcdeploy.errors import InvalidPathError, PackFormatError
from mcdeploy.modpack import detect_pack_format, install_pack_to_server_data


def _index(*files: dict) -> str:
    return json.dumps(
        {
            "formatVersion": 1,
            "game": "minecraft",
            "versionId": "1.0.0",
            "name": "Test Pack",
            "files": list(files),
            "dependencies": {"minecraft": "1.20.1", "fabric-loader": "0.15.11"},
        }
    )


def _mock_transport(requests: list[str], status_code: int = 200) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(str(request.url))
        return httpx.Response(status_code, content=f"from {request.url.path}".encode())

    return httpx.MockTransport(handler)


@pytest.fixture
def data_dir(temp_dir):
    return temp_dir / "server" / "data"


class TestDetectFormat:
    @pytest.mark.parametrize(
        ("filename", "expected"),
        [
            ("pack.mrpack", "mrpack"),
            ("PACK.MRPACK", "mrpack"),
            ("pack.zip", "zip"),
            ("upload", "zip"),
        ],
    )
    def test_detect(self, filename, expected):
        assert detect_pack_format(filename) == expected


class TestZipPacks:
    async def test_server_overrides_take_precedence(self, make_zip, data_dir):
        archive = make_zip(
            "pack.zip",
            {
                "Pack/server-overrides/config/server.toml": "server",
                "Pack/overrides/config/server.toml": "generic",
                "Pack/mods/client.jar": b"jar",
            },
        )

        result = await install_pack_to_server_data(archive, data_dir)

        assert result.format == "zip"
        assert result.extracted == 1
        assert (data_dir / "config" / "server.toml").read_text() == "server"
        assert not (data_dir / "mods").exists()

    async def test_conventional_directories(self, make_zip, data_dir):
        archive = make_zip(
            "pack.zip",
            {
                "My Pack/mods/a.jar": b"a",
                "My Pack/config/": b"",
                "My Pack/config/b.toml": "b",
                "My Pack/kubejs/startup_scripts/c.js": "c",
                "My Pack/manifest.json": "{}",
                "server/server.properties": "motd=Pack\n",
            },
        )

        result = await install_pack_to_server_data(archive, data_dir)

        assert result.extracted == 4
        assert (data_dir / "mods" / "a.jar").read_bytes() == b"a"
        assert (data_dir / "config" / "b.toml").read_text() == "b"
        assert (data_dir / "kubejs" / "startup_scripts" / "c.js").exists()
        assert (data_dir / "server.properties").read_text() == "motd=Pack\n"
        assert not (data_dir / "manifest.json").exists()

    async def test_traversal_is_rejected_before_writing(self, make_zip, data_dir):
        archive = make_zip(
            "evil.zip",
            {
                "overrides/ok.txt": "fine",
                "overrides/../../escaped.txt": "evil",
            },
        )

        with pytest.raises(InvalidPathError):
            await install_pack_to_server_data(archive, data_dir)

        assert not (data_dir / "ok.txt").exists()
        assert not (data_dir.parent / "escaped.txt").exists()

    async def test_not_a_zip(self, temp_dir, data_dir):
        archive = temp_dir / "broken.zip"
        archive.write_bytes(b"definitely not a zip")

        with pytest.raises(PackFormatError):
            await install_pack_to_server_data(archive, data_dir)

    async def test_missing_archive(self, temp_dir, data_dir):
        with pytest.raises(PackFormatError):
            await install_pack_to_server_data(temp_dir / "missing.zip", data_dir)


class TestMrpackPacks:
    async def test_overrides_and_downloads(self, make_zip, data_dir):
        archive = make_zip(
            "upload.bin",
            {
                "modrinth.index.json": _index(
                    {
                        "path": "mods/lithium.jar",
                        "downloads": ["https://cdn.example.com/lithium.jar"],
                        "env": {"client": "required", "server": "required"},
                        "fileSize": 10,
                    },
                    {
                        "path": "mods/sodium.jar",
                        "downloads": ["https://cdn.example.com/sodium.jar"],
                        "env": {"client": "required", "server": "unsupported"},
                    },
                    {"path": "mods/nowhere.jar", "downloads": []},
                ),
                "overrides/config/a.toml": "a",
                "client-overrides/options.txt": "client",
            },
        )
        requests: list[str] = []

        result = await install_pack_to_server_data(
            archive, data_dir, "Pack.mrpack", transport=_mock_transport(requests)
        )

        assert result.format == "mrpack"
        assert (result.extracted, result.downloaded, result.skipped) == (1, 1, 2)
        assert requests == ["https://cdn.example.com/lithium.jar"]
        assert (data_dir / "mods" / "lithium.jar").read_text() == "from /lithium.jar"
        assert not (data_dir / "mods" / "sodium.jar").exists()
        assert (data_dir / "config" / "a.toml").read_text() == "a"
        assert not (data_dir / "options.txt").exists()

    async def test_missing_index(self, make_zip, data_dir):
        archive = make_zip("pack.mrpack", {"overrides/a.txt": "a"})

        with pytest.raises(PackFormatError, match="modrinth.index.json"):
            await install_pack_to_server_data(archive, data_dir)

    async def test_invalid_index(self, make_zip, data_dir):
        archive = make_zip("pack.mrpack", {"modrinth.index.json": "{not json"})

        with pytest.raises(PackFormatError):
            await install_pack_to_server_data(archive, data_dir)

    async def test_failed_download(self, make_zip, data_dir):
        archive = make_zip(
            "pack.mrpack",
            {
                "modrinth.index.json": _index(
                    {
                        "path": "mods/a.jar",
                        "downloads": ["https://cdn.example.com/a.jar"],
                    }
                )
            },
        )

        with pytest.raises(PackFormatError, match="mods/a.jar"):
            await install_pack_to_server_data(
                archive, data_dir, transport=_mock_transport([], status_code=404)
            )

    async def test_index_path_traversal(self, make_zip, data_dir):
        archive = make_zip(
            "pack.mrpack",
            {
                "modrinth.index.json": _index(
                    {
                        "path": "../../outside.jar",
                        "downloads": ["https://cdn.example.com/a.jar"],
                    }
                )
            },
        )
        requests: list[str] = []

        with pytest.raises(InvalidPathError):
            await install_pack_to_server_data(
                archive, data_dir, transport=_mock_transport(requests)
            )
        assert requests == []
