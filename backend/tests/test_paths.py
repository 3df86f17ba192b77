"""Tests for confining user supplied relative paths to a base directory."""

import os
import tempfile
from pathlib import Path

import pytest

from mcdeploy.errors import InvalidPathError
from mcdeploy.paths import normalize_relative, resolve_within, to_relative


@pytest.fixture
def base():
    with tempfile.TemporaryDirectory(prefix="mcdeploy_paths_test_") as temp_dir:
        yield Path(temp_dir)


class TestNormalizeRelative:
    def test_empty_and_root_map_to_current_dir(self):
        assert normalize_relative("") == "."
        assert normalize_relative("/") == "."
        assert normalize_relative("///") == "."

    def test_backslashes_become_slashes(self):
        assert normalize_relative("\\data\\mods") == "data/mods"


class TestResolveWithin:
    """Test resolution against the base directory."""

    @pytest.mark.parametrize("relative", ["", "/", ".", "./", "data/.."])
    def test_root_like_paths_resolve_to_base(self, base, relative):
        assert resolve_within(base, relative) == Path(os.path.normpath(base))

    @pytest.mark.parametrize(
        "relative",
        [
            "data/server.properties",
            "/data/mods/a.jar",
            "data/./world/../world/level.dat",
            "a/b/c/../../d",
        ],
    )
    def test_results_stay_under_base(self, base, relative):
        result = resolve_within(base, relative)
        assert os.path.commonpath([str(base), str(result)]) == str(base)

    @pytest.mark.parametrize(
        "relative",
        [
            "..",
            "../",
            "../../etc/passwd",
            "/../../../etc/passwd",
            "data/../../outside",
            "..\\..\\windows",
        ],
    )
    def test_escaping_paths_are_rejected(self, base, relative):
        with pytest.raises(InvalidPathError) as exc_info:
            resolve_within(base, relative)
        assert exc_info.value.status_code == 400

    def test_sibling_with_common_prefix_is_rejected(self, base):
        # "/tmp/x" must not accept "/tmp/x-other"
        with pytest.raises(InvalidPathError):
            resolve_within(base, f"../{base.name}-other/file")

    def test_leading_slashes_are_relative(self, base):
        assert resolve_within(base, "/data") == Path(os.path.normpath(base)) / "data"


def test_to_relative_uses_forward_slashes(base):
    assert to_relative(base, base / "data" / "mods" / "a.jar") == "data/mods/a.jar"
