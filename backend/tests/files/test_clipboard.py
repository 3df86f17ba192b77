"""Tests for the copy/paste clipboard."""

from pathlib import Path

import pytest

from mcdeploy.files import Clipboard


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def clipboard(clock):
    return Clipboard(ttl=300, clock=clock)


def test_put_and_get(clipboard):
    entry = clipboard.put("s1", "a.txt", Path("/srv/s1/a.txt"))

    assert clipboard.get("s1", "a.txt") == entry
    assert entry.server_id == "s1"
    assert clipboard.get("s2", "a.txt") is None
    assert clipboard.get("s1", "b.txt") is None


def test_pop_consumes_entry(clipboard):
    clipboard.put("s1", "a.txt", Path("/srv/s1/a.txt"))

    assert clipboard.pop("s1", "a.txt") is not None
    assert clipboard.pop("s1", "a.txt") is None


def test_entries_expire(clipboard, clock):
    clipboard.put("s1", "a.txt", Path("/srv/s1/a.txt"))

    clock.now += 300
    assert clipboard.get("s1", "a.txt") is not None

    clock.now += 1
    assert clipboard.get("s1", "a.txt") is None
    assert clipboard.pop("s1", "a.txt") is None


def test_put_prunes_expired_entries(clipboard, clock):
    clipboard.put("s1", "old.txt", Path("/srv/s1/old.txt"))
    clock.now += 400
    clipboard.put("s1", "new.txt", Path("/srv/s1/new.txt"))

    assert len(clipboard) == 1


def test_clear(clipboard):
    clipboard.put("s1", "a.txt", Path("/srv/s1/a.txt"))
    clipboard.clear()
    assert len(clipboard) == 0
