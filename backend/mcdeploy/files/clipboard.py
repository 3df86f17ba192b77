import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

ClipboardKey = Tuple[str, str]


@dataclass(frozen=True)
class ClipboardEntry:
    source_path: Path
    server_id: str
    created_at: float


class Clipboard:
    """Copy sources waiting to be pasted, keyed by ``(server_id, relative_path)``.

    Entries live for ``ttl`` seconds. Expired entries are pruned on every
    ``put`` and are invisible to ``get`` and ``pop``.
    """

    def __init__(self, ttl: float = 300, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[ClipboardKey, ClipboardEntry] = {}
        self._lock = threading.Lock()

    def _expired(self, entry: ClipboardEntry, now: float) -> bool:
        return now - entry.created_at > self.ttl

    def prune(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [
                key for key, entry in self._entries.items() if self._expired(entry, now)
            ]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def put(self, server_id: str, relative_path: str, source_path: Path) -> ClipboardEntry:
        entry = ClipboardEntry(
            source_path=source_path, server_id=server_id, created_at=self._clock()
        )
        with self._lock:
            self._entries[(server_id, relative_path)] = entry
        self.prune()
        return entry

    def get(self, server_id: str, relative_path: str) -> Optional[ClipboardEntry]:
        with self._lock:
            entry = self._entries.get((server_id, relative_path))
        if entry is None or self._expired(entry, self._clock()):
            return None
        return entry

    def pop(self, server_id: str, relative_path: str) -> Optional[ClipboardEntry]:
        with self._lock:
            entry = self._entries.pop((server_id, relative_path), None)
        if entry is None or self._expired(entry, self._clock()):
            return None
        return entry

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
