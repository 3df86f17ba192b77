"""
Root detection rules for modpack archives.

A modpack archive carries its server content under one of a few conventional
roots. Each rule recognizes one such root and rewrites an archive entry name
into a path relative to the server data directory. Rules are evaluated in
order and the first one that rewrites an entry wins. An exclusive rule that
matches anywhere in the archive replaces the whole list, so nothing outside
its root is extracted.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence


def normalize_entry_name(name: str) -> str:
    return name.replace("\\", "/").lstrip("/")


@dataclass(frozen=True)
class RootRule:
    name: str
    root: str
    keep_root: bool = False
    nested: bool = True
    exclusive: bool = False

    def locate(self, entry: str) -> Optional[int]:
        """Offset of this rule's root inside ``entry``, or None."""
        if entry.startswith(self.root):
            return 0
        if not self.nested:
            return None
        index = entry.find(f"/{self.root}")
        if index < 0:
            return None
        return index + 1

    def matches(self, entry: str) -> bool:
        return self.locate(entry) is not None

    def rewrite(self, entry: str) -> Optional[str]:
        offset = self.locate(entry)
        if offset is None:
            return None
        if self.keep_root:
            return entry[offset:]
        return entry[offset + len(self.root) :]


SERVER_OVERRIDES = RootRule("server-overrides", "server-overrides/", exclusive=True)
OVERRIDES = RootRule("overrides", "overrides/")
SERVER_ROOT = RootRule("server", "server/")

CONVENTIONAL_ROOTS = (
    "mods/",
    "config/",
    "defaultconfigs/",
    "kubejs/",
    "scripts/",
    "datapacks/",
    "global_packs/",
)

# server-overrides > overrides > conventional content dirs > server/
ZIP_RULES: tuple[RootRule, ...] = (
    SERVER_OVERRIDES,
    OVERRIDES,
    *(RootRule(root.rstrip("/"), root, keep_root=True) for root in CONVENTIONAL_ROOTS),
    SERVER_ROOT,
)

# Modrinth packs only use top level override roots
MRPACK_RULES: tuple[RootRule, ...] = (
    RootRule("server-overrides", "server-overrides/", nested=False, exclusive=True),
    RootRule("overrides", "overrides/", nested=False),
)


def select_rules(
    entry_names: Iterable[str], rules: Sequence[RootRule]
) -> tuple[RootRule, ...]:
    """Narrow ``rules`` to the first exclusive rule present in the archive, if any."""
    names = [normalize_entry_name(name) for name in entry_names]
    for rule in rules:
        if rule.exclusive and any(rule.matches(name) for name in names):
            return (rule,)
    return tuple(rules)


def resolve_entry(entry_name: str, rules: Sequence[RootRule]) -> Optional[str]:
    """Target path of an entry relative to the data directory, or None to skip it."""
    entry = normalize_entry_name(entry_name)
    for rule in rules:
        relative = rule.rewrite(entry)
        if relative is not None:
            return relative or None
    return None


def plan_extraction(
    entry_names: Iterable[str], rules: Sequence[RootRule]
) -> dict[str, str]:
    """Map archive entry names to their target paths, dropping unmatched entries."""
    names = list(entry_names)
    active = select_rules(names, rules)
    plan: dict[str, str] = {}
    for name in names:
        relative = resolve_entry(name, active)
        if relative is not None:
            plan[name] = relative
    return plan
