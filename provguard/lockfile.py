"""npm package-lock.json parsing."""

import json
from pathlib import Path
from typing import Any

from .models import LockEntry

MODULES_PREFIX = "node_modules/"


class LockfileParser:
    """Parser for npm lockfiles (lockfileVersion 1, 2 and 3)."""

    def parse(self, lock: Any) -> list[LockEntry]:
        """Collect production dependencies, one entry per package name."""
        if not isinstance(lock, dict):
            return []

        resolved: dict[str, str] = {}
        packages = lock.get("packages")
        dependencies = lock.get("dependencies")
        if isinstance(packages, dict):
            self._collect_packages(packages, resolved)
        elif isinstance(dependencies, dict):
            self._walk_dependencies(dependencies, resolved)

        return [LockEntry(name=name, version=version) for name, version in resolved.items()]

    def _collect_packages(self, packages: dict, resolved: dict[str, str]) -> None:
        # v2+: keys look like "node_modules/<name>"; "" is the root project
        for key, info in packages.items():
            if not key or not key.startswith(MODULES_PREFIX):
                continue
            if not isinstance(info, dict):
                continue
            name = info.get("name") or key[len(MODULES_PREFIX):]
            version = info.get("version")
            if not name or not version:
                continue
            if info.get("dev"):
                continue
            resolved[name] = version

    def _walk_dependencies(self, dependencies: dict, resolved: dict[str, str]) -> None:
        # v1: nested dependency tree, dev subtrees are skipped entirely
        for name, info in dependencies.items():
            if not isinstance(info, dict) or info.get("dev"):
                continue
            if info.get("version"):
                resolved[name] = info["version"]
            nested = info.get("dependencies")
            if isinstance(nested, dict):
                self._walk_dependencies(nested, resolved)


def parse_npm_lock(lock: Any) -> list[LockEntry]:
    """Extract production dependencies from a parsed lockfile.

    Args:
        lock: The decoded package-lock.json document

    Returns:
        Deduplicated name/version entries, in no particular order
    """
    parser = LockfileParser()
    return parser.parse(lock)


def load_lockfile(path: str | Path) -> Any:
    """Read and decode a lockfile."""
    return json.loads(Path(path).read_text(encoding="utf-8"))
