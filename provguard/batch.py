"""Concurrent provenance verification of lockfile dependencies."""

import asyncio
import logging
from pathlib import Path
from typing import Generic, TypeVar

from .lockfile import load_lockfile, parse_npm_lock
from .models import (
    LockEntry,
    LockfileReport,
    LockfileReportItem,
    exception_reason,
)
from .registry import RegistryClient
from .suggestions import SuggestionEngine
from .verify import PackageVerifier

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 8

T = TypeVar("T")


class WorkQueue(Generic[T]):
    """Ordered list of work items handed out one index at a time.

    ``claim`` reads and advances the cursor without awaiting, so under a
    single event loop no two workers can receive the same index and every
    index is handed out exactly once.
    """

    def __init__(self, items: list[T]):
        self._items = list(items)
        self._cursor = 0

    def __len__(self) -> int:
        return len(self._items)

    def claim(self) -> tuple[int, T] | None:
        """Take the next unclaimed item, or None when the queue is exhausted."""
        if self._cursor >= len(self._items):
            return None
        index = self._cursor
        self._cursor += 1
        return index, self._items[index]


class BatchVerifier:
    """Verifier for every production dependency in a lockfile."""

    def __init__(
        self,
        registry: RegistryClient,
        verifier: PackageVerifier | None = None,
        suggestions: SuggestionEngine | None = None,
        concurrency: int = DEFAULT_CONCURRENCY,
    ):
        """Initialize batch verifier.

        Args:
            registry: Client used for metadata lookups
            verifier: Full verifier for attested packages
            suggestions: Suggestion engine for packages without provenance
            concurrency: Number of workers draining the queue
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.registry = registry
        self.verifier = verifier or PackageVerifier(registry)
        self.suggestions = suggestions or SuggestionEngine(registry)
        self.concurrency = concurrency

    async def verify_lockfile(
        self,
        path: str | Path,
        verify_signature: bool = False,
        allowed_issuers: list[str] | None = None,
        deep: bool = False,
    ) -> LockfileReport:
        """Read a package-lock.json and verify its production dependencies.

        Raises:
            OSError: If the lockfile cannot be read
            ValueError: If the lockfile is not valid JSON
        """
        lock = await asyncio.to_thread(load_lockfile, path)
        entries = parse_npm_lock(lock)
        logger.info("Verifying %d packages from %s", len(entries), path)
        return await self.verify_entries(
            entries,
            verify_signature=verify_signature,
            allowed_issuers=allowed_issuers,
            deep=deep,
        )

    async def verify_entries(
        self,
        entries: list[LockEntry],
        verify_signature: bool = False,
        allowed_issuers: list[str] | None = None,
        deep: bool = False,
    ) -> LockfileReport:
        """Verify entries with a fixed-width worker pool and aggregate the report."""
        queue = WorkQueue(entries)
        items: list[LockfileReportItem] = []

        async def worker() -> None:
            while (claimed := queue.claim()) is not None:
                _, entry = claimed
                items.append(
                    await self._process(entry, verify_signature, allowed_issuers, deep)
                )

        await asyncio.gather(*(worker() for _ in range(self.concurrency)))
        return LockfileReport.from_items(items)

    async def _process(
        self,
        entry: LockEntry,
        verify_signature: bool,
        allowed_issuers: list[str] | None,
        deep: bool,
    ) -> LockfileReportItem:
        name, version = entry.name, entry.version
        try:
            meta = await self.registry.fetch_version(name, version)
            item = LockfileReportItem(name, version, has_attestations=meta.has_attestations)

            if item.has_attestations and (verify_signature or deep):
                result = await self.verifier.verify_one(
                    name,
                    version,
                    verify_signature=verify_signature,
                    allowed_issuers=allowed_issuers,
                )
                item.verified = result.ok
                if not result.ok:
                    item.reason = result.reason

            if not item.has_attestations:
                item.suggestion = await self.suggestions.suggest(name, version)

            return item
        except Exception as e:
            logger.warning("Lookup of %s@%s failed: %s", name, version, e)
            return LockfileReportItem(
                name, version, has_attestations=False, reason=exception_reason(e)
            )
