"""Suggest nearby versions that were published with provenance."""

import logging
import re

from semver import Version

from .models import FullPackument, Suggestion, SuggestionKind
from .registry import RegistryClient

logger = logging.getLogger(__name__)

# First "major[.minor[.patch]]" run of digits, as npm's semver.coerce reads it
COERCE_PATTERN = re.compile(r"(?:^|[^\d])(\d{1,16})(?:\.(\d{1,16}))?(?:\.(\d{1,16}))?(?:$|[^\d])")


def coerce_version(value: str) -> Version | None:
    """Coerce loose version text such as ``v1.2`` or ``1.2.3-beta`` to ``1.2.0``/``1.2.3``."""
    match = COERCE_PATTERN.search(value)
    if not match:
        return None
    major, minor, patch = (int(part or 0) for part in match.groups())
    return Version(major, minor, patch)


class SuggestionEngine:
    """Search a package's version catalog for provenance-carrying versions."""

    def __init__(self, registry: RegistryClient):
        self.registry = registry

    async def suggest(self, name: str, current: str) -> Suggestion:
        """Suggest the closest version of ``name`` that has attestations.

        The same-major range ``[current, next major)`` is searched upwards
        first (``minor-or-patch``); failing that, the newest stable version
        with attestations (``latest-major``). Never raises: lookup errors
        give a ``none`` suggestion since this is advisory only.
        """
        try:
            packument = await self.registry.fetch_packument(name)
            return self._pick(name, current, packument)
        except Exception as e:
            logger.warning("No suggestion for %s@%s: %s", name, current, e)
            return Suggestion.none(name, current)

    def _pick(self, name: str, current: str, packument: FullPackument) -> Suggestion:
        cur = coerce_version(current)
        if cur is None:
            logger.debug("Cannot coerce %r to a version", current)
            return Suggestion.none(name, current)
        next_major = cur.bump_major()
        cur_text = str(cur)

        candidates = [
            (Version.parse(ver), ver)
            for ver in packument.versions
            if Version.is_valid(ver)
        ]

        def has_provenance(ver: str) -> bool:
            return packument.versions[ver].has_attestations

        same_major = sorted(
            (c for c in candidates if cur <= c[0] < next_major),
            key=lambda c: c[0],
        )
        within = next((ver for _, ver in same_major if has_provenance(ver)), None)
        if within and within != cur_text:
            return Suggestion(name, current, within, SuggestionKind.MINOR_OR_PATCH)

        stable = sorted(
            (c for c in candidates if not c[0].prerelease),
            key=lambda c: c[0],
            reverse=True,
        )
        latest = next((ver for _, ver in stable if has_provenance(ver)), None)
        if latest and latest != cur_text:
            return Suggestion(name, current, latest, SuggestionKind.LATEST_MAJOR)

        return Suggestion.none(name, current)
