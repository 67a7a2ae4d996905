"""Core data models for ProvGuard."""

from dataclasses import dataclass, field
from enum import Enum

NO_ATTESTATIONS = "no-attestations (package/version was not published with npm provenance)"
SUBJECT_DIGEST_MISMATCH = "subject-digest-mismatch (bundle subject sha256 != tarball sha256)"


def fetch_failure(target: str, status_code: int) -> str:
    """Reason for a non-2xx response while fetching the bundle or tarball."""
    return f"failed-to-fetch-{target} ({status_code})"


def signature_failure(message: str) -> str:
    return f"signature-verify-failed: {message}"


def exception_reason(exc: BaseException) -> str:
    return f"exception:{str(exc) or type(exc).__name__}"


@dataclass(frozen=True)
class PackageSpec:
    """A queried artifact identity: ``name@version``."""

    name: str
    version: str

    @classmethod
    def parse(cls, spec: str) -> "PackageSpec":
        """Split ``name@version`` on the last ``@`` so scoped names survive."""
        at = spec.rfind("@")
        if at <= 0:
            raise ValueError(f"Invalid spec: {spec}")
        name, version = spec[:at], spec[at + 1:]
        if not name or not version:
            raise ValueError(f"Invalid spec: {spec}")
        return cls(name=name, version=version)

    def __str__(self) -> str:
        return f"{self.name}@{self.version}"


@dataclass
class DistInfo:
    """Distribution section of a version document."""

    tarball: str | None = None
    integrity: str | None = None
    shasum: str | None = None
    attestation_url: str | None = None


@dataclass
class VersionMetadata:
    """Metadata for one published version."""

    name: str
    version: str
    dist: DistInfo

    @property
    def has_attestations(self) -> bool:
        return bool(self.dist.attestation_url)


@dataclass
class FullPackument:
    """Metadata for every published version of a package."""

    name: str
    dist_tags: dict[str, str] = field(default_factory=dict)
    versions: dict[str, VersionMetadata] = field(default_factory=dict)


@dataclass
class VerifySuccess:
    """Tarball digest matched a subject of the attestation bundle."""

    name: str
    version: str
    tarball_digest: str
    subject_digests: list[str]
    attestation_url: str | None = None
    signature_verified: bool = False
    ok: bool = field(default=True, init=False)

    def to_dict(self) -> dict:
        return {
            "ok": True,
            "name": self.name,
            "version": self.version,
            "tarballDigest": self.tarball_digest,
            "attestationUrl": self.attestation_url,
            "subjectDigests": list(self.subject_digests),
            "signatureVerified": self.signature_verified,
        }


@dataclass
class VerifyFailure:
    """Verification did not pass; ``reason`` starts with the failure kind."""

    name: str
    version: str
    reason: str
    ok: bool = field(default=False, init=False)

    def to_dict(self) -> dict:
        return {
            "ok": False,
            "name": self.name,
            "version": self.version,
            "reason": self.reason,
        }


VerificationResult = VerifySuccess | VerifyFailure


@dataclass(frozen=True)
class LockEntry:
    """A production dependency pinned by a lockfile."""

    name: str
    version: str


class SuggestionKind(str, Enum):
    MINOR_OR_PATCH = "minor-or-patch"
    LATEST_MAJOR = "latest-major"
    NONE = "none"


@dataclass
class Suggestion:
    """Nearest version carrying provenance, if any."""

    name: str
    current: str
    suggested: str | None = None
    kind: SuggestionKind = SuggestionKind.NONE

    @classmethod
    def none(cls, name: str, current: str) -> "Suggestion":
        return cls(name=name, current=current)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "current": self.current,
            "suggested": self.suggested,
            "kind": self.kind.value,
        }


@dataclass
class LockfileReportItem:
    """Outcome for one lockfile entry.

    ``verified`` stays ``None`` unless full verification actually ran;
    attestation presence on its own is not a pass/fail signal.
    """

    name: str
    version: str
    has_attestations: bool
    verified: bool | None = None
    reason: str | None = None
    suggestion: Suggestion | None = None

    @property
    def failed(self) -> bool:
        return self.has_attestations and bool(self.reason)

    def to_dict(self) -> dict:
        data = {
            "name": self.name,
            "version": self.version,
            "hasAttestations": self.has_attestations,
        }
        if self.verified is not None:
            data["verified"] = self.verified
        if self.reason:
            data["reason"] = self.reason
        if self.suggestion is not None:
            data["suggestion"] = self.suggestion.to_dict()
        return data


@dataclass
class LockfileReport:
    """Aggregated lockfile verification report."""

    total: int
    with_attestations: int
    without_attestations: int
    failures: int
    items: list[LockfileReportItem]

    @classmethod
    def from_items(cls, items: list[LockfileReportItem]) -> "LockfileReport":
        ordered = sorted(items, key=lambda item: item.name)
        with_attestations = sum(1 for item in ordered if item.has_attestations)
        return cls(
            total=len(ordered),
            with_attestations=with_attestations,
            without_attestations=len(ordered) - with_attestations,
            failures=sum(1 for item in ordered if item.failed),
            items=ordered,
        )

    @property
    def missing(self) -> list[LockfileReportItem]:
        return [item for item in self.items if not item.has_attestations]

    @property
    def failed(self) -> list[LockfileReportItem]:
        return [item for item in self.items if item.failed]

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "withAttestations": self.with_attestations,
            "withoutAttestations": self.without_attestations,
            "failures": self.failures,
            "items": [item.to_dict() for item in self.items],
        }
