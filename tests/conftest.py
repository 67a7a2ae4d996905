"""Pytest configuration and fixtures."""

import base64
import hashlib
import json

import pytest

from provguard.models import DistInfo, FullPackument, VersionMetadata
from provguard.registry import FetchResponse, RegistryError

REGISTRY = "https://registry.test"


def build_bundle(*digests: str) -> dict:
    """Sigstore-style bundle whose statement lists the given sha256 subjects."""
    statement = {
        "_type": "https://in-toto.io/Statement/v1",
        "subject": [{"name": "pkg", "digest": {"sha256": d}} for d in digests],
        "predicateType": "https://slsa.dev/provenance/v1",
        "predicate": {},
    }
    payload = base64.b64encode(json.dumps(statement).encode()).decode()
    return {
        "mediaType": "application/vnd.dev.sigstore.bundle+json;version=0.2",
        "dsseEnvelope": {
            "payload": payload,
            "payloadType": "application/vnd.in-toto+json",
            "signatures": [{"sig": "c2ln"}],
        },
    }


class FakeRegistry:
    """In-memory stand-in for RegistryClient."""

    def __init__(self):
        self.versions: dict[tuple[str, str], VersionMetadata] = {}
        self.responses: dict[str, FetchResponse] = {}
        self.errors: dict[tuple[str, str], Exception] = {}
        self.packument_errors: dict[str, Exception] = {}
        self.fetched: list[str] = []

    def publish(
        self,
        name: str,
        version: str,
        tarball: bytes | None = None,
        attested: bool = True,
        subject_digests: list[str] | None = None,
        bundle_status: int = 200,
        tarball_status: int = 200,
    ) -> VersionMetadata:
        tarball = tarball if tarball is not None else f"{name}-{version}".encode()
        tarball_url = f"{REGISTRY}/{name}/-/{name}-{version}.tgz"
        attestation_url = f"{REGISTRY}/-/npm/v1/attestations/{name}@{version}" if attested else None

        self.responses[tarball_url] = FetchResponse(tarball_status, tarball)
        if attested:
            if subject_digests is None:
                subject_digests = [hashlib.sha256(tarball).hexdigest()]
            body = json.dumps(build_bundle(*subject_digests)).encode()
            self.responses[attestation_url] = FetchResponse(bundle_status, body)

        meta = VersionMetadata(
            name=name,
            version=version,
            dist=DistInfo(tarball=tarball_url, attestation_url=attestation_url),
        )
        self.versions[(name, version)] = meta
        return meta

    async def fetch_version(self, name: str, version: str) -> VersionMetadata:
        if (name, version) in self.errors:
            raise self.errors[(name, version)]
        try:
            return self.versions[(name, version)]
        except KeyError:
            raise RegistryError(f"{REGISTRY}/{name}/{version}", 404) from None

    async def fetch_packument(self, name: str) -> FullPackument:
        if name in self.packument_errors:
            raise self.packument_errors[name]
        return FullPackument(
            name=name,
            versions={v: meta for (n, v), meta in self.versions.items() if n == name},
        )

    async def fetch(self, url: str) -> FetchResponse:
        self.fetched.append(url)
        return self.responses.get(url, FetchResponse(404, b""))


@pytest.fixture
def registry():
    """Empty fake registry."""
    return FakeRegistry()


@pytest.fixture
def make_bundle():
    """Factory for attestation bundles."""
    return build_bundle


@pytest.fixture
def lockfile_v3():
    """lockfileVersion 3 document with one dev dependency."""
    return {
        "name": "app",
        "lockfileVersion": 3,
        "packages": {
            "": {"name": "app", "version": "1.0.0"},
            "node_modules/express": {"version": "4.18.2"},
            "node_modules/@types/node": {"version": "20.1.0", "dev": True},
        },
    }


@pytest.fixture
def lockfile_v1():
    """lockfileVersion 1 document with nested and dev dependencies."""
    return {
        "name": "app",
        "lockfileVersion": 1,
        "dependencies": {
            "express": {
                "version": "4.18.2",
                "dependencies": {"debug": {"version": "2.6.9"}},
            },
            "jest": {
                "version": "29.0.0",
                "dev": True,
                "dependencies": {"chalk": {"version": "4.1.2"}},
            },
        },
    }


@pytest.fixture
def temp_lockfile(tmp_path, lockfile_v3):
    """Write a package-lock.json for testing."""
    path = tmp_path / "package-lock.json"
    path.write_text(json.dumps(lockfile_v3))
    return path
