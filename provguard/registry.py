"""npm registry metadata and artifact fetching."""

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from .models import DistInfo, FullPackument, VersionMetadata

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY = "https://registry.npmjs.org"
DEFAULT_TIMEOUT = 30.0


class RegistryError(Exception):
    """Registry answered a metadata request with a non-success status."""

    def __init__(self, url: str, status_code: int):
        super().__init__(f"HTTP {status_code} fetching {url}")
        self.url = url
        self.status_code = status_code


@dataclass
class FetchResponse:
    """Raw response for an attestation bundle or tarball download."""

    status_code: int
    content: bytes

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def _encode(segment: str) -> str:
    # Same escaping as encodeURIComponent: "@scope/pkg" -> "%40scope%2Fpkg"
    return quote(segment, safe="!~*'()")


def _dist_from_json(data: Any) -> DistInfo:
    dist = data.get("dist") if isinstance(data, dict) else None
    if not isinstance(dist, dict):
        return DistInfo()

    attestations = dist.get("attestations")
    url = attestations.get("url") if isinstance(attestations, dict) else None
    return DistInfo(
        tarball=dist.get("tarball"),
        integrity=dist.get("integrity"),
        shasum=dist.get("shasum"),
        attestation_url=url if isinstance(url, str) and url else None,
    )


def _version_from_json(data: Any, name: str = "", version: str = "") -> VersionMetadata:
    if not isinstance(data, dict):
        data = {}
    return VersionMetadata(
        name=data.get("name") or name,
        version=data.get("version") or version,
        dist=_dist_from_json(data),
    )


class RegistryClient:
    """Client for the npm registry.

    Every request is attempted once by default. ``timeout`` and ``retries``
    are passed through to httpx so callers can harden the transport without
    changing the verification code.
    """

    def __init__(
        self,
        registry_url: str = DEFAULT_REGISTRY,
        timeout: float | None = DEFAULT_TIMEOUT,
        retries: int = 0,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize registry client.

        Args:
            registry_url: Base URL of the registry
            timeout: Request timeout in seconds (None disables it)
            retries: Connection retries for the httpx transport
            client: Pre-built client; it is used as-is and not closed here
        """
        self.registry_url = registry_url.rstrip("/")
        self.timeout = timeout
        self.retries = retries
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "RegistryClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                transport=httpx.AsyncHTTPTransport(retries=self.retries),
            )
        return self._client

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch_version(self, name: str, version: str) -> VersionMetadata:
        """Fetch metadata for a single version.

        Raises:
            RegistryError: On a non-2xx response
        """
        data = await self._get_json(f"/{_encode(name)}/{_encode(version)}")
        return _version_from_json(data, name, version)

    async def fetch_packument(self, name: str) -> FullPackument:
        """Fetch metadata for every version of a package.

        Raises:
            RegistryError: On a non-2xx response
        """
        data = await self._get_json(f"/{_encode(name)}")
        if not isinstance(data, dict):
            data = {}

        versions = data.get("versions")
        if not isinstance(versions, dict):
            versions = {}
        dist_tags = data.get("dist-tags")

        return FullPackument(
            name=data.get("name") or name,
            dist_tags=dist_tags if isinstance(dist_tags, dict) else {},
            versions={
                ver: _version_from_json(meta, name, ver)
                for ver, meta in versions.items()
            },
        )

    async def fetch(self, url: str) -> FetchResponse:
        """GET an attestation bundle or tarball; status is returned, not raised."""
        response = await self.client.get(url)
        logger.debug("GET %s -> %d (%d bytes)", url, response.status_code, len(response.content))
        return FetchResponse(status_code=response.status_code, content=response.content)

    async def _get_json(self, path: str) -> Any:
        url = f"{self.registry_url}{path}"
        response = await self.client.get(url, headers={"Accept": "application/json"})
        logger.debug("GET %s -> %d", url, response.status_code)
        if not response.is_success:
            raise RegistryError(url, response.status_code)
        return response.json()
