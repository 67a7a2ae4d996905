"""Single package provenance verification."""

import asyncio
import json
import logging

from .digest import sha256_hex
from .dsse import extract_subject_digests, select_bundle
from .models import (
    NO_ATTESTATIONS,
    SUBJECT_DIGEST_MISMATCH,
    VerificationResult,
    VerifyFailure,
    VerifySuccess,
    exception_reason,
    fetch_failure,
    signature_failure,
)
from .registry import RegistryClient
from .signature import SignatureVerifier, SigstoreVerifier, issuer_constraint

logger = logging.getLogger(__name__)


class PackageVerifier:
    """Verifier for one published package version."""

    def __init__(
        self,
        registry: RegistryClient,
        signature_verifier: SignatureVerifier | None = None,
    ):
        """Initialize package verifier.

        Args:
            registry: Client used for metadata, bundle and tarball fetches
            signature_verifier: Sigstore adapter, created on first use if omitted
        """
        self.registry = registry
        self._signature_verifier = signature_verifier

    @property
    def signature_verifier(self) -> SignatureVerifier:
        if self._signature_verifier is None:
            self._signature_verifier = SigstoreVerifier()
        return self._signature_verifier

    async def verify_one(
        self,
        name: str,
        version: str,
        verify_signature: bool = False,
        allowed_issuers: list[str] | None = None,
    ) -> VerificationResult:
        """Verify that the tarball of ``name@version`` is bound to its attestation.

        1. fetch metadata and the attestation URL;
        2. download the bundle and tarball concurrently;
        3. hash the tarball;
        4. match it against the bundle's subject digests;
        5. optionally verify the Sigstore signature.

        Never raises; every failure is returned as a ``VerifyFailure``.
        """
        try:
            return await self._verify(name, version, verify_signature, allowed_issuers)
        except Exception as e:
            logger.warning("Verification of %s@%s raised: %s", name, version, e)
            return VerifyFailure(name, version, exception_reason(e))

    async def _verify(
        self,
        name: str,
        version: str,
        verify_signature: bool,
        allowed_issuers: list[str] | None,
    ) -> VerificationResult:
        meta = await self.registry.fetch_version(name, version)
        url = meta.dist.attestation_url
        if not url:
            return VerifyFailure(name, version, NO_ATTESTATIONS)
        if not meta.dist.tarball:
            raise ValueError(f"no tarball URL in metadata for {name}@{version}")

        bundle_res, tar_res = await asyncio.gather(
            self.registry.fetch(url),
            self.registry.fetch(meta.dist.tarball),
        )
        if not bundle_res.ok:
            return VerifyFailure(name, version, fetch_failure("attestations", bundle_res.status_code))
        if not tar_res.ok:
            return VerifyFailure(name, version, fetch_failure("tarball", tar_res.status_code))

        bundle = select_bundle(json.loads(bundle_res.content))
        tarball_digest = sha256_hex(tar_res.content)
        subject_digests = extract_subject_digests(bundle)
        logger.debug(
            "%s@%s tarball sha256=%s subjects=%s", name, version, tarball_digest, subject_digests
        )

        if tarball_digest not in subject_digests:
            return VerifyFailure(name, version, SUBJECT_DIGEST_MISMATCH)

        signature_verified = False
        if verify_signature:
            try:
                await asyncio.to_thread(
                    self.signature_verifier.verify,
                    bundle,
                    tar_res.content,
                    issuer_constraint(allowed_issuers),
                )
            except Exception as e:
                logger.warning("Signature verification failed for %s@%s: %s", name, version, e)
                return VerifyFailure(name, version, signature_failure(str(e) or type(e).__name__))
            signature_verified = True

        return VerifySuccess(
            name=name,
            version=version,
            tarball_digest=tarball_digest,
            subject_digests=subject_digests,
            attestation_url=url,
            signature_verified=signature_verified,
        )
