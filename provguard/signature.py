"""Sigstore signature verification for attestation bundles."""

import json
import logging
import threading
from typing import Protocol

from .digest import sha256_hex
from .dsse import Statement

logger = logging.getLogger(__name__)


class SignatureVerificationError(Exception):
    """The bundle's signature, certificate or transparency log entry did not verify."""


class SignatureVerifier(Protocol):
    def verify(self, bundle: dict, artifact: bytes, issuer: str | None = None) -> None:
        ...


def issuer_constraint(allowed_issuers: list[str] | None) -> str | None:
    """Issuer to enforce for ``allowed_issuers``.

    Only a single configured issuer is enforced. With zero or several
    issuers no identity constraint is applied.
    """
    if allowed_issuers and len(allowed_issuers) == 1:
        return allowed_issuers[0]
    return None


class SigstoreVerifier:
    """Verify bundles against the public-good Sigstore instance."""

    def __init__(self, staging: bool = False, offline: bool = False):
        self.staging = staging
        self.offline = offline
        self._verifier = None
        self._lock = threading.Lock()

    @property
    def verifier(self):
        """Sigstore verifier, built once so trust metadata is refreshed once."""
        from sigstore.verify import Verifier

        with self._lock:
            if self._verifier is None:
                self._verifier = (
                    Verifier.staging(offline=self.offline)
                    if self.staging
                    else Verifier.production(offline=self.offline)
                )
            return self._verifier

    def verify(self, bundle: dict, artifact: bytes, issuer: str | None = None) -> None:
        """Verify ``bundle`` over ``artifact``.

        Raises:
            SignatureVerificationError: If verification fails for any reason
        """
        try:
            self._verify(bundle, artifact, issuer)
        except SignatureVerificationError:
            raise
        except Exception as e:
            raise SignatureVerificationError(str(e) or type(e).__name__) from e

    def _verify(self, bundle: dict, artifact: bytes, issuer: str | None) -> None:
        from sigstore.models import Bundle
        from sigstore.verify.policy import OIDCIssuer, UnsafeNoOp

        parsed = Bundle.from_json(json.dumps(bundle))
        verifier = self.verifier
        policy = OIDCIssuer(issuer) if issuer else UnsafeNoOp()

        if "dsseEnvelope" not in bundle:
            verifier.verify_artifact(artifact, parsed, policy)
            return

        _, payload = verifier.verify_dsse(parsed, policy)
        statement = Statement.from_payload(payload)
        if sha256_hex(artifact) not in statement.subject_digests:
            raise SignatureVerificationError("signed statement does not cover the artifact digest")
        logger.debug("DSSE signature verified (issuer constraint: %s)", issuer)
