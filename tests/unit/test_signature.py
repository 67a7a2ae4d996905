"""Tests for the Sigstore signature adapter."""

import base64
import hashlib
from unittest.mock import MagicMock, patch

import pytest
from sigstore.verify.policy import UnsafeNoOp

from provguard.signature import SignatureVerificationError, SigstoreVerifier, issuer_constraint

ARTIFACT = b"tgz"


def _dsse_payload(bundle: dict) -> bytes:
    return base64.b64decode(bundle["dsseEnvelope"]["payload"])


class TestIssuerConstraint:
    """Test allowed-issuer handling."""

    def test_single_issuer_enforced(self):
        assert issuer_constraint(["https://issuer"]) == "https://issuer"

    @pytest.mark.parametrize("issuers", [None, [], ["a", "b"]])
    def test_no_constraint_otherwise(self, issuers):
        assert issuer_constraint(issuers) is None


class TestSigstoreVerifier:
    """Test the Sigstore adapter against a stubbed Sigstore verifier."""

    def setup_method(self):
        """Setup test fixtures."""
        self.sigstore = MagicMock()
        self.production = patch("sigstore.verify.Verifier.production", return_value=self.sigstore)
        self.staging = patch("sigstore.verify.Verifier.staging", return_value=self.sigstore)
        self.from_json = patch("sigstore.models.Bundle.from_json", return_value="parsed-bundle")
        self.mock_production = self.production.start()
        self.mock_staging = self.staging.start()
        self.mock_from_json = self.from_json.start()

    def teardown_method(self):
        patch.stopall()

    def test_dsse_bundle_verified(self, make_bundle):
        """Should verify the DSSE envelope and accept a statement covering the artifact."""
        bundle = make_bundle(hashlib.sha256(ARTIFACT).hexdigest())
        self.sigstore.verify_dsse.return_value = ("application/vnd.in-toto+json", _dsse_payload(bundle))

        SigstoreVerifier().verify(bundle, ARTIFACT)

        policy = self.sigstore.verify_dsse.call_args[0][1]
        assert self.sigstore.verify_dsse.call_args[0][0] == "parsed-bundle"
        assert isinstance(policy, UnsafeNoOp)
        self.sigstore.verify_artifact.assert_not_called()
        self.mock_production.assert_called_once_with(offline=False)

    def test_single_issuer_uses_oidc_policy(self, make_bundle):
        """Should constrain the certificate issuer when one is given."""
        bundle = make_bundle(hashlib.sha256(ARTIFACT).hexdigest())
        self.sigstore.verify_dsse.return_value = ("application/vnd.in-toto+json", _dsse_payload(bundle))

        with patch("sigstore.verify.policy.OIDCIssuer") as mock_issuer:
            SigstoreVerifier().verify(bundle, ARTIFACT, "https://token.actions.githubusercontent.com")

        mock_issuer.assert_called_once_with("https://token.actions.githubusercontent.com")
        assert self.sigstore.verify_dsse.call_args[0][1] is mock_issuer.return_value

    def test_signed_statement_must_cover_artifact(self, make_bundle):
        """Should reject a validly signed statement about a different artifact."""
        bundle = make_bundle("00" * 32)
        self.sigstore.verify_dsse.return_value = ("application/vnd.in-toto+json", _dsse_payload(bundle))

        with pytest.raises(SignatureVerificationError, match="does not cover"):
            SigstoreVerifier().verify(bundle, ARTIFACT)

    def test_message_signature_bundle_uses_verify_artifact(self):
        """Should verify non-DSSE bundles directly over the artifact bytes."""
        bundle = {"messageSignature": {"signature": "c2ln"}}

        SigstoreVerifier().verify(bundle, ARTIFACT)

        artifact, parsed, policy = self.sigstore.verify_artifact.call_args[0]
        assert artifact == ARTIFACT
        assert parsed == "parsed-bundle"
        assert isinstance(policy, UnsafeNoOp)
        self.sigstore.verify_dsse.assert_not_called()

    def test_library_errors_wrapped(self, make_bundle):
        """Should surface Sigstore failures as SignatureVerificationError."""
        self.sigstore.verify_dsse.side_effect = RuntimeError("invalid signature")

        with pytest.raises(SignatureVerificationError, match="invalid signature"):
            SigstoreVerifier().verify(make_bundle("aa"), ARTIFACT)

    def test_staging_instance(self):
        SigstoreVerifier(staging=True, offline=True).verify({"messageSignature": {}}, ARTIFACT)

        self.mock_staging.assert_called_once_with(offline=True)
        self.mock_production.assert_not_called()

    def test_verifier_built_once(self, make_bundle):
        """Should reuse one Sigstore verifier across verifications."""
        bundle = make_bundle(hashlib.sha256(ARTIFACT).hexdigest())
        self.sigstore.verify_dsse.return_value = ("application/vnd.in-toto+json", _dsse_payload(bundle))
        verifier = SigstoreVerifier()

        for _ in range(3):
            verifier.verify(bundle, ARTIFACT)

        self.mock_production.assert_called_once()
        assert self.sigstore.verify_dsse.call_count == 3


class TestSigstoreBundleParsing:
    """Test the adapter with the real bundle parser."""

    def test_malformed_bundle_rejected(self):
        """Should reject a bundle the Sigstore library cannot parse."""
        with pytest.raises(SignatureVerificationError):
            SigstoreVerifier(offline=True).verify({"not": "a bundle"}, ARTIFACT)
