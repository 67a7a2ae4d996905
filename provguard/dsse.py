"""Attestation bundle parsing: Sigstore bundle -> DSSE envelope -> in-toto statement."""

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from .digest import normalize_digest

logger = logging.getLogger(__name__)

SLSA_PROVENANCE_PREFIX = "https://slsa.dev/provenance/"

_URLSAFE_TO_STANDARD = str.maketrans("-_", "+/")


def decode_payload(payload: str) -> bytes:
    """Decode standard or URL-safe base64, tolerating line wraps and missing padding.

    Raises:
        binascii.Error: If the text is not base64 in either alphabet
    """
    compact = "".join(payload.split()).translate(_URLSAFE_TO_STANDARD)
    compact += "=" * (-len(compact) % 4)
    return base64.b64decode(compact, validate=True)


@dataclass
class Envelope:
    """DSSE envelope as carried in a Sigstore bundle."""

    payload: bytes
    payload_type: str | None = None
    signatures: list[dict] = field(default_factory=list)

    @classmethod
    def from_bundle(cls, bundle: Any) -> "Envelope":
        if not isinstance(bundle, dict):
            raise ValueError("bundle is not an object")
        envelope = bundle.get("dsseEnvelope")
        if not isinstance(envelope, dict):
            raise ValueError("bundle has no dsseEnvelope")
        payload = envelope.get("payload")
        if not isinstance(payload, str):
            raise ValueError("dsseEnvelope.payload is not a string")
        try:
            decoded = decode_payload(payload)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"dsseEnvelope.payload is not base64: {e}") from e
        signatures = envelope.get("signatures")
        return cls(
            payload=decoded,
            payload_type=envelope.get("payloadType"),
            signatures=signatures if isinstance(signatures, list) else [],
        )


@dataclass
class Statement:
    """The subset of an in-toto statement used for digest binding."""

    subject_digests: list[str]
    predicate_type: str | None = None

    @classmethod
    def from_payload(cls, payload: bytes) -> "Statement":
        try:
            data = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ValueError(f"statement is not UTF-8 JSON: {e}") from e
        if not isinstance(data, dict):
            raise ValueError("statement is not an object")

        subjects = data.get("subject")
        if not isinstance(subjects, list):
            subjects = []

        digests = []
        for subject in subjects:
            if not isinstance(subject, dict):
                continue
            digest = subject.get("digest")
            value = digest.get("sha256") if isinstance(digest, dict) else None
            if value:
                digests.append(normalize_digest(str(value)))

        return cls(
            subject_digests=[d for d in digests if d],
            predicate_type=data.get("predicateType"),
        )


def select_bundle(document: Any) -> Any:
    """Pick the Sigstore bundle out of an attestation document.

    The npm registry wraps bundles as ``{"attestations": [{"predicateType",
    "bundle"}, ...]}``; the SLSA provenance bundle is preferred over the
    publish attestation. Documents that already are a bundle, or that have
    an unrecognized shape, are returned unchanged.
    """
    if not isinstance(document, dict) or "dsseEnvelope" in document:
        return document

    attestations = document.get("attestations")
    if not isinstance(attestations, list):
        return document

    candidates = [
        a for a in attestations
        if isinstance(a, dict) and isinstance(a.get("bundle"), dict)
    ]
    for attestation in candidates:
        if str(attestation.get("predicateType", "")).startswith(SLSA_PROVENANCE_PREFIX):
            return attestation["bundle"]
    if candidates:
        return candidates[0]["bundle"]
    return document


def extract_subject_digests(bundle: Any) -> list[str]:
    """Return every ``subject.digest.sha256`` asserted by the bundle.

    Never raises: a bundle that cannot be decoded yields an empty list,
    which callers treat as a digest mismatch.
    """
    try:
        envelope = Envelope.from_bundle(bundle)
        return Statement.from_payload(envelope.payload).subject_digests
    except Exception as e:
        logger.debug("No subject digests extracted: %s", e)
        return []
