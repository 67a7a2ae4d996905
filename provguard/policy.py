"""Verification policy loading."""

from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError


class PolicyError(Exception):
    """Policy file could not be read or does not match the schema."""


class Policy(BaseModel):
    """Gating policy, usually read from ``.provenance-gatekeeper.yml``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    require_provenance: bool = Field(True, alias="requireProvenance")
    require_subject_match: bool = Field(True, alias="requireSubjectMatch")
    verify_signature: bool = Field(False, alias="verifySignature")
    allowed_issuers: list[str] | None = Field(None, alias="allowedIssuers")


def load_policy(path: str | Path | None = None) -> Policy:
    """Load a policy file, or the defaults when no path is given.

    Args:
        path: YAML policy file path

    Returns:
        Parsed Policy object

    Raises:
        PolicyError: If the file is unreadable, not YAML, or fails validation
    """
    if path is None:
        return Policy()

    try:
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise PolicyError(f"Cannot load policy {path}: {e}") from e

    try:
        return Policy.model_validate(data or {})
    except ValidationError as e:
        raise PolicyError(f"Invalid policy {path}: {e}") from e
