"""
Evidence sealing for sealchain.

A seal binds an evidence body to the intent that produced it and,
optionally, to the seal of the evidence that came before it:

    seal = {algorithm, input_digest, evidence_digest, previous_digest, chain_index}

evidence_digest is computed over the body with any `seal` field removed;
a seal never covers itself.
"""

import logging
from dataclasses import dataclass
from typing import Any

from .digest import DEFAULT_ENGINE, DigestEngine

logger = logging.getLogger(__name__)


SEAL_FIELD = "seal"


@dataclass
class Seal:
    """Integrity record attached to an evidence document."""
    algorithm: str
    input_digest: str
    evidence_digest: str
    previous_digest: str | None
    chain_index: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "algorithm": self.algorithm,
            "input_digest": self.input_digest,
            "evidence_digest": self.evidence_digest,
            "previous_digest": self.previous_digest,
            "chain_index": self.chain_index,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Seal":
        """
        Read a seal from its JSON form.

        Raises:
            KeyError: If a required field is absent
            TypeError: If data is not a mapping
        """
        return cls(
            algorithm=data["algorithm"],
            input_digest=data["input_digest"],
            evidence_digest=data["evidence_digest"],
            previous_digest=data.get("previous_digest"),
            chain_index=data["chain_index"],
        )


def strip_seal(evidence: dict[str, Any]) -> dict[str, Any]:
    """Shallow copy of `evidence` without its seal field."""
    return {k: v for k, v in evidence.items() if k != SEAL_FIELD}


def compute_evidence_digest(
    evidence: dict[str, Any],
    engine: DigestEngine | None = None,
) -> str:
    """
    Digest of an evidence body, excluding any seal field.

    Args:
        evidence: Evidence document, sealed or not
        engine: Digest engine (default: sha256)

    Returns:
        Hex digest of the canonical body
    """
    engine = engine or DEFAULT_ENGINE
    return engine.digest_value(strip_seal(evidence))


def compute_intent_digest(
    intent: dict[str, Any],
    engine: DigestEngine | None = None,
) -> str:
    """
    Digest of a description of intent (the request that produced evidence).

    The caller must keep run-specific data (timestamps, file paths) out of
    `intent` so identical requests always digest identically.
    """
    engine = engine or DEFAULT_ENGINE
    return engine.digest_value(intent)


def compute_input_digest(
    engine_name: str,
    version: str,
    org: str,
    mode: str,
    expected_pins: list[str],
    profile_readme_required: bool,
    profile_readme_repo: str | None = None,
    profile_readme_path: str | None = None,
    engine: DigestEngine | None = None,
) -> str:
    """
    Input digest for an organisation profile check.

    expected_pins is treated as a set: its order does not affect the digest.

    Args:
        engine_name: Name of the checking engine
        version: Version of the checking engine
        org: Organisation being checked
        mode: Check mode
        expected_pins: Repository names expected to be pinned
        profile_readme_required: Whether a profile README must exist
        profile_readme_repo: Repository holding the profile README
        profile_readme_path: Path of the README within that repository
        engine: Digest engine (default: sha256)

    Returns:
        Hex digest of the canonical intent
    """
    intent = {
        "engine": engine_name,
        "version": version,
        "org": org,
        "mode": mode,
        "expectedPins": sorted(expected_pins),
        "profileReadme": {
            "required": profile_readme_required,
            "repo": profile_readme_repo,
            "path": profile_readme_path,
        },
    }
    return compute_intent_digest(intent, engine)


def attach_seal(
    evidence: dict[str, Any],
    input_digest: str,
    previous_digest: str | None = None,
    chain_index: int = 1,
    engine: DigestEngine | None = None,
) -> dict[str, Any]:
    """
    Seal an evidence body, returning a new document.

    The input is not mutated. A seal already present on `evidence` is
    replaced and never contributes to the new evidence_digest.

    Args:
        evidence: Evidence body (JSON-like mapping)
        input_digest: Digest of the intent that produced the evidence
        previous_digest: evidence_digest of the preceding evidence, or None for a root seal
        chain_index: Position in the caller's chain, starting at 1
        engine: Digest engine (default: sha256)

    Returns:
        Evidence body merged with a `seal` field

    Raises:
        ValueError: If chain_index is not a positive integer or input_digest is empty
    """
    if isinstance(chain_index, bool) or not isinstance(chain_index, int) or chain_index < 1:
        raise ValueError(f"chain_index must be a positive integer, got {chain_index!r}")
    if not input_digest:
        raise ValueError("input_digest must not be empty")

    engine = engine or DEFAULT_ENGINE
    body = strip_seal(evidence)

    seal = Seal(
        algorithm=engine.algorithm,
        input_digest=input_digest,
        evidence_digest=engine.digest_value(body),
        previous_digest=previous_digest,
        chain_index=chain_index,
    )
    logger.debug("sealed evidence #%d digest=%s", chain_index, seal.evidence_digest)

    sealed = dict(body)
    sealed[SEAL_FIELD] = seal.to_dict()
    return sealed


def seal_next(
    previous: dict[str, Any],
    evidence: dict[str, Any],
    input_digest: str,
    engine: DigestEngine | None = None,
) -> dict[str, Any]:
    """
    Seal `evidence` as the successor of the sealed document `previous`.

    previous_digest is taken from the previous seal's evidence_digest and
    chain_index is one past the previous seal's index.

    Raises:
        ValueError: If `previous` carries no usable seal
    """
    prev_seal = previous.get(SEAL_FIELD)
    if not isinstance(prev_seal, dict):
        raise ValueError("Previous evidence is not sealed")
    try:
        parsed = Seal.from_dict(prev_seal)
    except KeyError as exc:
        raise ValueError(f"Previous seal missing field {exc}")
    if isinstance(parsed.chain_index, bool) or not isinstance(parsed.chain_index, int):
        raise ValueError(f"Previous seal has invalid chain_index {parsed.chain_index!r}")

    return attach_seal(
        evidence,
        input_digest,
        previous_digest=parsed.evidence_digest,
        chain_index=parsed.chain_index + 1,
        engine=engine,
    )
