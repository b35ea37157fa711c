"""
Offline seal verification for sealchain.

Recomputes evidence digests and compares them with the claimed seal.
A failed check is a result, never an exception, so an auditor can run
over many files and report every failure.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .digest import DEFAULT_ENGINE, DigestEngine, digests_equal
from .errors import (
    CanonicalizationError,
    ErrorCode,
    EvidenceParseError,
    VerificationError,
    VerificationResult,
)
from .seal import SEAL_FIELD, strip_seal

logger = logging.getLogger(__name__)


@dataclass
class SealCheck:
    """Outcome of verifying one sealed evidence document."""
    ok: bool
    expected_digest: str
    actual_digest: str
    error: VerificationError | None = None
    path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "ok": self.ok,
            "expected": {"evidence_digest": self.expected_digest},
            "actual": {"evidence_digest": self.actual_digest},
        }
        if self.path is not None:
            out["path"] = self.path
        if self.error is not None:
            out["error"] = self.error.to_dict()
        return out


@dataclass
class BatchSealCheck:
    """Outcome of verifying several evidence files."""
    checks: list[SealCheck] = field(default_factory=list)
    unreadable: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(c.ok for c in self.checks)

    @property
    def failures(self) -> list[SealCheck]:
        return [c for c in self.checks if not c.ok]

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "checked": len(self.checks),
            "failed": len(self.failures),
            "unreadable": list(self.unreadable),
            "results": [c.to_dict() for c in self.checks],
        }


def _rejected(code: ErrorCode, message: str, **details: Any) -> SealCheck:
    logger.warning("seal rejected: %s", message)
    return SealCheck(
        ok=False,
        expected_digest="",
        actual_digest="",
        error=VerificationError(code=code, message=message, details=details),
    )


def verify_seal(
    evidence: Any,
    engine: DigestEngine | None = None,
) -> SealCheck:
    """
    Verify a sealed evidence document.

    Strips the seal, recomputes the evidence digest over the remainder and
    compares it with seal.evidence_digest.

    Args:
        evidence: Sealed evidence document
        engine: Digest engine; its algorithm must match the seal's tag

    Returns:
        SealCheck with ok=False when the seal is missing, malformed or
        does not match
    """
    engine = engine or DEFAULT_ENGINE

    if not isinstance(evidence, dict):
        return _rejected(
            ErrorCode.SEAL_MALFORMED,
            "Evidence must be a JSON object",
            received=type(evidence).__name__,
        )

    seal = evidence.get(SEAL_FIELD)
    if seal is None:
        return _rejected(ErrorCode.SEAL_MISSING, "Evidence has no seal")
    if not isinstance(seal, dict):
        return _rejected(
            ErrorCode.SEAL_MALFORMED,
            "Seal must be a JSON object",
            received=type(seal).__name__,
        )

    algorithm = seal.get("algorithm")
    if algorithm != engine.algorithm:
        return _rejected(
            ErrorCode.UNSUPPORTED_ALGORITHM,
            f"Seal algorithm {algorithm!r} does not match engine {engine.algorithm!r}",
            algorithm=algorithm,
            expected_algorithm=engine.algorithm,
        )

    claimed = seal.get("evidence_digest")
    if not claimed or not isinstance(claimed, str):
        return _rejected(ErrorCode.SEAL_MALFORMED, "Seal has an empty evidence_digest")

    try:
        recomputed = engine.digest_value(strip_seal(evidence))
    except CanonicalizationError as exc:
        return _rejected(
            ErrorCode.SEAL_MALFORMED, f"Evidence cannot be canonicalized: {exc}"
        )
    if not digests_equal(recomputed, claimed):
        logger.warning("evidence digest mismatch: claimed %s, recomputed %s", claimed, recomputed)
        return SealCheck(
            ok=False,
            expected_digest=claimed,
            actual_digest=recomputed,
            error=VerificationError(
                code=ErrorCode.EVIDENCE_DIGEST_MISMATCH,
                message="Evidence digest does not match seal",
                details={"expected": claimed, "actual": recomputed},
            ),
        )

    return SealCheck(ok=True, expected_digest=claimed, actual_digest=recomputed)


def load_json_file(path: str | Path) -> Any:
    """
    Read and parse a JSON file.

    Raises:
        OSError: If the file cannot be read
        EvidenceParseError: If the content is not valid JSON
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise EvidenceParseError(f"Invalid JSON in {path}: {exc}", path=str(path))


def verify_seal_file(
    path: str | Path,
    engine: DigestEngine | None = None,
) -> SealCheck:
    """
    Verify a sealed evidence file.

    Raises:
        OSError: If the file cannot be read
        EvidenceParseError: If the file is not valid JSON
    """
    check = verify_seal(load_json_file(path), engine)
    check.path = str(path)
    return check


def verify_seal_files(
    paths: list[str | Path],
    engine: DigestEngine | None = None,
) -> BatchSealCheck:
    """
    Verify many evidence files, reporting every failure.

    Unreadable and unparseable files are recorded as failed checks
    (SEAL_MALFORMED) instead of stopping the batch.
    """
    batch = BatchSealCheck()
    for path in paths:
        try:
            batch.checks.append(verify_seal_file(path, engine))
        except (OSError, EvidenceParseError) as exc:
            logger.warning("cannot verify %s: %s", path, exc)
            batch.unreadable.append(str(path))
            batch.checks.append(SealCheck(
                ok=False,
                expected_digest="",
                actual_digest="",
                error=VerificationError(
                    code=ErrorCode.SEAL_MALFORMED,
                    message=str(exc),
                    details={"path": str(path)},
                ),
                path=str(path),
            ))
    return batch


def verify_seal_sequence(
    sequence: list[dict[str, Any]],
    engine: DigestEngine | None = None,
) -> VerificationResult:
    """
    Verify an ordered run of sealed evidence documents.

    Each document must carry a valid seal, the first seal must be a root
    (previous_digest null), every later seal's previous_digest must equal
    its predecessor's evidence_digest, and chain_index must step by one.
    """
    errors: list[VerificationError] = []

    if not isinstance(sequence, list) or len(sequence) == 0:
        errors.append(VerificationError(
            code=ErrorCode.MISSING_REQUIRED_FIELD,
            message="Sequence must be a non-empty array",
            details={"received": "empty array" if isinstance(sequence, list) else type(sequence).__name__},
        ))
        return VerificationResult(valid=False, errors=errors)

    previous_seal: dict[str, Any] | None = None

    for position, evidence in enumerate(sequence):
        check = verify_seal(evidence, engine)
        if not check.ok:
            error = check.error
            error.details = {**error.details, "position": position}
            errors.append(error)
            previous_seal = None
            continue

        seal = evidence[SEAL_FIELD]

        if position == 0:
            if seal.get("previous_digest") is not None:
                errors.append(VerificationError(
                    code=ErrorCode.SEAL_CHAIN_BROKEN,
                    message="First seal must not reference a previous digest",
                    details={"position": 0, "actual": seal.get("previous_digest")},
                ))
        elif previous_seal is not None:
            expected_prev = previous_seal.get("evidence_digest", "")
            if not digests_equal(seal.get("previous_digest") or "", expected_prev):
                errors.append(VerificationError(
                    code=ErrorCode.SEAL_CHAIN_BROKEN,
                    message=f"Seal chain broken at position {position}: previous_digest mismatch",
                    details={
                        "position": position,
                        "expected": expected_prev,
                        "actual": seal.get("previous_digest"),
                    },
                ))

            expected_index = previous_seal.get("chain_index")
            if isinstance(expected_index, int):
                expected_index += 1
            if seal.get("chain_index") != expected_index:
                errors.append(VerificationError(
                    code=ErrorCode.CHAIN_INDEX_GAP,
                    message=f"Expected chain_index {expected_index}, got {seal.get('chain_index')}",
                    details={
                        "position": position,
                        "expected": expected_index,
                        "actual": seal.get("chain_index"),
                    },
                ))

        previous_seal = seal

    return VerificationResult(valid=len(errors) == 0, errors=errors)
