"""
Anchor manifest: a point-in-time snapshot of the evidence files.

The manifest records the raw-byte digest of the input evidence, the
emitted evidence and the anchor log, and optionally a bundle of external
time witnesses bound to the anchor log digest. It is not chained or
sealed; it can be rebuilt from the current files at any time.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from .clock import Clock, isoformat_utc, utc_now
from .digest import DEFAULT_ENGINE, DigestEngine, digests_equal
from .errors import ErrorCode, VerificationError, VerificationResult
from .verify import load_json_file
from .witness import TimeWitness, WitnessBundle, collect_time_witnesses

logger = logging.getLogger(__name__)


SYSTEM_NAME = "sealchain"
MANIFEST_VERSION = "1.0.0"
ARTIFACT_NAMES = ("input_evidence", "emitted_evidence", "anchor_log")

WitnessCollector = Callable[[], WitnessBundle]


@dataclass
class GitMetadata:
    """Repository provenance recorded in the manifest."""
    repo: str | None = None
    head: str | None = None
    branch: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"repo": self.repo, "head": self.head, "branch": self.branch}


def build_manifest(
    input_path: str | Path,
    emitted_path: str | Path,
    log_path: str | Path,
    manifest_path: str | Path,
    git: GitMetadata | None = None,
    include_witness: bool = False,
    witness_collector: WitnessCollector | None = None,
    engine: DigestEngine | None = None,
    clock: Clock | None = None,
) -> Path:
    """
    Digest the three evidence files and write the manifest.

    Args:
        input_path: Sealed input evidence file
        emitted_path: Emitted evidence file
        log_path: Anchor log file
        manifest_path: Where to write the manifest (parents are created)
        git: Repository metadata (default: all null)
        include_witness: Collect external time witnesses and embed them
        witness_collector: Replaces collect_time_witnesses
        engine: Digest engine; its algorithm names the digest fields
        clock: Source of created_utc (default: current UTC time)

    Returns:
        Path of the written manifest

    Raises:
        OSError: If any of the three files is missing or unreadable, or
            the manifest cannot be written
    """
    engine = engine or DEFAULT_ENGINE
    clock = clock or utc_now
    key = engine.algorithm

    log_digest = engine.digest_file(log_path)
    input_digest = engine.digest_file(input_path)
    emitted_digest = engine.digest_file(emitted_path)

    manifest: dict[str, Any] = {
        "system": SYSTEM_NAME,
        "manifest_version": MANIFEST_VERSION,
        "created_utc": isoformat_utc(clock()),
        "git": (git or GitMetadata()).to_dict(),
        "artifacts": {
            "input_evidence": {"path": str(input_path), key: input_digest},
            "emitted_evidence": {"path": str(emitted_path), key: emitted_digest},
            "anchor_log": {"path": str(log_path), key: log_digest},
        },
        "bindings": {
            f"anchor_log_{key}": log_digest,
        },
    }

    if include_witness:
        collector = witness_collector or collect_time_witnesses
        witness = collector()
        manifest["external_time_witness"] = {
            **witness.to_dict(),
            "bound_to": {f"anchor_log_{key}": log_digest},
        }

    out = Path(manifest_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(manifest, indent=2) + "\n", encoding="utf-8")

    logger.info("wrote manifest %s (anchor log %s)", out, log_digest)
    return out


def _witness_from_dict(data: dict[str, Any]) -> TimeWitness:
    return TimeWitness(
        url=data.get("url"),
        ok=data.get("ok"),
        received_utc=data.get("received_utc"),
        status=data.get("status"),
        date=data.get("date"),
        server=data.get("server"),
        via=data.get("via"),
        note=data.get("note"),
    )


def verify_manifest(
    manifest_path: str | Path,
    engine: DigestEngine | None = None,
    base_dir: str | Path | None = None,
) -> VerificationResult:
    """
    Re-digest every artifact a manifest lists and check its bindings.

    Relative artifact paths are resolved against `base_dir` (default: the
    current directory). All problems are collected.

    Raises:
        OSError: If the manifest itself cannot be read
        EvidenceParseError: If the manifest is not valid JSON
    """
    engine = engine or DEFAULT_ENGINE
    key = engine.algorithm
    manifest = load_json_file(manifest_path)
    errors: list[VerificationError] = []

    artifacts = manifest.get("artifacts") if isinstance(manifest, dict) else None
    if not isinstance(artifacts, dict):
        errors.append(VerificationError(
            code=ErrorCode.MISSING_REQUIRED_FIELD,
            message="Missing required field: artifacts",
            details={"field": "artifacts"},
        ))
        return VerificationResult(valid=False, errors=errors)

    root = Path(base_dir) if base_dir is not None else Path(".")

    for name in ARTIFACT_NAMES:
        artifact = artifacts.get(name)
        if (
            not isinstance(artifact, dict)
            or not isinstance(artifact.get("path"), str)
            or not artifact["path"]
            or not artifact.get(key)
        ):
            errors.append(VerificationError(
                code=ErrorCode.MISSING_REQUIRED_FIELD,
                message=f"Artifact {name} must have path and {key}",
                details={"artifact": name},
            ))
            continue

        path = root / artifact["path"]
        try:
            actual = engine.digest_file(path)
        except OSError as exc:
            errors.append(VerificationError(
                code=ErrorCode.ARTIFACT_MISSING,
                message=f"Artifact {name} unreadable: {exc}",
                details={"artifact": name, "path": str(path)},
            ))
            continue

        if not digests_equal(actual, artifact[key]):
            errors.append(VerificationError(
                code=ErrorCode.ARTIFACT_DIGEST_MISMATCH,
                message=f"Artifact {name} digest does not match manifest",
                details={
                    "artifact": name,
                    "path": str(path),
                    "expected": artifact[key],
                    "actual": actual,
                },
            ))

    log_artifact = artifacts.get("anchor_log")
    log_digest = log_artifact.get(key, "") if isinstance(log_artifact, dict) else ""
    binding_key = f"anchor_log_{key}"

    bindings = manifest.get("bindings")
    if not isinstance(bindings, dict):
        errors.append(VerificationError(
            code=ErrorCode.MISSING_REQUIRED_FIELD,
            message="Missing required field: bindings",
            details={"field": "bindings"},
        ))
    elif not digests_equal(bindings.get(binding_key), log_digest):
        errors.append(VerificationError(
            code=ErrorCode.ARTIFACT_DIGEST_MISMATCH,
            message="Anchor log binding does not match anchor log artifact",
            details={"expected": log_digest, "actual": bindings.get(binding_key)},
        ))

    witness = manifest.get("external_time_witness")
    if witness is not None:
        errors.extend(_verify_witness(witness, binding_key, log_digest, engine))

    for error in errors:
        logger.warning("manifest %s: %s", manifest_path, error.message)

    return VerificationResult(valid=len(errors) == 0, errors=errors)


def _verify_witness(
    witness: Any,
    binding_key: str,
    log_digest: str,
    engine: DigestEngine,
) -> list[VerificationError]:
    errors: list[VerificationError] = []
    if not isinstance(witness, dict):
        return [VerificationError(
            code=ErrorCode.WITNESS_BINDING_MISMATCH,
            message="external_time_witness must be a JSON object",
        )]

    bound_to = witness.get("bound_to")
    if not isinstance(bound_to, dict):
        errors.append(VerificationError(
            code=ErrorCode.MISSING_REQUIRED_FIELD,
            message="Missing required field: external_time_witness.bound_to",
            details={"field": "external_time_witness.bound_to"},
        ))
    elif not digests_equal(bound_to.get(binding_key), log_digest):
        errors.append(VerificationError(
            code=ErrorCode.WITNESS_BINDING_MISMATCH,
            message="Witness bundle is bound to a different anchor log",
            details={"expected": log_digest, "actual": bound_to.get(binding_key)},
        ))

    entries = witness.get("witnesses")
    if isinstance(entries, list) and all(isinstance(w, dict) for w in entries):
        recomputed = engine.digest_value(
            [_witness_from_dict(w).stable_dict() for w in entries]
        )
        if not digests_equal(recomputed, witness.get("witness_bundle_hash")):
            errors.append(VerificationError(
                code=ErrorCode.WITNESS_BINDING_MISMATCH,
                message="Witness bundle hash does not match its witnesses",
                details={"expected": witness.get("witness_bundle_hash"), "actual": recomputed},
            ))
    else:
        errors.append(VerificationError(
            code=ErrorCode.WITNESS_BINDING_MISMATCH,
            message="Witness bundle has no witness list",
        ))

    return errors
