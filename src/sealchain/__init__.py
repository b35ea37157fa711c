"""
sealchain: Tamper-evident evidence sealing and hash-chained anchoring.

Evidence documents are canonicalized, digested and sealed; sealed
evidence is recorded in an append-only anchor log whose entries each
commit to their predecessor. Anyone holding the files can replay the
chain offline and find the exact entry where it was altered.
"""

from .canonical import canonical_json, canonicalize
from .digest import (
    DEFAULT_ENGINE,
    DigestEngine,
    digest_bytes,
    digest_file,
    digest_value,
)
from .seal import (
    Seal,
    attach_seal,
    seal_next,
    compute_evidence_digest,
    compute_intent_digest,
    compute_input_digest,
)
from .verify import (
    SealCheck,
    BatchSealCheck,
    verify_seal,
    verify_seal_file,
    verify_seal_files,
    verify_seal_sequence,
)
from .anchor import (
    GENESIS,
    AnchorEntry,
    AnchorLog,
    LogCheck,
    append_entry,
    verify_log,
)
from .manifest import GitMetadata, build_manifest, verify_manifest
from .observation import Observation, ObservationSource, build_evidence_body
from .witness import TimeWitness, WitnessBundle, collect_time_witnesses
from .errors import (
    ErrorCode,
    VerificationError,
    VerificationResult,
    SealchainError,
    CanonicalizationError,
    UnsupportedAlgorithmError,
    EvidenceParseError,
    LedgerParseError,
)

__version__ = "0.1.0"
__all__ = [
    # Canonical JSON
    "canonical_json",
    "canonicalize",
    # Digests
    "DEFAULT_ENGINE",
    "DigestEngine",
    "digest_bytes",
    "digest_file",
    "digest_value",
    # Sealing
    "Seal",
    "attach_seal",
    "seal_next",
    "compute_evidence_digest",
    "compute_intent_digest",
    "compute_input_digest",
    # Seal verification
    "SealCheck",
    "BatchSealCheck",
    "verify_seal",
    "verify_seal_file",
    "verify_seal_files",
    "verify_seal_sequence",
    # Anchor log
    "GENESIS",
    "AnchorEntry",
    "AnchorLog",
    "LogCheck",
    "append_entry",
    "verify_log",
    # Manifest
    "GitMetadata",
    "build_manifest",
    "verify_manifest",
    # Collaborators
    "Observation",
    "ObservationSource",
    "build_evidence_body",
    "TimeWitness",
    "WitnessBundle",
    "collect_time_witnesses",
    # Errors
    "ErrorCode",
    "VerificationError",
    "VerificationResult",
    "SealchainError",
    "CanonicalizationError",
    "UnsupportedAlgorithmError",
    "EvidenceParseError",
    "LedgerParseError",
]
