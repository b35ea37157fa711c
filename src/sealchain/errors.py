"""
Error codes, result types and exceptions for sealchain.

Integrity mismatches are never raised: they come back as structured
results so batch auditors can keep going past a bad file. Exceptions are
reserved for operational failures (unparseable input, bad configuration).
File system failures surface as the builtin OSError family.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """
    Verification error codes.
    Values are stable strings; they appear verbatim in audit output.
    """
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    SEAL_MISSING = "SEAL_MISSING"
    SEAL_MALFORMED = "SEAL_MALFORMED"
    UNSUPPORTED_ALGORITHM = "UNSUPPORTED_ALGORITHM"
    EVIDENCE_DIGEST_MISMATCH = "EVIDENCE_DIGEST_MISMATCH"
    SEAL_CHAIN_BROKEN = "SEAL_CHAIN_BROKEN"
    CHAIN_INDEX_GAP = "CHAIN_INDEX_GAP"
    HASH_CHAIN_BROKEN = "HASH_CHAIN_BROKEN"
    ENTRY_HASH_MISMATCH = "ENTRY_HASH_MISMATCH"
    ARTIFACT_MISSING = "ARTIFACT_MISSING"
    ARTIFACT_DIGEST_MISMATCH = "ARTIFACT_DIGEST_MISMATCH"
    WITNESS_BINDING_MISMATCH = "WITNESS_BINDING_MISMATCH"


@dataclass
class VerificationError:
    """
    A single verification error with typed code and audit details.
    """
    code: ErrorCode
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


@dataclass
class VerificationResult:
    """
    Result of a verification operation that collects every error.
    """
    valid: bool
    errors: list[VerificationError] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [e.to_dict() for e in self.errors],
        }


class SealchainError(Exception):
    """Base class for sealchain exceptions."""


class CanonicalizationError(SealchainError, ValueError):
    """Value cannot be canonicalized (cycle or non-string mapping key)."""


class UnsupportedAlgorithmError(SealchainError, ValueError):
    """Digest algorithm is unknown or does not produce a 256-bit digest."""


class EvidenceParseError(SealchainError, ValueError):
    """A JSON document on disk could not be parsed."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path


class LedgerParseError(SealchainError, ValueError):
    """An anchor log line is not `<hash> <json object>`."""

    def __init__(self, message: str, path: str | None = None, index: int | None = None):
        super().__init__(message)
        self.path = path
        self.index = index
