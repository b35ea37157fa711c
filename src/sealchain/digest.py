"""
Digest engine: a 256-bit hash over canonical bytes or raw file bytes.

The hash algorithm is an explicit value carried by a DigestEngine rather
than module state, so callers can swap it without touching call sites.
Uses hashlib. Digests are 64 lowercase hex characters.
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .canonical import canonicalize
from .errors import UnsupportedAlgorithmError

logger = logging.getLogger(__name__)


DEFAULT_ALGORITHM = "sha256"
DIGEST_SIZE = 32
_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class DigestEngine:
    """
    A named 256-bit hash function.

    Any hashlib algorithm with a 32-byte digest is accepted
    (sha256, sha3_256, blake2s).
    """
    algorithm: str = DEFAULT_ALGORITHM

    def __post_init__(self) -> None:
        try:
            size = hashlib.new(self.algorithm).digest_size
        except (ValueError, TypeError):
            raise UnsupportedAlgorithmError(f"Unknown digest algorithm: {self.algorithm}")
        if size != DIGEST_SIZE:
            raise UnsupportedAlgorithmError(
                f"Digest algorithm {self.algorithm} produces {size * 8}-bit digests, "
                f"{DIGEST_SIZE * 8}-bit required"
            )

    def digest_bytes(self, data: bytes) -> str:
        """Hex digest of raw bytes."""
        return hashlib.new(self.algorithm, data).hexdigest()

    def digest_value(self, value: Any) -> str:
        """Hex digest of the canonical serialization of a JSON-like value."""
        return self.digest_bytes(canonicalize(value))

    def digest_file(self, path: str | Path) -> str:
        """
        Hex digest of a file's exact on-disk bytes (no canonicalization).

        Raises:
            OSError: If the file does not exist or cannot be read
        """
        h = hashlib.new(self.algorithm)
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
                h.update(chunk)
        digest = h.hexdigest()
        logger.debug("%s(%s) = %s", self.algorithm, path, digest)
        return digest


DEFAULT_ENGINE = DigestEngine()


def digest_bytes(data: bytes) -> str:
    """SHA-256 hex digest of raw bytes."""
    return DEFAULT_ENGINE.digest_bytes(data)


def digest_value(value: Any) -> str:
    """SHA-256 hex digest of a value's canonical JSON."""
    return DEFAULT_ENGINE.digest_value(value)


def digest_file(path: str | Path) -> str:
    """SHA-256 hex digest of a file's raw bytes."""
    return DEFAULT_ENGINE.digest_file(path)


def digests_equal(left: str, right: str) -> bool:
    """
    Constant-time string comparison to prevent timing side-channel attacks.
    """
    left = left if isinstance(left, str) else str(left or "")
    right = right if isinstance(right, str) else str(right or "")
    return hmac.compare_digest(left.encode("utf-8"), right.encode("utf-8"))
