"""
Append-only, hash-chained anchor log.

Each line of the log is

    <entry hash> <canonical JSON payload>

with payload = {ts, evidence_path, evidence_hash, prev_hash}. The entry
hash is the digest of the canonical payload and prev_hash is the entry
hash of the line before it, or GENESIS for the first line. Lines are only
ever appended.

Appends hold an exclusive flock on the log for the whole
read-last-line-then-append sequence, so concurrent writers on one host
cannot both link to the same predecessor.
"""

import fcntl
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator

from .canonical import canonical_json
from .clock import Clock, isoformat_utc, utc_now
from .digest import DEFAULT_ENGINE, DigestEngine, digests_equal
from .errors import ErrorCode, LedgerParseError, VerificationError

logger = logging.getLogger(__name__)


# Sentinel prev_hash for the first entry (no predecessor)
GENESIS = "GENESIS"


@dataclass
class AnchorEntry:
    """A single ledger line."""
    entry_hash: str
    payload: dict[str, Any]

    def to_line(self) -> str:
        return f"{self.entry_hash} {canonical_json(self.payload)}"

    @classmethod
    def parse(
        cls,
        line: str,
        index: int | None = None,
        path: str | None = None,
    ) -> "AnchorEntry":
        """
        Parse `<hash> <json>`.

        Raises:
            LedgerParseError: If the line has no payload, the payload is not
                valid JSON, or it is not a JSON object
        """
        entry_hash, sep, payload_text = line.partition(" ")
        if not sep or not entry_hash:
            raise LedgerParseError(
                f"Entry {index} is not '<hash> <json>'", path=path, index=index
            )
        try:
            payload = json.loads(payload_text)
        except json.JSONDecodeError as exc:
            raise LedgerParseError(
                f"Entry {index} payload is not valid JSON: {exc}", path=path, index=index
            )
        if not isinstance(payload, dict):
            raise LedgerParseError(
                f"Entry {index} payload must be a JSON object", path=path, index=index
            )
        return cls(entry_hash=entry_hash, payload=payload)


@dataclass
class LogCheck:
    """Outcome of verifying an anchor log."""
    ok: bool
    entries_verified: int
    error: VerificationError | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"ok": self.ok, "entries": self.entries_verified}
        if self.error is not None:
            out["error"] = self.error.message
            out["code"] = self.error.code.value
        return out


def _last_hash(text: str) -> str:
    """Leading hash token of the last line, or GENESIS for an empty log."""
    stripped = text.strip()
    if not stripped:
        return GENESIS
    last_line = stripped.split("\n")[-1].strip()
    return last_line.split(" ", 1)[0]


class AnchorLog:
    """
    Anchor log stored at `path`.

    Args:
        path: Log file; created with its parent directories on first append
        engine: Digest engine (default: sha256)
        lock: Hold an exclusive flock while appending
        clock: Source of the entry timestamp (default: current UTC time)
    """

    def __init__(
        self,
        path: str | Path,
        engine: DigestEngine | None = None,
        lock: bool = True,
        clock: Clock | None = None,
    ):
        self.path = Path(path)
        self.engine = engine or DEFAULT_ENGINE
        self.lock = lock
        self.clock = clock or utc_now

    def exists(self) -> bool:
        return self.path.exists()

    def _read(self) -> str:
        try:
            return self.path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise LedgerParseError(
                f"Anchor log is not valid UTF-8: {exc}", path=str(self.path)
            )

    def head(self) -> str:
        """Entry hash of the last line, or GENESIS if the log is absent or empty."""
        if not self.path.exists():
            return GENESIS
        return _last_hash(self._read())

    def entries(self) -> Iterator[AnchorEntry]:
        """
        Parse every line of the log in order.

        Raises:
            LedgerParseError: On the first malformed line, or if the log is
                not valid UTF-8
        """
        if not self.path.exists():
            return
        text = self._read().strip()
        if not text:
            return
        for index, line in enumerate(text.split("\n")):
            yield AnchorEntry.parse(line, index=index, path=str(self.path))

    def append(self, evidence_path: str | Path, evidence: Any) -> dict[str, Any]:
        """
        Append an entry recording `evidence` stored at `evidence_path`.

        Args:
            evidence_path: Where the evidence lives (recorded, not read)
            evidence: The evidence value; its canonical digest is recorded

        Returns:
            The payload written to the log

        Raises:
            OSError: If the log cannot be created or written
            LedgerParseError: If the existing log is not valid UTF-8
        """
        evidence_hash = self.engine.digest_value(evidence)
        self.path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.path, "a+", encoding="utf-8", newline="") as f:
            if self.lock:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            try:
                f.seek(0)
                try:
                    text = f.read()
                except UnicodeDecodeError as exc:
                    raise LedgerParseError(
                        f"Anchor log is not valid UTF-8: {exc}", path=str(self.path)
                    )
                prev_hash = _last_hash(text)
                # Terminate a last line left without its newline
                if text and not text.endswith("\n"):
                    f.write("\n")

                payload = {
                    "ts": isoformat_utc(self.clock()),
                    "evidence_path": str(evidence_path),
                    "evidence_hash": evidence_hash,
                    "prev_hash": prev_hash,
                }
                entry = AnchorEntry(
                    entry_hash=self.engine.digest_value(payload),
                    payload=payload,
                )

                f.write(entry.to_line() + "\n")
                f.flush()
                os.fsync(f.fileno())
            finally:
                if self.lock:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)

        logger.info("anchored %s as %s (prev %s)", evidence_path, entry.entry_hash, prev_hash)
        return payload

    def verify(self) -> LogCheck:
        """
        Walk the log from GENESIS and stop at the first broken entry.

        For each entry, prev_hash must equal the previous entry hash and
        the entry hash must equal the digest of the canonical payload. An
        absent or empty log is valid with zero entries.

        Returns:
            LogCheck; on failure entries_verified is the 0-based index of
            the failing entry

        Raises:
            OSError: If the log exists but cannot be read
            LedgerParseError: If a line is malformed
        """
        prev = GENESIS
        count = 0

        for index, entry in enumerate(self.entries()):
            if not digests_equal(entry.payload.get("prev_hash"), prev):
                return self._broken(index, VerificationError(
                    code=ErrorCode.HASH_CHAIN_BROKEN,
                    message=f"Hash chain broken at entry {index}",
                    details={
                        "index": index,
                        "expected": prev,
                        "actual": entry.payload.get("prev_hash"),
                    },
                ))

            recomputed = self.engine.digest_value(entry.payload)
            if not digests_equal(recomputed, entry.entry_hash):
                return self._broken(index, VerificationError(
                    code=ErrorCode.ENTRY_HASH_MISMATCH,
                    message=f"Entry hash mismatch at entry {index}",
                    details={
                        "index": index,
                        "expected": entry.entry_hash,
                        "actual": recomputed,
                    },
                ))

            prev = entry.entry_hash
            count = index + 1

        logger.debug("anchor log %s verified: %d entries", self.path, count)
        return LogCheck(ok=True, entries_verified=count)

    def _broken(self, index: int, error: VerificationError) -> LogCheck:
        logger.warning("anchor log %s: %s", self.path, error.message)
        return LogCheck(ok=False, entries_verified=index, error=error)


def append_entry(
    log_path: str | Path,
    evidence_path: str | Path,
    evidence: Any,
    engine: DigestEngine | None = None,
) -> dict[str, Any]:
    """Append one entry to the log at `log_path`; see AnchorLog.append."""
    return AnchorLog(log_path, engine=engine).append(evidence_path, evidence)


def verify_log(
    log_path: str | Path,
    engine: DigestEngine | None = None,
) -> LogCheck:
    """Verify the log at `log_path`; see AnchorLog.verify."""
    return AnchorLog(log_path, engine=engine).verify()
