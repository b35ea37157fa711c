"""
Anchor log tests for sealchain.

Covers genesis, linkage, replay verification and localization of the
first corrupted entry.
"""

import json
import re
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add parent src to path for development
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from sealchain import (
    GENESIS,
    AnchorEntry,
    AnchorLog,
    DigestEngine,
    ErrorCode,
    LedgerParseError,
    append_entry,
    canonical_json,
    digest_value,
    verify_log,
)


LINE_PATTERN = re.compile(r"^[0-9a-f]{64} \{.*\}$")


class FixedClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        current = self.now
        self.now += timedelta(seconds=1)
        return current


def _evidence(n: int) -> dict:
    return {"run": n, "status": "match", "seal": {"evidence_digest": str(n) * 64}}


def _build_log(path: Path, count: int, **kwargs) -> AnchorLog:
    log = AnchorLog(path, clock=FixedClock(), **kwargs)
    for n in range(count):
        log.append(f"evidence/run-{n}.json", _evidence(n))
    return log


def _lines(path: Path) -> list[str]:
    return path.read_text(encoding="utf-8").strip().split("\n")


def _rewrite_line(path: Path, index: int, mutate, rehash: bool = False) -> None:
    lines = _lines(path)
    entry = AnchorEntry.parse(lines[index])
    mutate(entry.payload)
    if rehash:
        entry.entry_hash = digest_value(entry.payload)
    lines[index] = entry.to_line()
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


class TestAppend:
    """Test appending entries."""

    def test_genesis_entry(self, tmp_path):
        """The first entry links to GENESIS and the log verifies."""
        log_path = tmp_path / "nested" / "dir" / "ANCHOR_LOG.ndjson"
        payload = append_entry(log_path, "evidence/check.json", {"status": "match"})

        assert payload["prev_hash"] == GENESIS
        assert log_path.exists()

        check = verify_log(log_path)
        assert check.ok
        assert check.entries_verified == 1

    def test_payload_fields(self, tmp_path):
        log = AnchorLog(tmp_path / "log.ndjson", clock=FixedClock())
        evidence = {"b": 2, "a": 1}
        payload = log.append("evidence/check.json", evidence)

        assert payload == {
            "ts": "2024-01-01T00:00:00.000Z",
            "evidence_path": "evidence/check.json",
            "evidence_hash": digest_value(evidence),
            "prev_hash": GENESIS,
        }

    def test_line_format(self, tmp_path):
        """Each line is '<64 hex> <canonical payload>'."""
        log_path = tmp_path / "log.ndjson"
        _build_log(log_path, 2)

        raw = log_path.read_text(encoding="utf-8")
        assert raw.endswith("\n")
        for line in _lines(log_path):
            assert LINE_PATTERN.match(line)
            entry_hash, payload_text = line.split(" ", 1)
            payload = json.loads(payload_text)
            assert payload_text == canonical_json(payload)
            assert entry_hash == digest_value(payload)

    def test_chain_linkage(self, tmp_path):
        """Entry k's prev_hash is entry k-1's leading hash."""
        log_path = tmp_path / "log.ndjson"
        log = _build_log(log_path, 5)

        lines = _lines(log_path)
        assert len(lines) == 5

        entries = list(log.entries())
        assert entries[0].payload["prev_hash"] == GENESIS
        for k in range(1, len(entries)):
            assert entries[k].payload["prev_hash"] == entries[k - 1].entry_hash

        check = log.verify()
        assert check.ok
        assert check.entries_verified == 5

    def test_prior_lines_untouched(self, tmp_path):
        log_path = tmp_path / "log.ndjson"
        log = _build_log(log_path, 2)
        before = log_path.read_text(encoding="utf-8")

        log.append("evidence/run-2.json", _evidence(2))
        assert log_path.read_text(encoding="utf-8").startswith(before)

    def test_head(self, tmp_path):
        log = AnchorLog(tmp_path / "log.ndjson", clock=FixedClock())
        assert log.head() == GENESIS

        log.append("evidence/a.json", {"a": 1})
        assert log.head() == _lines(log.path)[-1].split(" ", 1)[0]

    def test_without_lock(self, tmp_path):
        log = _build_log(tmp_path / "log.ndjson", 3, lock=False)
        assert log.verify().ok

    def test_same_evidence_twice(self, tmp_path):
        """Identical evidence still produces distinct, linked entries."""
        log = AnchorLog(tmp_path / "log.ndjson", clock=FixedClock())
        first = log.append("evidence/a.json", {"a": 1})
        second = log.append("evidence/a.json", {"a": 1})

        assert first["evidence_hash"] == second["evidence_hash"]
        assert second["prev_hash"] != GENESIS
        assert log.verify().entries_verified == 2

    def test_append_after_missing_trailing_newline(self, tmp_path):
        """A last line without its newline is terminated before appending."""
        log_path = tmp_path / "log.ndjson"
        log = _build_log(log_path, 2)
        log_path.write_text(log_path.read_text(encoding="utf-8").rstrip("\n"), encoding="utf-8")
        assert verify_log(log_path).ok

        log.append("evidence/run-2.json", _evidence(2))

        assert len(_lines(log_path)) == 3
        check = verify_log(log_path)
        assert check.ok
        assert check.entries_verified == 3

    def test_concurrent_appenders(self, tmp_path):
        """Writers sharing one log never link to the same predecessor."""
        log_path = tmp_path / "log.ndjson"
        threads_count, per_thread = 6, 30

        def worker(n: int) -> None:
            log = AnchorLog(log_path)
            for k in range(per_thread):
                log.append(f"evidence/w{n}-{k}.json", {"worker": n, "k": k})

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(threads_count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        total = threads_count * per_thread
        assert len(_lines(log_path)) == total
        check = verify_log(log_path)
        assert check.ok, check.to_dict()
        assert check.entries_verified == total


class TestVerify:
    """Test replaying the log."""

    def test_absent_log_is_vacuously_valid(self, tmp_path):
        check = verify_log(tmp_path / "absent.ndjson")
        assert check.ok
        assert check.entries_verified == 0
        assert check.to_dict() == {"ok": True, "entries": 0}

    def test_empty_log(self, tmp_path):
        log_path = tmp_path / "log.ndjson"
        log_path.write_text("", encoding="utf-8")
        check = verify_log(log_path)
        assert check.ok
        assert check.entries_verified == 0

    def test_altered_payload_localized(self, tmp_path):
        """Editing entry 2 in place fails exactly at entry 2."""
        log_path = tmp_path / "log.ndjson"
        _build_log(log_path, 5)
        _rewrite_line(log_path, 2, lambda p: p.__setitem__("evidence_path", "forged.json"))

        check = verify_log(log_path)
        assert not check.ok
        assert check.entries_verified == 2
        assert check.error.code == ErrorCode.ENTRY_HASH_MISMATCH
        assert "2" in check.error.message

    def test_rehashed_entry_breaks_link(self, tmp_path):
        """Recomputing an edited entry's hash breaks the next link."""
        log_path = tmp_path / "log.ndjson"
        _build_log(log_path, 5)
        _rewrite_line(
            log_path, 1, lambda p: p.__setitem__("evidence_hash", "0" * 64), rehash=True
        )

        check = verify_log(log_path)
        assert not check.ok
        assert check.entries_verified == 2
        assert check.error.code == ErrorCode.HASH_CHAIN_BROKEN

    def test_forged_prev_hash(self, tmp_path):
        log_path = tmp_path / "log.ndjson"
        _build_log(log_path, 5)
        _rewrite_line(
            log_path, 3, lambda p: p.__setitem__("prev_hash", "f" * 64), rehash=True
        )

        check = verify_log(log_path)
        assert not check.ok
        assert check.entries_verified == 3
        assert check.error.code == ErrorCode.HASH_CHAIN_BROKEN
        assert check.error.details["index"] == 3

    def test_deleted_entry(self, tmp_path):
        log_path = tmp_path / "log.ndjson"
        _build_log(log_path, 5)
        lines = _lines(log_path)
        del lines[2]
        log_path.write_text("\n".join(lines) + "\n", encoding="utf-8")

        check = verify_log(log_path)
        assert not check.ok
        assert check.entries_verified == 2
        assert check.error.code == ErrorCode.HASH_CHAIN_BROKEN

    def test_first_entry_must_link_to_genesis(self, tmp_path):
        log_path = tmp_path / "log.ndjson"
        _build_log(log_path, 3)
        lines = _lines(log_path)
        log_path.write_text("\n".join(lines[1:]) + "\n", encoding="utf-8")

        check = verify_log(log_path)
        assert not check.ok
        assert check.entries_verified == 0

    def test_failure_to_dict(self, tmp_path):
        log_path = tmp_path / "log.ndjson"
        _build_log(log_path, 3)
        _rewrite_line(log_path, 0, lambda p: p.__setitem__("ts", "1999-01-01T00:00:00.000Z"))

        out = verify_log(log_path).to_dict()
        assert out["ok"] is False
        assert out["entries"] == 0
        assert out["code"] == ErrorCode.ENTRY_HASH_MISMATCH.value
        assert out["error"] == "Entry hash mismatch at entry 0"

    def test_malformed_line(self, tmp_path):
        log_path = tmp_path / "log.ndjson"
        _build_log(log_path, 2)
        with open(log_path, "a", encoding="utf-8") as f:
            f.write("deadbeef {not json\n")

        with pytest.raises(LedgerParseError) as exc_info:
            verify_log(log_path)
        assert exc_info.value.index == 2
        assert exc_info.value.path == str(log_path)

    def test_line_without_payload(self, tmp_path):
        log_path = tmp_path / "log.ndjson"
        log_path.write_text("abc\n", encoding="utf-8")
        with pytest.raises(LedgerParseError):
            verify_log(log_path)

    def test_break_before_malformed_line_reported(self, tmp_path):
        """The scan stops at the first break and never reads further."""
        log_path = tmp_path / "log.ndjson"
        _build_log(log_path, 3)
        _rewrite_line(log_path, 1, lambda p: p.__setitem__("evidence_path", "x"))
        with open(log_path, "a", encoding="utf-8") as f:
            f.write("garbage\n")

        check = verify_log(log_path)
        assert not check.ok
        assert check.entries_verified == 1

    def test_engine_must_match(self, tmp_path):
        """A log written with sha3_256 only verifies with sha3_256."""
        log_path = tmp_path / "log.ndjson"
        engine = DigestEngine("sha3_256")
        _build_log(log_path, 3, engine=engine)

        assert verify_log(log_path, engine=engine).ok
        check = verify_log(log_path)
        assert not check.ok
        assert check.entries_verified == 0
        assert check.error.code == ErrorCode.ENTRY_HASH_MISMATCH

    def test_unicode_line_separator_in_path(self, tmp_path):
        """Characters Python treats as line breaks stay inside one entry."""
        log_path = tmp_path / "log.ndjson"
        log = AnchorLog(log_path, clock=FixedClock())
        log.append("evidence/odd\u2028name\x85.json", {"a": 1})
        log.append("evidence/b.json", {"b": 2})

        check = log.verify()
        assert check.ok
        assert check.entries_verified == 2

    def test_log_not_utf8(self, tmp_path):
        log_path = tmp_path / "log.ndjson"
        log_path.write_bytes(b"\xff\xfe garbage\n")

        with pytest.raises(LedgerParseError) as exc_info:
            verify_log(log_path)
        assert exc_info.value.path == str(log_path)

        with pytest.raises(LedgerParseError):
            AnchorLog(log_path).head()
