"""
Summary utilities for human-readable inspection.

Extracts key metadata from sealed evidence and verification results
without modifying them.
"""

from typing import Any

from .anchor import LogCheck
from .seal import SEAL_FIELD


def _short(digest: Any) -> str:
    text = digest if isinstance(digest, str) else ""
    return text[:16] + "..." if len(text) > 16 else text


def evidence_summary(evidence: dict[str, Any]) -> dict[str, Any]:
    """
    Extract a summary from a sealed evidence document.

    Returns:
        Dict with field names, status, algorithm, chain_index and digests
    """
    seal = evidence.get(SEAL_FIELD)
    seal = seal if isinstance(seal, dict) else {}

    return {
        "fields": sorted(k for k in evidence if k != SEAL_FIELD),
        "status": evidence.get("status", ""),
        "sealed": bool(seal),
        "algorithm": seal.get("algorithm", ""),
        "chain_index": seal.get("chain_index"),
        "input_digest": seal.get("input_digest", ""),
        "evidence_digest": seal.get("evidence_digest", ""),
        "previous_digest": seal.get("previous_digest"),
    }


def format_evidence_summary(evidence: dict[str, Any]) -> str:
    """
    Format sealed evidence as a single-line human-readable string.

    Returns:
        String like "#2 sha256 | status=match | 4 fields | 3f1c... <- 9ab0..."
    """
    s = evidence_summary(evidence)
    if not s["sealed"]:
        return f"unsealed | status={s['status'] or '-'} | {len(s['fields'])} fields"

    link = _short(s["previous_digest"]) if s["previous_digest"] else "root"
    return (
        f"#{s['chain_index']} {s['algorithm']} | status={s['status'] or '-'} | "
        f"{len(s['fields'])} fields | {_short(s['evidence_digest'])} <- {link}"
    )


def format_log_result(check: LogCheck) -> str:
    """One-line description of an anchor log verification."""
    if check.ok:
        return f"OK: {check.entries_verified} entries verified"
    message = check.error.message if check.error else "verification failed"
    return f"FAIL: {message} ({check.entries_verified} entries verified before the break)"
