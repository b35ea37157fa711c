"""
External time witnesses.

A witness is an HTTP HEAD response from a well-known public host; its
Date header is independent corroboration of when a manifest was built.
Witnesses are observational only. A probe that fails or times out is
recorded with ok=False and never aborts the batch.

Probes run one at a time so witness order is stable.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import requests

from .clock import isoformat_utc, utc_now
from .digest import DEFAULT_ENGINE, DigestEngine

logger = logging.getLogger(__name__)


DEFAULT_WITNESS_URLS = [
    "https://timestamp.digicert.com",
    "https://timestamp.sectigo.com",
    "https://www.cloudflare.com",
    "https://www.google.com",
]
DEFAULT_TIMEOUT = 8.0
USER_AGENT = "sealchain/0.1 (time-witness)"


@dataclass
class TimeWitness:
    """One probe result."""
    url: str
    ok: bool
    received_utc: str
    status: int | None = None
    date: str | None = None
    server: str | None = None
    via: str | None = None
    note: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """JSON form; absent optional fields are omitted."""
        out: dict[str, Any] = {"url": self.url, "ok": self.ok}
        for key in ("status", "date", "server", "via"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        out["received_utc"] = self.received_utc
        if self.note is not None:
            out["note"] = self.note
        return out

    def stable_dict(self) -> dict[str, Any]:
        """Every field present, absent ones as null; the hashed form."""
        return {
            "url": self.url,
            "ok": self.ok,
            "status": self.status,
            "date": self.date,
            "server": self.server,
            "via": self.via,
            "received_utc": self.received_utc,
            "note": self.note,
        }


@dataclass
class WitnessBundle:
    """All probe results plus a digest binding them together."""
    ok: bool
    witnesses: list[TimeWitness] = field(default_factory=list)
    witness_bundle_hash: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "witness_bundle_hash": self.witness_bundle_hash,
            "witnesses": [w.to_dict() for w in self.witnesses],
        }


def probe(
    url: str,
    timeout: float = DEFAULT_TIMEOUT,
    session: requests.Session | None = None,
) -> TimeWitness:
    """
    Send one HEAD request and record what the server said.

    Network errors and timeouts are returned as ok=False with a note.
    """
    received_utc = isoformat_utc(utc_now())
    http = session or requests
    try:
        response = http.head(
            url,
            timeout=timeout,
            allow_redirects=False,
            headers={"user-agent": USER_AGENT},
        )
    except requests.exceptions.RequestException as e:
        logger.warning("time witness %s failed: %s", url, e)
        return TimeWitness(url=url, ok=False, received_utc=received_utc, note=str(e))

    return TimeWitness(
        url=url,
        ok=True,
        received_utc=received_utc,
        status=response.status_code,
        date=response.headers.get("date"),
        server=response.headers.get("server"),
        via=response.headers.get("via"),
    )


def collect_time_witnesses(
    urls: list[str] | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    session: requests.Session | None = None,
    engine: DigestEngine | None = None,
) -> WitnessBundle:
    """
    Probe each URL in order and bundle the results.

    Args:
        urls: Hosts to probe (default: DEFAULT_WITNESS_URLS)
        timeout: Per-probe timeout in seconds
        session: Optional requests session to send probes through
        engine: Digest engine for the bundle hash (default: sha256)

    Returns:
        WitnessBundle; ok is True if at least one probe answered
    """
    engine = engine or DEFAULT_ENGINE
    targets = DEFAULT_WITNESS_URLS if urls is None else urls

    witnesses = [probe(url, timeout=timeout, session=session) for url in targets]
    bundle_hash = engine.digest_value([w.stable_dict() for w in witnesses])

    answered = sum(1 for w in witnesses if w.ok)
    logger.info("time witnesses: %d of %d answered", answered, len(witnesses))

    return WitnessBundle(
        ok=answered > 0,
        witnesses=witnesses,
        witness_bundle_hash=bundle_hash,
    )
