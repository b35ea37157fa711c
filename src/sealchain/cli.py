"""
sealchain command line.

Commands:
    sealchain check ORG --observation FILE --expect PIN ... --out FILE
    sealchain seal EVIDENCE --out FILE (--input-digest HEX | --intent FILE)
    sealchain verify-seal FILE [FILE ...]
    sealchain inspect FILE
    sealchain anchor append --log LOG EVIDENCE
    sealchain anchor verify --log LOG
    sealchain manifest build --input F --emitted F --log LOG --out F
    sealchain manifest verify MANIFEST

Exit codes:
    0  clean / match
    1  drift or verification mismatch
    2  operational error (I/O, parse, bad arguments)
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from . import __version__
from .anchor import AnchorLog
from .digest import DEFAULT_ALGORITHM, DigestEngine
from .errors import LedgerParseError, SealchainError
from .manifest import GitMetadata, build_manifest, verify_manifest
from .observation import STATUS_DRIFT, Observation, build_evidence_body
from .seal import attach_seal, compute_input_digest, compute_intent_digest, seal_next
from .summary import format_evidence_summary, format_log_result
from .verify import load_json_file, verify_seal_files
from .witness import DEFAULT_TIMEOUT, collect_time_witnesses

logger = logging.getLogger(__name__)


EXIT_OK = 0
EXIT_MISMATCH = 1
EXIT_ERROR = 2

CHECK_MODE = "org-profile"


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2))


def _write_json(path: str | Path, data: Any) -> None:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


def _seal_output(args, engine: DigestEngine, body: dict, input_digest: str) -> dict:
    if args.previous:
        previous = load_json_file(args.previous)
        return seal_next(previous, body, input_digest, engine=engine)
    return attach_seal(
        body,
        input_digest,
        previous_digest=args.previous_digest,
        chain_index=args.chain_index,
        engine=engine,
    )


# =============================================================================
# COMMANDS
# =============================================================================

def cmd_check(args, engine: DigestEngine) -> int:
    """Build evidence from an observation, seal it and report drift."""
    observation = Observation.from_dict(load_json_file(args.observation))
    body = build_evidence_body(
        args.org,
        observation,
        args.expect,
        profile_readme_required=args.readme_required,
    )
    input_digest = compute_input_digest(
        engine_name="sealchain",
        version=__version__,
        org=args.org,
        mode=CHECK_MODE,
        expected_pins=args.expect,
        profile_readme_required=args.readme_required,
        profile_readme_repo=args.readme_repo,
        profile_readme_path=args.readme_path,
        engine=engine,
    )
    sealed = _seal_output(args, engine, body, input_digest)
    _write_json(args.out, sealed)

    print(format_evidence_summary(sealed))
    return EXIT_MISMATCH if sealed["status"] == STATUS_DRIFT else EXIT_OK


def cmd_seal(args, engine: DigestEngine) -> int:
    """Seal an existing evidence document."""
    body = load_json_file(args.evidence)
    if not isinstance(body, dict):
        raise ValueError(f"{args.evidence} must contain a JSON object")

    if args.intent:
        input_digest = compute_intent_digest(load_json_file(args.intent), engine)
    else:
        input_digest = args.input_digest

    sealed = _seal_output(args, engine, body, input_digest)
    _write_json(args.out, sealed)
    print(format_evidence_summary(sealed))
    return EXIT_OK


def cmd_verify_seal(args, engine: DigestEngine) -> int:
    """Verify one or more sealed evidence files."""
    batch = verify_seal_files(args.files, engine)
    _print_json(batch.to_dict())
    if batch.unreadable:
        return EXIT_ERROR
    return EXIT_OK if batch.ok else EXIT_MISMATCH


def cmd_inspect(args, engine: DigestEngine) -> int:
    evidence = load_json_file(args.file)
    if not isinstance(evidence, dict):
        raise ValueError(f"{args.file} must contain a JSON object")
    print(format_evidence_summary(evidence))
    return EXIT_OK


def cmd_anchor_append(args, engine: DigestEngine) -> int:
    """Record an evidence file in the anchor log."""
    evidence = load_json_file(args.evidence)
    log = AnchorLog(args.log, engine=engine, lock=not args.no_lock)
    payload = log.append(args.evidence, evidence)
    _print_json(payload)
    return EXIT_OK


def cmd_anchor_verify(args, engine: DigestEngine) -> int:
    check = AnchorLog(args.log, engine=engine).verify()
    print(format_log_result(check))
    return EXIT_OK if check.ok else EXIT_MISMATCH


def cmd_manifest_build(args, engine: DigestEngine) -> int:
    def witness_collector():
        return collect_time_witnesses(
            urls=args.witness_url or None,
            timeout=args.timeout,
            engine=engine,
        )

    path = build_manifest(
        args.input,
        args.emitted,
        args.log,
        args.out,
        git=GitMetadata(repo=args.repo, head=args.head, branch=args.branch),
        include_witness=args.witness,
        witness_collector=witness_collector,
        engine=engine,
    )
    print(path)
    return EXIT_OK


def cmd_manifest_verify(args, engine: DigestEngine) -> int:
    result = verify_manifest(args.manifest, engine=engine, base_dir=args.base_dir)
    _print_json(result.to_dict())
    return EXIT_OK if result.valid else EXIT_MISMATCH


# =============================================================================
# ARGUMENT PARSING
# =============================================================================

def _add_chain_options(parser: argparse.ArgumentParser) -> None:
    chain = parser.add_mutually_exclusive_group()
    chain.add_argument("--previous", help="Sealed evidence this one follows")
    chain.add_argument("--previous-digest", help="evidence_digest this one follows")
    parser.add_argument("--chain-index", type=int, default=1, help="Position in the chain (default: 1)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sealchain",
        description="Seal evidence, anchor it in a hash-chained log, and verify both.",
    )
    parser.add_argument("--version", action="version", version=f"sealchain {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    parser.add_argument(
        "--algorithm",
        default=DEFAULT_ALGORITHM,
        help=f"256-bit digest algorithm (default: {DEFAULT_ALGORITHM})",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check", help="Seal an org profile observation and report drift")
    check.add_argument("org")
    check.add_argument("--observation", required=True, help="Observation JSON file")
    check.add_argument("--expect", action="append", default=[], metavar="PIN", help="Expected pinned repo")
    check.add_argument("--readme-required", action="store_true")
    check.add_argument("--readme-repo")
    check.add_argument("--readme-path")
    check.add_argument("--out", required=True)
    _add_chain_options(check)
    check.set_defaults(handler=cmd_check)

    seal = sub.add_parser("seal", help="Seal an evidence document")
    seal.add_argument("evidence")
    seal.add_argument("--out", required=True)
    source = seal.add_mutually_exclusive_group(required=True)
    source.add_argument("--input-digest", help="Precomputed input digest")
    source.add_argument("--intent", help="JSON file describing the intent; its digest is the input digest")
    _add_chain_options(seal)
    seal.set_defaults(handler=cmd_seal)

    verify = sub.add_parser("verify-seal", help="Verify sealed evidence files")
    verify.add_argument("files", nargs="+")
    verify.set_defaults(handler=cmd_verify_seal)

    inspect = sub.add_parser("inspect", help="Summarise a sealed evidence file")
    inspect.add_argument("file")
    inspect.set_defaults(handler=cmd_inspect)

    anchor = sub.add_parser("anchor", help="Anchor log operations")
    anchor_sub = anchor.add_subparsers(dest="anchor_command", required=True)

    append = anchor_sub.add_parser("append", help="Append an evidence file to the log")
    append.add_argument("evidence")
    append.add_argument("--log", required=True)
    append.add_argument("--no-lock", action="store_true", help="Do not flock the log while appending")
    append.set_defaults(handler=cmd_anchor_append)

    anchor_verify = anchor_sub.add_parser("verify", help="Replay and verify the log")
    anchor_verify.add_argument("--log", required=True)
    anchor_verify.set_defaults(handler=cmd_anchor_verify)

    manifest = sub.add_parser("manifest", help="Anchor manifest operations")
    manifest_sub = manifest.add_subparsers(dest="manifest_command", required=True)

    build = manifest_sub.add_parser("build", help="Write a manifest of the evidence files")
    build.add_argument("--input", required=True)
    build.add_argument("--emitted", required=True)
    build.add_argument("--log", required=True)
    build.add_argument("--out", required=True)
    build.add_argument("--repo")
    build.add_argument("--head")
    build.add_argument("--branch")
    build.add_argument("--witness", action="store_true", help="Embed external time witnesses")
    build.add_argument("--witness-url", action="append", default=[], metavar="URL")
    build.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT, help="Per-witness timeout in seconds")
    build.set_defaults(handler=cmd_manifest_build)

    manifest_verify = manifest_sub.add_parser("verify", help="Re-check a manifest against the files")
    manifest_verify.add_argument("manifest")
    manifest_verify.add_argument("--base-dir")
    manifest_verify.set_defaults(handler=cmd_manifest_verify)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        engine = DigestEngine(args.algorithm)
        return args.handler(args, engine)
    except LedgerParseError as e:
        logger.error("malformed anchor log %s at entry %s: %s", e.path, e.index, e)
        return EXIT_ERROR
    except (OSError, SealchainError, ValueError) as e:
        logger.error("%s", e)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
