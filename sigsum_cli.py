#!/usr/bin/env python3
"""
Sigsum verifier - Command Line Interface

Usage:
    sigsum-verify compile <policy.txt> [--out FILE]    Compile a policy (hex to stdout without --out)
    sigsum-verify verify --policy FILE --proof FILE --key HEX --message-file FILE
    sigsum-verify verify --compiled-policy FILE --proof FILE --key HEX --hash HEX
    sigsum-verify enroll --policy FILE --keys HEX,HEX --threshold K --expiry SECONDS --out FILE
    sigsum-verify hash <enrollment.json>               Canonical SHA-256 of an enrollment file

Errors are reported as a JSON object ({"code", "kind", "message", ...}) and
exit with status 1.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from sigsum_verifier.compiler import compile_policy_text
from sigsum_verifier.encoding import hex_to_bytes
from sigsum_verifier.enrollment import build_enrollment, canonicalize, enrollment_hash
from sigsum_verifier.errors import SigsumError
from sigsum_verifier.settings import VerifierSettings
from sigsum_verifier.types import RawPublicKey
from sigsum_verifier.verify import (
    verify_hash,
    verify_hash_with_compiled_policy,
    verify_message,
    verify_message_with_compiled_policy,
)

logger = logging.getLogger("sigsum_verifier")


def setup_logging(verbose: bool = False):
    """Configure logging for CLI usage."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    logger.setLevel(level)


def load_config(config_path: Optional[Path]) -> dict:
    """Load verifier configuration from a JSON file.

    A missing path yields an empty config; unreadable or invalid JSON raises
    ValueError naming the file.
    """
    if config_path is None:
        return {}
    try:
        with open(config_path, encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"CONFIG_ERROR: Invalid JSON in config file '{config_path}': {e}") from e
    except OSError as e:
        raise ValueError(f"CONFIG_ERROR: Failed to read config file '{config_path}': {e}") from e


def _emit(payload: Dict[str, Any]) -> None:
    print(json.dumps(payload, separators=(",", ":"), sort_keys=True))


def cmd_compile(args: argparse.Namespace) -> int:
    text = Path(args.policy).read_text(encoding="utf-8")
    compiled = compile_policy_text(text)
    if args.out:
        Path(args.out).write_bytes(compiled)
        logger.info("wrote %d bytes to %s", len(compiled), args.out)
    else:
        print(compiled.hex())
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    settings = args.settings
    proof = Path(args.proof).read_text(encoding="utf-8")
    key = RawPublicKey(hex_to_bytes(args.key.strip()))

    if args.compiled_policy:
        compiled = Path(args.compiled_policy).read_bytes()
        if args.message_file:
            message = Path(args.message_file).read_bytes()
            coro = verify_message_with_compiled_policy(message, key, compiled, proof, settings=settings)
        else:
            coro = verify_hash_with_compiled_policy(hex_to_bytes(args.hash), key, compiled, proof, settings=settings)
    else:
        policy = Path(args.policy).read_text(encoding="utf-8")
        if args.message_file:
            message = Path(args.message_file).read_bytes()
            coro = verify_message(message, key, policy, proof, settings=settings)
        else:
            coro = verify_hash(hex_to_bytes(args.hash), key, policy, proof, settings=settings)

    ok = asyncio.run(coro)
    _emit({"ok": bool(ok), "command": "verify"})
    return 0 if ok else 1


def cmd_enroll(args: argparse.Namespace) -> int:
    text = Path(args.policy).read_text(encoding="utf-8")
    compiled = compile_policy_text(text)
    enrollment = build_enrollment(
        compiled,
        args.keys.split(","),
        threshold=args.threshold,
        max_age=args.expiry,
    )
    Path(args.out).write_text(canonicalize(enrollment) + "\n", encoding="utf-8")
    print(enrollment_hash(enrollment))
    return 0


def cmd_hash(args: argparse.Namespace) -> int:
    text = Path(args.file).read_text(encoding="utf-8")
    print(enrollment_hash(json.loads(text)))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sigsum-verify",
        description="Sigsum proof verifier and policy compiler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("--config", type=Path, help="Path to verifier config JSON file")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    compile_parser = subparsers.add_parser("compile", help="Compile a policy file")
    compile_parser.add_argument("policy", help="Path to Sigsum policy text file")
    compile_parser.add_argument("--out", help="Write the binary compiled policy here")
    compile_parser.set_defaults(func=cmd_compile)

    verify_parser = subparsers.add_parser("verify", help="Verify a Sigsum proof")
    source = verify_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--policy", help="Path to Sigsum policy text file")
    source.add_argument("--compiled-policy", help="Path to binary compiled policy")
    verify_parser.add_argument("--proof", required=True, help="Path to Sigsum proof file")
    verify_parser.add_argument("--key", required=True, help="Submitter Ed25519 public key (hex)")
    message = verify_parser.add_mutually_exclusive_group(required=True)
    message.add_argument("--message-file", help="Path to the signed message")
    message.add_argument("--hash", help="SHA-256 of the signed message (hex)")
    verify_parser.set_defaults(func=cmd_verify)

    enroll_parser = subparsers.add_parser("enroll", help="Generate an enrollment file")
    enroll_parser.add_argument("--policy", required=True, help="Path to Sigsum policy text file")
    enroll_parser.add_argument("--keys", required=True, help="Comma-separated Ed25519 public keys (hex)")
    enroll_parser.add_argument("--threshold", type=int, required=True, help="Threshold (<= number of keys)")
    enroll_parser.add_argument("--expiry", type=int, required=True, help="Max age in seconds (>=1 week, <=2 years)")
    enroll_parser.add_argument("--out", required=True, help="Output JSON file")
    enroll_parser.set_defaults(func=cmd_enroll)

    hash_parser = subparsers.add_parser("hash", help="Canonicalize and hash an enrollment file")
    hash_parser.add_argument("file", help="Path to enrollment JSON")
    hash_parser.set_defaults(func=cmd_hash)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    setup_logging(args.verbose)

    try:
        args.settings = VerifierSettings.from_dict(
            load_config(args.config),
            base=VerifierSettings.from_env(),
        )
        return args.func(args)
    except SigsumError as e:
        _emit(e.as_dict())
        return 1


if __name__ == "__main__":
    sys.exit(main())
