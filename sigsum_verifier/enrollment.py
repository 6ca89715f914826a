"""Enrollment artifacts.

An enrollment pins a compiled policy together with the set of keys allowed
to sign for it:

    {"max_age": <seconds>, "policy": <b64url compiled policy>,
     "signers": [<b64url raw key>, ...], "threshold": <k>}

Binary fields use URL-safe base64 without padding. The enrollment hash is
the hex SHA-256 of the canonical JSON encoding (sorted keys, no
whitespace, UTF-8).
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Union

from .compiled import CompiledPolicy
from .crypto import sha256
from .encoding import bytes_to_base64url, hex_to_bytes
from .errors import SIGSUM_E_ENROLLMENT, sigsum_error
from .types import RawPublicKey

MIN_MAX_AGE = 604800  # 1 week
MAX_MAX_AGE = 63072000  # 2 years


def canonicalize(obj: Any) -> str:
    """Canonical JSON: sorted keys, compact separators, strict values."""
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def enrollment_hash(obj: Any) -> str:
    return sha256(canonicalize(obj).encode("utf-8")).hex()


def _parse_signer_keys(keys: Iterable[str]) -> List[RawPublicKey]:
    out: List[RawPublicKey] = []
    for key in keys:
        key = key.strip()
        if not key:
            continue
        if len(key) != 64:
            raise sigsum_error(
                SIGSUM_E_ENROLLMENT,
                f"Each Ed25519 public key must be 32 bytes (64 hex chars): got {len(key)} for {key}",
            )
        raw = RawPublicKey(hex_to_bytes(key))
        if raw in out:
            raise sigsum_error(SIGSUM_E_ENROLLMENT, "Duplicate Ed25519 public key detected", key=key)
        out.append(raw)
    return out


def build_enrollment(
    compiled_policy: Union[CompiledPolicy, bytes],
    signer_keys: Iterable[str],
    threshold: int,
    max_age: int,
) -> Dict[str, Any]:
    """Build an enrollment object for ``compiled_policy``.

    ``signer_keys`` are hex-encoded raw Ed25519 keys. Signer order is kept
    as given; only the JSON object keys are sorted when canonicalized.
    """
    if max_age < MIN_MAX_AGE or max_age > MAX_MAX_AGE:
        raise sigsum_error(
            SIGSUM_E_ENROLLMENT,
            f"Expiry must be between {MIN_MAX_AGE} (1w) and {MAX_MAX_AGE} (2y) seconds",
            max_age=max_age,
        )

    signers = _parse_signer_keys(signer_keys)
    if not signers:
        raise sigsum_error(SIGSUM_E_ENROLLMENT, "At least one key must be provided")
    if threshold < 1:
        raise sigsum_error(SIGSUM_E_ENROLLMENT, "Threshold must be at least 1", threshold=threshold)
    if threshold > len(signers):
        raise sigsum_error(
            SIGSUM_E_ENROLLMENT,
            "Threshold cannot exceed number of keys",
            threshold=threshold,
            keys=len(signers),
        )

    if isinstance(compiled_policy, CompiledPolicy):
        policy_bytes = compiled_policy.to_bytes()
    else:
        # Round-trip through the reader so malformed artifacts are refused.
        policy_bytes = CompiledPolicy.from_bytes(bytes(compiled_policy)).to_bytes()

    return {
        "signers": [bytes_to_base64url(raw.data) for raw in signers],
        "threshold": threshold,
        "policy": bytes_to_base64url(policy_bytes),
        "max_age": max_age,
    }
