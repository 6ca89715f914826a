"""Sigsum proof text format (versions 1 and 2).

    version=2
    log=<hex log key hash>
    leaf=<hex submitter key hash> <hex leaf signature>

    size=<tree size>
    root_hash=<hex>
    signature=<hex log signature>
    cosignature=<hex witness key hash> <unix time> <hex signature>
    ...

    leaf_index=<index>
    node_hash=<hex>
    ...

Version 1 leaf lines carry an extra legacy short checksum before the key
hash; it is not used for verification.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from .encoding import is_plain_decimal
from .errors import SIGSUM_E_PROOF_SYNTAX, SigsumError, sigsum_error
from .types import (
    Cosignature,
    CosignedTreeHead,
    Hash,
    InclusionProof,
    KeyHash,
    ShortLeaf,
    Signature,
    SignedTreeHead,
    TreeHead,
)

SUPPORTED_VERSIONS = (1, 2)


def _syntax(message: str, **details) -> SigsumError:
    return sigsum_error(SIGSUM_E_PROOF_SYNTAX, message, **details)


def _parse_int(value: str, what: str) -> int:
    digits = value.strip()
    if not is_plain_decimal(digits):
        raise _syntax(f"invalid {what}", value=value)
    return int(digits, 10)


def parse_cosigned_tree_head(lines: List[str]) -> CosignedTreeHead:
    size: Optional[int] = None
    root_hash: Optional[Hash] = None
    signature: Optional[Signature] = None
    cosignatures: Dict[KeyHash, Cosignature] = {}

    for line in lines:
        trimmed = line.strip()

        if trimmed.startswith("cosignature="):
            parts = trimmed.split("=", 1)[1].split()
            if len(parts) != 3:
                raise _syntax("invalid cosignature format", line=trimmed)
            key_hex, time_str, sig_hex = parts
            timestamp = _parse_int(time_str, "cosignature timestamp")
            if timestamp <= 0:
                raise _syntax("invalid cosignature timestamp", value=time_str)
            cosignatures[KeyHash.from_hex(key_hex)] = Cosignature(
                timestamp=timestamp,
                signature=Signature.from_hex(sig_hex),
            )
            continue

        key, _, value = trimmed.partition("=")
        if not key or not value:
            continue

        if key == "size":
            size = _parse_int(value, "tree size")
            if size <= 0:
                raise _syntax("invalid tree size", value=value)
        elif key == "signature":
            signature = Signature.from_hex(value)
        elif key == "root_hash":
            root_hash = Hash.from_hex(value)

    if size is None or root_hash is None:
        raise _syntax("missing tree_head fields")
    if signature is None:
        raise _syntax("missing tree head signature")

    return CosignedTreeHead(
        signed_tree_head=SignedTreeHead(
            tree_head=TreeHead(size=size, root_hash=root_hash),
            signature=signature,
        ),
        cosignatures=cosignatures,
    )


def parse_inclusion_proof(lines: List[str]) -> InclusionProof:
    leaf_index: Optional[int] = None
    path: List[Hash] = []

    for line in lines:
        key, _, value = line.strip().partition("=")
        if not key or not value:
            raise _syntax(f"invalid line in inclusion proof: {line}")

        if key == "leaf_index":
            if leaf_index is not None:
                raise _syntax("duplicate leaf_index line in inclusion proof")
            leaf_index = _parse_int(value, "leaf_index value")
            if leaf_index < 0:
                raise _syntax("invalid leaf_index value", value=value)
        elif key == "node_hash":
            path.append(Hash.from_hex(value))

    if leaf_index is None:
        raise _syntax("missing leaf_index line in inclusion proof")

    return InclusionProof(leaf_index=leaf_index, path=tuple(path))


def _find(lines: List[str], prefix: str) -> int:
    for i, line in enumerate(lines):
        if line.startswith(prefix):
            return i
    return -1


@dataclass(frozen=True)
class SigsumProof:
    version: int
    log_key_hash: KeyHash
    leaf: ShortLeaf
    tree_head: CosignedTreeHead
    inclusion: InclusionProof

    @classmethod
    def from_ascii(cls, text: str) -> "SigsumProof":
        lines = [line.strip() for line in text.strip().splitlines()]

        i = _find(lines, "version=")
        if i < 0:
            raise _syntax("missing version line")
        version = _parse_int(lines[i].split("=", 1)[1], "proof version")
        if version not in SUPPORTED_VERSIONS:
            raise _syntax(f"unknown proof version {version}", version=version)

        i = _find(lines, "log=")
        if i < 0:
            raise _syntax("missing log line")
        log_key_hash = KeyHash.from_hex(lines[i].split("=", 1)[1].strip())

        i = _find(lines, "leaf=")
        if i < 0:
            raise _syntax("missing leaf line")
        leaf_parts = lines[i].split("=", 1)[1].split()
        # Version 1 carries a legacy short checksum in front of the key hash.
        expected_fields = 3 if version == 1 else 2
        if len(leaf_parts) != expected_fields:
            raise _syntax("invalid leaf line format", fields=len(leaf_parts), version=version)
        key_hex, sig_hex = leaf_parts[-2], leaf_parts[-1]
        leaf = ShortLeaf(key_hash=KeyHash.from_hex(key_hex), signature=Signature.from_hex(sig_hex))

        start = _find(lines, "size=")
        if start < 0:
            raise _syntax("missing tree head start")
        tree_head_lines: List[str] = []
        for line in lines[start:]:
            if line == "":
                break
            tree_head_lines.append(line)
        tree_head = parse_cosigned_tree_head(tree_head_lines)

        start = _find(lines, "leaf_index=")
        if start < 0:
            raise _syntax("missing leaf_index line in inclusion proof")
        inclusion_lines = [
            line for line in lines[start:]
            if line.startswith("leaf_index=") or line.startswith("node_hash=")
        ]
        inclusion = parse_inclusion_proof(inclusion_lines)

        return cls(
            version=version,
            log_key_hash=log_key_hash,
            leaf=leaf,
            tree_head=tree_head,
            inclusion=inclusion,
        )
