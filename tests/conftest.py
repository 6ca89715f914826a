"""Shared fixtures: published Sigsum test vectors and a synthetic log.

The synthetic log signs real tree heads and cosignatures with freshly
generated Ed25519 keys and builds inclusion paths with an independent
RFC 6962 reference implementation, so verification tests are not limited
to the handful of published proofs.
"""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

FIXTURES = Path(__file__).resolve().parent / "fixtures" / "sigsum"

# Submitter key of the published proofs.
VECTOR_SUBMITTER_KEY = bytes.fromhex("236bb3cff541f16b1c357624d20f258cc48b7c57080ff7de60c971df70c04ad8")


def raw_public_key(private_key: Ed25519PrivateKey) -> bytes:
    return private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)


def _sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def reference_root(leaves: Sequence[bytes]) -> bytes:
    """RFC 6962 MTH over already-hashed leaves."""
    n = len(leaves)
    if n == 1:
        return leaves[0]
    k = 1
    while k * 2 < n:
        k *= 2
    return _sha256(b"\x01" + reference_root(leaves[:k]) + reference_root(leaves[k:]))


def reference_path(m: int, leaves: Sequence[bytes]) -> List[bytes]:
    """RFC 6962 PATH(m, D[n]), ordered from the leaf upwards."""
    n = len(leaves)
    if n == 1:
        return []
    k = 1
    while k * 2 < n:
        k *= 2
    if m < k:
        return reference_path(m, leaves[:k]) + [reference_root(leaves[k:])]
    return reference_path(m - k, leaves[k:]) + [reference_root(leaves[:k])]


class SyntheticLog:
    """A log, a set of witnesses and a submitter, all with real keys."""

    def __init__(self, n_witnesses: int = 3):
        self.log_key = Ed25519PrivateKey.generate()
        self.submitter_key = Ed25519PrivateKey.generate()
        self.witness_keys = [Ed25519PrivateKey.generate() for _ in range(n_witnesses)]

    @property
    def log_raw(self) -> bytes:
        return raw_public_key(self.log_key)

    @property
    def submitter_raw(self) -> bytes:
        return raw_public_key(self.submitter_key)

    def witness_raw(self, i: int) -> bytes:
        return raw_public_key(self.witness_keys[i])

    def policy_text(self, threshold: int) -> str:
        lines = [f"log {self.log_raw.hex()} https://log.example.org"]
        names = []
        for i in range(len(self.witness_keys)):
            names.append(f"w{i}")
            lines.append(f"witness w{i} {self.witness_raw(i).hex()}")
        lines.append(f"group main {threshold} {' '.join(names)}")
        lines.append("quorum main")
        return "\n".join(lines) + "\n"

    def proof_text(
        self,
        message: bytes,
        *,
        tree_size: int = 7,
        leaf_index: int = 4,
        cosigners: Optional[Sequence[int]] = None,
        bad_cosigners: Sequence[int] = (),
        timestamp: int = 1_700_000_000,
    ) -> str:
        from sigsum_verifier.crypto import format_checkpoint, format_cosigned_data
        from sigsum_verifier.types import Hash, KeyHash, TreeHead

        checksum = _sha256(_sha256(message))
        leaf_sig = self.submitter_key.sign(b"sigsum.org/v1/tree-leaf\x00" + checksum)
        submitter_hash = _sha256(self.submitter_raw)
        our_leaf = _sha256(b"\x00" + checksum + leaf_sig + submitter_hash)

        leaves = [_sha256(b"\x00" + os.urandom(32)) for _ in range(tree_size)]
        leaves[leaf_index] = our_leaf
        root = reference_root(leaves)
        path = reference_path(leaf_index, leaves)

        log_hash = _sha256(self.log_raw)
        tree_head = TreeHead(size=tree_size, root_hash=Hash(root))
        checkpoint = format_checkpoint(tree_head, KeyHash(log_hash)).encode("utf-8")
        sth_sig = self.log_key.sign(checkpoint)

        if cosigners is None:
            cosigners = range(len(self.witness_keys))
        cosigned = format_cosigned_data(tree_head, KeyHash(log_hash), timestamp).encode("utf-8")
        cosig_lines: Dict[str, str] = {}
        for i in cosigners:
            sig = self.witness_keys[i].sign(cosigned)
            if i in bad_cosigners:
                sig = bytes([sig[0] ^ 0x01]) + sig[1:]
            kh = _sha256(self.witness_raw(i)).hex()
            cosig_lines[kh] = f"cosignature={kh} {timestamp} {sig.hex()}"

        out = [
            "version=2",
            f"log={log_hash.hex()}",
            f"leaf={submitter_hash.hex()} {leaf_sig.hex()}",
            "",
            f"size={tree_size}",
            f"root_hash={root.hex()}",
            f"signature={sth_sig.hex()}",
            *cosig_lines.values(),
            "",
            f"leaf_index={leaf_index}",
            *(f"node_hash={h.hex()}" for h in path),
        ]
        return "\n".join(out) + "\n"


@pytest.fixture
def synthetic_log() -> SyntheticLog:
    return SyntheticLog()


@pytest.fixture(scope="session")
def vector_policy() -> str:
    return (FIXTURES / "policy.txt").read_text(encoding="utf-8")


@pytest.fixture(scope="session")
def vector_proof() -> str:
    return (FIXTURES / "proof_odd.txt").read_text(encoding="utf-8")


@pytest.fixture(scope="session")
def vector_even_proof() -> str:
    return (FIXTURES / "proof_even.txt").read_text(encoding="utf-8")


@pytest.fixture(scope="session")
def vector_submitter_key() -> bytes:
    return VECTOR_SUBMITTER_KEY
