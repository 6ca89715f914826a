"""Merkle inclusion proof verification (RFC 6962 tree shape).

Leaf hashes are SHA-256(0x00 || leaf bytes) and interior nodes are
SHA-256(0x01 || left || right). The audit path is ordered from the leaf
level upwards. For tree sizes that are not a power of two, a node with no
right sibling at some level is carried up unchanged and consumes no path
entry.
"""

from __future__ import annotations

from typing import Sequence

from .crypto import PREFIX_INTERIOR_NODE, constant_time_equal, sha256
from .errors import (
    SIGSUM_E_INDEX_OUT_OF_RANGE,
    SIGSUM_E_INVALID_PROOF,
    SIGSUM_E_TREE_SIZE_ONE,
    SIGSUM_E_UNUSED_PATH,
    sigsum_error,
)
from .types import Hash, Leaf, TreeHead


def leaf_hash(leaf: Leaf) -> Hash:
    # Leaf.to_bytes() already carries the 0x00 leaf prefix.
    return Hash(sha256(leaf.to_bytes()))


def interior_hash(left: Hash, right: Hash) -> Hash:
    return Hash(sha256(PREFIX_INTERIOR_NODE + left.data + right.data))


def verify_inclusion_proof(
    leaf: Hash,
    leaf_index: int,
    tree_head: TreeHead,
    path: Sequence[Hash],
) -> bool:
    """Recompute the root from ``leaf`` and ``path`` and compare with the tree head.

    Returns True on success; every failure raises a VerificationError.
    """
    size = tree_head.size
    if leaf_index > size:
        raise sigsum_error(
            SIGSUM_E_INDEX_OUT_OF_RANGE,
            f"index out of range: {leaf_index} > {size}",
            leaf_index=leaf_index,
            size=size,
        )

    if not path:
        if size != 1:
            raise sigsum_error(
                SIGSUM_E_INVALID_PROOF,
                f"invalid proof: empty inclusion path for tree size {size}",
                size=size,
            )
        if not constant_time_equal(leaf.data, tree_head.root_hash.data):
            raise sigsum_error(SIGSUM_E_TREE_SIZE_ONE, "tree size is 1 but leaf does not match")
        return True

    current = leaf
    index = leaf_index
    last = size - 1
    consumed = 0

    while last > 0:
        if index % 2 == 1 or index < last:
            if consumed >= len(path):
                raise sigsum_error(
                    SIGSUM_E_INVALID_PROOF,
                    "invalid proof: inclusion path too short",
                    path_length=len(path),
                )
            sibling = path[consumed]
            consumed += 1
            if index % 2 == 1:
                current = interior_hash(sibling, current)
            else:
                current = interior_hash(current, sibling)
        # else: rightmost node without a sibling, carried up unchanged
        index >>= 1
        last >>= 1

    if consumed != len(path):
        raise sigsum_error(
            SIGSUM_E_UNUSED_PATH,
            "internal error: unused path elements",
            consumed=consumed,
            path_length=len(path),
        )

    if not constant_time_equal(current.data, tree_head.root_hash.data):
        raise sigsum_error(SIGSUM_E_INVALID_PROOF, "invalid proof: root hash mismatch")
    return True
