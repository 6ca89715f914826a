"""
Cryptographic capabilities and signed-data formats.

Ed25519 verification (``cryptography``) and SHA-256 (``hashlib``) are the only
primitives the verifier needs. The primitives a proof verification awaits
are exposed as coroutines so the orchestrator can run independent checks
concurrently:

- ``import_public_key(raw) -> Ed25519PublicKey``
- ``verify_signature(key, signature, message) -> bool``
- ``digest(data) -> Hash``

Signed payloads (Sigsum v1):

    leaf:        "sigsum.org/v1/tree-leaf" || 0x00 || checksum
    checkpoint:  "sigsum.org/v1/tree/<hex log key hash>\\n<size>\\n<base64 root>\\n"
    cosignature: "cosignature/v1\\ntime <timestamp>\\n" || checkpoint

The checkpoint is signed by the log; witnesses sign the cosignature form.
"""

from __future__ import annotations

import hashlib
import hmac

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from .errors import SIGSUM_E_KEY_IMPORT, sigsum_error
from .types import Cosignature, Hash, KeyHash, RawPublicKey, Signature, SignedTreeHead, TreeHead

CHECKPOINT_NAME_PREFIX = "sigsum.org/v1/tree/"
COSIGNATURE_NAMESPACE = "cosignature/v1"
LEAF_NAMESPACE = b"sigsum.org/v1/tree-leaf"

PREFIX_LEAF_NODE = b"\x00"
PREFIX_INTERIOR_NODE = b"\x01"


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(bytes(data)).digest()


def key_hash(raw: RawPublicKey) -> KeyHash:
    """Key hash of a raw public key (SHA-256 of the 32 raw bytes)."""
    return KeyHash(sha256(raw.data))


def constant_time_equal(a: bytes, b: bytes) -> bool:
    return hmac.compare_digest(bytes(a), bytes(b))


def attach_namespace(namespace: bytes, data: bytes) -> bytes:
    return bytes(namespace) + b"\x00" + bytes(data)


async def import_public_key(raw: RawPublicKey) -> Ed25519PublicKey:
    try:
        return Ed25519PublicKey.from_public_bytes(raw.data)
    except (ValueError, UnsupportedAlgorithm) as e:
        raise sigsum_error(SIGSUM_E_KEY_IMPORT, "Failed to import public key.", key=raw.hex(), error=str(e)) from e


async def verify_signature(key: Ed25519PublicKey, signature: Signature, message: bytes) -> bool:
    try:
        key.verify(signature.data, bytes(message))
    except InvalidSignature:
        return False
    return True


async def digest(data: bytes) -> Hash:
    return Hash(sha256(data))


async def hash_key(raw: RawPublicKey) -> KeyHash:
    return key_hash(raw)


async def hash_message(message: bytes) -> Hash:
    return await digest(message)


def format_checkpoint(tree_head: TreeHead, log_key_hash: KeyHash) -> str:
    origin = CHECKPOINT_NAME_PREFIX + log_key_hash.hex()
    return f"{origin}\n{tree_head.size}\n{tree_head.root_hash.base64()}\n"


def format_cosigned_data(tree_head: TreeHead, log_key_hash: KeyHash, timestamp: int) -> str:
    checkpoint = format_checkpoint(tree_head, log_key_hash)
    return f"{COSIGNATURE_NAMESPACE}\ntime {timestamp}\n{checkpoint}"


async def verify_signed_tree_head(
    signed_tree_head: SignedTreeHead,
    log_key: Ed25519PublicKey,
    log_key_hash: KeyHash,
) -> bool:
    message = format_checkpoint(signed_tree_head.tree_head, log_key_hash).encode("utf-8")
    return await verify_signature(log_key, signed_tree_head.signature, message)


async def verify_cosignature(
    tree_head: TreeHead,
    witness_key: Ed25519PublicKey,
    log_key_hash: KeyHash,
    cosignature: Cosignature,
) -> bool:
    message = format_cosigned_data(tree_head, log_key_hash, cosignature.timestamp).encode("utf-8")
    return await verify_signature(witness_key, cosignature.signature, message)
