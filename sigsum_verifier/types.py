"""Value types shared by the policy, proof and verification modules.

Hashes, key hashes, raw public keys and signatures are all short byte
strings of similar length. Each gets its own frozen type with the length
checked at construction so that they cannot be passed for one another:
``Hash(b) != KeyHash(b)`` even for identical bytes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import ClassVar, Mapping, Tuple

from .encoding import bytes_to_base64, hex_to_bytes
from .errors import SIGSUM_E_BAD_LENGTH, SIGSUM_E_BAD_VALUE, sigsum_error


@dataclass(frozen=True)
class _FixedBytes:
    data: bytes

    SIZE: ClassVar[int] = 32
    LENGTH_ERROR: ClassVar[str] = ""

    def __post_init__(self) -> None:
        data = self.data
        if isinstance(data, (bytearray, memoryview)):
            data = bytes(data)
            object.__setattr__(self, "data", data)
        if not isinstance(data, bytes):
            raise TypeError(f"{type(self).__name__} requires bytes, got {type(data).__name__}")
        if len(data) != self.SIZE:
            msg = self.LENGTH_ERROR or f"{type(self).__name__} must be {self.SIZE} bytes"
            raise sigsum_error(SIGSUM_E_BAD_LENGTH, msg, expected=self.SIZE, got=len(data))

    @classmethod
    def from_hex(cls, value: str):
        return cls(hex_to_bytes(value))

    def hex(self) -> str:
        return self.data.hex()

    def base64(self) -> str:
        return bytes_to_base64(self.data)

    def __bytes__(self) -> bytes:
        return self.data

    def __len__(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.data.hex()})"


class Hash(_FixedBytes):
    """SHA-256 output: checksums, Merkle node hashes, root hashes."""

    SIZE = 32


class KeyHash(_FixedBytes):
    """SHA-256 of a raw public key; identifies logs, witnesses and submitters."""

    SIZE = 32


class RawPublicKey(_FixedBytes):
    SIZE = 32
    LENGTH_ERROR = "Ed25519 raw keys must be exactly 32-bytes"


class Signature(_FixedBytes):
    SIZE = 64
    LENGTH_ERROR = "Signature must be 64 bytes for Ed25519."


@dataclass(frozen=True)
class TreeHead:
    size: int
    root_hash: Hash

    def __post_init__(self) -> None:
        if isinstance(self.size, bool) or not isinstance(self.size, int) or self.size < 1:
            raise sigsum_error(SIGSUM_E_BAD_VALUE, "invalid tree size", size=self.size)


@dataclass(frozen=True)
class SignedTreeHead:
    tree_head: TreeHead
    signature: Signature


@dataclass(frozen=True)
class Cosignature:
    timestamp: int
    signature: Signature

    def __post_init__(self) -> None:
        if isinstance(self.timestamp, bool) or not isinstance(self.timestamp, int) or self.timestamp <= 0:
            raise sigsum_error(SIGSUM_E_BAD_VALUE, "invalid cosignature timestamp", timestamp=self.timestamp)


@dataclass(frozen=True)
class CosignedTreeHead:
    signed_tree_head: SignedTreeHead
    cosignatures: Mapping[KeyHash, Cosignature] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "cosignatures", MappingProxyType(dict(self.cosignatures)))

    @property
    def tree_head(self) -> TreeHead:
        return self.signed_tree_head.tree_head


@dataclass(frozen=True)
class Leaf:
    checksum: Hash
    signature: Signature
    key_hash: KeyHash

    def to_bytes(self) -> bytes:
        """Canonical leaf encoding: 0x00 || checksum || signature || key hash (129 bytes)."""
        return b"\x00" + self.checksum.data + self.signature.data + self.key_hash.data


@dataclass(frozen=True)
class ShortLeaf:
    """Leaf as carried in a proof: the checksum is recomputed by the verifier."""

    key_hash: KeyHash
    signature: Signature

    @classmethod
    def from_leaf(cls, leaf: Leaf) -> "ShortLeaf":
        return cls(key_hash=leaf.key_hash, signature=leaf.signature)

    def to_leaf(self, checksum: Hash) -> Leaf:
        return Leaf(checksum=checksum, signature=self.signature, key_hash=self.key_hash)


@dataclass(frozen=True)
class InclusionProof:
    leaf_index: int
    path: Tuple[Hash, ...] = ()

    def __post_init__(self) -> None:
        if isinstance(self.leaf_index, bool) or not isinstance(self.leaf_index, int) or self.leaf_index < 0:
            raise sigsum_error(SIGSUM_E_BAD_VALUE, "invalid leaf_index value", leaf_index=self.leaf_index)
        object.__setattr__(self, "path", tuple(self.path))
