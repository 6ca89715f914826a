"""Compiled policies: binary codec and quorum bytecode evaluation.

See ``sigsum_verifier.compiler`` for the layout and instruction set. This
module is the reader side: it parses the artifact, recomputes every key
hash to reproduce the witness id order, and evaluates the quorum program
against the set of witnesses whose cosignatures verified.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from .compiler import COMPILED_POLICY_VERSION, MAX_BYTECODE, MAX_ENTRIES
from .crypto import hash_key, import_public_key
from .errors import (
    SIGSUM_E_COMPILED_FORMAT,
    SIGSUM_E_COMPILED_TRUNCATED,
    sigsum_error,
)
from .types import KeyHash, RawPublicKey

RAW_PUBLIC_KEY_LEN = 32
HEADER_LEN = 4


@dataclass(frozen=True)
class CompiledPolicy:
    version: int
    logs: Tuple[RawPublicKey, ...]
    witnesses: Tuple[RawPublicKey, ...]
    quorum: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "logs", tuple(self.logs))
        object.__setattr__(self, "witnesses", tuple(self.witnesses))
        object.__setattr__(self, "quorum", bytes(self.quorum))
        if len(self.logs) > MAX_ENTRIES or len(self.witnesses) > MAX_ENTRIES:
            raise sigsum_error(SIGSUM_E_COMPILED_FORMAT, "compiled policy lists too many keys")
        if len(self.quorum) > MAX_BYTECODE:
            raise sigsum_error(SIGSUM_E_COMPILED_FORMAT, "compiled policy bytecode too long")

    @classmethod
    def from_bytes(cls, buf: bytes) -> "CompiledPolicy":
        buf = bytes(buf)
        if len(buf) < HEADER_LEN:
            raise sigsum_error(SIGSUM_E_COMPILED_TRUNCATED, "compiled policy too short", length=len(buf))
        version, n_logs, n_witnesses, quorum_len = buf[0], buf[1], buf[2], buf[3]
        if version != COMPILED_POLICY_VERSION:
            raise sigsum_error(SIGSUM_E_COMPILED_FORMAT, f"unsupported compiled policy version {version}")

        expected = HEADER_LEN + (n_logs + n_witnesses) * RAW_PUBLIC_KEY_LEN + quorum_len
        if len(buf) < expected:
            raise sigsum_error(
                SIGSUM_E_COMPILED_TRUNCATED,
                "compiled policy truncated",
                length=len(buf),
                expected=expected,
            )
        if len(buf) > expected:
            raise sigsum_error(
                SIGSUM_E_COMPILED_FORMAT,
                "compiled policy has trailing bytes",
                length=len(buf),
                expected=expected,
            )

        off = HEADER_LEN
        logs: List[RawPublicKey] = []
        for _ in range(n_logs):
            logs.append(RawPublicKey(buf[off:off + RAW_PUBLIC_KEY_LEN]))
            off += RAW_PUBLIC_KEY_LEN
        witnesses: List[RawPublicKey] = []
        for _ in range(n_witnesses):
            witnesses.append(RawPublicKey(buf[off:off + RAW_PUBLIC_KEY_LEN]))
            off += RAW_PUBLIC_KEY_LEN
        quorum = buf[off:off + quorum_len]

        return cls(version=version, logs=tuple(logs), witnesses=tuple(witnesses), quorum=quorum)

    def to_bytes(self) -> bytes:
        out = bytearray([self.version, len(self.logs), len(self.witnesses), len(self.quorum)])
        for raw in self.logs:
            out += raw.data
        for raw in self.witnesses:
            out += raw.data
        out += self.quorum
        return bytes(out)


@dataclass(frozen=True)
class HashedKey:
    raw: RawPublicKey
    key_hash: KeyHash
    public_key: Ed25519PublicKey


async def import_and_hash_all(raws: Sequence[RawPublicKey], label: str = "key") -> List[HashedKey]:
    """Import keys and recompute their hashes, requiring ascending key-hash order.

    The bytecode refers to witnesses by position, so a reader must arrive at
    the same order as the compiler did; an unsorted or duplicated list is
    rejected rather than silently re-indexed.
    """
    out: List[HashedKey] = []
    for raw in raws:
        out.append(HashedKey(raw=raw, key_hash=await hash_key(raw), public_key=await import_public_key(raw)))
    for prev, cur in zip(out, out[1:]):
        if prev.key_hash.data >= cur.key_hash.data:
            raise sigsum_error(
                SIGSUM_E_COMPILED_FORMAT,
                f"compiled policy {label} list is not sorted by key hash",
                key_hash=cur.key_hash.hex(),
            )
    return out


def eval_quorum_bytecode(quorum: bytes, n_witnesses: int, found: Sequence[int]) -> bool:
    """Run a compiled quorum program.

    ``found[i]`` is 1 if witness ``i`` produced a valid cosignature, else 0.
    Returns True iff the program leaves exactly one value, equal to 1, on the
    stack. Malformed programs (unknown opcode, out-of-range witness id, stack
    underflow, ADD overflow) evaluate to False; this function never raises on
    bytecode content.
    """
    stack: List[int] = []
    prefix = 0

    for instr in bytes(quorum):
        cls = instr >> 6
        low = instr & 0x3F

        if cls == 0:
            prefix = 0
            if instr != 0x01:
                return False
            if len(stack) < 2:
                return False
            a = stack.pop()
            b = stack.pop()
            s = (a + b) & 0xFF
            if s < a or s < b:
                return False
            stack.append(s)
        elif cls == 1:
            witness = ((prefix << 6) | low) & 0xFFFFFFFF
            prefix = 0
            if witness >= n_witnesses or witness >= len(found):
                return False
            stack.append(found[witness] & 0xFF)
        elif cls == 2:
            if not stack:
                return False
            k = ((prefix << 6) | low) & 0xFFFFFFFF
            prefix = 0
            top = stack.pop()
            stack.append(1 if top >= k else 0)
        else:
            prefix = ((prefix << 6) | low) & 0xFFFFFFFF

    return len(stack) == 1 and stack[0] == 1
