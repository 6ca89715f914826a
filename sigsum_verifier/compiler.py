"""Policy compiler: canonical binary encoding of a trust policy.

Output layout (all counts are single unsigned bytes):

    [version=0][n_logs][n_witnesses][n_bytecode]
    [log raw keys, 32 bytes each][witness raw keys, 32 bytes each][bytecode]

Logs and witnesses are sorted by key hash; a witness's position in that
order is its id in the bytecode. Within each group, members are emitted
by ascending encoded size and same-size members in lexicographic byte
order, so the output does not depend on declaration order and matches the
sigsum-c reference compiler byte for byte.

Instruction bytes (top two bits select the class):

    00 000001   ADD         pop a, b; push a + b
    01 xxxxxx   WITNESS     push found[id]
    10 xxxxxx   THRESHOLD   pop v; push 1 if v >= K else 0
    11 xxxxxx   PREFIX      prefix = prefix << 6 | xxxxxx

Values above 63 are written as PREFIX bytes carrying the high 6-bit groups
(most significant first) followed by the class byte with the low 6 bits.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Dict, List, Literal, Mapping, Tuple, Union, assert_never

from .crypto import key_hash
from .errors import (
    SIGSUM_E_BAD_VALUE,
    SIGSUM_E_EMPTY_GROUP,
    SIGSUM_E_QUORUM_TOO_COMPLEX,
    SIGSUM_E_TOO_MANY_LOGS,
    SIGSUM_E_TOO_MANY_WITNESSES,
    SIGSUM_E_UNKNOWN_WITNESS,
    sigsum_error,
)
from .policy import Entity, Policy, Quorum
from .policy_text import parse_policy_text
from .types import KeyHash, RawPublicKey

logger = logging.getLogger("sigsum_verifier.compiler")

COMPILED_POLICY_VERSION = 0
MAX_ENTRIES = 0xFF
MAX_BYTECODE = 0xFF

OP_ADD = 0x01
CLASS_WITNESS = 0x40
CLASS_THRESHOLD = 0x80
CLASS_PREFIX = 0xC0
PAYLOAD_MASK = 0x3F


@dataclass
class _WitnessNode:
    witness_index: int
    bytecode_size: int
    kind: Literal["witness"] = "witness"


@dataclass
class _GroupNode:
    threshold: int
    members: List["_PreparedNode"]
    bytecode_size: int
    kind: Literal["group"] = "group"


_PreparedNode = Union[_WitnessNode, _GroupNode]


def encoded_size(value: int) -> int:
    """Instruction bytes needed for ``value``: one, plus one per extra 6-bit group."""
    size = 1
    value >>= 6
    while value > 0:
        size += 1
        value >>= 6
    return size


def encode_instruction(op_class: int, value: int) -> bytes:
    size = encoded_size(value)
    out = bytearray()
    for group in range(size - 1, 0, -1):
        out.append(CLASS_PREFIX | ((value >> (6 * group)) & PAYLOAD_MASK))
    out.append(op_class | (value & PAYLOAD_MASK))
    return bytes(out)


def _sorted_entries(entities: Mapping[KeyHash, Entity], label: str) -> List[Tuple[KeyHash, RawPublicKey]]:
    entries: List[Tuple[KeyHash, RawPublicKey]] = []
    for kh, entity in entities.items():
        if key_hash(entity.public_key) != kh:
            raise sigsum_error(
                SIGSUM_E_BAD_VALUE,
                f"{label} table key does not match the entity's key hash",
                key_hash=kh.hex(),
            )
        entries.append((kh, entity.public_key))
    entries.sort(key=lambda e: e[0].data)
    return entries


def _prepare(quorum: Quorum, witness_index: Dict[KeyHash, int]) -> _PreparedNode:
    if quorum.kind == "single":
        index = witness_index.get(quorum.witness)
        if index is None:
            raise sigsum_error(
                SIGSUM_E_UNKNOWN_WITNESS,
                "witness referenced in quorum but missing from policy",
                witness=quorum.witness.hex(),
            )
        return _WitnessNode(witness_index=index, bytecode_size=encoded_size(index))
    elif quorum.kind == "k_of_n":
        if not quorum.members:
            raise sigsum_error(SIGSUM_E_EMPTY_GROUP, "empty quorum group")
        members = [_prepare(member, witness_index) for member in quorum.members]
        if len(members) == 1:
            size = members[0].bytecode_size
        else:
            members.sort(key=lambda m: m.bytecode_size)
            size = (
                sum(m.bytecode_size for m in members)
                + (len(members) - 1)
                + encoded_size(quorum.threshold)
            )
        # Sizes only grow towards the root; stop before shared subgroups multiply the work.
        if size > MAX_BYTECODE:
            raise sigsum_error(
                SIGSUM_E_QUORUM_TOO_COMPLEX,
                f"Policy quorum too complex, {size} instructions, can have at most {MAX_BYTECODE}.",
                size=size,
            )
        return _GroupNode(threshold=quorum.threshold, members=members, bytecode_size=size)
    else:
        assert_never(quorum)


def _compile(node: _PreparedNode) -> bytes:
    if node.kind == "witness":
        return encode_instruction(CLASS_WITNESS, node.witness_index)
    elif node.kind == "group":
        if len(node.members) == 1:
            return _compile(node.members[0])

        out = bytearray()
        first = True
        for _, run in itertools.groupby(node.members, key=lambda m: m.bytecode_size):
            for block in sorted(_compile(m) for m in run):
                out += block
                if first:
                    first = False
                else:
                    out.append(OP_ADD)
        out += encode_instruction(CLASS_THRESHOLD, node.threshold)
        if len(out) != node.bytecode_size:
            raise AssertionError(f"group compiled to {len(out)} bytes, prepared {node.bytecode_size}")
        return bytes(out)
    else:
        assert_never(node)


def compile_quorum(quorum: Quorum, witness_index: Dict[KeyHash, int]) -> bytes:
    """Compile a quorum tree against a witness id assignment."""
    prepared = _prepare(quorum, witness_index)
    if prepared.bytecode_size > MAX_BYTECODE:
        raise sigsum_error(
            SIGSUM_E_QUORUM_TOO_COMPLEX,
            f"Policy quorum too complex, {prepared.bytecode_size} instructions, can have at most {MAX_BYTECODE}.",
            size=prepared.bytecode_size,
        )
    return _compile(prepared)


def compile_policy(policy: Policy) -> bytes:
    """Compile ``policy`` into its canonical binary form."""
    logs = _sorted_entries(policy.logs, "log")
    witnesses = _sorted_entries(policy.witnesses, "witness")

    if len(logs) > MAX_ENTRIES:
        raise sigsum_error(
            SIGSUM_E_TOO_MANY_LOGS,
            f"Policy lists {len(logs)} logs, can have at most {MAX_ENTRIES}.",
            count=len(logs),
        )
    if len(witnesses) > MAX_ENTRIES:
        raise sigsum_error(
            SIGSUM_E_TOO_MANY_WITNESSES,
            f"Policy lists {len(witnesses)} witnesses, can have at most {MAX_ENTRIES}.",
            count=len(witnesses),
        )

    witness_index = {kh: i for i, (kh, _) in enumerate(witnesses)}
    bytecode = compile_quorum(policy.quorum, witness_index)

    out = bytearray([COMPILED_POLICY_VERSION, len(logs), len(witnesses), len(bytecode)])
    for _, raw in logs:
        out += raw.data
    for _, raw in witnesses:
        out += raw.data
    out += bytecode

    logger.debug(
        "compiled policy: %d logs, %d witnesses, %d bytecode bytes",
        len(logs),
        len(witnesses),
        len(bytecode),
    )
    return bytes(out)


def compile_policy_text(text: str) -> bytes:
    return compile_policy(parse_policy_text(text))
