"""Trust policy model: trusted logs, trusted witnesses, witness quorum.

A quorum is a tree of two node kinds:

- ``QuorumSingle(witness)``: satisfied iff that witness key hash is present.
- ``QuorumKofN(members, threshold)``: satisfied iff at least ``threshold``
  members are satisfied.

``QUORUM_NONE`` (no members, threshold 0) is always satisfied. It exists only
for the explicit ``quorum none`` opt-out directive and must never be used as
a default: doing so disables witness enforcement.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import AbstractSet, Dict, FrozenSet, Iterable, Literal, Mapping, Optional, Tuple, Union, assert_never

from .crypto import key_hash
from .errors import (
    SIGSUM_E_POLICY_DUPLICATE_KEY,
    SIGSUM_E_POLICY_QUORUM,
    sigsum_error,
)
from .types import KeyHash, RawPublicKey


@dataclass(frozen=True)
class Entity:
    public_key: RawPublicKey
    url: Optional[str] = None

    @property
    def key_hash(self) -> KeyHash:
        return key_hash(self.public_key)


@dataclass(frozen=True)
class QuorumSingle:
    witness: KeyHash
    kind: Literal["single"] = field(default="single", init=False)


@dataclass(frozen=True)
class QuorumKofN:
    members: Tuple["Quorum", ...]
    threshold: int
    kind: Literal["k_of_n"] = field(default="k_of_n", init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "members", tuple(self.members))
        n = len(self.members)
        k = self.threshold
        if n == 0 and k == 0:
            return
        if isinstance(k, bool) or not isinstance(k, int) or k < 1 or k > n:
            raise sigsum_error(SIGSUM_E_POLICY_QUORUM, "invalid threshold", threshold=k, members=n)


Quorum = Union[QuorumSingle, QuorumKofN]

QUORUM_NONE = QuorumKofN(members=(), threshold=0)


def is_quorum(quorum: Quorum, present: AbstractSet[KeyHash]) -> bool:
    if quorum.kind == "single":
        return quorum.witness in present
    elif quorum.kind == "k_of_n":
        count = 0
        for member in quorum.members:
            if is_quorum(member, present):
                count += 1
        return count >= quorum.threshold
    else:
        assert_never(quorum)


def quorum_witnesses(quorum: Quorum) -> FrozenSet[KeyHash]:
    """All witness key hashes referenced anywhere in ``quorum``."""
    if quorum.kind == "single":
        return frozenset({quorum.witness})
    elif quorum.kind == "k_of_n":
        out: FrozenSet[KeyHash] = frozenset()
        for member in quorum.members:
            out |= quorum_witnesses(member)
        return out
    else:
        assert_never(quorum)


@dataclass(frozen=True)
class Policy:
    logs: Mapping[KeyHash, Entity]
    witnesses: Mapping[KeyHash, Entity]
    quorum: Quorum

    def __post_init__(self) -> None:
        object.__setattr__(self, "logs", MappingProxyType(dict(self.logs)))
        object.__setattr__(self, "witnesses", MappingProxyType(dict(self.witnesses)))

    def is_quorum(self, present: AbstractSet[KeyHash]) -> bool:
        return is_quorum(self.quorum, present)

    @classmethod
    def build(
        cls,
        *,
        logs: Iterable[Entity],
        witnesses: Iterable[Entity],
        quorum: Quorum,
    ) -> "Policy":
        """Key entities by their key hash, rejecting duplicates."""
        return cls(
            logs=_entity_map(logs, "log"),
            witnesses=_entity_map(witnesses, "witness"),
            quorum=quorum,
        )


def _entity_map(entities: Iterable[Entity], label: str) -> Dict[KeyHash, Entity]:
    out: Dict[KeyHash, Entity] = {}
    for entity in entities:
        kh = entity.key_hash
        if kh in out:
            raise sigsum_error(
                SIGSUM_E_POLICY_DUPLICATE_KEY,
                f"Duplicate {label} key: {kh.hex()}",
                key_hash=kh.hex(),
            )
        out[kh] = entity
    return out
