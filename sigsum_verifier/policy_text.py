"""Sigsum policy text format.

Example:

    log 4644af2a... https://test.sigsum.org/barreleye
    witness nisse 1c25f8a4...
    witness rgdd  28c92a5a...
    group majority 2 nisse rgdd
    quorum majority

``#`` starts a comment. Names are resolved at the point of use, so a group
may only reference witnesses and groups declared above it. The name
``none`` is predefined as the always-satisfied quorum.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from .encoding import hex_to_bytes, is_plain_decimal
from .errors import (
    SIGSUM_E_POLICY_DUPLICATE_KEY,
    SIGSUM_E_POLICY_NAME,
    SIGSUM_E_POLICY_QUORUM,
    SIGSUM_E_POLICY_SYNTAX,
    SigsumError,
    sigsum_error,
)
from .policy import QUORUM_NONE, Entity, Policy, Quorum, QuorumKofN, QuorumSingle
from .types import KeyHash, RawPublicKey

logger = logging.getLogger("sigsum_verifier.policy")

CONFIG_NONE = "none"


class _PolicyBuilder:
    """Single-use parse state: entity tables plus the name environment."""

    def __init__(self) -> None:
        self.logs: Dict[KeyHash, Entity] = {}
        self.witnesses: Dict[KeyHash, Entity] = {}
        self.names: Dict[str, Quorum] = {CONFIG_NONE: QUORUM_NONE}
        self.quorum: Optional[Quorum] = None
        self.quorum_name: Optional[str] = None

    def add_log(self, entity: Entity) -> KeyHash:
        kh = entity.key_hash
        if kh in self.logs:
            raise sigsum_error(SIGSUM_E_POLICY_DUPLICATE_KEY, f"Duplicate log key: {kh.hex()}")
        self.logs[kh] = entity
        return kh

    def add_witness(self, entity: Entity) -> KeyHash:
        kh = entity.key_hash
        if kh in self.witnesses:
            raise sigsum_error(SIGSUM_E_POLICY_DUPLICATE_KEY, f"Duplicate witness key: {kh.hex()}")
        self.witnesses[kh] = entity
        return kh

    def lookup(self, name: str) -> Quorum:
        q = self.names.get(name)
        if q is None:
            raise sigsum_error(SIGSUM_E_POLICY_NAME, f"undefined name: {name}")
        return q

    def parse_line(self, line: str) -> None:
        comment = line.find("#")
        if comment >= 0:
            line = line[:comment]
        fields = line.split()
        if not fields:
            return

        keyword, args = fields[0], fields[1:]
        if keyword == "log":
            self._parse_log(args)
        elif keyword == "witness":
            self._parse_witness(args)
        elif keyword == "group":
            self._parse_group(args)
        elif keyword == "quorum":
            self._parse_quorum(args)
        else:
            raise sigsum_error(SIGSUM_E_POLICY_SYNTAX, f"Unknown keyword: {keyword}")

    def _parse_log(self, args: List[str]) -> None:
        if len(args) < 1 or len(args) > 2:
            raise sigsum_error(SIGSUM_E_POLICY_SYNTAX, "log line must include pubkey and optional URL")
        url = args[1] if len(args) > 1 else None
        self.add_log(Entity(public_key=RawPublicKey(hex_to_bytes(args[0])), url=url))

    def _parse_witness(self, args: List[str]) -> None:
        if len(args) < 2 or len(args) > 3:
            raise sigsum_error(
                SIGSUM_E_POLICY_SYNTAX,
                "witness line must include name and pubkey and optional URL",
            )
        name, hex_key = args[0], args[1]
        url = args[2] if len(args) > 2 else None
        if name in self.names:
            raise sigsum_error(SIGSUM_E_POLICY_NAME, f"duplicate name: {name}")
        kh = self.add_witness(Entity(public_key=RawPublicKey(hex_to_bytes(hex_key)), url=url))
        self.names[name] = QuorumSingle(kh)

    def _parse_group(self, args: List[str]) -> None:
        if len(args) < 3:
            raise sigsum_error(SIGSUM_E_POLICY_SYNTAX, "group requires name, threshold, and members")
        name, threshold_raw, members = args[0], args[1], args[2:]
        if name in self.names:
            raise sigsum_error(SIGSUM_E_POLICY_NAME, f"duplicate group name: {name}")

        if threshold_raw == "any":
            k = 1
        elif threshold_raw == "all":
            k = len(members)
        elif is_plain_decimal(threshold_raw):
            k = int(threshold_raw, 10)
        else:
            raise sigsum_error(SIGSUM_E_POLICY_QUORUM, "invalid threshold", threshold=threshold_raw)
        if k < 1 or k > len(members):
            raise sigsum_error(SIGSUM_E_POLICY_QUORUM, "invalid threshold", threshold=k, members=len(members))

        subs = [self.lookup(m) for m in members]
        self.names[name] = QuorumKofN(members=tuple(subs), threshold=k)

    def _parse_quorum(self, args: List[str]) -> None:
        if len(args) != 1:
            raise sigsum_error(SIGSUM_E_POLICY_SYNTAX, "quorum requires a single name")
        if self.quorum is not None:
            raise sigsum_error(SIGSUM_E_POLICY_QUORUM, "quorum can only be set once")
        self.quorum = self.lookup(args[0])
        self.quorum_name = args[0]

    def build(self) -> Policy:
        if self.quorum is None:
            raise sigsum_error(SIGSUM_E_POLICY_QUORUM, "no quorum defined")
        if self.quorum_name == CONFIG_NONE:
            logger.warning("policy selects 'quorum none': witness cosignatures will not be enforced")
        return Policy(logs=dict(self.logs), witnesses=dict(self.witnesses), quorum=self.quorum)


def parse_policy_text(text: str) -> Policy:
    """Parse policy text into a Policy; raises StructuralError on any defect."""
    builder = _PolicyBuilder()
    for lineno, line in enumerate(text.splitlines(), start=1):
        try:
            builder.parse_line(line)
        except SigsumError as e:
            e.details.setdefault("line", lineno)
            raise
    return builder.build()
