"""Proof verification.

A proof is accepted only if all of the following hold, checked in order;
the first failing check raises a VerificationError naming it:

1. the proof's leaf key hash equals the submitter key's hash;
2. the leaf signature covers checksum = SHA-256(message hash);
3. the proof's log is one of the policy's trusted logs;
4. the tree head is signed by that log;
5. enough trusted witnesses cosigned the tree head to satisfy the quorum;
6. the leaf is included in the tree head (Merkle inclusion proof).

Two policy forms are supported with the same sequence: a parsed ``Policy``
(quorum evaluated on the tree) and a ``CompiledPolicy`` (quorum evaluated
by the bytecode VM).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple, Union

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from .compiled import CompiledPolicy, eval_quorum_bytecode, import_and_hash_all
from .crypto import (
    LEAF_NAMESPACE,
    attach_namespace,
    constant_time_equal,
    digest,
    hash_key,
    hash_message,
    import_public_key,
    verify_cosignature,
    verify_signature,
    verify_signed_tree_head,
)
from .errors import (
    SIGSUM_E_KEY_MISMATCH,
    SIGSUM_E_LOG_NOT_FOUND,
    SIGSUM_E_MESSAGE_SIGNATURE,
    SIGSUM_E_QUORUM_NOT_SATISFIED,
    SIGSUM_E_TREE_HEAD_SIGNATURE,
    SigsumError,
    sigsum_error,
)
from .merkle import leaf_hash, verify_inclusion_proof
from .policy import Policy
from .policy_text import parse_policy_text
from .proof import SigsumProof
from .settings import VerifierSettings
from .types import Cosignature, KeyHash, RawPublicKey, TreeHead

logger = logging.getLogger("sigsum_verifier")

PolicyInput = Union[Policy, str]
CompiledPolicyInput = Union[CompiledPolicy, bytes, bytearray]
ProofInput = Union[SigsumProof, str]
KeyInput = Union[RawPublicKey, bytes, bytearray]


@dataclass(frozen=True)
class _TrustedWitness:
    key_hash: KeyHash
    raw: RawPublicKey
    public_key: Optional[Ed25519PublicKey] = None


def _fail(code: str, message: str, **details) -> SigsumError:
    err = sigsum_error(code, message, **details)
    logger.info("proof rejected: %s", err)
    return err


async def _check_cosignature(
    index: int,
    witness: _TrustedWitness,
    tree_head: TreeHead,
    log_key_hash: KeyHash,
    cosignature: Cosignature,
) -> Tuple[int, bool]:
    key = witness.public_key or await import_public_key(witness.raw)
    ok = await verify_cosignature(tree_head, key, log_key_hash, cosignature)
    logger.debug("cosignature from witness %s: %s", witness.key_hash.hex(), "valid" if ok else "invalid")
    return index, ok


async def _eval_witness_quorum(
    proof: SigsumProof,
    witnesses: List[_TrustedWitness],
    satisfied: Callable[[Set[int]], bool],
    settings: VerifierSettings,
) -> bool:
    """Verify cosignatures from trusted witnesses until ``satisfied`` holds.

    ``satisfied`` receives the indexes (into ``witnesses``) whose
    cosignatures verified so far.
    """
    present: Set[int] = set()
    if satisfied(present):
        return True

    tree_head = proof.tree_head.tree_head
    cosignatures = proof.tree_head.cosignatures
    checks = [
        (i, w, cosignatures[w.key_hash])
        for i, w in enumerate(witnesses)
        if w.key_hash in cosignatures
    ]

    if not settings.concurrent:
        for i, w, cosig in checks:
            _, ok = await _check_cosignature(i, w, tree_head, proof.log_key_hash, cosig)
            if ok:
                present.add(i)
                if satisfied(present):
                    return True
        return False

    pending = {
        asyncio.create_task(_check_cosignature(i, w, tree_head, proof.log_key_hash, cosig))
        for i, w, cosig in checks
    }
    try:
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                index, ok = task.result()
                if ok:
                    present.add(index)
                    if satisfied(present):
                        return True
        return False
    finally:
        for task in pending:
            task.cancel()
        if pending:
            logger.debug("cancelled %d outstanding cosignature checks", len(pending))
            await asyncio.gather(*pending, return_exceptions=True)


async def _verify_common(
    message_hash: bytes,
    submitter_key: RawPublicKey,
    proof: SigsumProof,
    get_log_key: Callable[[], Awaitable[Ed25519PublicKey]],
    eval_quorum: Callable[[], Awaitable[bool]],
) -> bool:
    submitter_public_key = await import_public_key(submitter_key)
    submitter_key_hash = await hash_key(submitter_key)

    # The leaf commits to a hash of the message hash.
    checksum = await digest(message_hash)

    if not constant_time_equal(proof.leaf.key_hash.data, submitter_key_hash.data):
        raise _fail(
            SIGSUM_E_KEY_MISMATCH,
            "proof key does not match the provided one",
            expected=submitter_key_hash.hex(),
            got=proof.leaf.key_hash.hex(),
        )
    logger.debug("leaf key hash matches submitter %s", submitter_key_hash.hex())

    signed = attach_namespace(LEAF_NAMESPACE, checksum.data)
    if not await verify_signature(submitter_public_key, proof.leaf.signature, signed):
        raise _fail(SIGSUM_E_MESSAGE_SIGNATURE, "invalid message signature")
    logger.debug("leaf signature valid")

    log_key = await get_log_key()
    if not await verify_signed_tree_head(proof.tree_head.signed_tree_head, log_key, proof.log_key_hash):
        raise _fail(
            SIGSUM_E_TREE_HEAD_SIGNATURE,
            "failed to verify tree head signature",
            log=proof.log_key_hash.hex(),
            size=proof.tree_head.tree_head.size,
        )
    logger.debug("tree head signature valid (size=%d)", proof.tree_head.tree_head.size)

    if not await eval_quorum():
        raise _fail(
            SIGSUM_E_QUORUM_NOT_SATISFIED,
            "cosignature quorum not satisfied",
            cosignatures=len(proof.tree_head.cosignatures),
        )
    logger.debug("witness quorum satisfied")

    leaf = proof.leaf.to_leaf(checksum)
    try:
        result = verify_inclusion_proof(
            leaf_hash(leaf),
            proof.inclusion.leaf_index,
            proof.tree_head.tree_head,
            proof.inclusion.path,
        )
    except SigsumError as e:
        logger.info("proof rejected: %s", e)
        raise
    logger.debug("inclusion proof valid (leaf_index=%d)", proof.inclusion.leaf_index)
    return result


def _coerce_key(key: KeyInput) -> RawPublicKey:
    if isinstance(key, RawPublicKey):
        return key
    return RawPublicKey(bytes(key))


def _coerce_proof(proof: ProofInput) -> SigsumProof:
    if isinstance(proof, SigsumProof):
        return proof
    return SigsumProof.from_ascii(proof)


def _coerce_policy(policy: PolicyInput) -> Policy:
    if isinstance(policy, Policy):
        return policy
    return parse_policy_text(policy)


def _coerce_compiled(compiled: CompiledPolicyInput) -> CompiledPolicy:
    if isinstance(compiled, CompiledPolicy):
        return compiled
    return CompiledPolicy.from_bytes(bytes(compiled))


async def verify_hash(
    message_hash: bytes,
    submitter_key: KeyInput,
    policy: PolicyInput,
    proof: ProofInput,
    *,
    settings: Optional[VerifierSettings] = None,
) -> bool:
    """Verify ``proof`` for an already-hashed message against a parsed policy."""
    settings = settings or VerifierSettings.from_env()
    parsed_policy = _coerce_policy(policy)
    parsed_proof = _coerce_proof(proof)

    async def get_log_key() -> Ed25519PublicKey:
        log = parsed_policy.logs.get(parsed_proof.log_key_hash)
        if log is None:
            raise _fail(SIGSUM_E_LOG_NOT_FOUND, "log key not found in policy", log=parsed_proof.log_key_hash.hex())
        return await import_public_key(log.public_key)

    witnesses = [
        _TrustedWitness(key_hash=kh, raw=entity.public_key)
        for kh, entity in parsed_policy.witnesses.items()
    ]

    def satisfied(present: Set[int]) -> bool:
        return parsed_policy.is_quorum({witnesses[i].key_hash for i in present})

    async def eval_quorum() -> bool:
        return await _eval_witness_quorum(parsed_proof, witnesses, satisfied, settings)

    return await _verify_common(message_hash, _coerce_key(submitter_key), parsed_proof, get_log_key, eval_quorum)


async def verify_hash_with_compiled_policy(
    message_hash: bytes,
    submitter_key: KeyInput,
    compiled_policy: CompiledPolicyInput,
    proof: ProofInput,
    *,
    settings: Optional[VerifierSettings] = None,
) -> bool:
    """Verify ``proof`` for an already-hashed message against a compiled policy."""
    settings = settings or VerifierSettings.from_env()
    parsed_proof = _coerce_proof(proof)
    compiled = _coerce_compiled(compiled_policy)

    logs = await import_and_hash_all(compiled.logs, "log")
    hashed_witnesses = await import_and_hash_all(compiled.witnesses, "witness")
    witnesses = [
        _TrustedWitness(key_hash=w.key_hash, raw=w.raw, public_key=w.public_key)
        for w in hashed_witnesses
    ]
    by_hash: Dict[KeyHash, Ed25519PublicKey] = {log.key_hash: log.public_key for log in logs}

    async def get_log_key() -> Ed25519PublicKey:
        key = by_hash.get(parsed_proof.log_key_hash)
        if key is None:
            raise _fail(
                SIGSUM_E_LOG_NOT_FOUND,
                "log key not found in compiled policy",
                log=parsed_proof.log_key_hash.hex(),
            )
        return key

    def satisfied(present: Set[int]) -> bool:
        found = bytes(1 if i in present else 0 for i in range(len(witnesses)))
        return eval_quorum_bytecode(compiled.quorum, len(witnesses), found)

    async def eval_quorum() -> bool:
        return await _eval_witness_quorum(parsed_proof, witnesses, satisfied, settings)

    return await _verify_common(message_hash, _coerce_key(submitter_key), parsed_proof, get_log_key, eval_quorum)


async def verify_message(
    message: bytes,
    submitter_key: KeyInput,
    policy: PolicyInput,
    proof: ProofInput,
    *,
    settings: Optional[VerifierSettings] = None,
) -> bool:
    message_hash = await hash_message(message)
    return await verify_hash(message_hash.data, submitter_key, policy, proof, settings=settings)


async def verify_message_with_compiled_policy(
    message: bytes,
    submitter_key: KeyInput,
    compiled_policy: CompiledPolicyInput,
    proof: ProofInput,
    *,
    settings: Optional[VerifierSettings] = None,
) -> bool:
    message_hash = await hash_message(message)
    return await verify_hash_with_compiled_policy(
        message_hash.data, submitter_key, compiled_policy, proof, settings=settings
    )


def verify_message_sync(
    message: bytes,
    submitter_key: KeyInput,
    policy: PolicyInput,
    proof: ProofInput,
    *,
    settings: Optional[VerifierSettings] = None,
) -> bool:
    """Blocking wrapper around ``verify_message`` for callers without an event loop."""
    return asyncio.run(verify_message(message, submitter_key, policy, proof, settings=settings))


def verify_message_with_compiled_policy_sync(
    message: bytes,
    submitter_key: KeyInput,
    compiled_policy: CompiledPolicyInput,
    proof: ProofInput,
    *,
    settings: Optional[VerifierSettings] = None,
) -> bool:
    return asyncio.run(
        verify_message_with_compiled_policy(message, submitter_key, compiled_policy, proof, settings=settings)
    )
