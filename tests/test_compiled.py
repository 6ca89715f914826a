import random

import pytest

from sigsum_verifier.compiled import CompiledPolicy, eval_quorum_bytecode, import_and_hash_all
from sigsum_verifier.crypto import key_hash
from sigsum_verifier.errors import StructuralError
from sigsum_verifier.types import RawPublicKey


@pytest.mark.parametrize(
    "program, found, expected",
    [
        # single witness
        (b"\x40", [1], True),
        (b"\x40", [0], False),
        # 2-of-3
        (b"\x40\x41\x01\x42\x01\x82", [1, 0, 1], True),
        (b"\x40\x41\x01\x42\x01\x82", [0, 0, 1], False),
        # threshold 0 over a witness is trivially satisfied
        (b"\x40\x80", [0], True),
    ],
)
def test_evaluates_well_formed_programs(program, found, expected):
    assert eval_quorum_bytecode(program, len(found), bytes(found)) is expected


@pytest.mark.parametrize(
    "program",
    [
        b"",  # empty stack at end
        b"\x01",  # ADD underflow
        b"\x40\x01",  # ADD with one operand
        b"\x80",  # THRESHOLD underflow
        b"\x02",  # unknown class-0 opcode
        b"\x45",  # witness id out of range
        b"\x40\x40",  # two values left on the stack
        b"\xc1\x40",  # prefixed id 64 out of range
    ],
)
def test_malformed_programs_evaluate_false(program):
    assert eval_quorum_bytecode(program, 2, b"\x01\x01") is False


def test_prefix_resets_after_use():
    # id 64 via prefix, then id 0 must not inherit the prefix.
    found = bytearray(65)
    found[64] = 1
    found[0] = 1
    program = bytes([0xC1, 0x40, 0x40, 0x01, 0x82])
    assert eval_quorum_bytecode(program, 65, found) is True


def test_never_raises_on_arbitrary_bytecode():
    rng = random.Random(0)
    for _ in range(2000):
        program = bytes(rng.randrange(256) for _ in range(rng.randrange(0, 40)))
        n = rng.randrange(0, 10)
        found = bytes(rng.randrange(2) for _ in range(n))
        assert eval_quorum_bytecode(program, n, found) in (True, False)


def test_round_trips_binary_layout():
    raw = bytes([0, 1, 2, 1]) + b"\x11" * 32 + b"\x22" * 32 + b"\x33" * 32 + b"\x40"
    compiled = CompiledPolicy.from_bytes(raw)
    assert compiled.version == 0
    assert compiled.logs == (RawPublicKey(b"\x11" * 32),)
    assert compiled.witnesses == (RawPublicKey(b"\x22" * 32), RawPublicKey(b"\x33" * 32))
    assert compiled.quorum == b"\x40"
    assert compiled.to_bytes() == raw


@pytest.mark.parametrize(
    "raw, message",
    [
        (b"\x00\x01", "too short"),
        (bytes([0, 1, 0, 0]) + b"\x11" * 31, "truncated"),
        (bytes([0, 0, 0, 2]) + b"\x40", "truncated"),
        (bytes([0, 0, 0, 0]) + b"\x00", "trailing bytes"),
        (bytes([1, 0, 0, 0]), "unsupported compiled policy version"),
    ],
)
def test_rejects_malformed_buffers(raw, message):
    with pytest.raises(StructuralError, match=message):
        CompiledPolicy.from_bytes(raw)


@pytest.mark.asyncio
async def test_import_and_hash_all_requires_sorted_keys(synthetic_log):
    from conftest import raw_public_key

    raws = [RawPublicKey(raw_public_key(k)) for k in synthetic_log.witness_keys]
    ordered = sorted(raws, key=lambda r: key_hash(r).data)

    good = await import_and_hash_all(ordered, "witness")
    assert [h.key_hash for h in good] == [key_hash(r) for r in ordered]
    assert [h.raw for h in good] == ordered

    with pytest.raises(StructuralError, match="witness list is not sorted by key hash"):
        await import_and_hash_all(list(reversed(ordered)), "witness")

    with pytest.raises(StructuralError, match="not sorted"):
        await import_and_hash_all([ordered[0], ordered[0]], "witness")
