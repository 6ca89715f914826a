import random

import pytest

from sigsum_verifier.compiled import CompiledPolicy, eval_quorum_bytecode
from sigsum_verifier.compiler import compile_policy, compile_policy_text, encode_instruction, encoded_size
from sigsum_verifier.crypto import key_hash
from sigsum_verifier.errors import CompilationError, StructuralError
from sigsum_verifier.policy import QuorumKofN, QuorumSingle
from sigsum_verifier.policy_text import parse_policy_text
from sigsum_verifier.types import RawPublicKey

SAMPLE_POLICY = """
log 1111111111111111111111111111111111111111111111111111111111111111

witness X1 2222222222222222222222222222222222222222222222222222222222222222
witness X2 3333333333333333333333333333333333333333333333333333333333333333
witness X3 4444444444444444444444444444444444444444444444444444444444444444
group X-witnesses 2 X1 X2 X3

witness Y1 aaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa
witness Y2 bbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb
witness Y3 cccccccccccccccccccccccccccccccccccccccccccccccccccccccccccccccc
group Y-witnesses any Y1 Y2 Y3

group X-and-Y all X-witnesses Y-witnesses
quorum X-and-Y
"""

EXPECTED_HEX = (
    "0001060e"
    + "11" * 32
    + "bb" * 32
    + "22" * 32
    + "44" * 32
    + "cc" * 32
    + "33" * 32
    + "aa" * 32
    + "4043014501814142014401820182"
)


def _hex(n: int) -> str:
    return n.to_bytes(32, "big").hex()


def test_matches_reference_compiler_output():
    assert compile_policy_text(SAMPLE_POLICY).hex() == EXPECTED_HEX


def test_output_is_independent_of_declaration_order():
    lines = [ln for ln in SAMPLE_POLICY.strip().splitlines() if ln.startswith("witness")]
    logs = ["log " + "11" * 32, "log " + "ee" * 32, "log " + "5a" * 32]
    baseline = None
    rng = random.Random(1234)
    for _ in range(10):
        rng.shuffle(lines)
        rng.shuffle(logs)
        x_members = ["X1", "X2", "X3"]
        y_members = ["Y1", "Y2", "Y3"]
        rng.shuffle(x_members)
        rng.shuffle(y_members)
        groups = [
            f"group X-witnesses 2 {' '.join(x_members)}",
            f"group Y-witnesses any {' '.join(y_members)}",
        ]
        rng.shuffle(groups)
        top = ["X-witnesses", "Y-witnesses"]
        rng.shuffle(top)
        text = "\n".join(logs + lines + groups + [f"group X-and-Y all {' '.join(top)}", "quorum X-and-Y"])
        compiled = compile_policy_text(text)
        if baseline is None:
            baseline = compiled
        assert compiled == baseline

    parsed = CompiledPolicy.from_bytes(baseline)
    log_hashes = [key_hash(raw).data for raw in parsed.logs]
    assert len(log_hashes) == 3
    assert log_hashes == sorted(log_hashes)
    # Witness section and bytecode match the single-log reference output.
    assert baseline.hex().endswith(EXPECTED_HEX[8 + 64:])


def test_compiled_bytecode_agrees_with_tree_evaluation():
    policy = parse_policy_text(SAMPLE_POLICY)
    compiled = CompiledPolicy.from_bytes(compile_policy(policy))
    ordered = [key_hash(raw) for raw in compiled.witnesses]

    for mask in range(1 << len(ordered)):
        present = {kh for i, kh in enumerate(ordered) if mask & (1 << i)}
        found = bytes(1 if mask & (1 << i) else 0 for i in range(len(ordered)))
        assert eval_quorum_bytecode(compiled.quorum, len(ordered), found) == policy.is_quorum(present)


def test_single_witness_quorum_is_a_bare_instruction():
    text = f"log {'11' * 32}\nwitness A {'22' * 32}\nwitness B {'33' * 32}\ngroup solo 1 B\nquorum solo\n"
    compiled = CompiledPolicy.from_bytes(compile_policy_text(text))
    b_index = [key_hash(raw) for raw in compiled.witnesses].index(key_hash(RawPublicKey(b"\x33" * 32)))
    assert compiled.quorum == bytes([0x40 | b_index])


def test_instruction_encoding():
    assert encoded_size(0) == 1
    assert encoded_size(63) == 1
    assert encoded_size(64) == 2
    assert encoded_size(4095) == 2
    assert encoded_size(4096) == 3
    assert encode_instruction(0x40, 5) == b"\x45"
    assert encode_instruction(0x40, 64) == bytes([0xC1, 0x40])
    assert encode_instruction(0x80, 70) == bytes([0xC1, 0x86])
    assert encode_instruction(0x40, 4096) == bytes([0xC1, 0xC0, 0x40])


def test_prefix_encoding_for_large_witness_ids():
    witnesses = "\n".join(f"witness W{i} {_hex(i)}" for i in range(70))
    members = " ".join(f"W{i}" for i in range(70))
    text = f"log {'11' * 32}\n{witnesses}\ngroup g any {members}\nquorum g\n"

    out = compile_policy_text(text)
    compiled = CompiledPolicy.from_bytes(out)

    assert len(out) > 4 + 32 * (1 + 70)
    # 64 one-byte ids, 6 two-byte ids, 69 ADDs, one THRESHOLD.
    assert out[3] == 64 + 6 * 2 + 69 + 1
    assert any(b >= 0xC0 for b in compiled.quorum)

    n = len(compiled.witnesses)
    for i in (0, 63, 64, 69):
        found = bytearray(n)
        found[i] = 1
        assert eval_quorum_bytecode(compiled.quorum, n, found) is True
    assert eval_quorum_bytecode(compiled.quorum, n, bytes(n)) is False


def test_too_many_logs():
    logs = "\n".join(f"log {_hex(i + 1)}" for i in range(300))
    text = f"{logs}\nwitness A {_hex(301)}\nquorum A\n"
    with pytest.raises(CompilationError, match="Policy lists 300 logs, can have at most 255.") as ei:
        compile_policy_text(text)
    assert ei.value.code == "SIGSUM_E_TOO_MANY_LOGS"


def test_too_many_witnesses():
    witnesses = "\n".join(f"witness W{i} {_hex(i)}" for i in range(300))
    text = f"log {'11' * 32}\n{witnesses}\nquorum W0\n"
    with pytest.raises(CompilationError, match="can have at most 255"):
        compile_policy_text(text)


def test_quorum_too_complex():
    witnesses = "\n".join(f"witness W{i} {_hex(i)}" for i in range(200))
    members = " ".join(f"W{i}" for i in range(200))
    text = f"log {'11' * 32}\n{witnesses}\ngroup g any {members}\nquorum g\n"
    with pytest.raises(CompilationError, match="Policy quorum too complex"):
        compile_policy_text(text)


def test_shared_subgroups_fail_fast():
    witnesses = "\n".join(f"witness W{i} {_hex(i)}" for i in range(4))
    groups = ["group g0 any W0 W1 W2 W3"]
    for level in range(1, 40):
        groups.append(f"group g{level} 2 g{level - 1} g{level - 1} g{level - 1}")
    text = f"log {'11' * 32}\n{witnesses}\n" + "\n".join(groups) + "\nquorum g39\n"
    with pytest.raises(CompilationError, match="too complex"):
        compile_policy_text(text)


def test_quorum_none_cannot_be_compiled():
    text = f"log {'11' * 32}\nquorum none\n"
    with pytest.raises(CompilationError, match="empty quorum group"):
        compile_policy_text(text)


def test_unknown_witness_in_quorum():
    from sigsum_verifier.policy import Entity, Policy

    stray = key_hash(RawPublicKey(b"\x99" * 32))
    policy = Policy.build(
        logs=[Entity(RawPublicKey(b"\x11" * 32))],
        witnesses=[Entity(RawPublicKey(b"\x22" * 32))],
        quorum=QuorumKofN(members=(QuorumSingle(stray),), threshold=1),
    )
    with pytest.raises(CompilationError, match="missing from policy"):
        compile_policy(policy)


def test_syntax_errors_surface_from_the_parser():
    with pytest.raises(StructuralError, match="Unknown keyword"):
        compile_policy_text(f"log {'11' * 32}\nwtness bad {'22' * 32}\n")
    with pytest.raises(StructuralError, match="line must include"):
        compile_policy_text("witness OnlyName\nquorum\n")
