import importlib


def _read_pyproject_version() -> str:
    import re
    from pathlib import Path

    txt = (Path(__file__).resolve().parents[1] / "pyproject.toml").read_text(encoding="utf-8")
    m = re.search(r"^version\s*=\s*\"([^\"]+)\"\s*$", txt, flags=re.MULTILINE)
    assert m, "Could not locate [project].version in pyproject.toml"
    return m.group(1)


def test_convenience_imports_work():
    import sigsum_verifier

    # Access via attribute (lazy import)
    assert hasattr(sigsum_verifier, "verify_message")
    assert hasattr(sigsum_verifier, "compile_policy")

    from sigsum_verifier import (  # noqa: F401
        CompiledPolicy,
        SigsumError,
        SigsumProof,
        VerificationError,
        parse_policy_text,
        verify_message_with_compiled_policy,
    )

    for name in sigsum_verifier.__all__:
        assert getattr(sigsum_verifier, name) is not None
    assert "verify_hash" in dir(sigsum_verifier)

    # Ensure module caching works
    importlib.reload(sigsum_verifier)


def test_unknown_attribute_raises():
    import pytest

    import sigsum_verifier

    with pytest.raises(AttributeError, match="no attribute 'nope'"):
        sigsum_verifier.nope  # noqa: B018


def test_version_export_matches_pyproject():
    import sigsum_verifier

    assert hasattr(sigsum_verifier, "__version__")
    assert sigsum_verifier.__version__ == _read_pyproject_version()
