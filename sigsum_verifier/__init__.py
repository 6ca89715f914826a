"""Sigsum proof verifier.

Verifies that a signed message was logged in a Sigsum transparency log
trusted by a policy, and that enough trusted witnesses cosigned the log's
tree head. Also compiles policies to the compact binary form used by
WebCAT-style enrollment artifacts.

Convenience imports
------------------
The most common entry points are available at the package root and are
loaded lazily:

    from sigsum_verifier import verify_message, parse_policy_text, compile_policy
"""

from __future__ import annotations

import re
from importlib import import_module
from pathlib import Path
from typing import Any


def _read_version_from_pyproject() -> str | None:
    """Best-effort version discovery for dev/test environments.

    The project version is a simple `version = "..."` field in
    `pyproject.toml`, so a regex parse is enough.
    """

    try:
        pyproject = Path(__file__).resolve().parents[1] / "pyproject.toml"
        txt = pyproject.read_text(encoding="utf-8")
        m = re.search(r"^version\s*=\s*\"([^\"]+)\"\s*$", txt, flags=re.MULTILINE)
        return m.group(1) if m else None
    except OSError:
        return None


__version__ = _read_version_from_pyproject() or "1.0.0"

__all__ = [
    "__version__",
    "SigsumError",
    "StructuralError",
    "CompilationError",
    "VerificationError",
    "Policy",
    "parse_policy_text",
    "compile_policy",
    "compile_policy_text",
    "CompiledPolicy",
    "eval_quorum_bytecode",
    "SigsumProof",
    "VerifierSettings",
    "verify_hash",
    "verify_message",
    "verify_hash_with_compiled_policy",
    "verify_message_with_compiled_policy",
    "verify_message_sync",
    "verify_message_with_compiled_policy_sync",
    "build_enrollment",
    "enrollment_hash",
]

# Lazy export map: name -> (module, attribute)
_LAZY_EXPORTS: dict[str, tuple[str, str]] = {
    "SigsumError": ("sigsum_verifier.errors", "SigsumError"),
    "StructuralError": ("sigsum_verifier.errors", "StructuralError"),
    "CompilationError": ("sigsum_verifier.errors", "CompilationError"),
    "VerificationError": ("sigsum_verifier.errors", "VerificationError"),
    "Policy": ("sigsum_verifier.policy", "Policy"),
    "parse_policy_text": ("sigsum_verifier.policy_text", "parse_policy_text"),
    "compile_policy": ("sigsum_verifier.compiler", "compile_policy"),
    "compile_policy_text": ("sigsum_verifier.compiler", "compile_policy_text"),
    "CompiledPolicy": ("sigsum_verifier.compiled", "CompiledPolicy"),
    "eval_quorum_bytecode": ("sigsum_verifier.compiled", "eval_quorum_bytecode"),
    "SigsumProof": ("sigsum_verifier.proof", "SigsumProof"),
    "VerifierSettings": ("sigsum_verifier.settings", "VerifierSettings"),
    "verify_hash": ("sigsum_verifier.verify", "verify_hash"),
    "verify_message": ("sigsum_verifier.verify", "verify_message"),
    "verify_hash_with_compiled_policy": ("sigsum_verifier.verify", "verify_hash_with_compiled_policy"),
    "verify_message_with_compiled_policy": ("sigsum_verifier.verify", "verify_message_with_compiled_policy"),
    "verify_message_sync": ("sigsum_verifier.verify", "verify_message_sync"),
    "verify_message_with_compiled_policy_sync": ("sigsum_verifier.verify", "verify_message_with_compiled_policy_sync"),
    "build_enrollment": ("sigsum_verifier.enrollment", "build_enrollment"),
    "enrollment_hash": ("sigsum_verifier.enrollment", "enrollment_hash"),
}


def __getattr__(name: str) -> Any:
    if name in _LAZY_EXPORTS:
        module_name, attr = _LAZY_EXPORTS[name]
        module = import_module(module_name)
        value = getattr(module, attr)
        # Cache the resolved attribute on the module for faster future access.
        globals()[name] = value
        return value
    raise AttributeError(f"module 'sigsum_verifier' has no attribute {name!r}")


def __dir__() -> list[str]:
    return sorted(set(list(globals().keys()) + list(_LAZY_EXPORTS.keys())))
