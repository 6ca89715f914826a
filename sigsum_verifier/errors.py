"""Stable error taxonomy for sigsum_verifier.

Every failure raised by this package is a ``SigsumError`` carrying a
machine-readable ``code``. Three kinds exist:

- ``StructuralError``: malformed input (hex, lengths, policy/proof text,
  compiled policy buffers, configuration, key import).
- ``CompilationError``: a well-formed policy that cannot be compiled.
- ``VerificationError``: a specific verification gate rejected the proof.

The bytecode VM is the one place that reports failure as ``False`` instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


# Structural / parse
SIGSUM_E_BAD_HEX = "SIGSUM_E_BAD_HEX"
SIGSUM_E_BAD_LENGTH = "SIGSUM_E_BAD_LENGTH"
SIGSUM_E_BAD_VALUE = "SIGSUM_E_BAD_VALUE"
SIGSUM_E_POLICY_SYNTAX = "SIGSUM_E_POLICY_SYNTAX"
SIGSUM_E_POLICY_NAME = "SIGSUM_E_POLICY_NAME"
SIGSUM_E_POLICY_DUPLICATE_KEY = "SIGSUM_E_POLICY_DUPLICATE_KEY"
SIGSUM_E_POLICY_QUORUM = "SIGSUM_E_POLICY_QUORUM"
SIGSUM_E_PROOF_SYNTAX = "SIGSUM_E_PROOF_SYNTAX"
SIGSUM_E_COMPILED_TRUNCATED = "SIGSUM_E_COMPILED_TRUNCATED"
SIGSUM_E_COMPILED_FORMAT = "SIGSUM_E_COMPILED_FORMAT"
SIGSUM_E_KEY_IMPORT = "SIGSUM_E_KEY_IMPORT"
SIGSUM_E_CONFIG = "SIGSUM_E_CONFIG"
SIGSUM_E_ENROLLMENT = "SIGSUM_E_ENROLLMENT"

# Compilation
SIGSUM_E_TOO_MANY_LOGS = "SIGSUM_E_TOO_MANY_LOGS"
SIGSUM_E_TOO_MANY_WITNESSES = "SIGSUM_E_TOO_MANY_WITNESSES"
SIGSUM_E_QUORUM_TOO_COMPLEX = "SIGSUM_E_QUORUM_TOO_COMPLEX"
SIGSUM_E_EMPTY_GROUP = "SIGSUM_E_EMPTY_GROUP"
SIGSUM_E_UNKNOWN_WITNESS = "SIGSUM_E_UNKNOWN_WITNESS"

# Verification
SIGSUM_E_KEY_MISMATCH = "SIGSUM_E_KEY_MISMATCH"
SIGSUM_E_MESSAGE_SIGNATURE = "SIGSUM_E_MESSAGE_SIGNATURE"
SIGSUM_E_LOG_NOT_FOUND = "SIGSUM_E_LOG_NOT_FOUND"
SIGSUM_E_TREE_HEAD_SIGNATURE = "SIGSUM_E_TREE_HEAD_SIGNATURE"
SIGSUM_E_QUORUM_NOT_SATISFIED = "SIGSUM_E_QUORUM_NOT_SATISFIED"
SIGSUM_E_INDEX_OUT_OF_RANGE = "SIGSUM_E_INDEX_OUT_OF_RANGE"
SIGSUM_E_TREE_SIZE_ONE = "SIGSUM_E_TREE_SIZE_ONE"
SIGSUM_E_INVALID_PROOF = "SIGSUM_E_INVALID_PROOF"
SIGSUM_E_UNUSED_PATH = "SIGSUM_E_UNUSED_PATH"


@dataclass
class SigsumError(Exception):
    """Base sigsum_verifier exception with stable error code."""

    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> str:
        return "error"

    def as_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "code": self.code,
            "kind": self.kind,
            "message": self.message,
        }
        if self.details:
            d["details"] = self.details
        return d

    def __str__(self) -> str:
        # Keep message readable; details are available via .as_dict()
        return f"{self.code}: {self.message}"


class StructuralError(SigsumError):
    """Input could not be parsed or violates a structural invariant."""

    @property
    def kind(self) -> str:
        return "structural"


class CompilationError(SigsumError):
    """Policy is valid but cannot be encoded as a compiled policy."""

    @property
    def kind(self) -> str:
        return "compilation"


class VerificationError(SigsumError):
    """A proof verification gate failed."""

    @property
    def kind(self) -> str:
        return "verification"


_COMPILATION_CODES = frozenset({
    SIGSUM_E_TOO_MANY_LOGS,
    SIGSUM_E_TOO_MANY_WITNESSES,
    SIGSUM_E_QUORUM_TOO_COMPLEX,
    SIGSUM_E_EMPTY_GROUP,
    SIGSUM_E_UNKNOWN_WITNESS,
})

_VERIFICATION_CODES = frozenset({
    SIGSUM_E_KEY_MISMATCH,
    SIGSUM_E_MESSAGE_SIGNATURE,
    SIGSUM_E_LOG_NOT_FOUND,
    SIGSUM_E_TREE_HEAD_SIGNATURE,
    SIGSUM_E_QUORUM_NOT_SATISFIED,
    SIGSUM_E_INDEX_OUT_OF_RANGE,
    SIGSUM_E_TREE_SIZE_ONE,
    SIGSUM_E_INVALID_PROOF,
    SIGSUM_E_UNUSED_PATH,
})


def sigsum_error(code: str, message: str, **details: Any) -> SigsumError:
    """Build the exception kind matching ``code``."""
    if code in _VERIFICATION_CODES:
        cls = VerificationError
    elif code in _COMPILATION_CODES:
        cls = CompilationError
    else:
        cls = StructuralError
    return cls(code=code, message=message, details=details)
